"""
Dice Factory - Rule Tables

Static rule data shared by every subsystem. Nothing in this module changes
during a game; configurable starting values live in ``GameConfig``.

Recruitment:
    A die recruits when it shows one of the values listed for its size.
    A successful recruit rewards one new die of every size from the
    recruiting die's size down to d4 (a d10 yields a d10, d8, d6 and d4).

Pip costs:
    increase 4, decrease 3, reroll 2, effect 7, modification 9
"""

from enum import IntEnum


DICE_PROGRESSION: tuple[int, ...] = (4, 6, 8, 10, 12)
MAX_DIE_SIDES = DICE_PROGRESSION[-1]

RECRUITMENT_TABLE: dict[int, tuple[int, ...]] = {
    4: (1,),
    6: (1, 2),
    8: (1, 2, 3),
    10: (1, 2, 3, 4),
    12: (1, 2, 3, 4, 5),
}

RECRUITMENT_REWARDS: dict[int, tuple[int, ...]] = {
    sides: tuple(s for s in reversed(DICE_PROGRESSION) if s <= sides)
    for sides in DICE_PROGRESSION
}


class PipCost(IntEnum):
    """Base pip price of each paid action."""
    INCREASE = 4
    DECREASE = 3
    REROLL = 2
    EFFECT = 7
    MODIFICATION = 9


# Tricks
MIN_STRAIGHT_LENGTH = 3
MIN_SET_SIZE = 4
FIRST_TRICK_BONUS = 5

# Economy
PROCESS_MULTIPLIER = 2
MINIMUM_PIPS = 0

# Starting values
INITIAL_DICE_COUNT = 4
INITIAL_DIE_SIDES = 4
INITIAL_FREE_PIPS = 9
INITIAL_DICE_FLOOR = 4

# Collapse
COLLAPSE_DICE: tuple[int, ...] = (4, 6, 8)

# Undo
MAX_ACTION_HISTORY = 10

# Market
EFFECT_MARKET_SIZE = 3
MODIFICATION_MARKET_SIZE = 3

# Roster
MIN_PLAYERS = 2
MAX_PLAYERS = 8

# Modification tuning
DUE_DILIGENCE_INCREASE_COST = 3
IMPROVED_ROLLERS_REROLL_COST = 1
CASH_FLOW_MULTIPLIER = 3
ARBITRAGE_MULTIPLIER = 2
MARKET_MANIPULATION_DISCOUNT = 4
VARIABLE_DICE_POOL_COST = 10
CORPORATE_DEBT_FLOOR = -20
CORPORATE_DEBT_SALE_VALUE = 8
DICE_POOL_UPGRADE_SIDES = 6
DIVERSIFICATION_D4_VALUES: tuple[int, ...] = (2,)
TWORUS_BANNED_VALUE = 2

# Experimental variant
DEFAULT_MAX_ROUNDS = 10
