"""
Dice Factory - Factory Card Catalog

Descriptors for every one-time effect and permanent modification sold at the
factory market. Modifications come from a finite shuffled deck built from
per-card copy counts; effects are offered for the whole game and never run out.
"""

import random
from dataclasses import dataclass

from src.engine.base import CardKind, Trigger
from src.engine.constants import (
    CORPORATE_DEBT_SALE_VALUE,
    PipCost,
)


# Modification ids
DICE_POOL_SIZE = "dice_pool_size"
OUTSOURCING = "outsourcing"
SYNERGY = "synergy"
CASH_FLOW_ENHANCEMENT = "cash_flow_enhancement"
QUALITY_CONTROL = "quality_control"
DICE_POOL_UPGRADE = "dice_pool_upgrade"
VARIABLE_DICE_POOL = "variable_dice_pool"
PATENT_PROTECTION = "patent_protection"
MARKET_MANIPULATION = "market_manipulation"
DIVIDEND = "dividend"
ARBITRAGE = "arbitrage"
DICE_TOWER = "dice_tower"
IMPROVED_ROLLERS = "improved_rollers"
DIVERSIFICATION = "diversification"
DUE_DILIGENCE = "due_diligence"
JOINT_VENTURE = "joint_venture"
VERTICAL_INTEGRATION = "vertical_integration"
CORPORATE_DEBT = "corporate_debt"
TWORUS = "tworus"
SALES_STRATEGY = "sales_strategy"

# Effect ids
JOB_FAIR = "job_fair"
SHINY_DICE = "shiny_dice"
RAINBOW_DIE = "rainbow_die"
HEADCOUNT = "headcount"
NIGHT_SHIFT = "night_shift"
YEAR_END_BONUS = "year_end_bonus"


@dataclass(frozen=True)
class FactoryCard:
    """
    A card sold at the factory market.

    Attributes:
        id: Stable identifier stored on players and in the deck
        name: Display name
        description: Rules text
        kind: Effect (one-time) or modification (permanent)
        cost: Base pip price
        stackable: Whether a player may own several copies
        trigger: Lifecycle event the card reacts to, if any
        count: Copies in the modification deck
        sale_value: Pips returned when sold back, if sellable
    """
    id: str
    name: str
    description: str
    kind: CardKind
    cost: int
    stackable: bool = False
    trigger: Trigger | None = None
    count: int = 1
    sale_value: int | None = None


def _modification(
    card_id: str,
    name: str,
    description: str,
    count: int = 1,
    **kwargs,
) -> FactoryCard:
    return FactoryCard(
        id=card_id,
        name=name,
        description=description,
        kind=CardKind.MODIFICATION,
        cost=PipCost.MODIFICATION,
        count=count,
        **kwargs,
    )


def _effect(card_id: str, name: str, description: str, **kwargs) -> FactoryCard:
    return FactoryCard(
        id=card_id,
        name=name,
        description=description,
        kind=CardKind.EFFECT,
        cost=PipCost.EFFECT,
        stackable=True,
        **kwargs,
    )


MODIFICATIONS: dict[str, FactoryCard] = {
    card.id: card
    for card in (
        _modification(
            DICE_POOL_SIZE, "Dice Pool Size",
            "Increase your dice floor by 1.", count=5, stackable=True,
        ),
        _modification(
            OUTSOURCING, "Outsourcing",
            "Once per turn, one die recruits a die of its own size regardless of value.",
            count=5,
        ),
        _modification(
            SYNERGY, "Synergy",
            "Straights score highest x (dice + 1); sets score value x (dice + 2).",
            count=4,
        ),
        _modification(
            CASH_FLOW_ENHANCEMENT, "Cash Flow Enhancement",
            "The first die you process each turn yields triple pips.", count=4,
        ),
        _modification(
            QUALITY_CONTROL, "Quality Control",
            "Your first reroll each turn is free.", count=3,
        ),
        _modification(
            DICE_POOL_UPGRADE, "Dice Pool Upgrade",
            "Your d4s become d6s and your floor is filled with d6s.", count=3,
        ),
        _modification(
            VARIABLE_DICE_POOL, "Variable Dice Pool",
            "You may spend 10 pips to increase your dice floor by 1.", count=3,
        ),
        _modification(
            PATENT_PROTECTION, "Patent Protection",
            "Keep the highest die from every trick you score.", count=2,
        ),
        _modification(
            MARKET_MANIPULATION, "Market Manipulation",
            "Effects and modifications cost you 4 pips less.", count=2,
        ),
        _modification(
            DIVIDEND, "Dividend",
            "When ending your turn you may take unused dice as points instead of pips.",
            count=2,
        ),
        _modification(
            ARBITRAGE, "Arbitrage",
            "Once per turn, process dice for double their value in points.", count=2,
        ),
        _modification(
            DICE_TOWER, "Dice Tower",
            "Before your first action each turn, you may reroll all your dice for free.",
            count=2,
        ),
        _modification(
            IMPROVED_ROLLERS, "Improved Rollers",
            "Rerolls cost 1 pip.",
        ),
        _modification(
            DIVERSIFICATION, "Diversification",
            "Your d4s also recruit on a 2.",
        ),
        _modification(
            DUE_DILIGENCE, "Due Diligence",
            "Increasing a die costs 3 pips.",
        ),
        _modification(
            JOINT_VENTURE, "Joint Venture",
            "Sets may mix two values; the most common value scores.",
        ),
        _modification(
            VERTICAL_INTEGRATION, "Vertical Integration",
            "Straights may skip one number.",
        ),
        _modification(
            CORPORATE_DEBT, "Corporate Debt",
            "Your pips may go down to -20. Each turn you lose points equal to your debt. "
            "Sell for 8 pips while out of debt.",
            trigger=Trigger.TURN_START,
            sale_value=CORPORATE_DEBT_SALE_VALUE,
        ),
        _modification(
            TWORUS, "2rUS",
            "Your rerolls never show a 2, and your 2s are rerolled at the start of each turn.",
            trigger=Trigger.TURN_START,
        ),
        _modification(
            SALES_STRATEGY, "Sales Strategy",
            "Straights and sets need one fewer die.",
        ),
    )
}

EFFECTS: dict[str, FactoryCard] = {
    card.id: card
    for card in (
        _effect(JOB_FAIR, "Job Fair", "Recruit a d4 showing a fresh roll."),
        _effect(
            SHINY_DICE, "Shiny Dice",
            "Your highest unspent die turns shiny; tricks with a shiny die score double.",
        ),
        _effect(
            RAINBOW_DIE, "Rainbow Die",
            "Gain a rolled rainbow d6. Rainbow dice are wild in straights and sets.",
        ),
        _effect(HEADCOUNT, "Headcount", "Increase your dice floor by 1."),
        _effect(
            NIGHT_SHIFT, "Night Shift",
            "At the start of your next turn, recruit a rolled d6.",
            trigger=Trigger.TURN_START,
        ),
        _effect(
            YEAR_END_BONUS, "Year-End Bonus",
            "At the end of this turn, gain 1 point per die in your pool.",
            trigger=Trigger.TURN_END,
        ),
    )
}


def get_card(card_id: str) -> FactoryCard | None:
    """Look up any card by id."""
    return MODIFICATIONS.get(card_id) or EFFECTS.get(card_id)


def build_modification_deck(rng: random.Random) -> tuple[str, ...]:
    """Expand copy counts into a shuffled deck of modification ids."""
    deck = [card.id for card in MODIFICATIONS.values() for _ in range(card.count)]
    rng.shuffle(deck)
    return tuple(deck)


def draw_effects(rng: random.Random, count: int) -> tuple[str, ...]:
    """Pick the distinct effects offered for the game."""
    pool = list(EFFECTS)
    return tuple(rng.sample(pool, min(count, len(pool))))
