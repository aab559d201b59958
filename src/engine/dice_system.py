"""
Dice Factory - Dice Subsystem

Pool operations: recruiting, promoting, processing, adjusting and rerolling
dice, plus the turn-boundary helpers that top up and roll pools.

Every operation takes a GameState and returns an Outcome. On failure the
input state comes back untouched. On success exactly one log entry has been
appended and ``details`` carries what the action yielded.
"""

import logging
import random
from dataclasses import replace

from src.engine.base import Die, GameState, Outcome, Player
from src.engine.catalog import (
    ARBITRAGE,
    CASH_FLOW_ENHANCEMENT,
    DICE_POOL_UPGRADE,
    DICE_TOWER,
    DIVIDEND,
    DUE_DILIGENCE,
    IMPROVED_ROLLERS,
    OUTSOURCING,
    QUALITY_CONTROL,
    TWORUS,
    VARIABLE_DICE_POOL,
)
from src.engine.constants import (
    ARBITRAGE_MULTIPLIER,
    CASH_FLOW_MULTIPLIER,
    DICE_POOL_UPGRADE_SIDES,
    DUE_DILIGENCE_INCREASE_COST,
    IMPROVED_ROLLERS_REROLL_COST,
    INITIAL_DIE_SIDES,
    PROCESS_MULTIPLIER,
    TWORUS_BANNED_VALUE,
    VARIABLE_DICE_POOL_COST,
    PipCost,
)
from src.engine.dice import (
    add_dice,
    adjust_die_value,
    create_dice,
    describe_dice,
    promote_die,
    remove_dice,
    roll_dice,
    roll_value,
    top_up_pool,
)
from src.engine.game_log import log_action, log_system
from src.engine.validators import (
    minimum_pips,
    recruitment_extras,
    select_dice,
    validate_die_modification,
    validate_pip_cost,
    validate_processing,
    validate_promotion,
    validate_recruitment,
    validate_reroll,
)

logger = logging.getLogger(__name__)


class DiceEngine:
    """
    Stateless engine for dice pool operations.

    All methods are class methods operating on immutable data.
    State is passed in and returned, never stored.
    """

    @classmethod
    def recruit(cls, state: GameState, player_id: str, die_ids: list[str]) -> Outcome:
        """
        Recruit new dice with dice showing recruiting faces.

        Each recruiting die yields one unset die of every size from its own
        down to d4. Recruiting dice stay in the pool but are exhausted.
        With Outsourcing, a single die that fails the table recruits one
        die of its own size instead (once per turn).
        """
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        dice, error = select_dice(player, die_ids)
        if error:
            return Outcome.fail(state, error)

        check = validate_recruitment(dice, recruitment_extras(player))
        outsourced = False
        if check.is_valid:
            new_sizes = check.new_sizes
        elif cls._can_outsource(player, dice):
            new_sizes = (dice[0].sides,)
            outsourced = True
        else:
            return Outcome.fail(state, check.reason)

        recruited = create_dice(new_sizes)
        player = replace(
            player,
            dice_pool=add_dice(player.dice_pool, recruited),
            exhausted_dice=player.exhausted_dice | {d.id for d in dice},
            turn_flags=player.turn_flags | {OUTSOURCING} if outsourced else player.turn_flags,
        )
        sizes = ", ".join(f"d{s}" for s in new_sizes)
        via = " via Outsourcing" if outsourced else ""
        message = f"Recruited {sizes} with {describe_dice(dice)}{via}"
        state = log_action(state.with_player(player), player.name, message)
        return Outcome.ok(
            state,
            message,
            recruited=new_sizes,
            new_dice_ids=tuple(d.id for d in recruited),
        )

    @classmethod
    def _can_outsource(cls, player: Player, dice: tuple[Die, ...]) -> bool:
        return (
            player.has_modification(OUTSOURCING)
            and not player.has_used(OUTSOURCING)
            and len(dice) == 1
            and dice[0].is_rolled
        )

    @classmethod
    def promote(cls, state: GameState, player_id: str, die_ids: list[str]) -> Outcome:
        """
        Promote dice showing their maximum face.

        Each source die is replaced, in place, by a new unset die one size up.
        """
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        dice, error = select_dice(player, die_ids)
        if error:
            return Outcome.fail(state, error)

        check = validate_promotion(dice)
        if not check.is_valid:
            return Outcome.fail(state, check.reason)

        promoted = {d.id: promote_die(d) for d in dice}
        player = replace(
            player,
            dice_pool=tuple(promoted.get(d.id, d) for d in player.dice_pool),
        )
        message = "Promoted " + ", ".join(
            f"d{d.sides} to d{promoted[d.id].sides}" for d in dice
        )
        state = log_action(state.with_player(player), player.name, message)
        return Outcome.ok(
            state,
            message,
            promoted=check.new_sizes,
            new_dice_ids=tuple(promoted[d.id].id for d in dice),
        )

    @classmethod
    def process(
        cls,
        state: GameState,
        player_id: str,
        die_ids: list[str],
        for_points: bool = False,
    ) -> Outcome:
        """
        Process dice into pips (2x value). The dice leave the pool.

        Cash Flow Enhancement makes the first processed die each turn yield
        3x. With Arbitrage the dice may instead be processed for 2x value
        in points, once per turn.
        """
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        dice, error = select_dice(player, die_ids)
        if error:
            return Outcome.fail(state, error)

        check = validate_processing(dice)
        if not check.is_valid:
            return Outcome.fail(state, check.reason)

        pool = remove_dice(player.dice_pool, die_ids)
        if for_points:
            if not player.has_modification(ARBITRAGE):
                return Outcome.fail(state, "Arbitrage is required to process for points")
            if player.has_used(ARBITRAGE):
                return Outcome.fail(state, "Arbitrage already used this turn")
            points = sum(d.value for d in dice) * ARBITRAGE_MULTIPLIER
            player = replace(
                player,
                dice_pool=pool,
                score=player.score + points,
                turn_flags=player.turn_flags | {ARBITRAGE},
            )
            message = f"Processed {describe_dice(dice)} for {points} points via Arbitrage"
            state = log_action(state.with_player(player), player.name, message)
            return Outcome.ok(state, message, points=points, pips_gained=0)

        pips = check.pips
        flags = player.turn_flags
        if player.has_modification(CASH_FLOW_ENHANCEMENT) and not player.has_used(CASH_FLOW_ENHANCEMENT):
            pips += dice[0].value * (CASH_FLOW_MULTIPLIER - PROCESS_MULTIPLIER)
            flags = flags | {CASH_FLOW_ENHANCEMENT}

        player = replace(
            player,
            dice_pool=pool,
            free_pips=player.free_pips + pips,
            turn_flags=flags,
        )
        message = f"Processed {describe_dice(dice)} for {pips} pips"
        state = log_action(state.with_player(player), player.name, message)
        return Outcome.ok(state, message, pips_gained=pips, points=0)

    @classmethod
    def value_change_cost(cls, player: Player, change: int) -> int:
        """Pip price of a +1 / -1 adjustment for this player."""
        if change > 0:
            if player.has_modification(DUE_DILIGENCE):
                return DUE_DILIGENCE_INCREASE_COST
            return PipCost.INCREASE
        return PipCost.DECREASE

    @classmethod
    def reroll_cost(cls, player: Player) -> int:
        """Pip price of the player's next reroll this turn."""
        if player.has_modification(QUALITY_CONTROL) and not player.has_used(QUALITY_CONTROL):
            return 0
        if player.has_modification(IMPROVED_ROLLERS):
            return IMPROVED_ROLLERS_REROLL_COST
        return PipCost.REROLL

    @classmethod
    def modify_value(
        cls,
        state: GameState,
        player_id: str,
        die_id: str,
        change: int,
    ) -> Outcome:
        """Pay pips to move a die's face by +1 or -1."""
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        dice, error = select_dice(player, [die_id])
        if error:
            return Outcome.fail(state, error)
        die = dice[0]

        check = validate_die_modification(die, change)
        if not check.is_valid:
            return Outcome.fail(state, check.reason)

        cost = cls.value_change_cost(player, change)
        payable = validate_pip_cost(player.free_pips, cost, minimum_pips(player))
        if not payable.is_valid:
            return Outcome.fail(state, payable.reason)

        updated = adjust_die_value(die, change)
        player = replace(
            player,
            dice_pool=tuple(updated if d.id == die.id else d for d in player.dice_pool),
            free_pips=player.free_pips - cost,
        )
        direction = "Increased" if change > 0 else "Decreased"
        message = f"{direction} d{die.sides} from {die.value} to {updated.value} ({cost} pips)"
        state = log_action(state.with_player(player), player.name, message)
        return Outcome.ok(state, message, new_value=updated.value, cost=cost)

    @classmethod
    def reroll(
        cls,
        state: GameState,
        player_id: str,
        die_id: str,
        rng: random.Random,
        forced_value: int | None = None,
    ) -> Outcome:
        """
        Pay pips to reroll one die.

        ``forced_value`` replays a known result instead of rolling, so a
        redo reproduces the original outcome.
        """
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        dice, error = select_dice(player, [die_id])
        if error:
            return Outcome.fail(state, error)
        die = dice[0]

        check = validate_reroll(die, forced_value)
        if not check.is_valid:
            return Outcome.fail(state, check.reason)

        exclude = cls.banned_faces(player)
        if forced_value is not None and forced_value in exclude:
            return Outcome.fail(state, f"Rerolls cannot show {forced_value}")

        cost = cls.reroll_cost(player)
        payable = validate_pip_cost(player.free_pips, cost, minimum_pips(player))
        if not payable.is_valid:
            return Outcome.fail(state, payable.reason)

        flags = player.turn_flags
        if cost == 0:
            flags = flags | {QUALITY_CONTROL}

        new_value = forced_value if forced_value is not None else roll_value(die.sides, rng, exclude)
        updated = replace(die, value=new_value)
        player = replace(
            player,
            dice_pool=tuple(updated if d.id == die.id else d for d in player.dice_pool),
            free_pips=player.free_pips - cost,
            turn_flags=flags,
        )
        message = f"Rerolled d{die.sides}: {die.value} -> {new_value} ({cost} pips)"
        state = log_action(state.with_player(player), player.name, message)
        return Outcome.ok(state, message, old_value=die.value, new_value=new_value, cost=cost)

    @classmethod
    def banned_faces(cls, player: Player) -> tuple[int, ...]:
        if player.has_modification(TWORUS):
            return (TWORUS_BANNED_VALUE,)
        return ()

    @classmethod
    def floor_die_sides(cls, player: Player) -> int:
        if player.has_modification(DICE_POOL_UPGRADE):
            return DICE_POOL_UPGRADE_SIDES
        return INITIAL_DIE_SIDES

    @classmethod
    def enforce_floor(cls, state: GameState, player_id: str) -> Outcome:
        """Top the pool up to the dice floor with blank dice."""
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")

        sides = cls.floor_die_sides(player)
        pool, added = top_up_pool(player.dice_pool, player.dice_floor, sides)
        if not added:
            return Outcome.ok(state, "", added=0)

        player = replace(player, dice_pool=pool)
        message = f"{player.name} received {added} d{sides} to reach the dice floor of {player.dice_floor}"
        state = log_system(state.with_player(player), message)
        return Outcome.ok(state, message, added=added)

    @classmethod
    def roll_pool(cls, state: GameState, player_id: str, rng: random.Random) -> Outcome:
        """Roll every die in a player's pool (turn start)."""
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        player = replace(player, dice_pool=roll_dice(player.dice_pool, rng))
        return Outcome.ok(state.with_player(player))

    @classmethod
    def convert_unused_to_pips(
        cls,
        state: GameState,
        player_id: str,
        as_points: bool = False,
    ) -> Outcome:
        """
        Convert every rolled, unspent die into pips at face value.

        With Dividend the value may be taken as points instead. The dice
        stay in the pool, exhausted until the next turn.
        """
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        if as_points and not player.has_modification(DIVIDEND):
            return Outcome.fail(state, "Dividend is required to take points at end of turn")

        unused = player.available_dice
        total = sum(d.value for d in unused)
        exhausted = player.exhausted_dice | {d.id for d in unused}
        if as_points:
            player = replace(player, score=player.score + total, exhausted_dice=exhausted)
            unit = "points"
        else:
            player = replace(player, free_pips=player.free_pips + total, exhausted_dice=exhausted)
            unit = "pips"

        message = f"Converted {len(unused)} unused dice into {total} {unit}"
        state = log_action(state.with_player(player), player.name, message)
        return Outcome.ok(
            state,
            message,
            pips_gained=0 if as_points else total,
            points=total if as_points else 0,
        )

    @classmethod
    def expand_dice_pool(cls, state: GameState, player_id: str) -> Outcome:
        """Variable Dice Pool: pay 10 pips to raise the dice floor by one."""
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        if not player.has_modification(VARIABLE_DICE_POOL):
            return Outcome.fail(state, "Variable Dice Pool is required to expand the dice pool")

        payable = validate_pip_cost(player.free_pips, VARIABLE_DICE_POOL_COST, minimum_pips(player))
        if not payable.is_valid:
            return Outcome.fail(state, payable.reason)

        player = replace(
            player,
            dice_floor=player.dice_floor + 1,
            free_pips=player.free_pips - VARIABLE_DICE_POOL_COST,
        )
        message = f"Raised dice floor to {player.dice_floor} ({VARIABLE_DICE_POOL_COST} pips)"
        state = log_action(state.with_player(player), player.name, message)
        return Outcome.ok(state, message, dice_floor=player.dice_floor, cost=VARIABLE_DICE_POOL_COST)

    @classmethod
    def tower_reroll(cls, state: GameState, player_id: str, rng: random.Random) -> Outcome:
        """Dice Tower: reroll the whole pool for free before any other action."""
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        if not player.has_modification(DICE_TOWER):
            return Outcome.fail(state, "Dice Tower is required to reroll all dice")
        if player.has_used(DICE_TOWER):
            return Outcome.fail(state, "Dice Tower already used this turn")
        if player.current_turn_actions:
            return Outcome.fail(state, "Dice Tower must be used before any other action")

        rerolled = roll_dice(player.dice_pool, rng, cls.banned_faces(player))
        player = replace(
            player,
            dice_pool=rerolled,
            turn_flags=player.turn_flags | {DICE_TOWER},
        )
        message = f"Rerolled all dice with the Dice Tower: {describe_dice(rerolled)}"
        state = log_action(state.with_player(player), player.name, message)
        return Outcome.ok(state, message, values=tuple(d.value for d in rerolled))
