"""
Dice Factory - Validation Rules

Single source of truth for every game rule check. Rule validators are pure and
never raise for a broken rule: they return a ValidationResult whose ``reason``
is shown to the player. Input validators (rosters, amounts) raise ValueError
for malformed input, since that is a caller bug rather than a bad move.
"""

from collections import Counter
from dataclasses import dataclass
from itertools import chain
from typing import Mapping, Sequence

from src.engine.base import Die, GamePhase, GameState, Player, TrickType
from src.engine.catalog import (
    CORPORATE_DEBT,
    DIVERSIFICATION,
    JOINT_VENTURE,
    SALES_STRATEGY,
    VERTICAL_INTEGRATION,
)
from src.engine.constants import (
    CORPORATE_DEBT_FLOOR,
    DIVERSIFICATION_D4_VALUES,
    MAX_DIE_SIDES,
    MAX_PLAYERS,
    MIN_PLAYERS,
    MIN_SET_SIZE,
    MIN_STRAIGHT_LENGTH,
    MINIMUM_PIPS,
    PROCESS_MULTIPLIER,
    RECRUITMENT_REWARDS,
    RECRUITMENT_TABLE,
)
from src.engine.dice import find_dice, next_size


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of a rule check.

    Attributes:
        is_valid: Whether the move is legal
        reason: Why it is not (empty when valid)
        points: Points the move would score
        pips: Pips the move would yield
        rank: Highest value of a straight, or the scoring value of a set
        new_sizes: Sizes of dice the move would create
    """
    is_valid: bool
    reason: str = ""
    points: int = 0
    pips: int = 0
    rank: int = 0
    new_sizes: tuple[int, ...] = ()

    def __bool__(self) -> bool:
        return self.is_valid

    @classmethod
    def invalid(cls, reason: str) -> "ValidationResult":
        return cls(is_valid=False, reason=reason)


@dataclass(frozen=True)
class TrickRules:
    """Trick requirements after a player's modifications."""
    min_straight: int = MIN_STRAIGHT_LENGTH
    min_set: int = MIN_SET_SIZE
    max_gaps: int = 0
    max_set_values: int = 1


def trick_rules(player: Player) -> TrickRules:
    """Trick requirements for a player."""
    reduction = 1 if player.has_modification(SALES_STRATEGY) else 0
    return TrickRules(
        min_straight=MIN_STRAIGHT_LENGTH - reduction,
        min_set=MIN_SET_SIZE - reduction,
        max_gaps=1 if player.has_modification(VERTICAL_INTEGRATION) else 0,
        max_set_values=2 if player.has_modification(JOINT_VENTURE) else 1,
    )


def recruitment_extras(player: Player) -> dict[int, tuple[int, ...]]:
    """Additional recruiting faces granted by modifications, keyed by die size."""
    if player.has_modification(DIVERSIFICATION):
        return {4: DIVERSIFICATION_D4_VALUES}
    return {}


def minimum_pips(player: Player) -> int:
    """Lowest pip balance a player may reach."""
    if player.has_modification(CORPORATE_DEBT):
        return CORPORATE_DEBT_FLOOR
    return MINIMUM_PIPS


def _check_rolled(dice: Sequence[Die]) -> ValidationResult | None:
    for die in dice:
        if not die.is_rolled:
            return ValidationResult.invalid(f"{die} has not been rolled yet")
    return None


def validate_straight(
    dice: Sequence[Die],
    min_length: int = MIN_STRAIGHT_LENGTH,
    max_gaps: int = 0,
) -> ValidationResult:
    """
    Check a straight: distinct consecutive values.

    Rainbow dice are wild: they fill missing numbers first and otherwise
    extend the run upwards. ``max_gaps`` missing numbers may be skipped
    outright. Points are the highest value times the number of dice.

    Args:
        dice: Dice forming the straight
        min_length: Fewest dice allowed
        max_gaps: Missing numbers tolerated without a wild die

    Returns:
        ValidationResult with points and rank (the highest value)
    """
    if len(dice) < min_length:
        return ValidationResult.invalid(f"Need at least {min_length} dice for a straight")
    if (unrolled := _check_rolled(dice)) is not None:
        return unrolled

    fixed = sorted(d.value for d in dice if not d.rainbow)
    wild = len(dice) - len(fixed)
    if not fixed:
        return ValidationResult.invalid("A trick needs at least one non-rainbow die")
    if len(set(fixed)) != len(fixed):
        return ValidationResult.invalid("All dice in a straight must show different values")

    gaps = fixed[-1] - fixed[0] + 1 - len(fixed)
    skipped = min(gaps, max_gaps)
    if gaps - skipped > wild:
        if max_gaps:
            return ValidationResult.invalid(
                f"Dice values must be consecutive (at most {max_gaps} gap allowed)"
            )
        return ValidationResult.invalid("Dice values must be consecutive for a straight")

    rank = fixed[-1] + (wild - (gaps - skipped))
    return ValidationResult(is_valid=True, points=rank * len(dice), rank=rank)


def validate_set(
    dice: Sequence[Die],
    min_size: int = MIN_SET_SIZE,
    max_values: int = 1,
) -> ValidationResult:
    """
    Check a set: dice showing the same value.

    Rainbow dice are wild. With ``max_values`` above one the most common value
    scores (the higher value on a tie). Points are value x (count + 1).
    """
    if len(dice) < min_size:
        return ValidationResult.invalid(f"Need at least {min_size} dice for a set")
    if (unrolled := _check_rolled(dice)) is not None:
        return unrolled

    counts = Counter(d.value for d in dice if not d.rainbow)
    if not counts:
        return ValidationResult.invalid("A trick needs at least one non-rainbow die")
    if len(counts) > max_values:
        if max_values > 1:
            return ValidationResult.invalid(f"A set may mix at most {max_values} values")
        return ValidationResult.invalid("All dice in a set must show the same value")

    rank = max(counts, key=lambda v: (counts[v], v))
    return ValidationResult(is_valid=True, points=rank * (len(dice) + 1), rank=rank)


def validate_trick(
    trick: TrickType,
    dice: Sequence[Die],
    rules: TrickRules = TrickRules(),
) -> ValidationResult:
    """Dispatch to the straight or set check with a player's trick rules."""
    if trick == TrickType.STRAIGHT:
        return validate_straight(dice, rules.min_straight, rules.max_gaps)
    return validate_set(dice, rules.min_set, rules.max_set_values)


def validate_recruitment(
    dice: Sequence[Die],
    extra_values: Mapping[int, Sequence[int]] | None = None,
) -> ValidationResult:
    """
    Check that every die shows a recruiting face.

    Returns:
        ValidationResult whose ``new_sizes`` is the combined reward cascade
    """
    if not dice:
        return ValidationResult.invalid("Select at least one die")
    if (unrolled := _check_rolled(dice)) is not None:
        return unrolled

    extra_values = extra_values or {}
    for die in dice:
        allowed = RECRUITMENT_TABLE[die.sides] + tuple(extra_values.get(die.sides, ()))
        if die.value not in allowed:
            faces = ", ".join(str(v) for v in sorted(allowed))
            return ValidationResult.invalid(
                f"d{die.sides} showing {die.value} cannot recruit (needs {faces})"
            )

    rewards = tuple(chain.from_iterable(RECRUITMENT_REWARDS[d.sides] for d in dice))
    return ValidationResult(is_valid=True, new_sizes=rewards)


def validate_promotion(dice: Sequence[Die]) -> ValidationResult:
    """Check that every die shows its maximum face and can grow."""
    if not dice:
        return ValidationResult.invalid("Select at least one die")
    if (unrolled := _check_rolled(dice)) is not None:
        return unrolled

    for die in dice:
        if die.sides >= MAX_DIE_SIDES:
            return ValidationResult.invalid(f"d{die.sides} cannot be promoted further")
        if not die.is_max:
            return ValidationResult.invalid(
                f"d{die.sides} must show {die.sides} to be promoted"
            )

    return ValidationResult(
        is_valid=True,
        new_sizes=tuple(next_size(d.sides) for d in dice),
    )


def validate_processing(
    dice: Sequence[Die],
    multiplier: int = PROCESS_MULTIPLIER,
) -> ValidationResult:
    """Check dice can be processed and compute the yield."""
    if not dice:
        return ValidationResult.invalid("Select at least one die")
    if (unrolled := _check_rolled(dice)) is not None:
        return unrolled
    return ValidationResult(
        is_valid=True,
        pips=sum(d.value for d in dice) * multiplier,
    )


def validate_die_modification(die: Die, change: int) -> ValidationResult:
    """Check a +1 / -1 adjustment stays on the die."""
    if change not in (1, -1):
        return ValidationResult.invalid("Change must be +1 or -1")
    if not die.is_rolled:
        return ValidationResult.invalid(f"{die} has not been rolled yet")
    new_value = die.value + change
    if new_value > die.sides:
        return ValidationResult.invalid(f"d{die.sides} cannot go above {die.sides}")
    if new_value < 1:
        return ValidationResult.invalid(f"d{die.sides} cannot go below 1")
    return ValidationResult(is_valid=True, rank=new_value)


def validate_reroll(die: Die, forced_value: int | None = None) -> ValidationResult:
    """Check a die may be rerolled, optionally to a known face."""
    if not die.is_rolled:
        return ValidationResult.invalid(f"{die} has not been rolled yet")
    if forced_value is not None and not (1 <= forced_value <= die.sides):
        return ValidationResult.invalid(
            f"Forced value {forced_value} is not a face of d{die.sides}"
        )
    return ValidationResult(is_valid=True)


def validate_pip_cost(
    free_pips: int,
    cost: int,
    minimum: int = MINIMUM_PIPS,
) -> ValidationResult:
    """Check a player can pay ``cost`` without dropping below ``minimum``."""
    if free_pips - cost < minimum:
        return ValidationResult.invalid(
            f"Not enough pips (need {cost}, have {free_pips})"
        )
    return ValidationResult(is_valid=True)


def validate_player_action(state: GameState, player_id: str) -> ValidationResult:
    """Check that a player may take a turn action right now."""
    player = state.get_player(player_id)
    if player is None:
        return ValidationResult.invalid("Player not found")
    if player.has_fled:
        return ValidationResult.invalid("Player has fled the factory")
    if player.is_ready:
        return ValidationResult.invalid("Player has already ended their turn")
    if state.phase != GamePhase.PLAYING:
        return ValidationResult.invalid("Game is not in playing phase")
    if state.awaiting_bids:
        return ValidationResult.invalid("Waiting for auction bids")
    return ValidationResult(is_valid=True)


def select_dice(
    player: Player,
    die_ids: Sequence[str],
) -> tuple[tuple[Die, ...], str]:
    """
    Resolve a player's die selection.

    Returns:
        Tuple of (dice in selection order, rejection reason or "")
    """
    if not die_ids:
        return (), "No dice selected"
    if len(set(die_ids)) != len(die_ids):
        return (), "The same die was selected twice"
    dice = find_dice(player.dice_pool, die_ids)
    if len(dice) != len(die_ids):
        return (), "Some dice not found in pool"
    for die in dice:
        if die.id in player.exhausted_dice:
            return (), f"{die} was already used this turn"
    return dice, ""


def validate_roster(entries: Sequence[Mapping[str, object]]) -> tuple[Mapping[str, object], ...]:
    """
    Validate the roster handed over by the lobby.

    Args:
        entries: Mappings with ``id``, ``name`` and optional ``is_bot``

    Returns:
        Validated entries as a tuple

    Raises:
        ValueError: On a bad player count, missing fields or duplicate ids
    """
    if not MIN_PLAYERS <= len(entries) <= MAX_PLAYERS:
        raise ValueError(
            f"Player count must be {MIN_PLAYERS}-{MAX_PLAYERS}, got {len(entries)}."
        )
    seen: set[str] = set()
    for i, entry in enumerate(entries):
        player_id = entry.get("id")
        name = entry.get("name")
        if not isinstance(player_id, str) or not player_id:
            raise ValueError(f"Roster entry {i} needs a non-empty string id.")
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"Roster entry {i} needs a non-empty name.")
        if player_id in seen:
            raise ValueError(f"Duplicate player id {player_id!r} in roster.")
        seen.add(player_id)
    return tuple(entries)


def validate_bid_amount(amount: int) -> int:
    """
    Validate a sealed bid.

    Raises:
        ValueError: If the amount is not a non-negative integer
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"Bid must be an integer, got {type(amount).__name__}.")
    if amount < 0:
        raise ValueError(f"Bid cannot be negative, got {amount}.")
    return amount
