"""
Dice Factory - Dice Utilities

Pure helpers for creating, rolling and moving dice. Dice are immutable; every
helper returns new dice or new pool tuples.
"""

import random
import uuid
from dataclasses import replace
from typing import Iterable, Sequence

from src.engine.base import Die
from src.engine.constants import DICE_PROGRESSION, MAX_DIE_SIDES


def generate_die_id() -> str:
    """Unique die identifier."""
    return f"die-{uuid.uuid4().hex[:12]}"


def create_die(
    sides: int,
    value: int | None = None,
    *,
    shiny: bool = False,
    rainbow: bool = False,
) -> Die:
    """Create a fresh die with a new id. Unset unless a value is given."""
    return Die(id=generate_die_id(), sides=sides, value=value, shiny=shiny, rainbow=rainbow)


def create_dice(sides_list: Iterable[int]) -> tuple[Die, ...]:
    """Create one unset die per entry."""
    return tuple(create_die(sides) for sides in sides_list)


def roll_value(
    sides: int,
    rng: random.Random,
    exclude: Sequence[int] = (),
) -> int:
    """
    Roll a face for a die with the given number of sides.

    Args:
        sides: Die size
        rng: Random source
        exclude: Faces that may never come up (rerolled until they don't)

    Returns:
        The rolled face
    """
    allowed = [v for v in range(1, sides + 1) if v not in exclude]
    if not allowed:
        raise ValueError(f"Every face of d{sides} is excluded.")
    while True:
        value = rng.randint(1, sides)
        if value not in exclude:
            return value


def roll_die(
    die: Die,
    rng: random.Random,
    exclude: Sequence[int] = (),
) -> Die:
    """Return the same die showing a new face."""
    return replace(die, value=roll_value(die.sides, rng, exclude))


def roll_dice(
    dice: Sequence[Die],
    rng: random.Random,
    exclude: Sequence[int] = (),
) -> tuple[Die, ...]:
    return tuple(roll_die(d, rng, exclude) for d in dice)


def next_size(sides: int) -> int | None:
    """The next die size up, or None for the largest die."""
    index = DICE_PROGRESSION.index(sides)
    if index + 1 >= len(DICE_PROGRESSION):
        return None
    return DICE_PROGRESSION[index + 1]


def can_promote(die: Die) -> bool:
    """A die promotes when it shows its maximum face and is not a d12."""
    return die.is_max and die.sides < MAX_DIE_SIDES


def promote_die(die: Die) -> Die:
    """
    Create the promoted replacement for a die.

    The replacement is a new, unset die one size up; the source die is
    discarded by the caller.

    Raises:
        ValueError: If the die is already the largest size
    """
    target = next_size(die.sides)
    if target is None:
        raise ValueError(f"d{die.sides} cannot be promoted.")
    return create_die(target)


def adjust_die_value(die: Die, change: int) -> Die:
    """Shift a die's face by ``change``, clamped to its range."""
    if die.value is None:
        raise ValueError("Cannot adjust an unrolled die.")
    return replace(die, value=max(1, min(die.sides, die.value + change)))


def find_dice(pool: Sequence[Die], die_ids: Sequence[str]) -> tuple[Die, ...]:
    """Dice matching the ids, in the order the ids were given. Missing ids are skipped."""
    by_id = {d.id: d for d in pool}
    return tuple(by_id[i] for i in die_ids if i in by_id)


def remove_dice(pool: Sequence[Die], die_ids: Iterable[str]) -> tuple[Die, ...]:
    doomed = set(die_ids)
    return tuple(d for d in pool if d.id not in doomed)


def add_dice(pool: Sequence[Die], new_dice: Iterable[Die]) -> tuple[Die, ...]:
    return tuple(pool) + tuple(new_dice)


def replace_dice(pool: Sequence[Die], updated: Iterable[Die]) -> tuple[Die, ...]:
    """Swap in updated dice by id, keeping pool order."""
    by_id = {d.id: d for d in updated}
    return tuple(by_id.get(d.id, d) for d in pool)


def top_up_pool(
    pool: Sequence[Die],
    floor: int,
    sides: int,
) -> tuple[tuple[Die, ...], int]:
    """
    Add blank dice until the pool holds ``floor`` dice.

    Returns:
        Tuple of (new pool, number of dice added)
    """
    missing = max(0, floor - len(pool))
    return add_dice(pool, create_dice([sides] * missing)), missing


def describe_dice(dice: Sequence[Die]) -> str:
    """Compact log rendering, e.g. ``d6[3], d8[5]``."""
    return ", ".join(str(d) for d in dice)
