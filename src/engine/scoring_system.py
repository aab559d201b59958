"""
Dice Factory - Scoring Subsystem

Scores straights and sets for points.

Scoring:
    - Straight: highest value x number of dice
    - Set: value x (number of dice + 1)
    - Synergy: straight highest x (dice + 1), set value x (dice + 2)
    - Shiny die in the trick: double
    - First straight and first set of the game: +5 bonus (once each, globally)

Scored dice leave the pool. Patent Protection keeps the highest die, which
stays exhausted for the rest of the turn.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Sequence

from src.engine.base import Die, GameState, Outcome, Player, TrickType
from src.engine.catalog import PATENT_PROTECTION, SYNERGY
from src.engine.dice import describe_dice, remove_dice
from src.engine.game_log import log_score
from src.engine.validators import (
    ValidationResult,
    select_dice,
    trick_rules,
    validate_trick,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrickOption:
    """A scorable combination found among selected dice."""
    trick: TrickType
    die_ids: tuple[str, ...]
    points: int
    description: str


@dataclass(frozen=True)
class ScorePreview:
    """
    What a selection of dice could score, without scoring it.

    Attributes:
        options: Every scorable combination found
        first_straight_available: The +5 first-straight bonus is still open
        first_set_available: The +5 first-set bonus is still open
    """
    options: tuple[TrickOption, ...]
    first_straight_available: bool
    first_set_available: bool

    @property
    def straights(self) -> tuple[TrickOption, ...]:
        return tuple(o for o in self.options if o.trick == TrickType.STRAIGHT)

    @property
    def sets(self) -> tuple[TrickOption, ...]:
        return tuple(o for o in self.options if o.trick == TrickType.SET)

    @property
    def best(self) -> TrickOption | None:
        """Highest-scoring option, if any."""
        if not self.options:
            return None
        return max(self.options, key=lambda o: o.points)


class ScoringEngine:
    """
    Stateless engine for trick scoring.

    All methods are class methods operating on immutable data.
    State is passed in and returned, never stored.
    """

    @classmethod
    def trick_points(
        cls,
        player: Player,
        trick: TrickType,
        dice: Sequence[Die],
        check: ValidationResult,
    ) -> tuple[int, tuple[str, ...]]:
        """
        Apply the player's modifiers to a validated trick.

        Returns:
            Tuple of (points before the first-trick bonus, modifier notes)
        """
        points = check.points
        notes: list[str] = []
        if player.has_modification(SYNERGY):
            extra = 1 if trick == TrickType.STRAIGHT else 2
            points = check.rank * (len(dice) + extra)
            notes.append("Synergy")
        if any(d.shiny for d in dice):
            points *= 2
            notes.append("shiny x2")
        return points, tuple(notes)

    @classmethod
    def score_straight(cls, state: GameState, player_id: str, die_ids: list[str]) -> Outcome:
        return cls.score_trick(state, player_id, die_ids, TrickType.STRAIGHT)

    @classmethod
    def score_set(cls, state: GameState, player_id: str, die_ids: list[str]) -> Outcome:
        return cls.score_trick(state, player_id, die_ids, TrickType.SET)

    @classmethod
    def score_trick(
        cls,
        state: GameState,
        player_id: str,
        die_ids: list[str],
        trick: TrickType,
    ) -> Outcome:
        """
        Score a straight or set from the selected dice.

        Args:
            state: Current game state
            player_id: Scoring player
            die_ids: Dice forming the trick
            trick: Straight or set

        Returns:
            Outcome whose details hold ``points`` (including any bonus),
            ``bonus`` and ``bonus_claimed``
        """
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        dice, error = select_dice(player, die_ids)
        if error:
            return Outcome.fail(state, error)

        check = validate_trick(trick, dice, trick_rules(player))
        if not check.is_valid:
            return Outcome.fail(state, check.reason)

        points, notes = cls.trick_points(player, trick, dice, check)

        bonus = 0
        if trick == TrickType.STRAIGHT and not state.first_straight_claimed:
            bonus = state.config.first_trick_bonus
            state = replace(state, first_straight_claimed=True)
        elif trick == TrickType.SET and not state.first_set_claimed:
            bonus = state.config.first_trick_bonus
            state = replace(state, first_set_claimed=True)
        if bonus:
            notes += (f"+{bonus} first {trick.value} bonus",)

        spent = list(dice)
        exhausted = player.exhausted_dice
        if player.has_modification(PATENT_PROTECTION):
            kept = max(dice, key=lambda d: (d.value, d.sides))
            spent.remove(kept)
            exhausted = exhausted | {kept.id}
            notes += (f"kept {kept} with Patent Protection",)

        total = points + bonus
        player = replace(
            player,
            dice_pool=remove_dice(player.dice_pool, (d.id for d in spent)),
            score=player.score + total,
            exhausted_dice=exhausted,
        )
        message = f"Scored {trick.value} {describe_dice(dice)} for {total} points"
        if notes:
            message += f" ({'; '.join(notes)})"
        state = log_score(state.with_player(player), player.name, message)
        logger.debug("%s scored %s for %d", player.name, trick.value, total)
        return Outcome.ok(
            state,
            message,
            points=total,
            bonus=bonus,
            bonus_claimed=trick if bonus else None,
        )

    @classmethod
    def calculate_score_preview(
        cls,
        state: GameState,
        player_id: str,
        die_ids: list[str],
    ) -> Outcome:
        """
        Report what the selected dice could score. Never changes the state.

        The whole selection is checked as a straight and as a set with the
        player's own rules. Failing that, the longest run of consecutive
        values and every group of equal values are offered instead.
        """
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        dice, error = select_dice(player, die_ids)
        if error:
            return Outcome.fail(state, error)

        rules = trick_rules(player)
        options: list[TrickOption] = []
        seen: set[tuple[TrickType, frozenset[str]]] = set()

        def offer(trick: TrickType, candidates: Sequence[Die]) -> None:
            key = (trick, frozenset(d.id for d in candidates))
            if key in seen:
                return
            check = validate_trick(trick, candidates, rules)
            if not check.is_valid:
                return
            seen.add(key)
            points, notes = cls.trick_points(player, trick, candidates, check)
            description = f"{trick.value.capitalize()} of {len(candidates)} ({describe_dice(candidates)})"
            if notes:
                description += f" [{', '.join(notes)}]"
            options.append(
                TrickOption(
                    trick=trick,
                    die_ids=tuple(d.id for d in candidates),
                    points=points,
                    description=description,
                )
            )

        for trick in TrickType:
            offer(trick, dice)

        rolled = [d for d in dice if d.is_rolled and not d.rainbow]
        run = cls._longest_run(rolled)
        if len(run) >= rules.min_straight:
            offer(TrickType.STRAIGHT, run)

        groups: dict[int, list[Die]] = defaultdict(list)
        for die in rolled:
            groups[die.value].append(die)
        for value in sorted(groups, reverse=True):
            if len(groups[value]) >= rules.min_set:
                offer(TrickType.SET, groups[value])

        preview = ScorePreview(
            options=tuple(options),
            first_straight_available=not state.first_straight_claimed,
            first_set_available=not state.first_set_claimed,
        )
        return Outcome.ok(state, "", preview=preview)

    @classmethod
    def _longest_run(cls, dice: Sequence[Die]) -> list[Die]:
        """Longest run of consecutive values, one die per value (highest run wins ties)."""
        by_value: dict[int, Die] = {}
        for die in dice:
            by_value.setdefault(die.value, die)

        best: list[int] = []
        current: list[int] = []
        for value in sorted(by_value):
            if current and value == current[-1] + 1:
                current.append(value)
            else:
                current = [value]
            if len(current) >= len(best):
                best = list(current)
        return [by_value[v] for v in best]
