"""
Dice Factory - Collapse Clock

The factory collapses in the standard variant.

Collapse:
    - Every end of turn before the collapse, the collapse dice (d4 + d6 + d8)
      are rolled. A total below the turn counter starts the collapse.
    - On every later end of turn the roll is subtracted from the turn
      counter. At zero or below the factory falls: every player still
      inside loses all points and the game ends.
    - Once it has started, players may flee. A fleeing player keeps their
      score, ends their turn for good and removes one collapse die (the
      last die is never removed).
"""

import logging
import math
import random
from dataclasses import dataclass, replace
from itertools import product
from typing import Sequence

from src.engine.base import GamePhase, GameState, Outcome, Variant
from src.engine.game_log import log_action, log_system

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollapseRisk:
    """
    How close the factory is to falling.

    Attributes:
        turn_counter: Current clock value
        collapse_started: Whether the clock is already counting down
        min_roll: Lowest possible collapse roll
        max_roll: Highest possible collapse roll
        average_roll: Expected collapse roll
        start_chance: Chance the next check starts the collapse (0 once started)
        estimated_turns_left: Expected turns until the fall, once started
    """
    turn_counter: int
    collapse_started: bool
    min_roll: int
    max_roll: int
    average_roll: float
    start_chance: float
    estimated_turns_left: int | None = None


class CollapseEngine:
    """
    Stateless engine for the collapse clock.

    All methods are class methods operating on immutable data.
    State is passed in and returned, never stored.
    """

    @classmethod
    def roll(cls, dice: Sequence[int], rng: random.Random) -> int:
        """Roll the collapse dice and total them."""
        return sum(rng.randint(1, sides) for sides in dice)

    @classmethod
    def check_for_collapse_start(cls, state: GameState, rng: random.Random) -> Outcome:
        """Roll against the turn counter unless the collapse is already underway."""
        if state.collapse_started:
            return Outcome.ok(state, "", started=False)

        roll = cls.roll(state.collapse_dice, rng)
        state = replace(state, last_collapse_roll=roll)
        if roll < state.turn_counter:
            state = replace(state, collapse_started=True)
            message = f"The factory begins to collapse! (rolled {roll} against {state.turn_counter})"
            logger.info("Collapse started at turn counter %d", state.turn_counter)
        else:
            message = f"Collapse check: rolled {roll} against {state.turn_counter}; the factory holds"
        state = log_system(state, message)
        return Outcome.ok(state, message, started=state.collapse_started, roll=roll)

    @classmethod
    def process_collapse_phase(cls, state: GameState, rng: random.Random) -> Outcome:
        """Count the clock down; crush everyone still inside at zero."""
        if not state.collapse_started:
            return Outcome.fail(state, "The factory is not collapsing")

        roll = cls.roll(state.collapse_dice, rng)
        counter = state.turn_counter - roll
        state = replace(state, turn_counter=counter, last_collapse_roll=roll)
        state = log_system(state, f"The factory shakes: rolled {roll}, turn counter now {counter}")
        if counter > 0:
            return Outcome.ok(state, "", crushed=False, roll=roll)

        state = cls.crush_remaining_players(state)
        return Outcome.ok(state, "The factory has collapsed", crushed=True, roll=roll)

    @classmethod
    def crush_remaining_players(cls, state: GameState) -> GameState:
        """Zero the score of every player who did not flee."""
        trapped = [p for p in state.players if not p.has_fled]
        state = state.with_players([replace(p, score=0) for p in trapped])
        names = ", ".join(p.name for p in trapped) or "nobody"
        return log_system(state, f"The factory collapsed! Crushed: {names}")

    @classmethod
    def flee(cls, state: GameState, player_id: str) -> Outcome:
        """Leave the collapsing factory, keeping the current score."""
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        if player.has_fled:
            return Outcome.fail(state, "Player has fled the factory")
        if state.phase != GamePhase.PLAYING:
            return Outcome.fail(state, "Game is not in playing phase")
        if state.config.variant == Variant.EXPERIMENTAL:
            return Outcome.fail(state, "Fleeing is not part of the experimental variant")
        if not state.collapse_started:
            return Outcome.fail(state, "The factory is not collapsing yet")
        if state.awaiting_bids:
            return Outcome.fail(state, "Waiting for auction bids")

        dice = state.collapse_dice
        if len(dice) > 1:
            dice = dice[:-1]
        state = replace(
            state,
            collapse_dice=dice,
            reservations=tuple(r for r in state.reservations if r.player_id != player_id),
        )
        state = state.with_player(replace(player, has_fled=True, is_ready=True))
        message = f"Fled the factory with {player.score} points"
        state = log_action(state, player.name, message)
        return Outcome.ok(state, message, score=player.score, collapse_dice=dice)

    @classmethod
    def assess_collapse_risk(cls, state: GameState) -> CollapseRisk:
        """Exact odds of the next collapse roll, by enumerating every outcome."""
        totals = [sum(faces) for faces in product(*(range(1, s + 1) for s in state.collapse_dice))]
        average = sum(totals) / len(totals)

        if state.collapse_started:
            start_chance = 0.0
            turns_left = max(0, math.ceil(state.turn_counter / average))
        else:
            start_chance = sum(1 for t in totals if t < state.turn_counter) / len(totals)
            turns_left = None

        return CollapseRisk(
            turn_counter=state.turn_counter,
            collapse_started=state.collapse_started,
            min_roll=min(totals),
            max_roll=max(totals),
            average_roll=average,
            start_chance=start_chance,
            estimated_turns_left=turns_left,
        )
