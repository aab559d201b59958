"""
Dice Factory - Turn Subsystem

Readiness, turn advancement and undo.

Turn flow:
    1. Every player acts simultaneously, then ends their turn. Unused
       rolled dice convert to pips at face value.
    2. Once everyone still inside is ready, the orchestrator runs the end of
       turn and calls ``advance_to_next_turn``.
    3. Advancing resets each player, tops pools up to the dice floor, rolls
       every die, fires turn-start cards and records the turn-start snapshot.

Undo:
    Each undoable action stores the player's state from just before it,
    keeping the newest ``max_action_history``. Undoing pops one snapshot;
    with none left but older actions on record it falls back to the turn
    start. Factory purchases seal the history: only a whole-turn undo goes
    past them.
"""

import logging
import random
from dataclasses import replace
from typing import Iterable

from src.engine.base import (
    ActionRecord,
    ActionSnapshot,
    GameState,
    Outcome,
    Player,
    TrickType,
    Trigger,
    Variant,
)
from src.engine.dice_system import DiceEngine
from src.engine.factory_system import FactoryEngine
from src.engine.game_log import log_action, log_system

logger = logging.getLogger(__name__)


class TurnEngine:
    """
    Stateless engine for turn sequencing and undo.

    All methods are class methods operating on immutable data.
    State is passed in and returned, never stored.
    """

    @classmethod
    def record_action(
        cls,
        player: Player,
        record: ActionRecord,
        snapshot: ActionSnapshot | None,
        max_history: int,
    ) -> Player:
        """
        Add an action to the player's turn record.

        Args:
            player: Player after the action
            record: The action taken
            snapshot: Player state from before the action (None if not undoable)
            max_history: Snapshots kept
        """
        history = player.action_history
        if record.sealed:
            history = ()
        elif snapshot is not None:
            history = (history + (snapshot,))[-max_history:]
        return replace(
            player,
            current_turn_actions=player.current_turn_actions + (record,),
            action_history=history,
        )

    @classmethod
    def set_player_ready(
        cls,
        state: GameState,
        player_id: str,
        take_dividend: bool = False,
    ) -> Outcome:
        """End a player's turn, converting unused dice first."""
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")

        converted = DiceEngine.convert_unused_to_pips(state, player_id, as_points=take_dividend)
        if not converted.success:
            return converted
        state = converted.state

        player = replace(state.get_player(player_id), is_ready=True)
        state = log_action(state.with_player(player), player.name, "Ended turn")
        return Outcome.ok(
            state,
            converted.message,
            all_ready=cls.are_all_players_ready(state),
            **converted.details,
        )

    @classmethod
    def are_all_players_ready(cls, state: GameState) -> bool:
        return all(p.is_ready for p in state.active_players)

    @classmethod
    def players_not_ready(cls, state: GameState) -> tuple[Player, ...]:
        return tuple(p for p in state.active_players if not p.is_ready)

    @classmethod
    def advance_to_next_turn(cls, state: GameState, rng: random.Random) -> Outcome:
        """Start the next turn for every player still inside."""
        state = replace(state, round=state.round + 1, turn_counter=state.turn_counter + 1)
        state = log_system(state, f"=== Round {state.round} begins ===")
        state = FactoryEngine.deal_modifications(state)

        for player in state.active_players:
            state = state.with_player(cls._reset_for_turn(player))
            state = DiceEngine.enforce_floor(state, player.id).state
            state = DiceEngine.roll_pool(state, player.id, rng).state

        state = FactoryEngine.process_triggers(state, Trigger.TURN_START, rng).state
        state = cls.save_turn_state(state)
        return Outcome.ok(state, "", round=state.round, turn_counter=state.turn_counter)

    @classmethod
    def _reset_for_turn(cls, player: Player) -> Player:
        return replace(
            player,
            is_ready=False,
            exhausted_dice=frozenset(),
            current_turn_actions=(),
            action_history=(),
            turn_flags=frozenset(),
        )

    @classmethod
    def save_turn_state(cls, state: GameState) -> GameState:
        """Record the turn-start snapshot of every player still inside."""
        return state.with_players(
            [replace(p, turn_start_state=p.turn_snapshot()) for p in state.active_players]
        )

    @classmethod
    def release_bonuses(cls, state: GameState, records: Iterable[ActionRecord]) -> GameState:
        """Reopen first-trick bonuses claimed by undone actions."""
        for record in records:
            if record.bonus == TrickType.STRAIGHT:
                state = replace(state, first_straight_claimed=False)
            elif record.bonus == TrickType.SET:
                state = replace(state, first_set_claimed=False)
        return state

    @classmethod
    def undo_player_turn(cls, state: GameState, player_id: str) -> Outcome:
        """Restore the player's turn-start state, factory holdings included."""
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        if player.has_fled:
            return Outcome.fail(state, "Cannot undo after fleeing")
        if player.is_ready:
            return Outcome.fail(state, "Cannot undo after ending your turn")
        snapshot = player.turn_start_state
        if snapshot is None:
            return Outcome.fail(state, "No turn state to restore")

        state = cls.release_bonuses(state, player.current_turn_actions)
        player = replace(
            player,
            dice_pool=snapshot.dice_pool,
            free_pips=snapshot.free_pips,
            score=snapshot.score,
            dice_floor=snapshot.dice_floor,
            effects=snapshot.effects,
            armed_effects=snapshot.armed_effects,
            modifications=snapshot.modifications,
            factory_hand=snapshot.factory_hand,
            turn_flags=snapshot.turn_flags,
            exhausted_dice=frozenset(),
            current_turn_actions=(),
            action_history=(),
        )
        state = replace(
            state,
            reservations=tuple(r for r in state.reservations if r.player_id != player_id),
        )
        message = "Undid the whole turn"
        state = log_action(state.with_player(player), player.name, message)
        return Outcome.ok(state, message)

    @classmethod
    def undo_last_action(cls, state: GameState, player_id: str) -> Outcome:
        """Step back one action, or to the turn start once history runs out."""
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        if player.has_fled:
            return Outcome.fail(state, "Cannot undo after fleeing")
        if player.is_ready:
            return Outcome.fail(state, "Cannot undo after ending your turn")

        actions = player.current_turn_actions
        if player.action_history:
            snapshot = player.action_history[-1]
            undone = actions[-1:]
            player = replace(
                player,
                dice_pool=snapshot.dice_pool,
                free_pips=snapshot.free_pips,
                score=snapshot.score,
                exhausted_dice=snapshot.exhausted_dice,
                dice_floor=snapshot.dice_floor,
                turn_flags=snapshot.turn_flags,
                action_history=player.action_history[:-1],
                current_turn_actions=actions[:-1],
            )
            message = f"Undid {undone[0].action}" if undone else "Undid last action"
        elif any(r.sealed for r in actions):
            return Outcome.fail(
                state, "Factory purchases cannot be undone one step at a time; undo the whole turn"
            )
        elif actions and player.turn_start_state is not None:
            snapshot = player.turn_start_state
            undone = actions
            player = replace(
                player,
                dice_pool=snapshot.dice_pool,
                free_pips=snapshot.free_pips,
                score=snapshot.score,
                dice_floor=snapshot.dice_floor,
                turn_flags=snapshot.turn_flags,
                exhausted_dice=frozenset(),
                current_turn_actions=(),
            )
            message = "Undid back to the start of the turn"
        else:
            return Outcome.fail(state, "No actions to undo")

        state = cls.release_bonuses(state, undone)
        state = log_action(state.with_player(player), player.name, message)
        return Outcome.ok(state, message, remaining=len(player.action_history))

    @classmethod
    def check_turn_end_conditions(cls, state: GameState) -> tuple[bool, str]:
        """
        Decide whether the game ends after this turn.

        Returns:
            Tuple of (game over, reason)
        """
        active = state.active_players
        if not active:
            return True, "Every player has fled the factory"
        if len(active) == 1:
            return True, f"{active[0].name} is the last player in the factory"
        if state.config.variant == Variant.EXPERIMENTAL and state.round >= state.config.max_rounds:
            return True, f"Final round {state.config.max_rounds} complete"
        return False, ""
