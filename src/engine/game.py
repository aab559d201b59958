"""
Dice Factory - Game Orchestrator

The single entry point for transports and bots. Holds the current GameState,
gates every action on whether the player may act, delegates to the stateless
subsystems and commits their result in one assignment. Also runs the end of
turn once everyone is ready.

End of turn:
    1. Reservations settle: single claims are bought, contested ones go to
       blind auction and the game waits for every sealed bid.
    2. Collapse clock (standard variant).
    3. Turn-end cards fire.
    4. End conditions; otherwise the next turn starts.
"""

import logging
import random
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Mapping, Sequence

from src.engine.base import (
    ActionRecord,
    ActionResult,
    GameConfig,
    GamePhase,
    GameState,
    Outcome,
    Player,
    Trigger,
    Variant,
)
from src.engine.collapse_system import CollapseEngine, CollapseRisk
from src.engine.constants import INITIAL_DIE_SIDES
from src.engine.dice import create_dice, roll_dice
from src.engine.dice_system import DiceEngine
from src.engine.factory_system import FactoryEngine
from src.engine.game_log import log_system
from src.engine.scoring_system import ScoringEngine
from src.engine.turn_system import TurnEngine
from src.engine.validators import validate_player_action, validate_roster

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlayerView:
    """
    What one player is allowed to see.

    Other players' sealed bids are removed from ``state``; ``bids_placed``
    still says who has bid.

    Attributes:
        state: Game state with other players' bids hidden
        current_player: The viewing player, if they are in the game
        exhausted_dice: Dice the viewer has spent this turn
        collapse_risk: Collapse clock odds
        bids_placed: Player ids who have bid, per open auction
        is_my_turn: Whether the viewer is expected to act
    """
    state: GameState
    current_player: Player | None
    exhausted_dice: frozenset[str]
    collapse_risk: CollapseRisk
    bids_placed: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    is_my_turn: bool = False


class DiceFactoryGame:
    """
    Orchestrator for one Dice Factory game.

    Every action returns an ActionResult. A rejected action leaves the state
    exactly as it was.

    Example:
        >>> game = DiceFactoryGame([{"id": "a", "name": "Ada"}, {"id": "b", "name": "Bo"}])
        >>> result = game.recruit_dice("a", ["die-..."])
    """

    def __init__(
        self,
        players: Sequence[Mapping[str, Any]],
        config: GameConfig | None = None,
        rng: random.Random | None = None,
    ):
        """
        Start a game.

        Args:
            players: Roster from the lobby: ``id``, ``name`` and ``is_bot``
            config: Session configuration (defaults for the roster size)
            rng: Random source (a fresh ``random.Random`` by default)

        Raises:
            ValueError: If the roster or configuration is invalid
        """
        roster = validate_roster(players)
        if config is None:
            config = GameConfig(num_players=len(roster))
        elif config.num_players != len(roster):
            raise ValueError(
                f"Roster has {len(roster)} players but the configuration expects {config.num_players}."
            )
        self._rng = rng or random.Random()
        self._roster = tuple(
            {"id": e["id"], "name": e["name"], "is_bot": bool(e.get("is_bot", False))}
            for e in roster
        )
        self._state = self._create_state(config)

    @classmethod
    def from_state(cls, state: GameState, rng: random.Random | None = None) -> "DiceFactoryGame":
        """Resume a game from a previously saved state."""
        game = cls.__new__(cls)
        game._rng = rng or random.Random()
        game._roster = tuple(
            {"id": p.id, "name": p.name, "is_bot": p.is_bot} for p in state.players
        )
        game._state = state
        return game

    def _create_state(self, config: GameConfig) -> GameState:
        players = tuple(
            Player(
                id=entry["id"],
                name=entry["name"],
                is_bot=entry["is_bot"],
                dice_pool=roll_dice(
                    create_dice([INITIAL_DIE_SIDES] * config.initial_dice_count), self._rng
                ),
                free_pips=config.initial_free_pips,
            )
            for entry in self._roster
        )
        state = GameState(config=config, players=players, collapse_dice=config.collapse_dice)
        names = ", ".join(p.name for p in players)
        state = log_system(state, f"Dice Factory opens ({config.variant.value}) with {names}")
        state = FactoryEngine.initialize_market(state, self._rng)
        state = TurnEngine.save_turn_state(state)
        logger.info("Started %s game with %d players", config.variant.value, len(players))
        return state

    @property
    def state(self) -> GameState:
        return self._state

    # -------------------------------------------------------------------------
    # Action plumbing
    # -------------------------------------------------------------------------

    def can_player_act(self, player_id: str) -> tuple[bool, str]:
        """
        Check whether a player may take a turn action.

        Returns:
            Tuple of (allowed, reason)
        """
        check = validate_player_action(self._state, player_id)
        return check.is_valid, check.reason

    def _perform(
        self,
        player_id: str,
        action: str,
        operation: Callable[[GameState], Outcome],
        *,
        undoable: bool = True,
        sealed: bool = False,
        details: Mapping[str, Any] | None = None,
        recorded: tuple[str, ...] = (),
    ) -> ActionResult:
        allowed, reason = self.can_player_act(player_id)
        if not allowed:
            logger.debug("Rejected %s for %s: %s", action, player_id, reason)
            return ActionResult.rejected(reason)

        before = self._state.get_player(player_id)
        outcome = operation(self._state)
        if not outcome.success:
            logger.debug("Rejected %s for %s: %s", action, player_id, outcome.message)
            return ActionResult.rejected(outcome.message)

        state = outcome.state
        record_details = dict(details or {})
        record_details.update((key, outcome.details[key]) for key in recorded)
        record = ActionRecord(
            action=action,
            details=record_details,
            bonus=outcome.details.get("bonus_claimed"),
            sealed=sealed,
        )
        player = TurnEngine.record_action(
            state.get_player(player_id),
            record,
            before.action_snapshot() if undoable else None,
            state.config.max_action_history,
        )
        self._state = state.with_player(player)
        return ActionResult.from_outcome(outcome)

    # -------------------------------------------------------------------------
    # Dice actions
    # -------------------------------------------------------------------------

    def recruit_dice(self, player_id: str, die_ids: list[str]) -> ActionResult:
        return self._perform(
            player_id, "recruit",
            lambda s: DiceEngine.recruit(s, player_id, die_ids),
            details={"die_ids": tuple(die_ids)},
        )

    def promote_dice(self, player_id: str, die_ids: list[str]) -> ActionResult:
        return self._perform(
            player_id, "promote",
            lambda s: DiceEngine.promote(s, player_id, die_ids),
            details={"die_ids": tuple(die_ids)},
        )

    def process_dice(self, player_id: str, die_ids: list[str], for_points: bool = False) -> ActionResult:
        return self._perform(
            player_id, "process",
            lambda s: DiceEngine.process(s, player_id, die_ids, for_points),
            details={"die_ids": tuple(die_ids), "for_points": for_points},
        )

    def modify_die_value(self, player_id: str, die_id: str, change: int) -> ActionResult:
        return self._perform(
            player_id, "modify",
            lambda s: DiceEngine.modify_value(s, player_id, die_id, change),
            details={"die_id": die_id, "change": change},
        )

    def reroll_die(self, player_id: str, die_id: str) -> ActionResult:
        """Reroll a die; the face rolled is kept in the action record."""
        return self._perform(
            player_id, "reroll",
            lambda s: DiceEngine.reroll(s, player_id, die_id, self._rng),
            details={"die_id": die_id},
            recorded=("new_value",),
        )

    def expand_dice_pool(self, player_id: str) -> ActionResult:
        return self._perform(
            player_id, "expand_dice_pool",
            lambda s: DiceEngine.expand_dice_pool(s, player_id),
        )

    def tower_reroll(self, player_id: str) -> ActionResult:
        return self._perform(
            player_id, "tower_reroll",
            lambda s: DiceEngine.tower_reroll(s, player_id, self._rng),
        )

    # -------------------------------------------------------------------------
    # Scoring
    # -------------------------------------------------------------------------

    def score_straight(self, player_id: str, die_ids: list[str]) -> ActionResult:
        return self._perform(
            player_id, "score_straight",
            lambda s: ScoringEngine.score_straight(s, player_id, die_ids),
            details={"die_ids": tuple(die_ids)},
        )

    def score_set(self, player_id: str, die_ids: list[str]) -> ActionResult:
        return self._perform(
            player_id, "score_set",
            lambda s: ScoringEngine.score_set(s, player_id, die_ids),
            details={"die_ids": tuple(die_ids)},
        )

    def calculate_score_preview(self, player_id: str, die_ids: list[str]) -> ActionResult:
        """Preview what the selected dice could score. Never changes the state."""
        return ActionResult.from_outcome(
            ScoringEngine.calculate_score_preview(self._state, player_id, die_ids)
        )

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    def buy_factory_effect(self, player_id: str, effect_id: str) -> ActionResult:
        return self._perform(
            player_id, "buy_effect",
            lambda s: FactoryEngine.purchase_effect(s, player_id, effect_id),
            undoable=False, sealed=True,
            details={"effect_id": effect_id},
        )

    def buy_factory_modification(
        self,
        player_id: str,
        modification_id: str,
        bid: int | None = None,
    ) -> ActionResult:
        """
        Reserve a modification, settled at the end of the turn.

        Args:
            player_id: Reserving player
            modification_id: Card on offer
            bid: Sealed bid used if the card is contested (required up front for bots)
        """
        return self._perform(
            player_id, "reserve_modification",
            lambda s: FactoryEngine.reserve_modification(s, player_id, modification_id, bid),
            undoable=False, sealed=True,
            details={"modification_id": modification_id},
        )

    def play_factory_effect(self, player_id: str, effect_id: str) -> ActionResult:
        return self._perform(
            player_id, "play_effect",
            lambda s: FactoryEngine.play_effect(s, player_id, effect_id, self._rng),
            undoable=False, sealed=True,
            details={"effect_id": effect_id},
        )

    def sell_modification(self, player_id: str, modification_id: str) -> ActionResult:
        return self._perform(
            player_id, "sell_modification",
            lambda s: FactoryEngine.sell_modification(s, player_id, modification_id),
            undoable=False, sealed=True,
            details={"modification_id": modification_id},
        )

    def submit_auction_bid(self, player_id: str, modification_id: str, amount: int) -> ActionResult:
        """Place a sealed bid; the end of turn continues once every bid is in."""
        if self._state.phase != GamePhase.PLAYING:
            return ActionResult.rejected("Game is not in playing phase")
        outcome = FactoryEngine.submit_bid(self._state, player_id, modification_id, amount)
        if not outcome.success:
            return ActionResult.rejected(outcome.message)
        self._state = outcome.state
        if outcome.details.get("all_bids_in"):
            self._finish_auctions(force=False)
        return ActionResult.from_outcome(outcome)

    def force_resolve_auctions(self) -> ActionResult:
        """
        Settle open auctions without waiting for missing bids.

        Meant for the transport's bid timeout. Missing bids are left out.
        """
        if not self._state.current_auctions:
            return ActionResult.rejected("No auctions are open")
        winners = self._finish_auctions(force=True)
        return ActionResult(success=True, message="Auctions resolved", details={"winners": winners})

    def _finish_auctions(self, force: bool) -> dict[str, str | None]:
        resolved = FactoryEngine.resolve_auctions(self._state, force=force)
        if not resolved.success:
            return {}
        self._state = resolved.state
        self._complete_end_of_turn()
        return dict(resolved.details.get("winners", {}))

    # -------------------------------------------------------------------------
    # Turn flow
    # -------------------------------------------------------------------------

    def set_player_ready(self, player_id: str, take_dividend: bool = False) -> ActionResult:
        """
        End a player's turn. Unused dice become pips (or points with Dividend).

        When this makes everyone ready the end of turn runs immediately.
        """
        allowed, reason = self.can_player_act(player_id)
        if not allowed:
            return ActionResult.rejected(reason)
        outcome = TurnEngine.set_player_ready(self._state, player_id, take_dividend)
        if not outcome.success:
            return ActionResult.rejected(outcome.message)
        self._state = outcome.state
        self._process_end_of_turn()
        return ActionResult.from_outcome(outcome)

    def flee_factory(self, player_id: str) -> ActionResult:
        """Leave the collapsing factory with the current score."""
        outcome = CollapseEngine.flee(self._state, player_id)
        if not outcome.success:
            return ActionResult.rejected(outcome.message)
        self._state = outcome.state
        self._process_end_of_turn()
        return ActionResult.from_outcome(outcome)

    def _process_end_of_turn(self) -> None:
        state = self._state
        if state.is_complete or not TurnEngine.are_all_players_ready(state):
            return
        if state.current_auctions:
            return

        self._state = FactoryEngine.settle_reservations(state).state
        if self._state.current_auctions:
            if not all(a.is_complete for a in self._state.current_auctions):
                logger.debug("End of turn waiting on sealed bids")
                return
            self._state = FactoryEngine.resolve_auctions(self._state).state
        self._complete_end_of_turn()

    def _complete_end_of_turn(self) -> None:
        state = self._state
        if state.config.variant == Variant.STANDARD:
            was_collapsing = state.collapse_started
            state = CollapseEngine.check_for_collapse_start(state, self._rng).state
            if was_collapsing:
                phase = CollapseEngine.process_collapse_phase(state, self._rng)
                state = phase.state
                if phase.details.get("crushed"):
                    self._state = state
                    self._end_game("The factory collapsed", collapsed=True)
                    return

        state = FactoryEngine.process_triggers(state, Trigger.TURN_END, self._rng).state
        self._state = state

        over, reason = TurnEngine.check_turn_end_conditions(state)
        if over:
            self._end_game(reason)
            return
        self._state = TurnEngine.advance_to_next_turn(state, self._rng).state

    def _end_game(self, reason: str, collapsed: bool = False) -> None:
        """
        Finish the game and pick the winner.

        Highest score wins; ties go to the earliest player in join order.
        After a collapse only players who fled are considered, if any did.
        """
        state = self._state
        candidates = state.players
        if collapsed:
            fled = tuple(p for p in state.players if p.has_fled)
            if fled:
                candidates = fled
        winner = max(candidates, key=lambda p: p.score)

        state = replace(state, phase=GamePhase.COMPLETE, winner=winner.id)
        self._state = log_system(
            state, f"Game over: {reason}. {winner.name} wins with {winner.score} points"
        )
        logger.info("Game over (%s); winner %s with %d", reason, winner.id, winner.score)

    def end_game(self) -> ActionResult:
        """End the game now (e.g. when the lobby closes) and declare a winner."""
        if self._state.is_complete:
            return ActionResult.rejected("Game is already complete")
        self._end_game("Game ended early")
        return ActionResult(success=True, details={"winner": self._state.winner})

    def start_new_game(self) -> ActionResult:
        """Deal a fresh game for the same roster once the current one is complete."""
        if not self._state.is_complete:
            return ActionResult.rejected("Game is still in progress")
        self._state = self._create_state(self._state.config)
        return ActionResult(success=True, message="New game started")

    # -------------------------------------------------------------------------
    # Undo
    # -------------------------------------------------------------------------

    def _undo_gate(self, player_id: str) -> str:
        if self._state.get_player(player_id) is None:
            return "Player not found"
        if self._state.phase != GamePhase.PLAYING:
            return "Game is not in playing phase"
        if self._state.awaiting_bids:
            return "Waiting for auction bids"
        return ""

    def undo_turn(self, player_id: str) -> ActionResult:
        """Restore the player's whole turn, factory purchases included."""
        if reason := self._undo_gate(player_id):
            return ActionResult.rejected(reason)
        outcome = TurnEngine.undo_player_turn(self._state, player_id)
        if outcome.success:
            self._state = outcome.state
        return ActionResult.from_outcome(outcome)

    def undo_last_action(self, player_id: str) -> ActionResult:
        """Undo the most recent action of this turn."""
        if reason := self._undo_gate(player_id):
            return ActionResult.rejected(reason)
        outcome = TurnEngine.undo_last_action(self._state, player_id)
        if outcome.success:
            self._state = outcome.state
        return ActionResult.from_outcome(outcome)

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def get_game_state(self) -> GameState:
        """The full state, for persistence. Immutable, so safe to hand out."""
        return self._state

    def get_player_view(self, player_id: str) -> PlayerView:
        """The state as one player may see it."""
        state = self._state
        player = state.get_player(player_id)
        hidden = replace(
            state,
            reservations=tuple(
                r if r.player_id == player_id else replace(r, bid=None)
                for r in state.reservations
            ),
            current_auctions=tuple(
                replace(a, bids=tuple(b for b in a.bids if b.player_id == player_id))
                for a in state.current_auctions
            ),
        )
        return PlayerView(
            state=hidden,
            current_player=player,
            exhausted_dice=player.exhausted_dice if player else frozenset(),
            collapse_risk=CollapseEngine.assess_collapse_risk(state),
            bids_placed={
                a.modification_id: tuple(b.player_id for b in a.bids)
                for a in state.current_auctions
            },
            is_my_turn=self.is_player_turn(player_id),
        )

    def is_player_turn(self, player_id: str) -> bool:
        """Whether the game is waiting on this player."""
        state = self._state
        player = state.get_player(player_id)
        if player is None or state.phase != GamePhase.PLAYING or player.has_fled:
            return False
        if state.current_auctions:
            return any(player_id in a.missing_bidders for a in state.current_auctions)
        return not player.is_ready

    def get_pending_bot_players(self) -> tuple[str, ...]:
        """Ids of bots the game is waiting on."""
        return tuple(
            p.id for p in self._state.players
            if p.is_bot and self.is_player_turn(p.id)
        )
