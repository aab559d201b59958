"""
Dice Factory - Game Engine Base Classes

This module defines the foundational data structures and enums used throughout
the game engine. All classes are immutable (frozen dataclasses): subsystems
receive a GameState and hand back a new one, so a rejected action can never
leave a half-applied change behind and undo snapshots can share structure
with the live state instead of copying it.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Sequence

from src.engine.constants import (
    COLLAPSE_DICE,
    DEFAULT_MAX_ROUNDS,
    DICE_PROGRESSION,
    EFFECT_MARKET_SIZE,
    FIRST_TRICK_BONUS,
    INITIAL_DICE_COUNT,
    INITIAL_DICE_FLOOR,
    INITIAL_FREE_PIPS,
    MAX_ACTION_HISTORY,
    MAX_PLAYERS,
    MIN_PLAYERS,
    MODIFICATION_MARKET_SIZE,
)


class GamePhase(Enum):
    """Lifecycle phase of a game."""
    PLAYING = "playing"
    COMPLETE = "complete"


class Variant(Enum):
    """Rule variants."""
    STANDARD = "standard"          # collapse clock ends the game
    EXPERIMENTAL = "experimental"  # fixed number of rounds, no collapse


class LogType(Enum):
    """Category of a game log entry."""
    INFO = "info"
    ACTION = "action"
    SCORE = "score"
    SYSTEM = "system"
    ERROR = "error"


class Trigger(Enum):
    """Lifecycle events that passive cards can react to."""
    TURN_START = "turn_start"
    TURN_END = "turn_end"


class TrickType(Enum):
    """Scoring combinations."""
    STRAIGHT = "straight"
    SET = "set"


class CardKind(Enum):
    """Market card families."""
    EFFECT = "effect"
    MODIFICATION = "modification"


@dataclass(frozen=True)
class Die:
    """
    A single die owned by one player.

    Attributes:
        id: Unique identifier, never reused
        sides: Number of faces (4, 6, 8, 10 or 12)
        value: Face currently showing, None until the die is first rolled
        shiny: Tricks containing this die score double
        rainbow: Wild in tricks
    """
    id: str
    sides: int
    value: int | None = None
    shiny: bool = False
    rainbow: bool = False

    def __post_init__(self) -> None:
        """Validate size and face value."""
        if self.sides not in DICE_PROGRESSION:
            raise ValueError(
                f"Invalid die size d{self.sides}. Must be one of {DICE_PROGRESSION}."
            )
        if self.value is not None and not (1 <= self.value <= self.sides):
            raise ValueError(
                f"Invalid die value {self.value} for d{self.sides}. "
                f"Must be between 1 and {self.sides}."
            )

    @property
    def is_rolled(self) -> bool:
        """True once the die shows a face."""
        return self.value is not None

    @property
    def is_max(self) -> bool:
        return self.value == self.sides

    def __str__(self) -> str:
        face = "-" if self.value is None else str(self.value)
        return f"d{self.sides}[{face}]"


@dataclass(frozen=True)
class LogEntry:
    """
    One line of the player-visible game history.

    Attributes:
        timestamp: Wall-clock time the entry was written (HH:MM:SS)
        player: Name of the acting player, or "SYSTEM"
        message: Human-readable description
        log_type: Entry category
        round: Round number the entry belongs to
    """
    timestamp: str
    player: str
    message: str
    log_type: LogType
    round: int


@dataclass(frozen=True)
class ActionSnapshot:
    """Per-action undo point: the parts of a player an action may change."""
    dice_pool: tuple[Die, ...]
    free_pips: int
    score: int
    exhausted_dice: frozenset[str]
    dice_floor: int
    turn_flags: frozenset[str]


@dataclass(frozen=True)
class TurnSnapshot:
    """Turn-start undo point, including the factory holdings."""
    dice_pool: tuple[Die, ...]
    free_pips: int
    score: int
    dice_floor: int
    effects: tuple[str, ...]
    armed_effects: tuple[str, ...]
    modifications: tuple[str, ...]
    factory_hand: tuple[str, ...]
    turn_flags: frozenset[str]


@dataclass(frozen=True)
class ActionRecord:
    """
    An action taken during the current turn.

    Attributes:
        action: Action name (e.g. "recruit", "score_straight")
        details: Action-specific data for the log and for bots
        bonus: First-of-game trick bonus claimed by this action, if any
        sealed: Factory purchases cannot be undone one step at a time
    """
    action: str
    details: Mapping[str, Any] = field(default_factory=dict)
    bonus: TrickType | None = None
    sealed: bool = False


@dataclass(frozen=True)
class Player:
    """
    Complete state of one player.

    Attributes:
        id: Stable identifier supplied by the lobby
        name: Display name
        is_bot: Whether a bot drives this seat
        dice_pool: Dice currently owned
        dice_floor: Minimum pool size enforced at every turn start
        free_pips: Spendable currency (negative only with corporate debt)
        score: Victory points
        has_fled: Left the factory during the collapse
        is_ready: Ended the current turn
        exhausted_dice: Ids of dice already spent this turn
        current_turn_actions: Actions taken this turn, oldest first
        turn_start_state: Snapshot for undoing the whole turn
        action_history: Per-action undo snapshots, oldest first
        effects: One-time effects already played
        armed_effects: Played effects waiting for their trigger
        modifications: Permanent upgrades owned
        factory_hand: Effects bought but not yet played
        turn_flags: Once-per-turn abilities already used
    """
    id: str
    name: str
    is_bot: bool = False
    dice_pool: tuple[Die, ...] = field(default_factory=tuple)
    dice_floor: int = INITIAL_DICE_FLOOR
    free_pips: int = INITIAL_FREE_PIPS
    score: int = 0
    has_fled: bool = False
    is_ready: bool = False
    exhausted_dice: frozenset[str] = field(default_factory=frozenset)
    current_turn_actions: tuple[ActionRecord, ...] = field(default_factory=tuple)
    turn_start_state: TurnSnapshot | None = None
    action_history: tuple[ActionSnapshot, ...] = field(default_factory=tuple)
    effects: tuple[str, ...] = field(default_factory=tuple)
    armed_effects: tuple[str, ...] = field(default_factory=tuple)
    modifications: tuple[str, ...] = field(default_factory=tuple)
    factory_hand: tuple[str, ...] = field(default_factory=tuple)
    turn_flags: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_active(self) -> bool:
        """Still inside the factory."""
        return not self.has_fled

    @property
    def available_dice(self) -> tuple[Die, ...]:
        """Rolled dice not yet spent this turn."""
        return tuple(
            d for d in self.dice_pool
            if d.is_rolled and d.id not in self.exhausted_dice
        )

    def has_modification(self, modification_id: str) -> bool:
        return modification_id in self.modifications

    def modification_count(self, modification_id: str) -> int:
        return self.modifications.count(modification_id)

    def has_used(self, flag: str) -> bool:
        """Whether a once-per-turn ability was already used this turn."""
        return flag in self.turn_flags

    def get_die(self, die_id: str) -> Die | None:
        for die in self.dice_pool:
            if die.id == die_id:
                return die
        return None

    def action_snapshot(self) -> ActionSnapshot:
        return ActionSnapshot(
            dice_pool=self.dice_pool,
            free_pips=self.free_pips,
            score=self.score,
            exhausted_dice=self.exhausted_dice,
            dice_floor=self.dice_floor,
            turn_flags=self.turn_flags,
        )

    def turn_snapshot(self) -> TurnSnapshot:
        return TurnSnapshot(
            dice_pool=self.dice_pool,
            free_pips=self.free_pips,
            score=self.score,
            dice_floor=self.dice_floor,
            effects=self.effects,
            armed_effects=self.armed_effects,
            modifications=self.modifications,
            factory_hand=self.factory_hand,
            turn_flags=self.turn_flags,
        )


@dataclass(frozen=True)
class Reservation:
    """A player's claim on an offered modification during the turn."""
    modification_id: str
    player_id: str
    bid: int | None = None


@dataclass(frozen=True)
class Bid:
    """A sealed auction bid. Pips are held in escrow once submitted."""
    player_id: str
    amount: int


@dataclass(frozen=True)
class Auction:
    """
    Blind auction for a modification reserved by two or more players.

    Attributes:
        modification_id: Card being auctioned
        bidders: Player ids entitled to bid, in reservation order
        bids: Sealed bids received so far
    """
    modification_id: str
    bidders: tuple[str, ...]
    bids: tuple[Bid, ...] = field(default_factory=tuple)

    @property
    def missing_bidders(self) -> tuple[str, ...]:
        placed = {b.player_id for b in self.bids}
        return tuple(p for p in self.bidders if p not in placed)

    @property
    def is_complete(self) -> bool:
        return not self.missing_bidders

    def bid_for(self, player_id: str) -> Bid | None:
        for bid in self.bids:
            if bid.player_id == player_id:
                return bid
        return None


@dataclass(frozen=True)
class GameConfig:
    """
    Configuration for a game session.

    Attributes:
        num_players: Number of seats (2-8)
        variant: Standard (collapse) or experimental (fixed rounds)
        max_rounds: Round limit for the experimental variant
        initial_free_pips: Pips each player starts with
        initial_dice_count: d4s each player starts with
        effect_market_size: Effects offered for the whole game
        modification_market_size: Modifications offered each turn
        max_action_history: Per-action undo depth
        first_trick_bonus: Points for the first straight / set of the game
        collapse_dice: Dice rolled for the collapse clock
    """
    num_players: int = MIN_PLAYERS
    variant: Variant = Variant.STANDARD
    max_rounds: int = DEFAULT_MAX_ROUNDS
    initial_free_pips: int = INITIAL_FREE_PIPS
    initial_dice_count: int = INITIAL_DICE_COUNT
    effect_market_size: int = EFFECT_MARKET_SIZE
    modification_market_size: int = MODIFICATION_MARKET_SIZE
    max_action_history: int = MAX_ACTION_HISTORY
    first_trick_bonus: int = FIRST_TRICK_BONUS
    collapse_dice: tuple[int, ...] = COLLAPSE_DICE

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not MIN_PLAYERS <= self.num_players <= MAX_PLAYERS:
            raise ValueError(
                f"Number of players must be between {MIN_PLAYERS} and {MAX_PLAYERS}."
            )
        if self.max_rounds < 1:
            raise ValueError("max_rounds must be at least 1.")
        if self.initial_free_pips < 0:
            raise ValueError("initial_free_pips cannot be negative.")
        if self.initial_dice_count < 1:
            raise ValueError("Players must start with at least one die.")
        if self.max_action_history < 1:
            raise ValueError("max_action_history must be at least 1.")
        if not self.collapse_dice:
            raise ValueError("At least one collapse die is required.")
        for sides in self.collapse_dice:
            if sides not in DICE_PROGRESSION:
                raise ValueError(f"Invalid collapse die d{sides}.")


@dataclass(frozen=True)
class GameState:
    """
    Complete, immutable state of one game.

    Attributes:
        config: Session configuration
        players: Seats in join order
        phase: Playing or complete
        round: Current round, starting at 1
        turn_counter: Collapse clock; grows each turn, shrinks once collapsing
        collapse_started: Whether the factory is collapsing
        collapse_dice: Dice rolled for the clock; fleeing removes one
        last_collapse_roll: Most recent clock roll
        winner: Winning player's id once complete
        game_log: Player-visible history
        available_effects: Effect ids on sale for the whole game
        available_modifications: Modification ids offered this turn
        modification_deck: Undealt modification ids, top first
        reservations: Modification claims made this turn
        current_auctions: Blind auctions waiting for bids
        first_straight_claimed: The first-straight bonus is gone
        first_set_claimed: The first-set bonus is gone
    """
    config: GameConfig
    players: tuple[Player, ...]
    phase: GamePhase = GamePhase.PLAYING
    round: int = 1
    turn_counter: int = 1
    collapse_started: bool = False
    collapse_dice: tuple[int, ...] = COLLAPSE_DICE
    last_collapse_roll: int | None = None
    winner: str | None = None
    game_log: tuple[LogEntry, ...] = field(default_factory=tuple)
    available_effects: tuple[str, ...] = field(default_factory=tuple)
    available_modifications: tuple[str, ...] = field(default_factory=tuple)
    modification_deck: tuple[str, ...] = field(default_factory=tuple)
    reservations: tuple[Reservation, ...] = field(default_factory=tuple)
    current_auctions: tuple[Auction, ...] = field(default_factory=tuple)
    first_straight_claimed: bool = False
    first_set_claimed: bool = False

    @property
    def is_complete(self) -> bool:
        return self.phase == GamePhase.COMPLETE

    @property
    def active_players(self) -> tuple[Player, ...]:
        """Players who have not fled."""
        return tuple(p for p in self.players if p.is_active)

    @property
    def awaiting_bids(self) -> bool:
        """True while at least one auction is open."""
        return bool(self.current_auctions)

    @property
    def auction_bids(self) -> dict[str, dict[str, int]]:
        """Sealed bids keyed by modification id, then player id."""
        return {
            a.modification_id: {b.player_id: b.amount for b in a.bids}
            for a in self.current_auctions
        }

    def get_player(self, player_id: str) -> Player | None:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def with_player(self, player: Player) -> "GameState":
        """Return a copy with the player of the same id replaced."""
        players = tuple(player if p.id == player.id else p for p in self.players)
        return replace(self, players=players)

    def with_players(self, players: Sequence[Player]) -> "GameState":
        by_id = {p.id: p for p in players}
        return replace(
            self, players=tuple(by_id.get(p.id, p) for p in self.players)
        )

    def get_auction(self, modification_id: str) -> Auction | None:
        for auction in self.current_auctions:
            if auction.modification_id == modification_id:
                return auction
        return None

    def reservations_for(self, modification_id: str) -> tuple[Reservation, ...]:
        return tuple(
            r for r in self.reservations if r.modification_id == modification_id
        )


@dataclass(frozen=True)
class Outcome:
    """
    Result of a subsystem operation.

    On failure ``state`` is the untouched input state and ``message`` says
    why. On success ``state`` is the new state to commit.
    """
    success: bool
    state: GameState
    message: str = ""
    details: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, state: GameState, message: str = "", **details: Any) -> "Outcome":
        return cls(success=True, state=state, message=message, details=details)

    @classmethod
    def fail(cls, state: GameState, message: str) -> "Outcome":
        return cls(success=False, state=state, message=message)


@dataclass(frozen=True)
class ActionResult:
    """
    Uniform result returned by every orchestrator action.

    Attributes:
        success: Whether the action was applied
        error: Reason for rejection
        message: Log-style description of what happened
        details: Action-specific extras (points, pips gained, new value...)
    """
    success: bool
    error: str | None = None
    message: str = ""
    details: Mapping[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.details[key]

    def to_dict(self) -> dict[str, Any]:
        """Flatten into the wire shape used by transports."""
        result: dict[str, Any] = {"success": self.success}
        if self.error is not None:
            result["error"] = self.error
        if self.message:
            result["message"] = self.message
        result.update(self.details)
        return result

    @classmethod
    def from_outcome(cls, outcome: Outcome) -> "ActionResult":
        if outcome.success:
            return cls(success=True, message=outcome.message, details=dict(outcome.details))
        return cls(success=False, error=outcome.message)

    @classmethod
    def rejected(cls, error: str) -> "ActionResult":
        return cls(success=False, error=error)
