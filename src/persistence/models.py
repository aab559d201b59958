"""
Dice Factory - Persistence Records

Pydantic models that mirror the engine's GameState. Records are built
straight from the frozen dataclasses (``from_attributes``) and convert back
with ``to_state``-style methods, so a saved game resumes exactly where it
stopped.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from src.engine.base import (
    ActionRecord,
    ActionSnapshot,
    Auction,
    Bid,
    Die,
    GameConfig,
    GamePhase,
    GameState,
    LogEntry,
    LogType,
    Player,
    Reservation,
    TrickType,
    TurnSnapshot,
    Variant,
)


class DieRecord(BaseModel):
    """Mirrors ``Die``."""

    id: str
    sides: int
    value: int | None = None
    shiny: bool = False
    rainbow: bool = False

    model_config = {"from_attributes": True}

    def to_die(self) -> Die:
        return Die(
            id=self.id,
            sides=self.sides,
            value=self.value,
            shiny=self.shiny,
            rainbow=self.rainbow,
        )


def _dice(records: list[DieRecord]) -> tuple[Die, ...]:
    return tuple(r.to_die() for r in records)


def _sorted_ids(value: Any) -> Any:
    """Sets are stored sorted so the same state always dumps the same way."""
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return value


class ActionSnapshotRecord(BaseModel):
    """Mirrors ``ActionSnapshot``."""

    dice_pool: list[DieRecord]
    free_pips: int
    score: int
    exhausted_dice: list[str] = Field(default_factory=list)
    dice_floor: int
    turn_flags: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    sort_ids = field_validator("exhausted_dice", "turn_flags", mode="before")(_sorted_ids)

    def to_snapshot(self) -> ActionSnapshot:
        return ActionSnapshot(
            dice_pool=_dice(self.dice_pool),
            free_pips=self.free_pips,
            score=self.score,
            exhausted_dice=frozenset(self.exhausted_dice),
            dice_floor=self.dice_floor,
            turn_flags=frozenset(self.turn_flags),
        )


class TurnSnapshotRecord(BaseModel):
    """Mirrors ``TurnSnapshot``."""

    dice_pool: list[DieRecord]
    free_pips: int
    score: int
    dice_floor: int
    effects: list[str] = Field(default_factory=list)
    armed_effects: list[str] = Field(default_factory=list)
    modifications: list[str] = Field(default_factory=list)
    factory_hand: list[str] = Field(default_factory=list)
    turn_flags: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    sort_ids = field_validator("turn_flags", mode="before")(_sorted_ids)

    def to_snapshot(self) -> TurnSnapshot:
        return TurnSnapshot(
            dice_pool=_dice(self.dice_pool),
            free_pips=self.free_pips,
            score=self.score,
            dice_floor=self.dice_floor,
            effects=tuple(self.effects),
            armed_effects=tuple(self.armed_effects),
            modifications=tuple(self.modifications),
            factory_hand=tuple(self.factory_hand),
            turn_flags=frozenset(self.turn_flags),
        )


class ActionEntryRecord(BaseModel):
    """Mirrors ``ActionRecord``."""

    action: str
    details: dict[str, Any] = Field(default_factory=dict)
    bonus: TrickType | None = None
    sealed: bool = False

    model_config = {"from_attributes": True}

    def to_record(self) -> ActionRecord:
        return ActionRecord(
            action=self.action,
            details=dict(self.details),
            bonus=self.bonus,
            sealed=self.sealed,
        )


class PlayerRecord(BaseModel):
    """Mirrors ``Player``."""

    id: str
    name: str = Field(min_length=1)
    is_bot: bool = False
    dice_pool: list[DieRecord] = Field(default_factory=list)
    dice_floor: int
    free_pips: int
    score: int = 0
    has_fled: bool = False
    is_ready: bool = False
    exhausted_dice: list[str] = Field(default_factory=list)
    current_turn_actions: list[ActionEntryRecord] = Field(default_factory=list)
    turn_start_state: TurnSnapshotRecord | None = None
    action_history: list[ActionSnapshotRecord] = Field(default_factory=list)
    effects: list[str] = Field(default_factory=list)
    armed_effects: list[str] = Field(default_factory=list)
    modifications: list[str] = Field(default_factory=list)
    factory_hand: list[str] = Field(default_factory=list)
    turn_flags: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    sort_ids = field_validator("exhausted_dice", "turn_flags", mode="before")(_sorted_ids)

    def to_player(self) -> Player:
        return Player(
            id=self.id,
            name=self.name,
            is_bot=self.is_bot,
            dice_pool=_dice(self.dice_pool),
            dice_floor=self.dice_floor,
            free_pips=self.free_pips,
            score=self.score,
            has_fled=self.has_fled,
            is_ready=self.is_ready,
            exhausted_dice=frozenset(self.exhausted_dice),
            current_turn_actions=tuple(r.to_record() for r in self.current_turn_actions),
            turn_start_state=(
                self.turn_start_state.to_snapshot() if self.turn_start_state else None
            ),
            action_history=tuple(s.to_snapshot() for s in self.action_history),
            effects=tuple(self.effects),
            armed_effects=tuple(self.armed_effects),
            modifications=tuple(self.modifications),
            factory_hand=tuple(self.factory_hand),
            turn_flags=frozenset(self.turn_flags),
        )


class ReservationRecord(BaseModel):
    """Mirrors ``Reservation``."""

    modification_id: str
    player_id: str
    bid: int | None = None

    model_config = {"from_attributes": True}


class BidRecord(BaseModel):
    """Mirrors ``Bid``."""

    player_id: str
    amount: int = Field(ge=0)

    model_config = {"from_attributes": True}


class AuctionRecord(BaseModel):
    """Mirrors ``Auction``."""

    modification_id: str
    bidders: list[str]
    bids: list[BidRecord] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    def to_auction(self) -> Auction:
        return Auction(
            modification_id=self.modification_id,
            bidders=tuple(self.bidders),
            bids=tuple(Bid(player_id=b.player_id, amount=b.amount) for b in self.bids),
        )


class LogEntryRecord(BaseModel):
    """Mirrors ``LogEntry``."""

    timestamp: str
    player: str
    message: str
    log_type: LogType = LogType.INFO
    round: int = 1

    model_config = {"from_attributes": True}


class GameConfigRecord(BaseModel):
    """Mirrors ``GameConfig``."""

    num_players: int
    variant: Variant = Variant.STANDARD
    max_rounds: int
    initial_free_pips: int
    initial_dice_count: int
    effect_market_size: int
    modification_market_size: int
    max_action_history: int
    first_trick_bonus: int
    collapse_dice: list[int]

    model_config = {"from_attributes": True}

    def to_config(self) -> GameConfig:
        return GameConfig(
            num_players=self.num_players,
            variant=self.variant,
            max_rounds=self.max_rounds,
            initial_free_pips=self.initial_free_pips,
            initial_dice_count=self.initial_dice_count,
            effect_market_size=self.effect_market_size,
            modification_market_size=self.modification_market_size,
            max_action_history=self.max_action_history,
            first_trick_bonus=self.first_trick_bonus,
            collapse_dice=tuple(self.collapse_dice),
        )


class GameRecord(BaseModel):
    """Mirrors ``GameState``: one saved game."""

    config: GameConfigRecord
    players: list[PlayerRecord]
    phase: GamePhase = GamePhase.PLAYING
    round: int = 1
    turn_counter: int = 1
    collapse_started: bool = False
    collapse_dice: list[int]
    last_collapse_roll: int | None = None
    winner: str | None = None
    game_log: list[LogEntryRecord] = Field(default_factory=list)
    available_effects: list[str] = Field(default_factory=list)
    available_modifications: list[str] = Field(default_factory=list)
    modification_deck: list[str] = Field(default_factory=list)
    reservations: list[ReservationRecord] = Field(default_factory=list)
    current_auctions: list[AuctionRecord] = Field(default_factory=list)
    first_straight_claimed: bool = False
    first_set_claimed: bool = False

    model_config = {"from_attributes": True}

    @classmethod
    def from_state(cls, state: GameState) -> "GameRecord":
        return cls.model_validate(state, from_attributes=True)

    def to_state(self) -> GameState:
        return GameState(
            config=self.config.to_config(),
            players=tuple(p.to_player() for p in self.players),
            phase=self.phase,
            round=self.round,
            turn_counter=self.turn_counter,
            collapse_started=self.collapse_started,
            collapse_dice=tuple(self.collapse_dice),
            last_collapse_roll=self.last_collapse_roll,
            winner=self.winner,
            game_log=tuple(
                LogEntry(
                    timestamp=e.timestamp,
                    player=e.player,
                    message=e.message,
                    log_type=e.log_type,
                    round=e.round,
                )
                for e in self.game_log
            ),
            available_effects=tuple(self.available_effects),
            available_modifications=tuple(self.available_modifications),
            modification_deck=tuple(self.modification_deck),
            reservations=tuple(
                Reservation(
                    modification_id=r.modification_id,
                    player_id=r.player_id,
                    bid=r.bid,
                )
                for r in self.reservations
            ),
            current_auctions=tuple(a.to_auction() for a in self.current_auctions),
            first_straight_claimed=self.first_straight_claimed,
            first_set_claimed=self.first_set_claimed,
        )


def serialize_game_state(state: GameState) -> dict[str, Any]:
    """Dump a GameState to a JSON-compatible dict."""
    return GameRecord.from_state(state).model_dump(mode="json")


def deserialize_game_state(data: dict[str, Any]) -> GameState:
    """
    Rebuild a GameState from a dict produced by ``serialize_game_state``.

    Raises:
        pydantic.ValidationError: If the record is malformed
        ValueError: If the record describes an impossible die or config
    """
    return GameRecord.model_validate(data).to_state()
