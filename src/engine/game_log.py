"""
Dice Factory - Game Log

Player-visible history of a game. Every subsystem writes through these
helpers so entries share one shape.
"""

from dataclasses import replace
from datetime import datetime

from src.engine.base import GameState, LogEntry, LogType


SYSTEM_PLAYER = "SYSTEM"


def make_entry(
    player: str,
    message: str,
    log_type: LogType = LogType.INFO,
    round_number: int = 1,
) -> LogEntry:
    return LogEntry(
        timestamp=datetime.now().strftime("%H:%M:%S"),
        player=player,
        message=message,
        log_type=log_type,
        round=round_number,
    )


def append_log(
    state: GameState,
    player: str,
    message: str,
    log_type: LogType = LogType.INFO,
) -> GameState:
    """Return a copy of the state with one more log entry."""
    entry = make_entry(player, message, log_type, state.round)
    return replace(state, game_log=state.game_log + (entry,))


def log_action(state: GameState, player: str, message: str) -> GameState:
    return append_log(state, player, message, LogType.ACTION)


def log_score(state: GameState, player: str, message: str) -> GameState:
    return append_log(state, player, message, LogType.SCORE)


def log_system(state: GameState, message: str) -> GameState:
    return append_log(state, SYSTEM_PLAYER, message, LogType.SYSTEM)

