"""
Dice Factory Persistence Records.

JSON-compatible records for saving a GameState and restoring it verbatim.
The engine never stores anything itself; callers decide where records live.
"""

from src.persistence.models import (
    GameRecord,
    deserialize_game_state,
    serialize_game_state,
)

__all__ = ["GameRecord", "deserialize_game_state", "serialize_game_state"]
