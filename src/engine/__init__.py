"""
Dice Factory Game Engine.

Pure Python game logic with zero transport/persistence dependencies.
Handles dice pools, trick scoring, the factory market with blind auctions,
the collapse clock, turn sequencing and undo.
"""

from src.engine.base import (
    ActionResult,
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
    Trigger,
    Variant,
)
from src.engine.collapse_system import CollapseEngine, CollapseRisk
from src.engine.dice_system import DiceEngine
from src.engine.factory_system import FactoryEngine
from src.engine.game import DiceFactoryGame, PlayerView
from src.engine.scoring_system import ScorePreview, ScoringEngine, TrickOption
from src.engine.turn_system import TurnEngine

__all__ = [
    # Data Classes
    "ActionResult",
    "Auction",
    "Bid",
    "Die",
    "GameConfig",
    "GameState",
    "LogEntry",
    "Player",
    "PlayerView",
    "Reservation",
    "ScorePreview",
    "TrickOption",
    "CollapseRisk",
    # Enums
    "GamePhase",
    "LogType",
    "TrickType",
    "Trigger",
    "Variant",
    # Engines
    "CollapseEngine",
    "DiceEngine",
    "FactoryEngine",
    "ScoringEngine",
    "TurnEngine",
    "DiceFactoryGame",
]
