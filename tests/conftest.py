"""
Dice Factory - Test Configuration and Fixtures

Common fixtures and test data for all test modules. Builders are exposed as
factory fixtures so tests can lay out exact pools and pip balances.
"""

import itertools
import random
from typing import Any, Callable

import pytest

from src.engine.base import Die, GameConfig, GameState, Player
from src.engine.game import DiceFactoryGame
from src.engine.turn_system import TurnEngine


class ScriptedRandom(random.Random):
    """
    Random source whose ``randint`` returns scripted values.

    Once the script runs out it falls back to seeded randomness, so shuffles
    and samples stay deterministic too.
    """

    def __init__(self, rolls=(), seed: int = 0):
        super().__init__(seed)
        self._rolls = list(rolls)

    def push(self, *rolls: int) -> None:
        self._rolls.extend(rolls)

    def randint(self, a: int, b: int) -> int:
        if self._rolls:
            value = self._rolls.pop(0)
            assert a <= value <= b, f"scripted roll {value} outside {a}..{b}"
            return value
        return super().randint(a, b)


# =============================================================================
# BUILDERS
# =============================================================================

@pytest.fixture
def scripted_rng() -> Callable[..., ScriptedRandom]:
    """Build a ScriptedRandom from a sequence of rolls."""
    def build(*rolls: int, seed: int = 0) -> ScriptedRandom:
        return ScriptedRandom(rolls, seed=seed)
    return build


@pytest.fixture
def make_die() -> Callable[..., Die]:
    """Build a die with a readable id (``d1``, ``d2``... unless given)."""
    counter = itertools.count(1)

    def build(sides: int = 6, value: int | None = None, die_id: str | None = None, **kwargs: Any) -> Die:
        return Die(id=die_id or f"d{next(counter)}", sides=sides, value=value, **kwargs)
    return build


@pytest.fixture
def make_player() -> Callable[..., Player]:
    """Build a player; keyword arguments override Player fields."""
    def build(player_id: str = "p1", name: str | None = None, **kwargs: Any) -> Player:
        return Player(id=player_id, name=name or player_id.upper(), **kwargs)
    return build


@pytest.fixture
def make_state(make_player) -> Callable[..., GameState]:
    """
    Build a GameState around the given players.

    A filler opponent is added when only one player is given, since games
    need at least two seats.
    """
    def build(*players: Player, **kwargs: Any) -> GameState:
        seats = list(players) or [make_player("p1")]
        if len(seats) == 1:
            seats.append(make_player("p2"))
        config = kwargs.pop("config", None) or GameConfig(num_players=len(seats))
        return GameState(config=config, players=tuple(seats), **kwargs)
    return build


# =============================================================================
# GAMES
# =============================================================================

@pytest.fixture
def roster() -> list[dict[str, Any]]:
    return [
        {"id": "alice", "name": "Alice"},
        {"id": "bob", "name": "Bob"},
    ]


@pytest.fixture
def game(roster) -> DiceFactoryGame:
    """A fresh two-player game with seeded randomness."""
    return DiceFactoryGame(roster, rng=random.Random(1234))


@pytest.fixture
def rigged_game(make_state) -> Callable[..., DiceFactoryGame]:
    """
    Build a game resumed from a hand-made state.

    Arguments are the players; keyword arguments go to GameState, plus
    ``rng`` for the random source.
    """
    def build(*players: Player, rng: random.Random | None = None, **kwargs: Any) -> DiceFactoryGame:
        state = make_state(*players, **kwargs)
        state = TurnEngine.save_turn_state(state)
        return DiceFactoryGame.from_state(state, rng=rng or ScriptedRandom())
    return build
