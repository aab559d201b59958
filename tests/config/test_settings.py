"""
Dice Factory - Settings Tests
"""

import logging

import pytest
from pydantic import ValidationError

from src.config.settings import (
    Settings,
    configure_logging,
    game_config_from_settings,
    get_settings,
)
from src.engine.base import Variant


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for loading settings."""

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.variant == Variant.STANDARD
        assert settings.initial_free_pips == 9
        assert settings.collapse_dice == (4, 6, 8)
        assert settings.log_level == "INFO"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("DICE_FACTORY_VARIANT", "experimental")
        monkeypatch.setenv("DICE_FACTORY_MAX_ROUNDS", "6")
        monkeypatch.setenv("DICE_FACTORY_LOG_LEVEL", "debug")
        settings = Settings(_env_file=None)
        assert settings.variant == Variant.EXPERIMENTAL
        assert settings.max_rounds == 6
        assert settings.log_level == "DEBUG"

    def test_unknown_log_level(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="chatty")

    def test_bad_collapse_die(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, collapse_dice=(4, 5))

    def test_cached(self):
        assert get_settings() is get_settings()


class TestGameConfig:
    """Tests for building per-game configuration."""

    def test_from_settings(self):
        settings = Settings(_env_file=None, variant=Variant.EXPERIMENTAL, max_rounds=4)
        config = game_config_from_settings(3, settings)
        assert config.num_players == 3
        assert config.variant == Variant.EXPERIMENTAL
        assert config.max_rounds == 4

    def test_invalid_player_count(self):
        with pytest.raises(ValueError):
            game_config_from_settings(9, Settings(_env_file=None))


class TestLogging:
    """Tests for logging setup."""

    def test_debug_forces_debug_level(self, monkeypatch):
        captured = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kw: captured.update(kw))
        configure_logging(Settings(_env_file=None, debug=True, log_level="WARNING"))
        assert captured["level"] == logging.DEBUG

    def test_level_from_settings(self, monkeypatch):
        captured = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kw: captured.update(kw))
        configure_logging(Settings(_env_file=None, log_level="warning"))
        assert captured["level"] == logging.WARNING
