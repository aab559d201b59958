"""
Dice Factory - Application Settings

Loads configuration from environment variables (prefix ``DICE_FACTORY_``)
or a ``.env`` file using Pydantic Settings.
"""

import logging
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.engine.base import GameConfig, Variant
from src.engine.constants import (
    COLLAPSE_DICE,
    DEFAULT_MAX_ROUNDS,
    DICE_PROGRESSION,
    EFFECT_MARKET_SIZE,
    FIRST_TRICK_BONUS,
    INITIAL_DICE_COUNT,
    INITIAL_FREE_PIPS,
    MAX_ACTION_HISTORY,
    MODIFICATION_MARKET_SIZE,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    debug: bool = False
    log_level: str = "INFO"

    # Game defaults
    variant: Variant = Variant.STANDARD
    max_rounds: int = DEFAULT_MAX_ROUNDS
    initial_free_pips: int = INITIAL_FREE_PIPS
    initial_dice_count: int = INITIAL_DICE_COUNT
    effect_market_size: int = EFFECT_MARKET_SIZE
    modification_market_size: int = MODIFICATION_MARKET_SIZE
    max_action_history: int = MAX_ACTION_HISTORY
    first_trick_bonus: int = FIRST_TRICK_BONUS
    collapse_dice: tuple[int, ...] = COLLAPSE_DICE

    model_config = SettingsConfigDict(
        env_prefix="DICE_FACTORY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level {value!r}.")
        return level

    @field_validator("collapse_dice")
    @classmethod
    def _valid_collapse_dice(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        for sides in value:
            if sides not in DICE_PROGRESSION:
                raise ValueError(f"Collapse dice must be drawn from {DICE_PROGRESSION}.")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached singleton settings instance."""
    return Settings()


def game_config_from_settings(num_players: int, settings: Settings | None = None) -> GameConfig:
    """Build the per-game configuration from application settings."""
    settings = settings or get_settings()
    return GameConfig(
        num_players=num_players,
        variant=settings.variant,
        max_rounds=settings.max_rounds,
        initial_free_pips=settings.initial_free_pips,
        initial_dice_count=settings.initial_dice_count,
        effect_market_size=settings.effect_market_size,
        modification_market_size=settings.modification_market_size,
        max_action_history=settings.max_action_history,
        first_trick_bonus=settings.first_trick_bonus,
        collapse_dice=settings.collapse_dice,
    )


def configure_logging(settings: Settings | None = None) -> None:
    """Configure root logging from settings."""
    settings = settings or get_settings()
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
