"""
Dice Factory Configuration.

Environment variables, settings, and logging configuration.
"""

from src.config.settings import (
    Settings,
    configure_logging,
    game_config_from_settings,
    get_settings,
)

__all__ = ["Settings", "configure_logging", "game_config_from_settings", "get_settings"]
