"""Configuration module for the Hubs GameBot"""

from .prompts import (
    DEFAULT_THEME,
    GAME_THEMES,
    NEW_GAME_MESSAGE,
    RULES_PROMPT,
    SYSTEM_PROMPT,
    WELCOME_MESSAGE,
    GameTheme,
    get_theme,
)
from .settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "GameTheme",
    "GAME_THEMES",
    "DEFAULT_THEME",
    "get_theme",
    "SYSTEM_PROMPT",
    "RULES_PROMPT",
    "WELCOME_MESSAGE",
    "NEW_GAME_MESSAGE",
]
