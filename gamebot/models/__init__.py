"""Data models for the Hubs GameBot"""

from .game_state import Lifecycle
from .messages import ChatMessage, RoomCommand, RoomEvent
from .results import (
    BannerResult,
    ErrorResult,
    GameResult,
    Genre,
    NarrativePayload,
    OptionsResult,
    ResultType,
    TextResult,
    Weather,
    parse_narrative,
)

__all__ = [
    "Lifecycle",
    "ChatMessage",
    "RoomCommand",
    "RoomEvent",
    "BannerResult",
    "ErrorResult",
    "GameResult",
    "Genre",
    "NarrativePayload",
    "OptionsResult",
    "ResultType",
    "TextResult",
    "Weather",
    "parse_narrative",
]
