# ABOUTME: Orchestration layer exports for per-room game sessions and room event routing.
# ABOUTME: Provides the GameSession state machine, turn rotation, scene cache, router and room connector.

from gamebot.orchestration.exceptions import (
    InvalidCommand,
    SessionExists,
    SessionNotFound,
    UnknownGameType,
)
from gamebot.orchestration.message_router import RoomConnector, RoomRouter, parse_game_command
from gamebot.orchestration.scene_cache import SceneCache
from gamebot.orchestration.state_machine import GameSession
from gamebot.orchestration.turn_tracker import TurnTracker, next_index

__all__ = [
    "GameSession",
    "RoomRouter",
    "RoomConnector",
    "parse_game_command",
    "TurnTracker",
    "next_index",
    "SceneCache",
    "InvalidCommand",
    "SessionExists",
    "SessionNotFound",
    "UnknownGameType",
]
