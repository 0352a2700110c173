# ABOUTME: Lifecycle states of a per-room game session.
# ABOUTME: Disconnected -> Connected -> Started -> Ended, re-entering Started on the next start.

from enum import Enum


class Lifecycle(str, Enum):
    """Lifecycle of a game session bound to one room"""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    STARTED = "started"
    ENDED = "ended"
