# ABOUTME: Exception definitions for orchestration layer errors.
# ABOUTME: Defines error types raised by GameSession, RoomRouter and RoomConnector.


class InvalidCommand(Exception):
    """Raised when a room `game` command is malformed"""

    pass


class UnknownGameType(Exception):
    """Raised when a start command names a theme that does not exist"""

    pass


class SessionExists(Exception):
    """Raised when connecting a room that already has a session"""

    pass


class SessionNotFound(Exception):
    """Raised when no session exists for a room id"""

    pass
