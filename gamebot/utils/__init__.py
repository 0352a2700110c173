# ABOUTME: Utility module exports for structured logging.
# ABOUTME: Provides logging.py (loguru config and session context helpers).

from gamebot.utils.logging import (
    get_logger,
    log_lifecycle_transition,
    log_session_event,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "log_session_event",
    "log_lifecycle_transition",
]
