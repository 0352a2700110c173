# ABOUTME: Structured logging configuration using loguru for room sessions.
# ABOUTME: Supports context fields (hub_id, lifecycle, participant_id) and file/console output.

import sys
from pathlib import Path
from typing import Any

from loguru import logger


# Default log format with structured context
DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level> | "
    "{extra}"
)


def setup_logging(
    log_level: str = "INFO",
    log_dir: str | Path | None = None,
    console_output: bool = True,
    file_output: bool = False,
    format_string: str | None = None,
    rotation: str = "100 MB",
    retention: str = "30 days",
    compression: str = "zip"
) -> None:
    """
    Configure loguru for structured logging.

    This setup enables:
    - Structured context fields via logger.bind()
    - Console output with color formatting
    - Optional file output with rotation and compression

    Usage:
        >>> setup_logging(log_level="DEBUG", log_dir="logs", file_output=True)
        >>> logger = get_logger()
        >>> logger.bind(hub_id="abc123").info("Session connected")

    Args:
        log_level: Minimum log level ("DEBUG", "INFO", "WARNING", "ERROR")
        log_dir: Directory for log files (default: "logs")
        console_output: Enable console logging (default: True)
        file_output: Enable file logging (default: False)
        format_string: Custom format string (default: structured format)
        rotation: When to rotate log files (default: "100 MB")
        retention: How long to keep old logs (default: "30 days")
        compression: Compression for rotated logs (default: "zip")

    Raises:
        ValueError: If log_level is invalid
    """
    # Validate log level
    valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    log_level = log_level.upper()
    if log_level not in valid_levels:
        raise ValueError(
            f"Invalid log level: '{log_level}'. "
            f"Must be one of: {', '.join(sorted(valid_levels))}"
        )

    # Remove default handler
    logger.remove()

    fmt = format_string or DEFAULT_FORMAT

    if console_output:
        logger.add(
            sys.stderr,
            format=fmt,
            level=log_level,
            colorize=True,
            backtrace=True,
            diagnose=False,
        )

    if file_output:
        log_dir = Path("logs") if log_dir is None else Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        log_file = log_dir / "gamebot_{time:YYYY-MM-DD}.log"
        logger.add(
            str(log_file),
            format=fmt,
            level=log_level,
            rotation=rotation,
            retention=retention,
            compression=compression,
            backtrace=True,
            diagnose=False,
            enqueue=True,  # Safe across the uvicorn worker threads
        )

    logger.info(
        f"Logging configured: level={log_level}, "
        f"console={console_output}, file={file_output}"
    )


def get_logger() -> Any:
    """Get configured loguru logger instance"""
    return logger


def log_session_event(
    message: str,
    hub_id: str,
    lifecycle: str,
    participant_id: str | None = None,
    level: str = "INFO",
    **extra_context: Any
) -> None:
    """
    Log a room session event with the standard context fields.

    Usage:
        >>> log_session_event(
        ...     "Player joined",
        ...     hub_id="abc123",
        ...     lifecycle="started",
        ...     participant_id="f00d",
        ...     roster_size=3
        ... )

    Args:
        message: Log message
        hub_id: Room the session is bound to
        lifecycle: Current lifecycle state
        participant_id: Optional participant the event concerns
        level: Log level (default: "INFO")
        **extra_context: Additional context fields
    """
    context = {
        "hub_id": hub_id,
        "lifecycle": lifecycle,
        **extra_context
    }

    if participant_id:
        context["participant_id"] = participant_id

    bound_logger = logger.bind(**context)

    level = level.upper()
    if level == "DEBUG":
        bound_logger.debug(message)
    elif level == "WARNING":
        bound_logger.warning(message)
    elif level == "ERROR":
        bound_logger.error(message)
    else:
        bound_logger.info(message)


def log_lifecycle_transition(
    hub_id: str,
    from_state: str,
    to_state: str,
    **extra_context: Any
) -> None:
    """
    Log a lifecycle transition of a room session.

    Args:
        hub_id: Room the session is bound to
        from_state: Previous lifecycle state
        to_state: New lifecycle state
        **extra_context: Additional context fields
    """
    context = {
        "hub_id": hub_id,
        "from_state": from_state,
        "to_state": to_state,
        **extra_context
    }

    logger.bind(**context).info(
        f"Lifecycle transition: {from_state} -> {to_state}"
    )
