# ABOUTME: Minimal event emitter used by room channels to notify the router.
# ABOUTME: Handlers may be plain functions or coroutines; coroutine results run as tracked tasks.

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from loguru import logger

Handler = Callable[..., Any]


class EventEmitter:
    """Register handlers per event name and fan events out to them"""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._tasks: set[asyncio.Task] = set()

    def on(self, event: str, handler: Handler) -> None:
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Handler | None = None) -> None:
        if handler is None:
            self._handlers.pop(event, None)
        elif handler in self._handlers.get(event, []):
            self._handlers[event].remove(handler)

    def emit(self, event: str, *args: Any) -> None:
        """
        Call every handler registered for `event`.

        Awaitables returned by handlers are scheduled on the running loop;
        their failures are logged, never raised back into the emitter.
        """
        for handler in list(self._handlers.get(event, [])):
            result = handler(*args)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._reap)

    def _reap(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.opt(exception=error).error(f"Event handler failed: {error}")
