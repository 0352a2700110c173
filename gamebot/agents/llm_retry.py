# ABOUTME: Exponential backoff retry decorator for narrator API calls.
# ABOUTME: Retries transient OpenAI failures with structured logging; other errors surface at once.

import inspect
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from loguru import logger
from openai import APIConnectionError, APITimeoutError, InternalServerError, RateLimitError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

# Type variable for generic function decoration
F = TypeVar("F", bound=Callable[..., Any])

TRANSIENT_ERRORS = (APIConnectionError, APITimeoutError, InternalServerError, RateLimitError)


def llm_retry(attempts: int = 3, min_wait: float = 1, max_wait: float = 10) -> Callable[[F], F]:
    """
    Build a retry decorator for async LLM API calls with exponential backoff.

    Retries on transient OpenAI errors only:
    - `attempts` tries in total
    - Wait: exponential (multiplier=1) between `min_wait` and `max_wait` seconds
    - Retries on: APIConnectionError, APITimeoutError, InternalServerError, RateLimitError
    - Logs each retry attempt

    Usage:
        @llm_retry(attempts=3)
        async def complete(...):
            ...

    Args:
        attempts: Total number of attempts before the last error is re-raised
        min_wait: Shortest backoff in seconds (default: 1)
        max_wait: Longest backoff in seconds (default: 10)

    Returns:
        Decorator wrapping an async function with retry behavior
    """
    retrying_decorator = retry(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        before_sleep=before_sleep_log(logger, "WARNING"),
        reraise=True,
    )

    def decorator(func: F) -> F:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"llm_retry only wraps coroutine functions, got {func.__name__}")

        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            @retrying_decorator
            async def _retry_call() -> Any:
                try:
                    return await func(*args, **kwargs)
                except TRANSIENT_ERRORS as e:
                    logger.warning(
                        f"LLM API call failed in {func.__name__}: {type(e).__name__}: {e}"
                    )
                    raise

            return await _retry_call()

        return async_wrapper  # type: ignore

    return decorator
