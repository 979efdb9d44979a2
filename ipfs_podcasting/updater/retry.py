"""Retry mechanisms for coordinator transport calls."""

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Error text seen when the coordinator drops the connection before answering
PREMATURE_CLOSE_MARKERS: tuple[str, ...] = (
    "EOF",
    "Server disconnected",
    "Connection reset",
    "peer closed connection",
)


def is_premature_close(error: BaseException) -> bool:
    """Whether a transport error means the peer closed the connection early."""
    if isinstance(error, httpx.RemoteProtocolError):
        return True
    text = str(error)
    return any(marker in text for marker in PREMATURE_CLOSE_MARKERS)


def with_transport_retry(
    max_retries: int = 5,
    base_delay: float = 5.0,
    max_delay: float = 5.0,
    backoff_factor: float = 1.0,
    retry_on: tuple[type[Exception], ...] = (httpx.TransportError,),
    should_retry: Callable[[BaseException], bool] = is_premature_close,
    sleep: Callable[[float], Awaitable[Any]] | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator that retries an async call on matching transport errors.

    The defaults give a fixed delay; raise ``backoff_factor`` above 1 for
    exponential backoff capped at ``max_delay``.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        backoff_factor: Multiplier applied to the delay after each attempt
        retry_on: Tuple of exception types that may be retried
        should_retry: Predicate deciding whether a matching error is retried
        sleep: Awaitable used to wait between attempts, asyncio.sleep by default

    Returns:
        Decorated coroutine function with retry logic
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= max_retries or not should_retry(e):
                        raise

                    delay = min(base_delay * (backoff_factor**attempt), max_delay)
                    attempt += 1
                    logger.info(
                        f"{getattr(func, '__name__', 'call')} failed "
                        f"(retry {attempt}/{max_retries}): {e}. Retrying in {delay:.2f}s..."
                    )
                    await (sleep or asyncio.sleep)(delay)

        return wrapper

    return decorator
