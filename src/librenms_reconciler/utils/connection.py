"""Transport retries for the LibreNMS client.

Only transport failures are retried. An HTTP response of any status is an
answer and goes back to the caller, and the reconciliation engine never
retries a remote call on its own.

RETRYABLE_EXCEPTIONS suits idempotent calls. Some of its errors (read
timeouts, dropped connections) can happen after the server acted on the
request, so calls that create something retry only on UNSENT_EXCEPTIONS.
"""
import logging
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_EXCEPTIONS = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.WriteTimeout,
    httpx.PoolTimeout,
    httpx.RemoteProtocolError,
    ConnectionResetError,
    TimeoutError,
)

# Raised before any byte of the request was written
UNSENT_EXCEPTIONS = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.PoolTimeout,
)


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Wrap an async request function with exponential backoff.

    The last exception is re-raised once ``max_attempts`` is spent.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    policy = retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        wrapped: Any = policy(func)
        return wrapped

    return decorator
