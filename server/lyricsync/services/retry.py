"""Bounded retry for outbound HTTP calls."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from lyricsync.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def is_transient(exc: BaseException) -> bool:
    """Timeouts, connection failures, rate limiting and 5xx are worth retrying."""
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS
    return False


async def with_retry(
    call: Callable[[], Awaitable[T]],
    *,
    attempts: int | None = None,
    backoff: float | None = None,
    description: str = "request",
) -> T:
    """Await ``call()`` up to ``attempts`` times with exponential backoff.

    Only transient failures are retried; anything else, and the last
    transient failure, propagates to the caller.
    """
    attempts = max(1, attempts if attempts is not None else settings.http_retry_attempts)
    backoff = backoff if backoff is not None else settings.http_retry_backoff_seconds

    for attempt in range(1, attempts + 1):
        try:
            return await call()
        except Exception as exc:
            if attempt >= attempts or not is_transient(exc):
                raise
            delay = backoff * (2 ** (attempt - 1))
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                description, attempt, attempts, exc, delay,
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
