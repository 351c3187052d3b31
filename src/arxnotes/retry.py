"""Bounded exponential-backoff retries for external calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import httpx


logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

_RETRYABLE_SDK_ERRORS = {
    "RateLimitError",
    "APITimeoutError",
    "APIConnectionError",
    "InternalServerError",
}


class RetriesExhausted(Exception):
    """Raised when every attempt failed; ``last_error`` is the final failure."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"failed after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def status_code_of(exc: BaseException) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    status_code = getattr(exc, "status_code", None)
    return status_code if isinstance(status_code, int) else None


def is_retryable(exc: BaseException) -> bool:
    if status_code_of(exc) in RETRYABLE_STATUS_CODES:
        return True

    if isinstance(exc, (TimeoutError, ConnectionError, httpx.TransportError)):
        return True

    retryable_flag = getattr(exc, "retryable", None)
    if isinstance(retryable_flag, bool):
        return retryable_flag

    return type(exc).__name__ in _RETRYABLE_SDK_ERRORS


async def call_with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int,
    retry_base_seconds: float,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "request",
) -> T:
    """Run ``operation`` until it succeeds or a non-retryable failure occurs.

    Cancellation propagates immediately; it is never treated as a failure.
    """

    if max_retries < 0:
        raise ValueError("max_retries cannot be negative")
    if retry_base_seconds < 0:
        raise ValueError("retry_base_seconds cannot be negative")

    attempts = max_retries + 1
    last_error: Exception | None = None

    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as exc:
            last_error = exc
            if attempt >= max_retries or not is_retryable(exc):
                break
            delay = retry_base_seconds * (2**attempt)
            logger.warning(
                "Retrying %s after transient failure (attempt %s/%s, delay %.2fs): %s",
                description,
                attempt + 1,
                attempts,
                delay,
                exc,
            )
            await sleep(delay)

    assert last_error is not None
    raise RetriesExhausted(attempt + 1, last_error) from last_error
