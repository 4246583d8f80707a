"""Caller-level retry for transient model provider failures."""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from taxalert.errors import UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, UpstreamError) and exc.retryable


def _log_retry(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying after transient upstream failure (attempt %s): %s",
        retry_state.attempt_number,
        exc,
    )


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 1,
    min_wait: float = 0.5,
    max_wait: float = 10.0,
) -> T:
    """Await ``operation`` up to ``attempts`` times while it raises a retryable UpstreamError.

    Any other exception, or the last retryable one, propagates unchanged.
    """

    if attempts <= 1:
        return await operation()

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            return await operation()
    raise RuntimeError("Retry loop exited unexpectedly")


__all__ = ["call_with_retry", "is_retryable"]
