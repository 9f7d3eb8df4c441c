"""Backoff for Browser Use control calls, configured from RetrySettings."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import RetrySettings

logger = structlog.get_logger()

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (httpx.TransportError,)


def _log_retry(operation: str) -> Callable[[RetryCallState], None]:
    def _before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "retrying",
            operation=operation,
            attempt=state.attempt_number,
            wait_seconds=round(state.next_action.sleep, 3) if state.next_action else None,
            error=str(exc) if exc else None,
        )

    return _before_sleep


def with_retry(
    settings: RetrySettings,
    *,
    retry_on: tuple[type[BaseException], ...] = TRANSIENT_ERRORS,
    operation: str = "call",
) -> Callable:
    """Return a tenacity decorator that retries *retry_on* with exponential backoff.

    The last exception is re-raised once ``settings.max_attempts`` is spent.

    Usage::

        @with_retry(config.retry, operation="create_task")
        async def create_task(...) -> httpx.Response: ...
    """
    return retry(
        stop=stop_after_attempt(settings.max_attempts),
        wait=wait_exponential(
            multiplier=settings.multiplier,
            min=settings.initial_wait_seconds,
            max=settings.max_wait_seconds,
        ),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry(operation),
        reraise=True,
    )
