"""Tenacity retry wrapper for connection establishment."""

from __future__ import annotations

from collections.abc import Callable

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import RetryConfig

logger = structlog.get_logger()


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "connection_retry",
        attempt=state.attempt_number,
        error=str(exc),
        wait_seconds=round(state.next_action.sleep, 2) if state.next_action else None,
    )


def with_retry(
    config: RetryConfig,
    *,
    retryable_exceptions: tuple[type[BaseException], ...] = (OSError,),
) -> Callable:
    """Return a tenacity retry decorator configured from *config*.

    Only wrap idempotent steps (connect, TLS handshake) with this; a send or
    a flag update must never be repeated.  Works for sync and async callables::

        @with_retry(settings.retry, retryable_exceptions=(RelayConnectionError,))
        def connect() -> imaplib.IMAP4_SSL: ...
    """
    return retry(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.multiplier,
            min=config.initial_wait_seconds,
            max=config.max_wait_seconds,
        ),
        retry=retry_if_exception_type(retryable_exceptions),
        before_sleep=_log_retry,
        reraise=True,
    )
