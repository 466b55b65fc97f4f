"""Tenacity reconnect policy driven by SupervisorConfig."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_never,
    wait_fixed,
)

from .config import SupervisorConfig
from .errors import TRANSPORT_ERRORS

logger = structlog.get_logger()

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class ReconnectPolicy:
    """Fixed-interval, never-ending retry policy for background reconnects."""

    interval_seconds: float = 5.0
    retryable_exceptions: tuple[type[BaseException], ...] = TRANSPORT_ERRORS

    @classmethod
    def from_config(cls, config: SupervisorConfig) -> ReconnectPolicy:
        return cls(interval_seconds=config.reconnect_interval_seconds)

    def retrying(self, *, sleep: SleepFn = asyncio.sleep, account: str = "") -> AsyncRetrying:
        """Return a tenacity ``AsyncRetrying`` that never gives up.

        Usage::

            async for attempt in policy.retrying(sleep=fake_sleep):
                with attempt:
                    await connect()
        """

        def _log_failure(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            logger.warning(
                "imap_reconnect_failed",
                account=account,
                attempt=state.attempt_number,
                retry_in=self.interval_seconds,
                error=str(exc) if exc else None,
            )

        return AsyncRetrying(
            stop=stop_never,
            wait=wait_fixed(self.interval_seconds),
            retry=retry_if_exception_type(self.retryable_exceptions),
            sleep=sleep,
            before_sleep=_log_failure,
            reraise=True,
        )
