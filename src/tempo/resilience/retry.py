"""Bounded exponential backoff for proxied service calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from tempo.config import RetryConfig
from tempo.errors import RetryExhaustedError
from tempo.resilience.classifier import is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[Any]]
AttemptHook = Callable[[int, BaseException | None], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and delay schedule for one logical call."""

    max_attempts: int = 3
    initial_delay_s: float = 1.0
    backoff_factor: float = 2.0
    max_delay_s: float = 10.0
    attempt_timeout_s: float | None = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.max_attempts,
            initial_delay_s=config.initial_delay_s,
            backoff_factor=config.backoff_factor,
            max_delay_s=config.max_delay_s,
            attempt_timeout_s=config.attempt_timeout_s,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed *attempt* (1-based), capped at ``max_delay_s``."""
        return min(self.initial_delay_s * self.backoff_factor ** (attempt - 1), self.max_delay_s)


class RetryExecutor:
    """Run an async operation with per-attempt timeouts and capped backoff.

    Only failures the classifier marks transient are retried.  Permanent
    failures propagate unchanged after the first attempt.  Cancellation of
    the calling task interrupts an in-flight attempt or a backoff sleep and
    propagates immediately.

    Parameters
    ----------
    policy:
        Attempt budget and delay schedule.
    sleep:
        Coroutine used for backoff waits.  Tests inject a recorder.
    """

    def __init__(self, policy: RetryPolicy | None = None, *, sleep: Sleeper | None = None) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        description: str = "operation",
        on_attempt: AttemptHook | None = None,
    ) -> T:
        """Await ``operation()`` until it succeeds or the budget is spent.

        Raises
        ------
        RetryExhaustedError
            Every attempt failed with a transient error.  ``cause`` holds the
            last failure; ``attempts`` and ``delays`` record the schedule.
        Exception
            The first permanent failure, unchanged.
        """
        policy = self.policy
        delays: list[float] = []
        last_exc: BaseException | None = None

        for attempt in range(1, policy.max_attempts + 1):
            try:
                if policy.attempt_timeout_s is not None:
                    async with asyncio.timeout(policy.attempt_timeout_s):
                        result = await operation()
                else:
                    result = await operation()
            except Exception as exc:
                if on_attempt is not None:
                    on_attempt(attempt, exc)
                if not is_transient(exc):
                    raise
                last_exc = exc
                if attempt == policy.max_attempts:
                    break
                delay = policy.delay_for(attempt)
                delays.append(delay)
                logger.warning(
                    "%s failed with transient error (%s), retrying in %.1fs (attempt %d/%d)",
                    description,
                    exc,
                    delay,
                    attempt,
                    policy.max_attempts,
                )
                await self._sleep(delay)
                continue

            if on_attempt is not None:
                on_attempt(attempt, None)
            return result

        logger.warning(
            "%s exhausted %d attempts: %s", description, policy.max_attempts, last_exc
        )
        raise RetryExhaustedError(
            f"{description} failed after {policy.max_attempts} attempts: {last_exc}",
            attempts=policy.max_attempts,
            delays=delays,
            cause=last_exc,
        )
