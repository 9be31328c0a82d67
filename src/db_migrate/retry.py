"""Retry and timeout control for destination writes.

Retries use tenacity with a fixed delay between attempts.  The per-batch
timeout uses ``asyncio.timeout``, which cancels the awaited work when the
deadline passes instead of racing a separate timer task.

The two compose: ``run()`` puts the whole retried sequence under one
deadline.

Usage:
    from db_migrate.retry import RetryExecutor

    executor = RetryExecutor(max_attempts=3, retry_delay=5.0, timeout=30.0)
    await executor.retry(lambda: dest.upsert("users", rows, on_conflict="id"))
    await executor.with_timeout(lambda: resolver.resolve(strategy, "users", rows))
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    stop_after_attempt,
    wait_fixed,
)

from db_migrate.config.models import MigrationSettings
from db_migrate.errors import BatchTimeoutError, OperationFailedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]


class RetryExecutor:
    """Bounded fixed-delay retries plus a wall-clock timeout.

    Args:
        max_attempts: Total attempts per operation (at least 1).
        retry_delay: Seconds to wait between attempts.
        timeout: Seconds allowed for one ``with_timeout``/``run`` call.
        sleep: Sleep coroutine used between attempts (injectable for tests).
    """

    def __init__(
        self,
        max_attempts: int,
        retry_delay: float,
        timeout: float,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: MigrationSettings) -> "RetryExecutor":
        return cls(
            max_attempts=settings.max_retries,
            retry_delay=settings.retry_delay,
            timeout=settings.batch_timeout,
        )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        logger.warning(
            "Operation failed (%d/%d attempts), retrying in %.1fs: %s",
            retry_state.attempt_number,
            self.max_attempts,
            self.retry_delay,
            outcome.exception() if outcome is not None else None,
        )

    async def retry(self, operation: Operation[T]) -> T:
        """Call ``operation`` until it succeeds or attempts run out.

        Only ``Exception`` subclasses are retried, so cancellation from an
        enclosing timeout passes straight through.

        Raises:
            OperationFailedError: After the last failed attempt, chained
                from that attempt's exception.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.retry_delay),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=False,
        )
        try:
            return await retrying(operation)
        except RetryError as e:
            cause = e.last_attempt.exception()
            raise OperationFailedError(self.max_attempts, cause) from cause

    async def with_timeout(self, operation: Operation[T]) -> T:
        """Await ``operation`` under the executor's deadline.

        Raises:
            BatchTimeoutError: If the deadline passes first.  The awaited
                work is cancelled; a write already sent may still land.
        """
        deadline = asyncio.timeout(self.timeout)
        try:
            async with deadline:
                return await operation()
        except TimeoutError as e:
            if not deadline.expired():
                raise
            raise BatchTimeoutError(self.timeout) from e

    async def run(self, operation: Operation[T]) -> T:
        """Retry ``operation`` with the whole sequence under one deadline."""
        return await self.with_timeout(lambda: self.retry(operation))
