"""Duplicate handling strategies for one batch of source rows.

``DuplicateResolver.resolve()`` dispatches once per batch to the handler
for the configured ``DuplicateStrategy``.  Every handler returns a
``BatchResult`` with the same three counters.

Each destination call is retried through ``RetryExecutor.retry``:
per batch for ``update``/``append``, per row for ``skip``/``error``.

Usage:
    resolver = DuplicateResolver(destination, executor)
    result = await resolver.resolve(DuplicateStrategy.SKIP, "users", rows)
    print(result.inserted, result.skipped)
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from db_migrate.adapters.base import DestinationClient
from db_migrate.config.models import DuplicateStrategy
from db_migrate.errors import DuplicateDataError
from db_migrate.retry import RetryExecutor

logger = logging.getLogger(__name__)

KEY_COLUMN = "id"


@dataclass(frozen=True)
class BatchResult:
    """Row counts produced by one committed batch."""

    inserted: int = 0
    updated: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.skipped


Handler = Callable[[str, list[dict]], Awaitable[BatchResult]]


class DuplicateResolver:
    """Decide and issue destination writes for a batch.

    Args:
        destination: Destination client.
        executor: Retry policy applied to every destination call.
        key_column: Column identifying a row (default ``"id"``).
    """

    def __init__(
        self,
        destination: DestinationClient,
        executor: RetryExecutor,
        key_column: str = KEY_COLUMN,
    ) -> None:
        self._destination = destination
        self._executor = executor
        self._key = key_column
        self._handlers: dict[DuplicateStrategy, Handler] = {
            DuplicateStrategy.UPDATE: self._update,
            DuplicateStrategy.SKIP: self._skip,
            DuplicateStrategy.ERROR: self._error,
            DuplicateStrategy.APPEND: self._append,
        }

    async def resolve(
        self, strategy: DuplicateStrategy, table: str, rows: list[dict]
    ) -> BatchResult:
        """Write ``rows`` to ``table`` according to ``strategy``.

        Raises:
            OperationFailedError: A destination call exhausted its retries.
            DuplicateDataError: ``error`` strategy found an existing id.
        """
        if not rows:
            return BatchResult()
        handler = self._handlers[DuplicateStrategy(strategy)]
        return await handler(table, rows)

    # ------------------------------------------------------------------
    # Strategy handlers
    # ------------------------------------------------------------------

    async def _update(self, table: str, rows: list[dict]) -> BatchResult:
        await self._executor.retry(
            lambda: self._destination.upsert(table, rows, on_conflict=self._key)
        )
        return BatchResult(updated=len(rows))

    async def _skip(self, table: str, rows: list[dict]) -> BatchResult:
        inserted = skipped = 0
        for row in rows:
            if await self._exists(table, row[self._key]):
                skipped += 1
                continue
            await self._insert_one(table, row)
            inserted += 1
        return BatchResult(inserted=inserted, skipped=skipped)

    async def _error(self, table: str, rows: list[dict]) -> BatchResult:
        # Rows inserted before a collision stay in the destination.
        inserted_ids: list[Any] = []
        for row in rows:
            row_id = row[self._key]
            if await self._exists(table, row_id):
                if inserted_ids:
                    logger.error(
                        "Duplicate id %s in %s after %d rows of this batch were written",
                        row_id, table, len(inserted_ids),
                        extra={"table": table, "inserted_ids": inserted_ids},
                    )
                raise DuplicateDataError(row_id, inserted_ids)
            await self._insert_one(table, row)
            inserted_ids.append(row_id)
        return BatchResult(inserted=len(inserted_ids))

    async def _append(self, table: str, rows: list[dict]) -> BatchResult:
        await self._executor.retry(lambda: self._destination.insert(table, rows))
        return BatchResult(inserted=len(rows))

    # ------------------------------------------------------------------
    # Row-level helpers
    # ------------------------------------------------------------------

    async def _exists(self, table: str, row_id: Any) -> bool:
        found = await self._executor.retry(
            lambda: self._destination.select(
                table, self._key, filters={self._key: row_id}, limit=1
            )
        )
        return bool(found)

    async def _insert_one(self, table: str, row: dict) -> None:
        await self._executor.retry(lambda: self._destination.insert(table, row))
