"""Migrate one table end-to-end.

``TableMigrator.migrate()`` walks a table through:

1. **Ensure schema** -- check the destination; create the table (and its
   sequences) from source metadata when it is missing.
2. **Resume?** -- count source rows, load any checkpoint, ask whether to
   continue from it.
3. **Transfer** -- fetch ``batch_size`` rows at a time ordered by id,
   resolve duplicates under the batch timeout, checkpoint after every
   committed batch.
4. **Finalize** -- clear the checkpoint and return a ``TableSummary``; on
   failure keep the checkpoint and re-raise.

Usage:
    migrator = TableMigrator(source, destination, settings, ProgressStore("logs"))
    summary = await migrator.migrate("users")
"""

import logging
from collections.abc import Awaitable, Callable

from pydantic import BaseModel

from db_migrate.adapters.base import DestinationClient, SourceClient, quote_ident
from db_migrate.config.models import MigrationSettings
from db_migrate.errors import DestinationError, SourceError, is_relation_missing
from db_migrate.progress import ProgressStore
from db_migrate.reporting import NullReporter, ProgressReporter, auto_confirm
from db_migrate.resolver import KEY_COLUMN, BatchResult, DuplicateResolver
from db_migrate.retry import RetryExecutor
from db_migrate.schema.ddl import materialize
from db_migrate.schema.introspector import SchemaIntrospector

logger = logging.getLogger(__name__)

Confirm = Callable[[str], Awaitable[bool]]


class TableSummary(BaseModel):
    """Outcome of one table migration.

    Counters only include batches that committed.  ``missing`` counts rows
    included in ``total`` that the source stopped returning mid-transfer.

    Example:
        >>> TableSummary(table="users", total=2500, updated=2500).processed
        2500
    """

    table: str
    total: int = 0
    updated: int = 0
    inserted: int = 0
    skipped: int = 0
    resumed_from: int = 0
    batches: int = 0
    missing: int = 0
    schema_created: bool = False

    @property
    def processed(self) -> int:
        return self.updated + self.inserted + self.skipped

    def add(self, result: BatchResult) -> None:
        self.updated += result.updated
        self.inserted += result.inserted
        self.skipped += result.skipped
        self.batches += 1


class TableMigrator:
    """Orchestrates the transfer of a single table.

    Args:
        source: Source client (shared, read-only).
        destination: Destination client (shared).
        settings: Run settings (strategy, batch size, schema name).
        progress_store: Checkpoint store.
        executor: Retry/timeout policy.  Built from ``settings`` when ``None``.
        confirm: Async yes/no capability used to offer a resume.  Defaults
            to always resuming.
        reporter: Progress sink.  Defaults to a no-op reporter.
        introspector: Source schema reader.  Built from ``source`` when ``None``.
    """

    def __init__(
        self,
        source: SourceClient,
        destination: DestinationClient,
        settings: MigrationSettings,
        progress_store: ProgressStore,
        executor: RetryExecutor | None = None,
        confirm: Confirm | None = None,
        reporter: ProgressReporter | None = None,
        introspector: SchemaIntrospector | None = None,
    ) -> None:
        self._source = source
        self._destination = destination
        self._settings = settings
        self._store = progress_store
        self._executor = executor or RetryExecutor.from_settings(settings)
        self._confirm = confirm or auto_confirm(True)
        self._reporter = reporter or NullReporter()
        self._introspector = introspector or SchemaIntrospector(
            source, schema_name=settings.source.schema_name
        )
        self._resolver = DuplicateResolver(destination, self._executor)

    def _qualified(self, table: str) -> str:
        return f"{quote_ident(self._settings.source.schema_name)}.{quote_ident(table)}"

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def table_exists(self, table: str) -> bool:
        """Check the destination with a one-row read.

        Raises:
            DestinationError: For any failure other than "relation does
                not exist".
        """
        try:
            await self._destination.select(table, "*", limit=1)
        except DestinationError as e:
            if is_relation_missing(e):
                return False
            raise
        return True

    async def ensure_schema(self, table: str) -> bool:
        """Create the destination table if it is missing.

        Returns:
            ``True`` if the table was created.

        Raises:
            SchemaQueryError: Source metadata could not be read.
            DdlExecutionError: The destination rejected the DDL.
        """
        if await self.table_exists(table):
            return False

        logger.info("Table %s missing in destination, creating", table, extra={"table": table})
        structure = await self._introspector.inspect(table)
        await materialize(self._destination, structure)
        return True

    async def resolve_start(self, table: str, total: int) -> int:
        """Return the offset to start from: a confirmed checkpoint or 0."""
        checkpoint = self._store.load(table)
        if checkpoint is None:
            return 0

        question = (
            f"Found saved progress for {table}: "
            f"{checkpoint.cursor}/{checkpoint.total_count}. Resume from there?"
        )
        if not await self._confirm(question):
            logger.info("Restarting %s from the beginning", table, extra={"table": table})
            return 0

        # The source may have shrunk since the checkpoint was written.
        start = min(checkpoint.cursor, total)
        logger.info("Resuming %s at row %d", table, start, extra={"table": table, "cursor": start})
        return start

    async def fetch_batch(self, table: str, offset: int) -> list[dict]:
        """Read one page of source rows ordered by id.

        Raises:
            SourceError: If the source query fails.
        """
        try:
            return await self._source.fetch(
                f"SELECT * FROM {self._qualified(table)} "
                f"ORDER BY {quote_ident(KEY_COLUMN)} LIMIT :limit OFFSET :offset",
                {"limit": self._settings.batch_size, "offset": offset},
            )
        except SourceError:
            raise
        except Exception as e:
            raise SourceError(e, table) from e

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def migrate(self, table: str) -> TableSummary:
        """Migrate ``table`` and return its summary.

        Raises:
            MigrationError: Any failure aborts the table.  The checkpoint of
                the last committed batch is left in place for a later resume.
        """
        summary = TableSummary(table=table)
        strategy = self._settings.duplicate_strategy
        batch_size = self._settings.batch_size
        offset = 0

        try:
            summary.schema_created = await self.ensure_schema(table)
            summary.total = await self._introspector.count_rows(table)
            offset = summary.resumed_from = await self.resolve_start(table, summary.total)

            self._reporter.start(table, summary.total, offset)

            while offset < summary.total:
                rows = await self.fetch_batch(table, offset)
                expected = min(batch_size, summary.total - offset)

                if rows:
                    result = await self._executor.with_timeout(
                        lambda: self._resolver.resolve(strategy, table, rows)
                    )
                    summary.add(result)

                    offset += len(rows)
                    self._reporter.update(table, offset)
                    self._store.save(table, offset, summary.total)

                # Rows deleted after the count leave the last page short
                if len(rows) < expected:
                    summary.missing = summary.total - offset
                    logger.warning(
                        "Source ran out of rows for %s at offset %d of %d, %d rows missing",
                        table, offset, summary.total, summary.missing,
                        extra={"table": table, "cursor": offset, "missing": summary.missing},
                    )
                    break

        except Exception as e:
            self._reporter.finish(table, success=False)
            logger.error(
                "Migration of %s failed at rows %d-%d: %s",
                table, offset, offset + batch_size, e,
                extra={"table": table, "cursor": offset},
            )
            raise

        self._reporter.finish(table, success=True)
        self._store.clear(table)
        logger.info(
            "Table %s migrated, %d of %d rows",
            table, summary.total - summary.missing, summary.total,
            extra={
                "table": table,
                "total": summary.total,
                "missing": summary.missing,
                "updated": summary.updated,
                "inserted": summary.inserted,
                "skipped": summary.skipped,
            },
        )
        return summary
