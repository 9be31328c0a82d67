"""Run a full migration: connectivity, discovery, then every table in turn.

Usage:
    driver = MigrationDriver(source, destination, settings)
    summary = await driver.run()                    # every discovered table
    summary = await driver.run(["users", "orders"])  # a subset, discovery order
"""

import logging
from collections.abc import Sequence

from pydantic import BaseModel, Field

from db_migrate.adapters.base import DestinationClient, SourceClient
from db_migrate.config.models import MigrationSettings
from db_migrate.errors import ConnectivityError, MigrationError
from db_migrate.migrator import Confirm, TableMigrator, TableSummary
from db_migrate.progress import ProgressStore
from db_migrate.reporting import ProgressReporter
from db_migrate.retry import RetryExecutor
from db_migrate.schema.introspector import SchemaIntrospector

logger = logging.getLogger(__name__)


class RunSummary(BaseModel):
    """Per-table summaries of a completed run, in migration order."""

    tables: list[TableSummary] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(t.total for t in self.tables)

    @property
    def updated(self) -> int:
        return sum(t.updated for t in self.tables)

    @property
    def inserted(self) -> int:
        return sum(t.inserted for t in self.tables)

    @property
    def skipped(self) -> int:
        return sum(t.skipped for t in self.tables)


class MigrationDriver:
    """Top-level sequencing over all tables.

    Tables are migrated strictly one after another.  The first table
    failure aborts the run; earlier tables stay migrated and the failing
    table keeps its checkpoint.

    Args:
        source: Source client.
        destination: Destination client.
        settings: Run settings.
        progress_store: Checkpoint store.  Defaults to ``settings.progress_dir``.
        executor: Retry/timeout policy.  Built from ``settings`` when ``None``.
        confirm: Resume prompt passed to each ``TableMigrator``.
        reporter: Progress sink passed to each ``TableMigrator``.
        introspector: Source schema reader.
    """

    def __init__(
        self,
        source: SourceClient,
        destination: DestinationClient,
        settings: MigrationSettings,
        progress_store: ProgressStore | None = None,
        executor: RetryExecutor | None = None,
        confirm: Confirm | None = None,
        reporter: ProgressReporter | None = None,
        introspector: SchemaIntrospector | None = None,
    ) -> None:
        self._source = source
        self._destination = destination
        self._settings = settings
        self._introspector = introspector or SchemaIntrospector(
            source, schema_name=settings.source.schema_name
        )
        self._migrator = TableMigrator(
            source,
            destination,
            settings,
            progress_store or ProgressStore(settings.progress_dir),
            executor=executor,
            confirm=confirm,
            reporter=reporter,
            introspector=self._introspector,
        )

    async def check_connectivity(self) -> None:
        """Verify both stores answer.

        Raises:
            ConnectivityError: Naming the store that failed.
        """
        for name, client in (("source", self._source), ("destination", self._destination)):
            try:
                ok = await client.test_connection()
            except Exception as e:
                logger.error("Connection test failed for %s: %s", name, e)
                raise ConnectivityError(name, e) from e
            if not ok:
                logger.error("Connection test failed for %s", name)
                raise ConnectivityError(name)
        logger.info("Source and destination connections verified")

    async def discover_tables(self, tables: Sequence[str] | None = None) -> list[str]:
        """List source tables, optionally restricted to ``tables``.

        The restriction keeps discovery order.

        Raises:
            SchemaQueryError: The table list could not be read.
            MigrationError: A requested table is not in the source schema.
        """
        discovered = await self._introspector.list_tables()
        if tables is None:
            return discovered

        unknown = sorted(set(tables) - set(discovered))
        if unknown:
            raise MigrationError(
                f"Unknown table(s) in {self._settings.source.schema_name}: {', '.join(unknown)}"
            )
        wanted = set(tables)
        return [t for t in discovered if t in wanted]

    async def run(self, tables: Sequence[str] | None = None) -> RunSummary:
        """Migrate every selected table and return the run summary.

        Raises:
            MigrationError: The first failure, from any step.
        """
        await self.check_connectivity()

        selected = await self.discover_tables(tables)
        logger.info("Found %d table(s) to migrate", len(selected))

        summary = RunSummary()
        for table in selected:
            summary.tables.append(await self._migrator.migrate(table))

        logger.info(
            "Migration complete: %d table(s), %d rows",
            len(summary.tables), summary.total,
            extra={
                "total": summary.total,
                "updated": summary.updated,
                "inserted": summary.inserted,
                "skipped": summary.skipped,
            },
        )
        return summary
