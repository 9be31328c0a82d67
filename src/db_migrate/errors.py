"""Exception taxonomy for the migration engine.

Every error the engine raises derives from ``MigrationError`` so the CLI
can catch one type at the top level and exit non-zero.

Usage:
    from db_migrate.errors import DuplicateDataError, MigrationError

    try:
        await driver.run()
    except MigrationError as e:
        console.print(f"[red]{e}[/red]")
"""

from typing import Any


class MigrationError(Exception):
    """Base class for all migration failures."""

    pass


class ConfigurationError(MigrationError):
    """Raised when settings cannot be parsed or fail validation."""

    pass


class ConnectivityError(MigrationError):
    """Raised when the source or destination store is unreachable.

    Fatal for the whole run.
    """

    def __init__(self, store: str, cause: BaseException | None = None) -> None:
        self.store = store
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Connection test failed for {store}{detail}")


class SchemaQueryError(MigrationError):
    """Raised when a source metadata query fails."""

    def __init__(self, table: str | None, cause: BaseException) -> None:
        self.table = table
        self.cause = cause
        target = f"table '{table}'" if table else "table list"
        super().__init__(f"Failed to read schema for {target}: {cause}")


class SourceError(MigrationError):
    """Raised when a source data query (row count, batch fetch) fails."""

    def __init__(self, cause: BaseException, table: str | None = None) -> None:
        self.table = table
        self.cause = cause
        target = f" for table '{table}'" if table else ""
        super().__init__(f"Source query failed{target}: {cause}")


class CheckpointError(MigrationError):
    """Raised when a progress checkpoint cannot be written or named."""

    pass


class DdlExecutionError(MigrationError):
    """Raised when the destination rejects a CREATE TABLE / SEQUENCE statement."""

    def __init__(self, table: str, sql: str, cause: BaseException) -> None:
        self.table = table
        self.sql = sql
        self.cause = cause
        super().__init__(f"DDL failed for table '{table}': {cause}")


class OperationFailedError(MigrationError):
    """Raised when a destination write exhausts its retry budget."""

    def __init__(self, attempts: int, cause: BaseException | None) -> None:
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Operation failed after {attempts} attempt(s): {cause}")


class BatchTimeoutError(MigrationError):
    """Raised when a batch does not finish within its wall-clock budget."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Batch processing timed out after {timeout:g}s")


class DuplicateDataError(MigrationError):
    """Raised by the ``error`` strategy when a source id already exists.

    Rows inserted earlier in the same batch are not rolled back; their ids
    are listed in ``inserted_ids``.
    """

    def __init__(self, row_id: Any, inserted_ids: list[Any] | None = None) -> None:
        self.row_id = row_id
        self.inserted_ids = list(inserted_ids or [])
        super().__init__(f"Duplicate data found: id {row_id}")


class DestinationError(MigrationError):
    """A destination-side failure carrying a machine-readable code.

    ``code`` is a PostgreSQL SQLSTATE (e.g. ``42P01``) or a PostgREST
    error code (e.g. ``PGRST205``) when the backend reports one.
    """

    def __init__(self, message: str, code: str | None = None) -> None:
        self.code = code
        self.message = message
        prefix = f"[{code}] " if code else ""
        super().__init__(f"{prefix}{message}")


# SQLSTATE for undefined_table, and PostgREST's "table not in schema cache"
RELATION_MISSING_CODES = frozenset({"42P01", "PGRST205"})


def is_relation_missing(error: BaseException) -> bool:
    """True if ``error`` means the destination table does not exist."""
    return isinstance(error, DestinationError) and error.code in RELATION_MISSING_CODES
