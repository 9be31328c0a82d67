"""db-migrate: Batch PostgreSQL to Supabase migration engine.

Discovers source tables, creates missing destination tables, copies rows
in id-ordered batches under a duplicate-handling strategy, and checkpoints
progress so interrupted runs resume where they stopped.

Usage:
    from db_migrate import MigrationDriver, load_settings
    from db_migrate import create_source, create_destination

    settings = load_settings()
    driver = MigrationDriver(create_source(settings), create_destination(settings), settings)
    summary = await driver.run()
"""

__version__ = "0.1.0"

# Adapters
from db_migrate.adapters.base import DestinationClient, SourceClient
from db_migrate.adapters.postgres import AsyncPostgresAdapter
from db_migrate.adapters.supabase import AsyncSupabaseAdapter

# Config
from db_migrate.config.loader import load_settings
from db_migrate.config.models import DuplicateStrategy, MigrationSettings

# Engine
from db_migrate.driver import MigrationDriver, RunSummary
from db_migrate.migrator import TableMigrator, TableSummary
from db_migrate.progress import ProgressCheckpoint, ProgressStore
from db_migrate.resolver import BatchResult, DuplicateResolver
from db_migrate.retry import RetryExecutor

# Errors
from db_migrate.errors import (
    BatchTimeoutError,
    ConfigurationError,
    ConnectivityError,
    DdlExecutionError,
    DestinationError,
    DuplicateDataError,
    MigrationError,
    OperationFailedError,
    SchemaQueryError,
)

# Factory
from db_migrate.factory import create_destination, create_source

__all__ = [
    # Adapters
    "SourceClient",
    "DestinationClient",
    "AsyncPostgresAdapter",
    "AsyncSupabaseAdapter",
    # Config
    "load_settings",
    "MigrationSettings",
    "DuplicateStrategy",
    # Engine
    "MigrationDriver",
    "RunSummary",
    "TableMigrator",
    "TableSummary",
    "ProgressStore",
    "ProgressCheckpoint",
    "DuplicateResolver",
    "BatchResult",
    "RetryExecutor",
    # Errors
    "MigrationError",
    "ConfigurationError",
    "ConnectivityError",
    "SchemaQueryError",
    "DdlExecutionError",
    "OperationFailedError",
    "BatchTimeoutError",
    "DuplicateDataError",
    "DestinationError",
    # Factory
    "create_source",
    "create_destination",
]
