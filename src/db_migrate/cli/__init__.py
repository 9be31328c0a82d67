"""CLI module for batch database migration.

Copies every base table of a PostgreSQL source schema into a Supabase (or
PostgreSQL) destination, creating missing tables, resolving duplicate ids,
and checkpointing progress so an interrupted run can resume.

Usage:
    db-migrate migrate
    db-migrate migrate --strategy skip --batch-size 500 --tables users,orders
    db-migrate migrate --resume
    db-migrate --env-file .env.staging tables
    db-migrate status
    db-migrate reset --tables users

Commands:
    migrate  - Migrate tables from source to destination
    tables   - List source tables with row counts
    status   - Show saved progress checkpoints
    reset    - Delete saved progress checkpoints
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from db_migrate.config.loader import load_settings
from db_migrate.config.models import DuplicateStrategy, MigrationSettings
from db_migrate.driver import MigrationDriver
from db_migrate.errors import CheckpointError, ConfigurationError, MigrationError
from db_migrate.factory import create_destination, create_source
from db_migrate.logging_config import configure_logging
from db_migrate.progress import ProgressStore
from db_migrate.reporting import (
    RichProgressReporter,
    auto_confirm,
    checkpoint_table,
    console_confirm,
    summary_table,
)
from db_migrate.schema.introspector import SchemaIntrospector

console = Console()
logger = logging.getLogger("db_migrate.cli")


# ============================================================================
# Helpers
# ============================================================================


def _parse_tables(value: str | None) -> list[str] | None:
    """Split a comma-separated ``--tables`` value.

    Example:
        >>> _parse_tables("users, orders,")
        ['users', 'orders']
    """
    if not value:
        return None
    tables = [t.strip() for t in value.split(",") if t.strip()]
    return tables or None


def _load(args: argparse.Namespace, **overrides: Any) -> MigrationSettings | None:
    """Load settings, printing the error and returning ``None`` on failure."""
    env_file = Path(args.env_file) if getattr(args, "env_file", None) else None
    try:
        return load_settings(env_file=env_file, overrides=overrides)
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        return None


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_migrate(args: argparse.Namespace, settings: MigrationSettings) -> int:
    """Async implementation for migrate command.

    Args:
        args: Parsed arguments with tables, resume, restart.
        settings: Loaded settings (CLI overrides already applied).

    Returns:
        0 on success, 1 on failure.
    """
    if args.resume:
        confirm = auto_confirm(True)
    elif args.restart:
        confirm = auto_confirm(False)
    else:
        confirm = console_confirm(console)

    try:
        source = create_source(settings)
        destination = create_destination(settings)
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    console.print("Starting migration...", style="dim")
    console.print(f"  Strategy: [bold]{settings.duplicate_strategy.value}[/bold]")
    console.print(f"  Batch size: [bold]{settings.batch_size}[/bold]")
    console.print(f"  Destination: [bold cyan]{settings.destination.provider}[/bold cyan]")

    driver = MigrationDriver(
        source,
        destination,
        settings,
        confirm=confirm,
        reporter=RichProgressReporter(console),
    )

    try:
        summary = await driver.run(_parse_tables(args.tables))
    except MigrationError as e:
        logger.error("Migration failed: %s", e)
        console.print()
        console.print(f"[bold red]x[/bold red] Migration failed: {e}")
        console.print(
            "[dim]Progress of the failed table is saved; rerun to resume.[/dim]"
        )
        return 1
    finally:
        await source.close()
        await destination.close()

    console.print()
    console.print(summary_table(summary.tables))
    console.print()
    console.print(
        f"[bold green]v[/bold green] Migrated {len(summary.tables)} table(s), "
        f"{summary.total} rows."
    )
    return 0


async def _async_tables(args: argparse.Namespace, settings: MigrationSettings) -> int:
    """Async implementation for tables command.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        source = create_source(settings)
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    introspector = SchemaIntrospector(source, schema_name=settings.source.schema_name)
    try:
        names = await introspector.list_tables()
        counts = {name: await introspector.count_rows(name) for name in names}
    except MigrationError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    finally:
        await source.close()

    table = Table(
        title=f"Source Tables ({settings.source.schema_name})",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Table")
    table.add_column("Rows", justify="right")
    for name in names:
        table.add_row(name, str(counts[name]))

    console.print(table)
    if not names:
        console.print("[yellow]No base tables found.[/yellow]")
    return 0


# ============================================================================
# Sync command wrappers (cmd_status, cmd_reset read local files only)
# ============================================================================


def cmd_migrate(args: argparse.Namespace) -> int:
    """Migrate tables from source to destination.

    Wraps the async implementation with ``asyncio.run()``.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 on failure, 130 if interrupted.
    """
    settings = _load(
        args,
        duplicate_strategy=args.strategy,
        batch_size=args.batch_size,
    )
    if settings is None:
        return 1
    configure_logging(settings)

    try:
        return asyncio.run(_async_migrate(args, settings))
    except KeyboardInterrupt:
        console.print()
        console.print("[yellow]Interrupted. Progress of the current table is saved.[/yellow]")
        return 130


def cmd_tables(args: argparse.Namespace) -> int:
    """List source tables with row counts.

    Wraps the async implementation with ``asyncio.run()``.

    Returns:
        0 on success, 1 on failure.
    """
    settings = _load(args)
    if settings is None:
        return 1
    configure_logging(settings)
    return asyncio.run(_async_tables(args, settings))


def cmd_status(args: argparse.Namespace) -> int:
    """Show saved progress checkpoints.

    Reads only local checkpoint files -- no database calls.

    Returns:
        0 on success, 1 on configuration error.
    """
    settings = _load(args)
    if settings is None:
        return 1

    store = ProgressStore(settings.progress_dir)
    checkpoints = store.list_checkpoints()
    if not checkpoints:
        console.print("[green]No saved progress.[/green]")
        return 0

    console.print(checkpoint_table(checkpoints))
    console.print(
        "[dim]Run[/dim] [cyan]db-migrate migrate --resume[/cyan] "
        "[dim]to continue.[/dim]"
    )
    return 0


def cmd_reset(args: argparse.Namespace) -> int:
    """Delete saved progress checkpoints.

    Returns:
        0 on success, 1 on configuration error or an invalid table name.
    """
    settings = _load(args)
    if settings is None:
        return 1

    store = ProgressStore(settings.progress_dir)
    tables = _parse_tables(args.tables)
    if tables is None:
        tables = [cp.table_name for cp in store.list_checkpoints()]

    # Reject every bad name before deleting anything
    try:
        for table in tables:
            store.path_for(table)
    except CheckpointError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    for table in tables:
        store.clear(table)
        console.print(f"  Cleared [cyan]{table}[/cyan]")

    console.print(f"[bold green]v[/bold green] Reset {len(tables)} checkpoint(s).")
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="db-migrate",
        description="Batch migration from PostgreSQL to Supabase",
    )

    # Global option: --env-file
    parser.add_argument(
        "--env-file",
        default=None,
        help="Path to a .env file (default: search for .env from the working directory)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate command
    p_migrate = subparsers.add_parser(
        "migrate",
        help="Migrate tables from source to destination",
    )
    p_migrate.add_argument(
        "--strategy",
        choices=[s.value for s in DuplicateStrategy],
        default=None,
        help="Duplicate handling strategy (overrides DUPLICATE_STRATEGY)",
    )
    p_migrate.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Rows per batch (overrides BATCH_SIZE)",
    )
    p_migrate.add_argument(
        "--tables",
        default=None,
        help="Comma-separated list of tables to migrate (default: all)",
    )
    resume_group = p_migrate.add_mutually_exclusive_group()
    resume_group.add_argument(
        "--resume",
        action="store_true",
        help="Resume from saved progress without asking",
    )
    resume_group.add_argument(
        "--restart",
        action="store_true",
        help="Ignore saved progress and start every table from the beginning",
    )
    p_migrate.set_defaults(func=cmd_migrate)

    # tables command
    p_tables = subparsers.add_parser(
        "tables",
        help="List source tables with row counts",
    )
    p_tables.set_defaults(func=cmd_tables)

    # status command
    p_status = subparsers.add_parser(
        "status",
        help="Show saved progress checkpoints",
    )
    p_status.set_defaults(func=cmd_status)

    # reset command
    p_reset = subparsers.add_parser(
        "reset",
        help="Delete saved progress checkpoints",
    )
    p_reset.add_argument(
        "--tables",
        default=None,
        help="Comma-separated list of tables to reset (default: all)",
    )
    p_reset.set_defaults(func=cmd_reset)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
