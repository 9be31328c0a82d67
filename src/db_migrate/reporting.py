"""Console reporting: progress bars, yes/no prompts, summaries.

The migrator only sees two small capabilities:

- a ``ProgressReporter`` (``start`` / ``update`` / ``finish`` per table)
- a ``confirm(question) -> Awaitable[bool]`` callable

so it runs the same under the CLI, in tests, or unattended.

Usage:
    reporter = RichProgressReporter(console)
    confirm = console_confirm(console)
    migrator = TableMigrator(..., confirm=confirm, reporter=reporter)
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.prompt import Confirm
from rich.table import Table

from db_migrate.progress import ProgressCheckpoint

if TYPE_CHECKING:
    from db_migrate.migrator import TableSummary


# ============================================================================
# Progress reporting
# ============================================================================


@runtime_checkable
class ProgressReporter(Protocol):
    """Receives per-table progress from the migrator."""

    def start(self, table: str, total: int, completed: int = 0) -> None:
        ...

    def update(self, table: str, completed: int) -> None:
        ...

    def finish(self, table: str, success: bool = True) -> None:
        ...


class NullReporter:
    """Discards progress events."""

    def start(self, table: str, total: int, completed: int = 0) -> None:
        pass

    def update(self, table: str, completed: int) -> None:
        pass

    def finish(self, table: str, success: bool = True) -> None:
        pass


class RichProgressReporter:
    """One rich progress bar per table, rendered while the table runs.

    Args:
        console: Console to render on.
    """

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()
        self._progress: Progress | None = None
        self._task: TaskID | None = None

    def start(self, table: str, total: int, completed: int = 0) -> None:
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            console=self._console,
            transient=False,
        )
        self._progress.start()
        self._task = self._progress.add_task(table, total=total, completed=completed)

    def update(self, table: str, completed: int) -> None:
        if self._progress is not None and self._task is not None:
            self._progress.update(self._task, completed=completed)

    def finish(self, table: str, success: bool = True) -> None:
        if self._progress is None:
            return
        if self._task is not None and not success:
            self._progress.update(self._task, description=f"[red]{table} (failed)")
        self._progress.stop()
        self._progress = None
        self._task = None


# ============================================================================
# Yes/no prompts
# ============================================================================


def auto_confirm(answer: bool) -> Callable[[str], Awaitable[bool]]:
    """A confirm capability that always gives ``answer`` without asking."""

    async def _confirm(question: str) -> bool:
        return answer

    return _confirm


def console_confirm(console: Console | None = None) -> Callable[[str], Awaitable[bool]]:
    """A confirm capability that asks on the console.

    The blocking prompt runs in a worker thread so the event loop stays
    free.  Defaults to "no" on empty input.
    """
    console = console or Console()

    async def _confirm(question: str) -> bool:
        return await asyncio.to_thread(Confirm.ask, question, console=console, default=False)

    return _confirm


# ============================================================================
# Summary tables
# ============================================================================


def summary_table(summaries: Iterable["TableSummary"]) -> Table:
    """Per-table counters plus a totals row."""
    table = Table(title="Migration Summary", show_header=True, header_style="bold")
    table.add_column("Table", style="dim")
    table.add_column("Total", justify="right")
    table.add_column("Updated", justify="right", style="yellow")
    table.add_column("Inserted", justify="right", style="green")
    table.add_column("Skipped", justify="right")
    table.add_column("Missing", justify="right", style="red")
    table.add_column("Resumed from", justify="right", style="dim")

    totals = [0, 0, 0, 0, 0]
    for s in summaries:
        table.add_row(
            s.table,
            str(s.total),
            str(s.updated),
            str(s.inserted),
            str(s.skipped),
            str(s.missing) if s.missing else "-",
            str(s.resumed_from) if s.resumed_from else "-",
        )
        for i, value in enumerate((s.total, s.updated, s.inserted, s.skipped, s.missing)):
            totals[i] += value

    table.add_section()
    table.add_row("[bold]All tables[/bold]", *(str(v) for v in totals), "")
    return table


def checkpoint_table(checkpoints: Iterable[ProgressCheckpoint]) -> Table:
    """Saved checkpoints, for the ``status`` command."""
    table = Table(title="Saved Progress", show_header=True, header_style="bold")
    table.add_column("Table")
    table.add_column("Cursor", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Done", justify="right")
    table.add_column("Saved at (UTC)", style="dim")

    for cp in checkpoints:
        percent = (cp.cursor / cp.total_count * 100) if cp.total_count else 100.0
        table.add_row(
            cp.table_name,
            str(cp.cursor),
            str(cp.total_count),
            f"{percent:.1f}%",
            cp.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
        )
    return table
