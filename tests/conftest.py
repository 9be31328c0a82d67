"""Shared fixtures: in-memory source and destination stores.

``FakeSource`` answers the handful of queries the engine issues (table
list, metadata catalogs, ``COUNT(*)``, paginated ``SELECT``).
``FakeDestination`` keeps rows keyed by ``id`` per table and behaves like
PostgREST for missing tables and duplicate keys.
"""

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import Any

import pytest
from pydantic import AliasChoices
from rich.logging import RichHandler

from db_migrate.config.models import (
    DestinationSettings,
    DuplicateStrategy,
    MigrationSettings,
    SourceSettings,
)
from db_migrate.errors import DestinationError
from db_migrate.logging_config import JSONFileFormatter
from db_migrate.progress import ProgressStore
from db_migrate.retry import RetryExecutor

_FROM_RE = re.compile(r'FROM "(?P<schema>[^"]+)"\."(?P<table>[^"]+)"')
_CREATE_RE = re.compile(r'CREATE TABLE IF NOT EXISTS "(?P<table>[^"]+)"')


def make_rows(count: int, start: int = 1) -> list[dict]:
    """Rows with sequential ids and a derived name column."""
    return [{"id": i, "name": f"user-{i}"} for i in range(start, start + count)]


# ============================================================================
# Fake Source
# ============================================================================


class FakeSource:
    """In-memory ``SourceClient``.

    ``fetch_failures`` maps a row offset to the error its page fetch raises
    once.  ``vanished`` rows are counted but never returned, as if deleted
    between the count and the fetch.
    """

    def __init__(self, tables: dict[str, list[dict]] | None = None) -> None:
        self.tables: dict[str, list[dict]] = tables or {}
        self.fetch_calls: list[tuple[str, dict]] = []
        self.fetch_failures: dict[int, Exception] = {}
        self.vanished = 0
        self.connected = True
        self.closed = False

    async def fetch(self, sql: str, params: dict[str, Any] | None = None) -> list[dict]:
        params = params or {}
        self.fetch_calls.append((sql, params))

        if "information_schema.tables" in sql:
            return [{"table_name": name} for name in sorted(self.tables)]
        if "information_schema" in sql:
            return self._metadata(sql, params["table"])

        match = _FROM_RE.search(sql)
        assert match, f"unexpected query: {sql}"
        rows = sorted(self.tables[match["table"]], key=lambda r: r["id"])

        if "COUNT(*)" in sql:
            return [{"count": len(rows) + self.vanished}]
        offset, limit = params["offset"], params["limit"]
        if offset in self.fetch_failures:
            raise self.fetch_failures.pop(offset)
        return [dict(r) for r in rows[offset:offset + limit]]

    def _metadata(self, sql: str, table: str) -> list[dict]:
        if "nextval" in sql:
            return [{"column_name": "id", "column_default": f"nextval('{table}_id_seq'::regclass)"}]
        if "'PRIMARY KEY'" in sql:
            return [{"column_name": "id"}]
        if "'FOREIGN KEY'" in sql:
            return []
        sample = self.tables[table][0] if self.tables[table] else {"id": 0}
        return [
            {
                "column_name": name,
                "data_type": "integer" if name == "id" else "text",
                "is_nullable": "NO" if name == "id" else "YES",
                "column_default": None,
                "character_maximum_length": None,
            }
            for name in sample
        ]

    def offsets(self) -> list[int]:
        """Offsets of the paginated row fetches, in order."""
        return [p["offset"] for sql, p in self.fetch_calls if "OFFSET" in sql]

    async def test_connection(self) -> bool:
        return self.connected

    async def close(self) -> None:
        self.closed = True


# ============================================================================
# Fake Destination
# ============================================================================


class FakeDestination:
    """In-memory ``DestinationClient`` keyed on ``id``.

    Args:
        tables: Existing tables and their rows.  Tables not listed do not
            exist until created through ``execute()``.
    """

    def __init__(self, tables: dict[str, list[dict]] | None = None) -> None:
        self.tables: dict[str, dict[Any, dict]] = {
            name: {r["id"]: dict(r) for r in rows} for name, rows in (tables or {}).items()
        }
        self.calls: list[tuple[str, str]] = []
        self.executed: list[str] = []
        self.write_delay = 0.0
        self.slow_after_writes: int | None = None
        self.failures: dict[str, list[Exception]] = {}
        self.connected = True
        self.closed = False
        self._writes = 0

    def fail_next(self, method: str, *errors: Exception) -> None:
        """Queue errors raised by the next calls of ``method``."""
        self.failures.setdefault(method, []).extend(errors)

    def ids(self, table: str) -> list[Any]:
        return sorted(self.tables[table])

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)

    async def _enter(self, method: str, table: str) -> dict[Any, dict]:
        self.calls.append((method, table))
        queued = self.failures.get(method)
        if queued:
            raise queued.pop(0)
        if table not in self.tables:
            raise DestinationError(
                f"Could not find the table 'public.{table}' in the schema cache",
                code="PGRST205",
            )
        return self.tables[table]

    async def _write_pause(self) -> None:
        self._writes += 1
        if self.slow_after_writes is not None and self._writes > self.slow_after_writes:
            await asyncio.sleep(self.write_delay)

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        rows = list((await self._enter("select", table)).values())
        for key, value in (filters or {}).items():
            rows = [r for r in rows if r.get(key) == value]
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def insert(self, table: str, data: dict | list[dict]) -> None:
        store = await self._enter("insert", table)
        await self._write_pause()
        rows = data if isinstance(data, list) else [data]
        for row in rows:
            if row["id"] in store:
                raise DestinationError(
                    f'duplicate key value violates unique constraint "{table}_pkey"',
                    code="23505",
                )
        for row in rows:
            store[row["id"]] = dict(row)

    async def upsert(self, table: str, rows: list[dict], on_conflict: str) -> None:
        store = await self._enter("upsert", table)
        await self._write_pause()
        for row in rows:
            store[row[on_conflict]] = dict(row)

    async def execute(self, sql: str) -> None:
        self.calls.append(("execute", ""))
        queued = self.failures.get("execute")
        if queued:
            raise queued.pop(0)
        self.executed.append(sql)
        match = _CREATE_RE.search(sql)
        if match:
            self.tables.setdefault(match["table"], {})

    async def test_connection(self) -> bool:
        return self.connected

    async def close(self) -> None:
        self.closed = True


# ============================================================================
# Recording helpers
# ============================================================================


class RecordingReporter:
    """``ProgressReporter`` that keeps every event."""

    def __init__(self) -> None:
        self.events: list[tuple] = []

    def start(self, table: str, total: int, completed: int = 0) -> None:
        self.events.append(("start", table, total, completed))

    def update(self, table: str, completed: int) -> None:
        self.events.append(("update", table, completed))

    def finish(self, table: str, success: bool = True) -> None:
        self.events.append(("finish", table, success))

    def updates(self, table: str) -> list[int]:
        return [e[2] for e in self.events if e[0] == "update" and e[1] == table]


class RecordingConfirm:
    """Async confirm capability returning a fixed answer."""

    def __init__(self, answer: bool) -> None:
        self.answer = answer
        self.questions: list[str] = []

    async def __call__(self, question: str) -> bool:
        self.questions.append(question)
        return self.answer


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> MigrationSettings:
    return MigrationSettings(
        duplicate_strategy=DuplicateStrategy.UPDATE,
        batch_size=1000,
        max_retries=3,
        retry_delay_ms=0,
        batch_timeout_ms=5000,
        progress_dir=tmp_path / "progress",
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def store(settings: MigrationSettings) -> ProgressStore:
    return ProgressStore(settings.progress_dir)


@pytest.fixture
def executor() -> RetryExecutor:
    async def no_sleep(seconds: float) -> None:
        return None

    return RetryExecutor(max_attempts=3, retry_delay=0.0, timeout=5.0, sleep=no_sleep)


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture(autouse=True)
def _drop_configured_handlers():
    """Remove handlers installed by ``configure_logging`` inside a test."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if isinstance(handler, RichHandler) or isinstance(handler.formatter, JSONFileFormatter):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def _settings_variables() -> set[str]:
    names: set[str] = set()
    for model in (MigrationSettings, SourceSettings, DestinationSettings):
        for field in model.model_fields.values():
            alias = field.validation_alias
            if isinstance(alias, str):
                names.add(alias)
            elif isinstance(alias, AliasChoices):
                names.update(c for c in alias.choices if isinstance(c, str))
    return names


@pytest.fixture(autouse=True)
def _isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run without inherited settings variables or a stray ``.env``."""
    for name in _settings_variables():
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.upper().startswith("DB_MIGRATE_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
