"""Store client protocol definitions.

Defines the ``SourceClient`` and ``DestinationClient`` Protocols that the
migration engine talks to.  All methods are ``async def`` -- the engine is
async-first.

Rows are plain dicts mapping column name to a native Python value, in
column order.

Usage:
    from db_migrate.adapters.base import DestinationClient, SourceClient

    async def copy_one(source: SourceClient, dest: DestinationClient) -> None:
        rows = await source.fetch("SELECT * FROM users WHERE id = :id", {"id": 1})
        await dest.insert("users", rows[0])
"""

from typing import Any, Protocol


class SourceClient(Protocol):
    """Read-only relational source queried with parameterized SQL."""

    async def fetch(self, sql: str, params: dict[str, Any] | None = None) -> list[dict]:
        """Run a query and return all rows.

        Args:
            sql: SQL text using ``:name`` placeholders.
            params: Optional dict of named parameters.

        Returns:
            List of dicts, one per row, keys in select-list order.

        Example:
            rows = await source.fetch(
                'SELECT * FROM "users" ORDER BY "id" LIMIT :limit OFFSET :offset',
                {"limit": 1000, "offset": 0},
            )
        """
        ...

    async def test_connection(self) -> bool:
        """Return ``True`` if a trivial query succeeds."""
        ...

    async def close(self) -> None:
        """Release pooled connections."""
        ...


class DestinationClient(Protocol):
    """Tabular destination with read/insert/upsert and out-of-band DDL.

    Implementations raise ``DestinationError`` with a machine-readable
    ``code`` when the backend rejects a request.
    """

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """Select rows from table.

        Args:
            table: Table name.
            columns: Comma-separated column names or ``"*"``.
            filters: Optional dict of field=value filters (all must match via AND).
            limit: Optional maximum number of rows.

        Returns:
            List of dicts, one per row.  Empty list if no matches.
        """
        ...

    async def insert(self, table: str, data: dict | list[dict]) -> None:
        """Insert one row (dict) or many rows (list of dicts).

        Raises:
            DestinationError: On constraint violation or any other rejection.
        """
        ...

    async def upsert(self, table: str, rows: list[dict], on_conflict: str) -> None:
        """Insert rows, replacing existing rows that collide on ``on_conflict``."""
        ...

    async def execute(self, sql: str) -> None:
        """Execute a raw DDL statement.

        Raises:
            NotImplementedError: If the adapter cannot run raw SQL.
            DestinationError: If the destination rejects the statement.
        """
        ...

    async def test_connection(self) -> bool:
        """Return ``True`` if the destination is reachable."""
        ...

    async def close(self) -> None:
        """Close the client and clean up resources."""
        ...


def quote_ident(name: str) -> str:
    """Double-quote a SQL identifier, escaping embedded quotes.

    Example:
        >>> quote_ident('order')
        '"order"'
        >>> quote_ident('we"ird')
        '"we""ird"'
    """
    return '"' + name.replace('"', '""') + '"'
