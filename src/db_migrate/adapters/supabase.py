"""Async Supabase destination adapter.

Provides ``AsyncSupabaseAdapter``, an async implementation of the
``DestinationClient`` protocol using the supabase-py async client.

The client is initialized lazily on first use with an ``asyncio.Lock``
to ensure it is created exactly once.

PostgREST cannot run raw SQL, so ``execute()`` calls an ``exec_sql``
database function through RPC.  The destination project must define it:

    CREATE OR REPLACE FUNCTION exec_sql(sql text) RETURNS void
    LANGUAGE plpgsql SECURITY DEFINER AS $$ BEGIN EXECUTE sql; END $$;

Usage:
    from db_migrate.adapters.supabase import AsyncSupabaseAdapter

    adapter = AsyncSupabaseAdapter(
        url="https://xyzproject.supabase.co",
        key="eyJ...",
    )

    await adapter.upsert("users", rows, on_conflict="id")
    await adapter.close()
"""

import asyncio
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from db_migrate.errors import DestinationError

EXEC_SQL_FUNCTION = "exec_sql"


def to_json_value(value: Any) -> Any:
    """Convert a driver value into something PostgREST accepts as JSON.

    Example:
        >>> to_json_value(Decimal("1.50"))
        '1.50'
        >>> to_json_value(b"\\x01\\xff")
        '\\\\x01ff'
    """
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return f"{value.total_seconds()} seconds"
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        # bytea hex input format
        return "\\x" + bytes(value).hex()
    if isinstance(value, dict):
        return {k: to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(v) for v in value]
    return value


def to_json_row(row: dict) -> dict:
    """Serialize all values in a row dict."""
    return {k: to_json_value(v) for k, v in row.items()}


@contextmanager
def _destination_errors() -> Iterator[None]:
    """Translate PostgREST and transport errors into ``DestinationError``."""
    try:
        yield
    except APIError as e:
        raise DestinationError(e.message or str(e), code=e.code) from e
    except httpx.HTTPError as e:
        raise DestinationError(f"Request to Supabase failed: {e}") from e


class AsyncSupabaseAdapter:
    """Async Supabase implementation of the ``DestinationClient`` protocol.

    Wraps the Supabase Python async client.  The client is initialized
    lazily on first call using ``acreate_client`` protected by an
    ``asyncio.Lock``.

    Args:
        url: Supabase project URL.
        key: Supabase service role key (writes bypass row level security).

    Example:
        adapter = AsyncSupabaseAdapter(
            url="https://xyzproject.supabase.co",
            key="eyJhbGciOiJIUzI1NiIs...",
        )
        rows = await adapter.select("users", "id", filters={"id": 7}, limit=1)
        await adapter.close()
    """

    def __init__(self, url: str, key: str) -> None:
        self._url: str = url
        self._key: str = key
        self._client: AsyncClient | None = None
        self._lock: asyncio.Lock = asyncio.Lock()

    async def _get_client(self) -> AsyncClient:
        """Get or create the async Supabase client.

        Returns:
            Initialized ``AsyncClient``.
        """
        if self._client is None:
            async with self._lock:
                # Double-check after acquiring lock
                if self._client is None:
                    self._client = await acreate_client(self._url, self._key)
        return self._client

    # ------------------------------------------------------------------
    # Destination Methods
    # ------------------------------------------------------------------

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """Select rows from table using Supabase query builder."""
        client = await self._get_client()
        query = client.table(table).select(columns)

        if filters:
            for key, value in filters.items():
                query = query.eq(key, to_json_value(value))

        if limit is not None:
            query = query.limit(limit)

        with _destination_errors():
            result = await query.execute()
        return result.data

    async def insert(self, table: str, data: dict | list[dict]) -> None:
        """Insert one row or a list of rows in a single request."""
        client = await self._get_client()
        if isinstance(data, list):
            payload: dict | list[dict] = [to_json_row(r) for r in data]
        else:
            payload = to_json_row(data)

        with _destination_errors():
            await client.table(table).insert(payload).execute()

    async def upsert(self, table: str, rows: list[dict], on_conflict: str) -> None:
        """Insert-or-replace rows keyed on ``on_conflict``."""
        client = await self._get_client()
        payload = [to_json_row(r) for r in rows]

        with _destination_errors():
            await client.table(table).upsert(payload, on_conflict=on_conflict).execute()

    async def execute(self, sql: str) -> None:
        """Execute a raw SQL statement through the ``exec_sql`` RPC function."""
        client = await self._get_client()
        with _destination_errors():
            await client.rpc(EXEC_SQL_FUNCTION, {"sql": sql}).execute()

    async def test_connection(self) -> bool:
        """Round-trip to the project's REST endpoint with the service key.

        Returns:
            ``False`` if the endpoint cannot be reached.

        Raises:
            httpx.HTTPStatusError: If the endpoint answers with an error
                status (bad key, unknown project).
        """
        client = await self._get_client()
        try:
            response = await client.postgrest.session.get("/")
        except httpx.TransportError:
            return False
        response.raise_for_status()
        return True

    async def close(self) -> None:
        """Drop the Supabase async client.

        If the client was never initialized (no calls were made),
        this is a no-op.
        """
        if self._client is not None:
            await self._client.postgrest.aclose()
            self._client = None
