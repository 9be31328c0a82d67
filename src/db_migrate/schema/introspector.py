"""PostgreSQL schema introspection via information_schema.

This module queries the source database's metadata catalogs to extract:
- Base table names in a schema
- Columns (data type, nullability, default, character length)
- Primary key columns (in key order)
- Foreign key relations
- Columns whose default is a sequence generator (``nextval(...)``)

Queries go through the shared ``SourceClient`` so the run uses a single
source connection pool.
"""

from db_migrate.adapters.base import SourceClient, quote_ident
from db_migrate.errors import SchemaQueryError, SourceError
from db_migrate.schema.models import (
    ColumnSpec,
    ForeignKeySpec,
    KeySpec,
    SequenceSpec,
    TableStructure,
)

class SchemaIntrospector:
    """Introspects table structure from a PostgreSQL source.

    Usage:
        introspector = SchemaIntrospector(source, schema_name="public")
        tables = await introspector.list_tables()
        structure = await introspector.inspect("users")
    """

    def __init__(
        self,
        source: SourceClient,
        schema_name: str = "public",
        excluded_tables: set[str] | frozenset[str] | None = None,
    ):
        """Initialize with a source client.

        Args:
            source: Source client used for metadata queries.
            schema_name: PostgreSQL schema to read (default: public).
            excluded_tables: Tables never listed for migration.  Every base
                table is listed by default.
        """
        self._source = source
        self._schema_name = schema_name
        self._excluded_tables = frozenset(excluded_tables or ())

    async def list_tables(self) -> list[str]:
        """Get all base table names in the schema, ordered by name.

        Raises:
            SchemaQueryError: If the catalog query fails.
        """
        query = """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = :schema
              AND table_type = 'BASE TABLE'
            ORDER BY table_name
        """
        try:
            rows = await self._source.fetch(query, {"schema": self._schema_name})
        except Exception as e:
            raise SchemaQueryError(None, e) from e
        return [
            row["table_name"]
            for row in rows
            if row["table_name"] not in self._excluded_tables
        ]

    async def inspect(self, table_name: str) -> TableStructure:
        """Read the full structure of one table.

        All four metadata queries must succeed; otherwise nothing is
        returned.

        Raises:
            SchemaQueryError: If any metadata query fails.
        """
        try:
            columns = await self._get_columns(table_name)
            primary_keys = await self._get_primary_keys(table_name)
            foreign_keys = await self._get_foreign_keys(table_name)
            sequences = await self._get_sequences(table_name)
        except Exception as e:
            raise SchemaQueryError(table_name, e) from e

        return TableStructure(
            name=table_name,
            columns=tuple(columns),
            keys=KeySpec(
                primary_keys=tuple(primary_keys),
                foreign_keys=tuple(foreign_keys),
            ),
            sequences=tuple(sequences),
        )

    async def count_rows(self, table_name: str) -> int:
        """Exact row count of a source table.

        Raises:
            SourceError: If the count query fails.
        """
        qualified = f"{quote_ident(self._schema_name)}.{quote_ident(table_name)}"
        try:
            rows = await self._source.fetch(f"SELECT COUNT(*) AS count FROM {qualified}")
        except SourceError:
            raise
        except Exception as e:
            raise SourceError(e, table_name) from e
        return int(rows[0]["count"])

    async def _get_columns(self, table_name: str) -> list[ColumnSpec]:
        """Get columns for a table in declaration order."""
        query = """
            SELECT
                column_name,
                data_type,
                is_nullable,
                column_default,
                character_maximum_length
            FROM information_schema.columns
            WHERE table_schema = :schema
              AND table_name = :table
            ORDER BY ordinal_position
        """
        rows = await self._source.fetch(
            query, {"schema": self._schema_name, "table": table_name}
        )
        return [
            ColumnSpec(
                name=row["column_name"],
                data_type=row["data_type"],
                nullable=(row["is_nullable"] == "YES"),
                default=row["column_default"],
                max_length=row["character_maximum_length"],
            )
            for row in rows
        ]

    async def _get_primary_keys(self, table_name: str) -> list[str]:
        """Get primary key columns in key order."""
        query = """
            SELECT kcu.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
                ON tc.constraint_name = kcu.constraint_name
                AND tc.table_schema = kcu.table_schema
                AND tc.table_name = kcu.table_name
            WHERE tc.table_schema = :schema
              AND tc.table_name = :table
              AND tc.constraint_type = 'PRIMARY KEY'
            ORDER BY kcu.ordinal_position
        """
        rows = await self._source.fetch(
            query, {"schema": self._schema_name, "table": table_name}
        )
        keys: list[str] = []
        for row in rows:
            if row["column_name"] not in keys:
                keys.append(row["column_name"])
        return keys

    async def _get_foreign_keys(self, table_name: str) -> list[ForeignKeySpec]:
        """Get foreign key relations for a table."""
        query = """
            SELECT
                kcu.column_name,
                ccu.table_name AS foreign_table_name,
                ccu.column_name AS foreign_column_name
            FROM information_schema.table_constraints AS tc
            JOIN information_schema.key_column_usage AS kcu
                ON tc.constraint_name = kcu.constraint_name
                AND tc.table_schema = kcu.table_schema
            JOIN information_schema.constraint_column_usage AS ccu
                ON ccu.constraint_name = tc.constraint_name
                AND ccu.table_schema = tc.table_schema
            WHERE tc.constraint_type = 'FOREIGN KEY'
              AND tc.table_schema = :schema
              AND tc.table_name = :table
            ORDER BY tc.constraint_name, kcu.ordinal_position
        """
        rows = await self._source.fetch(
            query, {"schema": self._schema_name, "table": table_name}
        )
        return [
            ForeignKeySpec(
                column=row["column_name"],
                foreign_table=row["foreign_table_name"],
                foreign_column=row["foreign_column_name"],
            )
            for row in rows
        ]

    async def _get_sequences(self, table_name: str) -> list[SequenceSpec]:
        """Get columns whose default is a ``nextval(...)`` expression."""
        query = """
            SELECT column_name, column_default
            FROM information_schema.columns
            WHERE table_schema = :schema
              AND table_name = :table
              AND column_default LIKE 'nextval%'
            ORDER BY ordinal_position
        """
        rows = await self._source.fetch(
            query, {"schema": self._schema_name, "table": table_name}
        )
        return [
            SequenceSpec(column=row["column_name"], default=row["column_default"])
            for row in rows
        ]
