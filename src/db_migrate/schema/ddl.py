"""Render a ``TableStructure`` as destination DDL and apply it.

Builds one idempotent ``CREATE TABLE IF NOT EXISTS`` statement per table,
then attaches sequences to their columns.  DDL goes through the
``DestinationClient.execute()`` Protocol method.

Usage:
    from db_migrate.schema.ddl import build_create_table_sql, materialize

    structure = await introspector.inspect("users")
    print(build_create_table_sql(structure))
    await materialize(destination, structure)
"""

import logging
from dataclasses import dataclass

from db_migrate.adapters.base import DestinationClient, quote_ident
from db_migrate.errors import DdlExecutionError
from db_migrate.schema.models import ColumnSpec, SequenceSpec, TableStructure

logger = logging.getLogger(__name__)

# information_schema data_type -> short name that accepts a length modifier
_LENGTH_TYPES = {
    "character varying": "varchar",
    "character": "char",
}


@dataclass
class SequenceDdl:
    """Statements that create a sequence and bind it to a column.

    Example:
        ddl = SequenceDdl.for_column("users", SequenceSpec(column="id", default="..."))
        ddl.name
        # 'users_id_seq'
    """

    table: str
    column: str
    name: str

    @classmethod
    def for_column(cls, table: str, sequence: SequenceSpec) -> "SequenceDdl":
        return cls(table=table, column=sequence.column, name=sequence_name(table, sequence.column))

    def create_sql(self) -> str:
        return (
            f"CREATE SEQUENCE IF NOT EXISTS {quote_ident(self.name)} "
            "START WITH 1 INCREMENT BY 1 NO MINVALUE NO MAXVALUE CACHE 1"
        )

    def set_default_sql(self) -> str:
        # nextval takes a regclass literal, so the quoted name goes inside single quotes
        regclass = quote_ident(self.name).replace("'", "''")
        return (
            f"ALTER TABLE {quote_ident(self.table)} "
            f"ALTER COLUMN {quote_ident(self.column)} "
            f"SET DEFAULT nextval('{regclass}')"
        )


def sequence_name(table: str, column: str) -> str:
    """Deterministic sequence name for a table column."""
    return f"{table}_{column}_seq"


def render_type(column: ColumnSpec) -> str:
    """Column type with any character length folded in.

    Example:
        >>> render_type(ColumnSpec(name="n", data_type="character varying", max_length=40))
        'varchar(40)'
        >>> render_type(ColumnSpec(name="n", data_type="integer"))
        'integer'
    """
    short = _LENGTH_TYPES.get(column.data_type.lower())
    if short and column.max_length:
        return f"{short}({column.max_length})"
    return column.data_type


def render_column(column: ColumnSpec, sequence_columns: frozenset[str] = frozenset()) -> str:
    """Render one column definition.

    Sequence-backed defaults are left out; the sequence is attached after
    the table exists.
    """
    definition = f"{quote_ident(column.name)} {render_type(column)}"

    if not column.nullable:
        definition += " NOT NULL"

    if column.default is not None and column.name not in sequence_columns:
        if "nextval" not in column.default:
            definition += f" DEFAULT {column.default}"

    return definition


def build_create_table_sql(structure: TableStructure) -> str:
    """Build the ``CREATE TABLE IF NOT EXISTS`` statement for a table."""
    parts = [render_column(c, structure.sequence_columns) for c in structure.columns]

    if structure.keys.primary_keys:
        pk_cols = ", ".join(quote_ident(pk) for pk in structure.keys.primary_keys)
        parts.append(f"PRIMARY KEY ({pk_cols})")

    for fk in structure.keys.foreign_keys:
        parts.append(
            f"FOREIGN KEY ({quote_ident(fk.column)}) "
            f"REFERENCES {quote_ident(fk.foreign_table)} ({quote_ident(fk.foreign_column)})"
        )

    body = ",\n    ".join(parts)
    return f"CREATE TABLE IF NOT EXISTS {quote_ident(structure.name)} (\n    {body}\n)"


async def _execute(destination: DestinationClient, table: str, sql: str) -> None:
    # NotImplementedError (adapter without DDL) is reported the same way
    try:
        await destination.execute(sql)
    except Exception as e:
        raise DdlExecutionError(table, sql, e) from e


async def materialize(destination: DestinationClient, structure: TableStructure) -> int:
    """Create the table, then each of its sequences, in the destination.

    Sequence processing stops at the first failure.

    Args:
        destination: Destination client with DDL support.
        structure: Table structure read from the source.

    Returns:
        Number of sequences attached.

    Raises:
        DdlExecutionError: If the destination rejects any statement.
    """
    await _execute(destination, structure.name, build_create_table_sql(structure))
    logger.info("Created table %s", structure.name, extra={"table": structure.name})

    for sequence in structure.sequences:
        ddl = SequenceDdl.for_column(structure.name, sequence)
        await _execute(destination, structure.name, ddl.create_sql())
        await _execute(destination, structure.name, ddl.set_default_sql())
        logger.info(
            "Attached sequence %s to %s.%s", ddl.name, structure.name, ddl.column,
            extra={"table": structure.name},
        )

    return len(structure.sequences)
