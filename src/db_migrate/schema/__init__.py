"""Schema discovery and materialization.

Provides live source introspection (``SchemaIntrospector``) and DDL
rendering / application for the destination (``build_create_table_sql``,
``materialize``).

Usage:
    from db_migrate.schema import SchemaIntrospector, materialize
"""

from db_migrate.schema.ddl import (
    SequenceDdl,
    build_create_table_sql,
    materialize,
    render_column,
    render_type,
    sequence_name,
)
from db_migrate.schema.introspector import SchemaIntrospector
from db_migrate.schema.models import (
    ColumnSpec,
    ForeignKeySpec,
    KeySpec,
    SequenceSpec,
    TableStructure,
)

__all__ = [
    "SchemaIntrospector",
    "ColumnSpec",
    "ForeignKeySpec",
    "KeySpec",
    "SequenceSpec",
    "TableStructure",
    "SequenceDdl",
    "build_create_table_sql",
    "materialize",
    "render_column",
    "render_type",
    "sequence_name",
]
