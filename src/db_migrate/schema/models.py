"""Pydantic models describing a source table's structure.

A ``TableStructure`` is built fresh for every table that has to be
created in the destination, and is immutable once constructed.
"""

from pydantic import BaseModel, ConfigDict, Field


class ColumnSpec(BaseModel):
    """Schema for a source column.

    Example:
        >>> col = ColumnSpec(name="email", data_type="character varying", max_length=255)
        >>> col.nullable
        True
    """

    model_config = ConfigDict(frozen=True)

    name: str
    data_type: str
    nullable: bool = True
    default: str | None = None
    max_length: int | None = None  # character types only


class ForeignKeySpec(BaseModel):
    """Single-column foreign key relation."""

    model_config = ConfigDict(frozen=True)

    column: str
    foreign_table: str
    foreign_column: str


class KeySpec(BaseModel):
    """Primary and foreign keys of a table."""

    model_config = ConfigDict(frozen=True)

    primary_keys: tuple[str, ...] = ()
    foreign_keys: tuple[ForeignKeySpec, ...] = ()


class SequenceSpec(BaseModel):
    """A column whose default draws from a sequence (``nextval(...)``)."""

    model_config = ConfigDict(frozen=True)

    column: str
    default: str


class TableStructure(BaseModel):
    """Schema for a source table: columns, keys, and sequence-backed columns."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: tuple[ColumnSpec, ...] = ()
    keys: KeySpec = Field(default_factory=KeySpec)
    sequences: tuple[SequenceSpec, ...] = ()

    @property
    def sequence_columns(self) -> frozenset[str]:
        """Names of columns owned by a sequence."""
        return frozenset(s.column for s in self.sequences)
