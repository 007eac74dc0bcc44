"""tessera schema models: columns, tables, registry and snapshots."""
from tessera.schema.column import (
    Column,
    ForeignKey,
    bigint,
    boolean,
    enum,
    integer,
    json_,
    real,
    serial,
    text,
    timestamp,
    varchar,
)
from tessera.schema.registry import SchemaRegistry
from tessera.schema.snapshot import SchemaSnapshot
from tessera.schema.table import ColumnCollection, Table
from tessera.types import ScalarType

__all__ = [
    "Column",
    "ColumnCollection",
    "ForeignKey",
    "ScalarType",
    "SchemaRegistry",
    "SchemaSnapshot",
    "Table",
    "bigint",
    "boolean",
    "enum",
    "integer",
    "json_",
    "real",
    "serial",
    "text",
    "timestamp",
    "varchar",
]
