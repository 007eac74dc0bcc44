"""Table definitions and the ``table.c`` column accessor."""
from __future__ import annotations

from typing import Any, Iterator, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, create_model

from tessera.errors import UnknownColumnError
from tessera.expr.nodes import ColumnExpr
from tessera.schema.column import Column
from tessera.types import PYTHON_TYPES, ScalarType


class ColumnCollection:
    """Attribute and item access to a table's columns as expressions.

    ``users.c.id`` and ``users.c["id"]`` both return a
    :class:`~tessera.expr.nodes.ColumnExpr` qualified by the table's
    visible name (its alias, when aliased).
    """

    def __init__(self, table: Table) -> None:
        self._table = table

    def __getattr__(self, name: str) -> ColumnExpr:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

    def __getitem__(self, name: str) -> ColumnExpr:
        col = self._table.get_column(name)
        return ColumnExpr(table=self._table.ref_name, column=col.name, type=col.type)

    def __iter__(self) -> Iterator[ColumnExpr]:
        for col in self._table.columns:
            yield self[col.name]

    def __len__(self) -> int:
        return len(self._table.columns)

    def __contains__(self, name: object) -> bool:
        return name in self._table.column_names


class Table(BaseModel):
    """An immutable table definition.

    Obtain tables from :meth:`~tessera.schema.registry.SchemaRegistry.register`
    rather than constructing them directly.

    Attributes:
        name: Table name.
        columns: Columns in declaration order.
        primary_key: Composite primary key column names.  Filled from
            column-level ``primary_key`` flags when not given explicitly.
        unique: Composite UNIQUE constraints.
        alias: Alias used when the table appears in a query under another
            name (self joins); ``None`` for registered tables.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    columns: tuple[Column, ...]
    primary_key: tuple[str, ...] = ()
    unique: tuple[tuple[str, ...], ...] = Field(default_factory=tuple)
    alias: str | None = None

    @property
    def c(self) -> ColumnCollection:
        """Column expressions for use in queries."""
        return ColumnCollection(self)

    @property
    def ref_name(self) -> str:
        """The name columns of this table are qualified with in SQL."""
        return self.alias or self.name

    @property
    def column_names(self) -> list[str]:
        """Returns all column names for this table."""
        return [c.name for c in self.columns]

    def get_column(self, name: str) -> Column:
        """Return the named column.

        Raises:
            UnknownColumnError: If the table has no such column.
        """
        for col in self.columns:
            if col.name == name:
                return col
        raise UnknownColumnError(self.name, name, self.column_names)

    def has_column(self, name: str) -> bool:
        return name in self.column_names

    def as_alias(self, alias: str) -> Table:
        """Return this table under ``alias`` (e.g. for self joins)."""
        return self.model_copy(update={"alias": alias})

    def record_model(self) -> type[BaseModel]:
        """Return a pydantic model class describing one row of this table.

        Nullable columns, and columns the database fills in, are optional.
        """
        return _record_model(self.model_copy(update={"alias": None}))


_RECORD_MODELS: dict[str, type[BaseModel]] = {}


def _record_model(table: Table) -> type[BaseModel]:
    key = table.model_dump_json()
    cached = _RECORD_MODELS.get(key)
    if cached is not None:
        return cached
    fields: dict[str, Any] = {}
    for col in table.columns:
        py_type: Any = PYTHON_TYPES[col.type]
        if col.type is ScalarType.ENUM:
            py_type = Literal[col.enum_values]
        if col.nullable or col.has_default:
            fields[col.name] = (Optional[py_type], None)
        else:
            fields[col.name] = (py_type, ...)
    model = create_model(
        _model_name(table.name),
        __config__=ConfigDict(extra="ignore"),
        **fields,
    )
    _RECORD_MODELS[key] = model
    return model


def _model_name(table_name: str) -> str:
    parts = [p for p in table_name.replace("-", "_").split("_") if p]
    return "".join(p[:1].upper() + p[1:] for p in parts) + "Record"
