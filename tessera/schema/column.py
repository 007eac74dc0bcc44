"""Column definitions and the column constructor helpers.

Columns are immutable pydantic models.  Constructors take the column name
first and describe constraints with keyword arguments::

    from tessera.schema import integer, serial, text

    id_ = serial("id", primary_key=True)
    full_name = text("full_name", nullable=False)
    org_id = integer("org_id", references="orgs.id", on_delete="CASCADE")

A column learns its owning table when the table is registered; until then
``Column.table`` is ``None``.
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from tessera.types import AUTO_INCREMENT_TYPES, ScalarType

#: Referential actions accepted in ``ON DELETE``.
OnDelete = Literal["CASCADE", "SET NULL", "RESTRICT", "NO ACTION"]


class ForeignKey(BaseModel):
    """A reference from a column to ``table.column``.

    Attributes:
        table: Referenced table name.
        column: Referenced column name.
        on_delete: Optional referential action.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    table: str
    column: str
    on_delete: OnDelete | None = None

    @classmethod
    def parse(cls, ref: str, on_delete: OnDelete | None = None) -> ForeignKey:
        """Parse a ``"table.column"`` string.

        Raises:
            ValueError: If ``ref`` is not qualified.
        """
        table, sep, column = ref.partition(".")
        if not sep or not table or not column:
            raise ValueError(f"Foreign key reference must be 'table.column', got {ref!r}.")
        return cls(table=table, column=column, on_delete=on_delete)

    def __str__(self) -> str:
        return f"{self.table}.{self.column}"


class Column(BaseModel):
    """Metadata for a single column.

    Attributes:
        name: Column name.
        type: Logical scalar type.
        table: Owning table, set on registration.
        nullable: Whether the column accepts NULL.  Primary-key and serial
            columns are always NOT NULL.
        default: Literal default value rendered into DDL.
        default_sql: SQL expression default (e.g. ``CURRENT_TIMESTAMP``);
            takes precedence over ``default``.
        primary_key: Column is (part of) the primary key.
        unique: Column carries a UNIQUE constraint.
        references: Optional foreign key.
        length: Maximum length for ``varchar`` columns.
        enum_values: Allowed values for ``enum`` columns, in order.
        enum_name: Database type name for enum columns (postgres).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    type: ScalarType
    table: str | None = None
    nullable: bool = True
    default: Any = None
    default_sql: str | None = None
    primary_key: bool = False
    unique: bool = False
    references: ForeignKey | None = None
    length: int | None = None
    enum_values: tuple[str, ...] = ()
    enum_name: str | None = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not value:
            raise ValueError("Column name must not be empty.")
        return value

    @model_validator(mode="before")
    @classmethod
    def _implicit_not_null(cls, data: Any) -> Any:
        """Primary-key and auto-increment columns are never nullable."""
        if not isinstance(data, dict):
            return data
        try:
            auto = ScalarType(data.get("type")) in AUTO_INCREMENT_TYPES
        except ValueError:
            return data
        if data.get("primary_key") or auto:
            data = {**data, "nullable": False}
        return data

    @model_validator(mode="after")
    def _check_type_options(self) -> Column:
        if self.type is ScalarType.ENUM and not self.enum_values:
            raise ValueError(f"Enum column '{self.name}' needs at least one value.")
        if self.type is not ScalarType.ENUM and self.enum_values:
            raise ValueError(f"Column '{self.name}' is not an enum but has enum values.")
        if self.length is not None and self.length <= 0:
            raise ValueError(f"Column '{self.name}' length must be positive.")
        return self

    @property
    def qualified_name(self) -> str:
        """``table.column`` when the table is known, else the bare name."""
        return f"{self.table}.{self.name}" if self.table else self.name

    @property
    def has_default(self) -> bool:
        """True when the database supplies a value on insert."""
        return (
            self.default is not None
            or self.default_sql is not None
            or self.type in AUTO_INCREMENT_TYPES
        )

    def bind(self, table: str) -> Column:
        """Return a copy of this column owned by ``table``."""
        return self.model_copy(update={"table": table})


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------


def _make(
    name: str,
    type_: ScalarType,
    *,
    references: str | ForeignKey | None = None,
    on_delete: OnDelete | None = None,
    **kwargs: Any,
) -> Column:
    fk: ForeignKey | None
    if isinstance(references, str):
        fk = ForeignKey.parse(references, on_delete=on_delete)
    elif references is not None and on_delete is not None:
        fk = references.model_copy(update={"on_delete": on_delete})
    else:
        fk = references
    return Column(name=name, type=type_, references=fk, **kwargs)


def integer(name: str, **kwargs: Any) -> Column:
    """An ``integer`` column."""
    return _make(name, ScalarType.INTEGER, **kwargs)


def bigint(name: str, **kwargs: Any) -> Column:
    """A ``bigint`` column."""
    return _make(name, ScalarType.BIGINT, **kwargs)


def serial(name: str, **kwargs: Any) -> Column:
    """An auto-increment integer column (implicitly NOT NULL)."""
    return _make(name, ScalarType.SERIAL, **kwargs)


def text(name: str, **kwargs: Any) -> Column:
    """A ``text`` column."""
    return _make(name, ScalarType.TEXT, **kwargs)


def varchar(name: str, length: int = 255, **kwargs: Any) -> Column:
    """A ``varchar(length)`` column."""
    return _make(name, ScalarType.VARCHAR, length=length, **kwargs)


def boolean(name: str, **kwargs: Any) -> Column:
    """A ``boolean`` column."""
    return _make(name, ScalarType.BOOLEAN, **kwargs)


def real(name: str, **kwargs: Any) -> Column:
    """A double-precision floating point column."""
    return _make(name, ScalarType.REAL, **kwargs)


def timestamp(name: str, **kwargs: Any) -> Column:
    """A ``timestamp`` column (read back as :class:`datetime.datetime`)."""
    return _make(name, ScalarType.TIMESTAMP, **kwargs)


def json_(name: str, **kwargs: Any) -> Column:
    """A JSON document column."""
    return _make(name, ScalarType.JSON, **kwargs)


def enum(name: str, values: tuple[str, ...] | list[str], **kwargs: Any) -> Column:
    """An enum column restricted to ``values``."""
    return _make(name, ScalarType.ENUM, enum_values=tuple(values), **kwargs)


#: Column fields compared by the migration differ, grouped by change kind.
STRUCTURAL_FIELDS: tuple[str, ...] = ("type", "length", "enum_values")
CONSTRAINT_FIELDS: tuple[str, ...] = ("primary_key", "unique", "references")
DEFAULT_FIELDS: tuple[str, ...] = ("default", "default_sql")
