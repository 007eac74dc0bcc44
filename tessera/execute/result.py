"""Row mapping and the :class:`Result` returned by the executors.

Raw driver values are converted to each column's Python type with pydantic
``TypeAdapter`` instances: booleans stored as integers, JSON stored as text,
timestamps stored as ISO text and enum values are all normalised here.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, Iterator, Literal, TypeVar

from pydantic import BaseModel, Json, TypeAdapter, ValidationError

from tessera.compile.base import ResultColumn
from tessera.errors import ResultMappingError
from tessera.execute.protocols import DriverResult
from tessera.types import PYTHON_TYPES, ScalarType

ModelT = TypeVar("ModelT", bound=BaseModel)

_JSON_TEXT = TypeAdapter(Json[Any])


@lru_cache(maxsize=None)
def _adapter(type_: ScalarType, enum_values: tuple[str, ...]) -> TypeAdapter[Any]:
    if type_ is ScalarType.ENUM and enum_values:
        return TypeAdapter(Literal[enum_values])  # type: ignore[valid-type]
    if type_ is ScalarType.TIMESTAMP:
        return TypeAdapter(datetime)
    return TypeAdapter(PYTHON_TYPES[type_])


def convert_value(column: ResultColumn, value: Any) -> Any:
    """Convert one raw value to the Python type of ``column``.

    Raises:
        ResultMappingError: If the value does not fit the column type.
    """
    if value is None or column.type is None:
        return value
    try:
        if column.type is ScalarType.JSON:
            if isinstance(value, (str, bytes, bytearray)):
                return _JSON_TEXT.validate_python(value)
            return value
        return _adapter(column.type, column.enum_values).validate_python(value)
    except ValidationError as exc:
        raise ResultMappingError(column.key, value, str(exc)) from exc


def map_rows(
    raw: DriverResult, columns: tuple[ResultColumn, ...]
) -> list[dict[str, Any]]:
    """Turn driver rows into records keyed by result column.

    Columns with a ``group`` are nested under that key, so a select over
    joined tables yields ``{"users": {...}, "posts": {...}}``.  Without a
    known shape the driver's column names are used and values pass through.

    Raises:
        ResultMappingError: If the row width does not match the shape, or a
            value cannot be converted.
    """
    if not columns:
        return [dict(zip(raw.columns, row)) for row in raw.rows]

    records: list[dict[str, Any]] = []
    for row in raw.rows:
        if len(row) != len(columns):
            raise ResultMappingError(
                "<row>", row, f"expected {len(columns)} values, got {len(row)}"
            )
        record: dict[str, Any] = {}
        for col, value in zip(columns, row):
            converted = convert_value(col, value)
            if col.group is None:
                record[col.key] = converted
            else:
                record.setdefault(col.group, {})[col.key] = converted
        records.append(record)
    return records


@dataclass(frozen=True)
class Result:
    """Rows and counts produced by executing one statement.

    Attributes:
        rows: Converted records, in the order the database returned them.
        rowcount: Rows affected (DML) or returned (SELECT).
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0

    def first(self) -> dict[str, Any] | None:
        """Return the first record, or ``None`` when there are no rows."""
        return self.rows[0] if self.rows else None

    def one(self) -> dict[str, Any]:
        """Return the only record.

        Raises:
            ValueError: If there is not exactly one row.
        """
        if len(self.rows) != 1:
            raise ValueError(f"Expected exactly one row, got {len(self.rows)}.")
        return self.rows[0]

    def scalar(self) -> Any:
        """Return the first value of the first record, or ``None``."""
        row = self.first()
        if not row:
            return None
        return next(iter(row.values()))

    def models(self, model: type[ModelT]) -> list[ModelT]:
        """Validate every record into ``model`` (e.g. ``Table.record_model()``)."""
        return [model.model_validate(row) for row in self.rows]

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)
