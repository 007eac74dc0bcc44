"""Logical scalar types shared by the schema, expression and compiler layers.

Dialect compilers map each :class:`ScalarType` to a concrete column type
when generating DDL; the executor maps each one back to a Python type when
reading rows.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any


class ScalarType(str, Enum):
    """Logical column type tag."""

    INTEGER = "integer"
    BIGINT = "bigint"
    SERIAL = "serial"
    TEXT = "text"
    VARCHAR = "varchar"
    BOOLEAN = "boolean"
    REAL = "real"
    TIMESTAMP = "timestamp"
    JSON = "json"
    ENUM = "enum"


#: Types stored as integers whose values the database generates.
AUTO_INCREMENT_TYPES: frozenset[ScalarType] = frozenset({ScalarType.SERIAL})

#: Types whose Python representation is ``str``.
STRING_TYPES: frozenset[ScalarType] = frozenset(
    {ScalarType.TEXT, ScalarType.VARCHAR, ScalarType.ENUM}
)

#: Python type each scalar type maps to when rows are read back.
PYTHON_TYPES: dict[ScalarType, Any] = {
    ScalarType.INTEGER: int,
    ScalarType.BIGINT: int,
    ScalarType.SERIAL: int,
    ScalarType.TEXT: str,
    ScalarType.VARCHAR: str,
    ScalarType.BOOLEAN: bool,
    ScalarType.REAL: float,
    ScalarType.TIMESTAMP: datetime,
    ScalarType.JSON: Any,
    ScalarType.ENUM: str,
}
