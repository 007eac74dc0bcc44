"""SQLite dialect compiler."""
from __future__ import annotations

from typing import Any

from tessera.compile.base import SQLCompiler
from tessera.errors import CompilationError
from tessera.schema.column import Column
from tessera.types import ScalarType

_TYPES: dict[ScalarType, str] = {
    ScalarType.INTEGER: "INTEGER",
    ScalarType.BIGINT: "INTEGER",
    ScalarType.SERIAL: "INTEGER",
    ScalarType.TEXT: "TEXT",
    ScalarType.BOOLEAN: "INTEGER",
    ScalarType.REAL: "REAL",
    ScalarType.TIMESTAMP: "TEXT",
    ScalarType.JSON: "TEXT",
    ScalarType.ENUM: "TEXT",
}


class SQLiteCompiler(SQLCompiler):
    """Compiles queries to SQLite-flavoured parameterized SQL.

    Parameter style: ``?`` – compatible with Python's built-in ``sqlite3``
    positional execution (``cursor.execute(sql, params)``).

    Note: SQLite does not support ``ILIKE``; it is mapped to ``LIKE``.
    SQLite's ``LIKE`` is case-insensitive for ASCII by default.  Enums are
    emulated with a ``CHECK`` constraint, and ``ALTER COLUMN`` is not
    available, so type, nullability and default changes cannot be migrated
    in place.  A UNIQUE column added to an existing table gets a
    separate unique index.
    """

    function_aliases = {"RAND": "RANDOM"}
    autoincrement_keyword = "AUTOINCREMENT"
    autoincrement_after_primary_key = True
    unique_on_add_column = False  # added via CREATE UNIQUE INDEX instead

    @property
    def dialect_name(self) -> str:
        return "sqlite"

    def placeholder(self, index: int) -> str:
        return "?"

    def like_operator(self, op: str) -> str:
        return "LIKE"  # SQLite has no ILIKE; fall back to LIKE

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace('"', '""')
        return f'"{escaped}"'

    def limit_offset(self, limit_sql: str | None, offset_sql: str | None) -> list[str]:
        # SQLite only accepts OFFSET after a LIMIT; -1 means "no limit".
        if offset_sql is not None and limit_sql is None:
            limit_sql = "-1"
        return super().limit_offset(limit_sql, offset_sql)

    def column_type(self, column: Column, table: str) -> str:
        if column.type is ScalarType.VARCHAR:
            return f"VARCHAR({column.length or 255})"
        return _TYPES[column.type]

    def render_literal(self, value: Any) -> str:
        if isinstance(value, bool):
            return "1" if value else "0"
        return super().render_literal(value)

    def enum_check(self, column: Column) -> str | None:
        if column.type is not ScalarType.ENUM:
            return None
        values = ", ".join(self._quote_string(v) for v in column.enum_values)
        return f"CHECK ({self.quote_identifier(column.name)} IN ({values}))"

    def alter_column_type(
        self, table: str, column: Column, definition: str, previous: Column | None = None
    ) -> list[str]:
        raise CompilationError(
            f"SQLite cannot change the type of {table}.{column.name} in place; "
            "write a manual table-rebuild migration.",
            clause="ALTER COLUMN",
        )

    def alter_column_nullability(self, table: str, column: Column, definition: str) -> list[str]:
        raise CompilationError(
            f"SQLite cannot change the nullability of {table}.{column.name} in place; "
            "write a manual table-rebuild migration.",
            clause="ALTER COLUMN",
        )

    def alter_column_default(self, table: str, column: Column, default_sql: str | None) -> list[str]:
        raise CompilationError(
            f"SQLite cannot change the default of {table}.{column.name} in place; "
            "write a manual table-rebuild migration.",
            clause="ALTER COLUMN",
        )
