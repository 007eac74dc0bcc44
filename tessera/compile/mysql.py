"""MySQL dialect compiler."""

from __future__ import annotations

from tessera.compile.base import SQLCompiler
from tessera.schema.column import Column
from tessera.types import ScalarType

_TYPES: dict[ScalarType, str] = {
    ScalarType.INTEGER: "INT",
    ScalarType.BIGINT: "BIGINT",
    ScalarType.SERIAL: "INT",
    ScalarType.TEXT: "TEXT",
    ScalarType.BOOLEAN: "BOOLEAN",
    ScalarType.REAL: "DOUBLE",
    ScalarType.TIMESTAMP: "DATETIME",
    ScalarType.JSON: "JSON",
}

# Largest LIMIT MySQL accepts; used when only OFFSET is given.
_MAX_LIMIT = "18446744073709551615"


class MySQLCompiler(SQLCompiler):
    """Compiles queries to MySQL-flavoured parameterized SQL.

    Parameter style: ``%s`` – compatible with ``PyMySQL`` and
    ``mysql-connector-python`` positional execution.

    Note: MySQL does not support ``ILIKE``; it is mapped to ``LIKE``.
    MySQL's ``LIKE`` is case-insensitive for non-binary TEXT/VARCHAR columns
    by default.  ``RETURNING``, ``FULL JOIN`` and ``NULLS FIRST/LAST`` are
    not available.

    Identifiers are quoted with backticks (`` ` ``) rather than double-quotes.
    """

    function_aliases = {"RANDOM": "RAND"}
    supports_returning = False
    supports_full_join = False
    supports_nulls_ordering = False
    autoincrement_keyword = "AUTO_INCREMENT"
    inline_references = False  # parsed but ignored by InnoDB

    @property
    def dialect_name(self) -> str:
        return "mysql"

    def placeholder(self, index: int) -> str:
        return "%s"

    def like_operator(self, op: str) -> str:
        return "LIKE"  # MySQL has no ILIKE; LIKE is case-insensitive for TEXT by default

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace("`", "``")
        return f"`{escaped}`"

    def limit_offset(self, limit_sql: str | None, offset_sql: str | None) -> list[str]:
        if offset_sql is not None and limit_sql is None:
            limit_sql = _MAX_LIMIT
        return super().limit_offset(limit_sql, offset_sql)

    def insert_keyword(self, ignore_conflicts: bool) -> str:
        return "INSERT IGNORE" if ignore_conflicts else "INSERT"

    def on_conflict(
        self,
        target: list[str],
        assignments: list[tuple[str, str]] | None,
    ) -> str | None:
        # MySQL resolves conflicts against every unique key; targets are ignored.
        if assignments is None:
            return None
        sets = ", ".join(f"{col} = {val}" for col, val in assignments)
        return f"ON DUPLICATE KEY UPDATE {sets}"

    def column_type(self, column: Column, table: str) -> str:
        if column.type is ScalarType.ENUM:
            values = ", ".join(self._quote_string(v) for v in column.enum_values)
            return f"ENUM({values})"
        if column.type is ScalarType.VARCHAR:
            return f"VARCHAR({column.length or 255})"
        return _TYPES[column.type]

    def alter_column_type(
        self, table: str, column: Column, definition: str, previous: Column | None = None
    ) -> list[str]:
        q = self.quote_identifier
        return [f"ALTER TABLE {q(table)} MODIFY COLUMN {definition}"]

    def alter_column_nullability(self, table: str, column: Column, definition: str) -> list[str]:
        q = self.quote_identifier
        return [f"ALTER TABLE {q(table)} MODIFY COLUMN {definition}"]
