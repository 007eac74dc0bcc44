"""Compiler abstractions: CompiledSQL and the SQLCompiler ABC.

The Template Method pattern (GoF) is used:
- ``SQLCompiler`` defines the default rendering for every dialect-sensitive
  step (placeholders, quoting, LIMIT/OFFSET, conflict handling, column types).
- ``PostgresCompiler``, ``SQLiteCompiler`` and ``MySQLCompiler`` override the
  steps where their dialect differs.
"""
from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping

from tessera.errors import CompilationError, MissingParamError
from tessera.schema.column import Column
from tessera.types import ScalarType

_KEYWORD = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ---------------------------------------------------------------------------
# Compilation output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParamSlot:
    """A named placeholder in ``CompiledSQL.params`` awaiting a runtime value."""

    name: str


@dataclass(frozen=True)
class ResultColumn:
    """Describes one column of the rows a statement returns.

    Attributes:
        key: Record key for the value (alias or column name).
        type: Logical type used to convert the raw value, if known.
        enum_values: Allowed values when ``type`` is ``enum``.
        group: Nesting key; set when a select without explicit projection
            spans several tables, so each table's columns form a sub-record.
    """

    key: str
    type: ScalarType | None = None
    enum_values: tuple[str, ...] = ()
    group: str | None = None


@dataclass(frozen=True)
class CompiledSQL:
    """The output of a successful compilation.

    Attributes:
        sql: The compiled SQL string with positional placeholders.
        params: Parameter values in placeholder order.  Runtime placeholders
            appear as :class:`ParamSlot` markers until :meth:`bind` is called.
        dialect: The target dialect.
        columns: Shape of the returned rows, if the statement returns rows.
    """

    sql: str
    params: tuple[Any, ...]
    dialect: str
    columns: tuple[ResultColumn, ...] = ()

    @property
    def placeholders(self) -> list[str]:
        """Names of the runtime placeholders, in order of first use."""
        names: list[str] = []
        for p in self.params:
            if isinstance(p, ParamSlot) and p.name not in names:
                names.append(p.name)
        return names

    def bind(self, runtime: Mapping[str, Any] | None = None) -> tuple[Any, ...]:
        """Return the final positional parameters.

        Args:
            runtime: Values for named placeholders.

        Returns:
            ``params`` with every :class:`ParamSlot` replaced.

        Raises:
            MissingParamError: If a placeholder has no value in ``runtime``.
        """
        runtime = runtime or {}
        bound: list[Any] = []
        for p in self.params:
            if isinstance(p, ParamSlot):
                if p.name not in runtime:
                    raise MissingParamError(p.name, sorted(runtime))
                bound.append(runtime[p.name])
            else:
                bound.append(p)
        return tuple(bound)


# ---------------------------------------------------------------------------
# Dialect strategy
# ---------------------------------------------------------------------------


class SQLCompiler(ABC):
    """Abstract base for dialect-specific SQL rendering.

    The ``QueryCompiler`` and ``DDLCompiler`` use this interface via the
    Strategy / Template Method patterns.
    """

    #: SQL function renames applied when rendering function calls.
    function_aliases: dict[str, str] = {}

    #: Whether ``INSERT/UPDATE/DELETE ... RETURNING`` is available.
    supports_returning: bool = True

    #: Whether ``FULL [OUTER] JOIN`` is available.
    supports_full_join: bool = True

    #: Whether ``NULLS FIRST/LAST`` is available in ORDER BY.
    supports_nulls_ordering: bool = True

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the canonical dialect name."""

    @abstractmethod
    def placeholder(self, index: int) -> str:
        """Return the placeholder for the ``index``-th parameter (1-based)."""

    @abstractmethod
    def quote_identifier(self, name: str) -> str:
        """Return a properly-quoted SQL identifier."""

    def like_operator(self, op: str) -> str:
        """Return the SQL keyword for ``LIKE`` / ``ILIKE``."""
        return op

    # ------------------------------------------------------------------
    # Query rendering hooks
    # ------------------------------------------------------------------

    def build_func_call(self, name: str, args_sql: list[str], distinct: bool = False) -> str:
        """Render ``NAME([DISTINCT] args)``; ``COUNT()`` becomes ``COUNT(*)``."""
        name = self.function_aliases.get(name, name)
        if not args_sql and name == "COUNT":
            return "COUNT(*)"
        prefix = "DISTINCT " if distinct else ""
        return f"{name}({prefix}{', '.join(args_sql)})"

    def limit_offset(self, limit_sql: str | None, offset_sql: str | None) -> list[str]:
        """Render the LIMIT / OFFSET lines."""
        parts: list[str] = []
        if limit_sql is not None:
            parts.append(f"LIMIT {limit_sql}")
        if offset_sql is not None:
            parts.append(f"OFFSET {offset_sql}")
        return parts

    def insert_keyword(self, ignore_conflicts: bool) -> str:
        """Return the leading keyword of an INSERT statement."""
        return "INSERT"

    def on_conflict(
        self,
        target: list[str],
        assignments: list[tuple[str, str]] | None,
    ) -> str | None:
        """Render the conflict clause that follows the VALUES list.

        Args:
            target: Quoted conflict target columns.
            assignments: Quoted ``(column, value_sql)`` pairs, or ``None``
                for DO NOTHING.
        """
        target_sql = f" ({', '.join(target)})" if target else ""
        if assignments is None:
            return f"ON CONFLICT{target_sql} DO NOTHING"
        if not target:
            raise CompilationError(
                "ON CONFLICT DO UPDATE requires conflict target columns.",
                clause="ON CONFLICT",
            )
        sets = ", ".join(f"{col} = {val}" for col, val in assignments)
        return f"ON CONFLICT{target_sql} DO UPDATE SET {sets}"

    # ------------------------------------------------------------------
    # DDL rendering hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def column_type(self, column: Column, table: str) -> str:
        """Return the dialect column type for ``column``."""

    #: Keyword appended for auto-increment columns, and whether it must
    #: follow ``PRIMARY KEY``.
    autoincrement_keyword: str = ""
    autoincrement_after_primary_key: bool = False

    #: Whether a column-level ``REFERENCES`` clause creates a foreign key.
    inline_references: bool = True

    #: Whether ``ALTER TABLE ... ADD COLUMN`` accepts an inline UNIQUE.
    unique_on_add_column: bool = True

    def render_literal(self, value: Any) -> str:
        """Render a Python value as an inline SQL literal (DDL only).

        Raises:
            CompilationError: For values with no literal form.
        """
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        if isinstance(value, (int, float)):
            return repr(value)
        if isinstance(value, (datetime, date)):
            return self._quote_string(value.isoformat())
        if isinstance(value, str):
            return self._quote_string(value)
        if isinstance(value, (dict, list)):
            return self._quote_string(json.dumps(value, sort_keys=True))
        raise CompilationError(f"Cannot render {type(value).__name__} as a SQL literal.")

    def render_default_sql(self, expression: str) -> str:
        """Wrap a default expression in parentheses unless it is a keyword."""
        if _KEYWORD.match(expression):
            return expression
        return f"({expression})"

    def default_clause(self, column: Column) -> str | None:
        """Return the rendered default of ``column``, or ``None``."""
        if column.default_sql is not None:
            return self.render_default_sql(column.default_sql)
        if column.default is not None:
            return self.render_literal(column.default)
        return None

    def enum_check(self, column: Column) -> str | None:
        """Return a CHECK constraint emulating an enum, if the dialect needs one."""
        return None

    def create_enum_types(self, column: Column, table: str) -> list[str]:
        """Statements that must run before a table using ``column`` is created."""
        return []

    def drop_enum_types(self, column: Column, table: str) -> list[str]:
        """Statements that must run after a table using ``column`` is dropped."""
        return []

    def alter_column_type(
        self, table: str, column: Column, definition: str, previous: Column | None = None
    ) -> list[str]:
        """Change ``column`` to its new type; ``previous`` is its old definition."""
        q = self.quote_identifier
        type_sql = self.column_type(column, table)
        return [
            f"ALTER TABLE {q(table)} ALTER COLUMN {q(column.name)} TYPE {type_sql} "
            f"USING {q(column.name)}::{type_sql}"
        ]

    def alter_column_nullability(self, table: str, column: Column, definition: str) -> list[str]:
        q = self.quote_identifier
        action = "DROP NOT NULL" if column.nullable else "SET NOT NULL"
        return [f"ALTER TABLE {q(table)} ALTER COLUMN {q(column.name)} {action}"]

    def alter_column_default(self, table: str, column: Column, default_sql: str | None) -> list[str]:
        q = self.quote_identifier
        action = f"SET DEFAULT {default_sql}" if default_sql is not None else "DROP DEFAULT"
        return [f"ALTER TABLE {q(table)} ALTER COLUMN {q(column.name)} {action}"]

    def rename_column(
        self, table: str, old: str, new: str, column: Column | None = None
    ) -> list[str]:
        q = self.quote_identifier
        return [f"ALTER TABLE {q(table)} RENAME COLUMN {q(old)} TO {q(new)}"]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _quote_string(value: str) -> str:
        escaped = value.replace("'", "''")
        return f"'{escaped}'"
