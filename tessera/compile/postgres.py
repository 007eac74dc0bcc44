"""PostgreSQL dialect compiler."""

from __future__ import annotations

from tessera.compile.base import SQLCompiler
from tessera.schema.column import Column
from tessera.types import ScalarType

_TYPES: dict[ScalarType, str] = {
    ScalarType.INTEGER: "INTEGER",
    ScalarType.BIGINT: "BIGINT",
    ScalarType.SERIAL: "SERIAL",
    ScalarType.TEXT: "TEXT",
    ScalarType.BOOLEAN: "BOOLEAN",
    ScalarType.REAL: "DOUBLE PRECISION",
    ScalarType.TIMESTAMP: "TIMESTAMP",
    ScalarType.JSON: "JSONB",
}


class PostgresCompiler(SQLCompiler):
    """Compiles queries to PostgreSQL-flavoured parameterized SQL.

    Parameter style: ``$1, $2, ...`` – the native numbered style used by
    ``asyncpg`` and server-side prepared statements.

    Enum columns map to named ``CREATE TYPE ... AS ENUM`` types, created
    before and dropped after the owning table.
    """

    function_aliases = {"RAND": "RANDOM"}

    @property
    def dialect_name(self) -> str:
        return "postgres"

    def placeholder(self, index: int) -> str:
        return f"${index}"

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace('"', '""')
        return f'"{escaped}"'

    def column_type(self, column: Column, table: str) -> str:
        if column.type is ScalarType.ENUM:
            return self.quote_identifier(self.enum_type_name(column, table))
        if column.type is ScalarType.VARCHAR:
            return f"VARCHAR({column.length or 255})"
        return _TYPES[column.type]

    @staticmethod
    def enum_type_name(column: Column, table: str) -> str:
        return column.enum_name or f"{table}_{column.name}_enum"

    def create_enum_types(self, column: Column, table: str) -> list[str]:
        if column.type is not ScalarType.ENUM:
            return []
        values = ", ".join(self._quote_string(v) for v in column.enum_values)
        name = self.quote_identifier(self.enum_type_name(column, table))
        return [f"CREATE TYPE {name} AS ENUM ({values})"]

    def drop_enum_types(self, column: Column, table: str) -> list[str]:
        if column.type is not ScalarType.ENUM:
            return []
        return [f"DROP TYPE {self.quote_identifier(self.enum_type_name(column, table))}"]

    # ------------------------------------------------------------------
    # Enum evolution
    # ------------------------------------------------------------------

    def alter_column_type(
        self, table: str, column: Column, definition: str, previous: Column | None = None
    ) -> list[str]:
        """Change ``column`` to its new type, keeping enum types in step.

        Values appended to an enum, in order, become ``ALTER TYPE ... ADD
        VALUE``.  Any other enum change builds the new type, converts the
        column through ``text`` and drops the old type.  Value removal is
        refused earlier, by the migration diff.
        """
        old_enum = previous is not None and previous.type is ScalarType.ENUM
        if column.type is not ScalarType.ENUM and not old_enum:
            return super().alter_column_type(table, column, definition, previous)
        if previous is not None:
            # A rename earlier in the migration already moved the implicit type name.
            previous = previous.model_copy(update={"name": column.name})
        both_enum = old_enum and column.type is ScalarType.ENUM
        if both_enum and self._appends_values(previous, column, table):
            return self._add_enum_values(column, previous, table)
        return self._convert_enum_column(table, column, previous)

    def rename_column(
        self, table: str, old: str, new: str, column: Column | None = None
    ) -> list[str]:
        statements = super().rename_column(table, old, new, column)
        if column is not None and column.type is ScalarType.ENUM:
            before = self.enum_type_name(column.model_copy(update={"name": old}), table)
            after = self.enum_type_name(column.model_copy(update={"name": new}), table)
            if before != after:
                q = self.quote_identifier
                statements.append(f"ALTER TYPE {q(before)} RENAME TO {q(after)}")
        return statements

    def _appends_values(self, previous: Column, column: Column, table: str) -> bool:
        if self.enum_type_name(previous, table) != self.enum_type_name(column, table):
            return False
        kept = [v for v in column.enum_values if v in previous.enum_values]
        return kept == list(previous.enum_values)

    def _add_enum_values(self, column: Column, previous: Column, table: str) -> list[str]:
        type_sql = self.quote_identifier(self.enum_type_name(column, table))
        values = column.enum_values
        statements = []
        for index, value in enumerate(values):
            if value in previous.enum_values:
                continue
            sql = f"ALTER TYPE {type_sql} ADD VALUE {self._quote_string(value)}"
            if index == 0:
                sql += f" BEFORE {self._quote_string(values[1])}"
            elif index < len(values) - 1:
                sql += f" AFTER {self._quote_string(values[index - 1])}"
            statements.append(sql)
        return statements

    def _convert_enum_column(
        self, table: str, column: Column, previous: Column | None
    ) -> list[str]:
        q = self.quote_identifier
        name = q(column.name)
        old_type = None
        if previous is not None and previous.type is ScalarType.ENUM:
            old_type = self.enum_type_name(previous, table)
        new_type = None
        if column.type is ScalarType.ENUM:
            new_type = self.enum_type_name(column, table)

        # Reusing the name means building under a temporary one first.
        staged = new_type is not None and new_type == old_type
        target = f"{new_type}__new" if staged else new_type

        statements: list[str] = []
        reset_default = previous is not None and previous.has_default
        if reset_default:
            statements.extend(self.alter_column_default(table, column, None))
        if target is not None:
            values = ", ".join(self._quote_string(v) for v in column.enum_values)
            statements.append(f"CREATE TYPE {q(target)} AS ENUM ({values})")
            type_sql = q(target)
        else:
            type_sql = self.column_type(column, table)
        statements.append(
            f"ALTER TABLE {q(table)} ALTER COLUMN {name} TYPE {type_sql} "
            f"USING {name}::text::{type_sql}"
        )
        if old_type is not None:
            statements.append(f"DROP TYPE {q(old_type)}")
        if staged:
            statements.append(f"ALTER TYPE {q(target)} RENAME TO {q(new_type)}")
        default = self.default_clause(column)
        if reset_default and default is not None:
            statements.extend(self.alter_column_default(table, column, default))
        return statements
