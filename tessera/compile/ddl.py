"""DDL generation for tables and columns.

``DDLCompiler`` renders ``CREATE TABLE``, ``DROP TABLE`` and the
``ALTER TABLE`` variants the migration engine needs.  Logical scalar types
are mapped to dialect column types by the injected
:class:`~tessera.compile.base.SQLCompiler`.

DDL cannot carry bound parameters, so column defaults are rendered as
escaped SQL literals.  Every method returns a list of statements (without a
trailing semicolon) because some changes need more than one, e.g. postgres
enum columns need a ``CREATE TYPE`` before the table.
"""
from __future__ import annotations

from tessera.compile.base import SQLCompiler
from tessera.schema.column import Column, ForeignKey
from tessera.schema.table import Table
from tessera.types import AUTO_INCREMENT_TYPES


class DDLCompiler:
    """Renders schema DDL for one dialect.

    Args:
        compiler: Dialect-specific compiler instance.
    """

    def __init__(self, compiler: SQLCompiler) -> None:
        self._compiler = compiler

    @property
    def dialect(self) -> str:
        return self._compiler.dialect_name

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def create_table(self, table: Table, if_not_exists: bool = False) -> list[str]:
        """Return the statements creating ``table``.

        A single-column primary key is declared inline on the column; a
        composite key, composite UNIQUE groups and foreign keys become table
        constraints.
        """
        q = self._compiler.quote_identifier
        statements: list[str] = []
        for col in table.columns:
            statements.extend(self._compiler.create_enum_types(col, table.name))

        inline_pk = len(table.primary_key) == 1
        lines = [
            self.column_definition(
                col,
                table.name,
                primary_key=inline_pk and col.name in table.primary_key,
            )
            for col in table.columns
        ]
        if len(table.primary_key) > 1:
            lines.append(f"PRIMARY KEY ({self._column_list(table.primary_key)})")
        for group in table.unique:
            lines.append(f"UNIQUE ({self._column_list(group)})")
        for col in table.columns:
            if col.references is not None:
                lines.append(self.foreign_key(col.name, col.references))

        exists = "IF NOT EXISTS " if if_not_exists else ""
        body = ",\n".join(f"  {line}" for line in lines)
        statements.append(f"CREATE TABLE {exists}{q(table.name)} (\n{body}\n)")
        return statements

    def drop_table(self, table: Table) -> list[str]:
        """Return the statements dropping ``table`` and its enum types."""
        statements = [f"DROP TABLE {self._compiler.quote_identifier(table.name)}"]
        for col in table.columns:
            statements.extend(self._compiler.drop_enum_types(col, table.name))
        return statements

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def add_column(self, table: str, column: Column) -> list[str]:
        """Add ``column`` to an existing table.

        On dialects that reject ``ADD COLUMN ... UNIQUE`` the constraint
        becomes a separate unique index named ``<table>_<column>_key``.
        """
        q = self._compiler.quote_identifier
        statements = self._compiler.create_enum_types(column, table)
        separate_unique = column.unique and not self._compiler.unique_on_add_column
        inline = column.model_copy(update={"unique": False}) if separate_unique else column
        definition = self.column_definition(inline, table, primary_key=False)
        ref = column.references
        if ref is not None and self._compiler.inline_references:
            definition += " " + self._references(ref)
        statements.append(f"ALTER TABLE {q(table)} ADD COLUMN {definition}")
        if ref is not None and not self._compiler.inline_references:
            statements.append(f"ALTER TABLE {q(table)} ADD {self.foreign_key(column.name, ref)}")
        if separate_unique:
            index = q(self.unique_index_name(table, column.name))
            statements.append(f"CREATE UNIQUE INDEX {index} ON {q(table)} ({q(column.name)})")
        return statements

    def drop_column(self, table: str, column: Column) -> list[str]:
        q = self._compiler.quote_identifier
        statements: list[str] = []
        if column.unique and not self._compiler.unique_on_add_column:
            # An indexed column cannot be dropped; the index may come from add_column.
            index = q(self.unique_index_name(table, column.name))
            statements.append(f"DROP INDEX IF EXISTS {index}")
        statements.append(f"ALTER TABLE {q(table)} DROP COLUMN {q(column.name)}")
        statements.extend(self._compiler.drop_enum_types(column, table))
        return statements

    def rename_column(
        self, table: str, old: str, new: str, column: Column | None = None
    ) -> list[str]:
        """Rename column ``old`` to ``new``; ``column`` is its definition, if known."""
        return self._compiler.rename_column(table, old, new, column)

    def alter_column_type(
        self, table: str, column: Column, previous: Column | None = None
    ) -> list[str]:
        """Change the type of ``column`` to its current definition.

        Args:
            table: Owning table name.
            column: The new column definition.
            previous: The definition being replaced.  Lets postgres extend,
                replace or drop the column's enum type.

        Raises:
            CompilationError: If the dialect cannot alter columns in place.
        """
        definition = self.column_definition(column, table, constraints=False)
        return self._compiler.alter_column_type(table, column, definition, previous)

    def alter_column_nullability(self, table: str, column: Column) -> list[str]:
        """Set or drop NOT NULL to match ``column.nullable``.

        Raises:
            CompilationError: If the dialect cannot alter columns in place.
        """
        definition = self.column_definition(column, table, constraints=False)
        return self._compiler.alter_column_nullability(table, column, definition)

    def alter_column_default(self, table: str, column: Column) -> list[str]:
        """Set or drop the default to match ``column``.

        Raises:
            CompilationError: If the dialect cannot alter columns in place.
        """
        return self._compiler.alter_column_default(table, column, self.default_clause(column))

    # ------------------------------------------------------------------
    # Fragments
    # ------------------------------------------------------------------

    def column_definition(
        self,
        column: Column,
        table: str,
        primary_key: bool = False,
        constraints: bool = True,
    ) -> str:
        """Render ``name type [NOT NULL] [DEFAULT ...] ...`` for ``column``.

        Args:
            column: The column to render.
            table: Owning table name (used for enum type names).
            primary_key: Declare the column as the inline primary key.
            constraints: Include UNIQUE / PRIMARY KEY / CHECK.  Disabled for
                in-place type changes, which keep existing constraints.
        """
        c = self._compiler
        autoincrement = column.type in AUTO_INCREMENT_TYPES and c.autoincrement_keyword
        parts = [c.quote_identifier(column.name), c.column_type(column, table)]
        if not column.nullable:
            parts.append("NOT NULL")
        default = self.default_clause(column)
        if default is not None:
            parts.append(f"DEFAULT {default}")
        if autoincrement and not c.autoincrement_after_primary_key:
            parts.append(c.autoincrement_keyword)
        if constraints:
            if column.unique and not primary_key:
                parts.append("UNIQUE")
            if primary_key:
                parts.append("PRIMARY KEY")
                if autoincrement and c.autoincrement_after_primary_key:
                    parts.append(c.autoincrement_keyword)
            check = c.enum_check(column)
            if check is not None:
                parts.append(check)
        return " ".join(parts)

    def default_clause(self, column: Column) -> str | None:
        """Return the rendered default, or ``None`` when there is none."""
        return self._compiler.default_clause(column)

    @staticmethod
    def unique_index_name(table: str, column: str) -> str:
        return f"{table}_{column}_key"

    def foreign_key(self, column: str, ref: ForeignKey) -> str:
        q = self._compiler.quote_identifier
        return f"FOREIGN KEY ({q(column)}) {self._references(ref)}"

    def _references(self, ref: ForeignKey) -> str:
        q = self._compiler.quote_identifier
        sql = f"REFERENCES {q(ref.table)} ({q(ref.column)})"
        if ref.on_delete:
            sql += f" ON DELETE {ref.on_delete}"
        return sql

    def _column_list(self, names: tuple[str, ...]) -> str:
        return ", ".join(self._compiler.quote_identifier(n) for n in names)
