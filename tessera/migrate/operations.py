"""Schema change operations produced by the differ.

Each operation is a frozen pydantic model tagged by ``kind`` that knows how
to describe itself and how to render its DDL through a
:class:`~tessera.compile.ddl.DDLCompiler`.
"""
from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from tessera.compile.ddl import DDLCompiler
from tessera.schema.column import Column
from tessera.schema.table import Table

_FROZEN = ConfigDict(extra="forbid", frozen=True)


class _Operation(BaseModel):
    model_config = _FROZEN

    #: Whether applying the operation can lose data.
    destructive: bool = False

    def describe(self) -> str:  # pragma: no cover - overridden
        raise NotImplementedError

    def render(self, ddl: DDLCompiler) -> list[str]:  # pragma: no cover - overridden
        raise NotImplementedError


class CreateTable(_Operation):
    kind: Literal["create_table"] = "create_table"
    table: Table

    def describe(self) -> str:
        return f"create table {self.table.name}"

    def render(self, ddl: DDLCompiler) -> list[str]:
        return ddl.create_table(self.table)


class DropTable(_Operation):
    kind: Literal["drop_table"] = "drop_table"
    table: Table
    destructive: bool = True

    def describe(self) -> str:
        return f"drop table {self.table.name}"

    def render(self, ddl: DDLCompiler) -> list[str]:
        return ddl.drop_table(self.table)


class AddColumn(_Operation):
    kind: Literal["add_column"] = "add_column"
    table: str
    column: Column

    def describe(self) -> str:
        return f"add column {self.table}.{self.column.name}"

    def render(self, ddl: DDLCompiler) -> list[str]:
        return ddl.add_column(self.table, self.column)


class DropColumn(_Operation):
    kind: Literal["drop_column"] = "drop_column"
    table: str
    column: Column
    destructive: bool = True

    def describe(self) -> str:
        return f"drop column {self.table}.{self.column.name}"

    def render(self, ddl: DDLCompiler) -> list[str]:
        return ddl.drop_column(self.table, self.column)


class RenameColumn(_Operation):
    kind: Literal["rename_column"] = "rename_column"
    table: str
    old: str
    new: str
    #: Definition before the rename, used to carry postgres enum type names.
    column: Column | None = None

    def describe(self) -> str:
        return f"rename column {self.table}.{self.old} to {self.new}"

    def render(self, ddl: DDLCompiler) -> list[str]:
        return ddl.rename_column(self.table, self.old, self.new, self.column)


class AlterColumnType(_Operation):
    kind: Literal["alter_type"] = "alter_type"
    table: str
    old: Column
    new: Column
    destructive: bool = True

    def describe(self) -> str:
        return (
            f"change type of {self.table}.{self.new.name} "
            f"from {self.old.type.value} to {self.new.type.value}"
        )

    def render(self, ddl: DDLCompiler) -> list[str]:
        return ddl.alter_column_type(self.table, self.new, previous=self.old)


class AlterNullability(_Operation):
    kind: Literal["alter_nullability"] = "alter_nullability"
    table: str
    column: Column

    def describe(self) -> str:
        state = "nullable" if self.column.nullable else "not null"
        return f"make {self.table}.{self.column.name} {state}"

    def render(self, ddl: DDLCompiler) -> list[str]:
        return ddl.alter_column_nullability(self.table, self.column)


class AlterDefault(_Operation):
    kind: Literal["alter_default"] = "alter_default"
    table: str
    column: Column

    def describe(self) -> str:
        return f"change default of {self.table}.{self.column.name}"

    def render(self, ddl: DDLCompiler) -> list[str]:
        return ddl.alter_column_default(self.table, self.column)


Operation = Annotated[
    Union[
        CreateTable,
        DropTable,
        AddColumn,
        DropColumn,
        RenameColumn,
        AlterColumnType,
        AlterNullability,
        AlterDefault,
    ],
    Field(discriminator="kind"),
]


def render_operations(operations: list[Operation], ddl: DDLCompiler) -> list[str]:
    """Render ``operations`` in order into a flat statement list."""
    statements: list[str] = []
    for op in operations:
        statements.extend(op.render(ddl))
    return statements
