"""Clause-level SQL builders.

Each class handles exactly one SQL clause and renders its expressions
through the shared :class:`~tessera.compile.expression_builder.ExpressionBuilder`,
so parameters keep their textual order.

Classes
-------
SelectClauseBuilder  : ``SELECT [DISTINCT] <items>`` plus the result shape
FromClauseBuilder    : ``FROM <table> [AS alias]``
JoinClauseBuilder    : ``<kind> JOIN … ON …``
ReturningBuilder     : ``RETURNING <items>`` plus the result shape
"""
from __future__ import annotations

from tessera.compile.base import ResultColumn
from tessera.compile.context import CompilationContext
from tessera.compile.expression_builder import ExpressionBuilder
from tessera.errors import CompilationError
from tessera.expr.nodes import (
    AliasedExpr,
    ColumnExpr,
    ExpressionNode,
    FuncExpr,
)
from tessera.query.statements import JoinClause, SelectQuery, TableRef
from tessera.schema.table import Table
from tessera.types import ScalarType
from tessera.validate.scope import QueryScope

# Aggregate / scalar functions whose result type is known up front.
_FIXED_RESULT_TYPES: dict[str, ScalarType] = {
    "COUNT": ScalarType.INTEGER,
    "AVG": ScalarType.REAL,
    "LOWER": ScalarType.TEXT,
    "UPPER": ScalarType.TEXT,
    "LENGTH": ScalarType.INTEGER,
}

# Functions whose result has the type of their first argument.
_PASSTHROUGH_FUNCS = frozenset({"MIN", "MAX", "SUM", "COALESCE", "ABS"})


def _table_columns(
    visible: str, table: Table, group: str | None
) -> list[tuple[ColumnExpr, ResultColumn]]:
    items = []
    for col in table.columns:
        expr = ColumnExpr(table=visible, column=col.name, type=col.type)
        items.append(
            (expr, ResultColumn(col.name, col.type, col.enum_values, group=group))
        )
    return items


def result_column(node: ExpressionNode, scope: QueryScope, index: int) -> ResultColumn:
    """Describe the value a projection item yields.

    Args:
        node: The projection expression.
        scope: Resolved tables of the statement.
        index: Position of the item, used to key unnamed expressions.
    """
    key = node.alias if isinstance(node, AliasedExpr) else None
    inner = node.expr if isinstance(node, AliasedExpr) else node
    if isinstance(inner, ColumnExpr):
        col = scope.lookup(inner.table, inner.column)
        return ResultColumn(key or col.name, col.type, col.enum_values)
    if isinstance(inner, FuncExpr):
        rtype: ScalarType | None = _FIXED_RESULT_TYPES.get(inner.name)
        enum_values: tuple[str, ...] = ()
        if rtype is None and inner.name in _PASSTHROUGH_FUNCS and inner.args:
            first = result_column(inner.args[0], scope, index)
            rtype, enum_values = first.type, first.enum_values
        return ResultColumn(key or inner.name.lower(), rtype, enum_values)
    return ResultColumn(key or f"expr_{index}")


def _check_unique_keys(columns: list[ResultColumn], clause: str) -> None:
    seen: set[tuple[str | None, str]] = set()
    for col in columns:
        ident = (col.group, col.key)
        if ident in seen:
            raise CompilationError(
                f"Duplicate result column '{col.key}'; use .label() to rename one.",
                clause=clause,
            )
        seen.add(ident)


class SelectClauseBuilder:
    """Builds the ``SELECT [DISTINCT] …`` clause and the result shape.

    With no explicit projection, every column of the FROM table is selected,
    followed by the columns of each joined table in declaration order.  When
    the statement has joins the result columns are grouped per table.
    """

    def __init__(self, ctx: CompilationContext, expr_builder: ExpressionBuilder) -> None:
        self._ctx = ctx
        self._expr = expr_builder

    def build(
        self, query: SelectQuery, scope: QueryScope
    ) -> tuple[str, tuple[ResultColumn, ...]]:
        prefix = "SELECT DISTINCT" if query.distinct_ else "SELECT"
        if query.columns:
            items = [self._expr.projection(c) for c in query.columns]
            columns = [result_column(c, scope, i) for i, c in enumerate(query.columns)]
        else:
            grouped = bool(query.joins)
            items, columns = [], []
            for visible, table in scope.tables.items():
                group = visible if grouped else None
                for expr, result in _table_columns(visible, table, group):
                    items.append(self._expr.build(expr))
                    columns.append(result)
        _check_unique_keys(columns, "SELECT")
        return f"{prefix} {', '.join(items)}", tuple(columns)


class FromClauseBuilder:
    """Builds the ``<table> [AS alias]`` fragment used by FROM and JOIN."""

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, ref: TableRef) -> str:
        quote = self._ctx.compiler.quote_identifier
        if ref.alias:
            return f"{quote(ref.name)} AS {quote(ref.alias)}"
        return quote(ref.name)


class JoinClauseBuilder:
    """Builds a single ``<kind> JOIN <table> ON <condition>`` line.

    Raises:
        CompilationError: For FULL joins on dialects without them.
    """

    def __init__(
        self,
        ctx: CompilationContext,
        expr_builder: ExpressionBuilder,
        from_builder: FromClauseBuilder,
    ) -> None:
        self._ctx = ctx
        self._expr = expr_builder
        self._from = from_builder

    def build(self, join: JoinClause) -> str:
        if join.kind == "FULL" and not self._ctx.compiler.supports_full_join:
            raise CompilationError(
                f"FULL JOIN is not supported by the {self._ctx.dialect} dialect.",
                clause="JOIN",
            )
        table_sql = self._from.build(join.table)
        if join.kind == "CROSS" or join.condition is None:
            return f"{join.kind} JOIN {table_sql}"
        return f"{join.kind} JOIN {table_sql} ON {self._expr.build(join.condition)}"


class ReturningBuilder:
    """Builds ``RETURNING …`` for DML statements.

    An empty returning list selects every column of the target table.

    Raises:
        CompilationError: If the dialect has no RETURNING support.
    """

    def __init__(self, ctx: CompilationContext, expr_builder: ExpressionBuilder) -> None:
        self._ctx = ctx
        self._expr = expr_builder

    def build(
        self,
        returning: tuple[ExpressionNode, ...],
        target: TableRef,
        scope: QueryScope,
    ) -> tuple[str, tuple[ResultColumn, ...]]:
        if not self._ctx.compiler.supports_returning:
            raise CompilationError(
                f"RETURNING is not supported by the {self._ctx.dialect} dialect.",
                clause="RETURNING",
            )
        if returning:
            items = [self._expr.projection(r) for r in returning]
            columns = [result_column(r, scope, i) for i, r in enumerate(returning)]
        else:
            table = scope.table(target.ref_name)
            pairs = _table_columns(target.ref_name, table, None)
            items = [self._expr.build(expr) for expr, _ in pairs]
            columns = [result for _, result in pairs]
        _check_unique_keys(columns, "RETURNING")
        return f"RETURNING {', '.join(items)}", tuple(columns)
