"""Expression SQL compiler.

``ExpressionBuilder`` renders any :data:`~tessera.expr.nodes.Expression`
node to a SQL fragment.  It receives a
:class:`~tessera.compile.context.CompilationContext` (static config) and a
:class:`RuntimeContext` (per-statement parameter state).

Every literal is appended to the runtime parameter list and replaced by the
dialect placeholder, so fragments must be rendered in the order they appear
in the final SQL text.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from tessera.compile.base import ParamSlot
from tessera.compile.context import CompilationContext
from tessera.errors import CompilationError
from tessera.expr.nodes import (
    AliasedExpr,
    BetweenExpr,
    ColumnExpr,
    ComparisonExpr,
    ComparisonOp,
    ExpressionNode,
    FuncExpr,
    InListExpr,
    LiteralExpr,
    LogicalExpr,
    LogicalOp,
    NullCheckExpr,
    OrderingExpr,
    PlaceholderExpr,
    RawExpr,
)

# Nodes that need parentheses when used as an operand of another node.
_COMPOSITE = (ComparisonExpr, NullCheckExpr, InListExpr, BetweenExpr, LogicalExpr)


# ---------------------------------------------------------------------------
# Runtime parameter accumulator (one per compiled statement)
# ---------------------------------------------------------------------------


@dataclass
class RuntimeContext:
    """Accumulates positional parameters during a single compilation run.

    A single instance is threaded through every sub-builder so that
    placeholder numbering is consistent across the whole statement.
    """

    ctx: CompilationContext
    params: list[Any] = field(default_factory=list)

    def add_value(self, value: Any) -> str:
        """Store a literal value and return its placeholder."""
        self.params.append(value)
        return self.ctx.compiler.placeholder(len(self.params))

    def add_slot(self, name: str) -> str:
        """Reserve a runtime slot for placeholder ``name`` and return its placeholder."""
        self.params.append(ParamSlot(name))
        return self.ctx.compiler.placeholder(len(self.params))


# ---------------------------------------------------------------------------
# Expression builder
# ---------------------------------------------------------------------------


class ExpressionBuilder:
    """Compiles expression nodes to SQL.

    Args:
        ctx: Static compilation context (compiler + registry).
        runtime: Shared parameter accumulator for this statement.
        qualify: Render column references as ``table.column``.  DML
            statements have a single target table and render bare names.
    """

    def __init__(
        self,
        ctx: CompilationContext,
        runtime: RuntimeContext,
        qualify: bool = True,
    ) -> None:
        self._ctx = ctx
        self._runtime = runtime
        self._qualify = qualify

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, node: ExpressionNode) -> str:
        """Compile ``node`` to a SQL fragment."""
        if isinstance(node, ColumnExpr):
            return self.column(node)
        if isinstance(node, LiteralExpr):
            return self._runtime.add_value(node.value)
        if isinstance(node, PlaceholderExpr):
            return self._runtime.add_slot(node.name)
        if isinstance(node, ComparisonExpr):
            return self._build_comparison(node)
        if isinstance(node, NullCheckExpr):
            check = "IS NOT NULL" if node.negated else "IS NULL"
            return f"{self._operand(node.expr)} {check}"
        if isinstance(node, InListExpr):
            target = self._operand(node.expr)
            values = ", ".join(self.build(v) for v in node.values)
            keyword = "NOT IN" if node.negated else "IN"
            return f"{target} {keyword} ({values})"
        if isinstance(node, BetweenExpr):
            target = self._operand(node.expr)
            low = self._operand(node.low)
            high = self._operand(node.high)
            return f"{target} BETWEEN {low} AND {high}"
        if isinstance(node, LogicalExpr):
            return self._build_logical(node)
        if isinstance(node, FuncExpr):
            args = [self.build(a) for a in node.args]
            return self._ctx.compiler.build_func_call(node.name, args, node.distinct)
        if isinstance(node, RawExpr):
            return self._build_raw(node)
        if isinstance(node, AliasedExpr):
            # Outside a projection an aliased expression refers to its output name.
            return self._ctx.compiler.quote_identifier(node.alias)
        if isinstance(node, OrderingExpr):
            return self.ordering(node)
        raise CompilationError(
            f"Unknown expression type: {type(node).__name__}", clause="expression"
        )

    def column(self, node: ColumnExpr) -> str:
        quote = self._ctx.compiler.quote_identifier
        if self._qualify:
            return f"{quote(node.table)}.{quote(node.column)}"
        return quote(node.column)

    def projection(self, node: ExpressionNode) -> str:
        """Compile a projection item, rendering ``AS alias`` for labels."""
        if isinstance(node, AliasedExpr):
            inner = self.build(node.expr)
            return f"{inner} AS {self._ctx.compiler.quote_identifier(node.alias)}"
        return self.build(node)

    def ordering(self, node: OrderingExpr) -> str:
        """Compile an ORDER BY item.

        Raises:
            CompilationError: If ``NULLS FIRST/LAST`` is not supported.
        """
        sql = f"{self.build(node.expr)} {node.direction}"
        if node.nulls is not None:
            if not self._ctx.compiler.supports_nulls_ordering:
                raise CompilationError(
                    f"NULLS {node.nulls} is not supported by the "
                    f"{self._ctx.dialect} dialect.",
                    clause="ORDER BY",
                )
            sql += f" NULLS {node.nulls}"
        return sql

    # ------------------------------------------------------------------
    # Node sub-compilers
    # ------------------------------------------------------------------

    def _operand(self, node: ExpressionNode) -> str:
        sql = self.build(node)
        if isinstance(node, _COMPOSITE):
            return f"({sql})"
        return sql

    def _build_comparison(self, node: ComparisonExpr) -> str:
        left = self._operand(node.left)
        right = self._operand(node.right)
        op = node.op.value
        if node.op in (ComparisonOp.LIKE, ComparisonOp.ILIKE):
            op = self._ctx.compiler.like_operator(op)
        return f"{left} {op} {right}"

    def _build_logical(self, node: LogicalExpr) -> str:
        if node.op is LogicalOp.NOT:
            return f"NOT ({self.build(node.operands[0])})"
        if len(node.operands) == 1:
            return self.build(node.operands[0])
        parts = [f"({self.build(p)})" for p in node.operands]
        return f" {node.op.value} ".join(parts)

    def _build_raw(self, node: RawExpr) -> str:
        parts = [node.fragments[0]]
        for arg, fragment in zip(node.args, node.fragments[1:]):
            parts.append(self.build(arg))
            parts.append(fragment)
        return "".join(parts)
