"""Expression constructors.

Any plain Python value passed where an expression is expected is wrapped in
a :class:`~tessera.expr.nodes.LiteralExpr`, so it ends up as a bound
parameter::

    from tessera.expr import and_, eq, func, gt, sql

    cond = and_(eq(users.c.id, 1), gt(users.c.age, 18))
    total = func.count(users.c.id).label("total")
    lowered = sql("lower({}) = {}", users.c.full_name, "ada")
"""
from __future__ import annotations

from string import Formatter
from typing import Any, Iterable

from tessera.expr.nodes import (
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
from tessera.schema.column import Column


def to_expression(value: Any) -> ExpressionNode:
    """Return ``value`` as an expression node.

    Expression nodes pass through unchanged, registered :class:`Column`
    objects become column references, and anything else becomes a literal.

    Raises:
        ValueError: For a :class:`Column` that is not attached to a table.
    """
    if isinstance(value, ExpressionNode):
        return value
    if isinstance(value, Column):
        if value.table is None:
            raise ValueError(
                f"Column '{value.name}' is not registered on a table; "
                "use table.c.<name> to reference it."
            )
        return ColumnExpr(table=value.table, column=value.name, type=value.type)
    return LiteralExpr(value=value)


# ---------------------------------------------------------------------------
# Comparisons
# ---------------------------------------------------------------------------


def _compare(op: ComparisonOp, left: Any, right: Any) -> ComparisonExpr:
    return ComparisonExpr(op=op, left=to_expression(left), right=to_expression(right))


def eq(left: Any, right: Any) -> ComparisonExpr | NullCheckExpr:
    """``left = right``; comparing with ``None`` gives ``left IS NULL``."""
    if right is None:
        return is_null(left)
    return _compare(ComparisonOp.EQ, left, right)


def ne(left: Any, right: Any) -> ComparisonExpr | NullCheckExpr:
    """``left != right``; comparing with ``None`` gives ``left IS NOT NULL``."""
    if right is None:
        return is_not_null(left)
    return _compare(ComparisonOp.NE, left, right)


def gt(left: Any, right: Any) -> ComparisonExpr:
    return _compare(ComparisonOp.GT, left, right)


def gte(left: Any, right: Any) -> ComparisonExpr:
    return _compare(ComparisonOp.GTE, left, right)


def lt(left: Any, right: Any) -> ComparisonExpr:
    return _compare(ComparisonOp.LT, left, right)


def lte(left: Any, right: Any) -> ComparisonExpr:
    return _compare(ComparisonOp.LTE, left, right)


def like(left: Any, pattern: Any) -> ComparisonExpr:
    return _compare(ComparisonOp.LIKE, left, pattern)


def ilike(left: Any, pattern: Any) -> ComparisonExpr:
    """Case-insensitive LIKE; compiled to ``LIKE`` where unsupported."""
    return _compare(ComparisonOp.ILIKE, left, pattern)


def is_null(expr: Any) -> NullCheckExpr:
    return NullCheckExpr(expr=to_expression(expr))


def is_not_null(expr: Any) -> NullCheckExpr:
    return NullCheckExpr(expr=to_expression(expr), negated=True)


def in_(expr: Any, values: Iterable[Any]) -> InListExpr:
    """``expr IN (values...)``.

    Raises:
        ValueError: If ``values`` is empty.
    """
    items = tuple(to_expression(v) for v in values)
    if not items:
        raise ValueError("in_() needs at least one value.")
    return InListExpr(expr=to_expression(expr), values=items)


def not_in(expr: Any, values: Iterable[Any]) -> InListExpr:
    return in_(expr, values).model_copy(update={"negated": True})


def between(expr: Any, low: Any, high: Any) -> BetweenExpr:
    return BetweenExpr(
        expr=to_expression(expr),
        low=to_expression(low),
        high=to_expression(high),
    )


# ---------------------------------------------------------------------------
# Logical connectives
# ---------------------------------------------------------------------------


def _connect(op: LogicalOp, exprs: tuple[Any, ...]) -> ExpressionNode | None:
    operands = tuple(to_expression(e) for e in exprs if e is not None)
    if not operands:
        return None
    if len(operands) == 1:
        return operands[0]
    return LogicalExpr(op=op, operands=operands)


def and_(*exprs: Any) -> ExpressionNode | None:
    """AND the given expressions together.

    ``None`` arguments are dropped, which makes optional filters easy to
    compose.  A single remaining operand is returned as-is; no operands
    returns ``None``.
    """
    return _connect(LogicalOp.AND, exprs)


def or_(*exprs: Any) -> ExpressionNode | None:
    """OR the given expressions together (same ``None`` handling as ``and_``)."""
    return _connect(LogicalOp.OR, exprs)


def not_(expr: Any) -> LogicalExpr:
    return LogicalExpr(op=LogicalOp.NOT, operands=(to_expression(expr),))


# ---------------------------------------------------------------------------
# Functions, raw SQL, placeholders, ordering
# ---------------------------------------------------------------------------


class _FunctionNamespace:
    """``func.<name>(*args)`` builds a :class:`FuncExpr` for any SQL function."""

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)

        def call(*args: Any, distinct: bool = False) -> FuncExpr:
            return FuncExpr(
                name=name,
                args=tuple(to_expression(a) for a in args),
                distinct=distinct,
            )

        call.__name__ = name
        return call


func = _FunctionNamespace()


def sql(template: str, *args: Any) -> RawExpr:
    """Build a raw SQL fragment.

    Each ``{}`` (or positional ``{0}``) slot in ``template`` is filled with the
    matching argument, compiled as an expression; plain values become bound
    parameters.  Use ``{{`` and ``}}`` for literal braces.

    Raises:
        ValueError: If slots and arguments do not line up.
    """
    fragments: list[str] = []
    slot_args: list[ExpressionNode] = []
    current = ""
    auto_index = 0
    used: set[int] = set()
    for literal_text, field_name, format_spec, conversion in Formatter().parse(template):
        current += literal_text
        if field_name is None:
            continue
        if format_spec or conversion:
            raise ValueError("Raw SQL slots do not accept format specs or conversions.")
        if field_name == "":
            index = auto_index
            auto_index += 1
        elif field_name.isdigit():
            index = int(field_name)
        else:
            raise ValueError(f"Raw SQL slots must be positional, got {{{field_name}}}.")
        if index >= len(args):
            raise ValueError(
                f"Raw SQL template references argument {index} but only "
                f"{len(args)} were given."
            )
        used.add(index)
        fragments.append(current)
        current = ""
        slot_args.append(to_expression(args[index]))
    fragments.append(current)
    if len(used) != len(args):
        raise ValueError(
            f"Raw SQL template uses {len(used)} of {len(args)} arguments."
        )
    return RawExpr(fragments=tuple(fragments), args=tuple(slot_args))


def placeholder(name: str) -> PlaceholderExpr:
    """A named parameter bound when the compiled statement is executed."""
    return PlaceholderExpr(name=name)


def asc(expr: Any) -> OrderingExpr:
    return OrderingExpr(expr=to_expression(expr), direction="ASC")


def desc(expr: Any) -> OrderingExpr:
    return OrderingExpr(expr=to_expression(expr), direction="DESC")
