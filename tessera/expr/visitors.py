"""Tree walking helpers shared by the validator, compiler and executor."""
from __future__ import annotations

from typing import Iterator

from tessera.expr.nodes import (
    AliasedExpr,
    BetweenExpr,
    ColumnExpr,
    ComparisonExpr,
    ExpressionNode,
    FuncExpr,
    InListExpr,
    LogicalExpr,
    NullCheckExpr,
    OrderingExpr,
    RawExpr,
)


def children(node: ExpressionNode) -> tuple[ExpressionNode, ...]:
    """Return the direct sub-expressions of ``node``."""
    if isinstance(node, ComparisonExpr):
        return (node.left, node.right)
    if isinstance(node, (NullCheckExpr, AliasedExpr, OrderingExpr)):
        return (node.expr,)
    if isinstance(node, InListExpr):
        return (node.expr, *node.values)
    if isinstance(node, BetweenExpr):
        return (node.expr, node.low, node.high)
    if isinstance(node, LogicalExpr):
        return node.operands
    if isinstance(node, (FuncExpr, RawExpr)):
        return node.args
    return ()


def walk(node: ExpressionNode) -> Iterator[ExpressionNode]:
    """Yield ``node`` and every descendant, depth first, left to right."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(children(current)))


def iter_columns(node: ExpressionNode) -> Iterator[ColumnExpr]:
    """Yield every column reference inside ``node``."""
    for sub in walk(node):
        if isinstance(sub, ColumnExpr):
            yield sub


def unwrap(node: ExpressionNode) -> ExpressionNode:
    """Strip alias and ordering wrappers."""
    while isinstance(node, (AliasedExpr, OrderingExpr)):
        node = node.expr
    return node
