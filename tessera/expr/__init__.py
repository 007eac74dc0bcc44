"""tessera expressions: typed predicate and value trees."""
from tessera.expr.builders import (
    and_,
    asc,
    between,
    desc,
    eq,
    func,
    gt,
    gte,
    ilike,
    in_,
    is_not_null,
    is_null,
    like,
    lt,
    lte,
    ne,
    not_,
    not_in,
    or_,
    placeholder,
    sql,
    to_expression,
)
from tessera.expr.nodes import (
    AliasedExpr,
    BetweenExpr,
    ColumnExpr,
    ComparisonExpr,
    ComparisonOp,
    Expression,
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

__all__ = [
    "AliasedExpr",
    "BetweenExpr",
    "ColumnExpr",
    "ComparisonExpr",
    "ComparisonOp",
    "Expression",
    "ExpressionNode",
    "FuncExpr",
    "InListExpr",
    "LiteralExpr",
    "LogicalExpr",
    "LogicalOp",
    "NullCheckExpr",
    "OrderingExpr",
    "PlaceholderExpr",
    "RawExpr",
    "and_",
    "asc",
    "between",
    "desc",
    "eq",
    "func",
    "gt",
    "gte",
    "ilike",
    "in_",
    "is_not_null",
    "is_null",
    "like",
    "lt",
    "lte",
    "ne",
    "not_",
    "not_in",
    "or_",
    "placeholder",
    "sql",
    "to_expression",
]
