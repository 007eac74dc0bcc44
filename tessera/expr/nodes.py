"""Typed, immutable expression tree.

Every node is a frozen pydantic model tagged by a ``kind`` field, and
:data:`Expression` is the discriminated union over all of them.  Trees are
built with the helpers in :mod:`tessera.expr.builders` and are never mutated
after construction, so one tree can be shared by any number of queries.

Literal values always stay in :class:`LiteralExpr` nodes.  The compiler turns
each of them into a bound parameter; no literal is ever spliced into SQL text.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tessera.types import ScalarType

_FROZEN = ConfigDict(extra="forbid", frozen=True)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ---------------------------------------------------------------------------
# Operator enums
# ---------------------------------------------------------------------------


class ComparisonOp(str, Enum):
    """Binary comparison operators."""

    EQ = "="
    NE = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    LIKE = "LIKE"
    ILIKE = "ILIKE"


class LogicalOp(str, Enum):
    """Logical connectives."""

    AND = "AND"
    OR = "OR"
    NOT = "NOT"


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class ExpressionNode(BaseModel):
    """Shared behaviour for every expression node."""

    model_config = _FROZEN

    def label(self, name: str) -> AliasedExpr:
        """Return this expression with an output name (``AS name``)."""
        return AliasedExpr(expr=self, alias=name)

    def asc(self) -> OrderingExpr:
        return OrderingExpr(expr=self, direction="ASC")

    def desc(self) -> OrderingExpr:
        return OrderingExpr(expr=self, direction="DESC")


# ---------------------------------------------------------------------------
# Leaves
# ---------------------------------------------------------------------------


class ColumnExpr(ExpressionNode):
    """A reference to ``table.column``.

    ``table`` is the name the column is visible under in a query, which is
    the table alias for aliased tables.
    """

    kind: Literal["column"] = "column"
    table: str
    column: str
    type: ScalarType = ScalarType.TEXT

    def __str__(self) -> str:
        return f"{self.table}.{self.column}"


class LiteralExpr(ExpressionNode):
    """A literal value; always compiled to a bound parameter."""

    kind: Literal["literal"] = "literal"
    value: Any


class PlaceholderExpr(ExpressionNode):
    """A named parameter whose value is supplied at execution time."""

    kind: Literal["placeholder"] = "placeholder"
    name: str

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not _IDENTIFIER.match(value):
            raise ValueError(f"Placeholder name must be an identifier, got {value!r}.")
        return value


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


class ComparisonExpr(ExpressionNode):
    """``left <op> right``."""

    kind: Literal["comparison"] = "comparison"
    op: ComparisonOp
    left: Expression
    right: Expression


class NullCheckExpr(ExpressionNode):
    """``expr IS [NOT] NULL``."""

    kind: Literal["null_check"] = "null_check"
    expr: Expression
    negated: bool = False


class InListExpr(ExpressionNode):
    """``expr [NOT] IN (v1, v2, ...)``."""

    kind: Literal["in_list"] = "in_list"
    expr: Expression
    values: tuple[Expression, ...]
    negated: bool = False


class BetweenExpr(ExpressionNode):
    """``expr BETWEEN low AND high``."""

    kind: Literal["between"] = "between"
    expr: Expression
    low: Expression
    high: Expression


class LogicalExpr(ExpressionNode):
    """``AND`` / ``OR`` over two or more operands, or ``NOT`` over one."""

    kind: Literal["logical"] = "logical"
    op: LogicalOp
    operands: tuple[Expression, ...]

    @model_validator(mode="after")
    def _check_arity(self) -> LogicalExpr:
        if self.op is LogicalOp.NOT and len(self.operands) != 1:
            raise ValueError("NOT takes exactly one operand.")
        if self.op is not LogicalOp.NOT and not self.operands:
            raise ValueError(f"{self.op.value} needs at least one operand.")
        return self


# ---------------------------------------------------------------------------
# Composite
# ---------------------------------------------------------------------------


class FuncExpr(ExpressionNode):
    """A SQL function call: ``NAME([DISTINCT] args...)``.

    ``COUNT`` with no arguments renders as ``COUNT(*)``.
    """

    kind: Literal["func"] = "func"
    name: str
    args: tuple[Expression, ...] = ()
    distinct: bool = False

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not _IDENTIFIER.match(value):
            raise ValueError(f"Function name must be an identifier, got {value!r}.")
        return value.upper()


class RawExpr(ExpressionNode):
    """A raw SQL fragment with tracked arguments.

    ``fragments`` holds the SQL text around each argument slot, so
    ``len(fragments) == len(args) + 1``.  Arguments are compiled like any
    other expression: literals still become bound parameters.
    """

    kind: Literal["raw"] = "raw"
    fragments: tuple[str, ...]
    args: tuple[Expression, ...] = ()

    @model_validator(mode="after")
    def _check_slots(self) -> RawExpr:
        if len(self.fragments) != len(self.args) + 1:
            raise ValueError("Raw SQL needs exactly one more fragment than arguments.")
        return self


class AliasedExpr(ExpressionNode):
    """``expr AS alias`` in a projection."""

    kind: Literal["aliased"] = "aliased"
    expr: Expression
    alias: str


class OrderingExpr(ExpressionNode):
    """``expr ASC|DESC [NULLS FIRST|LAST]`` in ORDER BY."""

    kind: Literal["order"] = "order"
    expr: Expression
    direction: Literal["ASC", "DESC"] = "ASC"
    nulls: Literal["FIRST", "LAST"] | None = None


# ---------------------------------------------------------------------------
# Discriminated union
# ---------------------------------------------------------------------------

Expression = Annotated[
    Union[
        ColumnExpr,
        LiteralExpr,
        PlaceholderExpr,
        ComparisonExpr,
        NullCheckExpr,
        InListExpr,
        BetweenExpr,
        LogicalExpr,
        FuncExpr,
        RawExpr,
        AliasedExpr,
        OrderingExpr,
    ],
    Field(discriminator="kind"),
]

# Resolve forward references in recursive types.
for _model in (
    ComparisonExpr,
    NullCheckExpr,
    InListExpr,
    BetweenExpr,
    LogicalExpr,
    FuncExpr,
    RawExpr,
    AliasedExpr,
    OrderingExpr,
):
    _model.model_rebuild()
