"""Immutable query IR with a fluent builder API.

Each statement kind is a frozen pydantic model tagged by ``kind``; every
builder method returns a *new* statement with the clause added, so partially
built queries can be shared and branched safely::

    base = select().from_(users)
    adults = base.where(gte(users.c.age, 18))
    named = base.where(eq(users.c.full_name, "Ada"))   # base is unchanged

Tables can be passed as :class:`~tessera.schema.table.Table` handles or by
name.  Whether the tables and columns exist is checked against the registry
when the query is compiled (see :mod:`tessera.validate`); :meth:`build`
checks only that the clauses the statement kind requires are present.
"""
from __future__ import annotations

from typing import Annotated, Any, Iterable, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field

from tessera.errors import IncompleteQueryError
from tessera.expr.builders import and_, to_expression
from tessera.expr.nodes import ColumnExpr, Expression, ExpressionNode, OrderingExpr
from tessera.schema.table import Table

_FROZEN = ConfigDict(extra="forbid", frozen=True)

JoinKind = Literal["INNER", "LEFT", "RIGHT", "FULL", "CROSS"]


# ---------------------------------------------------------------------------
# Clause models
# ---------------------------------------------------------------------------


class TableRef(BaseModel):
    """A table as it appears in a query: its registered name plus an alias."""

    model_config = _FROZEN

    name: str
    alias: str | None = None

    @property
    def ref_name(self) -> str:
        return self.alias or self.name

    @classmethod
    def of(cls, table: Table | str | TableRef) -> TableRef:
        if isinstance(table, TableRef):
            return table
        if isinstance(table, Table):
            return cls(name=table.name, alias=table.alias)
        return cls(name=table)


class JoinClause(BaseModel):
    """A single JOIN entry.

    Attributes:
        table: The joined table.
        condition: The ON condition (``None`` only for CROSS joins).
        kind: SQL join type.
    """

    model_config = _FROZEN

    table: TableRef
    condition: Expression | None = None
    kind: JoinKind = "INNER"


class OnConflict(BaseModel):
    """Insert conflict handling.

    Attributes:
        target: Conflict target columns (ignored by MySQL).
        action: ``nothing`` to skip conflicting rows, ``update`` to apply
            ``assignments``.
        assignments: ``(column, value)`` pairs for ``update``.
    """

    model_config = _FROZEN

    target: tuple[str, ...] = ()
    action: Literal["nothing", "update"] = "nothing"
    assignments: tuple[tuple[str, Expression], ...] = ()


def _column_name(key: Any) -> str:
    if isinstance(key, ColumnExpr):
        return key.column
    if isinstance(key, str):
        return key
    raise TypeError(f"Expected a column name or column expression, got {key!r}.")


def _assignments(values: Mapping[Any, Any]) -> tuple[tuple[str, ExpressionNode], ...]:
    return tuple((_column_name(k), to_expression(v)) for k, v in values.items())


def _merge_where(current: ExpressionNode | None, condition: Any) -> ExpressionNode | None:
    return and_(current, to_expression(condition) if condition is not None else None)


# ---------------------------------------------------------------------------
# SELECT
# ---------------------------------------------------------------------------


class SelectQuery(BaseModel):
    """``SELECT`` statement.

    Attributes:
        columns: Projection; empty means every column of the FROM table
            followed by every column of each joined table.
        source: The FROM table.
        joins: Joins in declaration order.
        where: Filter condition.
        group_by: Grouping expressions.
        having: Group filter.
        order_by: Ordering expressions.
        limit: Maximum number of rows.
        offset: Rows to skip.
        distinct: Emit ``SELECT DISTINCT``.
    """

    model_config = _FROZEN

    kind: Literal["select"] = "select"
    columns: tuple[Expression, ...] = ()
    source: TableRef | None = None
    joins: tuple[JoinClause, ...] = ()
    where_: Expression | None = Field(None, alias="where")
    group_by_: tuple[Expression, ...] = Field((), alias="group_by")
    having_: Expression | None = Field(None, alias="having")
    order_by_: tuple[Expression, ...] = Field((), alias="order_by")
    limit_: int | None = Field(None, alias="limit")
    offset_: int | None = Field(None, alias="offset")
    distinct_: bool = Field(False, alias="distinct")

    # ------------------------------------------------------------------
    # Builder methods
    # ------------------------------------------------------------------

    def from_(self, table: Table | str) -> SelectQuery:
        """Set the FROM table."""
        return self.model_copy(update={"source": TableRef.of(table)})

    def where(self, condition: Any) -> SelectQuery:
        """Add a filter; repeated calls are combined with AND."""
        return self.model_copy(update={"where_": _merge_where(self.where_, condition)})

    def join(self, table: Table | str, on: Any = None, kind: JoinKind = "INNER") -> SelectQuery:
        """Append a JOIN.

        Raises:
            ValueError: If ``on`` is missing for a non-CROSS join.
        """
        if on is None and kind != "CROSS":
            raise ValueError(f"{kind} JOIN requires an ON condition.")
        clause = JoinClause(
            table=TableRef.of(table),
            condition=to_expression(on) if on is not None else None,
            kind=kind,
        )
        return self.model_copy(update={"joins": (*self.joins, clause)})

    def inner_join(self, table: Table | str, on: Any) -> SelectQuery:
        return self.join(table, on, "INNER")

    def left_join(self, table: Table | str, on: Any) -> SelectQuery:
        return self.join(table, on, "LEFT")

    def right_join(self, table: Table | str, on: Any) -> SelectQuery:
        return self.join(table, on, "RIGHT")

    def full_join(self, table: Table | str, on: Any) -> SelectQuery:
        return self.join(table, on, "FULL")

    def cross_join(self, table: Table | str) -> SelectQuery:
        return self.join(table, None, "CROSS")

    def group_by(self, *exprs: Any) -> SelectQuery:
        added = tuple(to_expression(e) for e in exprs)
        return self.model_copy(update={"group_by_": (*self.group_by_, *added)})

    def having(self, condition: Any) -> SelectQuery:
        """Add a group filter; repeated calls are combined with AND."""
        return self.model_copy(update={"having_": _merge_where(self.having_, condition)})

    def order_by(self, *exprs: Any) -> SelectQuery:
        """Append ordering; bare expressions sort ascending."""
        added = tuple(
            e if isinstance(e, OrderingExpr) else OrderingExpr(expr=to_expression(e))
            for e in exprs
        )
        return self.model_copy(update={"order_by_": (*self.order_by_, *added)})

    def limit(self, count: int) -> SelectQuery:
        if count < 0:
            raise ValueError("LIMIT must be non-negative.")
        return self.model_copy(update={"limit_": count})

    def offset(self, count: int) -> SelectQuery:
        if count < 0:
            raise ValueError("OFFSET must be non-negative.")
        return self.model_copy(update={"offset_": count})

    def distinct(self, enabled: bool = True) -> SelectQuery:
        return self.model_copy(update={"distinct_": enabled})

    # ------------------------------------------------------------------
    # Completeness
    # ------------------------------------------------------------------

    def build(self) -> SelectQuery:
        """Check clause completeness and return ``self``.

        Raises:
            IncompleteQueryError: If FROM is missing, or HAVING is used
                without GROUP BY.
        """
        if self.source is None:
            raise IncompleteQueryError("select", "from")
        if self.having_ is not None and not self.group_by_:
            raise IncompleteQueryError(
                "select", "group_by", "SELECT with HAVING requires a GROUP BY clause."
            )
        return self

    @property
    def tables(self) -> tuple[TableRef, ...]:
        """FROM table followed by joined tables."""
        head = (self.source,) if self.source is not None else ()
        return (*head, *(j.table for j in self.joins))


# ---------------------------------------------------------------------------
# INSERT
# ---------------------------------------------------------------------------


class InsertQuery(BaseModel):
    """``INSERT`` statement.

    Attributes:
        table: Target table.
        columns: Inserted column names, taken from the first row.
        rows: Row values, positionally matching ``columns``.
        returning: ``None`` for no RETURNING clause; an empty tuple returns
            every column of the target table.
        on_conflict: Optional conflict handling.
    """

    model_config = _FROZEN

    kind: Literal["insert"] = "insert"
    table: TableRef
    columns: tuple[str, ...] = ()
    rows: tuple[tuple[Expression, ...], ...] = ()
    returning_: tuple[Expression, ...] | None = Field(None, alias="returning")
    on_conflict: OnConflict | None = None

    def values(self, *rows: Mapping[Any, Any] | Iterable[Mapping[Any, Any]]) -> InsertQuery:
        """Append one or more rows.

        Accepts mappings keyed by column name (or column expression), either
        as separate arguments or as a single list.  All rows must have the
        same keys.

        Raises:
            IncompleteQueryError: If a row's keys differ from the first row's.
        """
        flat: list[Mapping[Any, Any]] = []
        for row in rows:
            if isinstance(row, Mapping):
                flat.append(row)
            else:
                flat.extend(row)

        columns = self.columns
        new_rows: list[tuple[ExpressionNode, ...]] = []
        for row in flat:
            pairs = _assignments(row)
            names = tuple(name for name, _ in pairs)
            if not columns:
                columns = names
            if set(names) != set(columns) or len(names) != len(columns):
                raise IncompleteQueryError(
                    "insert",
                    "values",
                    f"INSERT rows must all set the same columns; expected "
                    f"{sorted(columns)}, got {sorted(names)}.",
                )
            by_name = dict(pairs)
            new_rows.append(tuple(by_name[c] for c in columns))
        return self.model_copy(update={"columns": columns, "rows": (*self.rows, *new_rows)})

    def returning(self, *exprs: Any) -> InsertQuery:
        """Add a RETURNING clause; no arguments returns every column."""
        return self.model_copy(update={"returning_": tuple(to_expression(e) for e in exprs)})

    def on_conflict_do_nothing(self, *target: Any) -> InsertQuery:
        conflict = OnConflict(target=tuple(_column_name(t) for t in target))
        return self.model_copy(update={"on_conflict": conflict})

    def on_conflict_do_update(self, target: Iterable[Any], set_: Mapping[Any, Any]) -> InsertQuery:
        """Upsert: update ``set_`` columns when ``target`` conflicts.

        Raises:
            IncompleteQueryError: If ``set_`` is empty.
        """
        assignments = _assignments(set_)
        if not assignments:
            raise IncompleteQueryError("insert", "on_conflict set")
        conflict = OnConflict(
            target=tuple(_column_name(t) for t in target),
            action="update",
            assignments=assignments,
        )
        return self.model_copy(update={"on_conflict": conflict})

    def build(self) -> InsertQuery:
        """Check clause completeness and return ``self``.

        Raises:
            IncompleteQueryError: If no rows were given.
        """
        if not self.rows or not self.columns:
            raise IncompleteQueryError("insert", "values")
        return self

    @property
    def tables(self) -> tuple[TableRef, ...]:
        return (self.table,)


# ---------------------------------------------------------------------------
# UPDATE
# ---------------------------------------------------------------------------


class UpdateQuery(BaseModel):
    """``UPDATE`` statement."""

    model_config = _FROZEN

    kind: Literal["update"] = "update"
    table: TableRef
    assignments: tuple[tuple[str, Expression], ...] = ()
    where_: Expression | None = Field(None, alias="where")
    returning_: tuple[Expression, ...] | None = Field(None, alias="returning")

    def set(self, values: Mapping[Any, Any] | None = None, **kwargs: Any) -> UpdateQuery:
        """Assign columns; later assignments to the same column win."""
        merged = dict(self.assignments)
        for name, value in _assignments({**(values or {}), **kwargs}):
            merged[name] = value
        return self.model_copy(update={"assignments": tuple(merged.items())})

    def where(self, condition: Any) -> UpdateQuery:
        return self.model_copy(update={"where_": _merge_where(self.where_, condition)})

    def returning(self, *exprs: Any) -> UpdateQuery:
        return self.model_copy(update={"returning_": tuple(to_expression(e) for e in exprs)})

    def build(self) -> UpdateQuery:
        """Check clause completeness and return ``self``.

        Raises:
            IncompleteQueryError: If no column is assigned.
        """
        if not self.assignments:
            raise IncompleteQueryError("update", "set")
        return self

    @property
    def tables(self) -> tuple[TableRef, ...]:
        return (self.table,)


# ---------------------------------------------------------------------------
# DELETE
# ---------------------------------------------------------------------------


class DeleteQuery(BaseModel):
    """``DELETE`` statement.  Without ``where`` every row is deleted."""

    model_config = _FROZEN

    kind: Literal["delete"] = "delete"
    table: TableRef
    where_: Expression | None = Field(None, alias="where")
    returning_: tuple[Expression, ...] | None = Field(None, alias="returning")

    def where(self, condition: Any) -> DeleteQuery:
        return self.model_copy(update={"where_": _merge_where(self.where_, condition)})

    def returning(self, *exprs: Any) -> DeleteQuery:
        return self.model_copy(update={"returning_": tuple(to_expression(e) for e in exprs)})

    def build(self) -> DeleteQuery:
        return self

    @property
    def tables(self) -> tuple[TableRef, ...]:
        return (self.table,)


Query = Annotated[
    Union[SelectQuery, InsertQuery, UpdateQuery, DeleteQuery],
    Field(discriminator="kind"),
]

for _model in (JoinClause, OnConflict, SelectQuery, InsertQuery, UpdateQuery, DeleteQuery):
    _model.model_rebuild()


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def select(*columns: Any) -> SelectQuery:
    """Start a SELECT; no columns selects every column of the source tables."""
    return SelectQuery(columns=tuple(to_expression(c) for c in columns))


def insert(table: Table | str) -> InsertQuery:
    return InsertQuery(table=TableRef.of(table))


def update(table: Table | str) -> UpdateQuery:
    return UpdateQuery(table=TableRef.of(table))


def delete(table: Table | str) -> DeleteQuery:
    return DeleteQuery(table=TableRef.of(table))
