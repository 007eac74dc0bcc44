"""Static query validation against the schema registry.

``QueryValidator`` checks, before any SQL is produced, that:

1. The statement has every clause its kind requires (``build()``).
2. Every table it names is registered.
3. Every column reference points at a table in the statement's scope
   (FROM + JOINs, or the DML target) and at a column that exists there.
4. Column names used as INSERT / UPDATE / ON CONFLICT targets exist on the
   target table.

Violations raise the first error found as a subclass of
:class:`~tessera.errors.DefinitionError`.
"""
from __future__ import annotations

from typing import Iterable

from tessera.expr.nodes import ExpressionNode
from tessera.expr.visitors import iter_columns
from tessera.query.statements import (
    DeleteQuery,
    InsertQuery,
    Query,
    SelectQuery,
    UpdateQuery,
)
from tessera.schema.registry import SchemaRegistry
from tessera.validate.scope import QueryScope


class QueryValidator:
    """Validates queries against a :class:`SchemaRegistry`.

    Args:
        registry: The registry tables and columns are resolved through.
    """

    def __init__(self, registry: SchemaRegistry) -> None:
        self._registry = registry

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate(self, query: Query) -> QueryScope:
        """Validate ``query`` and return its resolved scope.

        Raises:
            IncompleteQueryError: If a required clause is missing.
            UnknownTableError: If a table is unknown or not in scope.
            UnknownColumnError: If a column does not exist.
        """
        query.build()
        scope = QueryScope.resolve(self._registry, query.tables)

        if isinstance(query, SelectQuery):
            self._validate_select(query, scope)
        elif isinstance(query, InsertQuery):
            self._validate_insert(query, scope)
        elif isinstance(query, UpdateQuery):
            self._validate_update(query, scope)
        elif isinstance(query, DeleteQuery):
            self._check_exprs(scope, [query.where_], query.returning_ or ())
        return scope

    # ------------------------------------------------------------------
    # Per-statement checks
    # ------------------------------------------------------------------

    def _validate_select(self, query: SelectQuery, scope: QueryScope) -> None:
        self._check_exprs(
            scope,
            query.columns,
            [j.condition for j in query.joins],
            [query.where_, query.having_],
            query.group_by_,
            query.order_by_,
        )

    def _validate_insert(self, query: InsertQuery, scope: QueryScope) -> None:
        target = scope.table(query.table.ref_name)
        for name in query.columns:
            target.get_column(name)
        for row in query.rows:
            self._check_exprs(scope, row)
        if query.on_conflict is not None:
            for name in query.on_conflict.target:
                target.get_column(name)
            for name, value in query.on_conflict.assignments:
                target.get_column(name)
                self._check_exprs(scope, [value])
        self._check_exprs(scope, query.returning_ or ())

    def _validate_update(self, query: UpdateQuery, scope: QueryScope) -> None:
        target = scope.table(query.table.ref_name)
        for name, value in query.assignments:
            target.get_column(name)
            self._check_exprs(scope, [value])
        self._check_exprs(scope, [query.where_], query.returning_ or ())

    # ------------------------------------------------------------------
    # Expression checks
    # ------------------------------------------------------------------

    @staticmethod
    def _check_exprs(
        scope: QueryScope, *groups: Iterable[ExpressionNode | None]
    ) -> None:
        for group in groups:
            for expr in group:
                if expr is None:
                    continue
                for col in iter_columns(expr):
                    scope.lookup(col.table, col.column)
