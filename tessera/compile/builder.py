"""Core Query → SQL compilation logic.

``QueryCompiler`` is the top-level orchestrator.  It validates the query
against the registry, wires together the clause-level and expression-level
sub-builders, then assembles the statement.  All dialect-specific behaviour
is delegated to the injected ``SQLCompiler``.

Sub-builder hierarchy
---------------------
QueryCompiler
  ├── ExpressionBuilder    (expression_builder.py)
  ├── SelectClauseBuilder  (clause_builders.py)
  ├── FromClauseBuilder    (clause_builders.py)
  ├── JoinClauseBuilder    (clause_builders.py)
  └── ReturningBuilder     (clause_builders.py)

Runtime context sharing
-----------------------
A single :class:`~tessera.compile.expression_builder.RuntimeContext` is
created per ``compile()`` call and threaded through every sub-builder.
Clauses are rendered strictly in the order they appear in the SQL text, so
the parameter tuple always matches the placeholder order.
"""

from __future__ import annotations

from tessera.compile.base import CompiledSQL, ResultColumn, SQLCompiler
from tessera.compile.clause_builders import (
    FromClauseBuilder,
    JoinClauseBuilder,
    ReturningBuilder,
    SelectClauseBuilder,
)
from tessera.compile.context import CompilationContext
from tessera.compile.expression_builder import ExpressionBuilder, RuntimeContext
from tessera.errors import CompilationError, IncompleteQueryError
from tessera.log import get_logger
from tessera.query.statements import (
    DeleteQuery,
    InsertQuery,
    Query,
    SelectQuery,
    UpdateQuery,
)
from tessera.schema.registry import SchemaRegistry
from tessera.validate.scope import QueryScope
from tessera.validate.validator import QueryValidator

logger = get_logger("compile")


class QueryCompiler:
    """Compiles a query to parameterized SQL for one dialect.

    Compilation is a pure function of ``(query, registry, dialect)``:
    compiling the same query twice yields byte-identical SQL and the same
    parameter order.

    Args:
        compiler: Dialect-specific compiler instance.
        registry: Schema registry used to resolve tables and columns.
    """

    def __init__(self, compiler: SQLCompiler, registry: SchemaRegistry) -> None:
        self._ctx = CompilationContext(compiler=compiler, registry=registry)
        self._validator = QueryValidator(registry)

    @property
    def dialect(self) -> str:
        return self._ctx.dialect

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def compile(self, query: Query) -> CompiledSQL:
        """Compile ``query`` to parameterized SQL.

        Args:
            query: Any select/insert/update/delete statement.

        Returns:
            :class:`~tessera.compile.base.CompiledSQL` with the ``sql``
            string, positional ``params`` and the result shape.

        Raises:
            IncompleteQueryError: If a required clause is missing.
            UnknownTableError: If a table is not registered or not in scope.
            UnknownColumnError: If a column does not exist.
            CompilationError: If the dialect cannot render the statement.
        """
        scope = self._validator.validate(query)
        runtime = RuntimeContext(self._ctx)

        if isinstance(query, SelectQuery):
            sql, columns = self._build_select(query, scope, runtime)
        elif isinstance(query, InsertQuery):
            sql, columns = self._build_insert(query, scope, runtime)
        elif isinstance(query, UpdateQuery):
            sql, columns = self._build_update(query, scope, runtime)
        elif isinstance(query, DeleteQuery):
            sql, columns = self._build_delete(query, scope, runtime)
        else:
            raise CompilationError(f"Unknown statement type: {type(query).__name__}")

        logger.debug(
            "Compiled %s for %s with %d parameter(s)",
            query.kind,
            self.dialect,
            len(runtime.params),
        )
        return CompiledSQL(
            sql=sql,
            params=tuple(runtime.params),
            dialect=self.dialect,
            columns=columns,
        )

    # ------------------------------------------------------------------
    # SELECT
    # ------------------------------------------------------------------

    def _build_select(
        self, query: SelectQuery, scope: QueryScope, runtime: RuntimeContext
    ) -> tuple[str, tuple[ResultColumn, ...]]:
        if query.source is None:
            raise IncompleteQueryError("select", "from")

        expr = ExpressionBuilder(self._ctx, runtime)
        from_builder = FromClauseBuilder(self._ctx)
        join_builder = JoinClauseBuilder(self._ctx, expr, from_builder)

        select_sql, columns = SelectClauseBuilder(self._ctx, expr).build(query, scope)
        parts = [select_sql]
        parts.append(f"FROM {from_builder.build(query.source)}")

        for join in query.joins:
            parts.append(join_builder.build(join))

        if query.where_ is not None:
            parts.append(f"WHERE {expr.build(query.where_)}")

        if query.group_by_:
            parts.append(f"GROUP BY {', '.join(expr.build(e) for e in query.group_by_)}")

        if query.having_ is not None:
            parts.append(f"HAVING {expr.build(query.having_)}")

        if query.order_by_:
            parts.append(f"ORDER BY {', '.join(expr.build(o) for o in query.order_by_)}")

        limit_sql = runtime.add_value(query.limit_) if query.limit_ is not None else None
        offset_sql = runtime.add_value(query.offset_) if query.offset_ is not None else None
        parts.extend(self._ctx.compiler.limit_offset(limit_sql, offset_sql))

        return "\n".join(parts), columns

    # ------------------------------------------------------------------
    # DML
    # ------------------------------------------------------------------

    def _build_insert(
        self, query: InsertQuery, scope: QueryScope, runtime: RuntimeContext
    ) -> tuple[str, tuple[ResultColumn, ...]]:
        compiler = self._ctx.compiler
        quote = compiler.quote_identifier
        expr = ExpressionBuilder(self._ctx, runtime, qualify=False)

        conflict = query.on_conflict
        keyword = compiler.insert_keyword(
            ignore_conflicts=conflict is not None and conflict.action == "nothing"
        )
        column_list = ", ".join(quote(c) for c in query.columns)
        parts = [f"{keyword} INTO {quote(query.table.name)} ({column_list})"]

        rows = [f"({', '.join(expr.build(v) for v in row)})" for row in query.rows]
        parts.append(f"VALUES {', '.join(rows)}")

        if conflict is not None:
            assignments = None
            if conflict.action == "update":
                assignments = [
                    (quote(name), expr.build(value)) for name, value in conflict.assignments
                ]
            clause = compiler.on_conflict([quote(t) for t in conflict.target], assignments)
            if clause:
                parts.append(clause)

        columns: tuple[ResultColumn, ...] = ()
        if query.returning_ is not None:
            returning_sql, columns = ReturningBuilder(self._ctx, expr).build(
                query.returning_, query.table, scope
            )
            parts.append(returning_sql)
        return "\n".join(parts), columns

    def _build_update(
        self, query: UpdateQuery, scope: QueryScope, runtime: RuntimeContext
    ) -> tuple[str, tuple[ResultColumn, ...]]:
        quote = self._ctx.compiler.quote_identifier
        expr = ExpressionBuilder(self._ctx, runtime, qualify=False)

        parts = [f"UPDATE {quote(query.table.name)}"]
        sets = ", ".join(f"{quote(name)} = {expr.build(value)}" for name, value in query.assignments)
        parts.append(f"SET {sets}")
        if query.where_ is not None:
            parts.append(f"WHERE {expr.build(query.where_)}")

        columns: tuple[ResultColumn, ...] = ()
        if query.returning_ is not None:
            returning_sql, columns = ReturningBuilder(self._ctx, expr).build(
                query.returning_, query.table, scope
            )
            parts.append(returning_sql)
        return "\n".join(parts), columns

    def _build_delete(
        self, query: DeleteQuery, scope: QueryScope, runtime: RuntimeContext
    ) -> tuple[str, tuple[ResultColumn, ...]]:
        quote = self._ctx.compiler.quote_identifier
        expr = ExpressionBuilder(self._ctx, runtime, qualify=False)

        parts = [f"DELETE FROM {quote(query.table.name)}"]
        if query.where_ is not None:
            parts.append(f"WHERE {expr.build(query.where_)}")

        columns: tuple[ResultColumn, ...] = ()
        if query.returning_ is not None:
            returning_sql, columns = ReturningBuilder(self._ctx, expr).build(
                query.returning_, query.table, scope
            )
            parts.append(returning_sql)
        return "\n".join(parts), columns
