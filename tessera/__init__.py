"""tessera – typed SQL query building and schema migrations.

Declare tables once. Build queries as values. Bind every literal.

Public API
----------
``compile_query``
    Validate a query against a registry and compile it to parameterized SQL
    for one dialect.

Re-exported types
-----------------
Schema (``SchemaRegistry``, ``Table``, column constructors), expressions
(``eq``, ``and_``, ``func``, ``sql`` ...), queries (``select``, ``insert``,
``update``, ``delete``), compilation (``QueryCompiler``, ``DDLCompiler``,
``CompiledSQL``), execution (``Executor``, ``AsyncExecutor``,
``SQLiteDriver``), migrations (``MigrationGenerator``, ``MigrationRunner``)
and all error classes.

Extensibility
-------------
New dialect compilers can be registered via::

    from tessera.compile.registry import CompilerFactory

    @CompilerFactory.register("duckdb")
    class DuckDBCompiler(SQLCompiler):
        ...

After registration, ``compile_query``, executors and the migration engine
pick it up by name.
"""

from __future__ import annotations

from tessera.compile import (
    CompiledSQL,
    CompilerFactory,
    DDLCompiler,
    MySQLCompiler,
    PostgresCompiler,
    QueryCompiler,
    SQLCompiler,
    SQLiteCompiler,
)
from tessera.config import ExecutorConfig, MigrationConfig
from tessera.errors import (
    CompilationError,
    DefinitionError,
    DriverError,
    DuplicateDefinitionError,
    IncompleteQueryError,
    MigrationApplyError,
    MigrationConflictError,
    MigrationError,
    MigrationStateError,
    MissingParamError,
    RegistryFrozenError,
    ResultMappingError,
    SchemaError,
    TesseraError,
    UnknownColumnError,
    UnknownTableError,
)
from tessera.execute import (
    AiosqliteDriver,
    AsyncExecutor,
    Executor,
    Result,
    SQLiteDriver,
)
from tessera.expr import (
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
)
from tessera.log import configure_logging, get_logger
from tessera.migrate import (
    MigrationGenerator,
    MigrationRunner,
    MigrationState,
    diff_snapshots,
)
from tessera.query import delete, insert, select, update
from tessera.query.statements import Query
from tessera.schema import (
    Column,
    ScalarType,
    SchemaRegistry,
    SchemaSnapshot,
    Table,
    bigint,
    boolean,
    enum,
    integer,
    json_,
    real,
    serial,
    text,
    timestamp,
    varchar,
)
from tessera.schema.converters import registry_from_sqlalchemy

__all__ = [
    "compile_query",
    # Schema
    "Column",
    "ScalarType",
    "SchemaRegistry",
    "SchemaSnapshot",
    "Table",
    "bigint",
    "boolean",
    "enum",
    "integer",
    "json_",
    "real",
    "serial",
    "text",
    "timestamp",
    "varchar",
    "registry_from_sqlalchemy",
    # Expressions
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
    # Queries
    "Query",
    "delete",
    "insert",
    "select",
    "update",
    # Compilation
    "CompiledSQL",
    "CompilerFactory",
    "DDLCompiler",
    "MySQLCompiler",
    "PostgresCompiler",
    "QueryCompiler",
    "SQLCompiler",
    "SQLiteCompiler",
    # Execution
    "AiosqliteDriver",
    "AsyncExecutor",
    "Executor",
    "ExecutorConfig",
    "Result",
    "SQLiteDriver",
    # Migrations
    "MigrationConfig",
    "MigrationGenerator",
    "MigrationRunner",
    "MigrationState",
    "diff_snapshots",
    # Logging
    "configure_logging",
    "get_logger",
    # Errors
    "TesseraError",
    "DefinitionError",
    "SchemaError",
    "DuplicateDefinitionError",
    "UnknownTableError",
    "UnknownColumnError",
    "RegistryFrozenError",
    "IncompleteQueryError",
    "CompilationError",
    "MissingParamError",
    "DriverError",
    "ResultMappingError",
    "MigrationError",
    "MigrationConflictError",
    "MigrationApplyError",
    "MigrationStateError",
]


def compile_query(
    query: Query,
    registry: SchemaRegistry,
    dialect: str = "sqlite",
) -> CompiledSQL:
    """Validate ``query`` against ``registry`` and compile it.

    This is the shortest path from a query value to SQL::

        compiled = tessera.compile_query(
            select().from_(users).where(eq(users.c.id, 1)),
            registry,
            dialect="postgres",
        )
        cursor.execute(compiled.sql, compiled.bind())

    Args:
        query: Any select/insert/update/delete statement.
        registry: Registry the query's tables and columns resolve against.
        dialect: Registered compiler target (``postgres``, ``sqlite``, ``mysql``).

    Returns:
        ``CompiledSQL`` with the ``sql`` string and ordered ``params``.

    Raises:
        DefinitionError: (or subclass) if the query does not resolve.
        CompilationError: If the dialect cannot render the query.
    """
    compiler = CompilerFactory.create(dialect)
    return QueryCompiler(compiler, registry).compile(query)
