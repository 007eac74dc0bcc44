"""Execution adapters: compile a query, send it through a driver, map rows.

``Executor`` drives a synchronous :class:`~tessera.execute.protocols.Driver`;
``AsyncExecutor`` drives an :class:`~tessera.execute.protocols.AsyncDriver`
and suspends only while the driver performs I/O.  Both share compilation,
logging and row mapping through :class:`_ExecutorBase`.

Connection lifecycle stays with the caller.  Driver failures are wrapped in
:class:`~tessera.errors.DriverError` with the original exception chained;
nothing is retried.

Transaction nesting is tracked per thread (sync) or per task (async).  One
executor wraps one connection, so concurrent outermost transactions wait
for each other instead of sharing a ``BEGIN``.
"""
from __future__ import annotations

import asyncio
import threading
from contextlib import asynccontextmanager, contextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator, Iterator, Mapping, Sequence

from tessera.compile import CompiledSQL, CompilerFactory, QueryCompiler
from tessera.config import ExecutorConfig
from tessera.errors import DriverError, TesseraError
from tessera.execute.protocols import AsyncDriver, Driver, DriverResult
from tessera.execute.result import Result, map_rows
from tessera.log import get_logger
from tessera.query.statements import Query
from tessera.schema.registry import SchemaRegistry

logger = get_logger("execute")


class _ExecutorBase:
    """Compilation and row mapping shared by the sync and async executors."""

    def __init__(
        self,
        registry: SchemaRegistry,
        dialect: str | None = None,
        *,
        config: ExecutorConfig | None = None,
    ) -> None:
        if config is None:
            config = ExecutorConfig(dialect=dialect) if dialect else ExecutorConfig()
        self.config = config
        self.registry = registry
        self._compiler = QueryCompiler(CompilerFactory.create(config.dialect), registry)
        self._depth: ContextVar[int] = ContextVar(f"tessera_tx_depth_{id(self)}", default=0)

    @property
    def dialect(self) -> str:
        return self._compiler.dialect

    @property
    def in_transaction(self) -> bool:
        """Whether the calling thread or task is inside ``transaction()``."""
        return self._depth.get() > 0

    def compile(self, query: Query) -> CompiledSQL:
        """Validate and compile ``query`` for this executor's dialect."""
        return self._compiler.compile(query)

    def _log(self, sql: str, params: Sequence[Any]) -> None:
        if self.config.log_sql:
            logger.debug("Executing SQL (%d parameter(s)):\n%s", len(params), sql)

    @staticmethod
    def _wrap(exc: Exception, sql: str | None, params: Sequence[Any]) -> DriverError:
        return DriverError(f"Driver error: {exc}", sql=sql, params=len(params))

    @staticmethod
    def _result(raw: DriverResult, compiled: CompiledSQL | None) -> Result:
        columns = compiled.columns if compiled is not None else ()
        return Result(rows=map_rows(raw, columns), rowcount=raw.rowcount)


# ---------------------------------------------------------------------------
# Synchronous executor
# ---------------------------------------------------------------------------


class Executor(_ExecutorBase):
    """Runs queries through a synchronous driver.

    Args:
        driver: The driver connection.
        registry: Schema registry used to validate queries and map rows.
        dialect: Compiler target; shorthand for ``config=ExecutorConfig(dialect=...)``.
        config: Full executor settings.

    Example::

        executor = Executor(SQLiteDriver(sqlite3.connect(":memory:")), registry)
        with executor.transaction():
            row = executor.execute(
                insert(users).values({"full_name": "Ada", "age": 36}).returning()
            ).one()
    """

    def __init__(
        self,
        driver: Driver,
        registry: SchemaRegistry,
        dialect: str | None = None,
        *,
        config: ExecutorConfig | None = None,
    ) -> None:
        super().__init__(registry, dialect, config=config)
        self.driver = driver
        self._lock = threading.Lock()

    def execute(self, query: Query, params: Mapping[str, Any] | None = None) -> Result:
        """Validate, compile and run ``query``.

        Args:
            query: Any select/insert/update/delete statement.
            params: Values for named placeholders in the query.

        Returns:
            The converted rows and the affected row count.

        Raises:
            DefinitionError: If the query does not resolve against the registry.
            CompilationError: If the dialect cannot render the query.
            MissingParamError: If a placeholder has no value.
            DriverError: If the driver fails.
            ResultMappingError: If a returned value does not fit its column type.
        """
        return self.execute_compiled(self.compile(query), params)

    def execute_compiled(
        self, compiled: CompiledSQL, params: Mapping[str, Any] | None = None
    ) -> Result:
        """Run an already compiled statement."""
        bound = compiled.bind(params)
        return self._result(self._send(compiled.sql, bound), compiled)

    def execute_sql(self, sql: str, params: Sequence[Any] = ()) -> Result:
        """Run raw SQL text; rows are returned unconverted."""
        return self._result(self._send(sql, params), None)

    @contextmanager
    def transaction(self) -> Iterator[Executor]:
        """Run the block in a transaction.

        Commits on success; rolls back and re-raises on any exception,
        including a failed commit.  A nested ``transaction()`` in the same
        thread joins the outer one; another thread waits until it ends.
        """
        depth = self._depth.get()
        if depth:
            token = self._depth.set(depth + 1)
            try:
                yield self
            finally:
                self._depth.reset(token)
            return

        with self._lock:
            self._call(self.driver.begin)
            token = self._depth.set(1)
            try:
                yield self
            except BaseException:
                self._depth.reset(token)
                logger.debug("Rolling back transaction")
                self._call(self.driver.rollback)
                raise
            self._depth.reset(token)
            self._commit()

    def _commit(self) -> None:
        try:
            self._call(self.driver.commit)
        except DriverError:
            logger.debug("Commit failed; rolling back transaction")
            self._call(self.driver.rollback)
            raise

    # ------------------------------------------------------------------
    # Driver calls
    # ------------------------------------------------------------------

    def _send(self, sql: str, params: Sequence[Any]) -> DriverResult:
        self._log(sql, params)
        try:
            return self.driver.execute(sql, params)
        except TesseraError:
            raise
        except Exception as exc:
            raise self._wrap(exc, sql, params) from exc

    def _call(self, operation: Any) -> None:
        try:
            operation()
        except TesseraError:
            raise
        except Exception as exc:
            raise self._wrap(exc, None, ()) from exc


# ---------------------------------------------------------------------------
# Asynchronous executor
# ---------------------------------------------------------------------------


class AsyncExecutor(_ExecutorBase):
    """Runs queries through an asynchronous driver.

    Same API as :class:`Executor` with coroutine methods and an async
    ``transaction()`` context manager.
    """

    def __init__(
        self,
        driver: AsyncDriver,
        registry: SchemaRegistry,
        dialect: str | None = None,
        *,
        config: ExecutorConfig | None = None,
    ) -> None:
        super().__init__(registry, dialect, config=config)
        self.driver = driver
        self._lock = asyncio.Lock()

    async def execute(self, query: Query, params: Mapping[str, Any] | None = None) -> Result:
        return await self.execute_compiled(self.compile(query), params)

    async def execute_compiled(
        self, compiled: CompiledSQL, params: Mapping[str, Any] | None = None
    ) -> Result:
        bound = compiled.bind(params)
        return self._result(await self._send(compiled.sql, bound), compiled)

    async def execute_sql(self, sql: str, params: Sequence[Any] = ()) -> Result:
        return self._result(await self._send(sql, params), None)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncExecutor]:
        """Async form of :meth:`Executor.transaction`.

        Nesting is tracked per task: a task started inside a transaction
        joins it, while an unrelated task waits for it to finish.
        """
        depth = self._depth.get()
        if depth:
            token = self._depth.set(depth + 1)
            try:
                yield self
            finally:
                self._depth.reset(token)
            return

        async with self._lock:
            await self._call(self.driver.begin)
            token = self._depth.set(1)
            try:
                yield self
            except BaseException:
                self._depth.reset(token)
                logger.debug("Rolling back transaction")
                await self._call(self.driver.rollback)
                raise
            self._depth.reset(token)
            await self._commit()

    async def _commit(self) -> None:
        try:
            await self._call(self.driver.commit)
        except DriverError:
            logger.debug("Commit failed; rolling back transaction")
            await self._call(self.driver.rollback)
            raise

    async def _send(self, sql: str, params: Sequence[Any]) -> DriverResult:
        self._log(sql, params)
        try:
            return await self.driver.execute(sql, params)
        except TesseraError:
            raise
        except Exception as exc:
            raise self._wrap(exc, sql, params) from exc

    async def _call(self, operation: Any) -> None:
        try:
            await operation()
        except TesseraError:
            raise
        except Exception as exc:
            raise self._wrap(exc, None, ()) from exc
