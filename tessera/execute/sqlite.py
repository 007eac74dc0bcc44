"""Built-in drivers for SQLite.

``SQLiteDriver`` wraps a standard-library :mod:`sqlite3` connection.
``AiosqliteDriver`` wraps an ``aiosqlite`` connection and is available when
the ``aiosqlite`` extra is installed.

Both put the connection in autocommit mode and issue ``BEGIN`` explicitly,
so a statement outside :meth:`~tessera.execute.executor.Executor.transaction`
commits on its own.
"""
from __future__ import annotations

import json
import sqlite3
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Sequence

from tessera.execute.protocols import DriverResult

if TYPE_CHECKING:
    import aiosqlite

__all__ = ("AiosqliteDriver", "SQLiteDriver", "coerce_param")


def coerce_param(value: Any) -> Any:
    """Convert a Python value to something SQLite can store.

    ``bool`` becomes ``0``/``1``, datetimes become ISO text and dicts, lists
    and tuples become JSON text.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value if not isinstance(value, tuple) else list(value))
    return value


def _result(cursor_rows: list[Any], description: Any, rowcount: int) -> DriverResult:
    columns = [col[0] for col in description or []]
    rows = [tuple(row) for row in cursor_rows]
    if description:
        rowcount = len(rows)
    return DriverResult(rows=rows, columns=columns, rowcount=max(rowcount, 0))


class SQLiteDriver:
    """Synchronous driver over a :class:`sqlite3.Connection`.

    Args:
        connection: Caller-owned connection.  Its lifecycle (open/close)
            stays with the caller.
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        connection.isolation_level = None
        self.connection = connection

    def execute(self, sql: str, params: Sequence[Any]) -> DriverResult:
        cursor = self.connection.execute(sql, [coerce_param(p) for p in params])
        try:
            rows = cursor.fetchall() if cursor.description else []
            return _result(rows, cursor.description, cursor.rowcount)
        finally:
            cursor.close()

    def begin(self) -> None:
        """Begin a database transaction."""
        self.connection.execute("BEGIN")

    def commit(self) -> None:
        """Commit the current transaction."""
        self.connection.commit()

    def rollback(self) -> None:
        """Rollback the current transaction."""
        self.connection.rollback()


class AiosqliteDriver:
    """Asynchronous driver over an ``aiosqlite`` connection.

    Args:
        connection: Caller-owned, already opened ``aiosqlite`` connection.
    """

    def __init__(self, connection: aiosqlite.Connection) -> None:
        connection.isolation_level = None
        self.connection = connection

    async def execute(self, sql: str, params: Sequence[Any]) -> DriverResult:
        cursor = await self.connection.execute(sql, [coerce_param(p) for p in params])
        try:
            rows = list(await cursor.fetchall()) if cursor.description else []
            return _result(rows, cursor.description, cursor.rowcount)
        finally:
            await cursor.close()

    async def begin(self) -> None:
        await self.connection.execute("BEGIN")

    async def commit(self) -> None:
        await self.connection.commit()

    async def rollback(self) -> None:
        await self.connection.rollback()
