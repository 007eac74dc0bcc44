"""Driver interfaces the executors talk to.

A driver wraps one caller-owned database connection.  It sends SQL text with
positional parameters and reports rows, column names and the affected row
count; it knows nothing about queries, registries or dialects.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence, runtime_checkable


@dataclass(frozen=True)
class DriverResult:
    """Raw outcome of one statement.

    Attributes:
        rows: Returned rows as positional tuples.
        columns: Column names reported by the cursor.
        rowcount: Rows affected (or returned, for row-returning statements).
    """

    rows: list[tuple[Any, ...]] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)
    rowcount: int = 0


@runtime_checkable
class Driver(Protocol):
    """Synchronous driver connection."""

    def execute(self, sql: str, params: Sequence[Any]) -> DriverResult: ...  # pragma: no cover

    def begin(self) -> None: ...  # pragma: no cover

    def commit(self) -> None: ...  # pragma: no cover

    def rollback(self) -> None: ...  # pragma: no cover


@runtime_checkable
class AsyncDriver(Protocol):
    """Asynchronous driver connection; every operation is a coroutine."""

    async def execute(self, sql: str, params: Sequence[Any]) -> DriverResult: ...  # pragma: no cover

    async def begin(self) -> None: ...  # pragma: no cover

    async def commit(self) -> None: ...  # pragma: no cover

    async def rollback(self) -> None: ...  # pragma: no cover
