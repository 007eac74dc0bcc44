"""tessera execution: drivers, executors and row mapping."""
from tessera.execute.executor import AsyncExecutor, Executor
from tessera.execute.protocols import AsyncDriver, Driver, DriverResult
from tessera.execute.result import Result, convert_value, map_rows
from tessera.execute.sqlite import AiosqliteDriver, SQLiteDriver

__all__ = [
    "AiosqliteDriver",
    "AsyncDriver",
    "AsyncExecutor",
    "Driver",
    "DriverResult",
    "Executor",
    "Result",
    "SQLiteDriver",
    "convert_value",
    "map_rows",
]
