"""Integration tests: compile → execute against a real SQLite in-memory DB."""
from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from datetime import datetime
from typing import Any, Sequence

import pytest

from tessera.compile import ResultColumn
from tessera.config import ExecutorConfig
from tessera.errors import DriverError, MissingParamError, ResultMappingError
from tessera.execute import (
    AsyncExecutor,
    Driver,
    DriverResult,
    Executor,
    Result,
    SQLiteDriver,
    convert_value,
    map_rows,
)
from tessera.expr import eq, func, gte, placeholder
from tessera.query import delete, insert, select, update
from tessera.types import ScalarType
from tests.fixtures import sqlite_schema_ddl


def _seed(executor: Executor) -> dict[str, Any]:
    org = executor.execute(insert("orgs").values({"slug": "acme", "name": "Acme"}).returning()).one()
    executor.execute(
        insert("users").values(
            [
                {"org_id": org["id"], "full_name": "Ada", "age": 36, "role": "admin",
                 "settings": {"theme": "dark"}, "active": True},
                {"org_id": org["id"], "full_name": "Bob", "age": 17, "role": "guest",
                 "settings": None, "active": False},
            ]
        )
    )
    return org


# ---------------------------------------------------------------------------
# Round trips
# ---------------------------------------------------------------------------


def test_insert_returning_then_select_by_pk(sqlite_executor, users):
    inserted = sqlite_executor.execute(
        insert(users)
        .values({"full_name": "Ada", "age": 36, "email": "ada@example.com"})
        .returning()
    ).one()
    assert isinstance(inserted["id"], int)
    assert inserted["active"] is True
    assert inserted["role"] == "member"
    assert isinstance(inserted["created_at"], datetime)

    fetched = sqlite_executor.execute(
        select().from_(users).where(eq(users.c.id, inserted["id"]))
    ).one()
    assert fetched == inserted


def test_values_are_converted_to_column_types(sqlite_executor, users):
    _seed(sqlite_executor)
    rows = sqlite_executor.execute(
        select(users.c.full_name, users.c.active, users.c.settings)
        .from_(users)
        .order_by(users.c.full_name)
    ).rows
    assert rows == [
        {"full_name": "Ada", "active": True, "settings": {"theme": "dark"}},
        {"full_name": "Bob", "active": False, "settings": None},
    ]


def test_join_rows_are_nested_per_table(sqlite_executor, users, orgs):
    _seed(sqlite_executor)
    row = sqlite_executor.execute(
        select().from_(users).join(orgs, eq(users.c.org_id, orgs.c.id)).order_by(users.c.id)
    ).first()
    assert set(row) == {"users", "orgs"}
    assert row["users"]["full_name"] == "Ada"
    assert row["orgs"]["slug"] == "acme"


def test_aggregate_scalar(sqlite_executor, users):
    _seed(sqlite_executor)
    total = sqlite_executor.execute(select(func.count()).from_(users)).scalar()
    assert total == 2
    oldest = sqlite_executor.execute(select(func.max(users.c.age).label("m")).from_(users)).scalar()
    assert oldest == 36


def test_runtime_placeholders(sqlite_executor, users):
    _seed(sqlite_executor)
    q = select(users.c.full_name).from_(users).where(gte(users.c.age, placeholder("min_age")))
    assert [r["full_name"] for r in sqlite_executor.execute(q, {"min_age": 18})] == ["Ada"]
    with pytest.raises(MissingParamError):
        sqlite_executor.execute(q)


def test_update_and_delete_rowcounts(sqlite_executor, users):
    _seed(sqlite_executor)
    result = sqlite_executor.execute(update(users).set(age=40).where(eq(users.c.full_name, "Ada")))
    assert result.rowcount == 1
    assert result.rows == []
    gone = sqlite_executor.execute(delete(users).where(eq(users.c.active, False)).returning(users.c.full_name))
    assert gone.rows == [{"full_name": "Bob"}]
    assert gone.rowcount == 1


def test_records_validate_into_record_model(sqlite_executor, users):
    _seed(sqlite_executor)
    records = sqlite_executor.execute(select().from_(users).order_by(users.c.id)).models(
        users.record_model()
    )
    assert [r.full_name for r in records] == ["Ada", "Bob"]
    assert records[0].settings == {"theme": "dark"}


def test_on_conflict_do_nothing(sqlite_executor, orgs):
    q = insert(orgs).values({"slug": "acme", "name": "Acme"}).on_conflict_do_nothing(orgs.c.slug)
    assert sqlite_executor.execute(q).rowcount == 1
    assert sqlite_executor.execute(q).rowcount == 0


# ---------------------------------------------------------------------------
# Transactions and errors
# ---------------------------------------------------------------------------


def test_transaction_commits(sqlite_executor, orgs):
    with sqlite_executor.transaction():
        sqlite_executor.execute(insert(orgs).values({"slug": "a", "name": "A"}))
        assert sqlite_executor.in_transaction
    assert not sqlite_executor.in_transaction
    assert sqlite_executor.execute(select(func.count()).from_(orgs)).scalar() == 1


def test_transaction_rolls_back_and_reraises(sqlite_executor, orgs):
    with pytest.raises(RuntimeError):
        with sqlite_executor.transaction():
            sqlite_executor.execute(insert(orgs).values({"slug": "a", "name": "A"}))
            raise RuntimeError("boom")
    assert sqlite_executor.execute(select(func.count()).from_(orgs)).scalar() == 0


def test_nested_transaction_joins_outer(sqlite_executor, orgs):
    with pytest.raises(DriverError):
        with sqlite_executor.transaction():
            sqlite_executor.execute(insert(orgs).values({"slug": "a", "name": "A"}))
            with sqlite_executor.transaction():
                sqlite_executor.execute(insert(orgs).values({"slug": "b", "name": "B"}))
            sqlite_executor.execute(insert(orgs).values({"slug": "a", "name": "dup"}))
    assert sqlite_executor.execute(select(func.count()).from_(orgs)).scalar() == 0


def test_failed_commit_rolls_back(registry, conn):
    conn.execute("PRAGMA foreign_keys = ON")
    executor = Executor(SQLiteDriver(conn), registry)
    executor.execute_sql("CREATE TABLE parent (id INTEGER PRIMARY KEY)")
    executor.execute_sql(
        "CREATE TABLE child (id INTEGER PRIMARY KEY, parent_id INTEGER "
        "REFERENCES parent (id) DEFERRABLE INITIALLY DEFERRED)"
    )

    with pytest.raises(DriverError) as exc:
        with executor.transaction():
            executor.execute_sql("INSERT INTO child (id, parent_id) VALUES (1, 99)")
    assert isinstance(exc.value.__cause__, sqlite3.IntegrityError)
    assert not conn.in_transaction
    assert not executor.in_transaction

    with executor.transaction():
        executor.execute_sql("INSERT INTO parent (id) VALUES (1)")
    assert executor.execute_sql("SELECT count(*) AS n FROM parent").scalar() == 1
    assert executor.execute_sql("SELECT count(*) AS n FROM child").scalar() == 0


def test_driver_errors_are_wrapped(sqlite_executor, orgs):
    sqlite_executor.execute(insert(orgs).values({"slug": "a", "name": "A"}))
    with pytest.raises(DriverError) as exc:
        sqlite_executor.execute(insert(orgs).values({"slug": "a", "name": "B"}))
    assert isinstance(exc.value.__cause__, sqlite3.IntegrityError)
    assert exc.value.params == 2
    assert 'INSERT INTO "orgs"' in exc.value.sql


def test_sql_logged_without_values(sqlite_executor, orgs, caplog):
    with caplog.at_level(logging.DEBUG, logger="tessera"):
        sqlite_executor.execute(insert(orgs).values({"slug": "secret-slug", "name": "A"}))
    text = caplog.text
    assert "2 parameter(s)" in text
    assert "secret-slug" not in text


def test_log_sql_disabled(registry, conn, caplog):
    executor = Executor(SQLiteDriver(conn), registry, config=ExecutorConfig(log_sql=False))
    with caplog.at_level(logging.DEBUG, logger="tessera.execute"):
        executor.execute_sql("SELECT 1")
    assert "Executing SQL" not in caplog.text


class _RecordingDriver:
    """A fake driver satisfying the Driver protocol."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Sequence[Any]]] = []

    def execute(self, sql: str, params: Sequence[Any]) -> DriverResult:
        self.calls.append((sql, params))
        return DriverResult(rows=[], columns=[], rowcount=0)

    def begin(self) -> None:
        self.calls.append(("BEGIN", ()))

    def commit(self) -> None:
        self.calls.append(("COMMIT", ()))

    def rollback(self) -> None:
        self.calls.append(("ROLLBACK", ()))


def test_custom_driver_and_dialect(registry, users):
    driver = _RecordingDriver()
    assert isinstance(driver, Driver)
    executor = Executor(driver, registry, "postgres")
    with executor.transaction():
        executor.execute(select(users.c.id).from_(users).where(eq(users.c.id, 3)))
    assert [c[0].split("\n")[0] for c in driver.calls] == [
        "BEGIN",
        'SELECT "users"."id"',
        "COMMIT",
    ]
    assert driver.calls[1][1] == (3,)


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def test_convert_value_types():
    assert convert_value(ResultColumn("b", ScalarType.BOOLEAN), 1) is True
    assert convert_value(ResultColumn("j", ScalarType.JSON), '{"a": [1]}') == {"a": [1]}
    assert convert_value(ResultColumn("j", ScalarType.JSON), {"a": 1}) == {"a": 1}
    assert convert_value(ResultColumn("t", ScalarType.TIMESTAMP), "2025-01-02T03:04:05") == datetime(
        2025, 1, 2, 3, 4, 5
    )
    assert convert_value(ResultColumn("x"), object) is object
    assert convert_value(ResultColumn("n", ScalarType.INTEGER), None) is None


def test_convert_value_rejects_bad_enum():
    col = ResultColumn("role", ScalarType.ENUM, ("admin", "member"))
    assert convert_value(col, "admin") == "admin"
    with pytest.raises(ResultMappingError) as exc:
        convert_value(col, "owner")
    assert exc.value.key == "role"


def test_map_rows_checks_width():
    raw = DriverResult(rows=[(1, 2)], columns=["a", "b"], rowcount=1)
    with pytest.raises(ResultMappingError):
        map_rows(raw, (ResultColumn("a", ScalarType.INTEGER),))
    assert map_rows(raw, ()) == [{"a": 1, "b": 2}]


def test_result_helpers():
    empty = Result()
    assert empty.first() is None
    assert empty.scalar() is None
    with pytest.raises(ValueError):
        empty.one()
    result = Result(rows=[{"n": 1}, {"n": 2}], rowcount=2)
    assert len(result) == 2
    assert [r["n"] for r in result] == [1, 2]
    with pytest.raises(ValueError):
        result.one()


# ---------------------------------------------------------------------------
# Async
# ---------------------------------------------------------------------------


def test_async_executor_round_trip(registry, users, tmp_path):
    aiosqlite = pytest.importorskip("aiosqlite")
    from tessera.execute import AiosqliteDriver

    async def run() -> tuple[dict[str, Any], int]:
        async with aiosqlite.connect(str(tmp_path / "async.db")) as db:
            executor = AsyncExecutor(AiosqliteDriver(db), registry, "sqlite")
            for statement in sqlite_schema_ddl(registry):
                await executor.execute_sql(statement)
            async with executor.transaction():
                row = (
                    await executor.execute(
                        insert(users).values({"full_name": "Ada", "settings": [1, 2]}).returning()
                    )
                ).one()
            with pytest.raises(RuntimeError):
                async with executor.transaction():
                    await executor.execute(insert(users).values({"full_name": "Bob"}))
                    raise RuntimeError("boom")
            count = (await executor.execute(select(func.count()).from_(users))).scalar()
            return row, count

    row, count = asyncio.run(run())
    assert row["full_name"] == "Ada"
    assert row["settings"] == [1, 2]
    assert count == 1


class _AsyncRecordingDriver:
    """A fake async driver that yields to the event loop on every statement."""

    def __init__(self, fail_commit: bool = False) -> None:
        self.calls: list[str] = []
        self.fail_commit = fail_commit

    async def execute(self, sql: str, params: Sequence[Any]) -> DriverResult:
        self.calls.append(sql)
        await asyncio.sleep(0)
        return DriverResult(rows=[], columns=[], rowcount=0)

    async def begin(self) -> None:
        self.calls.append("BEGIN")

    async def commit(self) -> None:
        self.calls.append("COMMIT")
        if self.fail_commit:
            raise RuntimeError("commit failed")

    async def rollback(self) -> None:
        self.calls.append("ROLLBACK")


def test_concurrent_async_transactions_are_serialised(registry):
    driver = _AsyncRecordingDriver()
    executor = AsyncExecutor(driver, registry, "postgres")

    async def first() -> None:
        async with executor.transaction():
            await executor.execute_sql("A1")
            await executor.execute_sql("A2")

    async def second() -> None:
        async with executor.transaction():
            await executor.execute_sql("B1")
            raise RuntimeError("boom")

    async def run() -> list[Any]:
        return await asyncio.gather(first(), second(), return_exceptions=True)

    results = asyncio.run(run())
    assert results[0] is None
    assert isinstance(results[1], RuntimeError)
    assert driver.calls == ["BEGIN", "A1", "A2", "COMMIT", "BEGIN", "B1", "ROLLBACK"]


def test_async_nested_transaction_joins_within_task(registry):
    driver = _AsyncRecordingDriver()
    executor = AsyncExecutor(driver, registry, "postgres")

    async def run() -> bool:
        async with executor.transaction():
            async with executor.transaction():
                await executor.execute_sql("INNER")
            return executor.in_transaction

    assert asyncio.run(run()) is True
    assert not executor.in_transaction
    assert driver.calls == ["BEGIN", "INNER", "COMMIT"]


def test_async_failed_commit_rolls_back(registry):
    driver = _AsyncRecordingDriver(fail_commit=True)
    executor = AsyncExecutor(driver, registry, "postgres")

    async def run() -> None:
        async with executor.transaction():
            await executor.execute_sql("A1")

    with pytest.raises(DriverError):
        asyncio.run(run())
    assert driver.calls == ["BEGIN", "A1", "COMMIT", "ROLLBACK"]


def test_sqlite_driver_coerces_params(conn):
    driver = SQLiteDriver(conn)
    driver.execute("CREATE TABLE t (a, b, c)", ())
    driver.execute("INSERT INTO t VALUES (?, ?, ?)", (True, datetime(2025, 1, 1), {"k": 1}))
    result = driver.execute("SELECT a, b, c FROM t", ())
    assert result.rows == [(1, "2025-01-01T00:00:00", json.dumps({"k": 1}))]
    assert result.columns == ["a", "b", "c"]
