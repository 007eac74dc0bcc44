"""Shared pytest fixtures for tessera unit and integration tests."""
from __future__ import annotations

import sqlite3
from typing import Iterator

import pytest

from tessera.execute import Executor, SQLiteDriver
from tessera.schema import SchemaRegistry, Table
from tests.fixtures import build_registry, sqlite_schema_ddl


@pytest.fixture(scope="session")
def registry() -> SchemaRegistry:
    """Canonical frozen registry shared across all tests."""
    return build_registry()


@pytest.fixture(scope="session")
def users(registry: SchemaRegistry) -> Table:
    return registry.get_table("users")


@pytest.fixture(scope="session")
def posts(registry: SchemaRegistry) -> Table:
    return registry.get_table("posts")


@pytest.fixture(scope="session")
def orgs(registry: SchemaRegistry) -> Table:
    return registry.get_table("orgs")


@pytest.fixture()
def conn() -> Iterator[sqlite3.Connection]:
    connection = sqlite3.connect(":memory:")
    yield connection
    connection.close()


@pytest.fixture()
def sqlite_executor(registry: SchemaRegistry, conn: sqlite3.Connection) -> Executor:
    """Executor over an in-memory database with the sample schema created."""
    executor = Executor(SQLiteDriver(conn), registry, "sqlite")
    for statement in sqlite_schema_ddl(registry):
        executor.execute_sql(statement)
    return executor
