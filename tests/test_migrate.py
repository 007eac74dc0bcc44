"""Tests for snapshot diffing, migration generation and application."""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import pytest

from tessera.compile import DDLCompiler, PostgresCompiler
from tessera.config import MigrationConfig
from tessera.errors import (
    MigrationApplyError,
    MigrationConflictError,
    MigrationError,
    MigrationStateError,
)
from tessera.execute import Executor, SQLiteDriver
from tessera.migrate import (
    STATEMENT_BREAKPOINT,
    AddColumn,
    AlterColumnType,
    AlterDefault,
    AlterNullability,
    CreateTable,
    DropColumn,
    DropTable,
    MigrationGenerator,
    MigrationRunner,
    MigrationState,
    MigrationUnit,
    RenameColumn,
    diff_snapshots,
    render_operations,
    split_statements,
)
from tessera.migrate.state import checksum, render_file
from tessera.schema import (
    SchemaRegistry,
    SchemaSnapshot,
    bigint,
    enum,
    integer,
    serial,
    text,
    varchar,
)
from tests.fixtures import build_registry

EMPTY = SchemaSnapshot()


def _users(*columns) -> SchemaSnapshot:
    reg = SchemaRegistry()
    reg.register("users", serial("id", primary_key=True), *columns)
    return reg.snapshot()


def _config(tmp_path: Path, dialect: str = "sqlite", **kwargs) -> MigrationConfig:
    return MigrationConfig(directory=tmp_path / "migrations", dialect=dialect, **kwargs)


def _runner(conn: sqlite3.Connection, config: MigrationConfig) -> MigrationRunner:
    executor = Executor(SQLiteDriver(conn), SchemaRegistry(), "sqlite")
    return MigrationRunner(executor, config)


def _write_unit(directory: Path, version: str, name: str, statements: list[str]) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{version}_{name}.sql"
    path.write_text(render_file(statements), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------


class TestDiff:
    def test_identical_snapshots_produce_nothing(self):
        snap = build_registry().snapshot()
        assert diff_snapshots(snap, snap) == []

    def test_new_tables_created_in_dependency_order(self):
        reg = SchemaRegistry()
        reg.register("posts", serial("id", primary_key=True), integer("author_id", references="users.id"))
        reg.register("users", serial("id", primary_key=True), integer("org_id", references="orgs.id"))
        reg.register("orgs", serial("id", primary_key=True))
        ops = diff_snapshots(EMPTY, reg.snapshot())
        assert [op.table.name for op in ops] == ["orgs", "users", "posts"]
        assert all(isinstance(op, CreateTable) for op in ops)

    def test_self_reference_is_not_a_cycle(self):
        ops = diff_snapshots(EMPTY, build_registry().snapshot())
        assert [op.table.name for op in ops] == ["orgs", "users", "posts"]

    def test_circular_foreign_keys_rejected(self):
        reg = SchemaRegistry()
        reg.register("a", serial("id", primary_key=True), integer("b_id", references="b.id"))
        reg.register("b", serial("id", primary_key=True), integer("a_id", references="a.id"))
        with pytest.raises(MigrationConflictError) as exc:
            diff_snapshots(EMPTY, reg.snapshot())
        assert any("circular" in c for c in exc.value.changes)

    def test_add_column(self):
        ops = diff_snapshots(_users(), _users(text("bio")))
        assert len(ops) == 1
        assert isinstance(ops[0], AddColumn)
        assert ops[0].column.name == "bio"

    def test_drop_column_is_destructive(self):
        with pytest.raises(MigrationConflictError) as exc:
            diff_snapshots(_users(text("bio")), _users())
        assert exc.value.changes == ["destructive: drop column users.bio"]
        ops = diff_snapshots(_users(text("bio")), _users(), allow_destructive=True)
        assert isinstance(ops[0], DropColumn)
        assert ops[0].destructive

    def test_drop_table_is_destructive(self):
        with pytest.raises(MigrationConflictError):
            diff_snapshots(_users(), EMPTY)
        ops = diff_snapshots(build_registry().snapshot(), EMPTY, allow_destructive=True)
        assert [op.table.name for op in ops] == ["posts", "users", "orgs"]
        assert all(isinstance(op, DropTable) for op in ops)

    def test_type_change_is_destructive(self):
        with pytest.raises(MigrationConflictError):
            diff_snapshots(_users(integer("age")), _users(bigint("age")))
        ops = diff_snapshots(_users(integer("age")), _users(bigint("age")), allow_destructive=True)
        assert isinstance(ops[0], AlterColumnType)
        assert ops[0].describe() == "change type of users.age from integer to bigint"

    def test_varchar_length_change_is_a_type_change(self):
        ops = diff_snapshots(
            _users(varchar("code", length=8)),
            _users(varchar("code", length=16)),
            allow_destructive=True,
        )
        assert isinstance(ops[0], AlterColumnType)

    def test_possible_rename_is_ambiguous(self):
        with pytest.raises(MigrationConflictError) as exc:
            diff_snapshots(_users(integer("age")), _users(integer("years")))
        assert any(c.startswith("ambiguous: users.age") for c in exc.value.changes)

    def test_confirmed_rename(self):
        ops = diff_snapshots(
            _users(integer("age")),
            _users(integer("years")),
            renames={"users.age": "years"},
        )
        assert [(op.table, op.old, op.new) for op in ops] == [("users", "age", "years")]
        assert isinstance(ops[0], RenameColumn)
        assert ops[0].column.name == "age"

    def test_rename_with_nullability_change(self):
        ops = diff_snapshots(
            _users(integer("age")),
            _users(integer("years", nullable=False)),
            renames={"users.age": "years"},
        )
        assert isinstance(ops[0], RenameColumn)
        assert isinstance(ops[1], AlterNullability)
        assert ops[1].column.name == "years"

    def test_drop_and_add_of_different_types_is_not_ambiguous(self):
        with pytest.raises(MigrationConflictError) as exc:
            diff_snapshots(_users(integer("age")), _users(text("bio")))
        assert exc.value.changes == ["destructive: drop column users.age"]

    def test_nullability_and_default_changes_are_safe(self):
        ops = diff_snapshots(
            _users(integer("age")),
            _users(integer("age", nullable=False, default=0)),
        )
        assert [type(op) for op in ops] == [AlterNullability, AlterDefault]
        assert not any(op.destructive for op in ops)

    def test_constraint_change_needs_manual_migration(self):
        with pytest.raises(MigrationConflictError) as exc:
            diff_snapshots(_users(text("email")), _users(text("email", unique=True)), allow_destructive=True)
        assert exc.value.changes == ["manual migration: constraints of users.email changed"]

    def test_added_enum_values_are_safe(self):
        ops = diff_snapshots(
            _users(enum("role", ["a", "b"])), _users(enum("role", ["a", "b", "c"]))
        )
        assert len(ops) == 1
        assert isinstance(ops[0], AlterColumnType)
        assert not ops[0].destructive

    def test_removed_enum_values_need_manual_migration(self):
        with pytest.raises(MigrationConflictError) as exc:
            diff_snapshots(
                _users(enum("role", ["a", "b", "c"])),
                _users(enum("role", ["a", "c"])),
                allow_destructive=True,
            )
        assert exc.value.changes == ["manual migration: values b removed from enum users.role"]

    def test_conflicts_are_reported_together(self):
        with pytest.raises(MigrationConflictError) as exc:
            diff_snapshots(_users(text("bio"), integer("age")), _users(bigint("age")))
        assert len(exc.value.changes) == 2

    def test_operations_render_for_dialect(self):
        ops = diff_snapshots(_users(), _users(text("bio", nullable=False, default="")))
        assert render_operations(ops, DDLCompiler(PostgresCompiler())) == [
            "ALTER TABLE \"users\" ADD COLUMN \"bio\" TEXT NOT NULL DEFAULT ''"
        ]


# ---------------------------------------------------------------------------
# Files and state
# ---------------------------------------------------------------------------


def test_render_and_split_statements():
    text_ = render_file(["CREATE TABLE a (x)", "CREATE TABLE b (\n  y\n)"])
    assert text_ == (
        f"CREATE TABLE a (x);\n{STATEMENT_BREAKPOINT}\nCREATE TABLE b (\n  y\n);\n"
    )
    assert split_statements(text_) == ("CREATE TABLE a (x)", "CREATE TABLE b (\n  y\n)")
    assert split_statements(f"\n{STATEMENT_BREAKPOINT}\n\n") == ()


def test_state_transitions():
    unit = MigrationUnit(version="20250101000000", name="init")
    assert unit.state is MigrationState.PENDING
    generated = unit.transition(MigrationState.GENERATED)
    applied = generated.transition(MigrationState.APPLIED)
    assert applied.state is MigrationState.APPLIED
    assert unit.state is MigrationState.PENDING
    with pytest.raises(MigrationStateError):
        unit.transition(MigrationState.APPLIED)
    with pytest.raises(MigrationStateError):
        applied.transition(MigrationState.GENERATED)
    with pytest.raises(MigrationStateError):
        generated.transition(MigrationState.PENDING)


def test_load_unit(tmp_path):
    path = _write_unit(tmp_path, "20250101000000", "init", ["SELECT 1"])
    unit = MigrationUnit.load(path)
    assert unit.version == "20250101000000"
    assert unit.name == "init"
    assert unit.statements == ("SELECT 1",)
    assert unit.state is MigrationState.GENERATED
    assert unit.checksum == checksum(path.read_text(encoding="utf-8"))


def test_load_unit_rejects_bad_name(tmp_path):
    path = tmp_path / "init.sql"
    path.write_text("SELECT 1;\n", encoding="utf-8")
    with pytest.raises(MigrationError):
        MigrationUnit.load(path)


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


class TestGenerator:
    def test_generate_writes_file_and_snapshot(self, tmp_path):
        config = _config(tmp_path)
        unit = MigrationGenerator(config).generate(build_registry(), "Initial schema!")
        assert unit is not None
        assert unit.state is MigrationState.GENERATED
        assert unit.name == "initial_schema"
        assert unit.path == config.directory / unit.filename
        assert len(unit.statements) == 3
        text_ = unit.path.read_text(encoding="utf-8")
        assert text_.count(STATEMENT_BREAKPOINT) == 2
        assert unit.checksum == checksum(text_)
        snapshot = config.meta_directory / f"{unit.version}_snapshot.json"
        assert SchemaSnapshot.read(snapshot) == build_registry().snapshot()

    def test_no_changes_no_file(self, tmp_path):
        config = _config(tmp_path)
        generator = MigrationGenerator(config)
        generator.generate(build_registry(), "init")
        assert generator.generate(build_registry(), "again") is None
        assert len(list(config.directory.glob("*.sql"))) == 1

    def test_versions_are_strictly_monotonic(self, tmp_path):
        config = _config(tmp_path)
        generator = MigrationGenerator(config)
        first = generator.generate(SchemaRegistry.from_snapshot(_users()), "one")
        second = generator.generate(SchemaRegistry.from_snapshot(_users(text("bio"))), "two")
        assert second.version > first.version

    def test_next_version_after_existing(self, tmp_path):
        config = _config(tmp_path)
        _write_unit(config.directory, "20250101000000", "init", ["SELECT 1"])
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert MigrationGenerator(config).next_version(now) == "20250101000001"
        later = datetime(2025, 6, 1, 12, 30, tzinfo=timezone.utc)
        assert MigrationGenerator(config).next_version(later) == "20250601123000"

    def test_conflicts_block_generation(self, tmp_path):
        config = _config(tmp_path)
        MigrationGenerator(config).generate(SchemaRegistry.from_snapshot(_users(integer("age"))), "one")
        changed = SchemaRegistry.from_snapshot(_users(integer("years")))
        with pytest.raises(MigrationConflictError):
            MigrationGenerator(config).generate(changed, "two")
        confirmed = _config(tmp_path, renames={"users.age": "years"})
        unit = MigrationGenerator(confirmed).generate(changed, "two")
        assert unit.statements == ('ALTER TABLE "users" RENAME COLUMN "age" TO "years"',)

    def test_postgres_enum_values_extend_existing_type(self, tmp_path):
        config = _config(tmp_path, "postgres", allow_destructive=True)
        generator = MigrationGenerator(config)
        one = generator.generate(SchemaRegistry.from_snapshot(_users(enum("role", ["a", "b"]))), "one")
        two = generator.generate(
            SchemaRegistry.from_snapshot(_users(enum("role", ["a", "b", "c"]))), "two"
        )
        statements = one.statements + two.statements
        assert sum(s.startswith("CREATE TYPE") for s in statements) == 1
        assert two.statements == ("ALTER TYPE \"users_role_enum\" ADD VALUE 'c'",)

        with pytest.raises(MigrationConflictError):
            generator.generate(SchemaRegistry.from_snapshot(_users(enum("role", ["a", "c"]))), "three")

        three = generator.generate(SchemaRegistry.from_snapshot(_users(text("role"))), "three")
        assert three.statements == (
            'ALTER TABLE "users" ALTER COLUMN "role" TYPE TEXT USING "role"::text::TEXT',
            'DROP TYPE "users_role_enum"',
        )

    def test_postgres_enum_type_follows_column_rename(self, tmp_path):
        MigrationGenerator(_config(tmp_path, "postgres")).generate(
            SchemaRegistry.from_snapshot(_users(enum("role", ["a"]))), "one"
        )
        renamed = _config(tmp_path, "postgres", renames={"users.role": "kind"})
        two = MigrationGenerator(renamed).generate(
            SchemaRegistry.from_snapshot(_users(enum("kind", ["a"]))), "two"
        )
        assert two.statements == (
            'ALTER TABLE "users" RENAME COLUMN "role" TO "kind"',
            'ALTER TYPE "users_role_enum" RENAME TO "users_kind_enum"',
        )
        dropped = _config(tmp_path, "postgres", allow_destructive=True)
        three = MigrationGenerator(dropped).generate(SchemaRegistry.from_snapshot(_users()), "three")
        assert three.statements == (
            'ALTER TABLE "users" DROP COLUMN "kind"',
            'DROP TYPE "users_kind_enum"',
        )


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


class TestRunner:
    def test_apply_generated_migrations(self, tmp_path, conn):
        config = _config(tmp_path)
        MigrationGenerator(config).generate(build_registry(), "init")
        runner = _runner(conn, config)

        applied = runner.apply()
        assert [u.state for u in applied] == [MigrationState.APPLIED]
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        assert {"orgs", "users", "posts", "__tessera_migrations"} <= tables

        ledger = runner.ledger.applied()
        assert [e.version for e in ledger] == [applied[0].version]
        assert ledger[0].checksum == applied[0].checksum
        assert isinstance(ledger[0].applied_at, datetime)
        assert runner.apply() == []

    def test_apply_follow_up_migration(self, tmp_path, conn):
        config = _config(tmp_path)
        generator = MigrationGenerator(config)
        generator.generate(SchemaRegistry.from_snapshot(_users()), "one")
        runner = _runner(conn, config)
        runner.apply()
        generator.generate(SchemaRegistry.from_snapshot(_users(text("bio"))), "two")
        assert [u.name for u in runner.pending()] == ["two"]
        runner.apply()
        columns = [r[1] for r in conn.execute('PRAGMA table_info("users")')]
        assert columns == ["id", "bio"]

    def test_apply_added_unique_column(self, tmp_path, conn):
        config = _config(tmp_path)
        generator = MigrationGenerator(config)
        generator.generate(SchemaRegistry.from_snapshot(_users()), "one")
        generator.generate(SchemaRegistry.from_snapshot(_users(text("email", unique=True))), "two")
        assert len(_runner(conn, config).apply()) == 2

        conn.execute("INSERT INTO users (email) VALUES ('a@example.com')")
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("INSERT INTO users (email) VALUES ('a@example.com')")

    def test_failure_rolls_back_whole_batch(self, tmp_path, conn):
        config = _config(tmp_path)
        _write_unit(config.directory, "20250101000000", "one", ["CREATE TABLE a (x INTEGER)"])
        _write_unit(
            config.directory,
            "20250101000001",
            "two",
            ["CREATE TABLE b (y INTEGER)", "INSERT INTO missing VALUES (1)", "CREATE TABLE c (z)"],
        )
        runner = _runner(conn, config)
        with pytest.raises(MigrationApplyError) as exc:
            runner.apply()
        assert exc.value.version == "20250101000001"
        assert exc.value.statement_index == 1
        assert exc.value.statement == "INSERT INTO missing VALUES (1)"

        assert runner.ledger.applied() == []
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        assert "a" not in tables
        assert "b" not in tables
        assert [u.version for u in runner.pending()] == ["20250101000000", "20250101000001"]

    def test_checksum_drift_blocks_apply(self, tmp_path, conn):
        config = _config(tmp_path)
        path = _write_unit(config.directory, "20250101000000", "one", ["CREATE TABLE a (x)"])
        runner = _runner(conn, config)
        runner.apply()
        path.write_text(render_file(["CREATE TABLE a (x, y)"]), encoding="utf-8")
        _write_unit(config.directory, "20250101000001", "two", ["CREATE TABLE b (y)"])
        with pytest.raises(MigrationConflictError) as exc:
            runner.apply()
        assert exc.value.changes == ["checksum drift: 20250101000000_one.sql"]
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        assert "b" not in tables

    def test_missing_file_is_logged(self, tmp_path, conn, caplog):
        config = _config(tmp_path)
        path = _write_unit(config.directory, "20250101000000", "one", ["CREATE TABLE a (x)"])
        runner = _runner(conn, config)
        runner.apply()
        path.unlink()
        with caplog.at_level(logging.WARNING, logger="tessera"):
            assert runner.pending() == []
        assert "20250101000000" in caplog.text

    def test_status_reports_states(self, tmp_path, conn):
        config = _config(tmp_path)
        generator = MigrationGenerator(config)
        generator.generate(SchemaRegistry.from_snapshot(_users()), "one")
        runner = _runner(conn, config)
        runner.apply()
        generator.generate(SchemaRegistry.from_snapshot(_users(text("bio"))), "two")

        states = [(u.name, u.state) for u in runner.status()]
        assert states == [("one", MigrationState.APPLIED), ("two", MigrationState.GENERATED)]

        unsaved = SchemaRegistry.from_snapshot(_users(text("bio"), integer("age")))
        last = runner.status(unsaved)[-1]
        assert last.state is MigrationState.PENDING
        assert last.statements == ('ALTER TABLE "users" ADD COLUMN "age" INTEGER',)

    def test_custom_ledger_table(self, tmp_path, conn):
        config = _config(tmp_path, ledger_table="schema_history")
        _write_unit(config.directory, "20250101000000", "one", ["CREATE TABLE a (x)"])
        _runner(conn, config).apply()
        rows = conn.execute('SELECT version, name FROM "schema_history"').fetchall()
        assert rows == [("20250101000000", "one")]


def test_ledger_table_name_validated(tmp_path):
    with pytest.raises(ValueError):
        _config(tmp_path, ledger_table="bad name;")
