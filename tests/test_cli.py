"""Tests for the tessera command-line interface."""
from __future__ import annotations

import sqlite3
import textwrap
from pathlib import Path

import pytest

from tessera.cli import load_registry, main
from tessera.schema import SchemaRegistry

_SCHEMA = """
from tessera.schema import SchemaRegistry, integer, serial, text

registry = SchemaRegistry()
registry.register(
    "authors",
    serial("id", primary_key=True),
    text("name", nullable=False),
    {extra}
)
"""


def _write_schema(directory: Path, module: str, extra: str = "") -> str:
    source = textwrap.dedent(_SCHEMA).replace("{extra}", extra)
    (directory / f"{module}.py").write_text(source, encoding="utf-8")
    return f"{module}:registry"


@pytest.fixture()
def workdir(tmp_path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.syspath_prepend(str(tmp_path))
    return tmp_path


def test_load_registry(workdir):
    registry = load_registry(_write_schema(workdir, "cli_schema_load"))
    assert isinstance(registry, SchemaRegistry)
    assert registry.table_names == ["authors"]


@pytest.mark.parametrize("target", ["no_colon", ":registry", "cli_schema_bad:"])
def test_load_registry_rejects_malformed_target(target):
    with pytest.raises(ValueError):
        load_registry(target)


def test_load_registry_rejects_non_registry(workdir):
    (workdir / "cli_schema_other.py").write_text("registry = 42\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_registry("cli_schema_other:registry")


def test_generate_migrate_status(workdir, capsys):
    target = _write_schema(workdir, "cli_schema_flow")
    database = str(workdir / "app.db")

    assert main(["generate", "--schema", target, "--name", "init"]) == 0
    files = sorted((workdir / "migrations").glob("*.sql"))
    assert [p.name.split("_", 1)[1] for p in files] == ["init.sql"]
    assert "Generated" in capsys.readouterr().out

    assert main(["generate", "--schema", target]) == 0
    assert "No schema changes." in capsys.readouterr().out

    assert main(["status", "--database", database]) == 0
    assert "generated" in capsys.readouterr().out

    assert main(["migrate", "--database", database]) == 0
    assert "Applied" in capsys.readouterr().out
    assert main(["migrate", "--database", database]) == 0
    assert "Database is up to date." in capsys.readouterr().out

    conn = sqlite3.connect(database)
    try:
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    finally:
        conn.close()
    assert "authors" in tables

    assert main(["status", "--database", database]) == 0
    assert "applied" in capsys.readouterr().out


def test_status_reports_unsaved_changes(workdir, capsys):
    database = str(workdir / "app.db")
    assert main(["generate", "--schema", _write_schema(workdir, "cli_schema_v1"), "--name", "init"]) == 0
    changed = _write_schema(workdir, "cli_schema_v2", extra='integer("age"),')
    capsys.readouterr()
    assert main(["status", "--database", database, "--schema", changed]) == 0
    assert "(unsaved changes)" in capsys.readouterr().out


def test_rename_flag_resolves_ambiguity(workdir, capsys):
    main(["generate", "--schema", _write_schema(workdir, "cli_schema_r1", extra='integer("age"),'), "--name", "init"])
    renamed = _write_schema(workdir, "cli_schema_r2", extra='integer("years"),')
    capsys.readouterr()

    assert main(["generate", "--schema", renamed, "--name", "rename"]) == 1
    assert "ambiguous" in capsys.readouterr().err

    assert main(["generate", "--schema", renamed, "--name", "rename", "--rename", "authors.age=years"]) == 0
    latest = sorted((workdir / "migrations").glob("*.sql"))[-1]
    assert 'RENAME COLUMN "age" TO "years"' in latest.read_text(encoding="utf-8")


def test_errors_return_nonzero(workdir, capsys):
    assert main(["generate", "--schema", "cli_schema_missing_module:registry"]) == 1
    assert "Error:" in capsys.readouterr().err


def test_postgres_dialect_flag(workdir):
    assert main(["--dialect", "postgres", "generate", "--schema", _write_schema(workdir, "cli_schema_pg")]) == 0
    text = next((workdir / "migrations").glob("*.sql")).read_text(encoding="utf-8")
    assert '"id" SERIAL NOT NULL PRIMARY KEY' in text
