"""tessera command-line interface.

Generates and applies migrations for a registry defined in your code.

Usage
-----
Generate a migration from the registry ``registry`` in ``myapp/schema.py``::

    tessera --dir migrations generate --schema myapp.schema:registry --name add_users

Apply pending migrations to a SQLite database::

    tessera --dir migrations migrate --database app.db

Show every migration and its state::

    tessera --dir migrations status --database app.db
"""
from __future__ import annotations

import argparse
import importlib
import logging
import sqlite3
import sys
from pathlib import Path
from typing import Sequence

from tessera.config import MigrationConfig
from tessera.errors import TesseraError
from tessera.execute import Executor, SQLiteDriver
from tessera.log import configure_logging
from tessera.migrate import MigrationGenerator, MigrationRunner, MigrationState
from tessera.schema.registry import SchemaRegistry

# ---------------------------------------------------------------------------
# ANSI colours
# ---------------------------------------------------------------------------
_RESET = "\033[0m"
_GREEN = "\033[32m"
_RED = "\033[31m"
_YELLOW = "\033[33m"
_BOLD = "\033[1m"

_STATE_COLOURS = {
    MigrationState.PENDING: _YELLOW,
    MigrationState.GENERATED: _BOLD,
    MigrationState.APPLIED: _GREEN,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def load_registry(target: str) -> SchemaRegistry:
    """Import ``module:attribute`` and return the registry it names.

    Raises:
        ValueError: If ``target`` is malformed or does not name a registry.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"--schema must look like 'package.module:attribute', got {target!r}.")
    if str(Path.cwd()) not in sys.path:
        sys.path.insert(0, str(Path.cwd()))
    module = importlib.import_module(module_name)
    registry = getattr(module, attr, None)
    if not isinstance(registry, SchemaRegistry):
        raise ValueError(f"{target} is not a SchemaRegistry.")
    return registry


def _config(args: argparse.Namespace) -> MigrationConfig:
    renames = dict(r.split("=", 1) for r in getattr(args, "rename", None) or [])
    return MigrationConfig(
        directory=Path(args.dir),
        dialect=args.dialect,
        allow_destructive=getattr(args, "allow_destructive", False),
        renames=renames,
    )


def _runner(args: argparse.Namespace, conn: sqlite3.Connection) -> MigrationRunner:
    config = _config(args)
    executor = Executor(SQLiteDriver(conn), SchemaRegistry(), "sqlite")
    return MigrationRunner(executor, config)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_generate(args: argparse.Namespace) -> int:
    registry = load_registry(args.schema)
    unit = MigrationGenerator(_config(args)).generate(registry, args.name)
    if unit is None:
        print("No schema changes.")
        return 0
    print(f"{_GREEN}Generated{_RESET} {unit.path} ({len(unit.statements)} statement(s))")
    return 0


def _cmd_migrate(args: argparse.Namespace) -> int:
    conn = sqlite3.connect(args.database)
    try:
        applied = _runner(args, conn).apply()
    finally:
        conn.close()
    if not applied:
        print("Database is up to date.")
    for unit in applied:
        print(f"{_GREEN}Applied{_RESET} {unit.filename}")
    return 0


def _cmd_status(args: argparse.Namespace) -> int:
    registry = load_registry(args.schema) if args.schema else None
    conn = sqlite3.connect(args.database)
    try:
        units = _runner(args, conn).status(registry)
    finally:
        conn.close()
    if not units:
        print("No migrations.")
    for unit in units:
        colour = _STATE_COLOURS[unit.state]
        label = unit.filename if unit.state is not MigrationState.PENDING else "(unsaved changes)"
        print(f"  {colour}{unit.state.value:<10}{_RESET} {label}")
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tessera",
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument(
        "--dir",
        default="migrations",
        help="Migrations directory (default: migrations).",
    )
    p.add_argument(
        "--dialect",
        choices=["postgres", "sqlite", "mysql"],
        default="sqlite",
        help="SQL dialect for generated DDL (default: sqlite).",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Log debug output.")
    sub = p.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Write a migration for registry changes.")
    gen.add_argument("--schema", required=True, help="Registry to diff, as module:attribute.")
    gen.add_argument("--name", default="migration", help="Migration name.")
    gen.add_argument(
        "--allow-destructive",
        action="store_true",
        help="Permit dropped tables/columns and type changes.",
    )
    gen.add_argument(
        "--rename",
        action="append",
        metavar="TABLE.OLD=NEW",
        help="Confirm a column rename; may be repeated.",
    )
    gen.set_defaults(handler=_cmd_generate)

    mig = sub.add_parser("migrate", help="Apply pending migrations to a SQLite database.")
    mig.add_argument("--database", required=True, help="SQLite database file.")
    mig.set_defaults(handler=_cmd_migrate)

    st = sub.add_parser("status", help="List migrations and their state.")
    st.add_argument("--database", required=True, help="SQLite database file.")
    st.add_argument("--schema", help="Also report unsaved registry changes.")
    st.set_defaults(handler=_cmd_status)
    return p


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)
    try:
        return args.handler(args)
    except (TesseraError, ValueError, ImportError) as exc:
        print(f"{_RED}Error:{_RESET} {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
