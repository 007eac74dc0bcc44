"""tessera migrations: snapshot diffing, file generation, ledger-tracked application."""
from tessera.migrate.diff import diff_snapshots
from tessera.migrate.generator import MigrationGenerator
from tessera.migrate.ledger import AppliedMigration, MigrationLedger
from tessera.migrate.operations import (
    AddColumn,
    AlterColumnType,
    AlterDefault,
    AlterNullability,
    CreateTable,
    DropColumn,
    DropTable,
    Operation,
    RenameColumn,
    render_operations,
)
from tessera.migrate.runner import MigrationRunner
from tessera.migrate.state import (
    STATEMENT_BREAKPOINT,
    MigrationState,
    MigrationUnit,
    load_units,
    split_statements,
)

__all__ = [
    "STATEMENT_BREAKPOINT",
    "AddColumn",
    "AlterColumnType",
    "AlterDefault",
    "AlterNullability",
    "AppliedMigration",
    "CreateTable",
    "DropColumn",
    "DropTable",
    "MigrationGenerator",
    "MigrationLedger",
    "MigrationRunner",
    "MigrationState",
    "MigrationUnit",
    "Operation",
    "RenameColumn",
    "diff_snapshots",
    "load_units",
    "render_operations",
    "split_statements",
]
