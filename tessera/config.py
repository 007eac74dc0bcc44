"""Configuration models for the executor and the migration engine."""
from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

#: Built-in compiler targets.
DialectTarget = Literal["postgres", "sqlite", "mysql"]


class ExecutorConfig(BaseModel):
    """Settings for :class:`~tessera.execute.executor.Executor`.

    Attributes:
        dialect: Compiler target used to render queries.
        log_sql: Log compiled SQL text at DEBUG level.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    dialect: DialectTarget = "sqlite"
    log_sql: bool = True


class MigrationConfig(BaseModel):
    """Settings for migration generation and application.

    Attributes:
        directory: Folder holding the generated ``.sql`` files.  Snapshots
            are kept in its ``meta/`` sub-folder.
        ledger_table: Name of the table recording applied migrations.
        dialect: Compiler target used to render DDL.
        allow_destructive: Permit drops and type changes during generation.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    directory: Path = Path("migrations")
    ledger_table: str = "__tessera_migrations"
    dialect: DialectTarget = "sqlite"
    allow_destructive: bool = False
    renames: dict[str, str] = Field(default_factory=dict)

    @field_validator("ledger_table")
    @classmethod
    def _check_ledger_table(cls, value: str) -> str:
        if not value or not value.replace("_", "").isalnum():
            raise ValueError("ledger_table must be a non-empty identifier")
        return value

    @property
    def meta_directory(self) -> Path:
        """Folder holding the per-version schema snapshots."""
        return self.directory / "meta"
