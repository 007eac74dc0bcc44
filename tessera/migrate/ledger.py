"""Migration ledger.

The ledger is an ordinary table recording which migration versions have been
applied.  It is declared in its own registry and read and written with
tessera's own query builder, so it works on every supported dialect.
"""
from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict

from tessera.compile import DDLCompiler
from tessera.compile.registry import CompilerFactory
from tessera.execute.executor import Executor
from tessera.log import get_logger
from tessera.migrate.state import MigrationUnit
from tessera.query import insert, select
from tessera.schema.column import text, timestamp, varchar
from tessera.schema.registry import SchemaRegistry

logger = get_logger("migrate.ledger")


class AppliedMigration(BaseModel):
    """One ledger row."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    version: str
    name: str
    checksum: str
    applied_at: datetime


class MigrationLedger:
    """Reads and writes the applied-migrations table.

    Args:
        executor: Executor bound to the target database.
        table_name: Name of the ledger table.
    """

    def __init__(self, executor: Executor, table_name: str = "__tessera_migrations") -> None:
        self.registry = SchemaRegistry()
        self.table = self.registry.register(
            table_name,
            varchar("version", length=14, primary_key=True),
            text("name", nullable=False),
            varchar("checksum", length=64, nullable=False),
            timestamp("applied_at", nullable=False),
        )
        self.registry.freeze()
        # Same driver, so ledger writes join any transaction the caller opened.
        self._executor = Executor(executor.driver, self.registry, config=executor.config)

    def ensure(self) -> None:
        """Create the ledger table if it does not exist."""
        ddl = DDLCompiler(CompilerFactory.create(self._executor.dialect))
        for statement in ddl.create_table(self.table, if_not_exists=True):
            self._executor.execute_sql(statement)

    def applied(self) -> list[AppliedMigration]:
        """Return ledger rows ordered by version."""
        query = select().from_(self.table).order_by(self.table.c.version)
        return self._executor.execute(query).models(AppliedMigration)

    def record(self, unit: MigrationUnit) -> None:
        """Record ``unit`` as applied now."""
        row = {
            "version": unit.version,
            "name": unit.name,
            "checksum": unit.checksum,
            "applied_at": datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0),
        }
        self._executor.execute(insert(self.table).values(row))
        logger.debug("Recorded migration %s in ledger", unit.version)
