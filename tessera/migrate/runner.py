"""Migration application.

``MigrationRunner.apply()`` runs every generated-but-unapplied migration in
version order inside **one** transaction, recording each unit in the ledger
within that same transaction.  If any statement fails, the whole batch is
rolled back and :class:`~tessera.errors.MigrationApplyError` names the
failing version and statement, so the ledger never shows a partial batch.

Application assumes a single writer; there is no locking.  On dialects whose
DDL commits implicitly (MySQL), statements that already ran cannot be rolled
back even though the ledger rows are.
"""
from __future__ import annotations

from tessera.config import MigrationConfig
from tessera.errors import DriverError, MigrationApplyError, MigrationConflictError
from tessera.execute.executor import Executor
from tessera.log import get_logger
from tessera.migrate.generator import MigrationGenerator
from tessera.migrate.ledger import MigrationLedger
from tessera.migrate.state import MigrationState, MigrationUnit, load_units
from tessera.schema.registry import SchemaRegistry

logger = get_logger("migrate.runner")


class MigrationRunner:
    """Applies migration files to the database behind ``executor``.

    Args:
        executor: Executor bound to the target database.
        config: Migration settings; ``directory`` and ``ledger_table`` are used.
    """

    def __init__(self, executor: Executor, config: MigrationConfig | None = None) -> None:
        self.config = config or MigrationConfig(dialect=executor.dialect)
        self.executor = executor
        self.ledger = MigrationLedger(executor, self.config.ledger_table)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def pending(self) -> list[MigrationUnit]:
        """Return generated units not yet in the ledger, in version order.

        Raises:
            MigrationConflictError: If an applied migration file has changed.
        """
        self.ledger.ensure()
        applied = {entry.version: entry for entry in self.ledger.applied()}
        units = load_units(self.config.directory)

        drifted = [
            u.filename
            for u in units
            if u.version in applied and applied[u.version].checksum != u.checksum
        ]
        if drifted:
            raise MigrationConflictError(
                "Applied migration files were modified: " + ", ".join(drifted),
                [f"checksum drift: {name}" for name in drifted],
            )

        known = {u.version for u in units}
        for version in sorted(set(applied) - known):
            logger.warning("Ledger lists migration %s but its file is missing", version)

        return [u for u in units if u.version not in applied]

    def apply(self) -> list[MigrationUnit]:
        """Apply every pending migration as one batch.

        Returns:
            The units applied, in ``applied`` state.

        Raises:
            MigrationConflictError: If an applied migration file has changed;
                nothing runs.
            MigrationApplyError: If a statement fails; the batch is rolled back.
        """
        pending = self.pending()
        if not pending:
            logger.info("No pending migrations")
            return []

        applied: list[MigrationUnit] = []
        try:
            with self.executor.transaction():
                for unit in pending:
                    self._apply_unit(unit)
                    applied.append(unit.transition(MigrationState.APPLIED))
        except MigrationApplyError as exc:
            logger.error(
                "Migration %s failed at statement %d; rolled back %d unit(s)",
                exc.version,
                exc.statement_index,
                len(pending),
            )
            raise

        logger.info("Applied %d migration(s): %s", len(applied), ", ".join(u.version for u in applied))
        return applied

    def status(self, registry: SchemaRegistry | None = None) -> list[MigrationUnit]:
        """Report every migration unit and its state.

        Args:
            registry: When given, unsaved registry changes are reported as a
                trailing ``pending`` unit.
        """
        self.ledger.ensure()
        applied = {entry.version for entry in self.ledger.applied()}
        units = [
            u.transition(MigrationState.APPLIED) if u.version in applied else u
            for u in load_units(self.config.directory)
        ]
        if registry is not None:
            planned = MigrationGenerator(self.config).plan(registry, "pending")
            if planned is not None:
                units.append(planned)
        return units

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply_unit(self, unit: MigrationUnit) -> None:
        logger.info("Applying migration %s", unit.filename)
        for index, statement in enumerate(unit.statements):
            try:
                self.executor.execute_sql(statement)
            except DriverError as exc:
                raise MigrationApplyError(unit.version, index, statement) from exc
        self.ledger.record(unit)
