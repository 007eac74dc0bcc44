"""Migration generation.

``MigrationGenerator`` diffs the live registry against the most recent
snapshot under ``<directory>/meta/``, renders the changes as DDL and writes
them to ``<directory>/<version>_<name>.sql`` together with a new snapshot.
"""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from pathlib import Path

from tessera.compile import CompilerFactory, DDLCompiler
from tessera.config import MigrationConfig
from tessera.log import get_logger
from tessera.migrate.diff import diff_snapshots
from tessera.migrate.operations import render_operations
from tessera.migrate.state import MigrationState, MigrationUnit, checksum, load_units, render_file
from tessera.schema.registry import SchemaRegistry
from tessera.schema.snapshot import SchemaSnapshot

logger = get_logger("migrate.generator")

_VERSION_FORMAT = "%Y%m%d%H%M%S"
_SNAPSHOT_SUFFIX = "_snapshot.json"


def _slug(name: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9_]+", "_", name).strip("_").lower()
    return slug or "migration"


class MigrationGenerator:
    """Writes migration files for registry changes.

    Args:
        config: Migration settings (directory, dialect, destructive policy,
            confirmed renames).
    """

    def __init__(self, config: MigrationConfig | None = None) -> None:
        self.config = config or MigrationConfig()
        self._ddl = DDLCompiler(CompilerFactory.create(self.config.dialect))

    # ------------------------------------------------------------------
    # Snapshots and versions
    # ------------------------------------------------------------------

    def latest_snapshot(self) -> SchemaSnapshot:
        """Return the newest recorded snapshot, or an empty one."""
        meta = self.config.meta_directory
        paths = sorted(meta.glob(f"*{_SNAPSHOT_SUFFIX}")) if meta.is_dir() else []
        if not paths:
            return SchemaSnapshot()
        return SchemaSnapshot.read(paths[-1])

    def next_version(self, now: datetime | None = None) -> str:
        """Return a UTC timestamp version later than every existing one."""
        current = (now or datetime.now(timezone.utc)).replace(microsecond=0)
        existing = [u.version for u in load_units(self.config.directory)]
        meta = self.config.meta_directory
        if meta.is_dir():
            existing.extend(p.name[: -len(_SNAPSHOT_SUFFIX)] for p in meta.glob(f"*{_SNAPSHOT_SUFFIX}"))
        if existing:
            latest = datetime.strptime(max(existing), _VERSION_FORMAT)
            latest = latest.replace(tzinfo=current.tzinfo)
            if current <= latest:
                current = latest + timedelta(seconds=1)
        return current.strftime(_VERSION_FORMAT)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def plan(self, registry: SchemaRegistry, name: str) -> MigrationUnit | None:
        """Diff ``registry`` against the latest snapshot without writing.

        Returns:
            A ``pending`` unit, or ``None`` when nothing changed.

        Raises:
            MigrationConflictError: If the diff needs confirmation.
            CompilationError: If the dialect cannot express a change.
        """
        operations = diff_snapshots(
            self.latest_snapshot(),
            registry.snapshot(),
            renames=self.config.renames,
            allow_destructive=self.config.allow_destructive,
        )
        if not operations:
            return None
        for op in operations:
            logger.debug("Planned change: %s", op.describe())
        return MigrationUnit(
            version=self.next_version(),
            name=_slug(name),
            statements=tuple(render_operations(operations, self._ddl)),
        )

    def generate(self, registry: SchemaRegistry, name: str) -> MigrationUnit | None:
        """Write the next migration file and snapshot.

        Args:
            registry: The desired schema.
            name: Human-readable migration name; slugified for the file name.

        Returns:
            The ``generated`` unit, or ``None`` when there are no changes.

        Raises:
            MigrationConflictError: If the diff needs confirmation.
            CompilationError: If the dialect cannot express a change.
        """
        unit = self.plan(registry, name)
        if unit is None:
            logger.info("No schema changes; nothing generated")
            return None

        directory = self.config.directory
        directory.mkdir(parents=True, exist_ok=True)
        path: Path = directory / unit.filename
        text = render_file(list(unit.statements))
        path.write_text(text, encoding="utf-8")
        registry.snapshot().write(self.config.meta_directory / f"{unit.version}{_SNAPSHOT_SUFFIX}")

        logger.info(
            "Generated migration %s (%d statement(s))", unit.filename, len(unit.statements)
        )
        generated = unit.model_copy(update={"path": path, "checksum": checksum(text)})
        return generated.transition(MigrationState.GENERATED)
