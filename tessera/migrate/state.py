"""Migration units and their lifecycle.

A unit moves through three states and never backwards::

    pending ──▶ generated ──▶ applied

* ``pending``: the registry differs from the last snapshot; statements are
  known but no file has been written.
* ``generated``: the ``.sql`` file exists in the migrations directory.
* ``applied``: the ledger records the unit as run against the database.
"""
from __future__ import annotations

import hashlib
import re
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from tessera.errors import MigrationError, MigrationStateError

#: Line separating statements in a migration file.
STATEMENT_BREAKPOINT = "-- statement-breakpoint"

_FILENAME = re.compile(r"^(?P<version>\d{14})_(?P<name>[A-Za-z0-9_]+)\.sql$")


class MigrationState(str, Enum):
    PENDING = "pending"
    GENERATED = "generated"
    APPLIED = "applied"


_TRANSITIONS: dict[MigrationState, MigrationState] = {
    MigrationState.PENDING: MigrationState.GENERATED,
    MigrationState.GENERATED: MigrationState.APPLIED,
}


def checksum(text: str) -> str:
    """SHA-256 hex digest of a migration file's text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def render_file(statements: list[str]) -> str:
    """Join statements into migration file text."""
    body = f"\n{STATEMENT_BREAKPOINT}\n".join(f"{s};" for s in statements)
    return body + "\n"


def split_statements(text: str) -> tuple[str, ...]:
    """Split migration file text on breakpoint lines.

    Trailing semicolons are removed; empty chunks are skipped.
    """
    chunks: list[list[str]] = [[]]
    for line in text.splitlines():
        if line.strip() == STATEMENT_BREAKPOINT:
            chunks.append([])
        else:
            chunks[-1].append(line)
    statements = []
    for chunk in chunks:
        stmt = "\n".join(chunk).strip().rstrip(";").rstrip()
        if stmt:
            statements.append(stmt)
    return tuple(statements)


class MigrationUnit(BaseModel):
    """One migration: a version, its statements and its lifecycle state.

    Attributes:
        version: UTC timestamp ``YYYYMMDDHHMMSS``.
        name: Slug given at generation time.
        statements: SQL statements in execution order.
        checksum: SHA-256 of the file text.
        state: Current lifecycle state.
        path: Location of the ``.sql`` file once generated.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    version: str
    name: str
    statements: tuple[str, ...] = ()
    checksum: str = ""
    state: MigrationState = MigrationState.PENDING
    path: Path | None = None

    @property
    def filename(self) -> str:
        return f"{self.version}_{self.name}.sql"

    def transition(self, target: MigrationState) -> MigrationUnit:
        """Return a copy of the unit in state ``target``.

        Raises:
            MigrationStateError: If ``target`` is not the next state.
        """
        if _TRANSITIONS.get(self.state) is not target:
            raise MigrationStateError(
                f"Migration {self.version} cannot move from "
                f"{self.state.value} to {target.value}."
            )
        return self.model_copy(update={"state": target})

    @classmethod
    def load(cls, path: Path) -> MigrationUnit:
        """Read a generated migration file.

        Raises:
            MigrationError: If the file name does not follow
                ``<version>_<name>.sql``.
        """
        match = _FILENAME.match(path.name)
        if match is None:
            raise MigrationError(
                f"Migration file name '{path.name}' does not match <version>_<name>.sql."
            )
        text = path.read_text(encoding="utf-8")
        return cls(
            version=match["version"],
            name=match["name"],
            statements=split_statements(text),
            checksum=checksum(text),
            state=MigrationState.GENERATED,
            path=path,
        )


def load_units(directory: Path) -> list[MigrationUnit]:
    """Load every migration file in ``directory``, ordered by version."""
    if not directory.is_dir():
        return []
    units = [MigrationUnit.load(p) for p in directory.glob("*.sql")]
    return sorted(units, key=lambda u: u.version)
