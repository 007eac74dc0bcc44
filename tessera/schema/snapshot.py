"""Serialisable view of a schema registry.

The migration engine persists one snapshot per generated migration and diffs
the live registry against the latest one.
"""
from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from tessera.schema.column import Column
from tessera.schema.table import Table

#: Bumped when the snapshot layout changes incompatibly.
SNAPSHOT_FORMAT = 1


class SchemaSnapshot(BaseModel):
    """All registered tables at a point in time.

    Attributes:
        format: Snapshot layout version.
        tables: Tables in registration order.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    format: int = SNAPSHOT_FORMAT
    tables: tuple[Table, ...] = Field(default_factory=tuple)

    def get_table(self, name: str) -> Table | None:
        """Returns the Table with the given name, or ``None``."""
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def get_column(self, table_name: str, column_name: str) -> Column | None:
        """Returns the Column for a table.column pair, or ``None``."""
        table = self.get_table(table_name)
        if table is None or not table.has_column(column_name):
            return None
        return table.get_column(column_name)

    @property
    def table_names(self) -> list[str]:
        """Returns all table names in the snapshot."""
        return [t.name for t in self.tables]

    def write(self, path: Path) -> None:
        """Write the snapshot as pretty-printed JSON."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2) + "\n", encoding="utf-8")

    @classmethod
    def read(cls, path: Path) -> SchemaSnapshot:
        """Load a snapshot written by :meth:`write`."""
        return cls.model_validate_json(path.read_text(encoding="utf-8"))
