"""The schema registry: the single source of table definitions.

Tables are registered once at startup, after which the registry is frozen
and treated as read-only.  Query validation, compilation, row mapping and
migration generation all resolve tables and columns through it::

    from tessera.schema import SchemaRegistry, integer, serial, text

    registry = SchemaRegistry()
    users = registry.register(
        "users",
        serial("id", primary_key=True),
        text("full_name"),
        integer("age"),
    )
    registry.freeze()
"""
from __future__ import annotations

from typing import Iterable, Iterator

from tessera.errors import (
    DuplicateDefinitionError,
    RegistryFrozenError,
    UnknownColumnError,
    UnknownTableError,
)
from tessera.log import get_logger
from tessera.schema.column import Column
from tessera.schema.snapshot import SchemaSnapshot
from tessera.schema.table import Table

logger = get_logger("schema.registry")


class SchemaRegistry:
    """Holds table definitions keyed by name.

    Args:
        tables: Optional tables to register immediately, in order.
    """

    def __init__(self, tables: Iterable[Table] = ()) -> None:
        self._tables: dict[str, Table] = {}
        self._frozen = False
        for table in tables:
            self._add(table)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        name: str,
        *columns: Column,
        primary_key: Iterable[str] | None = None,
        unique: Iterable[Iterable[str]] = (),
    ) -> Table:
        """Register a table and return its handle.

        Args:
            name: Table name.
            *columns: Column definitions in declaration order.
            primary_key: Optional composite primary key.  When omitted, the
                columns flagged ``primary_key=True`` form the key.
            unique: Composite UNIQUE constraints.

        Returns:
            The registered :class:`Table`.

        Raises:
            RegistryFrozenError: If :meth:`freeze` has been called.
            DuplicateDefinitionError: If ``name`` is taken or a column name
                repeats.
            UnknownColumnError: If a key or constraint names a missing column.
            ValueError: If no columns are given.
        """
        if not columns:
            raise ValueError(f"Table '{name}' needs at least one column.")

        seen: set[str] = set()
        for col in columns:
            if col.name in seen:
                raise DuplicateDefinitionError(col.name, kind="column", table=name)
            seen.add(col.name)

        if primary_key is None:
            pk = tuple(c.name for c in columns if c.primary_key)
        else:
            pk = tuple(primary_key)
        for key_col in pk:
            if key_col not in seen:
                raise UnknownColumnError(name, key_col, [c.name for c in columns])

        uniques = tuple(tuple(group) for group in unique)
        for group in uniques:
            for uq_col in group:
                if uq_col not in seen:
                    raise UnknownColumnError(name, uq_col, [c.name for c in columns])

        bound = tuple(
            col.bind(name).model_copy(
                update={
                    "primary_key": col.name in pk,
                    "nullable": col.nullable and col.name not in pk,
                }
            )
            for col in columns
        )
        table = Table(name=name, columns=bound, primary_key=pk, unique=uniques)
        self._add(table)
        return table

    def _add(self, table: Table) -> None:
        if self._frozen:
            raise RegistryFrozenError(table.name)
        if table.name in self._tables:
            raise DuplicateDefinitionError(table.name)
        self._tables[table.name] = table
        logger.debug("Registered table %s (%d columns)", table.name, len(table.columns))

    def freeze(self) -> SchemaRegistry:
        """Mark the registry read-only and check foreign-key targets.

        Returns:
            ``self``, for chaining.

        Raises:
            UnknownTableError: If a foreign key points at an unregistered table.
            UnknownColumnError: If a foreign key points at a missing column.
        """
        self.check_references()
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def check_references(self) -> None:
        """Verify every foreign key resolves to a registered column."""
        for table in self._tables.values():
            for col in table.columns:
                if col.references is None:
                    continue
                self.get_column(col.references.table, col.references.column)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_table(self, name: str) -> Table:
        """Return the registered table.

        Raises:
            UnknownTableError: If no table with that name is registered.
        """
        table = self._tables.get(name)
        if table is None:
            raise UnknownTableError(name, self.table_names)
        return table

    def get_column(self, table_name: str, column_name: str) -> Column:
        """Return ``table_name.column_name``.

        Raises:
            UnknownTableError: If the table is not registered.
            UnknownColumnError: If the table has no such column.
        """
        return self.get_table(table_name).get_column(column_name)

    def has_table(self, name: str) -> bool:
        return name in self._tables

    @property
    def table_names(self) -> list[str]:
        """Returns all table names in registration order."""
        return list(self._tables)

    def __iter__(self) -> Iterator[Table]:
        return iter(self._tables.values())

    def __len__(self) -> int:
        return len(self._tables)

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> SchemaSnapshot:
        """Return a serialisable snapshot of all registered tables."""
        return SchemaSnapshot(tables=tuple(self._tables.values()))

    @classmethod
    def from_snapshot(cls, snapshot: SchemaSnapshot) -> SchemaRegistry:
        """Build a registry holding the tables of ``snapshot``."""
        return cls(snapshot.tables)
