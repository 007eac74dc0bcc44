"""Query scope: the tables a statement can see, keyed by visible name."""

from __future__ import annotations

from dataclasses import dataclass, field

from tessera.errors import DuplicateDefinitionError, UnknownTableError
from tessera.query.statements import TableRef
from tessera.schema.column import Column
from tessera.schema.registry import SchemaRegistry
from tessera.schema.table import Table


@dataclass(frozen=True)
class QueryScope:
    """Maps each visible table name (alias or name) to its registered Table.

    Attributes:
        tables: Visible name → registered table, in FROM/JOIN order.
    """

    tables: dict[str, Table] = field(default_factory=dict)

    @classmethod
    def resolve(cls, registry: SchemaRegistry, refs: tuple[TableRef, ...]) -> QueryScope:
        """Resolve ``refs`` against ``registry``.

        Raises:
            UnknownTableError: If a table is not registered.
            DuplicateDefinitionError: If two tables share a visible name.
        """
        tables: dict[str, Table] = {}
        for ref in refs:
            table = registry.get_table(ref.name)
            if ref.ref_name in tables:
                raise DuplicateDefinitionError(ref.ref_name, kind="table alias")
            tables[ref.ref_name] = table
        return cls(tables=tables)

    def lookup(self, visible_name: str, column: str) -> Column:
        """Return the column ``visible_name.column``.

        Raises:
            UnknownTableError: If ``visible_name`` is not in scope.
            UnknownColumnError: If the table has no such column.
        """
        table = self.tables.get(visible_name)
        if table is None:
            raise UnknownTableError(visible_name, list(self.tables))
        return table.get_column(column)

    def table(self, visible_name: str) -> Table:
        table = self.tables.get(visible_name)
        if table is None:
            raise UnknownTableError(visible_name, list(self.tables))
        return table
