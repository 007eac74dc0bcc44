"""Snapshot differ.

:func:`diff_snapshots` compares two schema snapshots and returns the ordered
operations that turn the old schema into the new one.  The differ never
guesses: changes that can lose data, or that could be read more than one
way, raise :class:`~tessera.errors.MigrationConflictError` until the caller
confirms them explicitly.

Operation order:

1. new tables, in foreign-key dependency order;
2. per existing table (in new declaration order): renames, added columns,
   altered columns, dropped columns;
3. dropped tables, dependents first.
"""
from __future__ import annotations

from typing import Mapping

from tessera.errors import MigrationConflictError
from tessera.log import get_logger
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
)
from tessera.schema.column import CONSTRAINT_FIELDS, DEFAULT_FIELDS, STRUCTURAL_FIELDS, Column
from tessera.schema.snapshot import SchemaSnapshot
from tessera.schema.table import Table
from tessera.types import ScalarType

logger = get_logger("migrate.diff")


def diff_snapshots(
    old: SchemaSnapshot,
    new: SchemaSnapshot,
    *,
    renames: Mapping[str, str] | None = None,
    allow_destructive: bool = False,
) -> list[Operation]:
    """Compute the operations turning ``old`` into ``new``.

    Args:
        old: The schema the database currently has.
        new: The desired schema.
        renames: Confirmed column renames as ``{"table.old_name": "new_name"}``.
        allow_destructive: Permit dropped tables and columns, type changes,
            and drop-plus-add pairs that could have been renames.  Adding or
            reordering enum values never needs it.

    Returns:
        Ordered operations; empty when the schemas match.

    Raises:
        MigrationConflictError: For destructive changes without
            ``allow_destructive``, possible renames not resolved through
            ``renames``, constraint changes, values removed from an enum,
            or circular foreign keys between new tables.
    """
    renames = dict(renames or {})
    conflicts: list[str] = []
    ops: list[Operation] = []

    old_names = set(old.table_names)
    new_names = set(new.table_names)

    created = [t for t in new.tables if t.name not in old_names]
    for table in _dependency_order(created, conflicts):
        ops.append(CreateTable(table=table))

    for table in new.tables:
        previous = old.get_table(table.name)
        if previous is not None:
            ops.extend(_diff_table(previous, table, renames, allow_destructive, conflicts))

    dropped = [t for t in old.tables if t.name not in new_names]
    for table in reversed(_dependency_order(dropped, conflicts)):
        op = DropTable(table=table)
        if not allow_destructive:
            conflicts.append(f"destructive: {op.describe()}")
        ops.append(op)

    if conflicts:
        raise MigrationConflictError(
            "Schema diff needs confirmation: " + "; ".join(conflicts), conflicts
        )
    logger.debug("Diff produced %d operation(s)", len(ops))
    return ops


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


def _diff_table(
    old: Table,
    new: Table,
    renames: dict[str, str],
    allow_destructive: bool,
    conflicts: list[str],
) -> list[Operation]:
    ops: list[Operation] = []
    name = new.name

    if old.primary_key != new.primary_key or set(old.unique) != set(new.unique):
        conflicts.append(f"manual migration: key or unique constraints of {name} changed")

    # Confirmed renames first; afterwards old and new names are paired up.
    pairs: dict[str, str] = {}
    for source, target in renames.items():
        table, _, old_col = source.partition(".")
        if table != name:
            continue
        if old.has_column(old_col) and new.has_column(target) and not new.has_column(old_col):
            pairs[old_col] = target
            ops.append(
                RenameColumn(table=name, old=old_col, new=target, column=old.get_column(old_col))
            )

    renamed_targets = set(pairs.values())
    removed = [c for c in old.columns if c.name not in pairs and not new.has_column(c.name)]
    added = [c for c in new.columns if c.name not in renamed_targets and not old.has_column(c.name)]

    if not allow_destructive:
        for gone in removed:
            candidates = [c.name for c in added if _same_shape(gone, c)]
            if candidates:
                conflicts.append(
                    f"ambiguous: {name}.{gone.name} may have been renamed to "
                    f"{', '.join(candidates)}; add a rename or allow destructive changes"
                )

    for col in added:
        ops.append(AddColumn(table=name, column=col))

    for col in new.columns:
        if col.name in renamed_targets:
            source = next(o for o, n in pairs.items() if n == col.name)
            before = old.get_column(source)
        elif old.has_column(col.name):
            before = old.get_column(col.name)
        else:
            continue
        ops.extend(_diff_column(name, before, col, allow_destructive, conflicts))

    for col in removed:
        op = DropColumn(table=name, column=col)
        if not allow_destructive:
            conflicts.append(f"destructive: {op.describe()}")
        ops.append(op)
    return ops


def _diff_column(
    table: str,
    old: Column,
    new: Column,
    allow_destructive: bool,
    conflicts: list[str],
) -> list[Operation]:
    ops: list[Operation] = []
    if any(getattr(old, f) != getattr(new, f) for f in CONSTRAINT_FIELDS):
        conflicts.append(f"manual migration: constraints of {table}.{new.name} changed")
    if old.type is ScalarType.ENUM and new.type is ScalarType.ENUM:
        if old.enum_values != new.enum_values or old.enum_name != new.enum_name:
            removed = [v for v in old.enum_values if v not in new.enum_values]
            if removed:
                conflicts.append(
                    f"manual migration: values {', '.join(removed)} removed from enum "
                    f"{table}.{new.name}"
                )
            ops.append(AlterColumnType(table=table, old=old, new=new, destructive=False))
    elif any(getattr(old, f) != getattr(new, f) for f in STRUCTURAL_FIELDS):
        op = AlterColumnType(table=table, old=old, new=new)
        if not allow_destructive:
            conflicts.append(f"destructive: {op.describe()}")
        ops.append(op)
    if old.nullable != new.nullable:
        ops.append(AlterNullability(table=table, column=new))
    if any(getattr(old, f) != getattr(new, f) for f in DEFAULT_FIELDS):
        ops.append(AlterDefault(table=table, column=new))
    return ops


def _same_shape(a: Column, b: Column) -> bool:
    return all(getattr(a, f) == getattr(b, f) for f in STRUCTURAL_FIELDS)


def _dependency_order(tables: list[Table], conflicts: list[str]) -> list[Table]:
    """Order ``tables`` so referenced tables come first.

    Declaration order is kept wherever dependencies allow.  References to
    tables outside ``tables`` and self-references are ignored.
    """
    by_name = {t.name: t for t in tables}
    ordered: list[Table] = []
    state: dict[str, str] = {}

    def visit(table: Table, path: list[str]) -> None:
        mark = state.get(table.name)
        if mark == "done":
            return
        if mark == "visiting":
            conflicts.append(
                "manual migration: circular foreign keys between "
                + " -> ".join([*path, table.name])
            )
            return
        state[table.name] = "visiting"
        for col in table.columns:
            ref = col.references
            if ref is not None and ref.table != table.name and ref.table in by_name:
                visit(by_name[ref.table], [*path, table.name])
        state[table.name] = "done"
        ordered.append(table)

    for table in tables:
        visit(table, [])
    return ordered
