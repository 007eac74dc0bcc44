"""Unit tests for the schema registry, column constructors and snapshots."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from tessera.errors import (
    DuplicateDefinitionError,
    RegistryFrozenError,
    UnknownColumnError,
    UnknownTableError,
)
from tessera.expr.nodes import ColumnExpr
from tessera.schema import (
    ForeignKey,
    ScalarType,
    SchemaRegistry,
    SchemaSnapshot,
    enum,
    integer,
    serial,
    text,
    varchar,
)
from tests.fixtures import build_registry

# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------


def test_serial_and_primary_key_columns_are_not_null():
    assert serial("id").nullable is False
    assert integer("id", primary_key=True).nullable is False
    assert integer("age").nullable is True


def test_references_string_is_parsed():
    col = integer("org_id", references="orgs.id", on_delete="CASCADE")
    assert col.references == ForeignKey(table="orgs", column="id", on_delete="CASCADE")
    assert str(col.references) == "orgs.id"


def test_unqualified_reference_rejected():
    with pytest.raises(ValueError):
        integer("org_id", references="orgs")


def test_enum_requires_values():
    with pytest.raises(ValidationError):
        enum("role", ())


def test_enum_values_only_on_enum_columns():
    with pytest.raises(ValidationError):
        text("name", enum_values=("a",))


def test_varchar_length_must_be_positive():
    with pytest.raises(ValidationError):
        varchar("code", length=0)


def test_columns_are_immutable():
    col = text("name")
    with pytest.raises(ValidationError):
        col.name = "other"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def test_registered_columns_are_resolvable(registry):
    for table in registry:
        for col in table.columns:
            assert registry.get_column(table.name, col.name) == col
            assert col.table == table.name


def test_register_returns_table_with_column_accessor(users):
    ref = users.c.full_name
    assert isinstance(ref, ColumnExpr)
    assert ref.table == "users"
    assert ref.column == "full_name"
    assert ref.type is ScalarType.TEXT
    assert users.c["age"] == users.c.age


def test_unknown_column_on_accessor(users):
    with pytest.raises(UnknownColumnError) as exc:
        users.c.nickname
    assert exc.value.code == "UNKNOWN_COLUMN"
    assert "full_name" in exc.value.details["known_columns"]


def test_duplicate_table_rejected():
    reg = SchemaRegistry()
    reg.register("t", serial("id", primary_key=True))
    with pytest.raises(DuplicateDefinitionError):
        reg.register("t", serial("id", primary_key=True))


def test_duplicate_column_rejected():
    reg = SchemaRegistry()
    with pytest.raises(DuplicateDefinitionError) as exc:
        reg.register("t", text("a"), text("a"))
    assert exc.value.details["kind"] == "column"


def test_composite_key_must_name_existing_columns():
    reg = SchemaRegistry()
    with pytest.raises(UnknownColumnError):
        reg.register("t", integer("a"), integer("b"), primary_key=("a", "c"))


def test_composite_key_makes_columns_not_null():
    reg = SchemaRegistry()
    table = reg.register("t", integer("a"), integer("b"), primary_key=("a", "b"))
    assert table.primary_key == ("a", "b")
    assert all(not c.nullable and c.primary_key for c in table.columns)


def test_table_needs_columns():
    with pytest.raises(ValueError):
        SchemaRegistry().register("empty")


def test_unknown_table_lookup(registry):
    with pytest.raises(UnknownTableError) as exc:
        registry.get_table("comments")
    assert exc.value.details["known_tables"] == ["orgs", "users", "posts"]


def test_freeze_blocks_registration(registry):
    assert registry.frozen
    with pytest.raises(RegistryFrozenError):
        registry.register("comments", serial("id", primary_key=True))


def test_freeze_checks_foreign_key_targets():
    reg = SchemaRegistry()
    reg.register("posts", serial("id", primary_key=True), integer("author_id", references="users.id"))
    with pytest.raises(UnknownTableError):
        reg.freeze()
    assert not reg.frozen


def test_forward_references_allowed_before_freeze():
    reg = SchemaRegistry()
    reg.register("posts", serial("id", primary_key=True), integer("author_id", references="users.id"))
    reg.register("users", serial("id", primary_key=True))
    reg.freeze()
    assert reg.get_column("posts", "author_id").references.table == "users"


def test_self_reference_allowed(registry):
    assert registry.get_column("users", "manager_id").references.table == "users"


def test_aliased_table_qualifies_columns(users):
    managers = users.as_alias("managers")
    assert managers.c.id.table == "managers"
    assert managers.name == "users"


# ---------------------------------------------------------------------------
# Record models
# ---------------------------------------------------------------------------


def test_record_model_fields(users):
    model = users.record_model()
    assert model.__name__ == "UsersRecord"
    row = model(full_name="Ada")
    assert row.id is None  # serial: database-generated
    assert row.role is None  # has default
    with pytest.raises(ValidationError):
        model(full_name="Ada", role="owner")


def test_record_model_is_cached(users):
    assert users.record_model() is users.record_model()


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


def test_snapshot_round_trip(tmp_path):
    reg = build_registry()
    path = tmp_path / "meta" / "snap.json"
    reg.snapshot().write(path)
    loaded = SchemaSnapshot.read(path)
    assert loaded == reg.snapshot()
    assert loaded.table_names == ["orgs", "users", "posts"]
    assert loaded.get_column("users", "role").enum_values == ("admin", "member", "guest")
    assert loaded.get_column("users", "nope") is None


def test_registry_from_snapshot():
    reg = build_registry()
    copy = SchemaRegistry.from_snapshot(reg.snapshot())
    assert copy.table_names == reg.table_names
    assert not copy.frozen
