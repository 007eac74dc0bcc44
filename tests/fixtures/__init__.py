"""Test fixtures: the sample orgs / users / posts schema."""

from __future__ import annotations

from tessera.schema import (
    SchemaRegistry,
    boolean,
    enum,
    integer,
    json_,
    real,
    serial,
    text,
    timestamp,
    varchar,
)


def build_registry(freeze: bool = True) -> SchemaRegistry:
    """Return a registry with three related tables.

    ``orgs`` 1:many ``users`` 1:many ``posts``; ``users.manager_id`` is a
    self reference.
    """
    registry = SchemaRegistry()
    registry.register(
        "orgs",
        serial("id", primary_key=True),
        varchar("slug", length=64, nullable=False, unique=True),
        text("name", nullable=False),
    )
    registry.register(
        "users",
        serial("id", primary_key=True),
        integer("org_id", references="orgs.id", on_delete="CASCADE"),
        text("full_name", nullable=False),
        integer("age"),
        varchar("email", length=120, unique=True),
        boolean("active", nullable=False, default=True),
        enum("role", ("admin", "member", "guest"), nullable=False, default="member"),
        real("score"),
        json_("settings"),
        timestamp("created_at", default_sql="CURRENT_TIMESTAMP"),
        integer("manager_id", references="users.id", on_delete="SET NULL"),
    )
    registry.register(
        "posts",
        serial("id", primary_key=True),
        integer("author_id", nullable=False, references="users.id", on_delete="CASCADE"),
        text("title", nullable=False),
        text("body"),
        boolean("published", nullable=False, default=False),
    )
    if freeze:
        registry.freeze()
    return registry


def sqlite_schema_ddl(registry: SchemaRegistry) -> list[str]:
    """Return CREATE TABLE statements for every table, in registration order."""
    from tessera.compile import DDLCompiler, SQLiteCompiler

    ddl = DDLCompiler(SQLiteCompiler())
    statements: list[str] = []
    for table in registry:
        statements.extend(ddl.create_table(table))
    return statements
