"""Utilities for building a SchemaRegistry from external sources.

SQLAlchemy converter
--------------------
:func:`registry_from_sqlalchemy` reflects a live database engine and returns
a :class:`~tessera.schema.registry.SchemaRegistry`.  It is useful for
bootstrapping a registry (and a first migration snapshot) from an existing
database.

Install the optional dependency before using this module::

    pip install "tessera[sqlalchemy]"

Example::

    from sqlalchemy import create_engine
    from tessera.schema.converters import registry_from_sqlalchemy

    engine = create_engine("sqlite:///app.db")
    registry = registry_from_sqlalchemy(engine)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from tessera.log import get_logger
from tessera.schema.column import Column, ForeignKey
from tessera.schema.registry import SchemaRegistry
from tessera.types import ScalarType

if TYPE_CHECKING:
    from sqlalchemy import Engine, MetaData, Table as SATable

logger = get_logger("schema.converters")


def registry_from_sqlalchemy(
    engine: Engine,
    *,
    include_tables: list[str] | None = None,
    schema: str | None = None,
    freeze: bool = True,
) -> SchemaRegistry:
    """Build a :class:`SchemaRegistry` by reflecting a SQLAlchemy engine.

    Every reflected table is registered in dependency order.  Column types are
    mapped onto tessera's logical :class:`~tessera.types.ScalarType`; types
    with no direct equivalent are registered as ``text``.  Foreign-key
    constraints become column references.

    Args:
        engine: A :class:`sqlalchemy.engine.Engine` instance.
        include_tables: Optional allowlist of table names to reflect.
        schema: Optional database schema name (e.g. ``"public"``).
        freeze: Freeze the registry before returning it.

    Returns:
        A populated :class:`SchemaRegistry`.

    Raises:
        ImportError: If ``sqlalchemy`` is not installed.
    """
    try:
        from sqlalchemy import MetaData as _MetaData
    except ImportError as exc:
        raise ImportError(
            "SQLAlchemy is required for registry_from_sqlalchemy(). "
            'Install it with: pip install "tessera[sqlalchemy]"'
        ) from exc

    metadata = _MetaData()
    with engine.connect() as conn:
        metadata.reflect(bind=conn, only=include_tables, schema=schema)

    registry = _metadata_to_registry(metadata)
    if freeze:
        registry.freeze()
    return registry


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _metadata_to_registry(metadata: MetaData) -> SchemaRegistry:
    """Convert a reflected :class:`~sqlalchemy.schema.MetaData` into a registry.

    Separated from :func:`registry_from_sqlalchemy` so it can be reused with a
    ``MetaData`` object declared in code rather than reflected.
    """
    registry = SchemaRegistry()
    for sa_table in metadata.sorted_tables:
        columns = [_convert_column(sa_table, sa_col) for sa_col in sa_table.columns]
        pk = [c.name for c in sa_table.primary_key.columns]
        registry.register(sa_table.name, *columns, primary_key=pk)
        logger.debug("Reflected table %s", sa_table.name)
    return registry


def _convert_column(sa_table: SATable, sa_col: Any) -> Column:
    scalar, extra = _map_type(sa_col.type)
    fk: ForeignKey | None = None
    for sa_fk in sa_col.foreign_keys:
        fk = ForeignKey(
            table=sa_fk.column.table.name,
            column=sa_fk.column.name,
            on_delete=_on_delete(sa_fk.ondelete),
        )
        break
    single_pk = len(sa_table.primary_key.columns) == 1 and sa_col.primary_key
    return Column(
        name=sa_col.name,
        type=scalar,
        # col.nullable is True/False for reflected columns; treat an unset
        # value (None) as nullable.
        nullable=sa_col.nullable is not False,
        primary_key=bool(single_pk),
        references=fk,
        default_sql=_server_default(sa_col),
        **extra,
    )


def _map_type(sa_type: Any) -> tuple[ScalarType, dict[str, Any]]:
    """Map a SQLAlchemy type instance to a scalar type plus column options."""
    from sqlalchemy import types as sat

    if isinstance(sa_type, sat.Enum) and sa_type.enums:
        return ScalarType.ENUM, {"enum_values": tuple(sa_type.enums)}
    if isinstance(sa_type, sat.Boolean):
        return ScalarType.BOOLEAN, {}
    if isinstance(sa_type, sat.BigInteger):
        return ScalarType.BIGINT, {}
    if isinstance(sa_type, sat.Integer):
        return ScalarType.INTEGER, {}
    if isinstance(sa_type, (sat.Float, sat.Numeric)):
        return ScalarType.REAL, {}
    if isinstance(sa_type, (sat.DateTime, sat.Date)):
        return ScalarType.TIMESTAMP, {}
    if isinstance(sa_type, sat.JSON):
        return ScalarType.JSON, {}
    if isinstance(sa_type, sat.String) and not isinstance(sa_type, sat.Text):
        if sa_type.length:
            return ScalarType.VARCHAR, {"length": sa_type.length}
        return ScalarType.TEXT, {}
    return ScalarType.TEXT, {}


def _on_delete(value: str | None) -> Any:
    if value is None:
        return None
    upper = value.upper()
    if upper in ("CASCADE", "SET NULL", "RESTRICT", "NO ACTION"):
        return upper
    return None


def _server_default(sa_col: Any) -> str | None:
    default = sa_col.server_default
    if default is None:
        return None
    arg = getattr(default, "arg", None)
    if arg is None:
        return None
    return str(getattr(arg, "text", arg))
