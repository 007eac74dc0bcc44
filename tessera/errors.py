"""Custom exception hierarchy for tessera.

All public errors inherit from :class:`TesseraError` so callers can catch the
base class for any tessera-specific failure.

Build-time errors (schema registration, column lookup, incomplete queries)
carry a machine-readable ``code`` and a ``details`` dict.  Runtime errors wrap
the underlying driver exception, which stays reachable via ``__cause__``.
"""
from __future__ import annotations

from typing import Any, Sequence


class TesseraError(Exception):
    """Base exception for all tessera errors."""


# ---------------------------------------------------------------------------
# Build-time errors
# ---------------------------------------------------------------------------


class DefinitionError(TesseraError):
    """Base for errors raised while declaring schema or building queries.

    Args:
        message: Human-readable description.
        code: Machine-readable error code (e.g. ``UNKNOWN_COLUMN``).
        details: Extra structured context.
    """

    def __init__(
        self,
        message: str,
        code: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details: dict[str, Any] = details or {}

    def to_error_response(self) -> dict[str, Any]:
        """Returns a structured error response."""
        return {
            "error": self.code,
            "message": str(self),
            "details": self.details,
        }


class SchemaError(DefinitionError):
    """Base for schema registry errors."""


class DuplicateDefinitionError(SchemaError):
    """Raised when a table (or a column within a table) is declared twice."""

    def __init__(self, name: str, kind: str = "table", table: str | None = None) -> None:
        where = f" on table '{table}'" if table else ""
        super().__init__(
            f"{kind.capitalize()} '{name}'{where} is already defined.",
            code="DUPLICATE_DEFINITION",
            details={"name": name, "kind": kind, "table": table},
        )


class UnknownTableError(SchemaError):
    """Raised when a table is not present in the schema registry."""

    def __init__(self, table: str, known_tables: Sequence[str] = ()) -> None:
        super().__init__(
            f"Table '{table}' is not registered.",
            code="UNKNOWN_TABLE",
            details={"table": table, "known_tables": list(known_tables)},
        )


class UnknownColumnError(SchemaError):
    """Raised when a column does not exist on a table."""

    def __init__(
        self,
        table: str,
        column: str,
        known_columns: Sequence[str] = (),
    ) -> None:
        super().__init__(
            f"Column '{column}' does not exist on table '{table}'.",
            code="UNKNOWN_COLUMN",
            details={
                "table": table,
                "column": column,
                "known_columns": list(known_columns),
            },
        )


class RegistryFrozenError(SchemaError):
    """Raised when registering a table after the registry has been frozen."""

    def __init__(self, table: str) -> None:
        super().__init__(
            f"Cannot register table '{table}': the schema registry is frozen.",
            code="REGISTRY_FROZEN",
            details={"table": table},
        )


class QueryError(DefinitionError):
    """Base for query-construction errors."""


class IncompleteQueryError(QueryError):
    """Raised when a query lacks a clause its statement kind requires.

    Args:
        statement: Statement kind (``select``, ``insert``, ...).
        missing: The missing or inconsistent clause.
        message: Optional override for the default message.
    """

    def __init__(self, statement: str, missing: str, message: str | None = None) -> None:
        super().__init__(
            message or f"{statement.upper()} query requires a {missing} clause.",
            code="INCOMPLETE_QUERY",
            details={"statement": statement, "missing": missing},
        )
        self.statement = statement
        self.missing = missing


# ---------------------------------------------------------------------------
# Compilation errors
# ---------------------------------------------------------------------------


class CompilationError(TesseraError):
    """Raised when a query cannot be rendered for the target dialect.

    Args:
        message: Human-readable description.
        clause: The clause being compiled when the error occurred.
    """

    def __init__(self, message: str, clause: str | None = None) -> None:
        super().__init__(message)
        self.clause = clause


class MissingParamError(TesseraError, KeyError):
    """Raised when a named placeholder has no value at bind time."""

    def __init__(self, name: str, supplied: Sequence[str] = ()) -> None:
        super().__init__(f"No value supplied for placeholder '{name}'.")
        self.name = name
        self.supplied = list(supplied)

    def __str__(self) -> str:
        return str(self.args[0])


# ---------------------------------------------------------------------------
# Runtime errors
# ---------------------------------------------------------------------------


class DriverError(TesseraError):
    """Wraps a failure raised by the injected driver connection.

    Args:
        message: Human-readable description.
        sql: The SQL text that was being executed, if any.
        params: The number of bound parameters sent with ``sql``.
    """

    def __init__(self, message: str, sql: str | None = None, params: int = 0) -> None:
        super().__init__(message)
        self.sql = sql
        self.params = params


class MigrationError(TesseraError):
    """Base for migration engine errors."""


class MigrationConflictError(MigrationError):
    """Raised when a schema diff is destructive or ambiguous, or an applied
    migration file has been modified.

    Never resolved automatically: callers must confirm explicitly (for
    example with ``allow_destructive=True`` or an explicit rename map).

    Args:
        message: Human-readable description.
        changes: Descriptions of the conflicting changes.
    """

    def __init__(self, message: str, changes: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.changes = list(changes)


class MigrationApplyError(MigrationError):
    """Raised when a statement fails while applying a migration batch.

    The whole batch has been rolled back when this is raised.

    Args:
        version: Version of the migration unit that failed.
        statement_index: Zero-based index of the failing statement in the unit.
        statement: The SQL text of the failing statement.
    """

    def __init__(self, version: str, statement_index: int, statement: str) -> None:
        super().__init__(
            f"Migration {version} failed at statement {statement_index}; "
            "the batch was rolled back."
        )
        self.version = version
        self.statement_index = statement_index
        self.statement = statement


class MigrationStateError(MigrationError):
    """Raised on an illegal migration state transition."""


class ResultMappingError(TesseraError):
    """Raised when a returned value cannot be converted to its column type.

    Args:
        key: The record key of the offending value.
        value: The raw value returned by the driver.
        reason: Why conversion failed.
    """

    def __init__(self, key: str, value: object, reason: str) -> None:
        super().__init__(f"Cannot convert value for '{key}': {reason}")
        self.key = key
        self.value = value
