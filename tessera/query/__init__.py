"""tessera query builder: immutable select/insert/update/delete statements."""
from tessera.query.statements import (
    DeleteQuery,
    InsertQuery,
    JoinClause,
    JoinKind,
    OnConflict,
    Query,
    SelectQuery,
    TableRef,
    UpdateQuery,
    delete,
    insert,
    select,
    update,
)

__all__ = [
    "DeleteQuery",
    "InsertQuery",
    "JoinClause",
    "JoinKind",
    "OnConflict",
    "Query",
    "SelectQuery",
    "TableRef",
    "UpdateQuery",
    "delete",
    "insert",
    "select",
    "update",
]
