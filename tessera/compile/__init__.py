"""tessera SQL compilation: dialect compilers, query compiler, DDL."""
from tessera.compile.base import CompiledSQL, ParamSlot, ResultColumn, SQLCompiler
from tessera.compile.builder import QueryCompiler
from tessera.compile.ddl import DDLCompiler
from tessera.compile.mysql import MySQLCompiler
from tessera.compile.postgres import PostgresCompiler
from tessera.compile.registry import CompilerFactory
from tessera.compile.sqlite import SQLiteCompiler

# Register built-in dialects; third-party dialects use the same call.
CompilerFactory.register_class("postgres", PostgresCompiler)
CompilerFactory.register_class("sqlite", SQLiteCompiler)
CompilerFactory.register_class("mysql", MySQLCompiler)

__all__ = [
    "CompiledSQL",
    "CompilerFactory",
    "DDLCompiler",
    "MySQLCompiler",
    "ParamSlot",
    "PostgresCompiler",
    "QueryCompiler",
    "ResultColumn",
    "SQLCompiler",
    "SQLiteCompiler",
]
