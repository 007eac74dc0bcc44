"""Compilation context value object.

Packages the ``(compiler, registry)`` pair shared by ``QueryCompiler``,
``DDLCompiler`` and every clause-level sub-builder into a single object.
"""
from __future__ import annotations

from dataclasses import dataclass

from tessera.compile.base import SQLCompiler
from tessera.schema.registry import SchemaRegistry


@dataclass(frozen=True)
class CompilationContext:
    """Immutable context for a compiler instance.

    Attributes:
        compiler: Dialect-specific SQL compiler instance.
        registry: Schema registry queries are resolved against.
    """

    compiler: SQLCompiler
    registry: SchemaRegistry

    @property
    def dialect(self) -> str:
        return self.compiler.dialect_name
