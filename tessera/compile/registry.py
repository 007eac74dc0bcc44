"""Dialect lookup.

Queries, DDL, the executor and the migration engine all name their target
dialect with a string (``"postgres"``, ``"sqlite"``, ``"mysql"``).
``CompilerFactory`` turns that string into a fresh
:class:`~tessera.compile.base.SQLCompiler`.  Third-party dialects plug in
with the ``register`` decorator::

    @CompilerFactory.register("duckdb")
    class DuckDBCompiler(PostgresCompiler):
        ...
"""

from __future__ import annotations

from collections.abc import Callable
from typing import ClassVar

from tessera.compile.base import SQLCompiler
from tessera.errors import CompilationError

CompilerClass = type[SQLCompiler]


class CompilerFactory:
    """Maps dialect names (case-insensitive) to compiler classes."""

    _compilers: ClassVar[dict[str, CompilerClass]] = {}

    @staticmethod
    def _key(name: str) -> str:
        key = name.strip().lower()
        if not key:
            raise ValueError("Dialect name must not be empty.")
        return key

    @classmethod
    def register(cls, name: str) -> Callable[[CompilerClass], CompilerClass]:
        """Class decorator form of :meth:`register_class`."""

        def decorator(compiler_cls: CompilerClass) -> CompilerClass:
            cls.register_class(name, compiler_cls)
            return compiler_cls

        return decorator

    @classmethod
    def register_class(cls, name: str, compiler_cls: CompilerClass) -> None:
        """Make ``compiler_cls`` available as dialect ``name``.

        Registering a new class under a name replaces the previous one, which
        lets applications override a built-in dialect.

        Raises:
            TypeError: If ``compiler_cls`` is not an :class:`SQLCompiler` subclass.
        """
        if not (isinstance(compiler_cls, type) and issubclass(compiler_cls, SQLCompiler)):
            raise TypeError(f"{compiler_cls!r} is not a SQLCompiler subclass.")
        cls._compilers[cls._key(name)] = compiler_cls

    @classmethod
    def unregister(cls, name: str) -> None:
        """Remove dialect ``name``; unknown names are ignored."""
        cls._compilers.pop(cls._key(name), None)

    @classmethod
    def create(cls, name: str) -> SQLCompiler:
        """Return a new compiler for dialect ``name``.

        Raises:
            CompilationError: If ``name`` was never registered.
        """
        compiler_cls = cls._compilers.get(cls._key(name))
        if compiler_cls is None:
            raise CompilationError(
                f"Unknown dialect '{name}'; available: {', '.join(cls.registered_targets())}.",
                clause="DIALECT",
            )
        return compiler_cls()

    @classmethod
    def registered_targets(cls) -> list[str]:
        """Names of every registered dialect, sorted."""
        return sorted(cls._compilers)
