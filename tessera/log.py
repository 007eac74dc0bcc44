"""Logging helpers for tessera.

Every module obtains its logger through :func:`get_logger`, which namespaces
it under ``tessera``.  The library attaches only a ``NullHandler``; call
:func:`configure_logging` (or configure ``logging`` yourself) to see output.
"""
from __future__ import annotations

import logging

__all__ = ("configure_logging", "get_logger")

_ROOT = "tessera"

logging.getLogger(_ROOT).addHandler(logging.NullHandler())


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger under the ``tessera`` namespace.

    Args:
        name: Dotted suffix such as ``"migrate.runner"``.  A name that already
            starts with ``tessera`` is used as-is.

    Returns:
        The configured logger.
    """
    if not name:
        return logging.getLogger(_ROOT)
    if name == _ROOT or name.startswith(f"{_ROOT}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT}.{name}")


def configure_logging(level: int | str = logging.INFO, fmt: str | None = None) -> None:
    """Attach a stream handler to the ``tessera`` logger.

    Safe to call more than once; an existing tessera stream handler is reused.

    Args:
        level: Log level for the ``tessera`` namespace.
        fmt: Optional ``logging.Formatter`` format string.
    """
    logger = logging.getLogger(_ROOT)
    logger.setLevel(level)
    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler) and getattr(handler, "_tessera", False):
            handler.setLevel(level)
            return
    handler = logging.StreamHandler()
    handler._tessera = True  # type: ignore[attr-defined]
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt or "%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
