"""SQLAlchemy adapter package: a local catalog store."""

from __future__ import annotations

from .store import (
    SqlAlchemyCatalogStore,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)
from .tables import create_all_tables, metadata

__all__ = [
    "SqlAlchemyCatalogStore",
    "StartupError",
    "configured_engine",
    "create_all_tables",
    "is_started",
    "metadata",
    "shutdown",
    "startup",
]
