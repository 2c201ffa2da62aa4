"""Domain port definitions for adapters."""

from __future__ import annotations

from .catalog import CatalogClient, CatalogReader, RelationFilter

__all__ = ["CatalogClient", "CatalogReader", "RelationFilter"]
