"""Public interface for the Catalog API adapter."""

from __future__ import annotations

from .client import ASSOCIATION_ROUTES, HttpCatalogClient, is_duplicate_response
from .schema import RelationPayload, unwrap_list
from .translator import association_to_wire, parse_association, parse_relation

__all__ = [
    "ASSOCIATION_ROUTES",
    "HttpCatalogClient",
    "RelationPayload",
    "association_to_wire",
    "is_duplicate_response",
    "parse_association",
    "parse_relation",
    "unwrap_list",
]
