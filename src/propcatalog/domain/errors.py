"""Error taxonomy shared by the catalog client port and the core algorithms."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .model import AssociationKind, EntityId


class CatalogError(RuntimeError):
    """Base class for failures reported by a catalog client."""


class CatalogResponseError(CatalogError):
    """Raised when the catalog store answers with an unexpected payload."""


class CatalogWriteError(CatalogError):
    """Raised when a write is rejected for a reason the caller cannot recover from."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AssociationError(CatalogError):
    """Failure tied to one ``(kind, parent_id, child_id)`` association."""

    def __init__(
        self,
        message: str,
        *,
        kind: AssociationKind,
        parent_id: EntityId,
        child_id: EntityId,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.parent_id = parent_id
        self.child_id = child_id


class DuplicateAssociationError(AssociationError):
    """The store already holds a row for this composite key."""


class AssociationNotFoundError(AssociationError):
    """The store holds no row for this composite key."""


class StagePhaseConflictError(ValueError):
    """Raised when two stages of one relation would share a phase number."""

    def __init__(self, relation_id: EntityId, num_phase: int) -> None:
        super().__init__(f"Relation {relation_id} already has a stage at phase {num_phase}")
        self.relation_id = relation_id
        self.num_phase = num_phase


class ReconciliationError(RuntimeError):
    """Raised on request when a reconcile call left failed associations behind."""
