"""Aggregate outcome of one reconcile call."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from propcatalog.domain.errors import ReconciliationError

if TYPE_CHECKING:
    from propcatalog.domain.model import AssociationKind, EntityId, ReconcilableAssociation

    from .diff import AssociationDiff


class Phase(StrEnum):
    DELETE = "delete"
    CREATE = "create"
    UPDATE = "update"


@dataclass(slots=True, frozen=True, kw_only=True)
class WriteFailure:
    child_id: EntityId
    phase: Phase
    cause: Exception

    def describe(self) -> str:
        return f"{self.phase} {self.child_id}: {self.cause}"


@dataclass(slots=True, frozen=True, kw_only=True)
class ReconcileResult:
    """What happened to each association touched by a reconcile call.

    ``duplicate_fallbacks`` is informational: those creates hit an existing row
    and were converted into updates, which then either succeeded or failed like
    any other update.
    """

    kind: AssociationKind
    parent_id: EntityId
    diff: AssociationDiff
    deleted: tuple[EntityId, ...] = ()
    created: tuple[EntityId, ...] = ()
    updated: tuple[EntityId, ...] = ()
    already_absent: tuple[EntityId, ...] = ()
    duplicate_fallbacks: tuple[EntityId, ...] = ()
    failed: tuple[WriteFailure, ...] = ()
    snapshot: tuple[ReconcilableAssociation, ...] = ()

    @property
    def succeeded(self) -> tuple[EntityId, ...]:
        return self.deleted + self.created + self.updated

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def is_noop(self) -> bool:
        return self.diff.is_empty

    def raise_for_failures(self) -> None:
        if not self.failed:
            return
        details = "; ".join(failure.describe() for failure in self.failed)
        raise ReconciliationError(
            f"{len(self.failed)} {self.kind} association(s) of {self.parent_id} failed: {details}"
        )
