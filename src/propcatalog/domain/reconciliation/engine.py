"""Phase-driven association reconciler.

One call converges the persisted association set of a single parent to a
desired set:

1) fetch the authoritative set (never a cached one)
2) diff into deletes, creates and updates
3) delete phase, fanned out; a missing row counts as deleted
4) create phase, fanned out; a duplicate key falls back to an update
5) update phase, fanned out, including the create fallbacks
6) resync the entity cache from a fresh read

Phases are not a transaction. Every phase is idempotent towards its end state,
so re-running the same desired set after a partial failure finishes the work.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from propcatalog.domain.cache import EntityCache
from propcatalog.domain.errors import (
    AssociationNotFoundError,
    CatalogError,
    DuplicateAssociationError,
)
from propcatalog.domain.model import association_type

from .diff import AssociationUpdate, compute_association_diff
from .result import Phase, ReconcileResult, WriteFailure

if TYPE_CHECKING:
    from collections.abc import Sequence

    from propcatalog.domain.model import (
        AssociationKind,
        EntityId,
        Overrides,
        ReconcilableAssociation,
    )
    from propcatalog.domain.ports import CatalogClient

log = getLogger(__name__)


@dataclass(slots=True)
class _PhaseOutcome:
    done: list[EntityId] = field(default_factory=list["EntityId"])
    already_absent: list[EntityId] = field(default_factory=list["EntityId"])
    fallbacks: list[AssociationUpdate] = field(default_factory=list[AssociationUpdate])
    failed: list[WriteFailure] = field(default_factory=list[WriteFailure])


@dataclass(slots=True)
class AssociationReconciler:
    """Converge one parent's associations to a desired set through a catalog client."""

    client: CatalogClient
    cache: EntityCache = field(default_factory=EntityCache)

    def __call__(
        self,
        kind: AssociationKind,
        parent_id: EntityId,
        desired: Sequence[ReconcilableAssociation],
    ) -> ReconcileResult:
        return asyncio.run(self.reconcile(kind, parent_id, desired))

    async def reconcile(
        self,
        kind: AssociationKind,
        parent_id: EntityId,
        desired: Sequence[ReconcilableAssociation],
    ) -> ReconcileResult:
        _validate_desired(kind, parent_id, desired)

        existing = await self.client.list_associations(parent_id, kind)
        diff = compute_association_diff(existing, desired)
        log.info(
            f"Reconciling {kind} associations of {parent_id}: "
            f"delete={len(diff.to_delete)}, create={len(diff.to_create)}, "
            f"update={len(diff.to_update)}"
        )

        deletes = await self._delete_phase(diff.to_delete)
        creates = await self._create_phase(diff.to_create)
        updates = await self._update_phase((*diff.to_update, *creates.fallbacks))

        snapshot = await self._resync(kind, parent_id)

        failed = (*deletes.failed, *creates.failed, *updates.failed)
        if failed:
            log.warning(
                f"Reconcile of {kind} associations of {parent_id} left "
                f"{len(failed)} failure(s)"
            )
        return ReconcileResult(
            kind=kind,
            parent_id=parent_id,
            diff=diff,
            deleted=tuple(deletes.done),
            created=tuple(creates.done),
            updated=tuple(updates.done),
            already_absent=tuple(deletes.already_absent),
            duplicate_fallbacks=tuple(update.child_id for update in creates.fallbacks),
            failed=failed,
            snapshot=snapshot,
        )

    async def _delete_phase(self, targets: Sequence[ReconcilableAssociation]) -> _PhaseOutcome:
        outcome = _PhaseOutcome()

        async def delete(association: ReconcilableAssociation) -> None:
            try:
                await self.client.delete_association(
                    association.kind, association.parent_id, association.child_id
                )
            except AssociationNotFoundError:
                log.info(f"{association.kind} {association.child_id} already absent")
                outcome.already_absent.append(association.child_id)
                outcome.done.append(association.child_id)
            except CatalogError as exc:
                _record_failure(outcome, association.child_id, Phase.DELETE, exc)
            else:
                outcome.done.append(association.child_id)

        await asyncio.gather(*(delete(association) for association in targets))
        return outcome

    async def _create_phase(self, targets: Sequence[ReconcilableAssociation]) -> _PhaseOutcome:
        outcome = _PhaseOutcome()

        async def create(association: ReconcilableAssociation) -> None:
            try:
                await self.client.create_association(association)
            except DuplicateAssociationError:
                log.info(
                    f"{association.kind} {association.child_id} already exists on "
                    f"{association.parent_id}; updating instead"
                )
                outcome.fallbacks.append(
                    AssociationUpdate(
                        desired=association,
                        changed_fields=association.override_fields(),
                    )
                )
            except CatalogError as exc:
                _record_failure(outcome, association.child_id, Phase.CREATE, exc)
            else:
                outcome.done.append(association.child_id)

        await asyncio.gather(*(create(association) for association in targets))
        return outcome

    async def _update_phase(self, targets: Sequence[AssociationUpdate]) -> _PhaseOutcome:
        outcome = _PhaseOutcome()

        async def update(target: AssociationUpdate) -> None:
            desired = target.desired
            changes: Overrides = target.changes
            try:
                await self.client.update_association(
                    desired.kind, desired.parent_id, desired.child_id, changes
                )
            except CatalogError as exc:
                _record_failure(outcome, desired.child_id, Phase.UPDATE, exc)
            else:
                outcome.done.append(desired.child_id)

        await asyncio.gather(*(update(target) for target in targets))
        return outcome

    async def _resync(
        self,
        kind: AssociationKind,
        parent_id: EntityId,
    ) -> tuple[ReconcilableAssociation, ...]:
        try:
            return await self.cache.refresh_associations(self.client, kind, parent_id)
        except CatalogError:
            self.cache.invalidate(kind, parent_id)
            raise


def _record_failure(
    outcome: _PhaseOutcome,
    child_id: EntityId,
    phase: Phase,
    exc: Exception,
) -> None:
    log.warning(f"Failed to {phase} association {child_id}: {exc}")
    outcome.failed.append(WriteFailure(child_id=child_id, phase=phase, cause=exc))


def _validate_desired(
    kind: AssociationKind,
    parent_id: EntityId,
    desired: Sequence[ReconcilableAssociation],
) -> None:
    expected_type = association_type(kind)
    for association in desired:
        if not isinstance(association, expected_type):
            raise TypeError(
                f"Expected {expected_type.__name__} for {kind} reconciliation, "
                f"got {type(association).__name__}"
            )
        if association.parent_id != parent_id:
            raise ValueError(
                f"Association {association.child_id} belongs to {association.parent_id}, "
                f"not {parent_id}"
            )
