"""Three-way diff between a persisted and a desired association set.

Entries are matched on ``child_id`` only; the parent is fixed per call. The
three output groups are disjoint by construction, so phases built on them
never touch the same association twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from propcatalog.domain.model import EntityId, Overrides, ReconcilableAssociation


@dataclass(slots=True, frozen=True, kw_only=True)
class AssociationUpdate:
    """Desired association whose overrides differ from the persisted row."""

    desired: ReconcilableAssociation
    changed_fields: tuple[str, ...]

    @property
    def child_id(self) -> EntityId:
        return self.desired.child_id

    @property
    def changes(self) -> Overrides:
        overrides = self.desired.overrides()
        return {name: overrides[name] for name in self.changed_fields}


@dataclass(slots=True, frozen=True, kw_only=True)
class AssociationDiff:
    to_delete: tuple[ReconcilableAssociation, ...] = ()
    to_create: tuple[ReconcilableAssociation, ...] = ()
    to_update: tuple[AssociationUpdate, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.to_delete or self.to_create or self.to_update)

    @property
    def write_count(self) -> int:
        return len(self.to_delete) + len(self.to_create) + len(self.to_update)


def ensure_unique_children(desired: Sequence[ReconcilableAssociation]) -> None:
    seen: set[EntityId] = set()
    duplicates: list[EntityId] = []
    for association in desired:
        if association.child_id in seen:
            duplicates.append(association.child_id)
        seen.add(association.child_id)
    if duplicates:
        listed = ", ".join(sorted(set(duplicates)))
        raise ValueError(f"Desired associations repeat child ids: {listed}")


def compute_association_diff(
    existing: Sequence[ReconcilableAssociation],
    desired: Sequence[ReconcilableAssociation],
) -> AssociationDiff:
    """Return deletes, creates and updates turning ``existing`` into ``desired``."""

    ensure_unique_children(desired)
    existing_by_child = {association.child_id: association for association in existing}
    desired_children = {association.child_id for association in desired}

    to_delete = tuple(a for a in existing_by_child.values() if a.child_id not in desired_children)
    to_create: list[ReconcilableAssociation] = []
    to_update: list[AssociationUpdate] = []
    for association in desired:
        current = existing_by_child.get(association.child_id)
        if current is None:
            to_create.append(association)
            continue
        changed = association.changed_fields(current)
        if changed:
            to_update.append(AssociationUpdate(desired=association, changed_fields=changed))

    return AssociationDiff(
        to_delete=to_delete,
        to_create=tuple(to_create),
        to_update=tuple(to_update),
    )
