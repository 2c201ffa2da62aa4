"""Per-session entity cache.

The cache is the only mutable state shared by screens in one editing session.
It is mutated by an explicit :meth:`EntityCache.reload` and by association
resyncs after reconciliation; association snapshots are addressed by
``(kind, parent_id)`` keys, never by object identity.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from logging import getLogger
from typing import TYPE_CHECKING

from propcatalog.domain.model import (
    AssociationKind,
    RelationAddon,
    RelationBalance,
)
from propcatalog.domain.ports import RelationFilter

if TYPE_CHECKING:
    from collections.abc import Sequence

    from propcatalog.domain.model import (
        Addon,
        Balance,
        Category,
        EntityId,
        Plan,
        ReconcilableAssociation,
        Relation,
        Stage,
        StageRule,
    )
    from propcatalog.domain.ports import CatalogReader

log = getLogger(__name__)

type AssociationKey = tuple[AssociationKind, EntityId]


@dataclass(slots=True, frozen=True, kw_only=True)
class CatalogSnapshot:
    """Immutable view of every entity collection as last fetched."""

    plans: tuple[Plan, ...] = ()
    categories: tuple[Category, ...] = ()
    balances: tuple[Balance, ...] = ()
    stages: tuple[Stage, ...] = ()
    stage_rules: tuple[StageRule, ...] = ()
    addons: tuple[Addon, ...] = ()
    relations: tuple[Relation, ...] = ()

    def balance(self, balance_id: EntityId) -> Balance | None:
        return next((b for b in self.balances if b.balance_id == balance_id), None)

    def plan(self, plan_id: EntityId) -> Plan | None:
        return next((p for p in self.plans if p.plan_id == plan_id), None)

    def category(self, category_id: EntityId | None) -> Category | None:
        if category_id is None:
            return None
        return next((c for c in self.categories if c.category_id == category_id), None)

    def relation(self, relation_id: EntityId) -> Relation | None:
        return next((r for r in self.relations if r.relation_id == relation_id), None)


@dataclass(slots=True)
class EntityCache:
    snapshot: CatalogSnapshot = field(default_factory=CatalogSnapshot)
    _associations: dict[AssociationKey, tuple[ReconcilableAssociation, ...]] = field(
        default_factory=dict["AssociationKey", "tuple[ReconcilableAssociation, ...]"]
    )

    async def reload(self, reader: CatalogReader) -> CatalogSnapshot:
        """Fetch every collection afresh and drop all association snapshots."""

        (
            plans,
            categories,
            balances,
            stages,
            stage_rules,
            addons,
            relations,
        ) = await asyncio.gather(
            reader.list_plans(),
            reader.list_categories(),
            reader.list_balances(),
            reader.list_stages(),
            reader.list_stage_rules(),
            reader.list_addons(),
            reader.list_relations(RelationFilter(complete=True)),
        )
        self.snapshot = CatalogSnapshot(
            plans=tuple(plans),
            categories=tuple(categories),
            balances=tuple(balances),
            stages=tuple(stages),
            stage_rules=tuple(stage_rules),
            addons=tuple(addons),
            relations=tuple(relations),
        )
        self._associations.clear()
        log.debug(
            f"Reloaded catalog: {len(plans)} plans, {len(categories)} categories, "
            f"{len(balances)} balances, {len(relations)} relations"
        )
        return self.snapshot

    def associations(
        self,
        kind: AssociationKind,
        parent_id: EntityId,
    ) -> tuple[ReconcilableAssociation, ...] | None:
        """Return the cached association set, or ``None`` if never fetched."""

        return self._associations.get((kind, parent_id))

    def store_associations(
        self,
        kind: AssociationKind,
        parent_id: EntityId,
        rows: Sequence[ReconcilableAssociation],
    ) -> tuple[ReconcilableAssociation, ...]:
        """Replace the snapshot for ``(kind, parent_id)`` with an authoritative read."""

        stored = tuple(rows)
        self._associations[(kind, parent_id)] = stored
        if kind in (AssociationKind.BALANCE, AssociationKind.ADDON):
            self._replace_embedded(kind, parent_id, stored)
        return stored

    async def refresh_associations(
        self,
        reader: CatalogReader,
        kind: AssociationKind,
        parent_id: EntityId,
    ) -> tuple[ReconcilableAssociation, ...]:
        rows = await reader.list_associations(parent_id, kind)
        return self.store_associations(kind, parent_id, rows)

    def invalidate(self, kind: AssociationKind, parent_id: EntityId) -> None:
        self._associations.pop((kind, parent_id), None)

    def _replace_embedded(
        self,
        kind: AssociationKind,
        relation_id: EntityId,
        rows: tuple[ReconcilableAssociation, ...],
    ) -> None:
        relations: list[Relation] = []
        for relation in self.snapshot.relations:
            if relation.relation_id != relation_id:
                relations.append(relation)
            elif kind is AssociationKind.BALANCE:
                balances = tuple(r for r in rows if isinstance(r, RelationBalance))
                relations.append(replace(relation, balances=balances))
            else:
                addons = tuple(r for r in rows if isinstance(r, RelationAddon))
                relations.append(replace(relation, addons=addons))
        self.snapshot = replace(self.snapshot, relations=tuple(relations))
