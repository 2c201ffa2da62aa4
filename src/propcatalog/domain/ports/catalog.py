"""Catalog client port: the read/write boundary to the authoritative store.

Implementations carry no business logic. Association writes must translate
store-specific signals into :class:`DuplicateAssociationError` (create) and
:class:`AssociationNotFoundError` (update/delete) so callers never inspect
status codes or message strings.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from propcatalog.domain.model import (
        Addon,
        AssociationKind,
        Balance,
        Category,
        EntityId,
        Overrides,
        Plan,
        ReconcilableAssociation,
        Relation,
        RelationStage,
        Stage,
        StageRule,
    )


@dataclass(slots=True, frozen=True, kw_only=True)
class RelationFilter:
    """Narrow a relation listing.

    ``category_id=None`` means "any category"; ``uncategorised=True`` asks for
    the relations whose category is absent, which is a key value of its own.
    """

    plan_id: EntityId | None = None
    category_id: EntityId | None = None
    uncategorised: bool = False
    complete: bool = False

    def __post_init__(self) -> None:
        if self.uncategorised and self.category_id is not None:
            raise ValueError("uncategorised and category_id are mutually exclusive")

    def matches(self, relation: Relation) -> bool:
        if self.plan_id is not None and relation.plan_id != self.plan_id:
            return False
        if self.uncategorised:
            return relation.category_id is None
        return self.category_id is None or relation.category_id == self.category_id


@runtime_checkable
class CatalogReader(Protocol):
    async def list_plans(self) -> Sequence[Plan]: ...

    async def list_categories(self) -> Sequence[Category]: ...

    async def list_balances(self) -> Sequence[Balance]: ...

    async def list_stages(self) -> Sequence[Stage]: ...

    async def list_stage_rules(self) -> Sequence[StageRule]: ...

    async def list_addons(self) -> Sequence[Addon]: ...

    async def list_relations(
        self,
        relation_filter: RelationFilter | None = None,
    ) -> Sequence[Relation]:
        """Return relations, embedding balances/addons when ``complete`` is requested."""
        ...

    async def list_associations(
        self,
        parent_id: EntityId,
        kind: AssociationKind,
    ) -> Sequence[ReconcilableAssociation]:
        """Return the authoritative association set for ``parent_id`` at call time."""
        ...

    async def list_relation_stages(self, relation_id: EntityId) -> Sequence[RelationStage]: ...


@runtime_checkable
class CatalogClient(CatalogReader, Protocol):
    async def create_association(
        self,
        association: ReconcilableAssociation,
    ) -> ReconcilableAssociation:
        """Create one association; raise ``DuplicateAssociationError`` if its key exists."""
        ...

    async def update_association(
        self,
        kind: AssociationKind,
        parent_id: EntityId,
        child_id: EntityId,
        changes: Overrides,
    ) -> ReconcilableAssociation | None:
        """Patch override fields; raise ``AssociationNotFoundError`` if the row is gone.

        Returns the stored row when the store echoes it back, ``None`` otherwise.
        """
        ...

    async def delete_association(
        self,
        kind: AssociationKind,
        parent_id: EntityId,
        child_id: EntityId,
    ) -> None:
        """Delete one association; raise ``AssociationNotFoundError`` if already absent."""
        ...

    async def create_relation(
        self,
        *,
        plan_id: EntityId,
        category_id: EntityId | None = None,
        group_name: str | None = None,
    ) -> Relation: ...

    async def update_relation(
        self,
        relation_id: EntityId,
        *,
        plan_id: EntityId | None = None,
        category_id: EntityId | None = None,
        group_name: str | None = None,
        clear_category: bool = False,
    ) -> Relation:
        """Patch a relation; ``None`` leaves a field untouched, ``clear_category`` unsets it."""
        ...

    async def create_relation_stage(
        self,
        *,
        relation_id: EntityId,
        stage_id: EntityId,
        num_phase: int,
    ) -> RelationStage: ...


__all__ = ["CatalogClient", "CatalogReader", "RelationFilter"]
