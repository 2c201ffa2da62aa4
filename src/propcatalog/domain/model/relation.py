"""The relation join entity binding a plan to an optional category."""

from __future__ import annotations

from dataclasses import dataclass

from .associations import RelationAddon, RelationBalance  # noqa: TC001
from .catalog import EntityId  # noqa: TC001


@dataclass(slots=True, frozen=True, kw_only=True)
class Relation:
    """At most one relation exists per ``(plan_id, category_id)``; ``None`` is a key value."""

    relation_id: EntityId
    plan_id: EntityId
    category_id: EntityId | None = None
    group_name: str | None = None
    balances: tuple[RelationBalance, ...] = ()
    addons: tuple[RelationAddon, ...] = ()

    @property
    def selection_key(self) -> tuple[EntityId, EntityId | None]:
        return (self.plan_id, self.category_id)

    def matches(self, plan_id: EntityId, category_id: EntityId | None) -> bool:
        return self.plan_id == plan_id and self.category_id == category_id
