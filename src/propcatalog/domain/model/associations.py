"""Child rows attaching catalog entities to a relation (or relation stage).

Every association is addressed by ``(kind, parent_id, child_id)``; the remaining
fields are relation-specific overrides compared field by field when diffing.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, ClassVar

from .catalog import EntityId  # noqa: TC001
from .enums import AssociationKind

type OverrideValue = float | int | str | bool | None
type Overrides = dict[str, OverrideValue]


def apply_discount(price: float, *, has_discount: bool, discount_percent: float | None) -> float:
    """Return ``price`` reduced by a percentage discount when one is switched on."""

    if not has_discount or discount_percent is None:
        return price
    return round(price * (1 - discount_percent / 100), 2)


@dataclass(slots=True, frozen=True, kw_only=True)
class Association:
    """Common shape of every reconcilable child row."""

    KIND: ClassVar[AssociationKind]
    PARENT_FIELD: ClassVar[str]
    CHILD_FIELD: ClassVar[str]

    @property
    def kind(self) -> AssociationKind:
        return self.KIND

    @property
    def parent_id(self) -> EntityId:
        return getattr(self, self.PARENT_FIELD)

    @property
    def child_id(self) -> EntityId:
        return getattr(self, self.CHILD_FIELD)

    @property
    def key(self) -> tuple[AssociationKind, EntityId, EntityId]:
        return (self.KIND, self.parent_id, self.child_id)

    @classmethod
    def override_fields(cls) -> tuple[str, ...]:
        identity = {cls.PARENT_FIELD, cls.CHILD_FIELD}
        return tuple(f.name for f in fields(cls) if f.name not in identity)

    def overrides(self) -> Overrides:
        return {name: getattr(self, name) for name in self.override_fields()}

    def changed_fields(self, other: Association) -> tuple[str, ...]:
        """Names of override fields whose values differ from ``other``."""

        if type(other) is not type(self):
            raise TypeError(f"Cannot compare {type(self).__name__} with {type(other).__name__}")
        mine = self.overrides()
        theirs = other.overrides()
        return tuple(
            name for name in mine if _differs(mine[name], theirs[name])
        )


def _differs(left: Any, right: Any) -> bool:
    # ``None`` is a value of its own; ``False == 0`` must not hide a change.
    if left is None or right is None:
        return left is not right
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is not type(right) or left != right
    return left != right


@dataclass(slots=True, frozen=True, kw_only=True)
class RelationBalance(Association):
    KIND: ClassVar[AssociationKind] = AssociationKind.BALANCE
    PARENT_FIELD: ClassVar[str] = "relation_id"
    CHILD_FIELD: ClassVar[str] = "balance_id"

    relation_id: EntityId
    balance_id: EntityId
    price: float
    is_active: bool = True
    has_discount: bool = False
    discount_percent: float | None = None
    external_variation_id: int | None = None

    @property
    def effective_price(self) -> float:
        return apply_discount(
            self.price,
            has_discount=self.has_discount,
            discount_percent=self.discount_percent,
        )


@dataclass(slots=True, frozen=True, kw_only=True)
class RelationAddon(Association):
    KIND: ClassVar[AssociationKind] = AssociationKind.ADDON
    PARENT_FIELD: ClassVar[str] = "relation_id"
    CHILD_FIELD: ClassVar[str] = "addon_id"

    relation_id: EntityId
    addon_id: EntityId
    value: float | bool | None = None
    is_active: bool = True
    has_discount: bool = False
    discount_percent: float | None = None
    external_variation_id: int | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class StageParameter(Association):
    """Rule value for one relation stage; composite key, no surrogate id."""

    KIND: ClassVar[AssociationKind] = AssociationKind.PARAMETER
    PARENT_FIELD: ClassVar[str] = "relation_stage_id"
    CHILD_FIELD: ClassVar[str] = "rule_id"

    relation_stage_id: EntityId
    rule_id: EntityId
    value: float | str | bool
    is_active: bool = True


@dataclass(slots=True, frozen=True, kw_only=True)
class RelationStage:
    """Stage attached to a relation at a given phase number."""

    KIND: ClassVar[AssociationKind] = AssociationKind.STAGE

    relation_stage_id: EntityId
    relation_id: EntityId
    stage_id: EntityId
    num_phase: int


type ReconcilableAssociation = RelationBalance | RelationAddon | StageParameter

ASSOCIATION_TYPES: dict[AssociationKind, type[ReconcilableAssociation]] = {
    AssociationKind.BALANCE: RelationBalance,
    AssociationKind.ADDON: RelationAddon,
    AssociationKind.PARAMETER: StageParameter,
}


def association_type(kind: AssociationKind) -> type[ReconcilableAssociation]:
    try:
        return ASSOCIATION_TYPES[kind]
    except KeyError:
        raise ValueError(f"Association kind {kind!s} is not reconcilable") from None
