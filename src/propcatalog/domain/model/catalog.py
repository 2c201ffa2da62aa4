"""Independent catalog building blocks.

These are managed through plain CRUD and only referenced by id from relations.
"""

from __future__ import annotations

from dataclasses import dataclass

from .enums import AddonValueType, RuleType

type EntityId = str


@dataclass(slots=True, frozen=True, kw_only=True)
class Plan:
    plan_id: EntityId
    name: str
    is_active: bool = True
    external_product_id: int | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class Category:
    category_id: EntityId
    name: str


@dataclass(slots=True, frozen=True, kw_only=True)
class Balance:
    """Template-level account balance; relation rows override anything priceable."""

    balance_id: EntityId
    name: str
    amount: float | None = None
    is_active: bool = True
    has_discount: bool = False
    discount_percent: float | None = None

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        return f"{self.amount:g}" if self.amount is not None else self.balance_id


@dataclass(slots=True, frozen=True, kw_only=True)
class Stage:
    stage_id: EntityId
    name: str
    is_active: bool = True


@dataclass(slots=True, frozen=True, kw_only=True)
class StageRule:
    rule_id: EntityId
    rule_type: RuleType
    slug: str
    name: str | None = None
    description: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.slug


@dataclass(slots=True, frozen=True, kw_only=True)
class Addon:
    addon_id: EntityId
    name: str
    value_type: AddonValueType = AddonValueType.NUMBER
    slug_rule: str | None = None
    is_active: bool = True
    has_discount: bool = False
    discount_percent: float | None = None
