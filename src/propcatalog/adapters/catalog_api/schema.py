"""Pydantic models describing the Catalog API payloads.

Field names follow the domain model; aliases carry the camelCase wire names, so
``model_fields[name].alias`` maps a domain override to its wire key.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import cast

from pydantic import BaseModel, ConfigDict, Field, field_validator

from propcatalog.domain.model import AddonValueType, RuleType


def _id_to_str(value: object) -> object:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def _optional_id(value: object) -> object:
    return _blank_to_none(_id_to_str(value))


def _number_or_none(value: object) -> object:
    value = _blank_to_none(value)
    if isinstance(value, str):
        return float(value)
    return value


class CatalogBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PlanPayload(CatalogBaseModel):
    plan_id: str = Field(alias="planID")
    name: str
    is_active: bool = Field(default=True, alias="isActive")
    external_product_id: int | None = Field(default=None, alias="wooID")

    _normalize_id = field_validator("plan_id", mode="before")(_id_to_str)


class CategoryPayload(CatalogBaseModel):
    category_id: str = Field(alias="categoryID")
    name: str

    _normalize_id = field_validator("category_id", mode="before")(_id_to_str)


class BalancePayload(CatalogBaseModel):
    balance_id: str = Field(alias="balanceID")
    name: str = ""
    amount: float | None = Field(default=None, alias="balance")
    is_active: bool = Field(default=True, alias="isActive")
    has_discount: bool = Field(default=False, alias="hasDiscount")
    discount_percent: float | None = Field(default=None, alias="discount")

    _normalize_id = field_validator("balance_id", mode="before")(_id_to_str)
    _normalize_numbers = field_validator("amount", "discount_percent", mode="before")(
        _number_or_none
    )


class StagePayload(CatalogBaseModel):
    stage_id: str = Field(alias="stageID")
    name: str
    is_active: bool = Field(default=True, alias="isActive")

    _normalize_id = field_validator("stage_id", mode="before")(_id_to_str)


class StageRulePayload(CatalogBaseModel):
    rule_id: str = Field(alias="ruleID")
    rule_type: RuleType = Field(alias="ruleType")
    slug: str = Field(alias="ruleSlug")
    name: str | None = Field(default=None, alias="ruleName")
    description: str | None = Field(default=None, alias="ruleDescription")

    _normalize_id = field_validator("rule_id", mode="before")(_id_to_str)
    _normalize_text = field_validator("name", "description", mode="before")(_blank_to_none)


class AddonPayload(CatalogBaseModel):
    addon_id: str = Field(alias="addonID")
    name: str
    value_type: AddonValueType = Field(default=AddonValueType.NUMBER, alias="valueType")
    slug_rule: str | None = Field(default=None, alias="slugRule")
    is_active: bool = Field(default=True, alias="isActive")
    has_discount: bool = Field(default=False, alias="hasDiscount")
    discount_percent: float | None = Field(default=None, alias="discount")

    _normalize_id = field_validator("addon_id", mode="before")(_id_to_str)
    _normalize_discount = field_validator("discount_percent", mode="before")(_number_or_none)


class RelationBalancePayload(CatalogBaseModel):
    relation_id: str = Field(alias="relationID")
    balance_id: str = Field(alias="balanceID")
    price: float
    is_active: bool = Field(default=True, alias="isActive")
    has_discount: bool = Field(default=False, alias="hasDiscount")
    discount_percent: float | None = Field(default=None, alias="discount")
    external_variation_id: int | None = Field(default=None, alias="wooID")

    _normalize_ids = field_validator("relation_id", "balance_id", mode="before")(_id_to_str)
    _normalize_numbers = field_validator("price", "discount_percent", mode="before")(
        _number_or_none
    )


class RelationAddonPayload(CatalogBaseModel):
    relation_id: str = Field(alias="relationID")
    addon_id: str = Field(alias="addonID")
    value: bool | float | None = None
    is_active: bool = Field(default=True, alias="isActive")
    has_discount: bool = Field(default=False, alias="hasDiscount")
    discount_percent: float | None = Field(default=None, alias="discount")
    external_variation_id: int | None = Field(default=None, alias="wooID")

    _normalize_ids = field_validator("relation_id", "addon_id", mode="before")(_id_to_str)
    _normalize_discount = field_validator("discount_percent", mode="before")(_number_or_none)


class StageParameterPayload(CatalogBaseModel):
    relation_stage_id: str = Field(alias="relationStageID")
    rule_id: str = Field(alias="ruleID")
    value: bool | float | str = Field(alias="ruleValue")
    is_active: bool = Field(default=True, alias="isActive")

    _normalize_ids = field_validator("relation_stage_id", "rule_id", mode="before")(_id_to_str)


class RelationStagePayload(CatalogBaseModel):
    relation_stage_id: str = Field(alias="relationStageID")
    relation_id: str = Field(alias="relationID")
    stage_id: str = Field(alias="stageID")
    num_phase: int = Field(alias="numPhase")

    _normalize_ids = field_validator(
        "relation_stage_id", "relation_id", "stage_id", mode="before"
    )(_id_to_str)


class RelationPayload(CatalogBaseModel):
    relation_id: str = Field(alias="relationID")
    plan_id: str = Field(alias="planID")
    category_id: str | None = Field(default=None, alias="categoryID")
    group_name: str | None = Field(default=None, alias="groupName")
    balances: list[RelationBalancePayload] = Field(default_factory=list)
    addons: list[RelationAddonPayload] = Field(default_factory=list)

    _normalize_ids = field_validator("relation_id", "plan_id", mode="before")(_id_to_str)
    _normalize_category = field_validator("category_id", mode="before")(_optional_id)
    _normalize_group = field_validator("group_name", mode="before")(_blank_to_none)

    @field_validator("balances", "addons", mode="before")
    @classmethod
    def _null_to_empty(cls, value: object) -> object:
        return [] if value is None else value


class ErrorPayload(CatalogBaseModel):
    message: str | list[str] = ""
    error: str | None = None
    status_code: int | None = Field(default=None, alias="statusCode")

    @property
    def text(self) -> str:
        if isinstance(self.message, list):
            return "; ".join(self.message)
        return self.message or (self.error or "")


def unwrap_list(payload: object) -> Sequence[object]:
    """Accept both ``{"data": [...]}`` envelopes and raw lists."""

    if isinstance(payload, Mapping):
        data = cast(Mapping[str, object], payload).get("data")
        if isinstance(data, list):
            return cast(list[object], data)
        if isinstance(data, Mapping):
            nested = cast(Mapping[str, object], data).get("data")
            if isinstance(nested, list):
                return cast(list[object], nested)
    if isinstance(payload, list):
        return cast(list[object], payload)
    raise ValueError("Expected a list payload or a data envelope")


def unwrap_item(payload: object) -> Mapping[str, object]:
    if isinstance(payload, Mapping):
        mapping = cast(Mapping[str, object], payload)
        data = mapping.get("data")
        if isinstance(data, Mapping):
            return cast(Mapping[str, object], data)
        return mapping
    raise ValueError("Expected an object payload")
