"""Domain model for the challenge template catalog."""

from __future__ import annotations

from .associations import (
    ASSOCIATION_TYPES,
    Association,
    OverrideValue,
    Overrides,
    ReconcilableAssociation,
    RelationAddon,
    RelationBalance,
    RelationStage,
    StageParameter,
    apply_discount,
    association_type,
)
from .catalog import Addon, Balance, Category, EntityId, Plan, Stage, StageRule
from .enums import AddonValueType, AssociationKind, RuleType
from .relation import Relation

__all__ = [
    "ASSOCIATION_TYPES",
    "Addon",
    "AddonValueType",
    "Association",
    "AssociationKind",
    "Balance",
    "Category",
    "EntityId",
    "OverrideValue",
    "Overrides",
    "Plan",
    "ReconcilableAssociation",
    "Relation",
    "RelationAddon",
    "RelationBalance",
    "RelationStage",
    "RuleType",
    "Stage",
    "StageParameter",
    "StageRule",
    "apply_discount",
    "association_type",
]
