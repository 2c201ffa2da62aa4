"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class AssociationKind(StrEnum):
    """Discriminator for the child rows owned by a relation or relation stage."""

    BALANCE = "balance"
    ADDON = "addon"
    STAGE = "stage"
    PARAMETER = "parameter"


class RuleType(StrEnum):
    NUMBER = "number"
    PERCENTAGE = "percentage"
    BOOLEAN = "boolean"
    STRING = "string"


class AddonValueType(StrEnum):
    NUMBER = "number"
    BOOLEAN = "boolean"
    PERCENTAGE = "percentage"
