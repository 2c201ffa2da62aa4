"""Translate Catalog API payloads to domain objects and back."""

from __future__ import annotations

from typing import TYPE_CHECKING

from propcatalog.domain.model import (
    Addon,
    AssociationKind,
    Balance,
    Category,
    Plan,
    Relation,
    RelationAddon,
    RelationBalance,
    RelationStage,
    Stage,
    StageParameter,
    StageRule,
)

from .schema import (
    AddonPayload,
    BalancePayload,
    CatalogBaseModel,
    CategoryPayload,
    PlanPayload,
    RelationAddonPayload,
    RelationBalancePayload,
    RelationPayload,
    RelationStagePayload,
    StageParameterPayload,
    StagePayload,
    StageRulePayload,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from propcatalog.domain.model import EntityId, Overrides, ReconcilableAssociation

ASSOCIATION_PAYLOADS: dict[AssociationKind, type[CatalogBaseModel]] = {
    AssociationKind.BALANCE: RelationBalancePayload,
    AssociationKind.ADDON: RelationAddonPayload,
    AssociationKind.PARAMETER: StageParameterPayload,
}


def parse_plan(payload: object) -> Plan:
    model = PlanPayload.model_validate(payload)
    return Plan(
        plan_id=model.plan_id,
        name=model.name,
        is_active=model.is_active,
        external_product_id=model.external_product_id,
    )


def parse_category(payload: object) -> Category:
    model = CategoryPayload.model_validate(payload)
    return Category(category_id=model.category_id, name=model.name)


def parse_balance(payload: object) -> Balance:
    model = BalancePayload.model_validate(payload)
    return Balance(
        balance_id=model.balance_id,
        name=model.name,
        amount=model.amount,
        is_active=model.is_active,
        has_discount=model.has_discount,
        discount_percent=model.discount_percent,
    )


def parse_stage(payload: object) -> Stage:
    model = StagePayload.model_validate(payload)
    return Stage(stage_id=model.stage_id, name=model.name, is_active=model.is_active)


def parse_stage_rule(payload: object) -> StageRule:
    model = StageRulePayload.model_validate(payload)
    return StageRule(
        rule_id=model.rule_id,
        rule_type=model.rule_type,
        slug=model.slug,
        name=model.name,
        description=model.description,
    )


def parse_addon(payload: object) -> Addon:
    model = AddonPayload.model_validate(payload)
    return Addon(
        addon_id=model.addon_id,
        name=model.name,
        value_type=model.value_type,
        slug_rule=model.slug_rule,
        is_active=model.is_active,
        has_discount=model.has_discount,
        discount_percent=model.discount_percent,
    )


def _relation_balance(model: RelationBalancePayload) -> RelationBalance:
    return RelationBalance(
        relation_id=model.relation_id,
        balance_id=model.balance_id,
        price=model.price,
        is_active=model.is_active,
        has_discount=model.has_discount,
        discount_percent=model.discount_percent,
        external_variation_id=model.external_variation_id,
    )


def _relation_addon(model: RelationAddonPayload) -> RelationAddon:
    return RelationAddon(
        relation_id=model.relation_id,
        addon_id=model.addon_id,
        value=model.value,
        is_active=model.is_active,
        has_discount=model.has_discount,
        discount_percent=model.discount_percent,
        external_variation_id=model.external_variation_id,
    )


def parse_relation(payload: object) -> Relation:
    model = RelationPayload.model_validate(payload)
    return Relation(
        relation_id=model.relation_id,
        plan_id=model.plan_id,
        category_id=model.category_id,
        group_name=model.group_name,
        balances=tuple(_relation_balance(b) for b in model.balances),
        addons=tuple(_relation_addon(a) for a in model.addons),
    )


def parse_relation_stage(payload: object) -> RelationStage:
    model = RelationStagePayload.model_validate(payload)
    return RelationStage(
        relation_stage_id=model.relation_stage_id,
        relation_id=model.relation_id,
        stage_id=model.stage_id,
        num_phase=model.num_phase,
    )


def parse_association(kind: AssociationKind, payload: object) -> ReconcilableAssociation:
    if kind is AssociationKind.BALANCE:
        return _relation_balance(RelationBalancePayload.model_validate(payload))
    if kind is AssociationKind.ADDON:
        return _relation_addon(RelationAddonPayload.model_validate(payload))
    if kind is AssociationKind.PARAMETER:
        model = StageParameterPayload.model_validate(payload)
        return StageParameter(
            relation_stage_id=model.relation_stage_id,
            rule_id=model.rule_id,
            value=model.value,
            is_active=model.is_active,
        )
    raise ValueError(f"Association kind {kind!s} is not reconcilable")


def _wire_name(kind: AssociationKind, field_name: str) -> str:
    payload_type = ASSOCIATION_PAYLOADS[kind]
    info = payload_type.model_fields.get(field_name)
    if info is None:
        raise KeyError(f"Unknown {kind} field: {field_name}")
    return info.alias or field_name


def association_to_wire(association: ReconcilableAssociation) -> dict[str, object]:
    """Full create payload; ``None`` overrides are sent as JSON null."""

    body: dict[str, object] = {
        _wire_name(association.kind, association.PARENT_FIELD): association.parent_id,
        _wire_name(association.kind, association.CHILD_FIELD): association.child_id,
    }
    body.update(changes_to_wire(association.kind, association.overrides()))
    return body


def changes_to_wire(kind: AssociationKind, changes: Overrides) -> dict[str, object]:
    return {_wire_name(kind, name): value for name, value in changes.items()}


def balance_batch_to_wire(
    relation_id: EntityId,
    balances: Sequence[RelationBalance],
) -> dict[str, object]:
    """Body of the relation-balances batch create.

    The batch route names its keys after the challenge entities and carries
    the parent once, outside the rows.
    """

    return {
        "challengeRelationID": relation_id,
        "relationBalances": [
            {
                "challengeBalanceID": balance.balance_id,
                **changes_to_wire(AssociationKind.BALANCE, balance.overrides()),
            }
            for balance in balances
        ],
    }


def relation_to_wire(
    *,
    plan_id: str | None = None,
    category_id: str | None = None,
    group_name: str | None = None,
) -> Mapping[str, object]:
    body: dict[str, object] = {}
    if plan_id is not None:
        body["planID"] = plan_id
    if category_id is not None:
        body["categoryID"] = category_id
    if group_name is not None:
        body["groupName"] = group_name
    return body
