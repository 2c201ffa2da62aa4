from __future__ import annotations

import pytest

from propcatalog.domain.cache import CatalogSnapshot
from propcatalog.domain.model import Balance, Category, Plan, Relation, RelationBalance
from propcatalog.domain.selection import (
    IncompleteSelection,
    NoMatchingRelation,
    NoMatchingVariation,
    ResolutionStatus,
    ResolvedVariation,
    Selection,
    available_variations,
    find_relation,
    resolve_selection,
)


def _snapshot(*relations: Relation) -> CatalogSnapshot:
    return CatalogSnapshot(
        plans=(Plan(plan_id="p1", name="Pro"), Plan(plan_id="p2", name="Lite")),
        categories=(Category(category_id="c1", name="Forex"),),
        balances=(
            Balance(balance_id="b1", name="10K", amount=10_000),
            Balance(
                balance_id="b2",
                name="25K",
                amount=25_000,
                has_discount=True,
                discount_percent=50,
            ),
        ),
        relations=relations,
    )


@pytest.fixture
def relation() -> Relation:
    return Relation(
        relation_id="r1",
        plan_id="p1",
        category_id="c1",
        balances=(
            RelationBalance(
                relation_id="r1", balance_id="b1", price=100.0, external_variation_id=11
            ),
            RelationBalance(
                relation_id="r1",
                balance_id="b2",
                price=200.0,
                has_discount=True,
                discount_percent=10.0,
                external_variation_id=22,
            ),
        ),
    )


def test_resolves_relation_price_and_external_id(relation: Relation) -> None:
    snapshot = _snapshot(relation)
    selection = Selection(plan_id="p1", category_id="c1", balance_id="b2")

    resolution = resolve_selection(snapshot, selection)

    assert isinstance(resolution, ResolvedVariation)
    assert resolution.ok
    assert resolution.relation_id == "r1"
    assert resolution.price == 200.0
    assert resolution.effective_price == 180.0
    assert resolution.external_variation_id == 22
    assert resolution.name == "Pro - Forex - 25K"


def test_template_discount_does_not_stack(relation: Relation) -> None:
    # b2 carries a 50% template discount; only the relation's 10% applies.
    resolution = resolve_selection(
        _snapshot(relation), Selection(plan_id="p1", category_id="c1", balance_id="b2")
    )

    assert isinstance(resolution, ResolvedVariation)
    assert resolution.effective_price == 180.0
    assert resolution.discount_percent == 10.0


def test_resolution_is_deterministic(relation: Relation) -> None:
    snapshot = _snapshot(relation)
    selection = Selection(plan_id="p1", category_id="c1", balance_id="b1")

    assert resolve_selection(snapshot, selection) == resolve_selection(snapshot, selection)


def test_balance_not_offered_by_relation_is_no_matching_variation(relation: Relation) -> None:
    snapshot = _snapshot(relation)

    resolution = resolve_selection(
        snapshot, Selection(plan_id="p1", category_id="c1", balance_id="b9")
    )

    assert resolution == NoMatchingVariation(relation_id="r1", balance_id="b9")
    assert resolution.status is ResolutionStatus.NO_MATCHING_VARIATION
    assert not resolution.ok


def test_missing_relation_is_no_matching_relation(relation: Relation) -> None:
    resolution = resolve_selection(
        _snapshot(relation), Selection(plan_id="p2", category_id="c1", balance_id="b1")
    )

    assert isinstance(resolution, NoMatchingRelation)
    assert resolution.reason == "no_relation"
    assert resolution.plan_id == "p2"


def test_absent_category_is_its_own_key(relation: Relation) -> None:
    uncategorised = Relation(
        relation_id="r2",
        plan_id="p1",
        balances=(RelationBalance(relation_id="r2", balance_id="b1", price=80.0),),
    )
    snapshot = _snapshot(relation, uncategorised)

    resolution = resolve_selection(snapshot, Selection(plan_id="p1", balance_id="b1"))

    assert isinstance(resolution, ResolvedVariation)
    assert resolution.relation_id == "r2"
    assert resolution.price == 80.0
    assert resolution.name == "Pro - 10K"


def test_duplicate_relations_are_reported_as_ambiguous() -> None:
    first = Relation(relation_id="r1", plan_id="p1", category_id="c1")
    second = Relation(relation_id="r2", plan_id="p1", category_id="c1")

    found = find_relation(_snapshot(first, second), "p1", "c1")

    assert isinstance(found, NoMatchingRelation)
    assert found.reason == "ambiguous_relation"
    assert found.candidates == ("r1", "r2")


def test_incomplete_selection_lists_missing_picks() -> None:
    resolution = resolve_selection(_snapshot(), Selection(category_id="c1"))

    assert resolution == IncompleteSelection(missing=("plan", "balance"))


def test_available_variations_skip_dangling_balances(relation: Relation) -> None:
    dangling = Relation(
        relation_id="r1",
        plan_id="p1",
        category_id="c1",
        balances=(
            *relation.balances,
            RelationBalance(relation_id="r1", balance_id="gone", price=1.0),
        ),
    )

    variations = available_variations(_snapshot(dangling), dangling)

    assert [v.balance_id for v in variations] == ["b1", "b2"]
    assert variations[1].effective_price == 180.0


def test_changing_plan_or_category_clears_balance() -> None:
    selection = Selection(plan_id="p1", category_id="c1", balance_id="b1")

    assert selection.update(plan_id="p2").balance_id is None
    assert selection.update(category_id=None).balance_id is None
    assert selection.update(category_id=None).plan_id == "p1"


def test_setting_balance_keeps_upstream_picks() -> None:
    selection = Selection(plan_id="p1", category_id="c1")

    updated = selection.update(balance_id="b2")

    assert updated == Selection(plan_id="p1", category_id="c1", balance_id="b2")
    assert updated.is_complete


def test_same_plan_keeps_balance() -> None:
    selection = Selection(plan_id="p1", category_id="c1", balance_id="b1")

    assert selection.update(plan_id="p1").balance_id == "b1"


def test_explicit_balance_wins_over_reset() -> None:
    selection = Selection(plan_id="p1", balance_id="b1")

    assert selection.update(plan_id="p2", balance_id="b2").balance_id == "b2"


def test_clear_resets_everything() -> None:
    selection = Selection(plan_id="p1", category_id="c1", balance_id="b1")

    assert selection.clear() == Selection()
    assert not selection.clear().is_complete
