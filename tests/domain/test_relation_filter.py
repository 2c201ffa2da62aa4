from __future__ import annotations

import pytest

from propcatalog.domain.model import Relation
from propcatalog.domain.ports import RelationFilter

RELATIONS = [
    Relation(relation_id="r1", plan_id="p1", category_id="c1"),
    Relation(relation_id="r2", plan_id="p1"),
    Relation(relation_id="r3", plan_id="p2"),
]


def _ids(relation_filter: RelationFilter) -> list[str]:
    return [r.relation_id for r in RELATIONS if relation_filter.matches(r)]


def test_empty_filter_matches_everything() -> None:
    assert _ids(RelationFilter()) == ["r1", "r2", "r3"]


def test_category_none_means_any_category() -> None:
    assert _ids(RelationFilter(plan_id="p1")) == ["r1", "r2"]


def test_uncategorised_selects_null_category() -> None:
    assert _ids(RelationFilter(uncategorised=True)) == ["r2", "r3"]
    assert _ids(RelationFilter(plan_id="p1", uncategorised=True)) == ["r2"]


def test_uncategorised_excludes_a_category() -> None:
    with pytest.raises(ValueError, match="mutually exclusive"):
        RelationFilter(category_id="c1", uncategorised=True)
