from __future__ import annotations

import asyncio
import sqlite3
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy import create_engine

from propcatalog.adapters.sqlalchemy import (
    SqlAlchemyCatalogStore,
    StartupError,
    shutdown,
    startup,
)
from propcatalog.domain.errors import (
    AssociationNotFoundError,
    CatalogWriteError,
    DuplicateAssociationError,
    StagePhaseConflictError,
)
from propcatalog.domain.model import (
    Addon,
    AddonValueType,
    AssociationKind,
    Balance,
    Category,
    Plan,
    RelationAddon,
    RelationBalance,
    RuleType,
    Stage,
    StageParameter,
    StageRule,
)
from propcatalog.domain.ports import RelationFilter
from propcatalog.domain.reconciliation import AssociationReconciler, Phase

if TYPE_CHECKING:
    from collections.abc import Coroutine, Iterator
    from pathlib import Path

pytestmark = pytest.mark.integration


@pytest.fixture
def store(sqlite_store: SqlAlchemyCatalogStore) -> SqlAlchemyCatalogStore:
    sqlite_store.add_all(
        [
            Plan(plan_id="p1", name="Pro", external_product_id=900),
            Category(category_id="c1", name="Forex"),
            Balance(balance_id="b1", name="10K", amount=10_000),
            Balance(balance_id="b2", name="25K", amount=25_000),
            Stage(stage_id="s1", name="Evaluation"),
            Stage(stage_id="s2", name="Funded"),
            StageRule(rule_id="r1", rule_type=RuleType.PERCENTAGE, slug="max-loss"),
            Addon(addon_id="a1", name="Weekend holding", value_type=AddonValueType.BOOLEAN),
        ]
    )
    return sqlite_store


def _run[T](coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def test_catalog_entities_round_trip(store: SqlAlchemyCatalogStore) -> None:
    plans = _run(store.list_plans())
    rules = _run(store.list_stage_rules())
    addons = _run(store.list_addons())

    assert plans == [Plan(plan_id="p1", name="Pro", external_product_id=900)]
    assert rules[0].rule_type is RuleType.PERCENTAGE
    assert addons[0].value_type is AddonValueType.BOOLEAN
    assert [b.balance_id for b in _run(store.list_balances())] == ["b1", "b2"]


def test_store_requires_startup() -> None:
    shutdown()

    with pytest.raises(StartupError):
        SqlAlchemyCatalogStore()


def test_one_relation_per_plan_and_category(store: SqlAlchemyCatalogStore) -> None:
    uncategorised = _run(store.create_relation(plan_id="p1"))
    categorised = _run(store.create_relation(plan_id="p1", category_id="c1"))

    assert uncategorised.category_id is None
    assert categorised.category_id == "c1"
    with pytest.raises(CatalogWriteError):
        _run(store.create_relation(plan_id="p1"))
    with pytest.raises(CatalogWriteError):
        _run(store.create_relation(plan_id="p1", category_id="c1"))


def test_update_relation_clears_category(store: SqlAlchemyCatalogStore) -> None:
    relation = _run(store.create_relation(plan_id="p1", category_id="c1"))

    updated = _run(
        store.update_relation(relation.relation_id, group_name="Main", clear_category=True)
    )

    assert updated.category_id is None
    assert updated.group_name == "Main"


def test_update_missing_relation_fails(store: SqlAlchemyCatalogStore) -> None:
    with pytest.raises(CatalogWriteError):
        _run(store.update_relation("nope", group_name="Main"))


def test_association_lifecycle(store: SqlAlchemyCatalogStore) -> None:
    relation = _run(store.create_relation(plan_id="p1", category_id="c1"))
    row = RelationBalance(relation_id=relation.relation_id, balance_id="b1", price=100.0)

    _run(store.create_association(row))
    updated = _run(
        store.update_association(
            AssociationKind.BALANCE,
            relation.relation_id,
            "b1",
            {"has_discount": True, "discount_percent": 10.0},
        )
    )

    assert updated == RelationBalance(
        relation_id=relation.relation_id,
        balance_id="b1",
        price=100.0,
        has_discount=True,
        discount_percent=10.0,
    )
    assert _run(store.list_associations(relation.relation_id, AssociationKind.BALANCE)) == [
        updated
    ]

    _run(store.delete_association(AssociationKind.BALANCE, relation.relation_id, "b1"))
    assert _run(store.list_associations(relation.relation_id, AssociationKind.BALANCE)) == []


def test_duplicate_composite_key_is_typed(store: SqlAlchemyCatalogStore) -> None:
    relation = _run(store.create_relation(plan_id="p1"))
    row = RelationAddon(relation_id=relation.relation_id, addon_id="a1", value=True)
    _run(store.create_association(row))

    with pytest.raises(DuplicateAssociationError) as exc:
        _run(store.create_association(row))

    assert exc.value.kind is AssociationKind.ADDON
    assert exc.value.child_id == "a1"


def test_unknown_child_is_a_write_error(store: SqlAlchemyCatalogStore) -> None:
    relation = _run(store.create_relation(plan_id="p1"))
    row = RelationBalance(relation_id=relation.relation_id, balance_id="missing", price=1.0)

    with pytest.raises(CatalogWriteError):
        _run(store.create_association(row))


def test_missing_rows_are_not_found(store: SqlAlchemyCatalogStore) -> None:
    relation = _run(store.create_relation(plan_id="p1"))

    with pytest.raises(AssociationNotFoundError):
        _run(
            store.update_association(
                AssociationKind.BALANCE, relation.relation_id, "b1", {"price": 5.0}
            )
        )
    with pytest.raises(AssociationNotFoundError):
        _run(store.delete_association(AssociationKind.BALANCE, relation.relation_id, "b1"))


def test_update_rejects_unknown_fields(store: SqlAlchemyCatalogStore) -> None:
    with pytest.raises(ValueError, match="amount"):
        _run(store.update_association(AssociationKind.BALANCE, "r", "b1", {"amount": 5.0}))


def test_complete_relations_embed_rows(store: SqlAlchemyCatalogStore) -> None:
    relation = _run(store.create_relation(plan_id="p1", category_id="c1"))
    _run(
        store.create_association(
            RelationBalance(relation_id=relation.relation_id, balance_id="b2", price=250.0)
        )
    )
    _run(
        store.create_association(
            RelationAddon(relation_id=relation.relation_id, addon_id="a1", value=False)
        )
    )

    (plain,) = _run(store.list_relations())
    (complete,) = _run(store.list_relations(RelationFilter(complete=True, plan_id="p1")))

    assert plain.balances == ()
    assert [b.balance_id for b in complete.balances] == ["b2"]
    assert complete.addons[0].value is False


def test_stage_phases_are_unique_per_relation(store: SqlAlchemyCatalogStore) -> None:
    relation = _run(store.create_relation(plan_id="p1"))
    _run(store.create_relation_stage(relation_id=relation.relation_id, stage_id="s1", num_phase=1))

    with pytest.raises(StagePhaseConflictError):
        _run(
            store.create_relation_stage(
                relation_id=relation.relation_id, stage_id="s2", num_phase=1
            )
        )
    with pytest.raises(CatalogWriteError):
        _run(
            store.create_relation_stage(
                relation_id=relation.relation_id, stage_id="s1", num_phase=2
            )
        )
    stages = _run(store.list_relation_stages(relation.relation_id))
    assert [(s.stage_id, s.num_phase) for s in stages] == [("s1", 1)]


def test_parameters_keep_value_types(store: SqlAlchemyCatalogStore) -> None:
    relation = _run(store.create_relation(plan_id="p1"))
    relation_stage = _run(
        store.create_relation_stage(relation_id=relation.relation_id, stage_id="s1", num_phase=1)
    )
    parameter = StageParameter(
        relation_stage_id=relation_stage.relation_stage_id, rule_id="r1", value=5.5
    )

    _run(store.create_association(parameter))

    stored = _run(
        store.list_associations(relation_stage.relation_stage_id, AssociationKind.PARAMETER)
    )
    assert stored == [parameter]


def test_reconciler_against_sql_store(store: SqlAlchemyCatalogStore) -> None:
    relation = _run(store.create_relation(plan_id="p1", category_id="c1"))
    relation_id = relation.relation_id
    _run(
        store.create_association(
            RelationBalance(relation_id=relation_id, balance_id="b1", price=100.0)
        )
    )
    desired = [
        RelationBalance(
            relation_id=relation_id, balance_id="b2", price=200.0, discount_percent=5.0
        )
    ]

    result = AssociationReconciler(client=store)(AssociationKind.BALANCE, relation_id, desired)

    assert result.ok
    assert result.deleted == ("b1",)
    assert result.created == ("b2",)
    assert list(result.snapshot) == desired

    again = AssociationReconciler(client=store)(AssociationKind.BALANCE, relation_id, desired)

    assert again.is_noop
    assert again.ok
    assert again.succeeded == ()
    assert list(again.snapshot) == desired


def test_relation_filter_selects_uncategorised(store: SqlAlchemyCatalogStore) -> None:
    uncategorised = _run(store.create_relation(plan_id="p1"))
    _run(store.create_relation(plan_id="p1", category_id="c1"))

    relations = _run(store.list_relations(RelationFilter(plan_id="p1", uncategorised=True)))

    assert [r.relation_id for r in relations] == [uncategorised.relation_id]


@pytest.fixture
def file_store(tmp_path: Path) -> Iterator[tuple[SqlAlchemyCatalogStore, Path]]:
    path = tmp_path / "catalog.db"
    # fail fast instead of waiting for the lock to clear
    engine = create_engine(
        f"sqlite+pysqlite:///{path}", connect_args={"timeout": 0}, future=True
    )
    startup(engine=engine, force=True)
    try:
        store = SqlAlchemyCatalogStore()
        store.add_all(
            [
                Plan(plan_id="p1", name="Pro", external_product_id=900),
                Balance(balance_id="b1", name="10K", amount=10_000),
                Balance(balance_id="b2", name="25K", amount=25_000),
            ]
        )
        yield store, path
    finally:
        shutdown()


def test_locked_database_becomes_write_failures(
    file_store: tuple[SqlAlchemyCatalogStore, Path],
) -> None:
    store, path = file_store
    relation_id = _run(store.create_relation(plan_id="p1")).relation_id
    existing = RelationBalance(relation_id=relation_id, balance_id="b1", price=100.0)
    _run(store.create_association(existing))
    desired = [RelationBalance(relation_id=relation_id, balance_id="b2", price=200.0)]

    locker = sqlite3.connect(path, isolation_level=None)
    try:
        locker.execute("BEGIN IMMEDIATE")
        result = AssociationReconciler(client=store)(
            AssociationKind.BALANCE, relation_id, desired
        )
    finally:
        locker.execute("ROLLBACK")
        locker.close()

    assert not result.ok
    assert {(f.phase, f.child_id) for f in result.failed} == {
        (Phase.DELETE, "b1"),
        (Phase.CREATE, "b2"),
    }
    assert all(isinstance(f.cause, CatalogWriteError) for f in result.failed)
    assert list(result.snapshot) == [existing]


def test_locked_database_write_is_typed(
    file_store: tuple[SqlAlchemyCatalogStore, Path],
) -> None:
    store, path = file_store

    locker = sqlite3.connect(path, isolation_level=None)
    try:
        locker.execute("BEGIN IMMEDIATE")
        with pytest.raises(CatalogWriteError, match="database is locked"):
            _run(store.create_relation(plan_id="p1"))
    finally:
        locker.execute("ROLLBACK")
        locker.close()


def test_fanned_out_creates_land_in_one_database(store: SqlAlchemyCatalogStore) -> None:
    relation_id = _run(store.create_relation(plan_id="p1")).relation_id
    rows = [
        RelationBalance(relation_id=relation_id, balance_id="b1", price=100.0),
        RelationBalance(relation_id=relation_id, balance_id="b2", price=200.0),
    ]

    async def create_all() -> None:
        await asyncio.gather(*(store.create_association(row) for row in rows))

    _run(create_all())

    assert _run(store.list_associations(relation_id, AssociationKind.BALANCE)) == rows
