from __future__ import annotations

import asyncio

from propcatalog.domain.cache import CatalogSnapshot, EntityCache
from propcatalog.domain.model import AssociationKind
from tests.support.catalog import balance_row, make_catalog

BALANCE = AssociationKind.BALANCE


def test_reload_fetches_complete_relations() -> None:
    client = make_catalog()
    client.seed(balance_row("b1", 100))
    cache = EntityCache()

    snapshot = asyncio.run(cache.reload(client))

    assert [plan.plan_id for plan in snapshot.plans] == ["p1"]
    relation = snapshot.relation("rel-1")
    assert relation is not None
    assert relation.balances == (balance_row("b1", 100),)
    assert snapshot.balance("b2") is not None
    assert snapshot.category(None) is None


def test_reload_drops_association_snapshots() -> None:
    client = make_catalog()
    cache = EntityCache()
    cache.store_associations(BALANCE, "rel-1", [balance_row("b1", 100)])

    asyncio.run(cache.reload(client))

    assert cache.associations(BALANCE, "rel-1") is None


def test_store_replaces_embedded_relation_rows() -> None:
    client = make_catalog()
    client.seed(balance_row("b1", 100))
    cache = EntityCache()
    asyncio.run(cache.reload(client))

    cache.store_associations(BALANCE, "rel-1", [balance_row("b2", 250)])

    relation = cache.snapshot.relation("rel-1")
    assert relation is not None
    assert relation.balances == (balance_row("b2", 250),)


def test_refresh_reads_the_store() -> None:
    client = make_catalog()
    client.seed(balance_row("b1", 100))
    cache = EntityCache()

    rows = asyncio.run(cache.refresh_associations(client, BALANCE, "rel-1"))

    assert rows == (balance_row("b1", 100),)
    assert cache.associations(BALANCE, "rel-1") == rows
    assert client.list_calls == 1


def test_snapshots_are_keyed_by_kind_and_parent() -> None:
    cache = EntityCache()
    cache.store_associations(BALANCE, "rel-1", [balance_row("b1", 100)])

    cache.invalidate(BALANCE, "rel-2")
    cache.invalidate(AssociationKind.ADDON, "rel-1")

    assert cache.associations(BALANCE, "rel-1") == (balance_row("b1", 100),)
    cache.invalidate(BALANCE, "rel-1")
    assert cache.associations(BALANCE, "rel-1") is None


def test_empty_snapshot_lookups() -> None:
    snapshot = CatalogSnapshot()

    assert snapshot.plan("p1") is None
    assert snapshot.relation("rel-1") is None
