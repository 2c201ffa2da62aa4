"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
import json
from enum import StrEnum
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError

from propcatalog.adapters.catalog_api import HttpCatalogClient
from propcatalog.adapters.sqlalchemy import SqlAlchemyCatalogStore, is_started, startup
from propcatalog.domain.cache import EntityCache
from propcatalog.domain.model import association_type
from propcatalog.domain.reconciliation import AssociationReconciler
from propcatalog.domain.selection import resolve_selection
from propcatalog.domain.stages import plan_stage_phases

if TYPE_CHECKING:
    from collections.abc import Sequence

    from propcatalog.domain.model import (
        AssociationKind,
        EntityId,
        ReconcilableAssociation,
        RelationStage,
    )
    from propcatalog.domain.ports import CatalogClient
    from propcatalog.domain.reconciliation import ReconcileResult
    from propcatalog.domain.selection import Resolution, Selection


log = getLogger(__name__)


class Backend(StrEnum):
    API = "api"
    SQL = "sql"


def build_catalog_client(backend: Backend = Backend.API) -> CatalogClient:
    """Return the catalog client for ``backend`` configured from the environment."""

    if backend is Backend.SQL:
        if not is_started():
            startup()
        return SqlAlchemyCatalogStore()
    return HttpCatalogClient()


def resolve_checkout(
    selection: Selection,
    *,
    client: CatalogClient | None = None,
    cache: EntityCache | None = None,
) -> Resolution:
    """Reload the catalog and resolve ``selection`` to one priceable variation."""

    effective_client = client or build_catalog_client()
    effective_cache = cache if cache is not None else EntityCache()
    snapshot = asyncio.run(effective_cache.reload(effective_client))
    resolution = resolve_selection(snapshot, selection)
    log.info(f"Resolved {selection} to {resolution.status}")
    return resolution


def reconcile_associations(
    kind: AssociationKind,
    parent_id: EntityId,
    desired: Sequence[ReconcilableAssociation],
    *,
    client: CatalogClient | None = None,
    cache: EntityCache | None = None,
) -> ReconcileResult:
    """Converge the ``kind`` associations of ``parent_id`` to ``desired``."""

    effective_client = client or build_catalog_client()
    reconciler = AssociationReconciler(
        client=effective_client,
        cache=cache if cache is not None else EntityCache(),
    )
    result = reconciler(kind, parent_id, desired)
    log.info(
        f"Finished {kind} reconcile of {parent_id}: deleted={len(result.deleted)}, "
        f"created={len(result.created)}, updated={len(result.updated)}, "
        f"failed={len(result.failed)}"
    )
    return result


def attach_stages(
    relation_id: EntityId,
    stage_ids: Sequence[EntityId],
    *,
    client: CatalogClient | None = None,
) -> tuple[RelationStage, ...]:
    """Append ``stage_ids`` to a relation, numbering phases after the existing ones."""

    effective_client = client or build_catalog_client()
    return asyncio.run(_attach_stages(effective_client, relation_id, stage_ids))


async def _attach_stages(
    client: CatalogClient,
    relation_id: EntityId,
    stage_ids: Sequence[EntityId],
) -> tuple[RelationStage, ...]:
    existing = await client.list_relation_stages(relation_id)
    planned = plan_stage_phases(relation_id, existing, stage_ids)
    if not planned:
        log.info(f"Relation {relation_id} already has every requested stage")
        return ()

    created: list[RelationStage] = []
    # Sequential: each insert claims the next phase of the same relation.
    for stage in planned:
        created.append(
            await client.create_relation_stage(
                relation_id=stage.relation_id,
                stage_id=stage.stage_id,
                num_phase=stage.num_phase,
            )
        )
        log.info(f"Attached stage {stage.stage_id} to {relation_id} at phase {stage.num_phase}")
    return tuple(created)


def parse_desired_associations(
    kind: AssociationKind,
    parent_id: EntityId,
    items: Sequence[object],
) -> list[ReconcilableAssociation]:
    """Validate raw mappings into associations of ``kind`` owned by ``parent_id``.

    Entries may omit the parent field; it defaults to ``parent_id``. Raises
    ``ValueError`` on entries that do not describe a valid association.
    """

    association_cls = association_type(kind)
    adapter = TypeAdapter(association_cls)
    desired: list[ReconcilableAssociation] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValueError(f"Desired entry #{index} is not an object")
        data = {association_cls.PARENT_FIELD: parent_id, **item}
        try:
            desired.append(adapter.validate_python(data))
        except ValidationError as exc:
            raise ValueError(f"Desired entry #{index} is invalid: {exc}") from exc
    return desired


def load_desired_associations(
    kind: AssociationKind,
    parent_id: EntityId,
    path: Path | str,
) -> list[ReconcilableAssociation]:
    """Read a JSON array of desired associations from ``path``."""

    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise ValueError(f"{path} must contain a JSON array of associations")
    return parse_desired_associations(kind, parent_id, payload)
