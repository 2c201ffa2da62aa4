"""HTTP client for the Catalog API.

Translates HTTP outcomes into the typed errors of the catalog port: a create
rejected because the composite key exists becomes
:class:`DuplicateAssociationError`, an update/delete answered with 404 becomes
:class:`AssociationNotFoundError`. Nothing above this module inspects status
codes or error message text.

Relation balances are created through the batch route
``POST /challenge-templates/relation-balances/create``, one row per call.
The API exposes no per-row balance routes to list, patch or delete, so those
are assumed to mirror the relation-addon routes under the challenge-templates
prefix; :data:`ASSOCIATION_ROUTES` is the one place to correct them.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from propcatalog.adapters.http_resilience import ResilientClient, build_limiter
from propcatalog.config.catalog import CatalogApiConfig, get_catalog_api_config
from propcatalog.domain.errors import (
    AssociationNotFoundError,
    CatalogResponseError,
    CatalogWriteError,
    DuplicateAssociationError,
    StagePhaseConflictError,
)
from propcatalog.domain.model import AssociationKind, RelationBalance

from .schema import ErrorPayload, unwrap_item, unwrap_list
from .translator import (
    association_to_wire,
    balance_batch_to_wire,
    changes_to_wire,
    parse_addon,
    parse_association,
    parse_balance,
    parse_category,
    parse_plan,
    parse_relation,
    parse_relation_stage,
    parse_stage,
    parse_stage_rule,
    relation_to_wire,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from aiolimiter import AsyncLimiter

    from propcatalog.config.http_resilience import ResilienceConfig
    from propcatalog.domain.model import (
        Addon,
        Balance,
        Category,
        EntityId,
        Overrides,
        Plan,
        ReconcilableAssociation,
        Relation,
        RelationStage,
        Stage,
        StageRule,
    )
    from propcatalog.domain.ports import RelationFilter

log = getLogger(__name__)

_TEMPLATES = "/challenge-templates"
_DUPLICATE_MARKERS = ("already exists", "already exist", "duplicate", "ya existe")


@dataclass(slots=True, frozen=True)
class AssociationRoute:
    collection: str
    by_parent: str
    item: str
    create: str | None = None

    @property
    def create_path(self) -> str:
        return self.create or self.collection

    def item_path(self, parent_id: EntityId, child_id: EntityId) -> str:
        # The API addresses composite keys as /{child}/{parent}.
        return self.item.format(child_id=child_id, parent_id=parent_id)


ASSOCIATION_ROUTES: dict[AssociationKind, AssociationRoute] = {
    AssociationKind.BALANCE: AssociationRoute(
        collection=f"{_TEMPLATES}/relation-balances",
        by_parent=f"{_TEMPLATES}/relation-balances/relation/{{parent_id}}",
        item=f"{_TEMPLATES}/relation-balances/{{child_id}}/{{parent_id}}",
        create=f"{_TEMPLATES}/relation-balances/create",
    ),
    AssociationKind.ADDON: AssociationRoute(
        collection="/relation-addons",
        by_parent="/relation-addons/relation/{parent_id}",
        item="/relation-addons/{child_id}/{parent_id}",
    ),
    AssociationKind.PARAMETER: AssociationRoute(
        collection=f"{_TEMPLATES}/parameters",
        by_parent=f"{_TEMPLATES}/parameters/by-relation-stage/{{parent_id}}",
        item=f"{_TEMPLATES}/parameters/{{child_id}}/{{parent_id}}",
    ),
}


def _route(kind: AssociationKind) -> AssociationRoute:
    try:
        return ASSOCIATION_ROUTES[kind]
    except KeyError:
        raise ValueError(f"Association kind {kind!s} is not reconcilable") from None


type ClientFactory = Callable[[ResilienceConfig, AsyncLimiter | None], ResilientClient]


def _default_client_factory(
    config: ResilienceConfig,
    limiter: AsyncLimiter | None,
) -> ResilientClient:
    return ResilientClient(config, limiter=limiter)


def _create_body(association: ReconcilableAssociation) -> dict[str, object]:
    if isinstance(association, RelationBalance):
        return balance_batch_to_wire(association.relation_id, [association])
    return association_to_wire(association)


def _error_text(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict):
        try:
            return ErrorPayload.model_validate(payload).text
        except ValidationError:
            return response.text
    return response.text


def is_duplicate_response(response: httpx.Response) -> bool:
    if response.status_code == httpx.codes.CONFLICT:
        return True
    if response.status_code not in (httpx.codes.BAD_REQUEST, httpx.codes.UNPROCESSABLE_ENTITY):
        return False
    text = _error_text(response).lower()
    return any(marker in text for marker in _DUPLICATE_MARKERS)


class HttpCatalogClient:
    """Catalog client speaking the challenge-templates REST API.

    Every call opens a short-lived session, but all sessions draw from the one
    rate limiter owned by this client, so concurrent fan-out writes share the
    configured budget.
    """

    def __init__(
        self,
        *,
        config: CatalogApiConfig | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._config = config or get_catalog_api_config()
        self._resilience = self._config.resilience
        self._client_factory = client_factory or _default_client_factory
        self._limiter = build_limiter(self._resilience.ratelimit)

    # reads

    async def list_plans(self) -> list[Plan]:
        return await self._get_parsed(f"{_TEMPLATES}/plans", parse_plan)

    async def list_categories(self) -> list[Category]:
        return await self._get_parsed(f"{_TEMPLATES}/categories", parse_category)

    async def list_balances(self) -> list[Balance]:
        return await self._get_parsed(f"{_TEMPLATES}/balances", parse_balance)

    async def list_stages(self) -> list[Stage]:
        return await self._get_parsed(f"{_TEMPLATES}/stages", parse_stage)

    async def list_stage_rules(self) -> list[StageRule]:
        return await self._get_parsed(f"{_TEMPLATES}/rules", parse_stage_rule)

    async def list_addons(self) -> list[Addon]:
        return await self._get_parsed("/addons", parse_addon)

    async def list_relations(
        self,
        relation_filter: RelationFilter | None = None,
    ) -> list[Relation]:
        complete = relation_filter is not None and relation_filter.complete
        path = f"{_TEMPLATES}/relations-complete" if complete else f"{_TEMPLATES}/relations"
        relations = await self._get_parsed(path, parse_relation)
        if relation_filter is None:
            return relations
        # The API has no server-side filter; narrow here.
        return [r for r in relations if relation_filter.matches(r)]

    async def list_associations(
        self,
        parent_id: EntityId,
        kind: AssociationKind,
    ) -> list[ReconcilableAssociation]:
        route = _route(kind)
        path = route.by_parent.format(parent_id=parent_id)
        return await self._get_parsed(path, lambda item: parse_association(kind, item))

    async def list_relation_stages(self, relation_id: EntityId) -> list[RelationStage]:
        path = f"{_TEMPLATES}/relation-stages/relation/{relation_id}"
        return await self._get_parsed(path, parse_relation_stage)

    # association writes

    async def create_association(
        self,
        association: ReconcilableAssociation,
    ) -> ReconcilableAssociation:
        route = _route(association.kind)
        body = _create_body(association)
        async with self._session() as client:
            response = await self._send(client, "POST", route.create_path, json=body)
        if is_duplicate_response(response):
            raise DuplicateAssociationError(
                f"{association.kind} {association.child_id} already exists on "
                f"{association.parent_id}",
                kind=association.kind,
                parent_id=association.parent_id,
                child_id=association.child_id,
            )
        self._raise_for_write(response, f"create {association.kind} {association.child_id}")
        return self._parse_written(association.kind, response) or association

    async def update_association(
        self,
        kind: AssociationKind,
        parent_id: EntityId,
        child_id: EntityId,
        changes: Overrides,
    ) -> ReconcilableAssociation | None:
        path = _route(kind).item_path(parent_id, child_id)
        async with self._session() as client:
            response = await self._send(
                client, "PATCH", path, json=changes_to_wire(kind, changes)
            )
        if response.status_code == httpx.codes.NOT_FOUND:
            raise AssociationNotFoundError(
                f"{kind} {child_id} not found on {parent_id}",
                kind=kind,
                parent_id=parent_id,
                child_id=child_id,
            )
        self._raise_for_write(response, f"update {kind} {child_id}")
        return self._parse_written(kind, response)

    async def delete_association(
        self,
        kind: AssociationKind,
        parent_id: EntityId,
        child_id: EntityId,
    ) -> None:
        path = _route(kind).item_path(parent_id, child_id)
        async with self._session() as client:
            response = await self._send(client, "DELETE", path)
        if response.status_code == httpx.codes.NOT_FOUND:
            raise AssociationNotFoundError(
                f"{kind} {child_id} not found on {parent_id}",
                kind=kind,
                parent_id=parent_id,
                child_id=child_id,
            )
        # 204 or an empty 2xx body both mean the row is gone.
        self._raise_for_write(response, f"delete {kind} {child_id}")

    # relation writes

    async def create_relation(
        self,
        *,
        plan_id: EntityId,
        category_id: EntityId | None = None,
        group_name: str | None = None,
    ) -> Relation:
        body = relation_to_wire(plan_id=plan_id, category_id=category_id, group_name=group_name)
        async with self._session() as client:
            response = await self._send(client, "POST", f"{_TEMPLATES}/relations", json=body)
        self._raise_for_write(response, f"create relation for plan {plan_id}")
        return self._parse_relation(response)

    async def update_relation(
        self,
        relation_id: EntityId,
        *,
        plan_id: EntityId | None = None,
        category_id: EntityId | None = None,
        group_name: str | None = None,
        clear_category: bool = False,
    ) -> Relation:
        body = dict(
            relation_to_wire(plan_id=plan_id, category_id=category_id, group_name=group_name)
        )
        if clear_category:
            body["categoryID"] = None
        async with self._session() as client:
            response = await self._send(
                client, "PATCH", f"{_TEMPLATES}/relations/{relation_id}", json=body
            )
        self._raise_for_write(response, f"update relation {relation_id}")
        return self._parse_relation(response)

    async def create_relation_stage(
        self,
        *,
        relation_id: EntityId,
        stage_id: EntityId,
        num_phase: int,
    ) -> RelationStage:
        body = {"relationID": relation_id, "stageID": stage_id, "numPhase": num_phase}
        async with self._session() as client:
            response = await self._send(
                client, "POST", f"{_TEMPLATES}/relation-stages", json=body
            )
        if is_duplicate_response(response) and await self._phase_taken(relation_id, num_phase):
            raise StagePhaseConflictError(relation_id, num_phase)
        # Any other refusal, including the stage already sitting on another phase.
        self._raise_for_write(response, f"attach stage {stage_id} to {relation_id}")
        return self._parse_relation_stage(response)

    # plumbing

    def _session(self) -> ResilientClient:
        return self._client_factory(self._resilience, self._limiter)

    async def _get_list(self, path: str) -> list[object]:
        async with self._session() as client:
            try:
                response = await client.get(path)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                log.error(f"Catalog API GET {path} failed with {exc.response.status_code}")
                raise CatalogResponseError(
                    f"GET {path} failed with status {exc.response.status_code}"
                ) from exc
            except httpx.HTTPError as exc:
                log.error(f"Catalog API GET {path} failed: {exc}")
                raise CatalogResponseError(f"GET {path} failed: {exc}") from exc
        try:
            return list(unwrap_list(response.json()))
        except ValueError as exc:
            raise CatalogResponseError(f"Unexpected payload from GET {path}") from exc

    async def _get_parsed[T](self, path: str, parse: Callable[[object], T]) -> list[T]:
        items = await self._get_list(path)
        try:
            return [parse(item) for item in items]
        except ValidationError as exc:
            log.error(f"Catalog API GET {path} returned an invalid item: {exc}")
            raise CatalogResponseError(f"Invalid item in GET {path} response") from exc

    async def _send(
        self,
        client: ResilientClient,
        method: str,
        path: str,
        *,
        json: object | None = None,
    ) -> httpx.Response:
        try:
            return await client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            log.error(f"Catalog API {method} {path} failed: {exc}")
            raise CatalogWriteError(f"{method} {path} failed: {exc}") from exc

    async def _phase_taken(self, relation_id: EntityId, num_phase: int) -> bool:
        stages = await self.list_relation_stages(relation_id)
        return any(stage.num_phase == num_phase for stage in stages)

    def _raise_for_write(self, response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        detail = _error_text(response)
        log.error(f"Catalog API refused to {action}: {response.status_code} {detail}")
        raise CatalogWriteError(
            f"Could not {action}: {response.status_code} {detail}".strip(),
            status_code=response.status_code,
        )

    def _json_item(self, response: httpx.Response) -> object:
        try:
            return unwrap_item(response.json())
        except ValueError as exc:
            raise CatalogResponseError("Unexpected Catalog API write response") from exc

    def _parse_written(
        self,
        kind: AssociationKind,
        response: httpx.Response,
    ) -> ReconcilableAssociation | None:
        # Some endpoints acknowledge writes with an empty or partial body.
        if not response.content:
            return None
        try:
            return parse_association(kind, self._json_item(response))
        except (ValidationError, CatalogResponseError) as exc:
            log.debug(f"Ignoring unparseable {kind} write acknowledgement: {exc}")
            return None

    def _parse_relation(self, response: httpx.Response) -> Relation:
        try:
            return parse_relation(self._json_item(response))
        except ValidationError as exc:
            raise CatalogResponseError("Invalid relation in Catalog API response") from exc

    def _parse_relation_stage(self, response: httpx.Response) -> RelationStage:
        try:
            return parse_relation_stage(self._json_item(response))
        except ValidationError as exc:
            raise CatalogResponseError("Invalid relation stage in Catalog API response") from exc


if TYPE_CHECKING:
    from propcatalog.domain.ports import CatalogClient

    _client_check: CatalogClient = HttpCatalogClient()
