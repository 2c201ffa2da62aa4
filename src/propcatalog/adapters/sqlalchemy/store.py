"""In-process catalog store backed by SQLAlchemy Core.

Implements the same catalog client port as the HTTP adapter, so the core can
run against a local database. The database owns every uniqueness rule: the
composite keys of association rows, one relation per ``(plan, category)``
and one stage per phase of a relation. Constraint violations are translated
into the port's typed errors here; every other database failure becomes a
:class:`CatalogWriteError` (writes) or :class:`CatalogResponseError` (reads),
so one failed association never aborts a whole reconcile.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, fields
from logging import getLogger
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from propcatalog.config.storage import get_database_config
from propcatalog.domain.errors import (
    AssociationNotFoundError,
    CatalogResponseError,
    CatalogWriteError,
    DuplicateAssociationError,
    StagePhaseConflictError,
)
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
    StageRule,
    association_type,
)

from .tables import (
    addon_table,
    balance_table,
    category_table,
    create_all_tables,
    enable_sqlite_foreign_keys,
    plan_table,
    relation_addon_table,
    relation_balance_table,
    relation_stage_table,
    relation_table,
    stage_parameter_table,
    stage_rule_table,
    stage_table,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from sqlalchemy import Row, Table
    from sqlalchemy.engine import Connection, Engine

    from propcatalog.domain.model import EntityId, Overrides, ReconcilableAssociation
    from propcatalog.domain.ports import RelationFilter

log = getLogger(__name__)

type CatalogEntity = Plan | Category | Balance | Stage | StageRule | Addon

# entity type -> (table, name of the id field on the dataclass)
_ENTITY_TABLES: dict[type[Any], tuple[Table, str]] = {
    Plan: (plan_table, "plan_id"),
    Category: (category_table, "category_id"),
    Balance: (balance_table, "balance_id"),
    Stage: (stage_table, "stage_id"),
    StageRule: (stage_rule_table, "rule_id"),
    Addon: (addon_table, "addon_id"),
}

_ASSOCIATION_TABLES: dict[AssociationKind, Table] = {
    AssociationKind.BALANCE: relation_balance_table,
    AssociationKind.ADDON: relation_addon_table,
    AssociationKind.PARAMETER: stage_parameter_table,
}


class StartupError(RuntimeError):
    """Raised when the SQL catalog store is used before initialisation."""


@dataclass(slots=True)
class _AdapterState:
    engine: Engine | None = None


_STATE = _AdapterState()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> Engine:
    """Create (or adopt) the engine and make sure every table exists."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQL catalog store already initialised. Pass force=True to reconfigure."
        )

    if engine is None:
        config = get_database_config()
        engine = create_engine(database_uri or config.uri, echo=config.echo, future=True)
    enable_sqlite_foreign_keys(engine)
    create_all_tables(engine)
    _STATE.engine = engine
    log.debug(f"SQL catalog store started on {engine.url!r}")
    return engine


def configured_engine() -> Engine | None:
    return _STATE.engine


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


@contextmanager
def _reading(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        log.error(f"SQL catalog store failed to {action}: {exc}")
        raise CatalogResponseError(f"Could not {action}: {exc}") from exc


@contextmanager
def _writing(action: str) -> Iterator[None]:
    # Constraint violations are translated by the caller before reaching here.
    try:
        yield
    except SQLAlchemyError as exc:
        log.error(f"SQL catalog store failed to {action}: {exc}")
        raise CatalogWriteError(f"Could not {action}: {exc}") from exc


class SqlAlchemyCatalogStore:
    """Catalog client reading and writing a local SQL database.

    The ``async`` methods run their statements inline on the event loop thread,
    so a fanned-out reconcile phase writes one row after another. Running them
    in worker threads would hand each thread its own in-memory SQLite database.
    """

    def __init__(self, engine: Engine | None = None) -> None:
        resolved = engine or _STATE.engine
        if resolved is None:
            raise StartupError(
                "SQL catalog store not initialised. Call propcatalog.adapters.sqlalchemy."
                "startup() or pass an engine."
            )
        self._engine = resolved

    # catalog entities

    def add(self, entity: CatalogEntity) -> CatalogEntity:
        """Insert one independent catalog entity, keeping its id."""

        table, id_field = _ENTITY_TABLES[type(entity)]
        values = {
            ("id" if f.name == id_field else f.name): getattr(entity, f.name)
            for f in fields(entity)
        }
        with self._engine.begin() as connection:
            connection.execute(insert(table).values(**values))
        return entity

    def add_all(self, entities: Sequence[CatalogEntity]) -> None:
        for entity in entities:
            self.add(entity)

    async def list_plans(self) -> list[Plan]:
        return self._list_entities(Plan)

    async def list_categories(self) -> list[Category]:
        return self._list_entities(Category)

    async def list_balances(self) -> list[Balance]:
        return self._list_entities(Balance)

    async def list_stages(self) -> list[Stage]:
        return self._list_entities(Stage)

    async def list_stage_rules(self) -> list[StageRule]:
        return self._list_entities(StageRule)

    async def list_addons(self) -> list[Addon]:
        return self._list_entities(Addon)

    # relations

    async def list_relations(
        self,
        relation_filter: RelationFilter | None = None,
    ) -> list[Relation]:
        stmt = select(relation_table).order_by(relation_table.c.id)
        if relation_filter is not None and relation_filter.plan_id is not None:
            stmt = stmt.where(relation_table.c.plan_id == relation_filter.plan_id)
        if relation_filter is not None and relation_filter.category_id is not None:
            stmt = stmt.where(relation_table.c.category_id == relation_filter.category_id)
        if relation_filter is not None and relation_filter.uncategorised:
            stmt = stmt.where(relation_table.c.category_id.is_(None))
        complete = relation_filter is not None and relation_filter.complete

        with _reading("list relations"), self._engine.connect() as connection:
            rows = connection.execute(stmt).all()
            if not complete:
                return [_relation_from_row(row) for row in rows]
            relation_ids = [row.id for row in rows]
            balances = _group_by_relation(
                connection, relation_balance_table, RelationBalance, relation_ids
            )
            addons = _group_by_relation(
                connection, relation_addon_table, RelationAddon, relation_ids
            )
        return [
            _relation_from_row(
                row,
                balances=balances.get(row.id, ()),
                addons=addons.get(row.id, ()),
            )
            for row in rows
        ]

    async def create_relation(
        self,
        *,
        plan_id: EntityId,
        category_id: EntityId | None = None,
        group_name: str | None = None,
    ) -> Relation:
        stmt = insert(relation_table).values(
            plan_id=plan_id, category_id=category_id, group_name=group_name
        )
        with _writing(f"create relation for plan {plan_id}"):
            try:
                with self._engine.begin() as connection:
                    result = connection.execute(stmt)
                    relation_id = result.inserted_primary_key[0]
            except IntegrityError as exc:
                log.error(
                    f"Rejected relation for plan {plan_id}, category {category_id}: {exc.orig}"
                )
                raise CatalogWriteError(
                    f"A relation for plan {plan_id} and category {category_id} already exists "
                    "or references a missing entity"
                ) from exc
            return self._get_relation(relation_id)

    async def update_relation(
        self,
        relation_id: EntityId,
        *,
        plan_id: EntityId | None = None,
        category_id: EntityId | None = None,
        group_name: str | None = None,
        clear_category: bool = False,
    ) -> Relation:
        values: dict[str, object] = {}
        if plan_id is not None:
            values["plan_id"] = plan_id
        if category_id is not None:
            values["category_id"] = category_id
        if clear_category:
            values["category_id"] = None
        if group_name is not None:
            values["group_name"] = group_name

        stmt = update(relation_table).where(relation_table.c.id == relation_id).values(values)
        with _writing(f"update relation {relation_id}"):
            if values:
                try:
                    with self._engine.begin() as connection:
                        rowcount = connection.execute(stmt).rowcount
                except IntegrityError as exc:
                    log.error(f"Rejected update of relation {relation_id}: {exc.orig}")
                    raise CatalogWriteError(
                        f"Updating relation {relation_id} would duplicate a selection key "
                        "or reference a missing entity"
                    ) from exc
                if rowcount == 0:
                    raise CatalogWriteError(f"Relation {relation_id} not found", status_code=404)
            return self._get_relation(relation_id)

    # relation stages

    async def list_relation_stages(self, relation_id: EntityId) -> list[RelationStage]:
        stmt = (
            select(relation_stage_table)
            .where(relation_stage_table.c.relation_id == relation_id)
            .order_by(relation_stage_table.c.num_phase)
        )
        with _reading(f"list stages of relation {relation_id}"):
            with self._engine.connect() as connection:
                return [_relation_stage_from_row(row) for row in connection.execute(stmt)]

    async def create_relation_stage(
        self,
        *,
        relation_id: EntityId,
        stage_id: EntityId,
        num_phase: int,
    ) -> RelationStage:
        stmt = insert(relation_stage_table).values(
            relation_id=relation_id, stage_id=stage_id, num_phase=num_phase
        )
        with _writing(f"attach stage {stage_id} to relation {relation_id}"):
            try:
                with self._engine.begin() as connection:
                    relation_stage_id = connection.execute(stmt).inserted_primary_key[0]
            except IntegrityError as exc:
                if self._phase_taken(relation_id, num_phase):
                    raise StagePhaseConflictError(relation_id, num_phase) from exc
                log.error(f"Rejected stage {stage_id} for relation {relation_id}: {exc.orig}")
                raise CatalogWriteError(
                    f"Stage {stage_id} is already attached to relation {relation_id} "
                    "or references a missing entity"
                ) from exc
        return RelationStage(
            relation_stage_id=relation_stage_id,
            relation_id=relation_id,
            stage_id=stage_id,
            num_phase=num_phase,
        )

    # associations

    async def list_associations(
        self,
        parent_id: EntityId,
        kind: AssociationKind,
    ) -> list[ReconcilableAssociation]:
        association_cls = association_type(kind)
        table = _association_table(kind)
        parent_column = table.c[association_cls.PARENT_FIELD]
        child_column = table.c[association_cls.CHILD_FIELD]
        stmt = select(table).where(parent_column == parent_id).order_by(child_column)
        with _reading(f"list {kind} rows of {parent_id}"), self._engine.connect() as connection:
            return [association_cls(**row._mapping) for row in connection.execute(stmt)]

    async def create_association(
        self,
        association: ReconcilableAssociation,
    ) -> ReconcilableAssociation:
        table = _association_table(association.kind)
        values = {
            association.PARENT_FIELD: association.parent_id,
            association.CHILD_FIELD: association.child_id,
            **association.overrides(),
        }
        kind, parent_id, child_id = association.key
        with _writing(f"create {kind} {child_id} on {parent_id}"):
            try:
                with self._engine.begin() as connection:
                    connection.execute(insert(table).values(**values))
            except IntegrityError as exc:
                if self._get_association(kind, parent_id, child_id) is not None:
                    raise DuplicateAssociationError(
                        f"{kind} {child_id} already exists on {parent_id}",
                        kind=kind,
                        parent_id=parent_id,
                        child_id=child_id,
                    ) from exc
                log.error(f"Rejected {kind} {child_id} on {parent_id}: {exc.orig}")
                raise CatalogWriteError(
                    f"Could not create {kind} {child_id} on {parent_id}: {exc.orig}"
                ) from exc
        return association

    async def update_association(
        self,
        kind: AssociationKind,
        parent_id: EntityId,
        child_id: EntityId,
        changes: Overrides,
    ) -> ReconcilableAssociation:
        association_cls = association_type(kind)
        unknown = set(changes) - set(association_cls.override_fields())
        if unknown:
            raise ValueError(f"Unknown {kind} fields: {', '.join(sorted(unknown))}")

        table = _association_table(kind)
        stmt = (
            update(table)
            .where(table.c[association_cls.PARENT_FIELD] == parent_id)
            .where(table.c[association_cls.CHILD_FIELD] == child_id)
            .values(changes)
        )
        rowcount = 0
        with _writing(f"update {kind} {child_id} on {parent_id}"):
            if changes:
                with self._engine.begin() as connection:
                    rowcount = connection.execute(stmt).rowcount
            stored = self._get_association(kind, parent_id, child_id)
        if stored is None or (changes and rowcount == 0):
            raise AssociationNotFoundError(
                f"{kind} {child_id} not found on {parent_id}",
                kind=kind,
                parent_id=parent_id,
                child_id=child_id,
            )
        return stored

    async def delete_association(
        self,
        kind: AssociationKind,
        parent_id: EntityId,
        child_id: EntityId,
    ) -> None:
        association_cls = association_type(kind)
        table = _association_table(kind)
        stmt = (
            delete(table)
            .where(table.c[association_cls.PARENT_FIELD] == parent_id)
            .where(table.c[association_cls.CHILD_FIELD] == child_id)
        )
        with _writing(f"delete {kind} {child_id} on {parent_id}"):
            with self._engine.begin() as connection:
                rowcount = connection.execute(stmt).rowcount
        if rowcount == 0:
            raise AssociationNotFoundError(
                f"{kind} {child_id} not found on {parent_id}",
                kind=kind,
                parent_id=parent_id,
                child_id=child_id,
            )

    # plumbing

    def _list_entities[TEntity: CatalogEntity](self, entity_cls: type[TEntity]) -> list[TEntity]:
        table, id_field = _ENTITY_TABLES[entity_cls]
        stmt = select(table).order_by(table.c.id)
        with _reading(f"list {table.name}"), self._engine.connect() as connection:
            return [
                entity_cls(
                    **{
                        (id_field if key == "id" else key): value
                        for key, value in row._mapping.items()
                    }
                )
                for row in connection.execute(stmt)
            ]

    def _get_relation(self, relation_id: EntityId) -> Relation:
        stmt = select(relation_table).where(relation_table.c.id == relation_id)
        with self._engine.connect() as connection:
            row = connection.execute(stmt).one_or_none()
        if row is None:
            raise CatalogWriteError(f"Relation {relation_id} not found", status_code=404)
        return _relation_from_row(row)

    def _get_association(
        self,
        kind: AssociationKind,
        parent_id: EntityId,
        child_id: EntityId,
    ) -> ReconcilableAssociation | None:
        association_cls = association_type(kind)
        table = _association_table(kind)
        stmt = (
            select(table)
            .where(table.c[association_cls.PARENT_FIELD] == parent_id)
            .where(table.c[association_cls.CHILD_FIELD] == child_id)
        )
        with self._engine.connect() as connection:
            row = connection.execute(stmt).one_or_none()
        return None if row is None else association_cls(**row._mapping)

    def _phase_taken(self, relation_id: EntityId, num_phase: int) -> bool:
        stmt = (
            select(relation_stage_table.c.id)
            .where(relation_stage_table.c.relation_id == relation_id)
            .where(relation_stage_table.c.num_phase == num_phase)
        )
        with self._engine.connect() as connection:
            return connection.execute(stmt).first() is not None


def _association_table(kind: AssociationKind) -> Table:
    try:
        return _ASSOCIATION_TABLES[kind]
    except KeyError:
        raise ValueError(f"Association kind {kind!s} is not reconcilable") from None


def _relation_from_row(
    row: Row[Any],
    *,
    balances: tuple[RelationBalance, ...] = (),
    addons: tuple[RelationAddon, ...] = (),
) -> Relation:
    return Relation(
        relation_id=row.id,
        plan_id=row.plan_id,
        category_id=row.category_id,
        group_name=row.group_name,
        balances=balances,
        addons=addons,
    )


def _relation_stage_from_row(row: Row[Any]) -> RelationStage:
    return RelationStage(
        relation_stage_id=row.id,
        relation_id=row.relation_id,
        stage_id=row.stage_id,
        num_phase=row.num_phase,
    )


def _group_by_relation[TAssociation: (RelationBalance, RelationAddon)](
    connection: Connection,
    table: Table,
    association_cls: type[TAssociation],
    relation_ids: Sequence[EntityId],
) -> dict[EntityId, tuple[TAssociation, ...]]:
    if not relation_ids:
        return {}
    stmt = (
        select(table)
        .where(table.c.relation_id.in_(relation_ids))
        .order_by(table.c.relation_id, table.c[association_cls.CHILD_FIELD])
    )
    grouped: dict[EntityId, list[TAssociation]] = {}
    for row in connection.execute(stmt):
        grouped.setdefault(row.relation_id, []).append(association_cls(**row._mapping))
    return {relation_id: tuple(rows) for relation_id, rows in grouped.items()}


if TYPE_CHECKING:
    from propcatalog.domain.ports import CatalogClient

    _store_check: CatalogClient = SqlAlchemyCatalogStore()
