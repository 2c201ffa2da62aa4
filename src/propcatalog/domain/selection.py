"""Selection value object and the selection resolver.

A user picks a plan, optionally a category, then a balance. Resolution maps
those picks plus a catalog snapshot to exactly one priceable variation, or to
a typed failure. Failures are ordinary results, never exceptions: a stale or
incomplete selection is a normal outcome the caller must handle by forcing a
re-selection (after a fresh fetch when the failure may be staleness).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Final, Literal

if TYPE_CHECKING:
    from propcatalog.domain.cache import CatalogSnapshot
    from propcatalog.domain.model import Balance, EntityId, Relation, RelationBalance


class _Unset:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Final = _Unset()


@dataclass(slots=True, frozen=True)
class Selection:
    """Immutable three-step pick; change it only through :meth:`update`."""

    plan_id: EntityId | None = None
    category_id: EntityId | None = None
    balance_id: EntityId | None = None

    def update(
        self,
        *,
        plan_id: EntityId | None | _Unset = UNSET,
        category_id: EntityId | None | _Unset = UNSET,
        balance_id: EntityId | None | _Unset = UNSET,
    ) -> Selection:
        """Return the next selection.

        Changing the plan or the category invalidates the balance pick, because
        the set of offered balances belongs to the ``(plan, category)`` relation.
        An explicit ``balance_id`` in the same call wins over that reset.
        """

        plan = self.plan_id if isinstance(plan_id, _Unset) else plan_id
        category = self.category_id if isinstance(category_id, _Unset) else category_id
        balance = self.balance_id
        if plan != self.plan_id or category != self.category_id:
            balance = None
        if not isinstance(balance_id, _Unset):
            balance = balance_id
        return Selection(plan_id=plan, category_id=category, balance_id=balance)

    def clear(self) -> Selection:
        return Selection()

    @property
    def is_complete(self) -> bool:
        return self.plan_id is not None and self.balance_id is not None


class ResolutionStatus(StrEnum):
    RESOLVED = "resolved"
    INCOMPLETE_SELECTION = "incomplete_selection"
    NO_MATCHING_RELATION = "no_matching_relation"
    NO_MATCHING_VARIATION = "no_matching_variation"


@dataclass(slots=True, frozen=True, kw_only=True)
class AvailableVariation:
    """A relation balance joined with its template balance."""

    balance: Balance
    relation_balance: RelationBalance

    @property
    def balance_id(self) -> EntityId:
        return self.relation_balance.balance_id

    @property
    def name(self) -> str:
        return self.balance.label

    @property
    def price(self) -> float:
        return self.relation_balance.price

    @property
    def effective_price(self) -> float:
        return self.relation_balance.effective_price


@dataclass(slots=True, frozen=True, kw_only=True)
class ResolvedVariation:
    relation_id: EntityId
    balance_id: EntityId
    name: str
    price: float
    effective_price: float
    has_discount: bool
    discount_percent: float | None
    external_variation_id: int | None
    status: Literal[ResolutionStatus.RESOLVED] = ResolutionStatus.RESOLVED

    @property
    def ok(self) -> bool:
        return True


@dataclass(slots=True, frozen=True, kw_only=True)
class IncompleteSelection:
    missing: tuple[str, ...]
    status: Literal[ResolutionStatus.INCOMPLETE_SELECTION] = (
        ResolutionStatus.INCOMPLETE_SELECTION
    )

    @property
    def ok(self) -> bool:
        return False


@dataclass(slots=True, frozen=True, kw_only=True)
class NoMatchingRelation:
    plan_id: EntityId
    category_id: EntityId | None
    candidates: tuple[EntityId, ...] = ()
    reason: str = "no_relation"
    status: Literal[ResolutionStatus.NO_MATCHING_RELATION] = (
        ResolutionStatus.NO_MATCHING_RELATION
    )

    @property
    def ok(self) -> bool:
        return False


@dataclass(slots=True, frozen=True, kw_only=True)
class NoMatchingVariation:
    relation_id: EntityId
    balance_id: EntityId
    status: Literal[ResolutionStatus.NO_MATCHING_VARIATION] = (
        ResolutionStatus.NO_MATCHING_VARIATION
    )

    @property
    def ok(self) -> bool:
        return False


type Resolution = (
    ResolvedVariation | IncompleteSelection | NoMatchingRelation | NoMatchingVariation
)


def find_relation(
    snapshot: CatalogSnapshot,
    plan_id: EntityId,
    category_id: EntityId | None,
) -> Relation | NoMatchingRelation:
    matches = [r for r in snapshot.relations if r.matches(plan_id, category_id)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        return NoMatchingRelation(plan_id=plan_id, category_id=category_id)
    # The store allows one relation per key; refuse to pick between two.
    return NoMatchingRelation(
        plan_id=plan_id,
        category_id=category_id,
        candidates=tuple(r.relation_id for r in matches),
        reason="ambiguous_relation",
    )


def available_variations(
    snapshot: CatalogSnapshot,
    relation: Relation,
) -> tuple[AvailableVariation, ...]:
    """Join a relation's balance rows with the balance catalog, dropping dangling rows."""

    balances = {b.balance_id: b for b in snapshot.balances}
    variations: list[AvailableVariation] = []
    for relation_balance in relation.balances:
        balance = balances.get(relation_balance.balance_id)
        if balance is None:
            continue
        variations.append(AvailableVariation(balance=balance, relation_balance=relation_balance))
    return tuple(variations)


def resolve_selection(snapshot: CatalogSnapshot, selection: Selection) -> Resolution:
    """Resolve ``selection`` against ``snapshot``; pure and deterministic."""

    missing = tuple(
        name
        for name, value in (("plan", selection.plan_id), ("balance", selection.balance_id))
        if value is None
    )
    if missing or selection.plan_id is None or selection.balance_id is None:
        return IncompleteSelection(missing=missing)

    relation = find_relation(snapshot, selection.plan_id, selection.category_id)
    if isinstance(relation, NoMatchingRelation):
        return relation

    balance_id = selection.balance_id
    variation = next(
        (v for v in available_variations(snapshot, relation) if v.balance_id == balance_id),
        None,
    )
    if variation is None:
        return NoMatchingVariation(relation_id=relation.relation_id, balance_id=balance_id)

    relation_balance = variation.relation_balance
    return ResolvedVariation(
        relation_id=relation.relation_id,
        balance_id=variation.balance_id,
        name=_variation_name(snapshot, relation, variation),
        price=relation_balance.price,
        effective_price=relation_balance.effective_price,
        has_discount=relation_balance.has_discount,
        discount_percent=relation_balance.discount_percent,
        external_variation_id=relation_balance.external_variation_id,
    )


def _variation_name(
    snapshot: CatalogSnapshot,
    relation: Relation,
    variation: AvailableVariation,
) -> str:
    plan = snapshot.plan(relation.plan_id)
    category = snapshot.category(relation.category_id)
    parts = [plan.name if plan else relation.plan_id]
    if category is not None:
        parts.append(category.name)
    parts.append(variation.name)
    return " - ".join(parts)
