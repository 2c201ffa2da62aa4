"""Phase numbering for stages attached to a relation.

Every stage of a relation occupies a distinct ``num_phase``. New stages are
appended after the highest phase already in use; stages already attached are
skipped rather than attached twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from propcatalog.domain.errors import StagePhaseConflictError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from propcatalog.domain.model import EntityId, RelationStage


@dataclass(slots=True, frozen=True, kw_only=True)
class PlannedStage:
    relation_id: EntityId
    stage_id: EntityId
    num_phase: int


def ensure_unique_phases(stages: Iterable[RelationStage | PlannedStage]) -> None:
    """Raise :class:`StagePhaseConflictError` on the first repeated ``(relation, phase)``."""

    seen: set[tuple[EntityId, int]] = set()
    for stage in stages:
        key = (stage.relation_id, stage.num_phase)
        if key in seen:
            raise StagePhaseConflictError(stage.relation_id, stage.num_phase)
        seen.add(key)


def plan_stage_phases(
    relation_id: EntityId,
    existing: Sequence[RelationStage],
    stage_ids: Sequence[EntityId],
) -> tuple[PlannedStage, ...]:
    attached = {stage.stage_id for stage in existing if stage.relation_id == relation_id}
    next_phase = max(
        (stage.num_phase for stage in existing if stage.relation_id == relation_id),
        default=0,
    )
    planned: list[PlannedStage] = []
    for stage_id in dict.fromkeys(stage_ids):
        if stage_id in attached:
            continue
        next_phase += 1
        planned.append(
            PlannedStage(relation_id=relation_id, stage_id=stage_id, num_phase=next_phase)
        )

    ensure_unique_phases((*existing, *planned))
    return tuple(planned)
