"""Association reconciliation: diff a desired set against the store and converge.

Flow:
1) fresh read of the parent's associations
2) three-way diff (delete / create / update)
3) fan-out writes, phase by phase
4) resync the entity cache from the store
"""

from __future__ import annotations

from .diff import AssociationDiff, AssociationUpdate, compute_association_diff
from .engine import AssociationReconciler
from .result import Phase, ReconcileResult, WriteFailure

__all__ = [
    "AssociationDiff",
    "AssociationReconciler",
    "AssociationUpdate",
    "Phase",
    "ReconcileResult",
    "WriteFailure",
    "compute_association_diff",
]
