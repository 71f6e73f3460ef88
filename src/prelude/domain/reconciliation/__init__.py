"""Reconciliation core for keeping context documents current.

Layered flow of one pass:
1) back up the provenance store
2) infer a fresh document per kind
3) merge it with the persisted document under the kind's policy
4) persist the merged document
5) record field provenance for the next pass
"""

from __future__ import annotations

from .contracts import (
    ChangeType,
    KindOutcome,
    MergeChange,
    MergeResult,
    PassStage,
    ReconciliationResult,
    ReconcileMode,
    ReportedChange,
)
from .engine import MergeEngine
from .orchestrator import ReconciliationOrchestrator
from .policy import POLICIES, FieldRule, MergePolicy, SetUnionRule, policy_for
from .tracking import track_merge_outcome

__all__ = [
    "POLICIES",
    "ChangeType",
    "FieldRule",
    "KindOutcome",
    "MergeChange",
    "MergeEngine",
    "MergePolicy",
    "MergeResult",
    "PassStage",
    "ReconcileMode",
    "ReconciliationOrchestrator",
    "ReconciliationResult",
    "ReportedChange",
    "SetUnionRule",
    "policy_for",
    "track_merge_outcome",
]
