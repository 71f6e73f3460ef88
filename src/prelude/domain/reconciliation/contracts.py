"""Shared reconciliation contract components.

This module holds the value types that flow between the merge engine, the
orchestrator and the presenters: change records, merge results and the
per-pass result object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datetime import datetime

    from prelude.domain.documents import ContextDocument, DocumentKind


class ChangeType(StrEnum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    PRESERVED = "preserved"


@dataclass(frozen=True, slots=True, kw_only=True)
class MergeChange:
    """One reconciliation decision on a field (or on one element of a set-union field)."""

    field: str
    type: ChangeType
    reason: str
    old_value: Any = None
    new_value: Any = None


@dataclass(slots=True, kw_only=True)
class MergeResult:
    merged: ContextDocument
    changes: list[MergeChange] = field(default_factory=list[MergeChange])


class ReconcileMode(StrEnum):
    """Operating modes exposed to callers."""

    NORMAL = "normal"
    FORCE = "force"
    DRY_RUN = "dry_run"


class PassStage(StrEnum):
    """Stages of one document kind's pipeline within a pass."""

    IDLE = "idle"
    BACKING_UP = "backing_up"
    INFERRING = "inferring"
    MERGING = "merging"
    PERSISTING = "persisting"
    TRACKING_PROVENANCE = "tracking_provenance"
    FAILED = "failed"


@dataclass(frozen=True, slots=True, kw_only=True)
class ReportedChange:
    """A change record qualified with the document file it belongs to."""

    file: str
    field: str
    type: ChangeType
    reason: str
    old_value: Any = None
    new_value: Any = None

    @classmethod
    def from_change(cls, kind: DocumentKind, change: MergeChange) -> ReportedChange:
        return cls(
            file=kind.filename,
            field=change.field,
            type=change.type,
            reason=change.reason,
            old_value=change.old_value,
            new_value=change.new_value,
        )


@dataclass(slots=True, kw_only=True)
class KindOutcome:
    """Final state of one document kind after a pass."""

    kind: DocumentKind
    stage: PassStage = PassStage.IDLE
    failed_stage: PassStage | None = None
    error: str | None = None
    change_count: int = 0

    @property
    def succeeded(self) -> bool:
        return self.stage is not PassStage.FAILED

    def fail(self, error: BaseException) -> None:
        self.failed_stage = self.stage
        self.stage = PassStage.FAILED
        self.error = str(error)


@dataclass(slots=True, kw_only=True)
class ReconciliationResult:
    """Outcome of one reconciliation pass."""

    mode: ReconcileMode
    started_at: datetime
    outcomes: list[KindOutcome] = field(default_factory=list[KindOutcome])
    changes: list[ReportedChange] = field(default_factory=list[ReportedChange])
    trigger: tuple[str, ...] = ()
    snapshot: str | None = None
    provenance_recovered: bool = False
    provenance_saved: bool = False
    provenance_error: str | None = None

    @property
    def succeeded(self) -> list[DocumentKind]:
        return [outcome.kind for outcome in self.outcomes if outcome.succeeded]

    @property
    def failed(self) -> list[KindOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]

    def outcome_for(self, kind: DocumentKind) -> KindOutcome | None:
        for outcome in self.outcomes:
            if outcome.kind is kind:
                return outcome
        return None
