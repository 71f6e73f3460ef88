"""Reconciliation pass orchestrator.

One pass walks every selected document kind through
``BACKING_UP -> INFERRING -> MERGING -> PERSISTING -> TRACKING_PROVENANCE``.
A failure moves that kind to ``FAILED`` and skips its remaining stages; other
kinds carry on. Only a backup failure aborts the whole pass.

Passes against one orchestrator are serialised: a second caller blocks until
the running pass has finished.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import ValidationError

from prelude.domain.documents import DocumentKind
from prelude.domain.errors import (
    InferenceFailure,
    PersistenceFailure,
    ProvenancePersistenceError,
    ReconciliationCancelled,
    ReconciliationError,
)
from prelude.domain.provenance import ProvenanceStore

from .contracts import (
    KindOutcome,
    MergeResult,
    PassStage,
    ReconciliationResult,
    ReconcileMode,
    ReportedChange,
)
from .engine import MergeEngine
from .tracking import track_merge_outcome

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence
    from pathlib import Path

    from prelude.domain.documents import ContextDocument
    from prelude.domain.ports import ChangeLog, DocumentRepository, InferDocument, ProvenanceBackend

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class ReconciliationOrchestrator:
    """Sequence reconciliation passes for one project root."""

    root_dir: Path
    documents: DocumentRepository
    provenance: ProvenanceBackend
    infer: InferDocument
    engine: MergeEngine = field(default_factory=MergeEngine)
    change_log: ChangeLog | None = None
    clock: Callable[[], datetime] = _utcnow
    _pass_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _stop: threading.Event = field(default_factory=threading.Event, init=False, repr=False)

    def run(
        self,
        mode: ReconcileMode = ReconcileMode.NORMAL,
        *,
        kinds: Iterable[DocumentKind] | None = None,
        trigger: Sequence[str] = (),
    ) -> ReconciliationResult:
        """Run one pass over ``kinds`` (all kinds by default).

        Raises ``BackupFailure`` if the provenance store cannot be backed up;
        every other failure is reported on the returned result.
        """

        with self._pass_lock:
            return self._run_pass(mode, _select(kinds), tuple(trigger))

    def request_stop(self) -> None:
        """Let the kind in progress finish, then skip the rest of the pass."""

        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def _run_pass(
        self,
        mode: ReconcileMode,
        kinds: list[DocumentKind],
        trigger: tuple[str, ...],
    ) -> ReconciliationResult:
        result = ReconciliationResult(
            mode=mode,
            started_at=self.clock(),
            outcomes=[KindOutcome(kind=kind) for kind in kinds],
            trigger=trigger,
        )
        log.info(
            "Starting %s reconciliation: kinds=%s",
            mode.value,
            ", ".join(kind.value for kind in kinds),
        )

        store = ProvenanceStore.open(self.provenance, clock=self.clock)
        result.provenance_recovered = store.recovered

        if mode is not ReconcileMode.DRY_RUN:
            for outcome in result.outcomes:
                outcome.stage = PassStage.BACKING_UP
            result.snapshot = store.snapshot()

        tracked_any = False
        for outcome in result.outcomes:
            if self._stop.is_set():
                outcome.fail(ReconciliationCancelled(outcome.kind, "pass stopped before start"))
                continue
            tracked_any |= self._reconcile_kind(outcome, mode, store, result)

        if tracked_any:
            try:
                store.persist()
                result.provenance_saved = True
            except ProvenancePersistenceError as exc:
                log.error("Provenance store was not saved: %s", exc)  # noqa: TRY400
                result.provenance_error = str(exc)

        if mode is not ReconcileMode.DRY_RUN and self.change_log is not None:
            self._append_change_log(result)

        log.info(
            "Finished %s reconciliation: changes=%s, succeeded=%s, failed=%s",
            mode.value,
            len(result.changes),
            len(result.succeeded),
            len(result.failed),
        )
        return result

    def _reconcile_kind(
        self,
        outcome: KindOutcome,
        mode: ReconcileMode,
        store: ProvenanceStore,
        result: ReconciliationResult,
    ) -> bool:
        kind = outcome.kind
        try:
            outcome.stage = PassStage.INFERRING
            inferred = self._infer(kind)

            outcome.stage = PassStage.MERGING
            existing = self._read_existing(kind, mode)
            merge_result = self._merge(kind, mode, existing, inferred, store)
            outcome.change_count = len(merge_result.changes)

            if mode is ReconcileMode.DRY_RUN:
                _report(result, kind, merge_result)
                outcome.stage = PassStage.IDLE
                return False

            outcome.stage = PassStage.PERSISTING
            self.documents.write(kind, merge_result.merged)
            _report(result, kind, merge_result)

            outcome.stage = PassStage.TRACKING_PROVENANCE
            track_merge_outcome(
                store,
                kind,
                merge_result.merged,
                inferred,
                policy=self.engine.policies[kind],
                force=mode is ReconcileMode.FORCE,
            )
        except (ReconciliationError, ValidationError) as exc:
            log.error(  # noqa: TRY400
                "Reconciliation of %s failed during %s: %s", kind.filename, outcome.stage, exc
            )
            outcome.fail(exc)
            return False

        outcome.stage = PassStage.IDLE
        return True

    def _infer(self, kind: DocumentKind) -> ContextDocument:
        try:
            return self.infer(kind, self.root_dir)
        except Exception as exc:  # noqa: BLE001
            raise InferenceFailure(kind, f"inference failed: {exc}") from exc

    def _read_existing(self, kind: DocumentKind, mode: ReconcileMode) -> ContextDocument | None:
        """Read the current document; a force pass replaces an unreadable one."""

        try:
            return self.documents.read(kind)
        except PersistenceFailure as exc:
            if mode is not ReconcileMode.FORCE:
                raise
            log.warning("Replacing unreadable %s: %s", kind.filename, exc)
            return None

    def _merge(
        self,
        kind: DocumentKind,
        mode: ReconcileMode,
        existing: ContextDocument | None,
        inferred: ContextDocument,
        store: ProvenanceStore,
    ) -> MergeResult:
        if mode is ReconcileMode.FORCE:
            return self.engine.overwrite(kind, existing, inferred)
        return self.engine.merge(kind, existing, inferred, store)

    def _append_change_log(self, result: ReconciliationResult) -> None:
        if self.change_log is None:
            return
        try:
            self.change_log.append(result)
        except OSError as exc:
            log.warning("Could not append to change log: %s", exc)


def _select(kinds: Iterable[DocumentKind] | None) -> list[DocumentKind]:
    if kinds is None:
        return list(DocumentKind)
    requested = set(kinds)
    return [kind for kind in DocumentKind if kind in requested]


def _report(result: ReconciliationResult, kind: DocumentKind, merge_result: MergeResult) -> None:
    result.changes.extend(
        ReportedChange.from_change(kind, change) for change in merge_result.changes
    )
