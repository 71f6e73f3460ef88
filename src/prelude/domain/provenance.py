"""Field-level provenance of context documents.

The store records, per document kind and field path, whether the current value
came from inference or from a human edit. It holds no merge logic; the merge
engine reads it through :class:`ProvenanceView` and the orchestrator writes it
after a pass.

Only one reconciliation pass may hold a store at a time. The store is loaded
at the start of a pass (:meth:`ProvenanceStore.open`) and written back with
:meth:`ProvenanceStore.persist` at the end.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, Any, Final, Protocol

from prelude.domain.documents import DocumentKind
from prelude.domain.errors import BackupFailure, CorruptProvenance, ProvenancePersistenceError
from prelude.domain.values import content_hash, top_level

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from prelude.domain.ports.persistence import ProvenanceBackend

STORE_VERSION: Final[str] = "1.0.0"

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Provenance(StrEnum):
    INFERRED = "inferred"
    MANUAL = "manual"
    MERGED = "merged"


@dataclass(slots=True, kw_only=True)
class FieldState:
    value: Any
    provenance: Provenance
    last_inferred_at: datetime | None = None
    last_modified_at: datetime | None = None
    inferred_hash: str | None = None


@dataclass(slots=True, kw_only=True)
class FileState:
    document_kind: DocumentKind
    last_updated_at: datetime
    fields: dict[str, FieldState] = field(default_factory=dict[str, FieldState])


@dataclass(slots=True, kw_only=True)
class ProvenanceState:
    initialized_at: datetime
    last_update_at: datetime
    version: str = STORE_VERSION
    files: list[FileState] = field(default_factory=list[FileState])

    @classmethod
    def empty(cls, *, now: datetime) -> ProvenanceState:
        return cls(initialized_at=now, last_update_at=now)


class ProvenanceView(Protocol):
    """Read-only provenance queries used by the merge engine."""

    def is_manual(self, kind: DocumentKind, path: str) -> bool: ...

    def has_inferred_drifted(self, kind: DocumentKind, path: str, new_value: object) -> bool: ...

    def manual_field_paths(self, kind: DocumentKind) -> list[str]: ...


class ProvenanceStore:
    """Mutable, pass-scoped handle on the provenance state."""

    def __init__(
        self,
        state: ProvenanceState | None = None,
        *,
        backend: ProvenanceBackend | None = None,
        clock: Callable[[], datetime] = _utcnow,
        recovered: bool = False,
    ) -> None:
        self._clock = clock
        self.state = state or ProvenanceState.empty(now=clock())
        self.backend = backend
        self.recovered = recovered

    @classmethod
    def open(
        cls,
        backend: ProvenanceBackend,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> ProvenanceStore:
        """Load the live store from ``backend``, reinitialising it if it is corrupt."""

        try:
            state = backend.load()
        except CorruptProvenance:
            log.warning("Provenance store is unreadable; starting from an empty store")
            return cls(backend=backend, clock=clock, recovered=True)
        return cls(state, backend=backend, clock=clock)

    # -- tracking -----------------------------------------------------------------

    def track_inferred(self, kind: DocumentKind, path: str, value: Any) -> FieldState:
        now = self._clock()
        state = FieldState(
            value=value,
            provenance=Provenance.INFERRED,
            last_inferred_at=now,
            inferred_hash=content_hash(value),
        )
        self._write(kind, path, state, now=now)
        return state

    def track_manual(self, kind: DocumentKind, path: str, value: Any) -> FieldState:
        now = self._clock()
        previous = self.field_state(kind, path)
        state = FieldState(
            value=value,
            provenance=Provenance.MANUAL,
            last_modified_at=now,
            inferred_hash=previous.inferred_hash if previous else None,
        )
        self._write(kind, path, state, now=now)
        return state

    def track_merged(
        self, kind: DocumentKind, path: str, value: Any, *, inferred_value: Any
    ) -> FieldState:
        """Record a value that combines inferred and manually retained content."""

        now = self._clock()
        state = FieldState(
            value=value,
            provenance=Provenance.MERGED,
            last_modified_at=now,
            inferred_hash=content_hash(inferred_value),
        )
        self._write(kind, path, state, now=now)
        return state

    def record_inferred_hash(self, kind: DocumentKind, path: str, value: Any) -> None:
        """Refresh the hash of the latest inferred value without touching provenance."""

        current = self.field_state(kind, path)
        if current is None:
            return
        current.inferred_hash = content_hash(value)

    # -- queries ------------------------------------------------------------------

    def field_state(self, kind: DocumentKind, path: str) -> FieldState | None:
        file_state = self.file_state(kind)
        if file_state is None:
            return None
        return file_state.fields.get(path)

    def file_state(self, kind: DocumentKind) -> FileState | None:
        for file_state in self.state.files:
            if file_state.document_kind is kind:
                return file_state
        return None

    def is_manual(self, kind: DocumentKind, path: str) -> bool:
        current = self.field_state(kind, path)
        return current is not None and current.provenance is Provenance.MANUAL

    def has_inferred_drifted(self, kind: DocumentKind, path: str, new_value: object) -> bool:
        current = self.field_state(kind, path)
        if current is None or current.inferred_hash is None:
            return True
        return current.inferred_hash != content_hash(new_value)

    def manual_field_paths(self, kind: DocumentKind) -> list[str]:
        file_state = self.file_state(kind)
        if file_state is None:
            return []
        return [
            path
            for path, state in file_state.fields.items()
            if state.provenance is Provenance.MANUAL
        ]

    def tracked_paths(self, kind: DocumentKind) -> list[str]:
        file_state = self.file_state(kind)
        return list(file_state.fields) if file_state else []

    # -- lifecycle ----------------------------------------------------------------

    def prune(self, kind: DocumentKind, keep: Iterable[str]) -> list[str]:
        """Delete records whose top-level field is not in ``keep``; return removed paths."""

        file_state = self.file_state(kind)
        if file_state is None:
            return []
        keep_fields = set(keep)
        removed = [path for path in file_state.fields if top_level(path) not in keep_fields]
        for path in removed:
            del file_state.fields[path]
        if removed:
            file_state.last_updated_at = self._clock()
        return removed

    def snapshot(self) -> str:
        """Write a timestamped backup of the whole store; raise ``BackupFailure`` on error."""

        backend = self._require_backend()
        try:
            identifier = backend.write_snapshot(self.state, taken_at=self._clock())
        except OSError as exc:
            raise BackupFailure(f"Could not back up provenance store: {exc}") from exc
        log.info("Backed up provenance store to %s", identifier)
        return identifier

    def persist(self) -> None:
        """Stamp and atomically overwrite the live store."""

        backend = self._require_backend()
        self.state.last_update_at = self._clock()
        try:
            backend.save(self.state)
        except OSError as exc:
            raise ProvenancePersistenceError(f"Could not save provenance store: {exc}") from exc

    def _require_backend(self) -> ProvenanceBackend:
        if self.backend is None:
            raise RuntimeError("Provenance store has no backend attached")
        return self.backend

    def _write(self, kind: DocumentKind, path: str, state: FieldState, *, now: datetime) -> None:
        file_state = self.file_state(kind)
        if file_state is None:
            file_state = FileState(document_kind=kind, last_updated_at=now)
            self.state.files.append(file_state)
        file_state.fields[path] = state
        file_state.last_updated_at = now
