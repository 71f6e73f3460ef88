"""Persistence ports for context documents and provenance."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime

    from prelude.domain.documents import ContextDocument, DocumentKind
    from prelude.domain.provenance import ProvenanceState


@runtime_checkable
class DocumentRepository(Protocol):
    """Whole-document read/write access to the context directory."""

    def read(self, kind: DocumentKind) -> ContextDocument | None:
        """Return the stored document of ``kind`` or ``None`` when it does not exist."""
        ...

    def write(self, kind: DocumentKind, document: ContextDocument) -> None:
        """Replace the stored document of ``kind``; the write is all-or-nothing."""
        ...


@runtime_checkable
class ProvenanceBackend(Protocol):
    """Storage for the single live provenance store and its history snapshots."""

    def load(self) -> ProvenanceState | None:
        """Return the live state, ``None`` if absent; raise ``CorruptProvenance`` if unreadable."""
        ...

    def save(self, state: ProvenanceState) -> None:
        """Atomically overwrite the live state."""
        ...

    def write_snapshot(self, state: ProvenanceState, *, taken_at: datetime) -> str:
        """Write an immutable, timestamped copy of ``state`` and return its identifier."""
        ...
