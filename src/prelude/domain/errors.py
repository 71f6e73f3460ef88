"""Reconciliation error taxonomy."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prelude.domain.documents import DocumentKind


class ReconciliationError(RuntimeError):
    """Base class for failures raised while reconciling context documents."""


class BackupFailure(ReconciliationError):
    """The provenance store could not be snapshotted; the whole pass is aborted."""


class DocumentKindFailure(ReconciliationError):
    """A failure confined to a single document kind."""

    def __init__(self, kind: DocumentKind, message: str) -> None:
        super().__init__(f"{kind.filename}: {message}")
        self.kind = kind


class InferenceFailure(DocumentKindFailure):
    """Inference of one document kind failed."""


class MissingInferredDocument(InferenceFailure):
    """A merge was requested without an inferred document."""


class PersistenceFailure(DocumentKindFailure):
    """A context document could not be read or written."""


class CorruptProvenance(ReconciliationError):
    """The provenance file exists but cannot be read or parsed."""


class ProvenancePersistenceError(ReconciliationError):
    """The live provenance store could not be written."""


class ReconciliationCancelled(DocumentKindFailure):
    """A stop was requested before this document kind was reconciled."""
