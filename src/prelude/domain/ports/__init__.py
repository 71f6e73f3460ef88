"""Ports implemented by adapters and injected into the orchestrator."""

from __future__ import annotations

from .change_log import ChangeLog
from .inference import InferDocument
from .persistence import DocumentRepository, ProvenanceBackend

__all__ = [
    "ChangeLog",
    "DocumentRepository",
    "InferDocument",
    "ProvenanceBackend",
]
