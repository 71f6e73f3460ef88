"""Public interface for the filesystem adapter."""

from __future__ import annotations

from .change_log import JsonChangeLog
from .documents import PROTECTED_FILES, JsonDocumentRepository
from .provenance import JsonProvenanceBackend, snapshot_name

__all__ = [
    "PROTECTED_FILES",
    "JsonChangeLog",
    "JsonDocumentRepository",
    "JsonProvenanceBackend",
    "snapshot_name",
]
