"""Inference port."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pathlib import Path

    from prelude.domain.documents import ContextDocument, DocumentKind


class InferDocument(Protocol):
    """Produce a fresh document of ``kind`` by inspecting the codebase at ``root_dir``.

    Implementations may raise any exception; the orchestrator records it as an
    inference failure for that kind only.
    """

    def __call__(self, kind: DocumentKind, root_dir: Path) -> ContextDocument: ...
