"""JSON document storage in the context directory."""

from __future__ import annotations

import json
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Final

from pydantic import ValidationError

from prelude.domain.documents import parse_document
from prelude.domain.errors import PersistenceFailure

from .io import dump_json, read_json, write_text_atomic

if TYPE_CHECKING:
    from pathlib import Path

    from prelude.domain.documents import ContextDocument, DocumentKind

# Hand-maintained files next to the regenerated documents. Reconciliation,
# including force mode, never writes them.
PROTECTED_FILES: Final[frozenset[str]] = frozenset({"decisions.json", "changelog.md"})

log = getLogger(__name__)


@dataclass(slots=True)
class JsonDocumentRepository:
    """Read and write ``<kind>.json`` files under ``context_dir``."""

    context_dir: Path

    def path_for(self, kind: DocumentKind) -> Path:
        filename = kind.filename
        if filename in PROTECTED_FILES:
            raise PersistenceFailure(kind, f"{filename} is not a regenerated document")
        return self.context_dir / filename

    def read(self, kind: DocumentKind) -> ContextDocument | None:
        path = self.path_for(kind)
        if not path.exists():
            return None
        try:
            data = read_json(path)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PersistenceFailure(kind, f"could not read {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise PersistenceFailure(kind, f"{path} does not contain a JSON object")
        try:
            return parse_document(kind, data)  # pyright: ignore[reportUnknownArgumentType]
        except ValidationError as exc:
            raise PersistenceFailure(kind, f"{path} does not match its schema: {exc}") from exc

    def write(self, kind: DocumentKind, document: ContextDocument) -> None:
        path = self.path_for(kind)
        try:
            write_text_atomic(path, dump_json(document.to_data()))
        except OSError as exc:
            raise PersistenceFailure(kind, f"could not write {path}: {exc}") from exc
        log.debug("Wrote %s", path)
