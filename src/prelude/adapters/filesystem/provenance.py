"""JSON-file backend for the provenance store and its history snapshots."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import ValidationError

from prelude.domain.errors import CorruptProvenance

from .io import read_json, write_text_atomic
from .schema import StateFilePayload
from .translator import dump_state, state_from_payload

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

    from prelude.domain.provenance import ProvenanceState


def snapshot_name(taken_at: datetime) -> str:
    """Return a lexicographically sortable backup filename for ``taken_at``."""

    return taken_at.strftime("%Y-%m-%dT%H-%M-%S.%fZ") + ".json"


@dataclass(slots=True)
class JsonProvenanceBackend:
    state_path: Path
    history_dir: Path

    def load(self) -> ProvenanceState | None:
        if not self.state_path.exists():
            return None
        try:
            raw = read_json(self.state_path)
            payload = StateFilePayload.model_validate(raw)
            return state_from_payload(payload)
        except (OSError, json.JSONDecodeError, ValidationError, ValueError) as exc:
            message = f"Unreadable provenance store {self.state_path}: {exc}"
            raise CorruptProvenance(message) from exc

    def save(self, state: ProvenanceState) -> None:
        write_text_atomic(self.state_path, dump_state(state) + "\n")

    def write_snapshot(self, state: ProvenanceState, *, taken_at: datetime) -> str:
        path = self.history_dir / snapshot_name(taken_at)
        if path.exists():
            raise FileExistsError(f"Snapshot {path} already exists")
        write_text_atomic(path, dump_state(state) + "\n")
        return str(path)
