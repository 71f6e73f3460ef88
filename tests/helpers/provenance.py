"""In-memory provenance backend for reconciliation tests."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING

from prelude.domain.errors import CorruptProvenance

if TYPE_CHECKING:
    from datetime import datetime

    from prelude.domain.provenance import ProvenanceState


class InMemoryProvenanceBackend:
    """Keeps the live state and every snapshot as deep copies."""

    def __init__(
        self,
        state: ProvenanceState | None = None,
        *,
        corrupt: bool = False,
        fail_snapshot: bool = False,
        fail_save: bool = False,
    ) -> None:
        self.state = copy.deepcopy(state)
        self.corrupt = corrupt
        self.fail_snapshot = fail_snapshot
        self.fail_save = fail_save
        self.snapshots: list[tuple[datetime, ProvenanceState]] = []
        self.saves = 0

    def load(self) -> ProvenanceState | None:
        if self.corrupt:
            raise CorruptProvenance("state.json is not valid JSON")
        return copy.deepcopy(self.state)

    def save(self, state: ProvenanceState) -> None:
        if self.fail_save:
            raise OSError("disk full")
        self.state = copy.deepcopy(state)
        self.saves += 1

    def write_snapshot(self, state: ProvenanceState, *, taken_at: datetime) -> str:
        if self.fail_snapshot:
            raise OSError("history directory is read-only")
        self.snapshots.append((taken_at, copy.deepcopy(state)))
        return f"memory://{taken_at.isoformat()}"


if TYPE_CHECKING:
    from prelude.domain.ports.persistence import ProvenanceBackend

    _check_backend: ProvenanceBackend = InMemoryProvenanceBackend()
