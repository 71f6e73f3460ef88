"""Bounded rolling log of reconciliation reports."""

from __future__ import annotations

import json
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import ValidationError

from prelude.config.context import DEFAULT_CHANGE_LOG_LIMIT

from .io import read_json, write_text_atomic
from .schema import ChangeLogEntryPayload, ChangeLogPayload, ChangeRecordPayload

if TYPE_CHECKING:
    from pathlib import Path

    from prelude.domain.reconciliation.contracts import ReconciliationResult

log = getLogger(__name__)


@dataclass(slots=True)
class JsonChangeLog:
    path: Path
    limit: int = DEFAULT_CHANGE_LOG_LIMIT

    def entries(self) -> list[ChangeLogEntryPayload]:
        if not self.path.exists():
            return []
        try:
            return ChangeLogPayload.model_validate(read_json(self.path)).entries
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
            log.warning("Discarding unreadable change log %s: %s", self.path, exc)
            return []

    def append(self, result: ReconciliationResult) -> None:
        entry = ChangeLogEntryPayload(
            timestamp=result.started_at,
            mode=result.mode.value,
            trigger=list(result.trigger),
            updated=[kind.filename for kind in result.succeeded],
            failed=[outcome.kind.filename for outcome in result.failed],
            changes=[
                ChangeRecordPayload(
                    file=change.file,
                    field=change.field,
                    type=change.type.value,
                    reason=change.reason,
                    old_value=change.old_value,
                    new_value=change.new_value,
                )
                for change in result.changes
            ],
        )
        entries = [*self.entries(), entry][-self.limit :]
        payload = ChangeLogPayload(entries=entries)
        write_text_atomic(
            self.path, payload.model_dump_json(by_alias=True, exclude_none=True, indent=2) + "\n"
        )
