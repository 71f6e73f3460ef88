"""Rolling change log port."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from prelude.domain.reconciliation.contracts import ReconciliationResult


class ChangeLog(Protocol):
    """Bounded log of reconciliation reports."""

    def append(self, result: ReconciliationResult) -> None: ...
