from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from prelude.domain.provenance import ProvenanceStore
from prelude.domain.reconciliation import MergeEngine
from tests.helpers.documents import fixed_clock
from tests.helpers.provenance import InMemoryProvenanceBackend

if TYPE_CHECKING:
    from pathlib import Path

_PRELUDE_ENV = (
    "PRELUDE_ROOT",
    "PRELUDE_CONTEXT_DIR",
    "PRELUDE_DEBOUNCE_MS",
    "PRELUDE_CHANGE_LOG_LIMIT",
)


@pytest.fixture(autouse=True)
def _clean_prelude_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _PRELUDE_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def engine() -> MergeEngine:
    return MergeEngine(clock=fixed_clock)


@pytest.fixture
def store() -> ProvenanceStore:
    return ProvenanceStore(backend=InMemoryProvenanceBackend(), clock=fixed_clock)


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root
