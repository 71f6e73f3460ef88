from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from prelude.config import ContextConfig
from prelude.domain.documents import DocumentKind
from prelude.domain.provenance import FieldState, Provenance
from prelude.domain.reconciliation import (
    ChangeType,
    KindOutcome,
    PassStage,
    ReconciliationResult,
    ReconcileMode,
    ReportedChange,
)
from prelude.ui import cli as cli_module

if TYPE_CHECKING:
    from pathlib import Path


def _result(mode: ReconcileMode, *, failed: bool = False) -> ReconciliationResult:
    outcome = KindOutcome(kind=DocumentKind.STACK)
    if failed:
        outcome.stage = PassStage.FAILED
        outcome.failed_stage = PassStage.INFERRING
        outcome.error = "pyproject.toml is invalid"
    return ReconciliationResult(
        mode=mode,
        started_at=datetime(2025, 3, 1, tzinfo=UTC),
        outcomes=[outcome],
        changes=[
            ReportedChange(
                file="stack.json",
                field="frameworks",
                type=ChangeType.ADDED,
                reason="New item detected",
                new_value="FastAPI",
            )
        ],
    )


@pytest.fixture
def captured_update(monkeypatch: pytest.MonkeyPatch) -> dict[str, object]:
    captured: dict[str, object] = {}

    def fake_update(**kwargs: object) -> ReconciliationResult:
        captured.update(kwargs)
        return _result(kwargs["mode"])  # pyright: ignore[reportArgumentType]

    monkeypatch.setattr(cli_module, "update_context", fake_update)
    return captured


def test_update_defaults(captured_update: dict[str, object], tmp_path: Path) -> None:
    cli_module.main(["update", "--root", str(tmp_path)])

    assert captured_update["mode"] is ReconcileMode.NORMAL
    assert captured_update["kinds"] is None
    config = captured_update["config"]
    assert isinstance(config, ContextConfig)
    assert config.resolve_root() == tmp_path.resolve()


@pytest.mark.parametrize(
    ("flag", "mode"),
    [("--force", ReconcileMode.FORCE), ("--dry-run", ReconcileMode.DRY_RUN)],
)
def test_update_mode_flags(
    captured_update: dict[str, object], tmp_path: Path, flag: str, mode: ReconcileMode
) -> None:
    cli_module.main(["update", "--root", str(tmp_path), flag])

    assert captured_update["mode"] is mode


def test_update_kind_selection(captured_update: dict[str, object], tmp_path: Path) -> None:
    cli_module.main(
        ["update", "--root", str(tmp_path), "--kind", "stack", "--kind", "architecture"]
    )

    assert captured_update["kinds"] == [DocumentKind.STACK, DocumentKind.ARCHITECTURE]


def test_force_and_dry_run_are_exclusive(captured_update: dict[str, object]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["update", "--force", "--dry-run"])

    assert excinfo.value.code == 2
    assert captured_update == {}


def test_unknown_kind_is_rejected(captured_update: dict[str, object]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["update", "--kind", "session"])

    assert excinfo.value.code == 2


def test_invalid_environment_exits_with_usage_error(
    captured_update: dict[str, object], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("PRELUDE_CHANGE_LOG_LIMIT", "lots")

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["update"])

    assert excinfo.value.code == 2
    assert captured_update == {}


def test_failed_kind_exits_non_zero(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_update(**kwargs: object) -> ReconciliationResult:
        return _result(ReconcileMode.NORMAL, failed=True)

    monkeypatch.setattr(cli_module, "update_context", fake_update)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["update", "--root", str(tmp_path)])

    assert excinfo.value.code == 1


def test_unexpected_error_exits_non_zero(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_update(**kwargs: object) -> ReconciliationResult:
        raise OSError("disk unavailable")

    monkeypatch.setattr(cli_module, "update_context", fake_update)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["update", "--root", str(tmp_path)])

    assert excinfo.value.code == 1


def test_present_result_logs_changes(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="prelude.ui.cli"):
        cli_module.present_result(_result(ReconcileMode.DRY_RUN, failed=True))

    assert "+ stack.json frameworks: New item detected" in caplog.text
    assert "stack.json failed during inferring: pyproject.toml is invalid" in caplog.text
    assert "Dry run: nothing was written" in caplog.text


def test_mark_command(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    captured: dict[str, object] = {}

    def fake_mark(kind: DocumentKind, path: str, **kwargs: object) -> FieldState:
        captured.update(kind=kind, path=path, **kwargs)
        return FieldState(value="Remix", provenance=Provenance.MANUAL)

    monkeypatch.setattr(cli_module, "mark_manual", fake_mark)

    cli_module.main(["mark", "--root", str(tmp_path), "stack", "frameworks.Remix"])

    assert captured["kind"] is DocumentKind.STACK
    assert captured["path"] == "frameworks.Remix"


def test_rejected_mark_is_a_usage_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_mark(kind: DocumentKind, path: str, **kwargs: object) -> FieldState:
        raise ValueError("frameworks is merged per item")

    monkeypatch.setattr(cli_module, "mark_manual", fake_mark)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["mark", "--root", str(tmp_path), "stack", "frameworks"])

    assert excinfo.value.code == 2


def test_prune_command(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    calls: list[DocumentKind] = []

    def fake_prune(kind: DocumentKind, **kwargs: object) -> list[str]:
        calls.append(kind)
        return ["framework"]

    monkeypatch.setattr(cli_module, "prune_provenance", fake_prune)

    cli_module.main(["prune", "--root", str(tmp_path), "architecture"])

    assert calls == [DocumentKind.ARCHITECTURE]


def test_negative_debounce_is_rejected(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_watch(**kwargs: object) -> object:
        raise AssertionError("watch should not start")

    monkeypatch.setattr(cli_module, "watch_context", fake_watch)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["watch", "--root", str(tmp_path), "--debounce-ms", "-5"])

    assert excinfo.value.code == 2
