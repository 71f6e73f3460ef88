from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest
from watchdog.events import FileModifiedEvent, FileMovedEvent

from prelude.adapters.watcher import (
    RESULT_HISTORY,
    ContextWatcher,
    DebouncedBatcher,
    kinds_for_paths,
)
from prelude.config.watch import WatchConfig
from prelude.domain.documents import DocumentKind
from prelude.domain.errors import BackupFailure
from prelude.domain.reconciliation import (
    KindOutcome,
    PassStage,
    ReconciliationResult,
    ReconcileMode,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path


class FakeTimer:
    def __init__(self, interval: float, function: Callable[[], None]) -> None:
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.function()


class FakeTimers:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, interval: float, function: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> FakeTimer:
        return self.timers[-1]


class StubOrchestrator:
    def __init__(self, root_dir: Path, *, error: Exception | None = None) -> None:
        self.root_dir = root_dir
        self.error = error
        self.calls: list[tuple[ReconcileMode, list[DocumentKind], tuple[str, ...]]] = []
        self.stop_requested = False

    def run(
        self,
        mode: ReconcileMode = ReconcileMode.NORMAL,
        *,
        kinds: Iterable[DocumentKind] | None = None,
        trigger: Iterable[str] = (),
    ) -> ReconciliationResult:
        selected = list(kinds or DocumentKind)
        self.calls.append((mode, selected, tuple(trigger)))
        if self.error is not None:
            raise self.error
        outcomes = [KindOutcome(kind=kind) for kind in selected]
        outcomes[-1].stage = PassStage.FAILED
        outcomes[-1].error = "boom"
        return ReconciliationResult(
            mode=mode,
            started_at=datetime(2025, 3, 1, tzinfo=UTC),
            outcomes=outcomes,
            trigger=tuple(trigger),
        )

    def request_stop(self) -> None:
        self.stop_requested = True


@pytest.mark.parametrize(
    ("paths", "expected"),
    [
        (["pyproject.toml"], [DocumentKind.PROJECT, DocumentKind.STACK, DocumentKind.CONSTRAINTS]),
        (["requirements-dev.txt"], [DocumentKind.STACK]),
        (["services/api/pyproject.toml"], [DocumentKind.STACK, DocumentKind.CONSTRAINTS]),
        (["src/demo/cli.py"], [DocumentKind.ARCHITECTURE]),
        ([".pre-commit-config.yaml", "tests/test_cli.py"], [
            DocumentKind.ARCHITECTURE,
            DocumentKind.CONSTRAINTS,
        ]),
        (["README.md", "docs/index.md"], []),
    ],
)
def test_kinds_for_paths(paths: list[str], expected: list[DocumentKind]) -> None:
    assert kinds_for_paths(paths) == expected


def test_batcher_coalesces_events_into_one_batch() -> None:
    timers = FakeTimers()
    batches: list[tuple[str, ...]] = []
    batcher = DebouncedBatcher(batches.append, debounce_seconds=0.5, timer_factory=timers)
    batcher.start()

    batcher.add("pyproject.toml")
    batcher.add("src/app.py")
    batcher.add("pyproject.toml")
    timers.last.fire()
    batcher.wait_idle()
    batcher.stop(timeout=1)

    assert batches == [("pyproject.toml", "src/app.py")]
    assert len(timers.timers) == 3
    assert all(timer.interval == 0.5 for timer in timers.timers)
    assert [timer.cancelled for timer in timers.timers] == [True, True, False]


def test_flush_without_pending_paths_queues_nothing() -> None:
    batches: list[tuple[str, ...]] = []
    batcher = DebouncedBatcher(batches.append, timer_factory=FakeTimers())
    batcher.start()

    batcher.flush()
    batcher.wait_idle()
    batcher.stop(timeout=1)

    assert batches == []


def test_stopped_batcher_drops_pending_and_new_paths() -> None:
    timers = FakeTimers()
    batches: list[tuple[str, ...]] = []
    batcher = DebouncedBatcher(batches.append, timer_factory=timers)
    batcher.start()
    batcher.add("pyproject.toml")

    batcher.stop(timeout=1)
    batcher.add("uv.lock")
    timers.last.fire()

    assert timers.timers[0].cancelled
    assert len(timers.timers) == 1
    assert batches == []


def test_failing_batch_does_not_stop_the_worker(caplog: pytest.LogCaptureFixture) -> None:
    timers = FakeTimers()
    handled: list[tuple[str, ...]] = []

    def handler(batch: tuple[str, ...]) -> None:
        if batch == ("bad",):
            raise RuntimeError("kaboom")
        handled.append(batch)

    batcher = DebouncedBatcher(handler, timer_factory=timers)
    batcher.start()

    with caplog.at_level(logging.ERROR, logger="prelude.adapters.watcher"):
        batcher.add("bad")
        timers.last.fire()
        batcher.add("good")
        timers.last.fire()
        batcher.wait_idle()
    batcher.stop(timeout=1)

    assert handled == [("good",)]
    assert "Watch batch failed" in caplog.text


def test_watch_patterns_respect_ignores(tmp_path: Path) -> None:
    watcher = ContextWatcher(
        StubOrchestrator(tmp_path),
        WatchConfig(ignore=(".context/*", "*/__pycache__/*", "*.pyc")),
        timer_factory=FakeTimers(),
    )

    assert watcher.handler.matches("pyproject.toml")
    assert watcher.handler.matches("src/demo/cli.py")
    assert not watcher.handler.matches(".context/stack.json")
    assert not watcher.handler.matches("src/demo/__pycache__/cli.cpython-312.pyc")
    assert not watcher.handler.matches("docs/index.md")


def test_file_events_trigger_a_pass_for_affected_kinds(tmp_path: Path) -> None:
    orchestrator = StubOrchestrator(tmp_path)
    timers = FakeTimers()
    watcher = ContextWatcher(orchestrator, WatchConfig(), timer_factory=timers)
    root = watcher.root_dir
    watcher.batcher.start()

    watcher.handler.dispatch(FileModifiedEvent(str(root / "pyproject.toml")))
    watcher.handler.dispatch(
        FileMovedEvent(str(root / "src" / "old.py"), str(root / "src" / "new.py"))
    )
    watcher.handler.dispatch(FileModifiedEvent(str(root / ".context" / "stack.json")))
    timers.last.fire()
    watcher.batcher.wait_idle()
    watcher.stop()

    assert orchestrator.calls == [
        (
            ReconcileMode.NORMAL,
            list(DocumentKind),
            ("pyproject.toml", "src/old.py", "src/new.py"),
        )
    ]
    assert len(watcher.results) == 1
    assert orchestrator.stop_requested


def test_unrelated_batch_does_not_run_a_pass(tmp_path: Path) -> None:
    orchestrator = StubOrchestrator(tmp_path)
    watcher = ContextWatcher(orchestrator, WatchConfig(), timer_factory=FakeTimers())

    watcher.handle_batch(("README.md",))

    assert orchestrator.calls == []
    assert not watcher.results


def test_failed_kinds_are_logged(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    watcher = ContextWatcher(
        StubOrchestrator(tmp_path), WatchConfig(), timer_factory=FakeTimers()
    )

    with caplog.at_level(logging.WARNING, logger="prelude.adapters.watcher"):
        watcher.handle_batch(("uv.lock",))

    assert "stack.json failed: boom" in caplog.text


def test_backup_failure_skips_the_pass(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    orchestrator = StubOrchestrator(tmp_path, error=BackupFailure("disk full"))
    watcher = ContextWatcher(orchestrator, WatchConfig(), timer_factory=FakeTimers())

    with caplog.at_level(logging.ERROR, logger="prelude.adapters.watcher"):
        watcher.handle_batch(("uv.lock",))

    assert not watcher.results
    assert "backup failed" in caplog.text


def test_only_recent_results_are_kept(tmp_path: Path) -> None:
    orchestrator = StubOrchestrator(tmp_path)
    watcher = ContextWatcher(orchestrator, WatchConfig(), timer_factory=FakeTimers())

    for index in range(RESULT_HISTORY + 5):
        watcher.handle_batch((f"requirements-{index}.txt",))

    assert len(orchestrator.calls) == RESULT_HISTORY + 5
    assert len(watcher.results) == RESULT_HISTORY
    assert watcher.results[0].trigger == ("requirements-5.txt",)
    assert watcher.results[-1].trigger == (f"requirements-{RESULT_HISTORY + 4}.txt",)
