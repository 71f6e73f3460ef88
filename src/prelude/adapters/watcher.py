"""Debounced filesystem trigger for reconciliation passes.

Filesystem events are collected by :class:`DebouncedBatcher`. Every event
reschedules a single fire task; when the quiet window elapses the collected
paths are handed to one worker thread, so passes never overlap.
"""

from __future__ import annotations

import os
import queue
import threading
from collections import deque
from dataclasses import dataclass, field
from fnmatch import fnmatch
from logging import getLogger
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Final, Protocol, TypeAlias

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from prelude.config.watch import DEFAULT_DEBOUNCE_SECONDS
from prelude.domain.documents import DocumentKind
from prelude.domain.errors import BackupFailure
from prelude.domain.reconciliation import ReconcileMode

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from watchdog.observers.api import BaseObserver

    from prelude.config.watch import WatchConfig
    from prelude.domain.reconciliation import ReconciliationOrchestrator, ReconciliationResult

log = getLogger(__name__)

RESULT_HISTORY: Final[int] = 20

STACK_MANIFESTS: Final[tuple[str, ...]] = (
    "pyproject.toml",
    "setup.cfg",
    "setup.py",
    "requirements*.txt",
    "poetry.lock",
    "uv.lock",
    "Pipfile",
    "package.json",
    "Cargo.toml",
    "go.mod",
)
PROJECT_MANIFESTS: Final[tuple[str, ...]] = (
    "pyproject.toml",
    "setup.cfg",
    "setup.py",
    "package.json",
)
SOURCE_DIRECTORIES: Final[frozenset[str]] = frozenset({"src", "lib", "app", "pages", "tests"})
CONSTRAINT_CONFIGS: Final[tuple[str, ...]] = (
    "pyproject.toml",
    "ruff.toml",
    ".ruff.toml",
    "mypy.ini",
    "pyrightconfig.json",
    ".pre-commit-config.yaml",
    "tsconfig.json",
    "*eslint*",
    "*prettier*",
    "tailwind.config.*",
)


class Cancellable(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory: TypeAlias = "Callable[[float, Callable[[], None]], Cancellable]"
BatchHandler: TypeAlias = "Callable[[tuple[str, ...]], None]"


def _daemon_timer(interval: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


def kinds_for_paths(paths: Iterable[str]) -> list[DocumentKind]:
    """Return the document kinds affected by changes to ``paths``.

    Paths are relative to the project root, using ``/`` separators.
    """

    affected: set[DocumentKind] = set()
    for raw in paths:
        path = PurePosixPath(raw)
        name = path.name
        if _matches_any(name, STACK_MANIFESTS):
            affected.add(DocumentKind.STACK)
        if len(path.parts) == 1 and _matches_any(name, PROJECT_MANIFESTS):
            affected.add(DocumentKind.PROJECT)
        if SOURCE_DIRECTORIES.intersection(path.parts[:-1]):
            affected.add(DocumentKind.ARCHITECTURE)
        if _matches_any(name, CONSTRAINT_CONFIGS):
            affected.add(DocumentKind.CONSTRAINTS)
    return [kind for kind in DocumentKind if kind in affected]


def _matches_any(value: str, patterns: Iterable[str]) -> bool:
    return any(fnmatch(value, pattern) for pattern in patterns)


@dataclass(slots=True)
class DebouncedBatcher:
    """Collect paths and deliver them in batches after a quiet window."""

    handler: BatchHandler
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    timer_factory: TimerFactory = _daemon_timer
    _pending: dict[str, None] = field(default_factory=dict[str, None], init=False)
    _timer: Cancellable | None = field(default=None, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _batches: queue.Queue[tuple[str, ...] | None] = field(
        default_factory=queue.Queue[tuple[str, ...] | None], init=False, repr=False
    )
    _worker: threading.Thread | None = field(default=None, init=False, repr=False)
    _stopped: bool = field(default=False, init=False)

    def start(self) -> None:
        if self._worker is not None:
            return
        self._worker = threading.Thread(target=self._work, name="prelude-watch", daemon=True)
        self._worker.start()

    def add(self, path: str) -> None:
        with self._lock:
            if self._stopped:
                return
            self._pending[path] = None
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self.timer_factory(self.debounce_seconds, self.flush)
            self._timer.start()

    def flush(self) -> None:
        """Hand the pending paths to the worker now."""

        with self._lock:
            batch = tuple(self._pending)
            self._pending.clear()
            self._timer = None
            if batch and not self._stopped:
                self._batches.put(batch)

    def wait_idle(self) -> None:
        """Block until every queued batch has been handled."""

        self._batches.join()

    def stop(self, timeout: float | None = None) -> None:
        """Drop pending paths and stop the worker after its current batch."""

        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending.clear()
        self._batches.put(None)
        if self._worker is not None:
            self._worker.join(timeout)

    def _work(self) -> None:
        while True:
            batch = self._batches.get()
            try:
                if batch is None:
                    return
                self.handler(batch)
            except Exception:
                log.exception("Watch batch failed: %s", batch)
            finally:
                self._batches.task_done()


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, root_dir: Path, config: WatchConfig, on_change: Callable[[str], None]):
        super().__init__()
        self._root_dir = root_dir
        self._config = config
        self._on_change = on_change

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory and event.event_type == "modified":
            return
        for raw in (event.src_path, getattr(event, "dest_path", "")):
            if not raw:
                continue
            relative = self._relative(os.fsdecode(raw))
            if relative is not None and self.matches(relative):
                self._on_change(relative)

    def matches(self, relative: str) -> bool:
        if _matches_any(relative, self._config.ignore):
            return False
        return _matches_any(relative, self._config.patterns)

    def _relative(self, absolute: str) -> str | None:
        try:
            return Path(absolute).relative_to(self._root_dir).as_posix()
        except ValueError:
            return None


class ContextWatcher:
    """Run reconciliation passes for the kinds affected by file changes."""

    def __init__(
        self,
        orchestrator: ReconciliationOrchestrator,
        config: WatchConfig,
        *,
        root_dir: Path | None = None,
        timer_factory: TimerFactory = _daemon_timer,
    ) -> None:
        self.orchestrator = orchestrator
        self.config = config
        self.root_dir = (root_dir or orchestrator.root_dir).resolve()
        self.results: deque[ReconciliationResult] = deque(maxlen=RESULT_HISTORY)
        self.batcher = DebouncedBatcher(
            handler=self.handle_batch,
            debounce_seconds=config.debounce_seconds,
            timer_factory=timer_factory,
        )
        self.handler = _ChangeHandler(self.root_dir, config, self.batcher.add)
        self._observer: BaseObserver | None = None
        self._stopped = threading.Event()

    def start(self) -> None:
        self.batcher.start()
        observer = Observer()
        observer.schedule(self.handler, str(self.root_dir), recursive=True)
        observer.start()
        self._observer = observer
        log.info("Watching %s (debounce %.2fs)", self.root_dir, self.config.debounce_seconds)

    def handle_batch(self, paths: tuple[str, ...]) -> None:
        kinds = kinds_for_paths(paths)
        if not kinds:
            log.debug("No context documents affected by %s", ", ".join(paths))
            return
        log.info(
            "Detected changes in %s; reconciling %s",
            ", ".join(paths),
            ", ".join(kind.value for kind in kinds),
        )
        try:
            result = self.orchestrator.run(ReconcileMode.NORMAL, kinds=kinds, trigger=paths)
        except BackupFailure as exc:
            log.error("Skipped reconciliation, backup failed: %s", exc)  # noqa: TRY400
            return
        self.results.append(result)
        for outcome in result.failed:
            log.warning("%s failed: %s", outcome.kind.filename, outcome.error)

    def wait(self, poll_seconds: float = 0.5) -> None:
        """Block until :meth:`stop` is called."""

        while not self._stopped.wait(poll_seconds):
            pass

    def stop(self) -> None:
        """Stop watching; a pass in progress finishes its current kind first."""

        self.orchestrator.request_stop()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        self.batcher.stop()
        self._stopped.set()
        log.info("Stopped watching %s", self.root_dir)
