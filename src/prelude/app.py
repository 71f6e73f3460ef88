"""Application entry points wiring the filesystem adapters to the reconciler."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from prelude.adapters.filesystem import (
    JsonChangeLog,
    JsonDocumentRepository,
    JsonProvenanceBackend,
)
from prelude.adapters.inference import PythonProjectInference
from prelude.adapters.watcher import ContextWatcher
from prelude.config import get_context_config, get_watch_config
from prelude.domain.provenance import ProvenanceStore
from prelude.domain.reconciliation import (
    ReconcileMode,
    ReconciliationOrchestrator,
    policy_for,
)
from prelude.domain.values import top_level

if TYPE_CHECKING:
    from prelude.config import ContextConfig, WatchConfig
    from prelude.domain.documents import DocumentKind
    from prelude.domain.ports import InferDocument
    from prelude.domain.provenance import FieldState
    from prelude.domain.reconciliation import ReconciliationResult


log = getLogger(__name__)


def build_orchestrator(
    config: ContextConfig | None = None,
    *,
    infer: InferDocument | None = None,
) -> ReconciliationOrchestrator:
    """Create an orchestrator backed by the JSON files under the context directory."""

    effective_config = config or get_context_config()
    return ReconciliationOrchestrator(
        root_dir=effective_config.resolve_root(),
        documents=JsonDocumentRepository(effective_config.context_dir),
        provenance=_provenance_backend(effective_config),
        infer=infer or PythonProjectInference(),
        change_log=JsonChangeLog(
            effective_config.change_log_path, limit=effective_config.change_log_limit
        ),
    )


def update_context(
    *,
    mode: ReconcileMode = ReconcileMode.NORMAL,
    config: ContextConfig | None = None,
    infer: InferDocument | None = None,
    kinds: list[DocumentKind] | None = None,
) -> ReconciliationResult:
    """Run one reconciliation pass over the context documents of a project."""

    orchestrator = build_orchestrator(config, infer=infer)
    log.info("Updating context in %s", orchestrator.root_dir)
    result = orchestrator.run(mode, kinds=kinds)
    log.info(
        "Finished context update: changes=%s, updated=%s, failed=%s",
        len(result.changes),
        len(result.succeeded),
        len(result.failed),
    )
    return result


def watch_context(
    *,
    config: ContextConfig | None = None,
    watch_config: WatchConfig | None = None,
    infer: InferDocument | None = None,
) -> ContextWatcher:
    """Start watching the project; the caller stops the returned watcher."""

    effective_config = config or get_context_config()
    effective_watch = watch_config or get_watch_config(
        extra_ignore=(f"{effective_config.context_dir_name}/*",)
    )
    watcher = ContextWatcher(
        build_orchestrator(effective_config, infer=infer),
        effective_watch,
        root_dir=effective_config.resolve_root(),
    )
    watcher.start()
    return watcher


def mark_manual(
    kind: DocumentKind,
    path: str,
    *,
    config: ContextConfig | None = None,
) -> FieldState:
    """Tag the current value at ``path`` as manually maintained.

    Set-union fields are tracked per element, so ``path`` must name an element
    (``frameworks.Remix``, ``directories.src/api``) rather than the whole field.
    """

    effective_config = config or get_context_config()
    policy = policy_for(kind)
    if policy.set_union_rule(path) is not None:
        raise ValueError(
            f"{path} is merged per item; mark an item instead, e.g. {path}.<item>"
        )
    if policy.is_stamp(top_level(path)):
        raise ValueError(f"{path} is maintained automatically and cannot be marked")

    document = JsonDocumentRepository(effective_config.context_dir).read(kind)
    if document is None:
        raise ValueError(f"{kind.filename} does not exist yet; run an update first")
    value = policy.value_at(document.to_data(), path)
    if value is None:
        raise ValueError(f"{path} has no value in {kind.filename}")

    store = ProvenanceStore.open(_provenance_backend(effective_config))
    state = store.track_manual(kind, path, value)
    store.persist()
    log.info("Marked %s in %s as manual", path, kind.filename)
    return state


def prune_provenance(kind: DocumentKind, *, config: ContextConfig | None = None) -> list[str]:
    """Forget provenance records for fields no longer present in the document."""

    effective_config = config or get_context_config()
    document = JsonDocumentRepository(effective_config.context_dir).read(kind)
    keep = list(document.to_data()) if document is not None else []
    store = ProvenanceStore.open(_provenance_backend(effective_config))
    removed = store.prune(kind, keep)
    if removed:
        store.persist()
    log.info("Pruned %s provenance records from %s", len(removed), kind.filename)
    return removed


def _provenance_backend(config: ContextConfig) -> JsonProvenanceBackend:
    return JsonProvenanceBackend(state_path=config.state_path, history_dir=config.history_dir)
