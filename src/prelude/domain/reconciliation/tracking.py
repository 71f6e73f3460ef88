"""Record the outcome of a merge in the provenance store.

A field whose merged value equals what inference produced is tagged inferred,
even when it was manual before. Anything else is tagged manual so the next pass
protects it. Set-union fields are tracked per element: retained items that
inference did not produce become manual, as do hand-edited items that
inference still detects, and the field itself is tagged merged when it
carries such items.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from prelude.domain.provenance import Provenance
from prelude.domain.values import get_path, values_equal, with_path

if TYPE_CHECKING:
    from prelude.domain.documents import ContextDocument, DocumentKind
    from prelude.domain.provenance import ProvenanceStore

    from .policy import MergePolicy, SetUnionRule


def track_merge_outcome(
    store: ProvenanceStore,
    kind: DocumentKind,
    merged: ContextDocument,
    inferred: ContextDocument,
    *,
    policy: MergePolicy,
    force: bool = False,
) -> None:
    """Tag every field of ``merged`` as inferred or manual for the next pass.

    With ``force`` every remaining manual record of ``kind`` is re-tagged
    inferred, since a force pass replaced those values with inference.
    """

    merged_data = merged.to_data()
    inferred_data = inferred.to_data()
    nested_manual = _nested_manual_paths(store, kind, policy)

    for path in nested_manual:
        merged_value = get_path(merged_data, path)
        inferred_value = get_path(inferred_data, path)
        if values_equal(merged_value, inferred_value):
            store.track_inferred(kind, path, inferred_value)
        else:
            store.record_inferred_hash(kind, path, inferred_value)

    baseline = inferred_data
    for path in nested_manual:
        if store.is_manual(kind, path):
            baseline = with_path(baseline, path, get_path(merged_data, path))

    for key, merged_value in merged_data.items():
        if policy.is_stamp(key):
            continue
        inferred_value = inferred_data.get(key)
        set_rule = policy.set_union_rule(key)
        if set_rule is not None and isinstance(merged_value, list):
            items: list[Any] = merged_value  # pyright: ignore[reportUnknownVariableType]
            _track_set(store, kind, set_rule, items, inferred_value)
        elif values_equal(merged_value, baseline.get(key)):
            tracked = inferred_value if inferred_value is not None else merged_value
            store.track_inferred(kind, key, tracked)
        else:
            _keep_manual(store, kind, key, merged_value)
            if inferred_value is not None:
                store.record_inferred_hash(kind, key, inferred_value)

    if force:
        for path in store.manual_field_paths(kind):
            store.track_inferred(kind, path, policy.value_at(merged_data, path))


def _nested_manual_paths(
    store: ProvenanceStore, kind: DocumentKind, policy: MergePolicy
) -> list[str]:
    return [path for path in policy.whitelist(store.manual_field_paths(kind)) if "." in path]


def _keep_manual(store: ProvenanceStore, kind: DocumentKind, path: str, value: Any) -> None:
    state = store.field_state(kind, path)
    unchanged = (
        state is not None
        and state.provenance is Provenance.MANUAL
        and values_equal(state.value, value)
    )
    if unchanged:
        return
    store.track_manual(kind, path, value)


def _track_set(
    store: ProvenanceStore,
    kind: DocumentKind,
    rule: SetUnionRule,
    merged_items: list[Any],
    inferred_items: Any,
) -> None:
    inferred_list: list[Any] = inferred_items if isinstance(inferred_items, list) else []
    inferred_by_identity = {rule.identity(item): item for item in inferred_list}

    for item in merged_items:
        path = rule.element_path(item)
        identity = rule.identity(item)
        if identity not in inferred_by_identity:
            _keep_manual(store, kind, path, item)
        elif not store.is_manual(kind, path):
            continue
        elif values_equal(item, inferred_by_identity[identity]):
            store.track_inferred(kind, path, item)
        else:
            _keep_manual(store, kind, path, item)
            store.record_inferred_hash(kind, path, inferred_by_identity[identity])

    if values_equal(merged_items, inferred_items):
        store.track_inferred(kind, rule.field, merged_items)
    else:
        store.track_merged(kind, rule.field, merged_items, inferred_value=inferred_items)
