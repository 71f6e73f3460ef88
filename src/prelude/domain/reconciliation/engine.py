"""Field-provenance merge engine.

``MergeEngine.merge`` reconciles a previously persisted document with a freshly
inferred one. It is a pure function of its inputs: it reads provenance through
a :class:`~prelude.domain.provenance.ProvenanceView` and never records
anything. Recording the outcome is the orchestrator's job (see ``tracking``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from prelude.domain.documents import DocumentKind, parse_document, schema_fields
from prelude.domain.errors import MissingInferredDocument
from prelude.domain.values import get_path, is_present, ordered_keys, values_equal, with_path

from .contracts import ChangeType, MergeChange, MergeResult
from .policy import POLICIES, FieldRule, MergePolicy, SetUnionRule

if TYPE_CHECKING:
    from collections.abc import Callable

    from prelude.domain.documents import ContextDocument, DocumentData
    from prelude.domain.provenance import ProvenanceView


def _utcnow() -> datetime:
    return datetime.now(UTC)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(slots=True)
class MergeEngine:
    """Apply the per-kind merge policies to pairs of documents."""

    policies: dict[DocumentKind, MergePolicy] = field(default_factory=lambda: dict(POLICIES))
    clock: Callable[[], datetime] = _utcnow

    def merge(
        self,
        kind: DocumentKind,
        existing: ContextDocument | None,
        inferred: ContextDocument | None,
        provenance: ProvenanceView,
    ) -> MergeResult:
        """Return the merged document of ``kind`` and the ordered list of changes."""

        if inferred is None:
            raise MissingInferredDocument(kind, "no inferred document to merge against")

        policy = self.policies[kind]
        inferred_data = inferred.to_data()
        if existing is None:
            merged_data, changes = _first_run(kind, policy, inferred_data)
        else:
            merge = _DocumentMerge(
                kind=kind,
                policy=policy,
                existing=existing.to_data(),
                inferred=inferred_data,
                provenance=provenance,
            )
            merged_data, changes = merge.run()

        merged_data[policy.timestamp_field] = format_timestamp(self.clock())
        return MergeResult(merged=parse_document(kind, merged_data), changes=changes)

    def overwrite(
        self,
        kind: DocumentKind,
        existing: ContextDocument | None,
        inferred: ContextDocument | None,
    ) -> MergeResult:
        """Force-mode reconciliation: the inferred document replaces ``existing`` verbatim.

        Changes are reported as a plain field-by-field replacement diff. Only the
        timestamp is restamped.
        """

        if inferred is None:
            raise MissingInferredDocument(kind, "no inferred document to overwrite with")

        policy = self.policies[kind]
        inferred_data = inferred.to_data()
        existing_data = existing.to_data() if existing is not None else {}
        changes: list[MergeChange] = []
        for key in ordered_keys(schema_fields(kind), inferred_data, existing_data):
            if key == policy.timestamp_field:
                continue
            change = _replace_change(key, existing_data.get(key), inferred_data.get(key))
            if change is not None:
                changes.append(change)
        inferred_data[policy.timestamp_field] = format_timestamp(self.clock())
        return MergeResult(merged=parse_document(kind, inferred_data), changes=changes)


def _first_run(
    kind: DocumentKind, policy: MergePolicy, inferred: DocumentData
) -> tuple[DocumentData, list[MergeChange]]:
    changes = [
        MergeChange(
            field=key,
            type=ChangeType.ADDED,
            new_value=inferred[key],
            reason="New inferred value",
        )
        for key in ordered_keys(schema_fields(kind), inferred)
        if key != policy.timestamp_field and is_present(inferred.get(key))
    ]
    return dict(inferred), changes


def _replace_change(key: str, old_value: Any, new_value: Any) -> MergeChange | None:
    if values_equal(old_value, new_value):
        return None
    if old_value is None:
        return MergeChange(
            field=key, type=ChangeType.ADDED, new_value=new_value, reason="New inferred value"
        )
    if new_value is None:
        return MergeChange(
            field=key,
            type=ChangeType.REMOVED,
            old_value=old_value,
            reason="No longer inferred from codebase",
        )
    return MergeChange(
        field=key,
        type=ChangeType.MODIFIED,
        old_value=old_value,
        new_value=new_value,
        reason="Codebase changed",
    )


@dataclass(slots=True, kw_only=True)
class _DocumentMerge:
    kind: DocumentKind
    policy: MergePolicy
    existing: DocumentData
    inferred: DocumentData
    provenance: ProvenanceView
    merged: DocumentData = field(default_factory=dict[str, Any])
    changes: list[MergeChange] = field(default_factory=list[MergeChange])

    def run(self) -> tuple[DocumentData, list[MergeChange]]:
        self.merged = dict(self.inferred)
        whitelisted = self._preserve_manual_paths()

        for key in ordered_keys(schema_fields(self.kind), self.inferred, self.existing):
            if key == self.policy.timestamp_field or key in whitelisted:
                continue
            if key in self.policy.write_once and self.existing.get(key) is not None:
                self.merged[key] = self.existing[key]
                continue
            rule = self.policy.rule_for(key)
            if rule is FieldRule.HARD_PRESERVE and self._hard_preserve(key):
                continue
            set_rule = self.policy.set_union_rule(key)
            if rule is FieldRule.SET_UNION and set_rule is not None and self._merge_set(set_rule):
                continue
            self._replace(key)

        return self.merged, self.changes

    def _preserve_manual_paths(self) -> set[str]:
        preserved: set[str] = set()
        manual_paths = self.policy.whitelist(self.provenance.manual_field_paths(self.kind))
        for path in manual_paths:
            existing_value = get_path(self.existing, path)
            if existing_value is None:
                continue
            inferred_value = get_path(self.inferred, path)
            self.merged = with_path(self.merged, path, existing_value)
            preserved.add(path)
            if values_equal(existing_value, inferred_value):
                continue
            reason = "Manually edited field preserved"
            if self.provenance.has_inferred_drifted(self.kind, path, inferred_value):
                reason = f"{reason}; inference has changed since it was last recorded"
            self.changes.append(
                MergeChange(
                    field=path,
                    type=ChangeType.PRESERVED,
                    old_value=inferred_value,
                    new_value=existing_value,
                    reason=reason,
                )
            )
        return preserved

    def _hard_preserve(self, key: str) -> bool:
        existing_value = self.existing.get(key)
        inferred_value = self.inferred.get(key)
        if existing_value is None or values_equal(existing_value, inferred_value):
            return False
        self.merged[key] = existing_value
        self.changes.append(
            MergeChange(
                field=key,
                type=ChangeType.PRESERVED,
                old_value=inferred_value,
                new_value=existing_value,
                reason="User-maintained field",
            )
        )
        return True

    def _merge_set(self, rule: SetUnionRule) -> bool:
        existing_items = self.existing.get(rule.field)
        inferred_items = self.inferred.get(rule.field)
        if not _is_list_or_none(existing_items) or not _is_list_or_none(inferred_items):
            return False

        existing_by_identity = {rule.identity(item): item for item in existing_items or []}
        result: list[Any] = []
        seen: set[str] = set()

        for item in inferred_items or []:
            identity = rule.identity(item)
            if identity in seen:
                continue
            seen.add(identity)
            previous = existing_by_identity.get(identity)
            if previous is None:
                result.append(item)
                self._record(rule.field, ChangeType.ADDED, "New item detected", new_value=item)
            elif values_equal(previous, item):
                result.append(item)
            elif self.provenance.is_manual(self.kind, rule.element_path(previous)):
                result.append(previous)
                self._record(
                    rule.field,
                    ChangeType.PRESERVED,
                    "Manually edited item preserved",
                    old_value=item,
                    new_value=previous,
                )
            else:
                result.append(item)
                self._record(
                    rule.field,
                    ChangeType.MODIFIED,
                    "Detected item changed",
                    old_value=previous,
                    new_value=item,
                )

        for item in existing_items or []:
            identity = rule.identity(item)
            if identity in seen:
                continue
            seen.add(identity)
            if self.provenance.is_manual(self.kind, rule.element_path(item)):
                result.append(item)
                self._record(
                    rule.field,
                    ChangeType.PRESERVED,
                    "Manually added item preserved",
                    new_value=item,
                )
            else:
                self._record(
                    rule.field, ChangeType.REMOVED, "No longer detected in project", old_value=item
                )

        if result or inferred_items is not None:
            self.merged[rule.field] = result
        else:
            self.merged.pop(rule.field, None)
        return True

    def _replace(self, key: str) -> None:
        change = _replace_change(key, self.existing.get(key), self.merged.get(key))
        if change is not None:
            self.changes.append(change)

    def _record(
        self,
        field_name: str,
        change_type: ChangeType,
        reason: str,
        *,
        old_value: Any = None,
        new_value: Any = None,
    ) -> None:
        self.changes.append(
            MergeChange(
                field=field_name,
                type=change_type,
                reason=reason,
                old_value=old_value,
                new_value=new_value,
            )
        )


def _is_list_or_none(value: object) -> bool:
    return value is None or isinstance(value, list)

