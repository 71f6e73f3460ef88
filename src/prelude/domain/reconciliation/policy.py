"""Declarative merge policies per document kind.

Paths tagged manual in the provenance store are preserved first (see
:meth:`MergePolicy.whitelist`). Every other field follows its rule:

1. ``HARD_PRESERVE``: human-curated fields kept whenever the existing value differs
2. ``SET_UNION``: open sets of detected items, merged element by element
3. ``REPLACE``: the inferred value wins

Stamp fields sit outside these rules: the timestamp is rewritten on every
pass and write-once fields (such as a creation date) keep their first value.

The engine is generic over these tables; adding a document kind means adding a
policy here, not a new merge procedure.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Final

from prelude.domain.documents import DocumentKind
from prelude.domain.values import canonical_json, get_path, top_level

if TYPE_CHECKING:
    from collections.abc import Iterable

    from prelude.domain.documents import DocumentData

TIMESTAMP_FIELD: Final[str] = "updatedAt"


class FieldRule(StrEnum):
    HARD_PRESERVE = "hard_preserve"
    SET_UNION = "set_union"
    REPLACE = "replace"


@dataclass(frozen=True, slots=True)
class SetUnionRule:
    """An array field merged as a set.

    String elements are their own identity. Object elements are identified by
    the value of ``key`` (for example a directory's ``path``).
    """

    field: str
    key: str | None = None

    def identity(self, element: object) -> str:
        if self.key is not None and isinstance(element, Mapping):
            value = element.get(self.key)  # pyright: ignore[reportUnknownMemberType]
            if value is not None:
                return str(value)  # pyright: ignore[reportUnknownArgumentType]
        if isinstance(element, str):
            return element
        return canonical_json(element)

    def element_path(self, element: object) -> str:
        return f"{self.field}.{self.identity(element)}"


@dataclass(frozen=True, slots=True)
class MergePolicy:
    kind: DocumentKind
    hard_preserve: tuple[str, ...] = ()
    set_union: tuple[SetUnionRule, ...] = ()
    write_once: tuple[str, ...] = ()
    timestamp_field: str = TIMESTAMP_FIELD

    def set_union_rule(self, field: str) -> SetUnionRule | None:
        for rule in self.set_union:
            if rule.field == field:
                return rule
        return None

    def is_stamp(self, field: str) -> bool:
        """Whether ``field`` is stamped rather than merged, reported or tracked."""

        return field == self.timestamp_field or field in self.write_once

    def whitelist(self, manual_paths: Iterable[str]) -> list[str]:
        """Return the manual paths governed by whitelist preservation.

        Set-union fields are only ever tracked per element, and stamp fields
        are owned by the engine, so neither can be whitelisted.
        """

        return [
            path
            for path in manual_paths
            if self.set_union_rule(top_level(path)) is None
            and not self.is_stamp(top_level(path))
        ]

    def value_at(self, data: DocumentData, path: str) -> Any:
        """Resolve ``path`` in ``data``, including set-union element paths."""

        rule = self.set_union_rule(top_level(path))
        if rule is None or path == rule.field:
            return get_path(data, path)
        items = data.get(rule.field)
        if not isinstance(items, list):
            return None
        for item in items:  # pyright: ignore[reportUnknownVariableType]
            if rule.element_path(item) == path:
                return item  # pyright: ignore[reportUnknownVariableType]
        return None

    def rule_for(self, path: str) -> FieldRule:
        if path in self.hard_preserve:
            return FieldRule.HARD_PRESERVE
        if self.set_union_rule(path) is not None:
            return FieldRule.SET_UNION
        return FieldRule.REPLACE


POLICIES: Final[dict[DocumentKind, MergePolicy]] = {
    DocumentKind.PROJECT: MergePolicy(
        kind=DocumentKind.PROJECT,
        hard_preserve=("team", "goals"),
        write_once=("createdAt",),
    ),
    DocumentKind.STACK: MergePolicy(
        kind=DocumentKind.STACK,
        set_union=(
            SetUnionRule("frameworks"),
            SetUnionRule("buildTools"),
            SetUnionRule("testingFrameworks"),
            SetUnionRule("styling"),
            SetUnionRule("cicd"),
        ),
    ),
    DocumentKind.ARCHITECTURE: MergePolicy(
        kind=DocumentKind.ARCHITECTURE,
        set_union=(
            SetUnionRule("directories", key="path"),
            SetUnionRule("entryPoints", key="file"),
        ),
    ),
    DocumentKind.CONSTRAINTS: MergePolicy(
        kind=DocumentKind.CONSTRAINTS,
        set_union=(
            SetUnionRule("mustUse"),
            SetUnionRule("mustNotUse"),
            SetUnionRule("preferences", key="category"),
        ),
    ),
}


def policy_for(kind: DocumentKind) -> MergePolicy:
    return POLICIES[kind]
