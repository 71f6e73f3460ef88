"""Value primitives shared by the merge engine and the provenance store.

Field paths are dot-delimited addresses into nested mappings. Arrays are
addressed as a whole; a path never indexes into a list.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any, Final

HASH_LENGTH: Final[int] = 16

_MISSING: Final = object()


def canonical_json(value: object) -> str:
    """Serialise ``value`` with sorted keys and compact separators."""

    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def content_hash(value: object) -> str:
    """Return a stable digest of ``value`` that ignores key order and whitespace."""

    digest = hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()
    return digest[:HASH_LENGTH]


def values_equal(left: object, right: object) -> bool:
    return canonical_json(left) == canonical_json(right)


def is_present(value: object) -> bool:
    return value is not None and value is not _MISSING


def split_path(path: str) -> tuple[str, ...]:
    if not path:
        raise ValueError("Field path must not be empty")
    return tuple(path.split("."))


def top_level(path: str) -> str:
    return split_path(path)[0]


def get_path(data: Mapping[str, Any] | None, path: str) -> Any:
    """Return the value at ``path`` or ``None`` when any segment is absent."""

    current: Any = data
    for key in split_path(path):
        if not isinstance(current, Mapping):
            return None
        current = current.get(key, _MISSING)
        if current is _MISSING:
            return None
    return current


def with_path(data: Mapping[str, Any], path: str, value: Any) -> dict[str, Any]:
    """Return a copy of ``data`` with ``value`` written at ``path``.

    Containers along the path are copied, so neither ``data`` nor anything it
    shares with other documents is mutated. A ``None`` value removes the key.
    """

    head, *rest = split_path(path)
    result = dict(data)
    if not rest:
        if value is None:
            result.pop(head, None)
        else:
            result[head] = value
        return result

    child = result.get(head)
    child_map: Mapping[str, Any] = child if isinstance(child, Mapping) else {}
    result[head] = with_path(child_map, ".".join(rest), value)
    return result


def ordered_keys(*sources: Mapping[str, Any] | tuple[str, ...] | None) -> list[str]:
    """Return the union of keys of ``sources`` preserving first-seen order."""

    seen: dict[str, None] = {}
    for source in sources:
        if source is None:
            continue
        for key in source:
            seen.setdefault(key, None)
    return list(seen)
