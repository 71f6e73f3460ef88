"""Read Python project manifests."""

from __future__ import annotations

import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

_COMMENT = re.compile(r"(^|\s)#.*$")
_OPTIONS = re.compile(r"\s--?[A-Za-z].*$")


def normalize_name(name: str) -> str:
    """Normalise a distribution name the way package indexes do."""

    return canonicalize_name(name)


def parse_requirement(line: str) -> tuple[str, str] | None:
    """Split a requirement string into ``(normalized name, specifier)``.

    Comments and per-line pip options are dropped. Option lines such as ``-r``,
    and anything that is not a valid PEP 508 requirement, yield ``None``. A
    direct reference reports its URL in place of a version specifier.
    """

    stripped = _OPTIONS.sub("", _COMMENT.sub("", line)).strip()
    if not stripped or stripped.startswith("-"):
        return None
    try:
        requirement = Requirement(stripped)
    except InvalidRequirement:
        return None
    specifier = str(requirement.specifier) or requirement.url or "*"
    return normalize_name(requirement.name), specifier


@dataclass(slots=True)
class ProjectManifest:
    """Merged view of ``pyproject.toml`` and ``requirements*.txt`` for one root."""

    root: Path
    pyproject: dict[str, Any] = field(default_factory=dict[str, Any])
    dependencies: dict[str, str] = field(default_factory=dict[str, str])
    dev_dependencies: dict[str, str] = field(default_factory=dict[str, str])

    @classmethod
    def load(cls, root: Path) -> ProjectManifest:
        manifest = cls(root=root)
        pyproject_path = root / "pyproject.toml"
        if pyproject_path.exists():
            try:
                with pyproject_path.open("rb") as handle:
                    manifest.pyproject = tomllib.load(handle)
            except tomllib.TOMLDecodeError as exc:
                raise ValueError(f"Invalid pyproject.toml at {pyproject_path}: {exc}") from exc
        manifest._collect_dependencies()
        return manifest

    @property
    def project(self) -> dict[str, Any]:
        return _table(self.pyproject, "project")

    @property
    def tool(self) -> dict[str, Any]:
        return _table(self.pyproject, "tool")

    @property
    def build_backend(self) -> str | None:
        backend = _table(self.pyproject, "build-system").get("build-backend")
        return backend if isinstance(backend, str) else None

    @property
    def all_dependencies(self) -> dict[str, str]:
        return {**self.dependencies, **self.dev_dependencies}

    def has(self, relative: str) -> bool:
        return (self.root / relative).exists()

    def _collect_dependencies(self) -> None:
        for requirement in _strings(self.project.get("dependencies")):
            self._add(self.dependencies, requirement)

        optional = _table(self.project, "optional-dependencies")
        for requirements in optional.values():
            for requirement in _strings(requirements):
                self._add(self.dev_dependencies, requirement)

        for requirements in _table(self.pyproject, "dependency-groups").values():
            for requirement in _strings(requirements):
                self._add(self.dev_dependencies, requirement)

        for path in sorted(self.root.glob("requirements*.txt")):
            target = self.dev_dependencies if "dev" in path.stem else self.dependencies
            for line in path.read_text(encoding="utf-8").splitlines():
                self._add(target, line)

    @staticmethod
    def _add(target: dict[str, str], requirement: str) -> None:
        parsed = parse_requirement(requirement)
        if parsed is not None:
            name, specifier = parsed
            target.setdefault(name, specifier)


def _table(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    return cast(dict[str, Any], value) if isinstance(value, dict) else {}


def _strings(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in cast(list[object], value) if isinstance(item, str)]
