"""Infer context documents for a Python project.

This is the reference inference collaborator used by the CLI. It reads the
project manifest and the top of the directory tree; it never imports or runs
project code.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Final

from prelude.domain.documents import (
    ArchitectureDocument,
    CodeStyle,
    ConstraintsDocument,
    DirectoryEntry,
    DocumentationPolicy,
    DocumentKind,
    EntryPoint,
    Preference,
    ProjectDocument,
    StackDocument,
    TestingPolicy,
)
from prelude.domain.reconciliation.engine import format_timestamp

from .manifest import ProjectManifest

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from prelude.domain.documents import ContextDocument

FRAMEWORKS: Final[dict[str, str]] = {
    "django": "Django",
    "flask": "Flask",
    "fastapi": "FastAPI",
    "starlette": "Starlette",
    "aiohttp": "aiohttp",
    "pydantic": "Pydantic",
    "celery": "Celery",
    "click": "Click",
    "typer": "Typer",
    "pandas": "pandas",
    "numpy": "NumPy",
    "torch": "PyTorch",
    "tensorflow": "TensorFlow",
    "httpx": "HTTPX",
    "requests": "Requests",
}
TESTING_FRAMEWORKS: Final[dict[str, str]] = {
    "pytest": "pytest",
    "hypothesis": "Hypothesis",
    "tox": "tox",
    "nox": "nox",
    "coverage": "coverage.py",
    "pytest-cov": "pytest-cov",
}
BUILD_BACKENDS: Final[dict[str, str]] = {
    "setuptools": "setuptools",
    "hatchling": "Hatch",
    "poetry": "Poetry",
    "flit_core": "Flit",
    "pdm": "PDM",
    "maturin": "maturin",
}
TOOLS: Final[tuple[str, ...]] = ("ruff", "black", "isort", "mypy", "pyright", "pre-commit")
ORMS: Final[dict[str, str]] = {
    "sqlalchemy": "SQLAlchemy",
    "django": "Django ORM",
    "peewee": "peewee",
    "tortoise-orm": "Tortoise ORM",
}
DATABASES: Final[dict[str, str]] = {
    "psycopg": "PostgreSQL",
    "psycopg2": "PostgreSQL",
    "psycopg2-binary": "PostgreSQL",
    "asyncpg": "PostgreSQL",
    "pymysql": "MySQL",
    "pymongo": "MongoDB",
    "redis": "Redis",
}
DIRECTORY_PURPOSES: Final[dict[str, str]] = {
    "src": "Source code",
    "tests": "Tests",
    "test": "Tests",
    "docs": "Documentation",
    "scripts": "Scripts",
    "examples": "Examples",
    "config": "Configuration",
    "migrations": "Database migrations",
    "adapters": "Adapters to external systems",
    "domain": "Domain model",
    "api": "API layer",
    "cli": "Command-line interface",
    "ui": "User interface",
}
EXCLUDED_DIRECTORIES: Final[frozenset[str]] = frozenset(
    {"node_modules", "venv", "env", "build", "dist", "site-packages", "__pycache__", "htmlcov"}
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class PythonProjectInference:
    """Callable implementing the ``InferDocument`` port for Python projects."""

    clock: Callable[[], datetime] = _utcnow
    max_depth: int = 2

    def __call__(self, kind: DocumentKind, root_dir: Path) -> ContextDocument:
        manifest = ProjectManifest.load(root_dir)
        now = format_timestamp(self.clock())
        match kind:
            case DocumentKind.PROJECT:
                return self._project(manifest, now)
            case DocumentKind.STACK:
                return self._stack(manifest, now)
            case DocumentKind.ARCHITECTURE:
                return self._architecture(manifest, now)
            case DocumentKind.CONSTRAINTS:
                return self._constraints(manifest, now)

    def _project(self, manifest: ProjectManifest, now: str) -> ProjectDocument:
        project = manifest.project
        urls = project.get("urls") if isinstance(project.get("urls"), dict) else {}
        return ProjectDocument(
            name=project.get("name") or manifest.root.resolve().name,
            description=project.get("description") or "",
            version=_str_or_none(project.get("version")),
            created_at=now,
            updated_at=now,
            repository=_str_or_none(_lookup(urls, "repository", "source")),
            homepage=_str_or_none(_lookup(urls, "homepage", "documentation")),
            license=_license(project.get("license")),
        )

    def _stack(self, manifest: ProjectManifest, now: str) -> StackDocument:
        dependencies = manifest.all_dependencies
        runtime = manifest.project.get("requires-python")
        return StackDocument(
            language="Python",
            runtime=f"Python {runtime}" if isinstance(runtime, str) else None,
            package_manager=_package_manager(manifest),
            frameworks=_detect(FRAMEWORKS, manifest.dependencies),
            dependencies=manifest.dependencies or None,
            dev_dependencies=manifest.dev_dependencies or None,
            build_tools=_build_tools(manifest),
            testing_frameworks=_detect(TESTING_FRAMEWORKS, dependencies),
            orm=_first(ORMS, dependencies),
            database=_first(DATABASES, dependencies),
            cicd=_cicd(manifest),
            updated_at=now,
        )

    def _architecture(self, manifest: ProjectManifest, now: str) -> ArchitectureDocument:
        directories = self._directories(manifest.root)
        scripts = manifest.project.get("scripts")
        entry_points = [
            EntryPoint(file=str(target), purpose=f"Console script `{name}`")
            for name, target in (scripts.items() if isinstance(scripts, dict) else [])
        ]
        paths = {entry.path for entry in directories}
        if "packages" in paths or "apps" in paths:
            project_type = "monorepo"
        elif "services" in paths:
            project_type = "microservices"
        elif entry_points:
            project_type = "cli"
        else:
            project_type = "library"
        return ArchitectureDocument(
            type=project_type,
            directories=directories,
            entry_points=entry_points or None,
            updated_at=now,
        )

    def _constraints(self, manifest: ProjectManifest, now: str) -> ConstraintsDocument:
        tool = manifest.tool
        must_use: list[str] = []
        runtime = manifest.project.get("requires-python")
        if isinstance(runtime, str):
            must_use.append(f"Python {runtime}")
        if "pyright" in tool or "mypy" in tool:
            must_use.append("Static type checking")

        preferences: list[Preference] = []
        line_length = _lookup(tool.get("ruff") or {}, "line-length") or _lookup(
            tool.get("black") or {}, "line-length"
        )
        if line_length is not None:
            preferences.append(
                Preference(category="line-length", preference=f"{line_length} characters")
            )
        if manifest.has(".pre-commit-config.yaml"):
            preferences.append(
                Preference(
                    category="code-quality",
                    preference="pre-commit hooks",
                    rationale="Checks run before every commit",
                )
            )

        file_organization: list[str] = []
        if manifest.has("src"):
            file_organization.append("All source code in src/ directory")
        if manifest.has("tests"):
            file_organization.append("Tests in tests/ directory")

        return ConstraintsDocument(
            must_use=must_use,
            must_not_use=[],
            preferences=preferences,
            code_style=_code_style(tool),
            file_organization=file_organization or None,
            testing=TestingPolicy(required=True, strategy="pytest")
            if "pytest" in manifest.all_dependencies or "pytest" in tool
            else None,
            documentation=DocumentationPolicy(required=True, style="Markdown")
            if manifest.has("README.md")
            else None,
            updated_at=now,
        )

    def _directories(self, root: Path) -> list[DirectoryEntry]:
        entries: list[DirectoryEntry] = []
        stack = [(root, 0)]
        while stack:
            current, depth = stack.pop()
            children = sorted(
                (child for child in current.iterdir() if _is_relevant_directory(child)),
                reverse=True,
            )
            for child in children:
                if depth < self.max_depth:
                    stack.append((child, depth + 1))
            if current == root:
                continue
            file_count = sum(1 for item in current.iterdir() if item.is_file())
            if file_count == 0 and depth > 1:
                continue
            relative = current.relative_to(root).as_posix()
            entries.append(
                DirectoryEntry(
                    path=relative,
                    purpose=DIRECTORY_PURPOSES.get(current.name),
                    file_count=file_count,
                )
            )
        return entries


def _is_relevant_directory(path: Path) -> bool:
    return (
        path.is_dir()
        and not path.name.startswith(".")
        and path.name not in EXCLUDED_DIRECTORIES
        and not path.name.endswith(".egg-info")
    )


def _detect(known: dict[str, str], dependencies: dict[str, str]) -> list[str]:
    return [label for name, label in known.items() if name in dependencies]


def _first(known: dict[str, str], dependencies: dict[str, str]) -> str | None:
    detected = _detect(known, dependencies)
    return detected[0] if detected else None


def _build_tools(manifest: ProjectManifest) -> list[str]:
    tools: list[str] = []
    backend = manifest.build_backend
    if backend is not None:
        for prefix, label in BUILD_BACKENDS.items():
            if backend.startswith(prefix):
                tools.append(label)
                break
    dependencies = manifest.all_dependencies
    tools.extend(tool for tool in TOOLS if tool in manifest.tool or tool in dependencies)
    return tools


def _package_manager(manifest: ProjectManifest) -> str:
    if manifest.has("uv.lock"):
        return "uv"
    if manifest.has("poetry.lock") or "poetry" in manifest.tool:
        return "poetry"
    return "pip"


def _cicd(manifest: ProjectManifest) -> list[str]:
    systems: list[str] = []
    if manifest.has(".github/workflows"):
        systems.append("GitHub Actions")
    if manifest.has(".gitlab-ci.yml"):
        systems.append("GitLab CI")
    return systems


def _code_style(tool: dict[str, Any]) -> CodeStyle | None:
    formatter = "ruff" if "ruff" in tool else ("black" if "black" in tool else None)
    linter = "ruff" if "ruff" in tool else None
    if formatter is None and linter is None:
        return None
    rules = _lookup(_lookup(tool.get("ruff") or {}, "lint") or {}, "select")
    return CodeStyle(
        formatter=formatter,
        linter=linter,
        rules=[str(rule) for rule in rules] if isinstance(rules, list) else None,
    )


def _license(value: object) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return _str_or_none(_lookup(value, "text", "file"))
    return None


def _lookup(data: Any, *keys: str) -> Any:
    if not isinstance(data, dict):
        return None
    for key in keys:
        for candidate, value in data.items():
            if str(candidate).lower() == key:
                return value
    return None


def _str_or_none(value: object) -> str | None:
    return value if isinstance(value, str) else None
