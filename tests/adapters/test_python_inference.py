from __future__ import annotations

from textwrap import dedent
from typing import TYPE_CHECKING

import pytest

from prelude.adapters.inference import (
    ProjectManifest,
    PythonProjectInference,
    normalize_name,
    parse_requirement,
)
from prelude.domain.documents import DocumentKind
from tests.helpers.documents import FIXED_STAMP, fixed_clock

if TYPE_CHECKING:
    from pathlib import Path

PYPROJECT = dedent(
    """
    [build-system]
    requires = ["hatchling"]
    build-backend = "hatchling.build"

    [project]
    name = "demo-app"
    description = "Demo service"
    version = "1.2.0"
    requires-python = ">=3.12"
    license = { text = "MIT" }
    dependencies = ["fastapi>=0.110", "SQLAlchemy[asyncio]>=2", "psycopg[binary]"]

    [project.optional-dependencies]
    dev = ["pytest>=8", "ruff"]

    [project.urls]
    Homepage = "https://demo.example"
    Repository = "https://git.example/demo"

    [project.scripts]
    demo = "demo_app.cli:main"

    [tool.ruff]
    line-length = 100

    [tool.ruff.lint]
    select = ["E", "F"]

    [tool.pyright]
    typeCheckingMode = "strict"
    """
)


@pytest.fixture
def python_project(tmp_path: Path) -> Path:
    root = tmp_path / "demo"
    root.mkdir()
    (root / "pyproject.toml").write_text(PYPROJECT, encoding="utf-8")
    (root / "uv.lock").write_text("", encoding="utf-8")
    (root / "README.md").write_text("# Demo\n", encoding="utf-8")
    (root / ".github" / "workflows").mkdir(parents=True)
    (root / ".github" / "workflows" / "ci.yml").write_text("", encoding="utf-8")
    package = root / "src" / "demo_app"
    package.mkdir(parents=True)
    (package / "__init__.py").write_text("", encoding="utf-8")
    (package / "cli.py").write_text("", encoding="utf-8")
    (root / "tests").mkdir()
    (root / "tests" / "test_cli.py").write_text("", encoding="utf-8")
    for ignored in (".venv/lib", ".context", "node_modules/react"):
        (root / ignored).mkdir(parents=True)
        (root / ignored / "file.txt").write_text("", encoding="utf-8")
    return root


@pytest.fixture
def infer() -> PythonProjectInference:
    return PythonProjectInference(clock=fixed_clock)


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("requests>=2.31", ("requests", ">=2.31")),
        ("Flask_SQLAlchemy == 3.1  # pinned", ("flask-sqlalchemy", "==3.1")),
        ("uvicorn[standard]", ("uvicorn", "*")),
        ("tomli; python_version < '3.11'", ("tomli", "*")),
        (
            "demo-lib @ git+https://example.com/demo-lib.git#egg=demo-lib",
            ("demo-lib", "git+https://example.com/demo-lib.git#egg=demo-lib"),
        ),
        ("pydantic==2.6.4 --hash=sha256:abc123", ("pydantic", "==2.6.4")),
        ("-r base.txt", None),
        ("requests>=", None),
        ("   ", None),
    ],
)
def test_parse_requirement(line: str, expected: tuple[str, str] | None) -> None:
    assert parse_requirement(line) == expected


def test_normalize_name() -> None:
    assert normalize_name("Zope.Interface__Extra") == "zope-interface-extra"


def test_manifest_reads_requirements_files(tmp_path: Path) -> None:
    (tmp_path / "requirements.txt").write_text("Django>=5\nredis\n", encoding="utf-8")
    (tmp_path / "requirements-dev.txt").write_text("pytest\n", encoding="utf-8")

    manifest = ProjectManifest.load(tmp_path)

    assert manifest.pyproject == {}
    assert manifest.dependencies == {"django": ">=5", "redis": "*"}
    assert manifest.dev_dependencies == {"pytest": "*"}


def test_project_document(python_project: Path, infer: PythonProjectInference) -> None:
    document = infer(DocumentKind.PROJECT, python_project)

    assert document.to_data() == {
        "name": "demo-app",
        "description": "Demo service",
        "version": "1.2.0",
        "createdAt": FIXED_STAMP,
        "updatedAt": FIXED_STAMP,
        "repository": "https://git.example/demo",
        "homepage": "https://demo.example",
        "license": "MIT",
    }


def test_stack_document(python_project: Path, infer: PythonProjectInference) -> None:
    data = infer(DocumentKind.STACK, python_project).to_data()

    assert data["language"] == "Python"
    assert data["runtime"] == "Python >=3.12"
    assert data["packageManager"] == "uv"
    assert data["frameworks"] == ["FastAPI"]
    assert data["dependencies"] == {"fastapi": ">=0.110", "sqlalchemy": ">=2", "psycopg": "*"}
    assert data["devDependencies"] == {"pytest": ">=8", "ruff": "*"}
    assert data["buildTools"] == ["Hatch", "ruff", "pyright"]
    assert data["testingFrameworks"] == ["pytest"]
    assert data["orm"] == "SQLAlchemy"
    assert data["database"] == "PostgreSQL"
    assert data["cicd"] == ["GitHub Actions"]
    assert data["updatedAt"] == FIXED_STAMP


def test_architecture_document(python_project: Path, infer: PythonProjectInference) -> None:
    data = infer(DocumentKind.ARCHITECTURE, python_project).to_data()

    assert data["type"] == "cli"
    assert data["directories"] == [
        {"path": "src", "purpose": "Source code", "fileCount": 0},
        {"path": "src/demo_app", "fileCount": 2},
        {"path": "tests", "purpose": "Tests", "fileCount": 1},
    ]
    assert data["entryPoints"] == [
        {"file": "demo_app.cli:main", "purpose": "Console script `demo`"}
    ]


def test_constraints_document(python_project: Path, infer: PythonProjectInference) -> None:
    data = infer(DocumentKind.CONSTRAINTS, python_project).to_data()

    assert data["mustUse"] == ["Python >=3.12", "Static type checking"]
    assert data["mustNotUse"] == []
    assert data["preferences"] == [{"category": "line-length", "preference": "100 characters"}]
    assert data["codeStyle"] == {"formatter": "ruff", "linter": "ruff", "rules": ["E", "F"]}
    assert data["fileOrganization"] == [
        "All source code in src/ directory",
        "Tests in tests/ directory",
    ]
    assert data["testing"] == {"required": True, "strategy": "pytest"}
    assert data["documentation"] == {"required": True, "style": "Markdown"}


def test_bare_directory_falls_back_to_defaults(
    tmp_path: Path, infer: PythonProjectInference
) -> None:
    root = tmp_path / "scratch"
    root.mkdir()
    (root / "requirements.txt").write_text("click\n", encoding="utf-8")

    project = infer(DocumentKind.PROJECT, root).to_data()
    stack = infer(DocumentKind.STACK, root).to_data()
    architecture = infer(DocumentKind.ARCHITECTURE, root).to_data()

    assert project["name"] == "scratch"
    assert project["description"] == ""
    assert stack["packageManager"] == "pip"
    assert stack["frameworks"] == ["Click"]
    assert "runtime" not in stack
    assert architecture["type"] == "library"
    assert architecture["directories"] == []


def test_invalid_pyproject_raises(tmp_path: Path, infer: PythonProjectInference) -> None:
    (tmp_path / "pyproject.toml").write_text("[project\nname =", encoding="utf-8")

    with pytest.raises(ValueError, match="pyproject"):
        infer(DocumentKind.STACK, tmp_path)
