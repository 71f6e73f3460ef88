"""Typed context documents.

Each document kind is a closed variant with its own pydantic schema. The merge
engine works on the JSON-shaped data of a document (``DocumentData``); the
models validate that data on the way in and serialise it on the way out.
Unknown keys are kept so hand-added fields survive a round-trip.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DocumentData: TypeAlias = dict[str, Any]
Number: TypeAlias = int | float


class DocumentKind(StrEnum):
    """The regenerated context documents, in reconciliation order."""

    PROJECT = "project"
    STACK = "stack"
    ARCHITECTURE = "architecture"
    CONSTRAINTS = "constraints"

    @property
    def filename(self) -> str:
        return f"{self.value}.json"

    @classmethod
    def from_filename(cls, filename: str) -> DocumentKind:
        stem = filename.removesuffix(".json")
        return cls(stem)


class ContextModel(BaseModel):
    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class ContextDocument(ContextModel):
    """Base class of the four document variants."""

    def to_data(self) -> DocumentData:
        """Return the JSON-shaped data of this document, omitting absent fields."""

        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class TeamMember(ContextModel):
    name: str
    role: str | None = None
    email: str | None = None


class ProjectDocument(ContextDocument):
    name: str | None = None
    description: str | None = None
    version: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    repository: str | None = None
    team: list[TeamMember] | None = None
    outputs: list[str] | None = None
    goals: list[str] | None = None
    constraints: list[str] | None = None
    license: str | None = None
    homepage: str | None = None


class StackDocument(ContextDocument):
    schema_url: str | None = Field(default=None, alias="$schema")
    version: str | None = None
    language: str | None = None
    runtime: str | None = None
    package_manager: str | None = None
    framework: str | None = None
    frameworks: list[str] | None = None
    dependencies: dict[str, str] | None = None
    dev_dependencies: dict[str, str] | None = None
    build_tools: list[str] | None = None
    testing_frameworks: list[str] | None = None
    styling: list[str] | None = None
    database: str | None = None
    orm: str | None = None
    state_management: str | None = None
    deployment: str | None = None
    cicd: list[str] | None = None
    updated_at: str | None = None


class DirectoryEntry(ContextModel):
    path: str
    purpose: str | None = None
    file_count: Number | None = None


class EntryPoint(ContextModel):
    file: str
    purpose: str | None = None


class ArchitectureDocument(ContextDocument):
    type: str | None = None
    directories: list[DirectoryEntry] | None = None
    patterns: list[str] | None = None
    conventions: list[str] | None = None
    entry_points: list[EntryPoint] | None = None
    routing: Literal["file-based", "config-based", "none"] | None = None
    state_management: str | None = None
    api_style: str | None = None
    data_flow: str | None = None
    updated_at: str | None = None


class Preference(ContextModel):
    category: str
    preference: str
    rationale: str | None = None


class CodeStyle(ContextModel):
    formatter: str | None = None
    linter: str | None = None
    rules: list[str] | None = None


class Naming(ContextModel):
    files: str | None = None
    components: str | None = None
    functions: str | None = None
    variables: str | None = None


class TestingPolicy(ContextModel):
    required: bool | None = None
    coverage: Number | None = None
    strategy: str | None = None


class DocumentationPolicy(ContextModel):
    required: bool | None = None
    style: str | None = None


class ConstraintsDocument(ContextDocument):
    must_use: list[str] | None = None
    must_not_use: list[str] | None = None
    preferences: list[Preference] | None = None
    code_style: CodeStyle | None = None
    naming: Naming | None = None
    file_organization: list[str] | None = None
    testing: TestingPolicy | None = None
    documentation: DocumentationPolicy | None = None
    performance: list[str] | None = None
    security: list[str] | None = None
    accessibility: list[str] | None = None
    updated_at: str | None = None


DOCUMENT_MODELS: dict[DocumentKind, type[ContextDocument]] = {
    DocumentKind.PROJECT: ProjectDocument,
    DocumentKind.STACK: StackDocument,
    DocumentKind.ARCHITECTURE: ArchitectureDocument,
    DocumentKind.CONSTRAINTS: ConstraintsDocument,
}


def parse_document(kind: DocumentKind, data: Mapping[str, Any]) -> ContextDocument:
    """Validate ``data`` against the schema of ``kind``."""

    return DOCUMENT_MODELS[kind].model_validate(dict(data))


def schema_fields(kind: DocumentKind) -> tuple[str, ...]:
    """Return the serialised top-level field names of ``kind`` in declaration order."""

    model = DOCUMENT_MODELS[kind]
    return tuple(info.alias or name for name, info in model.model_fields.items())
