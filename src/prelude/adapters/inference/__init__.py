"""Inference collaborators that derive context documents from a project tree."""

from __future__ import annotations

from .manifest import ProjectManifest, normalize_name, parse_requirement
from .python_project import PythonProjectInference

__all__ = [
    "ProjectManifest",
    "PythonProjectInference",
    "normalize_name",
    "parse_requirement",
]
