"""Pydantic models describing the on-disk provenance store."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 # pydantic resolves annotations at runtime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class StateBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class FieldStatePayload(StateBaseModel):
    value: Any = None
    source: Literal["inferred", "manual", "merged"]
    last_inferred: datetime | None = Field(default=None, alias="lastInferred")
    last_modified: datetime | None = Field(default=None, alias="lastModified")
    inferred_hash: str | None = Field(default=None, alias="inferredHash")


class FileStatePayload(StateBaseModel):
    file: str
    last_updated: datetime = Field(alias="lastUpdated")
    fields: dict[str, FieldStatePayload] = Field(default_factory=dict[str, FieldStatePayload])


class StateFilePayload(StateBaseModel):
    version: str = "1.0.0"
    initialized: datetime
    last_update: datetime = Field(alias="lastUpdate")
    files: list[FileStatePayload] = Field(default_factory=list[FileStatePayload])


class ChangeRecordPayload(StateBaseModel):
    file: str
    field: str
    type: Literal["added", "removed", "modified", "preserved"]
    reason: str
    old_value: Any = Field(default=None, alias="oldValue")
    new_value: Any = Field(default=None, alias="newValue")


class ChangeLogEntryPayload(StateBaseModel):
    timestamp: datetime
    mode: str
    trigger: list[str] = Field(default_factory=list[str])
    updated: list[str] = Field(default_factory=list[str])
    failed: list[str] = Field(default_factory=list[str])
    changes: list[ChangeRecordPayload] = Field(default_factory=list[ChangeRecordPayload])


class ChangeLogPayload(StateBaseModel):
    entries: list[ChangeLogEntryPayload] = Field(default_factory=list[ChangeLogEntryPayload])
