"""Translate between the provenance domain model and its JSON payloads."""

from __future__ import annotations

from datetime import UTC, datetime

from prelude.domain.documents import DocumentKind
from prelude.domain.provenance import FieldState, FileState, Provenance, ProvenanceState

from .schema import FieldStatePayload, FileStatePayload, StateFilePayload

_KNOWN_FILES = frozenset(kind.filename for kind in DocumentKind)


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _aware(value: datetime | None) -> datetime | None:
    return _require_aware(value) if value is not None else None


def state_from_payload(payload: StateFilePayload) -> ProvenanceState:
    return ProvenanceState(
        version=payload.version,
        initialized_at=_require_aware(payload.initialized),
        last_update_at=_require_aware(payload.last_update),
        files=[
            _file_from_payload(item) for item in payload.files if item.file in _KNOWN_FILES
        ],
    )


def _file_from_payload(payload: FileStatePayload) -> FileState:
    return FileState(
        document_kind=DocumentKind.from_filename(payload.file),
        last_updated_at=_require_aware(payload.last_updated),
        fields={path: _field_from_payload(item) for path, item in payload.fields.items()},
    )


def _field_from_payload(payload: FieldStatePayload) -> FieldState:
    return FieldState(
        value=payload.value,
        provenance=Provenance(payload.source),
        last_inferred_at=_aware(payload.last_inferred),
        last_modified_at=_aware(payload.last_modified),
        inferred_hash=payload.inferred_hash,
    )


def state_to_payload(state: ProvenanceState) -> StateFilePayload:
    return StateFilePayload(
        version=state.version,
        initialized=state.initialized_at,
        last_update=state.last_update_at,
        files=[
            FileStatePayload(
                file=file_state.document_kind.filename,
                last_updated=file_state.last_updated_at,
                fields={
                    path: FieldStatePayload(
                        value=field_state.value,
                        source=field_state.provenance.value,
                        last_inferred=field_state.last_inferred_at,
                        last_modified=field_state.last_modified_at,
                        inferred_hash=field_state.inferred_hash,
                    )
                    for path, field_state in file_state.fields.items()
                },
            )
            for file_state in state.files
        ],
    )


def dump_state(state: ProvenanceState) -> str:
    payload = state_to_payload(state)
    return payload.model_dump_json(by_alias=True, exclude_none=True, indent=2)
