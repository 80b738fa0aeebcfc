"""
Request payload snapshots.

A decision Request carries the proposed state of an Initiative or a Task
as JSON text. The payload type is chosen by the Request kind and decoded
explicitly when the Request is submitted and again when it is materialized:

    create_initiative, edit_initiative         → InitiativeSnapshot
    create_task, edit_task, complete_task      → TaskSnapshot
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Union

from workplan.utils.helpers import parse_date


class SnapshotError(ValueError):
    """Payload text is not a valid snapshot for its kind."""


# ═════════════════════════════════════════════════════════════════════════════
# Payload types
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class InitiativeSnapshot:
    """Proposed Initiative state. Exactly one parent id must be set."""
    name: str
    id: int | None = None
    description: str = ""
    program_id: int | None = None
    sub_program_id: int | None = None
    start_date: date | None = None
    deadline: date | None = None
    creator_id: int | None = None
    assignee_ids: list[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "InitiativeSnapshot":
        return cls(
            name=_required_str(data, "name"),
            id=_optional_int(data, "id"),
            description=data.get("description") or "",
            program_id=_optional_int(data, "program_id"),
            sub_program_id=_optional_int(data, "sub_program_id"),
            start_date=_optional_date(data, "start_date"),
            deadline=_optional_date(data, "deadline"),
            creator_id=_optional_int(data, "creator_id"),
            assignee_ids=_id_list(data, "assignee_ids"),
        )

    def to_dict(self) -> dict:
        return _serialize(self)


@dataclass
class TaskSnapshot:
    """Proposed Task state. The first assignee id becomes the primary assignee."""
    name: str
    initiative_id: int | None = None
    id: int | None = None
    description: str = ""
    start_date: date | None = None
    deadline: date | None = None
    priority: str = "medium"
    status: str | None = None
    creator_id: int | None = None
    assignee_ids: list[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "TaskSnapshot":
        return cls(
            name=_required_str(data, "name"),
            initiative_id=_optional_int(data, "initiative_id"),
            id=_optional_int(data, "id"),
            description=data.get("description") or "",
            start_date=_optional_date(data, "start_date"),
            deadline=_optional_date(data, "deadline"),
            priority=(data.get("priority") or "medium").lower(),
            status=data.get("status"),
            creator_id=_optional_int(data, "creator_id"),
            assignee_ids=_id_list(data, "assignee_ids"),
        )

    def to_dict(self) -> dict:
        return _serialize(self)


RequestPayload = Union[InitiativeSnapshot, TaskSnapshot]

PAYLOAD_TYPES: dict[str, type] = {
    "create_initiative": InitiativeSnapshot,
    "edit_initiative": InitiativeSnapshot,
    "create_task": TaskSnapshot,
    "edit_task": TaskSnapshot,
    "complete_task": TaskSnapshot,
}


def decode_snapshot(kind: str, payload: str | dict | None) -> RequestPayload:
    """Decode a stored or submitted payload into the snapshot type for ``kind``.

    Raises:
        SnapshotError: unknown kind, invalid JSON, or missing/ill-typed fields.
    """
    payload_type = PAYLOAD_TYPES.get(kind)
    if payload_type is None:
        raise SnapshotError(f"Request kind {kind!r} carries no snapshot")
    if payload is None or payload == "":
        raise SnapshotError("snapshot is required")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise SnapshotError(f"snapshot is not valid JSON: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise SnapshotError("snapshot must be a JSON object")
    return payload_type.from_dict(payload)


def encode_snapshot(snapshot: RequestPayload) -> str:
    return json.dumps(snapshot.to_dict(), sort_keys=True)


# ── Field coercion ───────────────────────────────────────────────────────────

def _serialize(snapshot) -> dict:
    d = asdict(snapshot)
    for key in ("start_date", "deadline"):
        if d.get(key) is not None:
            d[key] = d[key].isoformat()
    return d


def _required_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise SnapshotError(f"{key} is required")
    return value.strip()


def _optional_int(data: dict, key: str) -> int | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise SnapshotError(f"{key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise SnapshotError(f"{key} must be an integer") from exc


def _optional_date(data: dict, key: str) -> date | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise SnapshotError(f"{key} must be a date (YYYY-MM-DD)")
    return parsed


def _id_list(data: dict, key: str) -> list[int]:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise SnapshotError(f"{key} must be a list of employee ids")
    ids = []
    for item in value:
        if isinstance(item, bool):
            raise SnapshotError(f"{key} must be a list of employee ids")
        try:
            emp_id = int(item)
        except (TypeError, ValueError) as exc:
            raise SnapshotError(f"{key} must be a list of employee ids") from exc
        if emp_id not in ids:
            ids.append(emp_id)
    return ids
