"""Input normalization and whole-record validation for agent jobs.

Every write path funnels through here so the SQLite store and the
in-memory store enforce identical invariants:

- the schedule detail matching ``schedule_kind`` is present
- ``interval_ms`` and ``max_failures`` are positive
- name, payload text and timezone are non-blank
- enum fields hold one of their known values
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from agentjobs.core.jobs.errors import JobValidationError
from agentjobs.core.jobs.types import (
    DEFAULT_LIST_LIMIT,
    DEFAULT_MAX_FAILURES,
    DEFAULT_TIMEZONE,
    JOB_ACTIVE,
    JOB_STATUSES,
    MAX_LIST_LIMIT,
    PAYLOAD_KINDS,
    RUN_STATUSES,
    SCHEDULE_CRON,
    SCHEDULE_INTERVAL,
    SCHEDULE_KINDS,
    SCHEDULE_ONCE,
    AgentJob,
    CreateAgentJobInput,
    UpdateAgentJobInput,
)

# Fields that cannot be cleared; an explicit None in an update is ignored.
_REQUIRED_FIELDS = frozenset({
    "name", "schedule_kind", "timezone", "payload_kind", "payload_text",
    "enabled", "status", "max_failures",
})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize to an aware UTC datetime (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def require_id(value: str | None, field: str) -> str:
    ident = (value or "").strip()
    if not ident:
        raise JobValidationError(field, f"{field} is required")
    return ident


def clamp_limit(limit: int | None, default: int = DEFAULT_LIST_LIMIT) -> int:
    if not limit or limit <= 0:
        return default
    return min(limit, MAX_LIST_LIMIT)


def _normalize_enum(raw: str | None, allowed: tuple[str, ...], field: str) -> str:
    value = (raw or "").strip().lower()
    if value not in allowed:
        raise JobValidationError(field, f"invalid {field}: {raw!r}")
    return value


def normalize_schedule_kind(raw: str | None) -> str:
    return _normalize_enum(raw, SCHEDULE_KINDS, "schedule_kind")


def normalize_payload_kind(raw: str | None) -> str:
    return _normalize_enum(raw, PAYLOAD_KINDS, "payload_kind")


def normalize_status(raw: str | None) -> str:
    return _normalize_enum(raw, JOB_STATUSES, "status")


def normalize_run_status(raw: str | None) -> str:
    return _normalize_enum(raw, RUN_STATUSES, "run_status")


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def normalize_create(data: CreateAgentJobInput) -> dict[str, Any]:
    """Apply defaults and return the column values for a new job."""
    fields: dict[str, Any] = {
        "agent_id": require_id(data.agent_id, "agent_id"),
        "name": (data.name or "").strip(),
        "description": _optional_text(data.description),
        "schedule_kind": normalize_schedule_kind(data.schedule_kind),
        "cron_expr": _optional_text(data.cron_expr),
        "interval_ms": data.interval_ms,
        "run_at": as_utc(data.run_at),
        "timezone": _optional_text(data.timezone) or DEFAULT_TIMEZONE,
        "payload_kind": normalize_payload_kind(data.payload_kind),
        "payload_text": (data.payload_text or "").strip(),
        "room_id": _optional_text(data.room_id),
        "enabled": True if data.enabled is None else data.enabled,
        "status": JOB_ACTIVE if data.status is None else normalize_status(data.status),
        "next_run_at": as_utc(data.next_run_at),
        "max_failures": DEFAULT_MAX_FAILURES if data.max_failures is None else data.max_failures,
        "created_by": _optional_text(data.created_by),
    }
    validate_fields(fields)
    return fields


def apply_update(job: AgentJob, data: UpdateAgentJobInput) -> AgentJob:
    """Overlay the fields present in ``data`` onto ``job`` and re-validate."""
    changes = data.changes()
    updated: dict[str, Any] = {}
    for key, value in changes.items():
        if value is None and key in _REQUIRED_FIELDS:
            continue
        if key in ("name", "payload_text"):
            value = value.strip()
        elif key in ("description", "cron_expr", "room_id", "timezone"):
            value = _optional_text(value)
        elif key == "schedule_kind":
            value = normalize_schedule_kind(value)
        elif key == "payload_kind":
            value = normalize_payload_kind(value)
        elif key == "status":
            value = normalize_status(value)
        elif key in ("run_at", "next_run_at"):
            value = as_utc(value)
        updated[key] = value

    candidate = job.model_copy(update=updated)
    validate_fields(candidate.model_dump())
    return candidate


def validate_fields(fields: dict[str, Any]) -> None:
    """Whole-record invariants shared by create and update."""
    if not (fields.get("name") or "").strip():
        raise JobValidationError("name", "name is required")
    if not (fields.get("payload_text") or "").strip():
        raise JobValidationError("payload_text", "payload_text is required")
    if not (fields.get("timezone") or "").strip():
        raise JobValidationError("timezone", "timezone is required")

    normalize_schedule_kind(fields.get("schedule_kind"))
    normalize_payload_kind(fields.get("payload_kind"))
    normalize_status(fields.get("status"))

    interval = fields.get("interval_ms")
    if interval is not None and interval <= 0:
        raise JobValidationError("interval_ms", "interval_ms must be greater than zero")
    max_failures = fields.get("max_failures")
    if max_failures is None or max_failures <= 0:
        raise JobValidationError("max_failures", "max_failures must be greater than zero")

    kind = fields["schedule_kind"]
    if kind == SCHEDULE_CRON and not (fields.get("cron_expr") or "").strip():
        raise JobValidationError("cron_expr", "cron_expr is required for cron schedules")
    if kind == SCHEDULE_INTERVAL and interval is None:
        raise JobValidationError("interval_ms", "interval_ms is required for interval schedules")
    if kind == SCHEDULE_ONCE and fields.get("run_at") is None:
        raise JobValidationError("run_at", "run_at is required for once schedules")
