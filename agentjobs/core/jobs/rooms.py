"""Room and message conventions shared by the store implementations."""

from __future__ import annotations

import hashlib
import uuid

from agentjobs.core.jobs.types import PAYLOAD_SYSTEM_EVENT

ROOM_TYPE = "ad_hoc"
DEFAULT_AGENT_NAME = "Agent"


def room_name(display_name: str | None) -> str:
    return f"Scheduled - {(display_name or '').strip() or DEFAULT_AGENT_NAME}"


def message_types(payload_kind: str) -> tuple[str, str]:
    """(sender_type, message_type) for a payload kind."""
    if payload_kind == PAYLOAD_SYSTEM_EVENT:
        return "system", "system"
    return "user", "message"


def job_sender_id(tenant_id: str, job_id: str, payload_kind: str) -> str:
    """Stable UUID-shaped sender id per (tenant, job, payload kind)."""
    seed = f"{tenant_id.strip()}:{job_id.strip()}:{payload_kind.strip()}"
    return str(uuid.UUID(hashlib.md5(seed.encode()).hexdigest()))
