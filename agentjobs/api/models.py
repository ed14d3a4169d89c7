"""API request / response models for the jobs endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from agentjobs.core.jobs.types import AgentJob, AgentJobRun


class CreateJobRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    agent_id: str
    name: str
    description: str | None = None
    schedule_kind: str
    cron_expr: str | None = None
    interval_ms: int | None = None
    run_at: datetime | None = None
    timezone: str | None = None
    payload_kind: str
    payload_text: str
    room_id: str | None = None
    enabled: bool | None = None
    max_failures: int | None = None


class PatchJobRequest(BaseModel):
    """Partial update; status and next_run_at move through the action routes."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    description: str | None = None
    schedule_kind: str | None = None
    cron_expr: str | None = None
    interval_ms: int | None = None
    run_at: datetime | None = None
    timezone: str | None = None
    payload_kind: str | None = None
    payload_text: str | None = None
    room_id: str | None = None
    enabled: bool | None = None
    max_failures: int | None = None


class JobListResponse(BaseModel):
    items: list[AgentJob]
    total: int


class JobRunListResponse(BaseModel):
    items: list[AgentJobRun]
    total: int


class DeleteJobResponse(BaseModel):
    deleted: bool = True
    id: str


class HealthResponse(BaseModel):
    status: str
    store_ready: bool
    version: str = ""
    tenant_id: str | None = None
