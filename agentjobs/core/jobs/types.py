"""Agent job types. Mirror the agent_jobs / agent_job_runs tables."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

# Schedule kinds
SCHEDULE_CRON = "cron"
SCHEDULE_INTERVAL = "interval"
SCHEDULE_ONCE = "once"
SCHEDULE_KINDS = (SCHEDULE_CRON, SCHEDULE_INTERVAL, SCHEDULE_ONCE)

# Payload kinds
PAYLOAD_MESSAGE = "message"
PAYLOAD_SYSTEM_EVENT = "system_event"
PAYLOAD_KINDS = (PAYLOAD_MESSAGE, PAYLOAD_SYSTEM_EVENT)

# Job status
JOB_ACTIVE = "active"
JOB_PAUSED = "paused"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"
JOB_STATUSES = (JOB_ACTIVE, JOB_PAUSED, JOB_COMPLETED, JOB_FAILED)

# Run status
RUN_RUNNING = "running"
RUN_SUCCESS = "success"
RUN_ERROR = "error"
RUN_TIMEOUT = "timeout"
RUN_SKIPPED = "skipped"
RUN_STATUSES = (RUN_RUNNING, RUN_SUCCESS, RUN_ERROR, RUN_TIMEOUT, RUN_SKIPPED)

DEFAULT_TIMEZONE = "UTC"
DEFAULT_MAX_FAILURES = 5
DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200
DEFAULT_MAX_RUNS = 100
DEFAULT_STALE_AFTER_S = 300

STALE_RUN_ERROR = "stale running job exceeded timeout"


class AgentJob(BaseModel):
    """One schedulable unit of work, owned by a tenant and an agent."""

    id: str
    tenant_id: str
    agent_id: str
    name: str
    description: str | None = None

    schedule_kind: str
    cron_expr: str | None = None
    interval_ms: int | None = None
    run_at: datetime | None = None
    timezone: str = DEFAULT_TIMEZONE

    payload_kind: str
    payload_text: str
    room_id: str | None = None

    enabled: bool = True
    status: str = JOB_ACTIVE
    last_run_at: datetime | None = None
    last_run_status: str | None = None
    last_run_error: str | None = None
    next_run_at: datetime | None = None  # None = leased or unscheduled
    run_count: int = 0
    error_count: int = 0
    max_failures: int = DEFAULT_MAX_FAILURES
    consecutive_failures: int = 0

    created_by: str | None = None
    created_at: datetime
    updated_at: datetime


class AgentJobRun(BaseModel):
    """One execution attempt of a job."""

    id: str
    job_id: str
    tenant_id: str
    status: str = RUN_RUNNING
    started_at: datetime
    completed_at: datetime | None = None
    duration_ms: int | None = None
    error: str | None = None
    payload_text: str
    message_id: str | None = None
    created_at: datetime


# ════════════════════════════════════════════════════════════
# INPUTS
# ════════════════════════════════════════════════════════════


class CreateAgentJobInput(BaseModel):
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
    status: str | None = None
    next_run_at: datetime | None = None
    max_failures: int | None = None
    created_by: str | None = None


class UpdateAgentJobInput(BaseModel):
    """Partial update. Only fields explicitly set are applied."""

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
    status: str | None = None
    next_run_at: datetime | None = None
    max_failures: int | None = None

    def changes(self) -> dict:
        """Fields present in the input (explicit None included)."""
        return self.model_dump(exclude_unset=True)


class AgentJobFilter(BaseModel):
    agent_id: str | None = None
    status: str | None = None
    enabled: bool | None = None
    limit: int = DEFAULT_LIST_LIMIT


class CompleteRunInput(BaseModel):
    job_id: str
    run_id: str
    run_status: str
    completed_at: datetime | None = None
    message_id: str | None = None
    error: str | None = None
    next_run_at: datetime | None = None
    complete_job: bool = False


class JobCounters(BaseModel):
    """Failure/success summary folded from run outcomes."""

    status: str
    run_count: int = 0
    error_count: int = 0
    consecutive_failures: int = 0
    max_failures: int = DEFAULT_MAX_FAILURES
    last_run_error: str | None = None

    @classmethod
    def of(cls, job: AgentJob) -> JobCounters:
        return cls(
            status=job.status,
            run_count=job.run_count,
            error_count=job.error_count,
            consecutive_failures=job.consecutive_failures,
            max_failures=job.max_failures,
            last_run_error=job.last_run_error,
        )

