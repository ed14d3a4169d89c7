"""Operator actions on a job, shared by the HTTP API and the CLI."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from agentjobs.core.jobs.errors import JobValidationError
from agentjobs.core.jobs.schedule import initial_next_run
from agentjobs.core.jobs.types import (
    JOB_ACTIVE,
    JOB_COMPLETED,
    JOB_PAUSED,
    SCHEDULE_ONCE,
    AgentJob,
    UpdateAgentJobInput,
)
from agentjobs.core.jobs.validation import as_utc, utcnow

if TYPE_CHECKING:
    from agentjobs.storage.repository import JobRepository


def run_now(store: JobRepository, job_id: str, now: datetime | None = None) -> AgentJob:
    """Make the job due immediately; the next worker pass picks it up."""
    return store.update_job(
        job_id, UpdateAgentJobInput(status=JOB_ACTIVE, next_run_at=as_utc(now) or utcnow())
    )


def pause(store: JobRepository, job_id: str) -> AgentJob:
    return store.update_job(job_id, UpdateAgentJobInput(status=JOB_PAUSED))


def resume(store: JobRepository, job_id: str, now: datetime | None = None) -> AgentJob:
    """Reactivate a job with a freshly computed next run.

    A one-shot job that already completed has nothing left to run.
    """
    job = store.get_job(job_id)
    if job.schedule_kind == SCHEDULE_ONCE and job.status == JOB_COMPLETED:
        raise JobValidationError("status", "cannot resume completed one-shot job")
    next_run_at = initial_next_run(job, as_utc(now) or utcnow())
    return store.update_job(
        job_id, UpdateAgentJobInput(status=JOB_ACTIVE, next_run_at=next_run_at)
    )
