"""Jobs routes: CRUD, run-now, pause/resume, run history."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from agentjobs.api.deps import get_store
from agentjobs.api.models import (
    CreateJobRequest,
    DeleteJobResponse,
    JobListResponse,
    JobRunListResponse,
    PatchJobRequest,
)
from agentjobs.core.jobs import actions
from agentjobs.core.jobs.errors import JobValidationError
from agentjobs.core.jobs.schedule import initial_next_run
from agentjobs.core.jobs.types import (
    DEFAULT_LIST_LIMIT,
    JOB_ACTIVE,
    AgentJob,
    AgentJobFilter,
    CreateAgentJobInput,
    UpdateAgentJobInput,
)
from agentjobs.core.jobs.validation import utcnow
from agentjobs.storage.repository import JobRepository

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=AgentJob, status_code=201)
async def create_job(body: CreateJobRequest, store: JobRepository = Depends(get_store)):
    """Create a job; its first due time is computed from the schedule."""
    data = CreateAgentJobInput(**body.model_dump())
    data.next_run_at = initial_next_run(data, utcnow())
    return store.create_job(data)


@router.get("", response_model=JobListResponse)
async def list_jobs(
    agent_id: str | None = None,
    status: str | None = None,
    enabled: bool | None = None,
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1),
    store: JobRepository = Depends(get_store),
):
    jobs = store.list_jobs(
        AgentJobFilter(agent_id=agent_id, status=status, enabled=enabled, limit=limit)
    )
    return JobListResponse(items=jobs, total=len(jobs))


@router.get("/{job_id}", response_model=AgentJob)
async def get_job(job_id: str, store: JobRepository = Depends(get_store)):
    return store.get_job(job_id)


@router.patch("/{job_id}", response_model=AgentJob)
async def patch_job(
    job_id: str, body: PatchJobRequest, store: JobRepository = Depends(get_store)
):
    """Apply a partial update and refresh next_run_at for runnable jobs."""
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="at least one field is required")

    updated = store.update_job(job_id, UpdateAgentJobInput(**changes))
    if updated.enabled and updated.status == JOB_ACTIVE:
        try:
            next_run_at = initial_next_run(updated, utcnow())
        except JobValidationError as e:
            logger.warning(f"Job {job_id}: next run not refreshed ({e})")
        else:
            updated = store.update_job(job_id, UpdateAgentJobInput(next_run_at=next_run_at))
    return updated


@router.delete("/{job_id}", response_model=DeleteJobResponse)
async def delete_job(job_id: str, store: JobRepository = Depends(get_store)):
    store.delete_job(job_id)
    return DeleteJobResponse(id=job_id)


@router.post("/{job_id}/run", response_model=AgentJob)
async def run_job_now(job_id: str, store: JobRepository = Depends(get_store)):
    return actions.run_now(store, job_id)


@router.post("/{job_id}/pause", response_model=AgentJob)
async def pause_job(job_id: str, store: JobRepository = Depends(get_store)):
    return actions.pause(store, job_id)


@router.post("/{job_id}/resume", response_model=AgentJob)
async def resume_job(job_id: str, store: JobRepository = Depends(get_store)):
    return actions.resume(store, job_id)


@router.get("/{job_id}/runs", response_model=JobRunListResponse)
async def list_job_runs(
    job_id: str,
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1),
    store: JobRepository = Depends(get_store),
):
    store.get_job(job_id)
    runs = store.list_runs(job_id, limit=limit)
    return JobRunListResponse(items=runs, total=len(runs))
