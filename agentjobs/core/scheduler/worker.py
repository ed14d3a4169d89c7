"""AgentJobWorker: polls the job store and executes due jobs.

One pass (``run_once``):
    1. reclaim runs stuck in ``running`` longer than ``run_timeout_s``
    2. lease up to ``max_per_poll`` due jobs
    3. per job: start a run, post the payload into the job's room,
       complete the run with the next due time, prune old runs

``start()`` drives passes on an APScheduler interval trigger.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from agentjobs.core.jobs.errors import (
    JobNotFoundError,
    JobStoreError,
    StoreConfigurationError,
)
from agentjobs.core.jobs.schedule import compute_next_run
from agentjobs.core.jobs.types import (
    RUN_ERROR,
    RUN_SUCCESS,
    SCHEDULE_INTERVAL,
    SCHEDULE_ONCE,
    AgentJob,
    CompleteRunInput,
    UpdateAgentJobInput,
)
from agentjobs.core.jobs.validation import as_utc, utcnow

if TYPE_CHECKING:
    from agentjobs.core.config.schema import Config
    from agentjobs.storage.repository import JobRepository, MessageWriter, RoomProvisioner

_SCHEDULER_JOB_ID = "agent_job_worker"


class AgentJobWorker:
    """Executes due agent jobs against a ``JobRepository``.

    ``rooms`` and ``messages`` default to the repository itself when it
    implements them (both bundled stores do).  ``now`` is the clock used
    for pickup, run timestamps and next-run computation.
    """

    def __init__(
        self,
        repository: JobRepository | None,
        config: Config,
        rooms: RoomProvisioner | None = None,
        messages: MessageWriter | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self.repository = repository
        self.config = config.worker
        self.rooms = rooms or repository
        self.messages = messages or repository
        self.now = now or utcnow
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    # ── Single pass ───────────────────────────────────────────

    def run_once(self, now: datetime | None = None) -> int:
        """Run one poll pass. Returns the number of jobs processed."""
        if self.repository is None:
            raise StoreConfigurationError("agent job worker has no repository")
        now = as_utc(now) or as_utc(self.now())

        self.repository.cleanup_stale_runs(
            older_than=timedelta(seconds=self.config.run_timeout_s), now=now
        )
        jobs = self.repository.pickup_due(limit=self.config.max_per_poll, now=now)
        if not jobs:
            logger.debug("Agent job worker: nothing due")
            return 0

        processed = 0
        for job in jobs:
            try:
                if self._execute(job, now):
                    processed += 1
            except JobStoreError as e:
                # a run left in "running" is timed out later by the reaper
                logger.error(f"Job {job.id} ({job.name}): store error, skipping: {e}")
                self._rearm(job, now)
        return processed

    def _execute(self, job: AgentJob, now: datetime) -> bool:
        try:
            run = self.repository.start_run(job.id, job.payload_text, started_at=now)
        except JobNotFoundError:
            logger.warning(f"Job {job.id} vanished before its run started")
            return False

        try:
            next_run_at = None if job.schedule_kind == SCHEDULE_ONCE else compute_next_run(job, now)
            room_id = self.rooms.ensure_room_for_job(job.id)
            message_id = self.messages.create_job_message(
                job.id, room_id, job.payload_kind, job.payload_text, created_at=now,
            )
        except Exception as e:
            logger.error(f"Job {job.id} ({job.name}) failed: {e}")
            self.repository.complete_run(CompleteRunInput(
                job_id=job.id,
                run_id=run.id,
                run_status=RUN_ERROR,
                completed_at=now,
                error=str(e),
                next_run_at=self._retry_at(job, now),
            ))
        else:
            self.repository.complete_run(CompleteRunInput(
                job_id=job.id,
                run_id=run.id,
                run_status=RUN_SUCCESS,
                completed_at=now,
                message_id=message_id,
                next_run_at=next_run_at,
                complete_job=job.schedule_kind == SCHEDULE_ONCE,
            ))

        try:
            self.repository.prune_run_history(job.id, self.config.max_run_history)
        except JobStoreError as e:
            logger.warning(f"Job {job.id}: run history not pruned: {e}")
        return True

    def _rearm(self, job: AgentJob, now: datetime) -> None:
        """Put a leased job back on the schedule after its run could not be recorded."""
        try:
            self.repository.update_job(
                job.id, UpdateAgentJobInput(next_run_at=self._retry_at(job, now))
            )
        except JobStoreError as e:
            logger.error(f"Job {job.id}: could not be rescheduled: {e}")

    def _retry_at(self, job: AgentJob, now: datetime) -> datetime:
        if job.schedule_kind == SCHEDULE_INTERVAL and job.interval_ms and job.interval_ms > 0:
            return now + timedelta(milliseconds=job.interval_ms)
        return now + timedelta(seconds=self.config.retry_delay_s)

    # ── Background loop ───────────────────────────────────────

    async def start(self) -> None:
        """Start polling on the running event loop."""
        if not self.config.enabled:
            logger.debug("AgentJobWorker disabled")
            return
        if self.repository is None:
            raise StoreConfigurationError("agent job worker has no repository")
        if self.running:
            return
        self._scheduler = AsyncIOScheduler(
            job_defaults={"coalesce": True, "max_instances": 1}
        )
        self._scheduler.add_job(
            self._tick,
            trigger="interval",
            seconds=self.config.poll_interval_s,
            id=_SCHEDULER_JOB_ID,
            next_run_time=datetime.now(timezone.utc),
        )
        self._scheduler.start()
        logger.info(f"AgentJobWorker started (interval={self.config.poll_interval_s}s)")

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("AgentJobWorker stopped")

    async def _tick(self) -> None:
        try:
            processed = await asyncio.to_thread(self.run_once)
        except Exception as e:
            logger.error(f"Agent job worker pass failed: {e}")
            return
        if processed:
            logger.info(f"Agent job worker processed {processed} job(s)")
