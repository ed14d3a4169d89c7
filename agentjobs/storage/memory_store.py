"""In-memory job repository for tests and single-process use.

Mirrors ``SQLiteJobStore`` semantics under one ``threading.Lock``: a due
job is handed to exactly one ``pickup_due`` caller and a run completes
exactly once.
"""

from __future__ import annotations

import itertools
import threading
import uuid
from collections import Counter
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from agentjobs.core.jobs import policy
from agentjobs.core.jobs.errors import (
    JobConflictError,
    JobNotFoundError,
    JobValidationError,
    StoreConfigurationError,
)
from agentjobs.core.jobs.rooms import ROOM_TYPE, job_sender_id, message_types, room_name
from agentjobs.core.jobs.types import (
    DEFAULT_MAX_RUNS,
    DEFAULT_STALE_AFTER_S,
    JOB_ACTIVE,
    JOB_PAUSED,
    JOB_STATUSES,
    RUN_RUNNING,
    RUN_TIMEOUT,
    STALE_RUN_ERROR,
    AgentJob,
    AgentJobFilter,
    AgentJobRun,
    CompleteRunInput,
    CreateAgentJobInput,
    JobCounters,
    UpdateAgentJobInput,
)
from agentjobs.core.jobs.validation import (
    apply_update,
    as_utc,
    clamp_limit,
    normalize_create,
    normalize_payload_kind,
    normalize_run_status,
    normalize_status,
    require_id,
    utcnow,
)


class InMemoryJobStore:
    """Thread-safe fake of the SQLite store for one tenant."""

    def __init__(self, tenant_id: str = "default"):
        tenant_id = (tenant_id or "").strip()
        if not tenant_id:
            raise StoreConfigurationError("no tenant configured for job store")
        self.tenant_id = tenant_id
        self._lock = threading.Lock()
        self._agents: dict[str, dict[str, Any]] = {}
        self._jobs: dict[str, AgentJob] = {}
        self._runs: dict[str, AgentJobRun] = {}
        self._rooms: dict[str, dict[str, Any]] = {}
        self._messages: list[dict[str, Any]] = []
        # insertion sequence, tie-break for equal timestamps
        self._seq: dict[str, int] = {}
        self._counter = itertools.count()

    def _next_seq(self, key: str) -> None:
        self._seq[key] = next(self._counter)

    def _drop_run(self, run_id: str) -> None:
        del self._runs[run_id]
        self._seq.pop(run_id, None)

    def _job(self, job_id: str) -> AgentJob:
        job = self._jobs.get(job_id)
        if job is None or job.tenant_id != self.tenant_id:
            raise JobNotFoundError("job", job_id)
        return job

    # ── Agents ────────────────────────────────────────────────

    def add_agent(self, display_name: str, agent_id: str | None = None) -> str:
        agent_id = (agent_id or "").strip() or str(uuid.uuid4())
        with self._lock:
            if agent_id in self._agents:
                raise JobConflictError(f"agent already exists: {agent_id}")
            self._agents[agent_id] = {
                "id": agent_id,
                "tenant_id": self.tenant_id,
                "display_name": (display_name or "").strip(),
                "created_at": utcnow(),
            }
        return agent_id

    def list_agents(self) -> list[dict[str, Any]]:
        with self._lock:
            return [
                {k: a[k] for k in ("id", "display_name", "created_at")}
                for a in self._agents.values()
                if a["tenant_id"] == self.tenant_id
            ]

    # ── Job registry ──────────────────────────────────────────

    def create_job(self, data: CreateAgentJobInput) -> AgentJob:
        fields = normalize_create(data)
        now = utcnow()
        with self._lock:
            agent = self._agents.get(fields["agent_id"])
            if agent is None or agent["tenant_id"] != self.tenant_id:
                raise JobNotFoundError("agent", fields["agent_id"])
            job = AgentJob(
                id=str(uuid.uuid4()),
                tenant_id=self.tenant_id,
                created_at=now,
                updated_at=now,
                **fields,
            )
            self._jobs[job.id] = job
            self._next_seq(job.id)
        return job

    def get_job(self, job_id: str) -> AgentJob:
        job_id = require_id(job_id, "job_id")
        with self._lock:
            return self._job(job_id)

    def update_job(self, job_id: str, data: UpdateAgentJobInput) -> AgentJob:
        job_id = require_id(job_id, "job_id")
        with self._lock:
            updated = apply_update(self._job(job_id), data)
            updated = updated.model_copy(update={"updated_at": utcnow()})
            self._jobs[job_id] = updated
        return updated

    def delete_job(self, job_id: str) -> None:
        job_id = require_id(job_id, "job_id")
        with self._lock:
            self._job(job_id)
            del self._jobs[job_id]
            self._seq.pop(job_id, None)
            for run_id in [r.id for r in self._runs.values() if r.job_id == job_id]:
                self._drop_run(run_id)

    def list_jobs(self, flt: AgentJobFilter | None = None) -> list[AgentJob]:
        flt = flt or AgentJobFilter()
        status = normalize_status(flt.status) if flt.status else None
        agent_id = (flt.agent_id or "").strip() or None
        with self._lock:
            jobs = [
                j for j in self._jobs.values()
                if j.tenant_id == self.tenant_id
                and (agent_id is None or j.agent_id == agent_id)
                and (status is None or j.status == status)
                and (flt.enabled is None or j.enabled == flt.enabled)
            ]
            jobs.sort(key=lambda j: (j.created_at, self._seq[j.id]))
        return jobs[: clamp_limit(flt.limit)]

    def job_stats(self) -> dict[str, int]:
        stats = {status: 0 for status in JOB_STATUSES}
        with self._lock:
            for job in self._jobs.values():
                if job.tenant_id == self.tenant_id:
                    stats[job.status] += 1
            stats["running_runs"] = sum(
                1 for r in self._runs.values()
                if r.tenant_id == self.tenant_id and r.status == RUN_RUNNING
            )
        return stats

    # ── Leasing ───────────────────────────────────────────────

    def pickup_due(self, limit: int = 50, now: datetime | None = None) -> list[AgentJob]:
        now = as_utc(now) or utcnow()
        with self._lock:
            due = [
                j for j in self._jobs.values()
                if j.tenant_id == self.tenant_id
                and j.enabled
                and j.status == JOB_ACTIVE
                and j.next_run_at is not None
                and j.next_run_at <= now
            ]
            due.sort(key=lambda j: (j.next_run_at, j.created_at, self._seq[j.id]))
            leased = []
            for job in due[: clamp_limit(limit)]:
                claimed = job.model_copy(update={"next_run_at": None, "updated_at": utcnow()})
                self._jobs[job.id] = claimed
                leased.append(claimed)
        return leased

    # ── Runs ──────────────────────────────────────────────────

    def start_run(
        self, job_id: str, payload_text: str, started_at: datetime | None = None
    ) -> AgentJobRun:
        job_id = require_id(job_id, "job_id")
        payload_text = (payload_text or "").strip()
        if not payload_text:
            raise JobValidationError("payload_text", "payload_text is required")
        with self._lock:
            self._job(job_id)
            run = AgentJobRun(
                id=str(uuid.uuid4()),
                job_id=job_id,
                tenant_id=self.tenant_id,
                started_at=as_utc(started_at) or utcnow(),
                payload_text=payload_text,
                created_at=utcnow(),
            )
            self._runs[run.id] = run
            self._next_seq(run.id)
        return run

    def complete_run(self, data: CompleteRunInput) -> AgentJob:
        job_id = require_id(data.job_id, "job_id")
        run_id = require_id(data.run_id, "run_id")
        run_status = normalize_run_status(data.run_status)
        if run_status == RUN_RUNNING:
            raise JobValidationError("run_status", "run_status must be terminal")
        completed_at = as_utc(data.completed_at) or utcnow()
        error = (data.error or "").strip() or None

        with self._lock:
            run = self._runs.get(run_id)
            if run is None or run.job_id != job_id or run.tenant_id != self.tenant_id:
                raise JobNotFoundError("run", run_id)
            if run.status != RUN_RUNNING:
                raise JobConflictError(f"run {run_id} already completed ({run.status})")
            job = self._job(job_id)

            self._runs[run_id] = run.model_copy(update={
                "status": run_status,
                "completed_at": completed_at,
                "duration_ms": policy.run_duration_ms(run.started_at, completed_at),
                "error": error,
                "message_id": (data.message_id or "").strip() or None,
            })
            counters = policy.apply_run_outcome(
                JobCounters.of(job), run_status,
                run_error=error, complete_job=data.complete_job,
            )
            updated = job.model_copy(update={
                **counters.model_dump(exclude={"max_failures"}),
                "last_run_at": completed_at,
                "last_run_status": run_status,
                "next_run_at": as_utc(data.next_run_at),
                "updated_at": utcnow(),
            })
            self._jobs[job_id] = updated

        if updated.status == JOB_PAUSED and job.status != JOB_PAUSED:
            logger.warning(
                f"Job {job_id} paused after {updated.consecutive_failures} consecutive failures"
            )
        return updated

    def _job_runs_newest_first(self, job_id: str) -> list[AgentJobRun]:
        runs = [
            r for r in self._runs.values()
            if r.job_id == job_id and r.tenant_id == self.tenant_id
        ]
        runs.sort(key=lambda r: (r.started_at, r.id), reverse=True)
        return runs

    def list_runs(self, job_id: str, limit: int = 50) -> list[AgentJobRun]:
        job_id = require_id(job_id, "job_id")
        with self._lock:
            return self._job_runs_newest_first(job_id)[: clamp_limit(limit)]

    # ── Maintenance ───────────────────────────────────────────

    def cleanup_stale_runs(
        self, older_than: timedelta | None = None, now: datetime | None = None
    ) -> int:
        if older_than is None or older_than <= timedelta(0):
            older_than = timedelta(seconds=DEFAULT_STALE_AFTER_S)
        now = as_utc(now) or utcnow()
        cutoff = now - older_than
        per_job: Counter[str] = Counter()

        with self._lock:
            for run in list(self._runs.values()):
                if (
                    run.tenant_id != self.tenant_id
                    or run.status != RUN_RUNNING
                    or run.started_at >= cutoff
                ):
                    continue
                self._runs[run.id] = run.model_copy(update={
                    "status": RUN_TIMEOUT,
                    "completed_at": now,
                    "duration_ms": policy.run_duration_ms(run.started_at, now),
                    "error": STALE_RUN_ERROR,
                })
                per_job[run.job_id] += 1

            for job_id, count in per_job.items():
                job = self._jobs.get(job_id)
                if job is None:
                    continue
                counters = policy.apply_stale_runs(JobCounters.of(job), count)
                self._jobs[job_id] = job.model_copy(update={
                    **counters.model_dump(exclude={"max_failures"}),
                    "last_run_at": now,
                    "last_run_status": RUN_TIMEOUT,
                    "updated_at": utcnow(),
                })
        return sum(per_job.values())

    def prune_run_history(self, job_id: str, max_runs: int = DEFAULT_MAX_RUNS) -> int:
        job_id = require_id(job_id, "job_id")
        if max_runs <= 0:
            max_runs = DEFAULT_MAX_RUNS
        with self._lock:
            doomed = self._job_runs_newest_first(job_id)[max_runs:]
            for run in doomed:
                self._drop_run(run.id)
        return len(doomed)

    # ── Rooms & messages ──────────────────────────────────────

    def ensure_room_for_job(self, job_id: str) -> str:
        job_id = require_id(job_id, "job_id")
        with self._lock:
            job = self._job(job_id)
            if job.room_id:
                return job.room_id
            agent = self._agents.get(job.agent_id)
            if agent is None or agent["tenant_id"] != self.tenant_id:
                raise JobNotFoundError("agent", job.agent_id)
            room_id = str(uuid.uuid4())
            self._rooms[room_id] = {
                "id": room_id,
                "tenant_id": self.tenant_id,
                "name": room_name(agent["display_name"]),
                "type": ROOM_TYPE,
                "participants": [job.agent_id],
            }
            self._jobs[job_id] = job.model_copy(update={"room_id": room_id, "updated_at": utcnow()})
        return room_id

    def create_job_message(
        self,
        job_id: str,
        room_id: str,
        payload_kind: str,
        payload_text: str,
        created_at: datetime | None = None,
    ) -> str:
        job_id = require_id(job_id, "job_id")
        room_id = require_id(room_id, "room_id")
        payload_text = (payload_text or "").strip()
        if not payload_text:
            raise JobValidationError("payload_text", "payload_text is required")
        kind = normalize_payload_kind(payload_kind)
        sender_type, message_type = message_types(kind)
        with self._lock:
            if room_id not in self._rooms:
                raise JobNotFoundError("room", room_id)
            message_id = str(uuid.uuid4())
            self._messages.append({
                "id": message_id,
                "tenant_id": self.tenant_id,
                "room_id": room_id,
                "sender_id": job_sender_id(self.tenant_id, job_id, kind),
                "sender_type": sender_type,
                "body": payload_text,
                "type": message_type,
                "created_at": as_utc(created_at) or utcnow(),
            })
        return message_id

    def get_room(self, room_id: str) -> dict[str, Any] | None:
        with self._lock:
            room = self._rooms.get(room_id)
            return dict(room) if room else None

    def get_room_messages(self, room_id: str, limit: int = 50) -> list[dict[str, Any]]:
        with self._lock:
            msgs = [m for m in self._messages if m["room_id"] == room_id]
        return msgs[: clamp_limit(limit)]
