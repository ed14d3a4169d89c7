"""Repository protocols for the job store and its collaborators.

``SQLiteJobStore`` and ``InMemoryJobStore`` both satisfy all three; the
worker and the HTTP layer only depend on these shapes.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from agentjobs.core.jobs.types import (
    AgentJob,
    AgentJobFilter,
    AgentJobRun,
    CompleteRunInput,
    CreateAgentJobInput,
    UpdateAgentJobInput,
)


@runtime_checkable
class JobRepository(Protocol):
    tenant_id: str

    def create_job(self, data: CreateAgentJobInput) -> AgentJob: ...

    def get_job(self, job_id: str) -> AgentJob: ...

    def update_job(self, job_id: str, data: UpdateAgentJobInput) -> AgentJob: ...

    def delete_job(self, job_id: str) -> None: ...

    def list_jobs(self, flt: AgentJobFilter | None = None) -> list[AgentJob]: ...

    def pickup_due(self, limit: int = 50, now: datetime | None = None) -> list[AgentJob]: ...

    def start_run(
        self, job_id: str, payload_text: str, started_at: datetime | None = None
    ) -> AgentJobRun: ...

    def complete_run(self, data: CompleteRunInput) -> AgentJob: ...

    def list_runs(self, job_id: str, limit: int = 50) -> list[AgentJobRun]: ...

    def cleanup_stale_runs(
        self, older_than: timedelta | None = None, now: datetime | None = None
    ) -> int: ...

    def prune_run_history(self, job_id: str, max_runs: int = 100) -> int: ...


@runtime_checkable
class RoomProvisioner(Protocol):
    def ensure_room_for_job(self, job_id: str) -> str: ...


@runtime_checkable
class MessageWriter(Protocol):
    def create_job_message(
        self,
        job_id: str,
        room_id: str,
        payload_kind: str,
        payload_text: str,
        created_at: datetime | None = None,
    ) -> str: ...
