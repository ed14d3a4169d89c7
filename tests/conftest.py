"""Shared fixtures: every store test runs against SQLite and the in-memory fake."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from agentjobs.core.jobs.types import CreateAgentJobInput
from agentjobs.storage import InMemoryJobStore, SQLiteJobStore

T0 = datetime(2026, 2, 12, 20, 0, tzinfo=timezone.utc)


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteJobStore(tmp_path / "jobs.db", tenant_id="t1")
    return InMemoryJobStore(tenant_id="t1")


@pytest.fixture
def agent_id(store):
    return store.add_agent("Scout")


@pytest.fixture
def make_job(store, agent_id):
    """Create a due interval job; keyword overrides go straight into the input."""

    def _make(**overrides):
        data = {
            "agent_id": agent_id,
            "name": "Daily digest",
            "schedule_kind": "interval",
            "interval_ms": 60_000,
            "payload_kind": "message",
            "payload_text": "summarize the feed",
            "next_run_at": T0 - timedelta(seconds=10),
        }
        data.update(overrides)
        return store.create_job(CreateAgentJobInput(**data))

    return _make
