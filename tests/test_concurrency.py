"""Concurrent leasing and completion: every due job is handed out exactly once."""

from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from agentjobs.core.jobs.errors import JobConflictError, RetryableStoreError
from agentjobs.core.jobs.types import CompleteRunInput, CreateAgentJobInput
from agentjobs.storage import InMemoryJobStore, SQLiteJobStore

T0 = datetime(2026, 2, 12, 20, 0, tzinfo=timezone.utc)
WORKERS = 6
JOBS = 30


def _retrying(fn, *args, **kwargs):
    while True:
        try:
            return fn(*args, **kwargs)
        except RetryableStoreError:
            continue


@pytest.fixture(params=["sqlite", "memory"])
def stores(request, tmp_path):
    """One store handle per worker; SQLite handles share a file like separate processes."""
    if request.param == "sqlite":
        db = tmp_path / "jobs.db"
        return [SQLiteJobStore(db, tenant_id="t1", busy_timeout_s=10) for _ in range(WORKERS)]
    shared = InMemoryJobStore(tenant_id="t1")
    return [shared] * WORKERS


@pytest.fixture
def due_jobs(stores):
    store = stores[0]
    agent = store.add_agent("Scout")
    return [
        store.create_job(CreateAgentJobInput(
            agent_id=agent, name=f"job-{i}", schedule_kind="interval", interval_ms=60_000,
            payload_kind="message", payload_text="ping",
            next_run_at=T0 - timedelta(seconds=i),
        ))
        for i in range(JOBS)
    ]


def test_pickup_leases_each_job_once(stores, due_jobs):
    def drain(store):
        got = []
        while True:
            batch = _retrying(store.pickup_due, limit=3, now=T0)
            if not batch:
                return got
            got.extend(j.id for j in batch)

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        results = list(pool.map(drain, stores))

    counts = Counter(job_id for got in results for job_id in got)
    assert set(counts) == {j.id for j in due_jobs}
    assert all(n == 1 for n in counts.values())


def test_double_complete_single_winner(stores, due_jobs):
    job = due_jobs[0]
    run = stores[0].start_run(job.id, job.payload_text, started_at=T0)
    done = CompleteRunInput(job_id=job.id, run_id=run.id, run_status="success", completed_at=T0)

    def complete(store):
        try:
            _retrying(store.complete_run, done)
            return "ok"
        except JobConflictError:
            return "conflict"

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        outcomes = Counter(pool.map(complete, stores))

    assert outcomes == {"ok": 1, "conflict": WORKERS - 1}
    assert stores[0].get_job(job.id).run_count == 1


def test_concurrent_cleanup_counts_each_run_once(stores, due_jobs):
    for job in due_jobs[:5]:
        stores[0].start_run(job.id, job.payload_text, started_at=T0 - timedelta(hours=1))

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        reclaimed = list(pool.map(
            lambda s: _retrying(s.cleanup_stale_runs, timedelta(minutes=5), T0), stores
        ))

    assert sum(reclaimed) == 5
    for job in due_jobs[:5]:
        assert stores[0].get_job(job.id).error_count == 1
