"""Tests for AgentJobWorker (single passes and the background loop)."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from agentjobs.core.config import Config
from agentjobs.core.jobs.errors import RetryableStoreError, StoreConfigurationError
from agentjobs.core.jobs.types import CreateAgentJobInput
from agentjobs.core.scheduler.worker import AgentJobWorker
from agentjobs.storage import InMemoryJobStore

T0 = datetime(2026, 2, 12, 20, 0, tzinfo=timezone.utc)


def _worker(store, **worker_cfg):
    return AgentJobWorker(store, Config(worker=worker_cfg), now=lambda: T0)


def test_once_job_completes_and_posts(store, make_job):
    job = make_job(schedule_kind="once", run_at=T0 - timedelta(seconds=10), payload_text="hello room")

    assert _worker(store).run_once() == 1

    job = store.get_job(job.id)
    assert job.status == "completed"
    assert job.next_run_at is None
    assert job.last_run_status == "success"
    assert job.room_id

    [run] = store.list_runs(job.id)
    assert run.status == "success"
    assert run.message_id

    [msg] = store.get_room_messages(job.room_id)
    assert msg["body"] == "hello room"
    assert msg["id"] == run.message_id


def test_interval_job_reschedules(store, make_job):
    job = make_job(payload_kind="system_event")
    assert _worker(store).run_once() == 1

    job = store.get_job(job.id)
    assert job.status == "active"
    assert job.next_run_at == T0 + timedelta(minutes=1)
    [msg] = store.get_room_messages(job.room_id)
    assert msg["sender_type"] == "system"


def test_bad_timezone_pauses_after_max_failures(store, make_job):
    job = make_job(timezone="Not/ARealTimezone", max_failures=2)
    worker = _worker(store)

    assert worker.run_once(now=T0) == 1
    job = store.get_job(job.id)
    assert job.status == "active"
    assert job.consecutive_failures == 1
    assert job.next_run_at == T0 + timedelta(minutes=1)

    assert worker.run_once(now=T0 + timedelta(minutes=2)) == 1
    job = store.get_job(job.id)
    assert job.status == "paused"
    assert job.consecutive_failures == 2
    assert "timezone" in job.last_run_error
    assert [r.status for r in store.list_runs(job.id)] == ["error", "error"]

    assert worker.run_once(now=T0 + timedelta(minutes=4)) == 0


def test_failed_delivery_retries_later(store, make_job):
    class BrokenWriter:
        def create_job_message(self, *args, **kwargs):
            raise RuntimeError("chat backend down")

    job = make_job(schedule_kind="cron", cron_expr="0 9 * * *", interval_ms=None)
    worker = AgentJobWorker(
        store, Config(worker={"retry_delay_s": 30}), messages=BrokenWriter(), now=lambda: T0
    )
    assert worker.run_once() == 1

    job = store.get_job(job.id)
    assert job.last_run_status == "error"
    assert job.last_run_error == "chat backend down"
    assert job.next_run_at == T0 + timedelta(seconds=30)


class FlakyStore(InMemoryJobStore):
    """Fails the first run completion as if the database were busy."""

    def __init__(self):
        super().__init__(tenant_id="t1")
        self.failures = 1

    def complete_run(self, data):
        if self.failures:
            self.failures -= 1
            raise RetryableStoreError("database busy: database is locked")
        return super().complete_run(data)


def test_store_error_does_not_strand_batch():
    store = FlakyStore()
    agent = store.add_agent("Scout")
    jobs = [
        store.create_job(CreateAgentJobInput(
            agent_id=agent, name=f"job-{i}", schedule_kind="interval", interval_ms=60_000,
            payload_kind="message", payload_text="ping",
            next_run_at=T0 - timedelta(minutes=3 - i),
        ))
        for i in range(3)
    ]
    worker = _worker(store)

    assert worker.run_once(now=T0) == 2

    first, *rest = (store.get_job(j.id) for j in jobs)
    # completion failed: run left running, job back on the schedule
    [stuck] = store.list_runs(first.id)
    assert stuck.status == "running"
    assert first.next_run_at == T0 + timedelta(minutes=1)
    for job in rest:
        assert job.run_count == 1
        assert job.next_run_at == T0 + timedelta(minutes=1)

    assert worker.run_once(now=T0 + timedelta(minutes=2)) == 3
    assert store.get_job(first.id).run_count == 1


def test_stale_run_reclaimed_before_pickup(store, make_job):
    job = make_job(next_run_at=None)
    stale = store.start_run(job.id, job.payload_text, started_at=T0 - timedelta(minutes=20))

    assert _worker(store, run_timeout_s=300).run_once() == 0

    [run] = store.list_runs(job.id)
    assert run.id == stale.id
    assert run.status == "timeout"
    assert store.get_job(job.id).error_count == 1


def test_run_history_pruned(store, make_job):
    job = make_job()
    worker = _worker(store, max_run_history=2)
    for i in range(3):
        assert worker.run_once(now=T0 + timedelta(minutes=2 * i)) == 1

    runs = store.list_runs(job.id)
    assert len(runs) == 2
    assert store.get_job(job.id).run_count == 3


def test_nothing_due(store, make_job):
    make_job(next_run_at=T0 + timedelta(hours=1))
    assert _worker(store).run_once() == 0


def test_no_repository():
    worker = AgentJobWorker(None, Config())
    with pytest.raises(StoreConfigurationError):
        worker.run_once()


# ── Background loop ───────────────────────────────────────


@pytest.mark.asyncio
async def test_start_polls_and_stop():
    store = InMemoryJobStore(tenant_id="t1")
    agent = store.add_agent("Scout")
    job = store.create_job(CreateAgentJobInput(
        agent_id=agent, name="tick", schedule_kind="interval", interval_ms=60_000,
        payload_kind="message", payload_text="ping", next_run_at=T0,
    ))
    worker = AgentJobWorker(store, Config(worker={"poll_interval_s": 0.05}))

    await worker.start()
    assert worker.running
    for _ in range(40):
        await asyncio.sleep(0.05)
        if store.get_job(job.id).run_count:
            break
    await worker.stop()

    assert not worker.running
    assert store.get_job(job.id).run_count == 1


@pytest.mark.asyncio
async def test_disabled_worker_does_not_start():
    worker = AgentJobWorker(InMemoryJobStore(), Config(worker={"enabled": False}))
    await worker.start()
    assert not worker.running
    await worker.stop()


@pytest.mark.asyncio
async def test_start_without_repository():
    worker = AgentJobWorker(None, Config())
    with pytest.raises(StoreConfigurationError):
        await worker.start()
