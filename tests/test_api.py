"""Tests for agentjobs.api."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from agentjobs.api.app import create_app, status_for
from agentjobs.core.config import Config
from agentjobs.core.jobs.errors import (
    JobConflictError,
    JobNotFoundError,
    JobStoreError,
    JobValidationError,
    RetryableStoreError,
    StoreConfigurationError,
)
from agentjobs.core.jobs.types import AgentJob, CompleteRunInput
from agentjobs.storage import SQLiteJobStore


@pytest.fixture
def store(tmp_path):
    return SQLiteJobStore(tmp_path / "api.db", tenant_id="t1")


@pytest.fixture
def agent_id(store):
    return store.add_agent("Scout")


@pytest.fixture
def app(tmp_path, store):
    """App with state wired by hand; the lifespan (and its worker) never runs."""
    config = Config(database={"path": str(tmp_path / "api.db")}, workspace={"tenant_id": "t1"})
    application = create_app()
    application.state.config = config
    application.state.store = store
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as c:
        yield c


def _body(agent_id, **kw):
    data = {
        "agent_id": agent_id,
        "name": "Digest",
        "schedule_kind": "interval",
        "interval_ms": 60_000,
        "payload_kind": "message",
        "payload_text": "summarize",
    }
    data.update(kw)
    return data


async def _create(client, agent_id, **kw) -> AgentJob:
    resp = await client.post("/jobs", json=_body(agent_id, **kw))
    assert resp.status_code == 201, resp.text
    return AgentJob.model_validate(resp.json())


# --- Health ---

@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["store_ready"] is True
    assert data["tenant_id"] == "t1"


# --- Create / read ---

@pytest.mark.asyncio
async def test_create_computes_next_run(client, agent_id):
    before = datetime.now(timezone.utc)
    job = await _create(client, agent_id)
    assert job.status == "active"
    assert job.tenant_id == "t1"
    assert before + timedelta(seconds=59) < job.next_run_at < before + timedelta(seconds=120)


@pytest.mark.asyncio
async def test_create_once_uses_run_at(client, agent_id):
    run_at = datetime(2030, 1, 1, 9, 0, tzinfo=timezone.utc)
    job = await _create(client, agent_id, schedule_kind="once", interval_ms=None,
                        run_at=run_at.isoformat())
    assert job.next_run_at == run_at


@pytest.mark.asyncio
async def test_create_validation_error(client, agent_id):
    resp = await client.post("/jobs", json=_body(agent_id, schedule_kind="cron", interval_ms=None))
    assert resp.status_code == 400
    assert "cron_expr" in resp.json()["detail"]

    resp = await client.post("/jobs", json=_body(agent_id, timezone="Mars/Olympus"))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_create_unknown_agent(client):
    resp = await client.post("/jobs", json=_body("ghost"))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_create_rejects_unknown_fields(client, agent_id):
    resp = await client.post("/jobs", json=_body(agent_id, run_count=7))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_and_list(client, agent_id):
    a = await _create(client, agent_id, name="a")
    await _create(client, agent_id, name="b", enabled=False)

    resp = await client.get(f"/jobs/{a.id}")
    assert resp.status_code == 200
    assert AgentJob.model_validate(resp.json()).name == "a"

    resp = await client.get("/jobs")
    assert resp.json()["total"] == 2
    assert [j["name"] for j in resp.json()["items"]] == ["a", "b"]

    resp = await client.get("/jobs", params={"enabled": "false"})
    assert [j["name"] for j in resp.json()["items"]] == ["b"]

    resp = await client.get("/jobs", params={"status": "nope"})
    assert resp.status_code == 400

    resp = await client.get("/jobs", params={"limit": 0})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_missing(client):
    resp = await client.get("/jobs/nope")
    assert resp.status_code == 404
    assert "nope" in resp.json()["detail"]


# --- Update / delete ---

@pytest.mark.asyncio
async def test_patch(client, agent_id):
    job = await _create(client, agent_id)
    resp = await client.patch(f"/jobs/{job.id}", json={"interval_ms": 3_600_000, "description": "hourly"})
    assert resp.status_code == 200
    updated = AgentJob.model_validate(resp.json())
    assert updated.interval_ms == 3_600_000
    assert updated.description == "hourly"
    assert updated.next_run_at > job.next_run_at + timedelta(minutes=50)


@pytest.mark.asyncio
async def test_patch_empty_and_invalid(client, agent_id):
    job = await _create(client, agent_id)
    resp = await client.patch(f"/jobs/{job.id}", json={})
    assert resp.status_code == 400

    resp = await client.patch(f"/jobs/{job.id}", json={"max_failures": 0})
    assert resp.status_code == 400

    resp = await client.patch(f"/jobs/{job.id}", json={"status": "paused"})
    assert resp.status_code == 422

    resp = await client.patch("/jobs/nope", json={"name": "x"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete(client, agent_id):
    job = await _create(client, agent_id)
    resp = await client.delete(f"/jobs/{job.id}")
    assert resp.status_code == 200
    assert resp.json() == {"deleted": True, "id": job.id}
    assert (await client.get(f"/jobs/{job.id}")).status_code == 404
    assert (await client.delete(f"/jobs/{job.id}")).status_code == 404


# --- Actions ---

@pytest.mark.asyncio
async def test_pause_resume_run(client, agent_id):
    job = await _create(client, agent_id)

    resp = await client.post(f"/jobs/{job.id}/pause")
    assert AgentJob.model_validate(resp.json()).status == "paused"

    resp = await client.post(f"/jobs/{job.id}/resume")
    resumed = AgentJob.model_validate(resp.json())
    assert resumed.status == "active"
    assert resumed.next_run_at is not None

    before = datetime.now(timezone.utc)
    resp = await client.post(f"/jobs/{job.id}/run")
    ran = AgentJob.model_validate(resp.json())
    assert ran.next_run_at >= before - timedelta(seconds=1)
    assert ran.next_run_at <= datetime.now(timezone.utc)


@pytest.mark.asyncio
async def test_resume_completed_once_job(client, store, agent_id):
    job = await _create(client, agent_id, schedule_kind="once", interval_ms=None,
                        run_at="2026-01-01T00:00:00Z")
    run = store.start_run(job.id, job.payload_text)
    store.complete_run(CompleteRunInput(
        job_id=job.id, run_id=run.id, run_status="success", complete_job=True,
    ))

    resp = await client.post(f"/jobs/{job.id}/resume")
    assert resp.status_code == 400
    assert "completed one-shot" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_list_runs(client, store, agent_id):
    job = await _create(client, agent_id)
    run = store.start_run(job.id, job.payload_text)

    resp = await client.get(f"/jobs/{job.id}/runs")
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 1
    assert data["items"][0]["id"] == run.id
    assert data["items"][0]["status"] == "running"

    assert (await client.get("/jobs/nope/runs")).status_code == 404


# --- Error mapping ---

@pytest.mark.asyncio
async def test_store_not_wired(tmp_path):
    application = create_app()
    async with AsyncClient(transport=ASGITransport(app=application), base_url="http://test") as c:
        assert (await c.get("/jobs")).status_code == 503
        assert (await c.get("/health")).json()["store_ready"] is False


def test_status_for():
    assert status_for(JobValidationError("name")) == 400
    assert status_for(JobNotFoundError("job", "x")) == 404
    assert status_for(JobConflictError("done")) == 409
    assert status_for(StoreConfigurationError("no tenant")) == 503
    assert status_for(RetryableStoreError("busy")) == 503
    assert status_for(JobStoreError("other")) == 500
