"""Tests for agentjobs.core.jobs.policy."""

from datetime import datetime, timedelta, timezone

import pytest

from agentjobs.core.jobs.policy import apply_run_outcome, apply_stale_runs, run_duration_ms
from agentjobs.core.jobs.types import JobCounters


@pytest.fixture
def counters():
    return JobCounters(status="active", run_count=4, error_count=1, max_failures=3)


def test_success_clears_streak(counters):
    failing = counters.model_copy(update={"consecutive_failures": 2, "last_run_error": "x"})
    out = apply_run_outcome(failing, "success")
    assert out.run_count == 5
    assert out.consecutive_failures == 0
    assert out.error_count == 1
    assert out.last_run_error is None
    assert out.status == "active"


def test_skipped_counts_as_clean(counters):
    out = apply_run_outcome(counters.model_copy(update={"consecutive_failures": 1}), "skipped")
    assert out.consecutive_failures == 0


@pytest.mark.parametrize("status", ["error", "timeout"])
def test_failure_increments(counters, status):
    out = apply_run_outcome(counters, status, run_error="boom")
    assert out.error_count == 2
    assert out.consecutive_failures == 1
    assert out.last_run_error == "boom"
    assert out.status == "active"


def test_failure_threshold_pauses(counters):
    out = apply_run_outcome(
        counters.model_copy(update={"consecutive_failures": 2}), "error", run_error="boom"
    )
    assert out.consecutive_failures == 3
    assert out.status == "paused"


def test_complete_job_wins_over_pause(counters):
    out = apply_run_outcome(
        counters.model_copy(update={"consecutive_failures": 2}), "error", complete_job=True
    )
    assert out.status == "completed"


def test_input_not_mutated(counters):
    apply_run_outcome(counters, "error")
    assert counters.run_count == 4


def test_stale_runs_fold_as_timeouts(counters):
    out = apply_stale_runs(counters, 2)
    assert out.run_count == 6
    assert out.error_count == 3
    assert out.consecutive_failures == 2
    assert out.last_run_error == "stale running job exceeded timeout"
    assert out.status == "active"

    assert apply_stale_runs(counters, 3).status == "paused"
    assert apply_stale_runs(counters, 0) == counters


def test_stale_runs_pause_regardless_of_status(counters):
    done = counters.model_copy(update={"status": "completed"})
    assert apply_stale_runs(done, 3).status == "paused"


def test_run_duration_ms():
    t = datetime(2026, 2, 12, tzinfo=timezone.utc)
    assert run_duration_ms(t, t + timedelta(seconds=2, milliseconds=5)) == 2005
    assert run_duration_ms(t, t - timedelta(seconds=1)) == 0
