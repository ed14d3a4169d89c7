"""Failure escalation policy as pure (counters, outcome) -> counters functions.

Both the run completion path and the stale-run reaper fold outcomes into
a job through these functions, so the escalation rule lives in one place
and is testable without a database.
"""

from __future__ import annotations

from datetime import datetime

from agentjobs.core.jobs.types import (
    JOB_COMPLETED,
    JOB_PAUSED,
    RUN_ERROR,
    RUN_SKIPPED,
    RUN_SUCCESS,
    RUN_TIMEOUT,
    STALE_RUN_ERROR,
    JobCounters,
)

FAILURE_STATUSES = frozenset({RUN_ERROR, RUN_TIMEOUT})
CLEAN_STATUSES = frozenset({RUN_SUCCESS, RUN_SKIPPED})


def run_duration_ms(started_at: datetime, completed_at: datetime) -> int:
    """Milliseconds between start and completion, clamped at zero."""
    delta = completed_at - started_at
    return max(0, int(delta.total_seconds() * 1000))


def apply_run_outcome(
    counters: JobCounters,
    run_status: str,
    *,
    run_error: str | None = None,
    complete_job: bool = False,
) -> JobCounters:
    """Fold one terminal run outcome into the job summary."""
    status = counters.status
    error_count = counters.error_count
    consecutive = counters.consecutive_failures
    last_error = run_error

    if run_status in CLEAN_STATUSES:
        consecutive = 0
        last_error = None
    elif run_status in FAILURE_STATUSES:
        error_count += 1
        consecutive += 1
        if consecutive >= counters.max_failures:
            status = JOB_PAUSED
    if complete_job:
        status = JOB_COMPLETED

    return counters.model_copy(update={
        "status": status,
        "run_count": counters.run_count + 1,
        "error_count": error_count,
        "consecutive_failures": consecutive,
        "last_run_error": last_error,
    })


def apply_stale_runs(counters: JobCounters, stale_count: int) -> JobCounters:
    """Fold ``stale_count`` reclaimed runs in as timeouts."""
    if stale_count <= 0:
        return counters
    consecutive = counters.consecutive_failures + stale_count
    status = JOB_PAUSED if consecutive >= counters.max_failures else counters.status
    return counters.model_copy(update={
        "status": status,
        "run_count": counters.run_count + stale_count,
        "error_count": counters.error_count + stale_count,
        "consecutive_failures": consecutive,
        "last_run_error": STALE_RUN_ERROR,
    })
