"""Next-run computation for callers of the job store.

The store never advances schedules itself: whoever reports a run outcome
supplies ``next_run_at``.  The worker and the HTTP API use this module to
do so.  Cron expressions are evaluated by APScheduler's CronTrigger.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.cron import CronTrigger

from agentjobs.core.jobs.errors import JobValidationError
from agentjobs.core.jobs.types import (
    DEFAULT_TIMEZONE,
    SCHEDULE_CRON,
    SCHEDULE_INTERVAL,
    SCHEDULE_ONCE,
)
from agentjobs.core.jobs.validation import as_utc, normalize_schedule_kind


def load_timezone(name: str | None) -> ZoneInfo:
    key = (name or "").strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise JobValidationError("timezone", f"invalid timezone: {key!r}") from e


def cron_trigger(cron_expr: str | None, tz_name: str | None) -> CronTrigger:
    """Build a CronTrigger, mapping parse errors to validation errors."""
    tz = load_timezone(tz_name)
    expr = (cron_expr or "").strip()
    if not expr:
        raise JobValidationError("cron_expr", "cron_expr is required for cron schedules")
    try:
        return CronTrigger.from_crontab(expr, timezone=tz)
    except ValueError as e:
        raise JobValidationError("cron_expr", f"invalid cron_expr: {e}") from e


def compute_next_run(job: Any, now: datetime) -> datetime | None:
    """Return the next due time for ``job`` after ``now``, or None when done.

    ``job`` is anything carrying the schedule columns (an AgentJob or a
    create input).  A one-shot job that has never run is due at ``run_at``,
    or immediately when ``run_at`` already passed.
    """
    now = as_utc(now)
    kind = normalize_schedule_kind(job.schedule_kind)
    tz = load_timezone(job.timezone)

    if kind == SCHEDULE_ONCE:
        if getattr(job, "last_run_at", None) is not None:
            return None
        run_at = as_utc(job.run_at)
        if run_at is None:
            raise JobValidationError("run_at", "run_at is required for once schedules")
        return run_at if run_at > now else now

    if kind == SCHEDULE_INTERVAL:
        if not job.interval_ms or job.interval_ms <= 0:
            raise JobValidationError("interval_ms", "interval_ms must be greater than zero")
        return now + timedelta(milliseconds=job.interval_ms)

    if kind == SCHEDULE_CRON:
        trigger = cron_trigger(job.cron_expr, tz.key)
        # strictly after now: CronTrigger rounds partial seconds up
        fire = trigger.get_next_fire_time(None, now.astimezone(tz) + timedelta(microseconds=1))
        return as_utc(fire) if fire is not None else None

    return None


def initial_next_run(job: Any, now: datetime) -> datetime | None:
    """First due time for a new (or resumed) job; ignores previous runs."""
    if normalize_schedule_kind(job.schedule_kind) == SCHEDULE_ONCE:
        load_timezone(job.timezone)
        return as_utc(job.run_at)
    return compute_next_run(job, now)
