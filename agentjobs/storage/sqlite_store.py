"""SQLite-backed agent job store.

Tables: agents, rooms, room_participants, chat_messages,
        agent_jobs, agent_job_runs

Every instance is scoped to one tenant and every query carries it.  Writes
that claim rows (pickup, completion, stale cleanup) run inside
``BEGIN IMMEDIATE`` so only one writer holds the database, and each claim
is a conditional UPDATE on the lease marker: a row another caller already
claimed no longer matches and is skipped.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections import Counter
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterator

from loguru import logger

from agentjobs.core.jobs import policy
from agentjobs.core.jobs.errors import (
    JobConflictError,
    JobNotFoundError,
    JobValidationError,
    RetryableStoreError,
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

_JOB_COLUMNS = (
    "id", "tenant_id", "agent_id", "name", "description",
    "schedule_kind", "cron_expr", "interval_ms", "run_at", "timezone",
    "payload_kind", "payload_text", "room_id",
    "enabled", "status", "last_run_at", "last_run_status", "last_run_error",
    "next_run_at", "run_count", "error_count", "max_failures",
    "consecutive_failures", "created_by", "created_at", "updated_at",
)

_UPDATABLE_COLUMNS = (
    "name", "description", "schedule_kind", "cron_expr", "interval_ms",
    "run_at", "timezone", "payload_kind", "payload_text", "room_id",
    "enabled", "status", "next_run_at", "max_failures",
)


def _ts(value: datetime | None) -> str | None:
    """UTC, fixed-width ISO text so stored timestamps compare as strings."""
    if value is None:
        return None
    return as_utc(value).isoformat(timespec="microseconds")


def _is_busy(exc: sqlite3.OperationalError) -> bool:
    msg = str(exc).lower()
    return "locked" in msg or "busy" in msg


def _rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        conn.execute("ROLLBACK")


class SQLiteJobStore:
    """Agent job repository on a single SQLite file."""

    def __init__(
        self,
        db_path: str | Path = "data/agentjobs.db",
        tenant_id: str = "default",
        busy_timeout_s: float = 5.0,
    ):
        tenant_id = (tenant_id or "").strip()
        if not tenant_id:
            raise StoreConfigurationError("no tenant configured for job store")
        self.db_path = str(db_path)
        self.tenant_id = tenant_id
        self.busy_timeout_s = busy_timeout_s
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        logger.info(f"SQLiteJobStore initialized: {self.db_path} (tenant={tenant_id})")

    @classmethod
    def from_config(cls, config) -> SQLiteJobStore:
        return cls(
            db_path=config.database.path,
            tenant_id=config.workspace.tenant_id,
            busy_timeout_s=config.database.busy_timeout_s,
        )

    @contextmanager
    def _get_conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(
            self.db_path, timeout=self.busy_timeout_s, isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Single-writer transaction; commits on success, rolls back on error."""
        with self._get_conn() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                if _is_busy(e):
                    raise RetryableStoreError(f"database busy: {e}") from e
                raise
            try:
                yield conn
                conn.execute("COMMIT")
            except sqlite3.OperationalError as e:
                _rollback(conn)
                if _is_busy(e):
                    raise RetryableStoreError(f"database busy: {e}") from e
                raise
            except BaseException:
                _rollback(conn)
                raise

    def _init_db(self) -> None:
        with self._get_conn() as conn:
            conn.executescript(_SCHEMA)

    # ════════════════════════════════════════════════════════════
    # ROW MAPPING
    # ════════════════════════════════════════════════════════════

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> AgentJob:
        data = dict(row)
        data["enabled"] = bool(data["enabled"])
        return AgentJob.model_validate(data)

    @staticmethod
    def _row_to_run(row: sqlite3.Row) -> AgentJobRun:
        return AgentJobRun.model_validate(dict(row))

    def _fetch_job(self, conn: sqlite3.Connection, job_id: str) -> AgentJob:
        row = conn.execute(
            "SELECT * FROM agent_jobs WHERE id = ? AND tenant_id = ?",
            (job_id, self.tenant_id),
        ).fetchone()
        if row is None:
            raise JobNotFoundError("job", job_id)
        return self._row_to_job(row)

    # ════════════════════════════════════════════════════════════
    # AGENTS
    # ════════════════════════════════════════════════════════════

    def add_agent(self, display_name: str, agent_id: str | None = None) -> str:
        """Register an agent in this tenant; returns its id."""
        agent_id = (agent_id or "").strip() or str(uuid.uuid4())
        with self._transaction() as conn:
            try:
                conn.execute(
                    """INSERT INTO agents (id, tenant_id, display_name, created_at)
                       VALUES (?, ?, ?, ?)""",
                    (agent_id, self.tenant_id, (display_name or "").strip(), _ts(utcnow())),
                )
            except sqlite3.IntegrityError as e:
                raise JobConflictError(f"agent already exists: {agent_id}") from e
        logger.info(f"Agent registered: {agent_id} ({display_name})")
        return agent_id

    def list_agents(self) -> list[dict[str, Any]]:
        with self._get_conn() as conn:
            rows = conn.execute(
                """SELECT id, display_name, created_at FROM agents
                   WHERE tenant_id = ? ORDER BY created_at, id""",
                (self.tenant_id,),
            ).fetchall()
        return [dict(r) for r in rows]

    # ════════════════════════════════════════════════════════════
    # JOB REGISTRY
    # ════════════════════════════════════════════════════════════

    def create_job(self, data: CreateAgentJobInput) -> AgentJob:
        fields = normalize_create(data)
        now = _ts(utcnow())
        job_id = str(uuid.uuid4())
        row = {
            **fields,
            "id": job_id,
            "tenant_id": self.tenant_id,
            "enabled": int(fields["enabled"]),
            "run_at": _ts(fields["run_at"]),
            "next_run_at": _ts(fields["next_run_at"]),
            "created_at": now,
            "updated_at": now,
        }
        cols = [c for c in _JOB_COLUMNS if c in row]
        with self._transaction() as conn:
            agent = conn.execute(
                "SELECT 1 FROM agents WHERE id = ? AND tenant_id = ?",
                (fields["agent_id"], self.tenant_id),
            ).fetchone()
            if agent is None:
                raise JobNotFoundError("agent", fields["agent_id"])
            try:
                conn.execute(
                    f"INSERT INTO agent_jobs ({', '.join(cols)}) "
                    f"VALUES ({', '.join('?' for _ in cols)})",
                    tuple(row[c] for c in cols),
                )
            except sqlite3.IntegrityError as e:
                if "FOREIGN KEY" in str(e).upper():
                    raise JobNotFoundError("agent", fields["agent_id"]) from e
                raise
            job = self._fetch_job(conn, job_id)
        logger.info(f"Job created: {job.id} ({job.name}, {job.schedule_kind})")
        return job

    def get_job(self, job_id: str) -> AgentJob:
        job_id = require_id(job_id, "job_id")
        with self._get_conn() as conn:
            return self._fetch_job(conn, job_id)

    def update_job(self, job_id: str, data: UpdateAgentJobInput) -> AgentJob:
        job_id = require_id(job_id, "job_id")
        with self._transaction() as conn:
            current = self._fetch_job(conn, job_id)
            updated = apply_update(current, data)
            values = updated.model_dump(include=set(_UPDATABLE_COLUMNS))
            values["enabled"] = int(values["enabled"])
            values["run_at"] = _ts(values["run_at"])
            values["next_run_at"] = _ts(values["next_run_at"])
            assignments = ", ".join(f"{c} = ?" for c in _UPDATABLE_COLUMNS)
            conn.execute(
                f"UPDATE agent_jobs SET {assignments}, updated_at = ? "
                "WHERE id = ? AND tenant_id = ?",
                (
                    *(values[c] for c in _UPDATABLE_COLUMNS),
                    _ts(utcnow()), job_id, self.tenant_id,
                ),
            )
            return self._fetch_job(conn, job_id)

    def delete_job(self, job_id: str) -> None:
        job_id = require_id(job_id, "job_id")
        with self._transaction() as conn:
            cur = conn.execute(
                "DELETE FROM agent_jobs WHERE id = ? AND tenant_id = ?",
                (job_id, self.tenant_id),
            )
            if cur.rowcount == 0:
                raise JobNotFoundError("job", job_id)
        logger.info(f"Job deleted: {job_id}")

    def list_jobs(self, flt: AgentJobFilter | None = None) -> list[AgentJob]:
        flt = flt or AgentJobFilter()
        where = ["tenant_id = ?"]
        params: list[Any] = [self.tenant_id]
        if flt.agent_id:
            where.append("agent_id = ?")
            params.append(flt.agent_id.strip())
        if flt.status:
            where.append("status = ?")
            params.append(normalize_status(flt.status))
        if flt.enabled is not None:
            where.append("enabled = ?")
            params.append(int(flt.enabled))
        params.append(clamp_limit(flt.limit))
        with self._get_conn() as conn:
            rows = conn.execute(
                f"""SELECT * FROM agent_jobs WHERE {' AND '.join(where)}
                    ORDER BY created_at ASC, rowid ASC LIMIT ?""",
                params,
            ).fetchall()
        return [self._row_to_job(r) for r in rows]

    def job_stats(self) -> dict[str, int]:
        """Job counts per status plus runs currently in flight."""
        stats = {status: 0 for status in JOB_STATUSES}
        with self._get_conn() as conn:
            for row in conn.execute(
                "SELECT status, COUNT(*) AS n FROM agent_jobs WHERE tenant_id = ? GROUP BY status",
                (self.tenant_id,),
            ):
                stats[row["status"]] = row["n"]
            stats["running_runs"] = conn.execute(
                "SELECT COUNT(*) FROM agent_job_runs WHERE tenant_id = ? AND status = ?",
                (self.tenant_id, RUN_RUNNING),
            ).fetchone()[0]
        return stats

    # ════════════════════════════════════════════════════════════
    # DUE-JOB LEASING
    # ════════════════════════════════════════════════════════════

    def pickup_due(self, limit: int = 50, now: datetime | None = None) -> list[AgentJob]:
        """Lease up to ``limit`` due jobs by clearing their ``next_run_at``."""
        now = as_utc(now) or utcnow()
        limit = clamp_limit(limit)
        leased: list[AgentJob] = []
        with self._transaction() as conn:
            rows = conn.execute(
                """SELECT * FROM agent_jobs
                   WHERE tenant_id = ? AND enabled = 1 AND status = ?
                     AND next_run_at IS NOT NULL AND next_run_at <= ?
                   ORDER BY next_run_at ASC, created_at ASC, rowid ASC
                   LIMIT ?""",
                (self.tenant_id, JOB_ACTIVE, _ts(now), limit),
            ).fetchall()
            stamp = _ts(utcnow())
            for row in rows:
                cur = conn.execute(
                    """UPDATE agent_jobs SET next_run_at = NULL, updated_at = ?
                       WHERE id = ? AND tenant_id = ? AND next_run_at IS NOT NULL""",
                    (stamp, row["id"], self.tenant_id),
                )
                if cur.rowcount != 1:
                    continue
                job = self._row_to_job(row)
                leased.append(job.model_copy(update={"next_run_at": None}))
        if leased:
            logger.info(f"Leased {len(leased)} due job(s)")
        return leased

    # ════════════════════════════════════════════════════════════
    # RUN LIFECYCLE
    # ════════════════════════════════════════════════════════════

    def start_run(
        self, job_id: str, payload_text: str, started_at: datetime | None = None
    ) -> AgentJobRun:
        job_id = require_id(job_id, "job_id")
        payload_text = (payload_text or "").strip()
        if not payload_text:
            raise JobValidationError("payload_text", "payload_text is required")
        started = _ts(as_utc(started_at) or utcnow())
        run_id = str(uuid.uuid4())
        with self._transaction() as conn:
            self._fetch_job(conn, job_id)
            conn.execute(
                """INSERT INTO agent_job_runs
                   (id, job_id, tenant_id, status, started_at, payload_text, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (run_id, job_id, self.tenant_id, RUN_RUNNING, started,
                 payload_text, _ts(utcnow())),
            )
            row = conn.execute(
                "SELECT * FROM agent_job_runs WHERE id = ?", (run_id,)
            ).fetchone()
        return self._row_to_run(row)

    def complete_run(self, data: CompleteRunInput) -> AgentJob:
        """Record a run's terminal outcome and fold it into the job."""
        job_id = require_id(data.job_id, "job_id")
        run_id = require_id(data.run_id, "run_id")
        run_status = normalize_run_status(data.run_status)
        if run_status == RUN_RUNNING:
            raise JobValidationError("run_status", "run_status must be terminal")
        completed_at = as_utc(data.completed_at) or utcnow()
        error = (data.error or "").strip() or None
        message_id = (data.message_id or "").strip() or None

        with self._transaction() as conn:
            run_row = conn.execute(
                """SELECT * FROM agent_job_runs
                   WHERE id = ? AND job_id = ? AND tenant_id = ?""",
                (run_id, job_id, self.tenant_id),
            ).fetchone()
            if run_row is None:
                raise JobNotFoundError("run", run_id)
            run = self._row_to_run(run_row)
            if run.status != RUN_RUNNING:
                raise JobConflictError(f"run {run_id} already completed ({run.status})")

            duration = policy.run_duration_ms(run.started_at, completed_at)
            cur = conn.execute(
                """UPDATE agent_job_runs
                   SET status = ?, completed_at = ?, duration_ms = ?, error = ?, message_id = ?
                   WHERE id = ? AND status = ?""",
                (run_status, _ts(completed_at), duration, error, message_id,
                 run_id, RUN_RUNNING),
            )
            if cur.rowcount != 1:
                raise JobConflictError(f"run {run_id} already completed")

            job = self._fetch_job(conn, job_id)
            counters = policy.apply_run_outcome(
                JobCounters.of(job), run_status,
                run_error=error, complete_job=data.complete_job,
            )
            self._write_outcome(
                conn, job_id, counters,
                last_run_at=completed_at,
                last_run_status=run_status,
                next_run_at=data.next_run_at,
            )
            updated = self._fetch_job(conn, job_id)

        logger.info(
            f"Run completed: job={job_id} run={run_id} status={run_status} ({duration}ms)"
        )
        if updated.status == JOB_PAUSED and job.status != JOB_PAUSED:
            logger.warning(
                f"Job {job_id} paused after {updated.consecutive_failures} consecutive failures"
            )
        return updated

    def _write_outcome(
        self,
        conn: sqlite3.Connection,
        job_id: str,
        counters: JobCounters,
        *,
        last_run_at: datetime,
        last_run_status: str,
        next_run_at: datetime | None = None,
        keep_next_run: bool = False,
    ) -> None:
        params: list[Any] = [
            counters.status, counters.run_count, counters.error_count,
            counters.consecutive_failures, counters.last_run_error,
            _ts(last_run_at), last_run_status,
        ]
        next_clause = ""
        if not keep_next_run:
            next_clause = ", next_run_at = ?"
            params.append(_ts(next_run_at))
        params += [_ts(utcnow()), job_id, self.tenant_id]
        conn.execute(
            f"""UPDATE agent_jobs
                SET status = ?, run_count = ?, error_count = ?,
                    consecutive_failures = ?, last_run_error = ?,
                    last_run_at = ?, last_run_status = ?{next_clause},
                    updated_at = ?
                WHERE id = ? AND tenant_id = ?""",
            params,
        )

    def list_runs(self, job_id: str, limit: int = 50) -> list[AgentJobRun]:
        job_id = require_id(job_id, "job_id")
        with self._get_conn() as conn:
            rows = conn.execute(
                """SELECT * FROM agent_job_runs
                   WHERE job_id = ? AND tenant_id = ?
                   ORDER BY started_at DESC, id DESC LIMIT ?""",
                (job_id, self.tenant_id, clamp_limit(limit)),
            ).fetchall()
        return [self._row_to_run(r) for r in rows]

    # ════════════════════════════════════════════════════════════
    # MAINTENANCE
    # ════════════════════════════════════════════════════════════

    def cleanup_stale_runs(
        self, older_than: timedelta | None = None, now: datetime | None = None
    ) -> int:
        """Time out runs stuck in ``running`` longer than ``older_than``."""
        if older_than is None or older_than <= timedelta(0):
            older_than = timedelta(seconds=DEFAULT_STALE_AFTER_S)
        now = as_utc(now) or utcnow()
        cutoff = now - older_than
        per_job: Counter[str] = Counter()

        with self._transaction() as conn:
            rows = conn.execute(
                """SELECT id, job_id, started_at FROM agent_job_runs
                   WHERE tenant_id = ? AND status = ? AND started_at < ?
                   ORDER BY started_at ASC""",
                (self.tenant_id, RUN_RUNNING, _ts(cutoff)),
            ).fetchall()
            for row in rows:
                started = datetime.fromisoformat(row["started_at"])
                cur = conn.execute(
                    """UPDATE agent_job_runs
                       SET status = ?, completed_at = ?, duration_ms = ?, error = ?
                       WHERE id = ? AND status = ?""",
                    (RUN_TIMEOUT, _ts(now), policy.run_duration_ms(started, now),
                     STALE_RUN_ERROR, row["id"], RUN_RUNNING),
                )
                if cur.rowcount == 1:
                    per_job[row["job_id"]] += 1

            for job_id, count in per_job.items():
                job = self._fetch_job(conn, job_id)
                counters = policy.apply_stale_runs(JobCounters.of(job), count)
                self._write_outcome(
                    conn, job_id, counters,
                    last_run_at=now, last_run_status=RUN_TIMEOUT,
                    keep_next_run=True,
                )
                if counters.status == JOB_PAUSED and job.status != JOB_PAUSED:
                    logger.warning(f"Job {job_id} paused after stale runs")

        total = sum(per_job.values())
        if total:
            logger.info(f"Reclaimed {total} stale run(s) across {len(per_job)} job(s)")
        return total

    def prune_run_history(self, job_id: str, max_runs: int = DEFAULT_MAX_RUNS) -> int:
        """Keep the ``max_runs`` most recent runs of a job; returns rows deleted."""
        job_id = require_id(job_id, "job_id")
        if max_runs <= 0:
            max_runs = DEFAULT_MAX_RUNS
        with self._transaction() as conn:
            cur = conn.execute(
                """DELETE FROM agent_job_runs
                   WHERE job_id = ? AND tenant_id = ? AND id NOT IN (
                       SELECT id FROM agent_job_runs
                       WHERE job_id = ? AND tenant_id = ?
                       ORDER BY started_at DESC, id DESC LIMIT ?
                   )""",
                (job_id, self.tenant_id, job_id, self.tenant_id, max_runs),
            )
            deleted = cur.rowcount
        if deleted:
            logger.info(f"Pruned {deleted} run(s) of job {job_id}")
        return deleted

    # ════════════════════════════════════════════════════════════
    # ROOMS & MESSAGES
    # ════════════════════════════════════════════════════════════

    def ensure_room_for_job(self, job_id: str) -> str:
        """Return the job's room, creating ``Scheduled - <agent>`` on first use."""
        job_id = require_id(job_id, "job_id")
        with self._transaction() as conn:
            job = self._fetch_job(conn, job_id)
            if job.room_id:
                return job.room_id
            agent = conn.execute(
                "SELECT display_name FROM agents WHERE id = ? AND tenant_id = ?",
                (job.agent_id, self.tenant_id),
            ).fetchone()
            if agent is None:
                raise JobNotFoundError("agent", job.agent_id)

            room_id = str(uuid.uuid4())
            now = _ts(utcnow())
            conn.execute(
                """INSERT INTO rooms (id, tenant_id, name, type, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (room_id, self.tenant_id, room_name(agent["display_name"]), ROOM_TYPE, now),
            )
            conn.execute(
                """INSERT OR IGNORE INTO room_participants
                   (tenant_id, room_id, participant_id, participant_type)
                   VALUES (?, ?, ?, 'agent')""",
                (self.tenant_id, room_id, job.agent_id),
            )
            conn.execute(
                "UPDATE agent_jobs SET room_id = ?, updated_at = ? WHERE id = ? AND tenant_id = ?",
                (room_id, now, job_id, self.tenant_id),
            )
        logger.info(f"Room {room_id} created for job {job_id}")
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
        message_id = str(uuid.uuid4())
        with self._transaction() as conn:
            try:
                conn.execute(
                    """INSERT INTO chat_messages
                       (id, tenant_id, room_id, sender_id, sender_type, body, type, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        message_id, self.tenant_id, room_id,
                        job_sender_id(self.tenant_id, job_id, kind),
                        sender_type, payload_text, message_type,
                        _ts(as_utc(created_at) or utcnow()),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise JobNotFoundError("room", room_id) from e
        return message_id

    def get_room(self, room_id: str) -> dict[str, Any] | None:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM rooms WHERE id = ? AND tenant_id = ?",
                (room_id, self.tenant_id),
            ).fetchone()
            if row is None:
                return None
            participants = conn.execute(
                "SELECT participant_id FROM room_participants WHERE room_id = ?",
                (room_id,),
            ).fetchall()
        room = dict(row)
        room["participants"] = [p["participant_id"] for p in participants]
        return room

    def get_room_messages(self, room_id: str, limit: int = 50) -> list[dict[str, Any]]:
        with self._get_conn() as conn:
            rows = conn.execute(
                """SELECT * FROM chat_messages WHERE room_id = ? AND tenant_id = ?
                   ORDER BY created_at ASC, id ASC LIMIT ?""",
                (room_id, self.tenant_id, clamp_limit(limit)),
            ).fetchall()
        return [dict(r) for r in rows]


_SCHEMA = """
-- 1. Agents (owners of jobs)
CREATE TABLE IF NOT EXISTS agents (
    id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    display_name TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_agents_tenant ON agents(tenant_id);

-- 2. Rooms + participants
CREATE TABLE IF NOT EXISTS rooms (
    id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS room_participants (
    tenant_id TEXT NOT NULL,
    room_id TEXT NOT NULL,
    participant_id TEXT NOT NULL,
    participant_type TEXT NOT NULL,
    PRIMARY KEY (room_id, participant_id),
    FOREIGN KEY (room_id) REFERENCES rooms(id) ON DELETE CASCADE
);

-- 3. Chat messages written by job runs
CREATE TABLE IF NOT EXISTS chat_messages (
    id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    room_id TEXT NOT NULL,
    sender_id TEXT NOT NULL,
    sender_type TEXT NOT NULL,
    body TEXT NOT NULL,
    type TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (room_id) REFERENCES rooms(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_chat_messages_room ON chat_messages(room_id, created_at);

-- 4. Agent jobs
CREATE TABLE IF NOT EXISTS agent_jobs (
    id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    agent_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    schedule_kind TEXT NOT NULL CHECK (schedule_kind IN ('cron', 'interval', 'once')),
    cron_expr TEXT,
    interval_ms INTEGER,
    run_at TEXT,
    timezone TEXT NOT NULL DEFAULT 'UTC',
    payload_kind TEXT NOT NULL CHECK (payload_kind IN ('message', 'system_event')),
    payload_text TEXT NOT NULL,
    room_id TEXT,
    enabled INTEGER NOT NULL DEFAULT 1,
    status TEXT NOT NULL DEFAULT 'active'
        CHECK (status IN ('active', 'paused', 'completed', 'failed')),
    last_run_at TEXT,
    last_run_status TEXT,
    last_run_error TEXT,
    next_run_at TEXT,
    run_count INTEGER NOT NULL DEFAULT 0,
    error_count INTEGER NOT NULL DEFAULT 0,
    max_failures INTEGER NOT NULL DEFAULT 5 CHECK (max_failures > 0),
    consecutive_failures INTEGER NOT NULL DEFAULT 0,
    created_by TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (agent_id) REFERENCES agents(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_agent_jobs_due
    ON agent_jobs(tenant_id, status, enabled, next_run_at);
CREATE INDEX IF NOT EXISTS idx_agent_jobs_agent ON agent_jobs(tenant_id, agent_id);

-- 5. Agent job runs
CREATE TABLE IF NOT EXISTS agent_job_runs (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    tenant_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'running'
        CHECK (status IN ('running', 'success', 'error', 'timeout', 'skipped')),
    started_at TEXT NOT NULL,
    completed_at TEXT,
    duration_ms INTEGER,
    error TEXT,
    payload_text TEXT NOT NULL,
    message_id TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (job_id) REFERENCES agent_jobs(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_agent_job_runs_job
    ON agent_job_runs(job_id, started_at DESC);
CREATE INDEX IF NOT EXISTS idx_agent_job_runs_running
    ON agent_job_runs(tenant_id, status, started_at);
"""
