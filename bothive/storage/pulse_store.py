"""Persisted pulse jobs, their leases, and their execution log."""
from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from bothive.errors import JobNotFoundError
from bothive.storage.database import Database

TRIGGER_TYPES = ("schedule", "event", "webhook")
DEFAULT_INTERVAL_SECONDS = 60
INTERVAL_KEYS = ("interval_seconds", "interval_minutes", "intervalMinutes")
MAX_LOG_OUTPUT = 2000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_epoch(value: Optional[datetime]) -> Optional[float]:
    return value.timestamp() if value is not None else None


def _from_epoch(value: Optional[float]) -> Optional[datetime]:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value is not None else None


def interval_seconds(trigger_config: Dict[str, Any]) -> float:
    """Interval of a schedule trigger: seconds, else minutes, else one minute."""
    seconds = trigger_config.get("interval_seconds")
    if isinstance(seconds, (int, float)) and not isinstance(seconds, bool) and seconds > 0:
        return float(seconds)
    for key in INTERVAL_KEYS[1:]:
        minutes = trigger_config.get(key)
        if isinstance(minutes, (int, float)) and not isinstance(minutes, bool) and minutes > 0:
            return float(minutes) * 60
    return float(DEFAULT_INTERVAL_SECONDS)


def has_explicit_interval(trigger_config: Dict[str, Any]) -> bool:
    """True when some interval key carries a positive number."""
    return any(
        isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0
        for value in (trigger_config.get(key) for key in INTERVAL_KEYS)
    )


@dataclass(slots=True)
class PulseJob:
    """Binding of a bot to a recurring or triggered wake."""

    id: str
    bot_id: str
    trigger_type: str = "schedule"
    trigger_config: Dict[str, Any] = field(default_factory=dict)
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "bot_id": self.bot_id,
            "trigger_type": self.trigger_type,
            "trigger_config": dict(self.trigger_config),
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "is_active": self.is_active,
        }


@dataclass(slots=True)
class PulseLog:
    job_id: str
    bot_id: str
    status: str  # "success" | "failure"
    output: str = ""
    execution_time_ms: int = 0
    created_at: Optional[datetime] = None


class PulseJobStore:
    """``pulse_jobs``/``pulse_logs`` access with lease-based claiming."""

    def __init__(self, database: Database) -> None:
        self._db = database

    # ------------------------------------------------------------------
    # Row mapping

    @staticmethod
    def _row_to_job(row: Any) -> PulseJob:
        return PulseJob(
            id=row["id"],
            bot_id=row["bot_id"],
            trigger_type=row["trigger_type"],
            trigger_config=json.loads(row["trigger_config"]) if row["trigger_config"] else {},
            last_run=_from_epoch(row["last_run"]),
            next_run=_from_epoch(row["next_run"]),
            is_active=bool(row["is_active"]),
        )

    # ------------------------------------------------------------------
    # Blocking implementations

    def _insert(self, job: PulseJob) -> None:
        now = time.time()
        self._db.execute(
            """
            INSERT INTO pulse_jobs (id, bot_id, trigger_type, trigger_config, last_run,
                                    next_run, is_active, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                job.id,
                job.bot_id,
                job.trigger_type,
                json.dumps(job.trigger_config),
                _to_epoch(job.last_run),
                _to_epoch(job.next_run),
                int(job.is_active),
                now,
                now,
            ),
        )

    def _select(self, job_id: str) -> Optional[PulseJob]:
        row = self._db.fetchone("SELECT * FROM pulse_jobs WHERE id = ?", (job_id,))
        return self._row_to_job(row) if row else None

    def _select_for_bot(self, bot_id: str) -> List[PulseJob]:
        rows = self._db.fetchall(
            "SELECT * FROM pulse_jobs WHERE bot_id = ? ORDER BY created_at DESC", (bot_id,)
        )
        return [self._row_to_job(row) for row in rows]

    def _update_schedule(self, job_id: str, is_active: bool, next_run: Optional[float]) -> None:
        cursor = self._db.execute(
            "UPDATE pulse_jobs SET is_active = ?, next_run = ?, updated_at = ? WHERE id = ?",
            (int(is_active), next_run, time.time(), job_id),
        )
        if cursor.rowcount == 0:
            raise JobNotFoundError(f"Pulse job {job_id} not found")

    def _delete(self, job_id: str) -> bool:
        return self._db.execute("DELETE FROM pulse_jobs WHERE id = ?", (job_id,)).rowcount > 0

    def _claim(self, now: float, limit: int, worker_id: str, lease_seconds: int) -> List[PulseJob]:
        with self._db.transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM pulse_jobs
                WHERE is_active = 1
                  AND next_run IS NOT NULL AND next_run <= ?
                  AND (lease_expires IS NULL OR lease_expires <= ?)
                ORDER BY next_run ASC
                LIMIT ?
                """,
                (now, now, limit),
            ).fetchall()
            for row in rows:
                conn.execute(
                    "UPDATE pulse_jobs SET lease_owner = ?, lease_expires = ? WHERE id = ?",
                    (worker_id, now + lease_seconds, row["id"]),
                )
        return [self._row_to_job(row) for row in rows]

    def _mark_success(
        self, job_id: str, worker_id: str, last_run: float, next_run: Optional[float]
    ) -> bool:
        cursor = self._db.execute(
            """
            UPDATE pulse_jobs
            SET last_run = ?, next_run = ?, lease_owner = NULL, lease_expires = NULL, updated_at = ?
            WHERE id = ? AND lease_owner = ?
            """,
            (last_run, next_run, time.time(), job_id, worker_id),
        )
        return cursor.rowcount > 0

    def _release(self, job_id: str, worker_id: str) -> None:
        self._db.execute(
            """
            UPDATE pulse_jobs SET lease_owner = NULL, lease_expires = NULL
            WHERE id = ? AND lease_owner = ?
            """,
            (job_id, worker_id),
        )

    def _insert_log(self, log: PulseLog) -> None:
        self._db.execute(
            """
            INSERT INTO pulse_logs (job_id, bot_id, status, output, execution_time_ms, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                log.job_id,
                log.bot_id,
                log.status,
                (log.output or "")[:MAX_LOG_OUTPUT],
                log.execution_time_ms,
                _to_epoch(log.created_at) or time.time(),
            ),
        )

    def _select_logs(self, job_id: str) -> List[PulseLog]:
        rows = self._db.fetchall(
            "SELECT * FROM pulse_logs WHERE job_id = ? ORDER BY id ASC", (job_id,)
        )
        return [
            PulseLog(
                job_id=row["job_id"],
                bot_id=row["bot_id"],
                status=row["status"],
                output=row["output"] or "",
                execution_time_ms=row["execution_time_ms"] or 0,
                created_at=_from_epoch(row["created_at"]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Async API

    async def create_job(
        self,
        bot_id: str,
        trigger_type: str = "schedule",
        trigger_config: Optional[Dict[str, Any]] = None,
        *,
        interval_minutes: Optional[float] = None,
        is_active: bool = True,
        now: Optional[datetime] = None,
    ) -> PulseJob:
        """Create a job; schedule triggers must carry a positive interval."""
        if trigger_type not in TRIGGER_TYPES:
            raise ValueError(f"Unknown trigger_type {trigger_type!r}")

        config = dict(trigger_config or {})
        next_run = None
        if trigger_type == "schedule":
            if interval_minutes is not None:
                if interval_minutes <= 0:
                    raise ValueError("interval_minutes must be a positive number for schedule triggers")
                config["interval_seconds"] = interval_minutes * 60
                config["intervalMinutes"] = interval_minutes
            elif not has_explicit_interval(config):
                raise ValueError("interval_minutes must be a positive number for schedule triggers")
            if is_active:
                next_run = (now or utcnow()) + timedelta(seconds=interval_seconds(config))

        job = PulseJob(
            id=str(uuid.uuid4()),
            bot_id=bot_id,
            trigger_type=trigger_type,
            trigger_config=config,
            next_run=next_run,
            is_active=is_active,
        )
        await self._db.run(self._insert, job)
        return job

    async def get_job(self, job_id: str) -> Optional[PulseJob]:
        return await self._db.run(self._select, job_id)

    async def list_jobs(self, bot_id: str) -> List[PulseJob]:
        return await self._db.run(self._select_for_bot, bot_id)

    async def delete_job(self, job_id: str) -> bool:
        return await self._db.run(self._delete, job_id)

    async def set_active(self, job_id: str, active: bool, *, now: Optional[datetime] = None) -> PulseJob:
        """Re-arm (next run one interval from now) or disarm (no next run) a job."""
        job = await self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Pulse job {job_id} not found")
        next_run = None
        if active:
            next_run = (now or utcnow()) + timedelta(seconds=interval_seconds(job.trigger_config))
        await self._db.run(self._update_schedule, job_id, active, _to_epoch(next_run))
        job.is_active = active
        job.next_run = next_run
        return job

    async def claim_due(
        self,
        now: datetime,
        *,
        limit: int,
        worker_id: str,
        lease_seconds: int,
    ) -> List[PulseJob]:
        """Lease up to ``limit`` due jobs so no other engine wakes them concurrently."""
        return await self._db.run(self._claim, now.timestamp(), limit, worker_id, lease_seconds)

    async def mark_success(
        self, job_id: str, worker_id: str, last_run: datetime, next_run: Optional[datetime]
    ) -> bool:
        """Advance a job still leased by ``worker_id``; False when the lease was lost."""
        return await self._db.run(
            self._mark_success, job_id, worker_id, last_run.timestamp(), _to_epoch(next_run)
        )

    async def release(self, job_id: str, worker_id: str) -> None:
        await self._db.run(self._release, job_id, worker_id)

    async def add_log(self, log: PulseLog) -> None:
        await self._db.run(self._insert_log, log)

    async def list_logs(self, job_id: str) -> List[PulseLog]:
        return await self._db.run(self._select_logs, job_id)
