"""
Durable, at-least-once job queue for heavy workforce runs.

A job moves waiting -> active -> completed | failed. A claimed job carries a
lease; if its worker dies, the lease expires and another worker claims the
job again, so a job can run more than once. Finished jobs are pruned after
the retention window, which is why the worker also writes a durable run record.
"""
from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from bothive.errors import JobNotFoundError
from bothive.storage.database import Database

WAITING = "waiting"
ACTIVE = "active"
COMPLETED = "completed"
FAILED = "failed"


@dataclass(slots=True)
class WorkforceJob:
    id: str
    user_id: str
    request: str
    state: str = WAITING
    progress: Dict[str, Any] = field(default_factory=dict)
    result: Any = None
    error: Optional[str] = None
    attempts: int = 0

    @property
    def data(self) -> Dict[str, str]:
        """Queue payload as enqueued."""
        return {"userId": self.user_id, "request": self.request}


def _loads(value: Optional[str]) -> Any:
    return json.loads(value) if value else None


class WorkforceQueue:
    """``workforce_jobs`` table used as a queue."""

    def __init__(self, database: Database, *, lease_seconds: int = 900) -> None:
        self._db = database
        self.lease_seconds = lease_seconds

    @staticmethod
    def _row_to_job(row: Any) -> WorkforceJob:
        return WorkforceJob(
            id=row["id"],
            user_id=row["user_id"],
            request=row["request"],
            state=row["state"],
            progress=_loads(row["progress"]) or {},
            result=_loads(row["result"]),
            error=row["error"],
            attempts=row["attempts"],
        )

    def _insert(self, job_id: str, user_id: str, request: str) -> None:
        now = time.time()
        self._db.execute(
            """
            INSERT INTO workforce_jobs (id, user_id, request, state, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (job_id, user_id, request, WAITING, now, now),
        )

    def _select(self, job_id: str) -> Optional[WorkforceJob]:
        row = self._db.fetchone("SELECT * FROM workforce_jobs WHERE id = ?", (job_id,))
        return self._row_to_job(row) if row else None

    def _claim(self, worker_id: str, now: float) -> Optional[WorkforceJob]:
        with self._db.transaction() as conn:
            row = conn.execute(
                """
                SELECT * FROM workforce_jobs
                WHERE state = ? OR (state = ? AND lease_expires <= ?)
                ORDER BY created_at ASC
                LIMIT 1
                """,
                (WAITING, ACTIVE, now),
            ).fetchone()
            if row is None:
                return None
            conn.execute(
                """
                UPDATE workforce_jobs
                SET state = ?, worker_id = ?, lease_expires = ?, attempts = attempts + 1, updated_at = ?
                WHERE id = ?
                """,
                (ACTIVE, worker_id, now + self.lease_seconds, now, row["id"]),
            )
            claimed = conn.execute("SELECT * FROM workforce_jobs WHERE id = ?", (row["id"],)).fetchone()
        return self._row_to_job(claimed)

    def _update(self, job_id: str, **columns: Any) -> None:
        assignments = ", ".join(f"{name} = ?" for name in columns)
        cursor = self._db.execute(
            f"UPDATE workforce_jobs SET {assignments}, updated_at = ? WHERE id = ?",
            (*columns.values(), time.time(), job_id),
        )
        if cursor.rowcount == 0:
            raise JobNotFoundError(f"Workforce job {job_id} not found")

    def _prune(self, cutoff: float) -> int:
        cursor = self._db.execute(
            "DELETE FROM workforce_jobs WHERE state IN (?, ?) AND finished_at <= ?",
            (COMPLETED, FAILED, cutoff),
        )
        return cursor.rowcount

    async def add(self, user_id: str, request: str, job_id: Optional[str] = None) -> str:
        """Enqueue ``{userId, request}`` and return the job id."""
        job_id = job_id or str(uuid.uuid4())
        await self._db.run(self._insert, job_id, user_id, request)
        return job_id

    async def get_job(self, job_id: str) -> Optional[WorkforceJob]:
        return await self._db.run(self._select, job_id)

    async def claim(self, worker_id: str) -> Optional[WorkforceJob]:
        """Lease the oldest waiting job, or an active job whose lease ran out."""
        return await self._db.run(self._claim, worker_id, time.time())

    async def update_progress(self, job_id: str, progress: Dict[str, Any]) -> None:
        await self._db.run(self._update, job_id, progress=json.dumps(progress, default=str))

    async def complete(self, job_id: str, result: Any) -> None:
        await self._db.run(
            self._update,
            job_id,
            state=COMPLETED,
            result=json.dumps(result, default=str),
            lease_expires=None,
            finished_at=time.time(),
        )

    async def fail(self, job_id: str, error: str) -> None:
        await self._db.run(
            self._update,
            job_id,
            state=FAILED,
            error=error,
            lease_expires=None,
            finished_at=time.time(),
        )

    async def prune(self, older_than_seconds: float) -> int:
        """Drop finished jobs past the retention window; returns how many."""
        return await self._db.run(self._prune, time.time() - older_than_seconds)
