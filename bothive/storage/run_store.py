"""Durable workforce run records, kept independently of queue retention."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from bothive.storage.database import Database


@dataclass(slots=True)
class WorkforceRun:
    id: str
    user_id: str
    request: str
    result: Any
    status: str  # "completed" | "failed"
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class WorkforceRunStore:
    """``workforce_runs`` access; the job id is the idempotency key."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def _upsert(self, run: WorkforceRun) -> None:
        self._db.execute(
            """
            INSERT INTO workforce_runs (id, user_id, request, result, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                result = excluded.result,
                status = excluded.status
            """,
            (
                run.id,
                run.user_id,
                run.request,
                json.dumps(run.result, default=str),
                run.status,
                run.created_at,
            ),
        )

    def _select(self, run_id: str) -> Optional[WorkforceRun]:
        row = self._db.fetchone("SELECT * FROM workforce_runs WHERE id = ?", (run_id,))
        if row is None:
            return None
        return WorkforceRun(
            id=row["id"],
            user_id=row["user_id"],
            request=row["request"],
            result=json.loads(row["result"]) if row["result"] else None,
            status=row["status"],
            created_at=row["created_at"],
        )

    async def upsert(self, run: WorkforceRun) -> None:
        """Insert or overwrite, so a redelivered job never duplicates its record."""
        await self._db.run(self._upsert, run)

    async def get(self, run_id: str) -> Optional[WorkforceRun]:
        return await self._db.run(self._select, run_id)
