"""Status lookup for workforce jobs, live queue first, durable record second."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from bothive.storage.run_store import WorkforceRunStore
from bothive.workforce.queue import COMPLETED, FAILED, WorkforceQueue


@dataclass(slots=True)
class WorkforceStatus:
    success: bool
    status: str
    job_id: Optional[str] = None
    progress: Optional[int] = None
    iterations: Optional[List[Dict[str, Any]]] = None
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success, "status": self.status}
        for key, value in (
            ("jobId", self.job_id),
            ("progress", self.progress),
            ("iterations", self.iterations),
            ("result", self.result),
            ("error", self.error),
        ):
            if value is not None:
                data[key] = value
        return data


def _iterations(source: Any) -> Optional[List[Dict[str, Any]]]:
    if isinstance(source, dict) and isinstance(source.get("iterations"), list):
        return source["iterations"]
    return None


async def get_workforce_status(job_id: str, queue: WorkforceQueue, runs: WorkforceRunStore) -> WorkforceStatus:
    job = await queue.get_job(job_id)

    if job is not None:
        progress = job.progress.get("percent", 0) if isinstance(job.progress, dict) else 0
        live_iterations = _iterations(job.progress)

        if job.state == COMPLETED:
            persisted = await runs.get(job_id)
            result = persisted.result if persisted is not None and persisted.result is not None else job.result
            return WorkforceStatus(
                success=True,
                status=COMPLETED,
                job_id=job_id,
                result=result,
                iterations=live_iterations,
            )
        if job.state == FAILED:
            return WorkforceStatus(
                success=True,
                status=FAILED,
                job_id=job_id,
                error=job.error,
                progress=progress,
                iterations=live_iterations,
            )
        return WorkforceStatus(
            success=True,
            status=job.state,
            job_id=job_id,
            progress=progress,
            iterations=live_iterations,
        )

    # Pruned from the queue; fall back to the durable record.
    persisted = await runs.get(job_id)
    if persisted is not None:
        return WorkforceStatus(
            success=True,
            status=persisted.status or COMPLETED,
            job_id=job_id,
            result=persisted.result,
            iterations=_iterations(persisted.result),
        )

    return WorkforceStatus(success=False, status="unknown", error="Job not found")
