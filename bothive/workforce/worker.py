"""Background consumer of the workforce queue."""
from __future__ import annotations

import logging
import math
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional

from bothive.core.models import ToolContext, ToolDescriptor, ToolMetadata, now_ms
from bothive.core.service import BackgroundService
from bothive.core.shared_memory import PersistentSharedMemory
from bothive.storage.database import Database
from bothive.storage.run_store import WorkforceRun, WorkforceRunStore
from bothive.workforce.orchestrator import (
    AgentRunner,
    PlanProposer,
    WorkforceIteration,
    WorkforceResult,
    run_workforce_heavy,
)
from bothive.workforce.queue import WorkforceJob, WorkforceQueue

logger = logging.getLogger(__name__)

ORCHESTRATOR_BOT_ID = "workforce-orchestrator"


def progress_percent(done: int, total: int) -> int:
    """Whole-number percentage with halves rounded up (12.5 -> 13)."""
    return math.floor(done / total * 100 + 0.5)


class WorkforceWorker(BackgroundService):
    """Claims queued jobs one at a time and runs them to completion."""

    name = "workforce-worker"

    def __init__(
        self,
        queue: WorkforceQueue,
        runs: WorkforceRunStore,
        *,
        database: Database,
        tools: Iterable[ToolDescriptor],
        planner: PlanProposer,
        agent_runner: AgentRunner,
        max_iterations: int = 3,
        max_agents: int = 5,
        poll_interval: float = 1.0,
        retention_seconds: float = 86400,
        worker_id: Optional[str] = None,
    ) -> None:
        super().__init__(poll_interval)
        self._queue = queue
        self._runs = runs
        self._db = database
        self._tools: List[ToolDescriptor] = list(tools)
        self._planner = planner
        self._agent_runner = agent_runner
        self.max_iterations = max_iterations
        self.max_agents = max_agents
        self.retention_seconds = retention_seconds
        self.worker_id = worker_id or f"workforce-{uuid.uuid4().hex[:8]}"
        self._last_prune = 0.0

    async def tick(self) -> None:
        if time.monotonic() - self._last_prune >= 60:
            self._last_prune = time.monotonic()
            pruned = await self._queue.prune(self.retention_seconds)
            if pruned:
                logger.info("Pruned %d finished workforce job(s)", pruned)

        # Drain everything that is ready before sleeping again.
        while not self._stop_event.is_set():
            job = await self._queue.claim(self.worker_id)
            if job is None:
                return
            await self.process(job)

    async def process(self, job: WorkforceJob) -> WorkforceResult:
        """Run one job, persist its durable record, then finish it on the queue."""
        logger.info("Workforce job %s claimed (attempt %d)", job.id, job.attempts)
        context = ToolContext(
            metadata=ToolMetadata(bot_id=ORCHESTRATOR_BOT_ID, run_id=job.id, user_id=job.user_id),
            shared_memory=PersistentSharedMemory(f"job-{job.id}", self._db),
        )
        history: List[Dict[str, Any]] = []

        async def on_iteration(iteration: WorkforceIteration, index: int) -> None:
            history.append(iteration.to_dict())
            await self._queue.update_progress(
                job.id,
                {
                    "percent": progress_percent(index + 1, self.max_iterations),
                    "iterations": list(history),
                    "lastUpdated": now_ms(),
                },
            )

        result = await run_workforce_heavy(
            job.request,
            tools=self._tools,
            context=context,
            planner=self._planner,
            agent_runner=self._agent_runner,
            on_iteration=on_iteration,
            max_iterations=self.max_iterations,
            max_agents=self.max_agents,
        )
        payload = result.to_dict()
        status = "completed" if result.success else "failed"

        try:
            await self._runs.upsert(
                WorkforceRun(
                    id=job.id,
                    user_id=job.user_id,
                    request=job.request,
                    result=payload,
                    status=status,
                )
            )
        except Exception:  # noqa: BLE001
            logger.exception("Could not persist workforce run %s", job.id)

        if result.success:
            await self._queue.complete(job.id, payload)
            logger.info("Workforce job %s completed in %d iteration(s)", job.id, len(result.iterations))
        else:
            await self._queue.fail(job.id, result.error or "Workforce run failed")
            logger.warning("Workforce job %s failed: %s", job.id, result.error)
        return result
