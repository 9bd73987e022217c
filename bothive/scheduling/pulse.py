"""
Pulse Engine - the heartbeat that wakes proactive bots.

Each tick leases the due pulse jobs, runs every leased bot's ``on input``
handler with a synthetic ``PULSE_TRIGGER`` input, and advances the
schedule only for wakes that succeeded. A failed wake leaves ``last_run`` and
``next_run`` untouched, so the job is still due on the next tick.

Leases make it safe to run more than one engine against the same database:
a job leased by one engine is skipped by the others until the lease is
released or expires.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from bothive.core.models import ToolContext, ToolDescriptor, ToolMetadata
from bothive.core.service import BackgroundService
from bothive.core.shared_memory import InMemorySharedMemory
from bothive.hivelang.runtime import execute
from bothive.storage.bot_store import BotLoader
from bothive.storage.pulse_store import MAX_LOG_OUTPUT, PulseJob, PulseJobStore, PulseLog, interval_seconds, utcnow
from bothive.tools.registry import ToolRegistry, as_registry

logger = logging.getLogger(__name__)

PULSE_INPUT = "PULSE_TRIGGER"

PulseListener = Callable[[Dict[str, Any]], Any]


def compute_next_run(job: PulseJob, now: datetime) -> Optional[datetime]:
    """Next wake after a successful run.

    Schedule jobs run again one interval after this run (drift-tolerant, not
    clock-aligned). Event and webhook jobs fire once and wait to be re-armed.
    """
    if job.trigger_type != "schedule":
        return None
    return now + timedelta(seconds=interval_seconds(job.trigger_config))


@dataclass(slots=True)
class PulseReport:
    """What one tick did."""

    claimed: int = 0
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class PulseEngine(BackgroundService):
    """Polls the pulse job table and wakes due bots on a fixed tick."""

    name = "pulse-engine"

    def __init__(
        self,
        store: PulseJobStore,
        bots: BotLoader,
        *,
        tools: Union[ToolRegistry, Iterable[ToolDescriptor], None] = None,
        interval_seconds: float = 60.0,
        batch_size: int = 50,
        lease_seconds: int = 300,
        log_failures: bool = False,
        worker_id: Optional[str] = None,
    ) -> None:
        super().__init__(interval_seconds)
        self._store = store
        self._bots = bots
        self._tools = as_registry(tools)
        self.batch_size = batch_size
        self.lease_seconds = lease_seconds
        self.log_failures = log_failures
        self.worker_id = worker_id or f"pulse-{uuid.uuid4().hex[:8]}"
        self._listeners: List[PulseListener] = []

    # ------------------------------------------------------------------
    # Listeners

    def on_pulse(self, callback: PulseListener) -> Callable[[], None]:
        """Register a lifecycle listener; returns a function that removes it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def _notify(self, event: Dict[str, Any]) -> None:
        for callback in list(self._listeners):
            try:
                outcome = callback(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:  # noqa: BLE001
                logger.exception("Pulse listener failed on %s event", event.get("type"))

    # ------------------------------------------------------------------
    # Heartbeat

    async def tick(self) -> None:
        await self.pulse()

    async def pulse(self, now: Optional[datetime] = None) -> PulseReport:
        """Wake every due job once."""
        now = now or utcnow()
        await self._notify({"type": "pulse", "timestamp": int(now.timestamp() * 1000)})

        jobs = await self._store.claim_due(
            now,
            limit=self.batch_size,
            worker_id=self.worker_id,
            lease_seconds=self.lease_seconds,
        )
        report = PulseReport(claimed=len(jobs))
        if not jobs:
            return report

        logger.info("Pulse: waking %d bot(s)", len(jobs))
        outcomes = await asyncio.gather(*(self.wake(job) for job in jobs), return_exceptions=True)
        for job, outcome in zip(jobs, outcomes):
            if outcome is True:
                report.succeeded.append(job.id)
            else:
                if isinstance(outcome, BaseException):
                    logger.error("Wake of pulse job %s raised: %r", job.id, outcome)
                report.failed.append(job.id)
        return report

    async def wake(self, job: PulseJob) -> bool:
        """Run one job's bot; True when the bot ran cleanly."""
        await self._notify({"type": "wake", "botId": job.bot_id, "jobId": job.id})
        started = time.monotonic()
        now = utcnow()

        try:
            output, error = await self._run_bot(job, now)
        except Exception as exc:  # noqa: BLE001
            output, error = "", str(exc)
            logger.exception("Pulse job %s crashed", job.id)

        elapsed_ms = int((time.monotonic() - started) * 1000)

        if error is not None:
            logger.warning("Pulse job %s (bot %s) failed: %s", job.id, job.bot_id, error)
            if self.log_failures:
                await self._store.add_log(
                    PulseLog(
                        job_id=job.id,
                        bot_id=job.bot_id,
                        status="failure",
                        output=error[:MAX_LOG_OUTPUT],
                        execution_time_ms=elapsed_ms,
                    )
                )
            await self._store.release(job.id, self.worker_id)
            return False

        next_run = compute_next_run(job, now)
        if not await self._store.mark_success(job.id, self.worker_id, now, next_run):
            logger.warning("Pulse job %s lost its lease before completing; schedule not advanced", job.id)
        await self._store.add_log(
            PulseLog(
                job_id=job.id,
                bot_id=job.bot_id,
                status="success",
                output=output[:MAX_LOG_OUTPUT],
                execution_time_ms=elapsed_ms,
            )
        )
        logger.info("Pulse job %s (bot %s) succeeded in %dms", job.id, job.bot_id, elapsed_ms)
        return True

    async def _run_bot(self, job: PulseJob, now: datetime) -> tuple[str, Optional[str]]:
        bot = await self._bots.get_bot(job.bot_id)
        if bot is None:
            return "", f"Bot {job.bot_id} not found"

        run_id = f"pulse-{job.id}-{int(now.timestamp() * 1000)}"
        context = ToolContext(
            metadata=ToolMetadata(
                bot_id=bot.id,
                run_id=run_id,
                user_id=bot.user_id,
                bot_system_prompt=bot.system_prompt,
            ),
            shared_memory=InMemorySharedMemory(run_id),
        )
        result = await execute(
            bot.hivelang_code,
            {"input": PULSE_INPUT, "trigger": job.trigger_type, "timestamp": now.isoformat()},
            self._tools,
            context,
        )
        if not result.success:
            return result.output, result.error or "Execution failed"
        return result.output, None

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "worker_id": self.worker_id,
            "interval_seconds": self.interval,
            "batch_size": self.batch_size,
            "last_error": self.last_error,
        }
