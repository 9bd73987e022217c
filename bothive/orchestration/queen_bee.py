"""
Queen Bee - goal decomposition and worker assignment.

The Queen never reasons on her own: planning goes through the ``planner``
tool and ranking through the ``evaluator`` tool, both called with the same
``run(args, context)`` contract the runtime uses. Whatever those tools
return, the Queen degrades to a conservative answer instead of raising:
a single-task plan, or the first capable worker.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Union

from bothive.core.jsonutil import extract_first_json
from bothive.core.models import ToolContext, ToolDescriptor, ToolResult, now_ms
from bothive.errors import SubTaskStateError
from bothive.tools.registry import ToolRegistry, as_registry

logger = logging.getLogger(__name__)

GENERAL_CAPABILITY = "general.respond"
PLANNER_CAPABILITY = "planner"
EVALUATOR_CAPABILITY = "evaluator"

PLAN_CONSTRAINTS = (
    "Break down into atomic steps that can be performed by specialized AI agents "
    "(e.g. researcher, coder, writer). Return ONLY a JSON array of objects with "
    "'description' and 'requiredCapability' fields."
)


@dataclass(slots=True)
class WorkerBot:
    """Read-only view of a bot that can take sub-tasks."""

    id: str
    name: str
    capabilities: List[str] = field(default_factory=list)
    description: str = ""


@dataclass(slots=True)
class SubTask:
    """One decomposed unit of a larger goal."""

    id: str
    description: str
    required_capability: str
    assigned_worker_id: Optional[str] = None
    status: str = "pending"  # "pending" | "completed" | "failed"
    result: Optional[str] = None

    def assign(self, worker_id: str) -> None:
        if self.assigned_worker_id is not None and self.assigned_worker_id != worker_id:
            raise SubTaskStateError(
                f"Sub-task {self.id} already assigned to {self.assigned_worker_id}"
            )
        self.assigned_worker_id = worker_id

    def complete(self, result: str) -> None:
        self._finish("completed", result)

    def fail(self, error: str) -> None:
        self._finish("failed", error)

    def _finish(self, status: str, result: str) -> None:
        if self.status != "pending":
            raise SubTaskStateError(f"Sub-task {self.id} is already {self.status}")
        self.status = status
        self.result = result

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "requiredCapability": self.required_capability,
            "assignedWorkerId": self.assigned_worker_id,
            "status": self.status,
            "result": self.result,
        }


def _fallback_plan(goal: str, stamp: int) -> List[SubTask]:
    return [SubTask(id=f"task_{stamp}_0", description=goal, required_capability=GENERAL_CAPABILITY)]


def parse_plan(reply: Any, goal: str, stamp: Optional[int] = None) -> List[SubTask]:
    """Turn a planner reply into pending SubTasks, or the single-task fallback."""
    stamp = now_ms() if stamp is None else stamp
    steps = extract_first_json(reply, kind="array", default=None)
    if not steps:
        logger.info("Planner reply held no usable JSON array; falling back to a single task")
        return _fallback_plan(goal, stamp)

    tasks: List[SubTask] = []
    for index, step in enumerate(steps):
        if not isinstance(step, dict):
            logger.info("Plan step %d is not an object; falling back to a single task", index)
            return _fallback_plan(goal, stamp)
        description = step.get("description")
        if not isinstance(description, str) or not description.strip():
            logger.info("Plan step %d has no description; falling back to a single task", index)
            return _fallback_plan(goal, stamp)
        capability = step.get("requiredCapability")
        tasks.append(
            SubTask(
                id=f"task_{stamp}_{index}",
                description=description.strip(),
                required_capability=capability if isinstance(capability, str) and capability else GENERAL_CAPABILITY,
            )
        )
    return tasks


def capable_workers(task: SubTask, workers: Iterable[WorkerBot]) -> List[WorkerBot]:
    """Workers offering the task's capability or the general one, in input order."""
    return [
        worker
        for worker in workers
        if task.required_capability in worker.capabilities or GENERAL_CAPABILITY in worker.capabilities
    ]


class QueenBee:
    """Decomposes goals into sub-tasks and routes each to the best-fit worker bot."""

    def __init__(
        self,
        tools: Union[ToolRegistry, Iterable[ToolDescriptor]],
        context: ToolContext,
    ) -> None:
        self._tools = as_registry(tools)
        self._context = context

    async def _run(self, capability: str, args: dict) -> Optional[ToolResult]:
        descriptor = self._tools.find(capability)
        if descriptor is None:
            logger.warning("No %s tool registered", capability)
            return None
        try:
            return await descriptor.run(args, self._context)
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s tool %s raised: %s", capability, descriptor.name, exc)
            return None

    async def decompose(self, goal: str) -> List[SubTask]:
        """Split ``goal`` into pending sub-tasks; never raises."""
        result = await self._run(PLANNER_CAPABILITY, {"task": goal, "constraints": PLAN_CONSTRAINTS})
        if result is None or not result.success:
            return _fallback_plan(goal, now_ms())
        return parse_plan(result.output, goal)

    async def assign_worker(self, task: SubTask, workers: Sequence[WorkerBot]) -> Optional[WorkerBot]:
        """Pick a worker for ``task``; None only when nobody is capable."""
        candidates = capable_workers(task, workers)
        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]

        result = await self._run(
            EVALUATOR_CAPABILITY,
            {
                "options": [f"{worker.name}: {worker.description}" for worker in candidates],
                "criteria": f"Best fit for task: {task.description}",
            },
        )
        if result is None or not isinstance(result.output, str):
            return candidates[0]

        selected = result.output.split(":")[0].strip()
        return next((worker for worker in candidates if worker.name == selected), candidates[0])

    async def plan(self, goal: str, workers: Sequence[WorkerBot]) -> List[SubTask]:
        """Decompose ``goal`` and assign every sub-task that has a capable worker."""
        tasks = await self.decompose(goal)
        for task in tasks:
            worker = await self.assign_worker(task, workers)
            if worker is not None:
                task.assign(worker.id)
            else:
                logger.info("No worker offers %s for task %s", task.required_capability, task.id)
        return tasks
