"""
Heavy workforce orchestration: a planned team of role agents working over
several iterations.

1. A planner proposes roles and a sub-task per role.
2. Each iteration broadcasts the tasks on the shared ``bus``, then runs every
   role concurrently.
3. An agent that needs help posts ``@orchestrator request: <Role>`` on the bus;
   new roles join the next iteration. With no new requests the run ends.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Sequence

from bothive.agents.react import AgentOutcome
from bothive.core.jsonutil import extract_first_json
from bothive.core.models import ToolContext, ToolDescriptor, now_ms

if TYPE_CHECKING:
    from bothive.services.llm_pool import LLMPool

logger = logging.getLogger(__name__)

GENERAL_ROLE = "General Agent"
_ROLE_REQUEST_RE = re.compile(r"request:\s*([A-Za-z0-9 _-]+)", re.IGNORECASE)


@dataclass(slots=True)
class WorkforcePlan:
    roles: List[str]
    tasks: Dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class WorkforceIteration:
    outputs: Dict[str, str]
    steps: Dict[str, List[Dict[str, Any]]]
    bus_snapshot: List[Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return {"outputs": self.outputs, "steps": self.steps, "busSnapshot": self.bus_snapshot}


@dataclass(slots=True)
class WorkforceResult:
    success: bool
    iterations: List[WorkforceIteration] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "iterations": [iteration.to_dict() for iteration in self.iterations],
        }
        if self.error is not None:
            data["error"] = self.error
        return data


PlanProposer = Callable[[str, int], Awaitable[WorkforcePlan]]
AgentRunner = Callable[[str, Sequence[ToolDescriptor], ToolContext, Optional[str]], Awaitable[AgentOutcome]]
IterationCallback = Callable[[WorkforceIteration, int], Any]


def parse_workforce_plan(raw: str, request: str, max_agents: int) -> WorkforcePlan:
    """Read ``{roles, tasks}`` from a planner reply; one general agent otherwise."""
    data = extract_first_json(raw, kind="object", default=None)
    roles: List[str] = []
    tasks: Dict[str, str] = {}
    if isinstance(data, dict):
        if isinstance(data.get("roles"), list):
            roles = [str(role).strip() for role in data["roles"] if str(role).strip()][:max_agents]
        if isinstance(data.get("tasks"), dict):
            tasks = {str(role): str(task) for role, task in data["tasks"].items()}
    if not roles:
        return WorkforcePlan(roles=[GENERAL_ROLE], tasks={GENERAL_ROLE: request})
    return WorkforcePlan(roles=roles, tasks=tasks)


class LLMPlanProposer:
    """Zero-shot planner splitting a request into roles and per-role tasks."""

    def __init__(self, llm_pool: LLMPool, model: str) -> None:
        self._llm_pool = llm_pool
        self.model = model

    async def __call__(self, request: str, max_agents: int) -> WorkforcePlan:
        prompt = (
            "You are an orchestration AI that plans a digital workforce.\n"
            f'User request: "{request}"\n\n'
            f"Return a JSON object with two keys: roles (string array, max {max_agents}) "
            "and tasks (object mapping role -> specific sub-task). Only output JSON."
        )
        raw = await self._llm_pool.complete(
            self.model,
            [
                {"role": "system", "content": "You are a helpful planner."},
                {"role": "user", "content": prompt},
            ],
        )
        return parse_workforce_plan(raw, request, max_agents)


def requested_roles(bus: Sequence[Any]) -> List[str]:
    roles: List[str] = []
    for message in bus:
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or "@orchestrator request:" not in content.lower():
            continue
        match = _ROLE_REQUEST_RE.search(content)
        if match and match.group(1).strip():
            roles.append(match.group(1).strip())
    return roles


async def run_workforce_heavy(
    request: str,
    *,
    tools: Sequence[ToolDescriptor],
    context: ToolContext,
    planner: PlanProposer,
    agent_runner: AgentRunner,
    on_iteration: Optional[IterationCallback] = None,
    max_iterations: int = 3,
    max_agents: int = 5,
) -> WorkforceResult:
    """Drive the team until nobody asks for help or ``max_iterations`` is hit."""
    memory = context.shared_memory
    try:
        try:
            plan = await planner(request, max_agents)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Workforce planner failed, using a single agent: %s", exc)
            plan = WorkforcePlan(roles=[GENERAL_ROLE], tasks={GENERAL_ROLE: request})

        iterations: List[WorkforceIteration] = []
        await memory.set("bus", [])
        roles = list(plan.roles)

        for index in range(max_iterations):
            for role in roles:
                await memory.append(
                    "bus",
                    {
                        "sender": "orchestrator",
                        "content": f"@{role} your task: {plan.tasks.get(role) or request}",
                        "timestamp": now_ms(),
                    },
                )

            async def run_role(role: str) -> tuple[str, AgentOutcome]:
                task = plan.tasks.get(role) or request
                outcome = await agent_runner(
                    f"{task}\n\nYou are {role}. Coordinate with other agents via agent.broadcast "
                    "and agent.listen tools to accomplish the goal. Provide succinct deliverable when done.",
                    tools,
                    context.for_bot(role),
                    f"You are {role}. You are part of a digital workforce. Use agent.broadcast "
                    "to share progress and agent.listen to stay updated.",
                )
                return role, outcome

            results = await asyncio.gather(*(run_role(role) for role in roles))

            outputs: Dict[str, str] = {}
            steps: Dict[str, List[Dict[str, Any]]] = {}
            for role, outcome in results:
                outputs[role] = outcome.final_answer or ("" if outcome.success else "Failed")
                steps[role] = [step.to_dict() for step in outcome.steps]

            bus = await memory.get("bus")
            snapshot = list(bus) if isinstance(bus, list) else []
            iteration = WorkforceIteration(outputs=outputs, steps=steps, bus_snapshot=snapshot)
            iterations.append(iteration)

            if on_iteration is not None:
                outcome = on_iteration(iteration, index)
                if asyncio.iscoroutine(outcome):
                    await outcome

            new_roles = [role for role in dict.fromkeys(requested_roles(snapshot)) if role not in roles]
            if not new_roles:
                break
            logger.info("Workforce adding roles %s for iteration %d", new_roles, index + 2)
            roles.extend(new_roles)

        return WorkforceResult(success=True, iterations=iterations)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Workforce run failed")
        return WorkforceResult(success=False, iterations=[], error=str(exc))
