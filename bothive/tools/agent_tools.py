"""Agent reasoning tools backed by the LLM pool, plus the shared-bus tools."""
from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, List

from bothive.core.models import ToolContext, ToolDescriptor, ToolResult, now_ms
from bothive.tools.registry import tool

if TYPE_CHECKING:
    from bothive.services.llm_pool import LLMPool

logger = logging.getLogger(__name__)

PLANNER_PROMPT = (
    "You are a planning specialist. Break the task into the smallest set of "
    "concrete steps that specialised agents can carry out independently."
)

EVALUATOR_PROMPT = (
    "You compare options against a criterion and pick exactly one. "
    "Reply with the chosen option text only, copied verbatim."
)


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value)


def _options(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(option) for option in value]
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return [value]
        return [str(option) for option in parsed] if isinstance(parsed, list) else [value]
    return []


def build_agent_tools(llm_pool: LLMPool, model: str) -> List[ToolDescriptor]:
    """Planner and evaluator tools bound to one model of the pool."""

    @tool("agent.plan", "planner", "Create a step-by-step execution plan for a complex task")
    async def plan(args: Dict[str, Any], context: ToolContext) -> ToolResult:
        task = _text(args.get("task") or args.get("input"))
        constraints = _text(args.get("constraints"))
        if not task:
            return ToolResult(success=False, output="Task description is required")

        prompt = f"Task: {task}\n"
        if constraints:
            prompt += f"Constraints: {constraints}\n"
        prompt += "\nCreate a detailed execution plan."

        try:
            reply = await llm_pool.complete(
                model,
                [
                    {"role": "system", "content": PLANNER_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.7,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Planner call failed: %s", exc)
            return ToolResult(success=False, output=f"Planning failed: {exc}")

        await context.shared_memory.append("plans", {"task": task, "plan": reply, "timestamp": now_ms()})
        return ToolResult(success=True, output=reply, data={"task": task, "plan": reply})

    @tool("agent.evaluate", "evaluator", "Compare multiple options and select the best one")
    async def evaluate(args: Dict[str, Any], context: ToolContext) -> ToolResult:
        options = _options(args.get("options"))
        criteria = _text(args.get("criteria")) or "overall quality"
        if not options:
            return ToolResult(success=False, output="No options provided to evaluate")

        prompt = (
            f"Options to compare:\n{json.dumps(options, indent=2)}\n\n"
            f"Evaluation criteria: {criteria}\n\n"
            "Return ONLY the selected option text."
        )
        try:
            reply = await llm_pool.complete(
                model,
                [
                    {"role": "system", "content": EVALUATOR_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.5,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Evaluator call failed, keeping first option: %s", exc)
            return ToolResult(success=False, output=options[0])

        selected = reply.strip() or options[0]
        return ToolResult(success=True, output=selected, data={"selectedOption": selected, "criteria": criteria})

    return [plan, evaluate]


@tool("agent.broadcast", "agent.broadcast", "Publish a message to other workforce agents via the shared bus")
async def broadcast(args: Dict[str, Any], context: ToolContext) -> ToolResult:
    content = _text(args.get("content") or args.get("input"))
    await context.shared_memory.append(
        "bus",
        {"sender": context.metadata.bot_id or "unknown-agent", "content": content, "timestamp": now_ms()},
    )
    return ToolResult(success=True, output="published")


@tool("agent.listen", "agent.listen", "Retrieve recent messages from the shared bus, optionally after a timestamp")
async def listen(args: Dict[str, Any], context: ToolContext) -> ToolResult:
    try:
        since = float(args["since"]) if args.get("since") is not None else None
    except (TypeError, ValueError):
        since = None
    bus = await context.shared_memory.get("bus")
    messages = bus if isinstance(bus, list) else []
    if since is not None:
        messages = [m for m in messages if isinstance(m, dict) and m.get("timestamp", 0) > since]
    return ToolResult(success=True, output=json.dumps(messages), data=messages)


BUS_TOOLS: List[ToolDescriptor] = [broadcast, listen]
