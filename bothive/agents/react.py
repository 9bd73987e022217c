"""LLM-powered ReAct agent used by the workforce roles."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from bothive.core.jsonutil import extract_first_json
from bothive.core.models import ReasoningStep, ToolContext, ToolDescriptor

if TYPE_CHECKING:
    from bothive.services.llm_pool import LLMPool

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """You are an agentic AI assistant that solves tasks by reasoning step-by-step.

For each step respond EXACTLY as:
Thought: [your reasoning about what to do next]
Action: [exact tool name only]
Action Input: [JSON object with tool parameters]

After seeing the observation, either continue with another step or reply:
Final Answer: [your complete response]"""

_SECTION_RE = {
    name: re.compile(rf"^{re.escape(name)}:\s*(.*?)(?=^\w[\w ]*:|\Z)", re.MULTILINE | re.DOTALL)
    for name in ("Thought", "Action", "Action Input")
}
_TOOL_NAME_RE = re.compile(r"[A-Za-z0-9._-]+")


@dataclass(slots=True)
class AgentOutcome:
    final_answer: str
    steps: List[ReasoningStep] = field(default_factory=list)
    success: bool = True


def extract_section(text: str, name: str) -> str:
    match = _SECTION_RE[name].search(text)
    return match.group(1).strip() if match else ""


def clean_action(action: str) -> str:
    """Reduce a model-written action field to a bare tool name."""
    action = action.replace("**", "").replace("`", "").split("\n", 1)[0].strip()
    action = re.sub(r"^(use|call|execute|to)\s+", "", action, flags=re.IGNORECASE)
    match = _TOOL_NAME_RE.search(action)
    return match.group(0) if match else ""


class ReActAgent:
    """Thought/Action/Observation loop over one pooled model."""

    def __init__(
        self,
        llm_pool: LLMPool,
        model: str,
        *,
        max_steps: int = 10,
        temperature: float = 0.7,
    ) -> None:
        self._llm_pool = llm_pool
        self.model = model
        self.max_steps = max_steps
        self.temperature = temperature

    async def __call__(
        self,
        task: str,
        tools: Sequence[ToolDescriptor],
        context: ToolContext,
        system_prompt: Optional[str] = None,
    ) -> AgentOutcome:
        steps: List[ReasoningStep] = []
        catalog = "\n".join(f"{i + 1}. {t.name}: {t.description}" for i, t in enumerate(tools))
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": f"Task: {task}\n\nAvailable tools:\n{catalog}\n\n"
                "Begin! Remember to follow the Thought/Action/Action Input format.",
            },
        ]

        try:
            for _ in range(self.max_steps):
                reply = await self._llm_pool.complete(self.model, messages, temperature=self.temperature)
                messages.append({"role": "assistant", "content": reply})

                if "Final Answer:" in reply:
                    answer = reply.split("Final Answer:", 1)[1].strip() or reply
                    return AgentOutcome(final_answer=answer, steps=steps, success=True)

                action = clean_action(extract_section(reply, "Action"))
                if not action:
                    messages.append(
                        {
                            "role": "user",
                            "content": "Please provide your next step in the format: "
                            "Thought: ... | Action: ... | Action Input: {...}",
                        }
                    )
                    continue

                raw_input = extract_section(reply, "Action Input")
                action_input = extract_first_json(raw_input, kind="object", default=None)
                if not isinstance(action_input, dict):
                    action_input = {"input": raw_input}

                observation = await self._observe(action, action_input, tools, context)
                steps.append(
                    ReasoningStep(
                        thought=extract_section(reply, "Thought"),
                        action=action,
                        action_input=action_input,
                        observation=observation,
                    )
                )
                messages.append({"role": "user", "content": f"Observation: {observation}"})
        except Exception as exc:  # noqa: BLE001
            logger.warning("Agent %s stopped: %s", context.metadata.bot_id, exc)
            return AgentOutcome(final_answer=f"Agent failed: {exc}", steps=steps, success=False)

        last = steps[-1].observation if steps else ""
        return AgentOutcome(final_answer=last, steps=steps, success=False)

    @staticmethod
    async def _observe(
        action: str,
        action_input: Dict[str, Any],
        tools: Sequence[ToolDescriptor],
        context: ToolContext,
    ) -> str:
        descriptor = next((t for t in tools if t.name.lower() == action.lower()), None)
        if descriptor is None:
            return f"Tool '{action}' not found. Available tools: {', '.join(t.name for t in tools)}"
        try:
            result = await descriptor.run(action_input, context)
        except Exception as exc:  # noqa: BLE001
            return f"Error executing {action}: {exc}"
        return result.output or json.dumps({"success": result.success})
