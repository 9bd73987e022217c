"""Execution runtime for compiled HiveLang programs."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from bothive.core.models import (
    Block,
    CompilationResult,
    ExecutionResult,
    Instruction,
    ReasoningStep,
    ToolContext,
    ToolDescriptor,
    now_ms,
)
from bothive.hivelang.compiler import compile_source
from bothive.tools.registry import ToolRegistry, as_registry

logger = logging.getLogger(__name__)

DEFAULT_EVENT = "input"

Program = Union[str, CompilationResult, Sequence[Block]]


def _unquote(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1]
    return text


def split_call(args: Optional[str]) -> tuple[str, str]:
    """Split ``call`` arguments into the tool name and the remaining text."""
    parts = (args or "").strip().split(None, 1)
    if not parts:
        return "", ""
    return parts[0], parts[1] if len(parts) > 1 else ""


def select_block(blocks: Sequence[Block], name: Optional[str] = None) -> Optional[Block]:
    if name is None:
        return blocks[0] if blocks else None
    return next((block for block in blocks if block.name == name), None)


def _load_blocks(program: Program) -> tuple[List[Block], Optional[str]]:
    if isinstance(program, str):
        compiled = compile_source(program)
        return compiled.blocks, compiled.error if not compiled.success else None
    if isinstance(program, CompilationResult):
        return program.blocks, program.error if not program.success else None
    return list(program), None


class ProgramExecutor:
    """Walks one event handler, running instructions in declaration order."""

    def __init__(self, tools: ToolRegistry, context: ToolContext) -> None:
        self._tools = tools
        self._context = context
        self.output: List[str] = []
        self.steps: List[ReasoningStep] = []
        self.transcript: List[Dict[str, Any]] = []

    async def run(self, instructions: Iterable[Instruction], event_input: Dict[str, Any]) -> None:
        for instruction in instructions:
            if instruction.type == "say":
                self._say(instruction)
            elif instruction.type == "call":
                await self._call(instruction, event_input)
            else:
                logger.debug("Skipping unmodeled instruction: %s", instruction.raw)
                self.transcript.append({"type": "raw", "raw": instruction.raw, "timestamp": now_ms()})

    def _say(self, instruction: Instruction) -> None:
        text = _unquote(instruction.args or "")
        self.output.append(text)
        self.transcript.append({"type": "say", "payload": text, "timestamp": now_ms()})

    async def _call(self, instruction: Instruction, event_input: Dict[str, Any]) -> None:
        tool_name, rest = split_call(instruction.args)
        action_input: Dict[str, Any] = {"input": rest, "event": event_input}
        descriptor = self._tools.find(tool_name) if tool_name else None

        if descriptor is None:
            observation = f"Tool '{tool_name}' not found. Available tools: {', '.join(self._tools.names())}"
            logger.warning("Run %s: %s", self._context.metadata.run_id, observation)
        else:
            observation = await self._invoke(descriptor, action_input)

        self.steps.append(
            ReasoningStep(
                thought=f"Instruction asks for {tool_name or 'a tool'}",
                action=tool_name,
                action_input=action_input,
                observation=observation,
            )
        )
        self.transcript.append(
            {"type": "call", "tool": tool_name, "args": rest, "observation": observation, "timestamp": now_ms()}
        )

    async def _invoke(self, descriptor: ToolDescriptor, action_input: Dict[str, Any]) -> str:
        # A failing tool is an observation; the run carries on with the next line.
        try:
            result = await descriptor.run(action_input, self._context)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Tool %s raised during run %s: %s", descriptor.name, self._context.metadata.run_id, exc)
            return f"Error executing {descriptor.name}: {exc}"
        if not result.success:
            logger.info("Tool %s reported failure: %s", descriptor.name, result.output)
            return f"Error executing {descriptor.name}: {result.output}"
        return result.output


async def execute(
    program: Program,
    input: Dict[str, Any],
    tools: Union[ToolRegistry, Iterable[ToolDescriptor], None],
    context: ToolContext,
    *,
    block: Optional[str] = None,
    event: str = DEFAULT_EVENT,
) -> ExecutionResult:
    """Compile (when needed) and run one event handler of a bot/agent block."""
    blocks, error = _load_blocks(program)
    if error is not None:
        return ExecutionResult(success=False, error=error)

    target = select_block(blocks, block)
    if target is None:
        missing = f"Block '{block}' not found" if block else "No bot or agent block found"
        return ExecutionResult(success=False, error=missing)

    instructions = target.events.get(event)
    if instructions is None:
        return ExecutionResult(
            success=False,
            error=f"Event handler 'on {event}' not defined in '{target.name}'",
        )

    executor = ProgramExecutor(as_registry(tools), context)
    await executor.run(instructions, input)
    logger.debug(
        "Run %s executed %d instructions of %s.%s",
        context.metadata.run_id,
        len(instructions),
        target.name,
        event,
    )
    return ExecutionResult(
        success=True,
        output="\n".join(executor.output),
        steps=executor.steps,
        transcript=executor.transcript,
    )
