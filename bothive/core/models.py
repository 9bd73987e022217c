"""Core data models shared by the compiler, the runtime, and the tools."""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

if TYPE_CHECKING:
    from bothive.core.shared_memory import SharedMemory


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class Instruction:
    """One parsed line inside an event handler."""

    type: str  # "say" | "call" | "raw"
    command: str
    raw: str
    args: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type, "command": self.command, "raw": self.raw}
        if self.args is not None:
            data["args"] = self.args
        return data


@dataclass(slots=True)
class Block:
    """A compiled ``bot``/``agent`` definition."""

    type: str  # "bot" | "agent"
    name: str
    description: Optional[str] = None
    events: Dict[str, List[Instruction]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "name": self.name,
            "events": {
                event: [instruction.to_dict() for instruction in instructions]
                for event, instructions in self.events.items()
            },
        }
        if self.description is not None:
            data["description"] = self.description
        return data


@dataclass(slots=True)
class CompilationResult:
    """Outcome of compiling HiveLang source; never holds partial blocks on failure."""

    success: bool
    blocks: List[Block] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "blocks": [block.to_dict() for block in self.blocks],
        }
        if self.error is not None:
            data["error"] = self.error
        return data

    def to_json(self, indent: int = 2) -> str:
        return json.dumps([block.to_dict() for block in self.blocks], indent=indent)


@dataclass(slots=True)
class ToolResult:
    """Value returned by every tool invocation."""

    success: bool
    output: str
    data: Any = None


@dataclass(slots=True)
class ToolMetadata:
    """Identity of the run a tool is executing inside."""

    bot_id: str
    run_id: str
    user_id: Optional[str] = None
    bot_system_prompt: Optional[str] = None


@dataclass(slots=True)
class ToolContext:
    """Per-run context handed to tools; created fresh for each execution or job."""

    metadata: ToolMetadata
    shared_memory: SharedMemory

    def for_bot(self, bot_id: str) -> ToolContext:
        """Clone with a different ``bot_id`` but the same shared memory."""
        metadata = ToolMetadata(
            bot_id=bot_id,
            run_id=self.metadata.run_id,
            user_id=self.metadata.user_id,
            bot_system_prompt=self.metadata.bot_system_prompt,
        )
        return ToolContext(metadata=metadata, shared_memory=self.shared_memory)


ToolRunner = Callable[[Dict[str, Any], ToolContext], Awaitable[ToolResult]]


@dataclass(slots=True)
class ToolDescriptor:
    """Named, capability-tagged callable invokable from a ``call`` instruction."""

    name: str
    capability: str
    description: str
    run: ToolRunner


@dataclass(slots=True)
class ReasoningStep:
    """ReAct-style record of one tool call, as rendered by observability UIs."""

    thought: str
    action: str
    action_input: Dict[str, Any]
    observation: str
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "thought": self.thought,
            "action": self.action,
            "actionInput": self.action_input,
            "observation": self.observation,
            "timestamp": self.timestamp,
        }


@dataclass(slots=True)
class ExecutionResult:
    """Outcome of running one event handler of a compiled program."""

    success: bool
    output: str = ""
    steps: List[ReasoningStep] = field(default_factory=list)
    transcript: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "output": self.output,
            "steps": [step.to_dict() for step in self.steps],
            "transcript": list(self.transcript),
        }
        if self.error is not None:
            data["error"] = self.error
        return data
