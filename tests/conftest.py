"""Shared fixtures: a temporary sqlite store and fake tools/LLM clients."""
from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import pytest

from bothive.core.models import ToolContext, ToolDescriptor, ToolMetadata, ToolResult
from bothive.core.shared_memory import InMemorySharedMemory
from bothive.storage.database import Database


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def database(tmp_path):
    db = Database(tmp_path / "hive.db")
    yield db
    db.close()


@pytest.fixture
def context() -> ToolContext:
    return ToolContext(
        metadata=ToolMetadata(bot_id="bot-1", run_id="run-1", user_id="user-1"),
        shared_memory=InMemorySharedMemory("run-1"),
    )


def make_tool(
    name: str,
    capability: Optional[str] = None,
    output: str = "ok",
    *,
    success: bool = True,
    raises: Optional[Exception] = None,
    calls: Optional[List[Dict[str, Any]]] = None,
) -> ToolDescriptor:
    """Tool returning a fixed result and recording the args it saw."""

    async def run(args: Dict[str, Any], context: ToolContext) -> ToolResult:
        if calls is not None:
            calls.append(args)
        if raises is not None:
            raise raises
        return ToolResult(success=success, output=output)

    return ToolDescriptor(name=name, capability=capability or name, description=f"{name} tool", run=run)


class FakeLLMClient:
    """Stands in for ``AsyncOpenAI``: replies are produced by ``responder(messages)``."""

    def __init__(self, responder: Callable[[List[Dict[str, str]]], str]) -> None:
        self.requests: List[Dict[str, Any]] = []
        self._responder = responder
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs: Any) -> Any:
        self.requests.append({**kwargs, "messages": list(kwargs["messages"])})
        content = self._responder(kwargs["messages"])
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
