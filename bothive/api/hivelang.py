"""HTTP API for compiling and running HiveLang programs."""
from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from bothive.core.models import ToolContext, ToolMetadata
from bothive.core.shared_memory import InMemorySharedMemory
from bothive.hivelang.compiler import compile_source
from bothive.hivelang.runtime import DEFAULT_EVENT, execute
from bothive.runtime import get_tool_registry
from bothive.tools.registry import ToolRegistry

router = APIRouter(prefix="/hivelang", tags=["hivelang"])


class CompileRequest(BaseModel):
    source: str = Field(..., description="HiveLang program text")


class CompileResponse(BaseModel):
    success: bool
    blocks: List[Dict[str, Any]] = Field(default_factory=list)
    error: Optional[str] = None


class ExecuteRequest(BaseModel):
    source: str
    input: Dict[str, Any] = Field(default_factory=dict)
    block: Optional[str] = Field(None, description="Block name; defaults to the first block")
    event: str = DEFAULT_EVENT
    bot_id: str = "adhoc"
    user_id: Optional[str] = None


class ExecuteResponse(BaseModel):
    success: bool
    output: str = ""
    steps: List[Dict[str, Any]] = Field(default_factory=list)
    transcript: List[Dict[str, Any]] = Field(default_factory=list)
    error: Optional[str] = None


@router.post("/compile", response_model=CompileResponse)
async def compile_program(request: CompileRequest) -> CompileResponse:
    return CompileResponse(**compile_source(request.source).to_dict())


@router.post("/execute", response_model=ExecuteResponse)
async def execute_program(
    request: ExecuteRequest,
    tools: ToolRegistry = Depends(get_tool_registry),
) -> ExecuteResponse:
    """Run one event handler with a fresh in-memory shared memory."""
    run_id = str(uuid.uuid4())
    context = ToolContext(
        metadata=ToolMetadata(bot_id=request.bot_id, run_id=run_id, user_id=request.user_id),
        shared_memory=InMemorySharedMemory(run_id),
    )
    result = await execute(
        request.source,
        request.input,
        tools,
        context,
        block=request.block,
        event=request.event,
    )
    return ExecuteResponse(**result.to_dict())
