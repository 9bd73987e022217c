"""HTTP API for queued heavy workforce runs."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from bothive.runtime import get_run_store, get_workforce_queue
from bothive.storage.run_store import WorkforceRunStore
from bothive.workforce.queue import WorkforceQueue
from bothive.workforce.status import get_workforce_status

router = APIRouter(prefix="/workforce", tags=["workforce"])


class WorkforceRequest(BaseModel):
    user_id: str = Field(..., description="Owner of the run")
    request: str = Field(..., min_length=1, description="What the workforce should accomplish")


class WorkforceEnqueueResponse(BaseModel):
    success: bool
    job_id: str
    status: str


class WorkforceStatusResponse(BaseModel):
    success: bool
    status: str
    jobId: Optional[str] = None
    progress: Optional[int] = None
    iterations: Optional[List[Dict[str, Any]]] = None
    result: Any = None
    error: Optional[str] = None


@router.post("", response_model=WorkforceEnqueueResponse, status_code=status.HTTP_202_ACCEPTED)
async def enqueue_workforce(
    request: WorkforceRequest,
    queue: WorkforceQueue = Depends(get_workforce_queue),
) -> WorkforceEnqueueResponse:
    job_id = await queue.add(request.user_id, request.request)
    return WorkforceEnqueueResponse(success=True, job_id=job_id, status="queued")


@router.get("/{job_id}", response_model=WorkforceStatusResponse)
async def workforce_status(
    job_id: str,
    queue: WorkforceQueue = Depends(get_workforce_queue),
    runs: WorkforceRunStore = Depends(get_run_store),
) -> WorkforceStatusResponse:
    result = await get_workforce_status(job_id, queue, runs)
    if result.status == "unknown":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.error)
    return WorkforceStatusResponse(**result.to_dict())
