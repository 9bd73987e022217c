"""HTTP API for a bot's pulse schedules."""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from bothive.errors import JobNotFoundError
from bothive.runtime import get_bot_store, get_pulse_store
from bothive.storage.bot_store import BotStore
from bothive.storage.pulse_store import PulseJob, PulseJobStore

router = APIRouter(prefix="/bots/{bot_id}/pulse-jobs", tags=["pulse-jobs"])


class PulseJobCreateRequest(BaseModel):
    trigger_type: Literal["schedule", "event", "webhook"] = "schedule"
    interval_minutes: Optional[float] = Field(None, description="Required for schedule triggers")
    trigger_config: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


class PulseJobUpdateRequest(BaseModel):
    is_active: Optional[bool] = None


class PulseJobResponse(BaseModel):
    id: str
    bot_id: str
    trigger_type: str
    trigger_config: Dict[str, Any]
    last_run: Optional[str]
    next_run: Optional[str]
    is_active: bool

    @classmethod
    def from_job(cls, job: PulseJob) -> "PulseJobResponse":
        return cls(**job.to_dict())


async def _require_bot(bot_id: str, bots: BotStore) -> None:
    if await bots.get_bot(bot_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bot not found")


async def _require_job(bot_id: str, job_id: str, store: PulseJobStore) -> PulseJob:
    job = await store.get_job(job_id)
    if job is None or job.bot_id != bot_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule not found")
    return job


@router.get("", response_model=List[PulseJobResponse])
async def list_pulse_jobs(
    bot_id: str,
    bots: BotStore = Depends(get_bot_store),
    store: PulseJobStore = Depends(get_pulse_store),
) -> List[PulseJobResponse]:
    await _require_bot(bot_id, bots)
    return [PulseJobResponse.from_job(job) for job in await store.list_jobs(bot_id)]


@router.post("", response_model=PulseJobResponse, status_code=status.HTTP_201_CREATED)
async def create_pulse_job(
    bot_id: str,
    request: PulseJobCreateRequest,
    bots: BotStore = Depends(get_bot_store),
    store: PulseJobStore = Depends(get_pulse_store),
) -> PulseJobResponse:
    await _require_bot(bot_id, bots)
    if request.trigger_type == "schedule" and not (request.interval_minutes and request.interval_minutes > 0):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="interval_minutes must be a positive number for schedule triggers",
        )
    try:
        job = await store.create_job(
            bot_id,
            request.trigger_type,
            request.trigger_config,
            interval_minutes=request.interval_minutes if request.trigger_type == "schedule" else None,
            is_active=request.is_active,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return PulseJobResponse.from_job(job)


@router.patch("/{job_id}", response_model=PulseJobResponse)
async def update_pulse_job(
    bot_id: str,
    job_id: str,
    request: PulseJobUpdateRequest,
    store: PulseJobStore = Depends(get_pulse_store),
) -> PulseJobResponse:
    """Pausing clears ``next_run``; resuming schedules the next wake one interval out."""
    job = await _require_job(bot_id, job_id, store)
    if request.is_active is None:
        return PulseJobResponse.from_job(job)
    try:
        job = await store.set_active(job_id, request.is_active)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return PulseJobResponse.from_job(job)


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pulse_job(
    bot_id: str,
    job_id: str,
    store: PulseJobStore = Depends(get_pulse_store),
) -> None:
    await _require_job(bot_id, job_id, store)
    await store.delete_job(job_id)
