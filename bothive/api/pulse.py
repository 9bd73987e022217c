"""Pulse Engine controls."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from bothive.runtime import get_pulse_engine
from bothive.scheduling.pulse import PulseEngine

router = APIRouter(prefix="/pulse", tags=["pulse"])


class PulseStatusResponse(BaseModel):
    state: str
    worker_id: str
    interval_seconds: float
    batch_size: int
    last_error: Optional[str]


class PulseTickResponse(BaseModel):
    claimed: int
    succeeded: List[str]
    failed: List[str]


@router.get("", response_model=PulseStatusResponse)
async def pulse_status(engine: PulseEngine = Depends(get_pulse_engine)) -> Dict[str, Any]:
    return engine.status()


@router.post("/tick", response_model=PulseTickResponse)
async def pulse_tick(engine: PulseEngine = Depends(get_pulse_engine)) -> PulseTickResponse:
    """Run one heartbeat now, outside the background schedule."""
    report = await engine.pulse()
    return PulseTickResponse(claimed=report.claimed, succeeded=report.succeeded, failed=report.failed)
