"""Queen Bee planning endpoints."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from bothive.orchestration.queen_bee import QueenBee, SubTask, WorkerBot
from bothive.runtime import get_queen_bee

router = APIRouter(prefix="/queen", tags=["queen"])


class WorkerModel(BaseModel):
    id: str
    name: str
    capabilities: List[str] = Field(default_factory=list)
    description: str = ""

    def to_worker(self) -> WorkerBot:
        return WorkerBot(
            id=self.id,
            name=self.name,
            capabilities=list(self.capabilities),
            description=self.description,
        )


class SubTaskModel(BaseModel):
    id: str
    description: str
    requiredCapability: str
    assignedWorkerId: Optional[str] = None
    status: str
    result: Optional[str] = None

    @classmethod
    def from_task(cls, task: SubTask) -> "SubTaskModel":
        return cls(**task.to_dict())


class DecomposeRequest(BaseModel):
    goal: str = Field(..., min_length=1)


class PlanRequest(BaseModel):
    goal: str = Field(..., min_length=1)
    workers: List[WorkerModel] = Field(default_factory=list)


@router.post("/decompose", response_model=List[SubTaskModel])
async def decompose(request: DecomposeRequest, queen: QueenBee = Depends(get_queen_bee)) -> List[SubTaskModel]:
    return [SubTaskModel.from_task(task) for task in await queen.decompose(request.goal)]


@router.post("/plan", response_model=List[SubTaskModel])
async def plan(request: PlanRequest, queen: QueenBee = Depends(get_queen_bee)) -> List[SubTaskModel]:
    """Decompose the goal and assign each sub-task to a capable worker."""
    tasks = await queen.plan(request.goal, [worker.to_worker() for worker in request.workers])
    return [SubTaskModel.from_task(task) for task in tasks]
