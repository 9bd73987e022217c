"""HTTP API for storing bots that the Pulse Engine can wake."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from bothive.hivelang.compiler import compile_source
from bothive.runtime import get_bot_store
from bothive.storage.bot_store import BotRecord, BotStore

router = APIRouter(prefix="/bots", tags=["bots"])


class BotCreateRequest(BaseModel):
    name: str = Field(..., description="Display name of the bot")
    hivelang_code: str = Field(..., description="HiveLang source with an 'on input' handler")
    user_id: Optional[str] = None
    system_prompt: Optional[str] = None


class BotResponse(BaseModel):
    id: str
    name: str
    hivelang_code: str
    user_id: Optional[str]
    system_prompt: Optional[str]

    @classmethod
    def from_record(cls, bot: BotRecord) -> "BotResponse":
        return cls(
            id=bot.id,
            name=bot.name,
            hivelang_code=bot.hivelang_code,
            user_id=bot.user_id,
            system_prompt=bot.system_prompt,
        )


@router.post("", response_model=BotResponse, status_code=status.HTTP_201_CREATED)
async def create_bot(request: BotCreateRequest, bots: BotStore = Depends(get_bot_store)) -> BotResponse:
    compiled = compile_source(request.hivelang_code)
    if not compiled.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=compiled.error)
    bot = await bots.save_bot(
        request.name,
        request.hivelang_code,
        user_id=request.user_id,
        system_prompt=request.system_prompt,
    )
    return BotResponse.from_record(bot)


@router.get("/{bot_id}", response_model=BotResponse)
async def get_bot(bot_id: str, bots: BotStore = Depends(get_bot_store)) -> BotResponse:
    bot = await bots.get_bot(bot_id)
    if bot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bot not found")
    return BotResponse.from_record(bot)
