"""Bot definitions as seen by the scheduler (owned by the bot-storage collaborator)."""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

from bothive.storage.database import Database


@dataclass(slots=True)
class BotRecord:
    id: str
    name: str
    hivelang_code: str
    user_id: Optional[str] = None
    system_prompt: Optional[str] = None


class BotLoader(Protocol):
    async def get_bot(self, bot_id: str) -> Optional[BotRecord]:
        ...


class BotStore:
    """``bots`` table access."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def _insert(self, bot: BotRecord) -> None:
        self._db.execute(
            """
            INSERT INTO bots (id, user_id, name, hivelang_code, system_prompt, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                user_id = excluded.user_id,
                name = excluded.name,
                hivelang_code = excluded.hivelang_code,
                system_prompt = excluded.system_prompt
            """,
            (bot.id, bot.user_id, bot.name, bot.hivelang_code, bot.system_prompt, time.time()),
        )

    def _select(self, bot_id: str) -> Optional[BotRecord]:
        row = self._db.fetchone("SELECT * FROM bots WHERE id = ?", (bot_id,))
        if row is None:
            return None
        return BotRecord(
            id=row["id"],
            name=row["name"],
            hivelang_code=row["hivelang_code"],
            user_id=row["user_id"],
            system_prompt=row["system_prompt"],
        )

    async def save_bot(
        self,
        name: str,
        hivelang_code: str,
        *,
        user_id: Optional[str] = None,
        system_prompt: Optional[str] = None,
        bot_id: Optional[str] = None,
    ) -> BotRecord:
        bot = BotRecord(
            id=bot_id or str(uuid.uuid4()),
            name=name,
            hivelang_code=hivelang_code,
            user_id=user_id,
            system_prompt=system_prompt,
        )
        await self._db.run(self._insert, bot)
        return bot

    async def get_bot(self, bot_id: str) -> Optional[BotRecord]:
        return await self._db.run(self._select, bot_id)
