"""LLM client pool for shared model access with concurrency control."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from bothive.config import LLMConfig


class LLMPool:
    """Manages shared LLM clients with concurrency limiting."""

    def __init__(self) -> None:
        self._clients: Dict[str, Any] = {}
        self._semaphores: Dict[str, asyncio.Semaphore] = {}
        self._initialized: Dict[str, bool] = {}

    def register_openai(self, name: str, config: LLMConfig) -> None:
        """Register an OpenAI-compatible endpoint; the client is built on first use."""
        self._clients[name] = config
        self._semaphores[name] = asyncio.Semaphore(config.max_concurrent)
        self._initialized[name] = False

    def register_client(self, name: str, client: Any, max_concurrent: int = 50) -> None:
        """Register an already constructed client exposing ``chat.completions.create``."""
        self._clients[name] = client
        self._semaphores[name] = asyncio.Semaphore(max_concurrent)
        self._initialized[name] = True

    @asynccontextmanager
    async def acquire(self, model_name: str) -> AsyncIterator[Any]:
        """Acquire access to a model client with concurrency control."""
        if model_name not in self._clients:
            raise KeyError(f"Model '{model_name}' not registered in LLM pool")

        semaphore = self._semaphores[model_name]
        await semaphore.acquire()

        try:
            # Lazy initialization on first use
            if not self._initialized[model_name]:
                self._initialize_client(model_name)

            yield self._clients[model_name]
        finally:
            semaphore.release()

    def _initialize_client(self, model_name: str) -> None:
        config = self._clients[model_name]
        if isinstance(config, LLMConfig):
            self._clients[model_name] = AsyncOpenAI(api_key=config.api_key, base_url=config.base_url)
        self._initialized[model_name] = True

    async def complete(
        self,
        model_name: str,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        model: Optional[str] = None,
    ) -> str:
        """Run one chat completion and return the assistant text."""
        async with self.acquire(model_name) as client:
            response = await client.chat.completions.create(
                model=model or model_name,
                messages=messages,
                temperature=temperature,
            )
        return response.choices[0].message.content or ""
