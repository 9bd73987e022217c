"""Application runtime composition helpers."""
from __future__ import annotations

import logging
import uuid
from functools import lru_cache

from bothive.agents.react import ReActAgent
from bothive.config import config
from bothive.core.models import ToolContext, ToolMetadata
from bothive.core.shared_memory import InMemorySharedMemory
from bothive.orchestration.queen_bee import QueenBee
from bothive.scheduling.pulse import PulseEngine
from bothive.services.llm_pool import LLMPool
from bothive.storage.bot_store import BotStore
from bothive.storage.database import Database
from bothive.storage.pulse_store import PulseJobStore
from bothive.storage.run_store import WorkforceRunStore
from bothive.tools.agent_tools import BUS_TOOLS, build_agent_tools
from bothive.tools.registry import ToolRegistry
from bothive.workforce.orchestrator import LLMPlanProposer
from bothive.workforce.queue import WorkforceQueue
from bothive.workforce.worker import WorkforceWorker

logger = logging.getLogger(__name__)


def default_model() -> str:
    return config.llm.model if config.llm else "gpt-4o-mini"


@lru_cache
def get_database() -> Database:
    return Database(config.database.path)


@lru_cache
def get_bot_store() -> BotStore:
    return BotStore(get_database())


@lru_cache
def get_pulse_store() -> PulseJobStore:
    return PulseJobStore(get_database())


@lru_cache
def get_llm_pool() -> LLMPool:
    pool = LLMPool()

    # Register the OpenAI-compatible endpoint if configured
    if config.llm:
        pool.register_openai(config.llm.model, config.llm)
    else:
        logger.warning("OPENAI_API_KEY not set; LLM-backed tools are disabled")

    return pool


@lru_cache
def get_tool_registry() -> ToolRegistry:
    registry = ToolRegistry(BUS_TOOLS)
    if config.llm:
        for descriptor in build_agent_tools(get_llm_pool(), default_model()):
            registry.register(descriptor)
    return registry


@lru_cache
def get_pulse_engine() -> PulseEngine:
    return PulseEngine(
        get_pulse_store(),
        get_bot_store(),
        tools=get_tool_registry(),
        interval_seconds=config.pulse.interval_seconds,
        batch_size=config.pulse.batch_size,
        lease_seconds=config.pulse.lease_seconds,
        log_failures=config.pulse.log_failures,
    )


@lru_cache
def get_workforce_queue() -> WorkforceQueue:
    return WorkforceQueue(get_database(), lease_seconds=config.workforce.lease_seconds)


@lru_cache
def get_run_store() -> WorkforceRunStore:
    return WorkforceRunStore(get_database())


@lru_cache
def get_workforce_worker() -> WorkforceWorker:
    pool = get_llm_pool()
    return WorkforceWorker(
        get_workforce_queue(),
        get_run_store(),
        database=get_database(),
        tools=list(get_tool_registry()),
        planner=LLMPlanProposer(pool, default_model()),
        agent_runner=ReActAgent(pool, default_model()),
        max_iterations=config.workforce.max_iterations,
        max_agents=config.workforce.max_agents,
        poll_interval=config.workforce.poll_interval_seconds,
        retention_seconds=config.workforce.retention_seconds,
    )


def get_queen_bee() -> QueenBee:
    """Queen Bee over the shared registry with a fresh per-request context."""
    run_id = f"queen-{uuid.uuid4()}"
    context = ToolContext(
        metadata=ToolMetadata(bot_id="queen-bee", run_id=run_id),
        shared_memory=InMemorySharedMemory(run_id),
    )
    return QueenBee(get_tool_registry(), context)
