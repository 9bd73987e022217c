"""FastAPI entry-point exposing the hive engine."""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from bothive.api.bots import router as bots_router
from bothive.api.hivelang import router as hivelang_router
from bothive.api.pulse import router as pulse_router
from bothive.api.pulse_jobs import router as pulse_jobs_router
from bothive.api.queen import router as queen_router
from bothive.api.workforce import router as workforce_router
from bothive.config import config
from bothive.log import configure_logging
from bothive.runtime import get_database, get_pulse_engine, get_workforce_worker


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application."""
    configure_logging(config.log_level)
    get_database()

    # Startup: background loops
    if config.pulse.enabled:
        await get_pulse_engine().start()
    if config.workforce.worker_enabled:
        await get_workforce_worker().start()
    yield
    # Shutdown: let in-flight ticks finish
    await get_workforce_worker().stop()
    await get_pulse_engine().stop()


app = FastAPI(title="BotHive", lifespan=lifespan)
app.include_router(hivelang_router)
app.include_router(bots_router)
app.include_router(pulse_jobs_router)
app.include_router(pulse_router)
app.include_router(workforce_router)
app.include_router(queen_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
