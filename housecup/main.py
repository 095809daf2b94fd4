"""housecup - weekly chore competition for two-person households."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from housecup.core.config import settings
from housecup.core.db_client import init_db
from housecup.core.logging import configure_logfire, instrument_fastapi, instrument_pydantic_ai
from housecup.core.scheduler import COMPLETION_JOB_ID, scheduler, start_scheduler, stop_scheduler


logger = logging.getLogger(__name__)


def validate_startup_configuration() -> None:
    """Log which optional integrations are available.

    Narratives fall back to the rule-based selector without an OpenRouter key,
    so a missing key is a warning rather than a startup failure.
    """
    try:
        settings.require_credential("openrouter_api_key", "OpenRouter API key")
        logger.info("startup_validation", extra={"service": "openrouter", "status": "ok"})
    except ValueError as e:
        logger.warning("startup_validation", extra={"service": "openrouter", "status": "disabled", "error": str(e)})


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()
    validate_startup_configuration()

    await init_db()
    logger.info("Database initialized")

    instrument_pydantic_ai()
    start_scheduler()
    yield
    # Shutdown
    stop_scheduler()


app = FastAPI(
    title="housecup",
    description="Weekly chore competition for two-person households",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)


@app.get("/health/scheduler")
async def scheduler_health_check() -> JSONResponse:
    """Scheduler health check with the completion job's next run time."""
    job = scheduler.get_job(COMPLETION_JOB_ID) if scheduler.running else None
    if job is None:
        return JSONResponse(content={"status": "stopped", "jobs": {}}, status_code=503)

    next_run = job.next_run_time.isoformat() if job.next_run_time else None
    return JSONResponse(
        content={"status": "healthy", "jobs": {job.id: {"name": job.name, "next_run_time": next_run}}},
        status_code=200,
    )
