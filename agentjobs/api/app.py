"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from agentjobs import __version__
from agentjobs.api.jobs import router as jobs_router
from agentjobs.api.routes import router as core_router
from agentjobs.core.config.loader import load_config
from agentjobs.core.jobs.errors import (
    JobConflictError,
    JobNotFoundError,
    JobStoreError,
    JobValidationError,
    RetryableStoreError,
    StoreConfigurationError,
)
from agentjobs.core.scheduler.worker import AgentJobWorker
from agentjobs.storage.sqlite_store import SQLiteJobStore

# Most specific first; anything else under JobStoreError is a 500.
_ERROR_STATUS: tuple[tuple[type[JobStoreError], int], ...] = (
    (JobValidationError, 400),
    (JobNotFoundError, 404),
    (JobConflictError, 409),
    (StoreConfigurationError, 503),
    (RetryableStoreError, 503),
)


def status_for(exc: JobStoreError) -> int:
    for cls, status in _ERROR_STATUS:
        if isinstance(exc, cls):
            return status
    return 500


async def _job_store_error_handler(request: Request, exc: JobStoreError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: Config → SQLiteJobStore → AgentJobWorker. Shutdown: stop worker."""
    config = load_config()
    store = SQLiteJobStore.from_config(config)
    worker = AgentJobWorker(store, config)

    app.state.config = config
    app.state.store = store
    app.state.worker = worker

    await worker.start()
    logger.info(f"agentjobs API started (tenant={config.tenant_id})")
    yield

    await worker.stop()
    logger.info("agentjobs API shutting down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="agentjobs API",
        description="Durable agent job scheduler",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(JobStoreError, _job_store_error_handler)

    app.include_router(core_router)
    app.include_router(jobs_router)

    return app


app = create_app()
