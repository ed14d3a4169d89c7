"""FastAPI dependency injection: pull singletons from app.state."""

from __future__ import annotations

from fastapi import HTTPException, Request

from agentjobs.core.config.schema import Config
from agentjobs.storage.repository import JobRepository


def get_config(request: Request) -> Config:
    """Get Config singleton from app state."""
    return request.app.state.config


def get_store(request: Request) -> JobRepository:
    """Get the job repository from app state; 503 until it is wired."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="job store not available")
    return store
