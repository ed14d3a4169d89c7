"""Core API routes: health."""

from __future__ import annotations

from fastapi import APIRouter, Request

from agentjobs import __version__
from agentjobs.api.models import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Health check."""
    store = getattr(request.app.state, "store", None)
    return HealthResponse(
        status="ok",
        store_ready=store is not None,
        version=__version__,
        tenant_id=getattr(store, "tenant_id", None),
    )
