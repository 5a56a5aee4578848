"""Operational routes."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from api.dependencies import get_session_store
from api.schemas import HealthResponse
from bridge.store import SessionStore

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse, response_model_by_alias=True)
async def health(store: SessionStore = Depends(get_session_store)) -> HealthResponse:
    return HealthResponse(
        timestamp=datetime.now(timezone.utc),
        active_connections=len(store),
        setup_failures=store.stats.setup_failures,
        midcall_failures=store.stats.midcall_failures,
    )
