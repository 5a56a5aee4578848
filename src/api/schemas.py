"""API-facing Pydantic models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "ok"
    timestamp: datetime
    active_connections: int = Field(alias="activeConnections")
    setup_failures: int = Field(default=0, alias="setupFailures")
    midcall_failures: int = Field(default=0, alias="midCallFailures")
