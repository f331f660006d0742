"""Schemas shared by every router."""

from __future__ import annotations

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Body of every domain error response."""

    error: str
    kind: str
    message: str
    retryable: bool = False


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"
    settlement_mode: str = "simulated"
