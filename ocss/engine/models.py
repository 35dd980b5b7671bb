"""
OCSS Engine API — Pydantic response models

Copyright (c) 2026 CruxLabx — AGPL-3.0
"""

from __future__ import annotations

from pydantic import BaseModel, Field


# ─── Lifecycle ────────────────────────────────────────────────

class HealthResponse(BaseModel):
    """Simple health check."""
    status: str = "ok"
    version: str
    timestamp: float


class StatusResponse(BaseModel):
    """Engine status summary."""
    engine_address: str
    version: str
    uptime_seconds: float = 0
    shares: int = 0
    storage_bytes: int = 0


# ─── Errors ───────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    """Body of every non-2xx response."""
    error: str = Field(..., description="Human-readable reason")
