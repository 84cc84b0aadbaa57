from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class SetValueRequest(BaseModel):
    """Payload for writing a cache entry."""
    value: Any = Field(..., description="Arbitrary JSON value to store.")
    ttl_seconds: float = Field(
        0, description="Entry TTL. 0 uses the cache default; negative means never expires."
    )


class CacheValueResponse(BaseModel):
    key: str
    value: Any


class CacheStatsResponse(BaseModel):
    size: int = Field(..., ge=0, description="Stored entries, including expired ones not yet swept.")
    default_ttl_seconds: float
    cleanup_interval_seconds: float
    sweeper_running: bool


class SweepResponse(BaseModel):
    evicted: int = Field(..., ge=0)
