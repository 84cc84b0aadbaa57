from __future__ import annotations

import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class CacheSettings(BaseModel):
    """Runtime settings for the cache service."""

    service_name: str = Field("ttl-cache", min_length=1)
    default_ttl_seconds: float = Field(
        0.0, description="TTL applied when a write passes ttl=0. <= 0 means entries never expire."
    )
    cleanup_interval_seconds: float = Field(
        60.0, description="Sweeper period. <= 0 disables background sweeping."
    )
    log_level: str = Field("INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Log level must be one of: {', '.join(LOG_LEVELS)}")
        return level


def load_settings(env: Optional[Mapping[str, str]] = None) -> CacheSettings:
    """Build settings from the environment (and a local .env file, if any)."""
    if env is None:
        load_dotenv()
        env = os.environ

    values = {}
    for field_name, env_name in (
        ("service_name", "SERVICE_NAME"),
        ("default_ttl_seconds", "CACHE_DEFAULT_TTL_SECONDS"),
        ("cleanup_interval_seconds", "CACHE_CLEANUP_INTERVAL_SECONDS"),
        ("log_level", "LOG_LEVEL"),
    ):
        raw = env.get(env_name)
        if raw is not None and raw.strip() != "":
            values[field_name] = raw.strip()
    return CacheSettings(**values)
