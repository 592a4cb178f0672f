"""Lightweight settings layer wrapping environment variables with validation.

Does not replace AppConfig; augments it. Use get_settings() where env-driven behavior
is needed (log format, backend location, request limits).
"""
from __future__ import annotations
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment settings, read from ``KINOGRAPH_*`` variables."""

    model_config = SettingsConfigDict(env_prefix="KINOGRAPH_", case_sensitive=False, extra="ignore")

    log_level: str = Field("INFO")
    json_logging: bool = Field(False)
    backend_url: Optional[str] = Field(None)
    request_timeout: float = Field(30.0)
    # Upper bounds on what a single sync hands to the viewer
    max_selection_atoms: int = Field(1500)
    max_distance_pairs: int = Field(2500)
    # Verbose per-type selection diagnostics
    verbose_selection_logs: bool = Field(False)
    api_enable_gzip: bool = Field(False)
    api_gzip_min_size: int = Field(1024)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
