"""Runtime configuration for the audit engine.

Values come from ``RGAAUDIT_*`` environment variables or a local ``.env``
file.  Invalid values fail at startup with a pydantic ``ValidationError``.
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from engine.worker_pool import MAX_CONCURRENCY


class AuditSettings(BaseSettings):
    """Settings shared by the controller, the worker pool and the CLI."""

    model_config = SettingsConfigDict(
        env_prefix="RGAAUDIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    sessions_dir: str = Field(default=os.path.join("~", ".rgaaudit", "sessions"))
    max_pages: int = Field(default=50, ge=1)
    default_concurrency: int = Field(default=2)
    page_timeout_seconds: float = Field(default=30.0, gt=0)
    catalog_path: Optional[str] = Field(default=None)
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="console")
    report_version: str = Field(default="0.1.0")

    @field_validator("sessions_dir", mode="after")
    @classmethod
    def _expand_sessions_dir(cls, value: str) -> str:
        return os.path.expanduser(value)

    @field_validator("default_concurrency", mode="after")
    @classmethod
    def _clamp_concurrency(cls, value: int) -> int:
        return max(1, min(value, MAX_CONCURRENCY))

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level = str(value or "INFO").upper()
        if level not in valid_levels:
            raise ValueError(f"log_level must be one of {sorted(valid_levels)}")
        return level


@lru_cache()
def get_settings() -> AuditSettings:
    """Process-wide settings, read once."""
    return AuditSettings()
