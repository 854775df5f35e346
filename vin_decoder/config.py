"""Decoder configuration using pydantic-settings (env prefix VIN_DECODER_)."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class DecoderSettings(BaseSettings):
    """Runtime settings for the CLI and API entry points."""

    model_config = {"env_prefix": "VIN_DECODER_"}

    database_path: str | None = None  # vPIC SQLite export
    cache_size: int = Field(default=1024, ge=0)
    confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
