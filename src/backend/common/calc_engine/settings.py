from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator


load_dotenv()

_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class EngineSettings(BaseModel):
    # None lets ThreadPoolExecutor pick its default worker count.
    max_workers: Optional[int] = Field(default=None, ge=1)
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return level


def get_engine_settings() -> EngineSettings:
    """
    Load engine settings from environment variables.

    Reads:
      CALC_ENGINE_MAX_WORKERS, CALC_ENGINE_LOG_LEVEL
    """
    raw = {}
    max_workers = os.getenv("CALC_ENGINE_MAX_WORKERS", "").strip()
    if max_workers:
        raw["max_workers"] = max_workers
    log_level = os.getenv("CALC_ENGINE_LOG_LEVEL", "").strip()
    if log_level:
        raw["log_level"] = log_level
    try:
        return EngineSettings.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid calculation engine settings: {exc}") from exc
