"""
Engine settings.

Values come from explicit construction or the environment:

    JOINERY_DEBUG_TRANSITIONS=1   log every slot transition at DEBUG
    JOINERY_STALL_TIMEOUT=5.0     block_on raises StallError after 5s without a wake
    JOINERY_LOG_LEVEL=DEBUG       level used by setup_logging()
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, PositiveFloat, field_validator

_TRUTHY = {"1", "true", "yes", "on"}

_settings: Optional["EngineSettings"] = None


class EngineSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    debug_transitions: bool = False
    stall_timeout: Optional[PositiveFloat] = None
    log_level: str = "WARNING"

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return level

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "EngineSettings":
        env = os.environ if environ is None else environ
        stall = env.get("JOINERY_STALL_TIMEOUT", "").strip()
        return cls(
            debug_transitions=env.get("JOINERY_DEBUG_TRANSITIONS", "0").lower()
            in _TRUTHY,
            stall_timeout=float(stall) if stall else None,
            log_level=env.get("JOINERY_LOG_LEVEL", "WARNING"),
        )


def get_settings() -> EngineSettings:
    """Process-wide settings, read from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = EngineSettings.from_env()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next get_settings() rereads the environment."""
    global _settings
    _settings = None
