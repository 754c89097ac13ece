from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Process-wide defaults. Request parameters override these, CLI flags override both."""

    model_config = SettingsConfigDict(env_prefix="CLASSTIME_", env_file=".env", env_file_encoding="utf-8", extra="ignore")

    max_iterations: int = Field(default=200_000, gt=0)
    timeout_ms: int = Field(default=10_000, gt=0)
    restarts: int = Field(default=1, ge=1)
    budget_policy: str = "independent"
    workers: int = Field(default=1, ge=1)

    days: int = Field(default=5, ge=1)
    periods_per_day: int = Field(default=8, ge=1)

    log_level: str = "INFO"
    log_file: Optional[str] = None

    @field_validator("budget_policy")
    @classmethod
    def _normalize_budget_policy(cls, v: str) -> str:
        v = (v or "independent").strip().lower()
        if v not in {"independent", "split"}:
            raise ValueError("CLASSTIME_BUDGET_POLICY must be 'independent' or 'split'")
        return v

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        return (v or "INFO").strip().upper()


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    return EngineSettings()
