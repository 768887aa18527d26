"""
Runtime configuration for the Omega pipeline.

All knobs come from environment variables, read once at process start.
"""
import os
from typing import Optional

from pydantic import BaseModel, Field


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class OmegaSettings(BaseModel):
    """Pipeline settings shared by every run."""

    auto_execute_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    oracle_timeout_s: float = Field(default=60.0, gt=0)
    persist_timeout_s: float = Field(default=10.0, gt=0)
    exploration_rate: float = Field(default=0.1, ge=0.0, le=1.0)

    log_level: str = "INFO"
    json_logs: bool = False

    llm_model: str = "gpt-4o-mini"
    llm_base_url: Optional[str] = None
    llm_api_key: Optional[str] = None
    llm_temperature: float = 0.2

    database_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "OmegaSettings":
        return cls(
            auto_execute_threshold=float(os.getenv("OMEGA_AUTO_EXECUTE_THRESHOLD", "0.85")),
            oracle_timeout_s=float(os.getenv("OMEGA_ORACLE_TIMEOUT_S", "60")),
            persist_timeout_s=float(os.getenv("OMEGA_PERSIST_TIMEOUT_S", "10")),
            exploration_rate=float(os.getenv("OMEGA_EXPLORATION_RATE", "0.1")),
            log_level=os.getenv("OMEGA_LOG_LEVEL", "INFO"),
            json_logs=_env_bool("OMEGA_JSON_LOGS", False),
            llm_model=os.getenv("LLM_MODEL", "gpt-4o-mini"),
            llm_base_url=os.getenv("LLM_BASE_URL"),
            llm_api_key=os.getenv("OPENAI_API_KEY"),
            database_url=os.getenv("DATABASE_URL"),
        )
