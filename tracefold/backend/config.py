"""
backend/config.py

Application configuration via Pydantic Settings.
All values can be overridden with environment variables or a .env file.

Quick start — create a .env file in your project root:
    INPUT_PATH=/var/log/app/app.log
    OUTPUT_PATH=/var/log/app/combined.log
    CORRELATION_FIELD=traceId
    MAX_GROUPS=5000
"""

from __future__ import annotations

from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Input / output
    INPUT_PATH: str = ""          # "-" = stdin, "" = HTTP ingest only
    FOLLOW: bool = True
    START_AT_END: bool = False
    OUTPUT_PATH: str = "-"        # "-" = stdout

    # Record schema
    CORRELATION_FIELD: str = "traceId"
    MESSAGE_FIELD: str = "message"
    STATUS_FIELDS: Annotated[list[str], NoDecode] = ["method", "path", "status", "latencyMs"]
    COMPLETION_MARKER: str = "request completed"

    # Buffer bounds
    MAX_GROUPS: int = 1_000
    SWEEP_INTERVAL_RECORDS: int = 100
    STALE_TIMEOUT_SECONDS: float = 30

    # Queues
    INPUT_QUEUE_SIZE: int = 10_000
    OUTPUT_QUEUE_SIZE: int = 1_000

    # API
    API_ENABLED: bool = True
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Logging
    STATS_INTERVAL_SECONDS: float = 10.0
    LOG_LEVEL: str = "INFO"

    @field_validator("STATUS_FIELDS", mode="before")
    @classmethod
    def parse_status_fields(cls, v):
        if isinstance(v, str):
            import json as _json
            v = v.strip()
            if v.startswith("["):
                try:
                    return _json.loads(v)
                except ValueError:
                    pass
            return [f.strip() for f in v.split(",") if f.strip()]
        return v

    @field_validator(
        "MAX_GROUPS",
        "SWEEP_INTERVAL_RECORDS",
        "INPUT_QUEUE_SIZE",
        "OUTPUT_QUEUE_SIZE",
        "STALE_TIMEOUT_SECONDS",
        "STATS_INTERVAL_SECONDS",
    )
    @classmethod
    def must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("CORRELATION_FIELD", "MESSAGE_FIELD", "COMPLETION_MARKER")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("must not be empty")
        return v


_settings: Settings | None = None


def get_settings() -> Settings:
    """Build Settings on first use so import never fails on a bad environment."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Forget the built Settings; the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
