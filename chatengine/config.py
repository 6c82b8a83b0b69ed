"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - mock_error_rate is always within [0.0, 1.0]

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for all non-secret settings: the mock backend and a local
      SQLite file work out-of-the-box
"""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Durable local storage
    database_url: str = "sqlite+aiosqlite:///./chatengine.db"
    database_pool_size: int = 5
    database_max_overflow: int = 5
    snapshot_key: str = "llmchat:v1"

    # Completion backend
    completion_backend: Literal["mock", "anthropic"] = "mock"
    completion_model: str = "gpt-4o-mini"

    # Anthropic (only read when completion_backend == "anthropic")
    anthropic_api_key: str = "sk-ant-placeholder"
    anthropic_model: str = "claude-sonnet-4-5"
    anthropic_max_tokens: int = 4096
    anthropic_max_retries: int = 3
    anthropic_timeout_seconds: int = 120
    anthropic_base_delay_ms: int = 1000
    anthropic_max_delay_ms: int = 60_000

    # Conversation
    context_window_size: int = 8
    stream_chunk_size: int = 4
    stream_interval_min_ms: int = 20
    stream_interval_max_ms: int = 60

    # Mock backend
    mock_error_rate: float = 0.0
    mock_delay_min_ms: int = 300
    mock_delay_max_ms: int = 900

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("mock_error_rate", mode="before")
    @classmethod
    def clamp_error_rate(cls, v: object) -> float:
        """Unparsable rates fall back to 0, everything else is clamped to [0, 1]."""
        try:
            rate = float(v)
        except (TypeError, ValueError):
            return 0.0
        return max(0.0, min(1.0, rate))

    @field_validator("stream_chunk_size", "context_window_size")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
