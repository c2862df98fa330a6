"""Application configuration — loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from env vars (or ``.env`` file).

    Every variable carries the ``PAGE_CONTEXT_`` prefix, e.g.
    ``PAGE_CONTEXT_CACHE_TTL_SECONDS=10``.  The two scoring overrides are
    JSON objects, e.g. ``PAGE_CONTEXT_CATEGORY_SCORES='{"github": 80}'``.
    """

    model_config = SettingsConfigDict(
        env_prefix="PAGE_CONTEXT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Classifier
    cache_ttl_seconds: float = Field(default=5.0, gt=0)
    structural_timeout_seconds: float = Field(default=0.1, gt=0)
    breaker_threshold: int = Field(default=5, ge=1)
    breaker_window_seconds: float = Field(default=60.0, gt=0)
    capability_depth: int = Field(default=4, ge=1, le=8)

    # Extraction
    max_files: int = Field(default=50, ge=1)
    max_file_size: int = Field(default=100_000, ge=1)

    # Pipeline / recovery
    pipeline_deadline_seconds: float = Field(default=2.0, gt=0)
    retry_max_attempts: int = Field(default=2, ge=1)
    retry_base_delay: float = Field(default=0.1, ge=0)
    retry_max_delay: float = Field(default=0.5, ge=0)
    retry_stale_after_seconds: float = Field(default=300.0, gt=0)

    # Scoring policy overrides; empty means built-in defaults
    scoring_weights: dict[str, float] = Field(default_factory=dict)
    category_scores: dict[str, int] = Field(default_factory=dict)

    # Collaborators
    outcome_store_dir: str | None = None
    agent_url: str | None = None
    transport_timeout: float = Field(default=10.0, gt=0)
    telemetry_buffer: int = Field(default=200, ge=1)

    # Server
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton application settings (cached after first call)."""
    return Settings()
