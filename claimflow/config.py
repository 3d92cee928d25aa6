"""Runtime configuration: env-driven via pydantic-settings.

Reads from a ``.env`` file and ``CLAIMFLOW_*`` environment variables.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export CLAIMFLOW_ENVIRONMENT=production
        export CLAIMFLOW_STORAGE_BACKEND=sqlite
        export CLAIMFLOW_MASTER_KEY_B64=$(claimflow keygen)

    Or via .env file::

        CLAIMFLOW_OPENROUTER_API_KEY=sk-or-...
        CLAIMFLOW_MAX_REVISION_ROUNDS=2
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CLAIMFLOW_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Storage: selected once at startup
    storage_backend: Literal["memory", "sqlite"] = "sqlite"
    sqlite_path: Path = Path(".claimflow/claims.db")

    # PII encryption (base64 of 32 random bytes)
    master_key_b64: str = ""

    # Agent invocation
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "google/gemini-2.0-flash-001"
    judge_model: str = "google/gemini-2.0-flash-001"
    vision_model: str = "google/gemini-2.0-flash-001"
    salvage_pct: float = 0.20
    agent_timeout_seconds: float = 120.0
    agent_max_tokens: int = 2000
    agent_temperature: float = 0.1
    agents_dir: Path = Path("agents")

    # Judge loop
    max_revision_rounds: int = 2

    # Run event streaming (~60s at 500ms)
    stream_poll_interval_seconds: float = 0.5
    stream_max_attempts: int = 120

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"


# Module-level singleton: import as `from claimflow.config import settings`
settings = Settings()
