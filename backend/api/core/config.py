"""Application configuration using Pydantic Settings"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).parent.parent / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Overlay token signing
    overlay_secret: str = Field(..., description="HMAC secret for overlay capability tokens")
    token_ttl_seconds: int = Field(default=6 * 60 * 60, description="Default token lifetime")

    # Text generation provider (OpenAI-compatible)
    openai_api_key: str = Field(default="", description="Provider API key; empty disables generation")
    openai_base_url: str | None = Field(default=None, description="Override for OpenRouter etc.")
    openai_model: str = Field(default="gpt-4o-mini", description="Chat completion model")
    generation_timeout: float = Field(default=12.0, description="Per-attempt provider timeout (s)")
    generation_attempts: int = Field(default=3, description="Max provider attempts per task")

    # Anti-repetition / rate limiting
    rate_limit_per_minute: int = Field(default=20, description="Task requests per token per minute")
    recent_limit: int = Field(default=12, description="Recent lines fed to the prompt")
    recent_keep: int = Field(default=24, description="Recent lines kept per channel")
    recent_ttl_seconds: int = Field(default=12 * 60 * 60, description="Recency buffer TTL")

    # Event bus
    bus_log_size: int = Field(default=200, description="Events kept per channel log")
    bus_ttl_seconds: int = Field(default=24 * 60 * 60, description="Event log TTL")
    bus_replay_count: int = Field(default=2, description="Events replayed on subscribe")
    stream_keep_alive: float = Field(default=15.0, description="SSE keep-alive interval (s)")
    state_ttl_seconds: int = Field(default=24 * 60 * 60, description="Overlay state TTL")

    # Keyed store
    store_max_keys: int = Field(default=100_000, description="Max keys held by the in-process store")

    # Server URLs
    frontend_url: str = Field(default="http://localhost:3000", description="Frontend URL for CORS")

    # Environment
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper

    @field_validator("token_ttl_seconds")
    @classmethod
    def validate_token_ttl(cls, v: int) -> int:
        """Tokens shorter than a minute are useless for an overlay"""
        return max(60, v)

    @property
    def generation_enabled(self) -> bool:
        return bool(self.openai_api_key.strip())

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()  # type: ignore[call-arg]
