"""
Configuration management for the GitHub Stats Proxy.
Uses pydantic-settings to load from environment variables and .env file.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Optional - GitHub token for higher rate limits (5000 vs 60 req/hour)
    github_token: str | None = None

    # Upstream
    github_api_url: str = "https://api.github.com"
    user_agent: str = "GitHub-Stats-Proxy/2.0"
    request_timeout: float = 30.0

    # Cache configuration
    cache_ttl_seconds: int = 60 * 60 * 24 * 14  # Raw endpoints: 14 days
    stats_cache_ttl_seconds: int = 60 * 60 * 6  # Stats: 6 hours
    cache_max_entries: int = 1000
    cache_max_bytes: int = 50 * 1024 * 1024

    # Retry and batching
    max_retries: int = 2
    language_batch_size: int = 5
    language_batch_delay: float = 0.1  # Seconds between language batches

    # Server
    allowed_origins: str = "http://localhost:3000"
    environment: str = "development"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3001

    @field_validator("github_token")
    @classmethod
    def drop_placeholder_token(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        # Empty or masked ("****") tokens mean no credential
        if not v or set(v) == {"*"}:
            return None
        return v

    @property
    def origins(self) -> list[str]:
        """CORS allow-list parsed from the comma-separated ALLOWED_ORIGINS."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


# Global settings instance - imported by other modules
settings = Settings()
