"""
Configuration and settings for the storefront backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)
    environment: str = Field(default="development")

    # Session issuance
    secret_key: Optional[str] = Field(default=None)
    jwt_algorithm: str = Field(default="HS256")
    session_ttl_days: int = Field(default=3, ge=1)
    csrf_header_name: str = Field(default="X-CSRF-Token")

    # Optimistic concurrency for store sub-resources
    mutation_max_attempts: int = Field(default=5, ge=1)
    mutation_retry_backoff_seconds: float = Field(default=0.01, ge=0.0)

    @property
    def cookie_secure(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_ttl_days * 24 * 60 * 60


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
