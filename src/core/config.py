"""Application configuration using pydantic-settings."""
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database (system of record)
    database_url: str
    db_pool_size: int = Field(default=10, validation_alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")
    store_timeout_seconds: float = Field(default=5.0, validation_alias="STORE_TIMEOUT_SECONDS")

    # Redis - user cache and session registry
    redis_url: str = Field(default="redis://localhost:6379", validation_alias="REDIS_URL")
    redis_enabled: bool = Field(default=True, validation_alias="REDIS_ENABLED")
    redis_pool_size: int = Field(default=20, validation_alias="REDIS_POOL_SIZE")
    redis_timeout_seconds: float = Field(default=0.5, validation_alias="REDIS_TIMEOUT_SECONDS")

    # Staleness bounds. Minutes, not hours: a missed invalidation self-heals on expiry.
    user_cache_ttl_seconds: int = Field(default=300, validation_alias="USER_CACHE_TTL_SECONDS")
    session_ttl_seconds: int = Field(default=86_400, validation_alias="SESSION_TTL_SECONDS")

    # Probe the store for existence on every non-sensitive cache hit
    verify_cache_hits: bool = Field(default=True, validation_alias="VERIFY_CACHE_HITS")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @model_validator(mode="after")
    def validate_positive_bounds(self) -> "Settings":
        """Reject TTLs and timeouts that would disable expiry or hang forever."""
        bounds = {
            "store_timeout_seconds": self.store_timeout_seconds,
            "redis_timeout_seconds": self.redis_timeout_seconds,
            "user_cache_ttl_seconds": self.user_cache_ttl_seconds,
            "session_ttl_seconds": self.session_ttl_seconds,
        }
        for name, value in bounds.items():
            if value <= 0:
                raise ValueError(f"{name} must be positive (got {value})")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
