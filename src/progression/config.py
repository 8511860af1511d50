"""Application settings via pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine configuration loaded from environment variables with PROG_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="PROG_",
        env_file=".env",
        case_sensitive=False,
    )

    # --- Core ---
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "json"

    # --- Backing store ---
    redis_url: str = "redis://localhost:6379/0"
    store_backend: str = "redis"  # "redis" | "memory"
    store_key_prefix: str = "default"  # tenant scope
    store_timeout_seconds: float = 5.0
    store_max_retries: int = 5

    # --- Gamification ---
    mentor_bonus_percent: int = 10
    achievement_catalog_path: str = ""

    # --- Maintenance ---
    sweep_lock_timeout_seconds: float = 300.0


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
