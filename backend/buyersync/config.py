"""Application configuration using Pydantic settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./buyersync.db"

    # Proxy and upstream finance API
    proxy_url: str = "https://us-central1-example.cloudfunctions.net/usersProxy"
    finance_endpoint: str = "https://accounts.example.com/api/finance/buyers"
    finance_token: str | None = None  # Sync is disabled until a token is set
    page_size_param: str = "pagination[perpage]"  # or "pagination[pageSize]"
    sync_sort: str = "id:asc"
    proxy_timeout_seconds: float = 30.0

    # Sync settings
    sync_page_size: int = 1000
    sync_max_retries: int = 3
    sync_backoff_seconds: float = 1.5
    sync_max_pages: int | None = 500
    auto_sync_on_startup: bool = True
    resync_interval_minutes: int = 0  # 0 disables periodic re-sync

    # API settings
    api_v1_prefix: str = "/api/v1"
    cors_origins: list[str] = ["*"]  # Restrict in production
    rate_limit_per_minute: int = 10

    # Environment
    debug: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
