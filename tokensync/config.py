"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All deployment-specific values come from environment variables or .env
    - get_settings() is cached (lru_cache) — single instance per process
    - local_account_id is positive: it is the receiver id of unencrypted registrations

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for everything except the account identity
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

from tokensync.core.domain_types import MAX_ACCOUNT_ID, MAX_OTHER_ACCOUNT_IDS


def normalize_database_url(url: str) -> str:
    """Hosted Postgres hands out postgresql:// but asyncpg needs postgresql+asyncpg://."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database (durable key-value store)
    database_url: str = "sqlite+aiosqlite:///./tokensync.db"

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        return normalize_database_url(v) if isinstance(v, str) else v

    database_pool_size: int = 5
    database_max_overflow: int = 5
    storage_retry_base_delay_ms: int = 200
    storage_retry_max_delay_ms: int = 30_000

    # Push server
    push_server_url: str = "http://localhost:8081"
    push_server_timeout_seconds: float = 30
    push_max_retries: int = 3
    push_base_delay_ms: int = 1000
    push_max_delay_ms: int = 60_000

    # Account
    local_account_id: int = Field(gt=0, le=MAX_ACCOUNT_ID)
    max_other_account_ids: int = Field(
        MAX_OTHER_ACCOUNT_IDS, ge=0, le=MAX_OTHER_ACCOUNT_IDS,
    )

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
