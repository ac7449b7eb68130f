from __future__ import annotations

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from config import (
    DATABASE_URL as DEFAULT_DATABASE_URL,
    DB_MAX_OVERFLOW as DEFAULT_DB_MAX_OVERFLOW,
    DB_POOL_RECYCLE_SECONDS as DEFAULT_DB_POOL_RECYCLE_SECONDS,
    DB_POOL_SIZE as DEFAULT_DB_POOL_SIZE,
    FULLNODE_URL as DEFAULT_FULLNODE_URL,
    INDEXER_URL as DEFAULT_INDEXER_URL,
    JOB_STAGGER_SECONDS as DEFAULT_JOB_STAGGER_SECONDS,
    LOG_FILE_PATH as DEFAULT_LOG_FILE_PATH,
    LOG_LEVEL as DEFAULT_LOG_LEVEL,
    REQUEST_TIMEOUT_SECONDS as DEFAULT_REQUEST_TIMEOUT_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables (.env).

    Every field has a default from config.py so a bare environment yields a
    working local setup (SQLite database, public mainnet endpoints).
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Logging ---
    log_level: str = DEFAULT_LOG_LEVEL
    log_file_path: str = DEFAULT_LOG_FILE_PATH

    # --- Database ---
    database_url: str = DEFAULT_DATABASE_URL
    db_pool_size: int = DEFAULT_DB_POOL_SIZE
    db_max_overflow: int = DEFAULT_DB_MAX_OVERFLOW
    db_pool_recycle_seconds: int = DEFAULT_DB_POOL_RECYCLE_SECONDS

    # --- Ledger endpoints ---
    fullnode_url: str = DEFAULT_FULLNODE_URL
    indexer_url: str = DEFAULT_INDEXER_URL
    ledger_api_key: Optional[str] = None
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS

    # --- Scheduler ---
    job_stagger_seconds: int = DEFAULT_JOB_STAGGER_SECONDS


def load_settings() -> Settings:
    """Load and validate settings from environment variables (.env)."""
    return Settings()
