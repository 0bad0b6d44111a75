"""Client configuration using pydantic-settings."""

import sys
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STORAGE_PATH = Path.home() / ".coder_chat" / "storage.json"

LOG_LEVELS = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "error": 40,
    "critical": 50,
}


class Settings(BaseSettings):
    """Client settings loaded from ``CODER_CHAT_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CODER_CHAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Completion service
    base_url: str = "http://localhost:8080"
    completion_path: str = "/v1/chat/completions"
    connect_timeout: float = 10.0

    # Only the most recent message is sent upstream by default
    history_window: int = 1

    # Local ledger
    storage_path: Path = DEFAULT_STORAGE_PATH

    log_level: str = "info"


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


def configure_logging(level: str = "info") -> None:
    """Set the minimum level structlog emits; logs go to stderr."""
    structlog.configure(
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        wrapper_class=structlog.make_filtering_bound_logger(
            LOG_LEVELS.get(level.lower(), 20)
        ),
    )
