"""
Command Catalog Configuration

Uses pydantic-settings to load configuration from environment variables and .env file.
All settings are validated on application startup.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or a .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Database
    # =========================================================================
    DATABASE_URL: str = "sqlite:///./commands.db"

    # =========================================================================
    # Embedding provider (OpenAI-compatible endpoint, Ollama by default)
    # =========================================================================
    EMBEDDING_BASE_URL: str = "http://localhost:11434/v1"
    EMBEDDING_API_KEY: str = "ollama"  # Ollama ignores the key but the client requires one
    EMBEDDING_MODEL: str = "nomic-embed-text"
    EMBEDDING_DIMENSIONS: Optional[int] = None  # None accepts whatever the provider returns
    EMBEDDING_BATCH_SIZE: int = 32
    EMBEDDING_TIMEOUT_SECONDS: float = 30.0
    EMBEDDING_MAX_RETRIES: int = 0  # callers decide whether to retry

    # =========================================================================
    # Hybrid search
    # =========================================================================
    KEYWORD_MIN_LENGTH: int = 3
    SEARCH_CANDIDATE_LIMIT: int = 100
    SEARCH_DEFAULT_LIMIT: int = 5
    SEARCH_MAX_LIMIT: int = 50
    SEARCH_SIMILARITY_THRESHOLD: float = 0.3
    ADVANCED_SEARCH_OVERFETCH: int = 2

    # =========================================================================
    # Embedding maintenance
    # =========================================================================
    REBUILD_WORKERS: int = 1  # 1 = sequential full-corpus rebuild

    # =========================================================================
    # Application
    # =========================================================================
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: Optional[str] = None  # Optional - disabled if not set


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Export singleton instance for convenience
settings = get_settings()
