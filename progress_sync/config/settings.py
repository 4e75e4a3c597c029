from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Progress engine settings - only define what needs validation."""

    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # "development", "production"
    LOG_LEVEL: str = "INFO"

    # Remote progress store
    PROGRESS_API_URL: str = "http://localhost:7071/api"
    PROGRESS_FUNCTION_KEY: str | None = None  # Sent as x-functions-key when set
    PROGRESS_REQUEST_TIMEOUT: float = 15.0  # Seconds per remote call

    # Pause between sequential "start" calls when seeding a chapter
    PROGRESS_SEED_DELAY: float = 0.1

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="allow",
        case_sensitive=False,
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    if not settings.PROGRESS_API_URL:
        msg = "PROGRESS_API_URL environment variable is not set"
        raise ValueError(msg)
    return settings
