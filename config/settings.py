"""Configuration management using pydantic-settings."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Memoizer settings loaded from environment variables."""

    # How long written entries are retained, independent of caller lifetimes
    garbage_lifetime_ms: int = 6 * 60 * 60 * 1000

    # Logging
    log_level: str = "INFO"

    class Config:
        env_prefix = "MEMOPAD_"
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
