"""Configuration management for the player voting service."""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Service configuration
    SERVICE_NAME: str = "player-vote"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Server configuration
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # PostgreSQL configuration
    DATABASE_URL: Optional[str] = None
    DATABASE_SSL: bool = False
    POSTGRES_POOL_MIN_SIZE: int = 1
    POSTGRES_POOL_MAX_SIZE: int = 10
    POSTGRES_COMMAND_TIMEOUT: float = 60

    # Admin
    ADMIN_PASSWORD: Optional[str] = None
    ADMIN_REQUIRE_AUTH: bool = False

    # Front-end and initial data
    STATIC_DIR: str = "public"
    SEED_PLAYERS: list[dict] = []

    # CORS settings
    CORS_ORIGINS: list = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list = ["*"]
    CORS_ALLOW_HEADERS: list = ["*"]

    @property
    def postgres_dsn(self) -> str:
        """Return the PostgreSQL connection string, refusing to run without one."""
        if not self.DATABASE_URL:
            raise ConfigurationError("DATABASE_URL is not set")
        return self.DATABASE_URL

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.DEBUG else self.LOG_LEVEL.upper()
