"""Configuration for shopledger."""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    shopledger configuration.

    All settings can be overridden via SHOPLEDGER_-prefixed environment
    variables or a .env file.
    """

    # Storage
    STORE: Literal["memory", "json"] = Field(default="memory")
    DATA_DIR: Path = Field(default=Path("data"))

    # Ledger
    DEFAULT_BALANCE: Decimal = Field(default=Decimal("100.00"), ge=0)

    # Server
    HOST: str = Field(default="127.0.0.1")
    PORT: int = Field(default=3000, ge=1, le=65535)
    CORS_ORIGINS: str = Field(default="http://localhost:3000,http://127.0.0.1:3000")

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    LOG_JSON: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="SHOPLEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings."""
    return Settings()
