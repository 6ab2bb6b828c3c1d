"""Application configuration loaded via pydantic settings."""

from typing import List
import secrets

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Strongly-typed application settings with environment overrides."""

    # Application
    APP_NAME: str = "CRM Backend"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Token signing. Access and refresh keys must differ.
    ACCESS_TOKEN_SECRET: str = secrets.token_urlsafe(32)
    REFRESH_TOKEN_SECRET: str = secrets.token_urlsafe(32)
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Refresh token transport / storage
    REFRESH_COOKIE_NAME: str = "refresh_token"
    REFRESH_COOKIE_PATH: str = "/api/v1/auth/refresh"
    REFRESH_TOKEN_STORE: str = "memory"  # "memory" | "sqlite"
    REVOKE_FAMILY_ON_MISMATCH: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./crm.sqlite"

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_LEVELS: str = "TRACE,ERROR,WARNING,INFO"
    LOG_FILE_PATH: str = "./logs/crm.log"

    class Config:
        """Configure environment file loading behavior."""

        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @model_validator(mode="after")
    def _distinct_signing_keys(self) -> "Settings":
        if self.ACCESS_TOKEN_SECRET == self.REFRESH_TOKEN_SECRET:
            raise ValueError(
                "ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be different"
            )
        if self.REFRESH_TOKEN_STORE not in ("memory", "sqlite"):
            raise ValueError("REFRESH_TOKEN_STORE must be 'memory' or 'sqlite'")
        return self

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return self.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60

    @property
    def secure_cookies(self) -> bool:
        """Cookies are marked Secure everywhere except local development."""
        return self.ENVIRONMENT.lower() not in ("development", "dev", "local")


settings = Settings()
