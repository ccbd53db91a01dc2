"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# HS256 needs at least a 256-bit key
MIN_SECRET_KEY_BYTES = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./userportal.db"

    # Token signing
    secret_key: str = "change-this-in-production-minimum-32-characters-long"
    token_issuer: str = "UserPortalAPI"
    token_audience: str = "UserPortalClient"
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 7

    # Password hashing cost (bcrypt log2 rounds)
    bcrypt_rounds: int = 12

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # API Settings
    api_v1_prefix: str = "/api/v1"
    project_name: str = "User Portal"
    version: str = "1.0.0"

    # Rate limiting
    rate_limit_auth_per_minute: int = 10   # per IP for login/register/refresh
    rate_limit_api_per_minute: int = 100   # per account or IP for general API
    rate_limit_enabled: bool = True
    # Only honour X-Forwarded-For when a trusted reverse proxy sets it
    trust_forwarded_for: bool = False

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        if len(v.encode("utf-8")) < MIN_SECRET_KEY_BYTES:
            raise ValueError(
                f"SECRET_KEY must be at least {MIN_SECRET_KEY_BYTES} bytes"
            )
        return v

    @field_validator("token_issuer", "token_audience")
    @classmethod
    def validate_token_party(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("TOKEN_ISSUER and TOKEN_AUDIENCE must be non-empty")
        return v.strip()

    @field_validator("access_token_expire_minutes")
    @classmethod
    def validate_access_lifetime(cls, v: int) -> int:
        if v < 1 or v > 1440:
            raise ValueError(
                "ACCESS_TOKEN_EXPIRE_MINUTES must be between 1 and 1440 (1 min to 1 day)"
            )
        return v

    @field_validator("refresh_token_expire_days")
    @classmethod
    def validate_refresh_lifetime(cls, v: int) -> int:
        if v < 1 or v > 90:
            raise ValueError("REFRESH_TOKEN_EXPIRE_DAYS must be between 1 and 90")
        return v

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, v: int) -> int:
        if v < 4 or v > 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
