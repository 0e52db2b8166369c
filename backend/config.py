"""
Module: config.py
Description: Application settings for the PiggyBank API.

Settings are read once at process start by load_settings() and handed to the
collaborators that need them (database engine, token service, AI service,
rate limiters, logging). Nothing else reads the environment directly.

Environment variables use the upper-case field name (JWT_SECRET,
OPENAI_API_KEY, ...); cors_origins is read from CORS_ORIGIN. Empty variables
are ignored.

Usage:
    settings = load_settings()
    app = create_app(settings)
"""

from decimal import Decimal
from typing import Annotated, Literal, Optional

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_DATABASE_URL = "sqlite:///./piggybank.db"
DEV_JWT_SECRET = "dev-only-secret-change-me-please-0123456789"


class Settings(BaseSettings):
    """Validated runtime configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "production", "test"] = "development"

    # Database
    database_url: str = DEFAULT_DATABASE_URL

    # JWT
    jwt_secret: str = Field(default=DEV_JWT_SECRET, min_length=32)
    jwt_algorithm: str = "HS256"
    jwt_expires_minutes: int = Field(default=60 * 24 * 7, gt=0)

    # CORS
    cors_origins: Annotated[list[str], NoDecode] = Field(
        default=["http://localhost:5173"],
        validation_alias=AliasChoices("CORS_ORIGIN", "cors_origins"),
    )

    # Rate limiting
    rate_limit_window_seconds: int = Field(default=900, gt=0)
    rate_limit_max_requests: int = Field(default=100, gt=0)
    chat_rate_limit_per_minute: int = Field(default=30, gt=0)

    # AI
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"

    # Logging
    log_level: Literal["error", "warning", "info", "debug"] = "info"
    log_dir: Optional[str] = "./logs"

    # Wallet
    wallet_starting_balance: Decimal = Field(default=Decimal("1000"), ge=0)
    wallet_default_currency: str = Field(default="USD", min_length=3, max_length=3)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, v):
        """Accept a comma separated string as well as a list."""
        if isinstance(v, str):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v

    @field_validator("openai_api_key", mode="before")
    @classmethod
    def strip_api_key(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            v = v.lower()
            return "warning" if v == "warn" else v
        return v

    @model_validator(mode="after")
    def require_secret_in_production(self):
        if self.is_production and self.jwt_secret == DEV_JWT_SECRET:
            raise ValueError("JWT_SECRET must be set in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def ai_configured(self) -> bool:
        return bool(self.openai_api_key)


def load_settings(env_file: Optional[str] = ".env", **overrides) -> Settings:
    """
    Build Settings from the process environment.

    Args:
        env_file: Optional dotenv file read as well (process variables win).
        **overrides: Explicit field values that take precedence over the environment.

    Returns:
        Settings: Validated configuration.

    Raises:
        pydantic.ValidationError: If any value is invalid, including the
            development JWT secret in production.
    """
    return Settings(_env_file=env_file, **overrides)
