# backend/slotwise/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).resolve().parents[2] / ".env"  # backend/.env
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


if os.getenv("CI"):
    _DEFAULT_SECRET_KEY = SecretStr("ci-test-secret-key-not-for-production")
else:
    _DEFAULT_SECRET_KEY = SecretStr("dev-secret-key-change-me")


class Settings(BaseSettings):
    environment: Literal["development", "test", "production"] = Field(
        default="development", description="Deployment environment"
    )
    log_level: str = Field(default="INFO", description="Root log level")

    # Database
    database_url: str = Field(
        default="sqlite+pysqlite:///./slotwise.db",
        description="SQLAlchemy database URL (PostgreSQL in production)",
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Auth (tokens are issued by the account service; we only verify them)
    secret_key: SecretStr = Field(
        default=_DEFAULT_SECRET_KEY,
        description="Secret key for JWT tokens",
    )
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 720  # 12 hours

    # Payments
    payment_gateway: Literal["stripe", "fake"] = Field(
        default="fake", description="Payment gateway implementation"
    )
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret key for backend API calls",
    )
    stripe_webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Signing secret for Stripe webhook events",
    )
    stripe_http_timeout_seconds: float = Field(
        default=8.0, description="Per-request network timeout for Stripe API calls"
    )
    stripe_max_network_retries: int = Field(
        default=1, description="Retries for transient Stripe network failures"
    )
    stripe_currency: str = Field(default="usd", description="Default currency for payments")
    platform_fee_percentage: float = Field(
        default=2.0, description="Platform fee percentage (2 = 2%)"
    )
    stripe_fee_percentage: float = Field(
        default=2.9, description="Processor fee percentage used for fee breakdowns"
    )
    stripe_fixed_fee_cents: int = Field(default=30, description="Processor fixed fee per charge")
    gateway_status_timeout_seconds: float = Field(
        default=10.0,
        description="Fallback timeout for capture status polls when the caller supplies none",
    )

    # Scheduling
    default_slot_step_minutes: int = Field(default=30, description="Slot granularity")
    default_business_day_start: str = Field(default="09:00", description="Opening time HH:MM")
    default_business_day_end: str = Field(default="17:00", description="Closing time HH:MM")

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("default_business_day_start", "default_business_day_end")
    @classmethod
    def _validate_hhmm(cls, v: str) -> str:
        try:
            hour, minute = v.split(":")
            if not (0 <= int(hour) <= 23 and 0 <= int(minute) <= 59):
                raise ValueError
        except ValueError:
            raise ValueError(f"Invalid time format: {v}. Expected HH:MM format.")
        return v

    @field_validator("default_slot_step_minutes")
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive number of minutes")
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
