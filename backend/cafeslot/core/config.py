# backend/cafeslot/core/config.py
import logging
import os
from pathlib import Path
from typing import Set

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

import pytz


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


PROD_SITE_MODES: Set[str] = {"prod", "production", "live"}


def _default_environment() -> str:
    mode = (os.getenv("SITE_MODE", "local") or "").strip().lower()
    return "production" if mode in PROD_SITE_MODES else "development"


if os.getenv("CI"):
    _DEFAULT_SECRET_KEY: SecretStr = SecretStr("ci-test-secret-key-not-for-production")
else:
    _DEFAULT_SECRET_KEY = SecretStr("local-dev-secret-key-change-me")


class Settings(BaseSettings):
    # JWT verification for principals issued by the identity service
    secret_key: SecretStr = Field(
        default=_DEFAULT_SECRET_KEY,
        description="Secret key used to verify principal JWTs",
    )
    algorithm: str = "HS256"

    environment: str = Field(default_factory=_default_environment)
    is_testing: bool = False  # Set to True when running tests
    log_level: str = Field(default="INFO", description="Root log level for API and workers")

    # Database
    database_url: str = Field(
        default="sqlite:///./cafeslot.db",
        description="SQLAlchemy URL for the reservation store",
    )
    test_database_url: str = Field(
        default="sqlite:///./cafeslot_test.db",
        description="Database used by the test suite",
    )
    database_pool_size: int = 5
    database_max_overflow: int = 5

    # Redis (slot locks + Celery broker)
    redis_url: str = "redis://localhost:6379"
    lock_namespace: str = Field(default="cafeslot", description="Prefix for Redis lock keys")
    slot_lock_enabled: bool = Field(
        default=True,
        description="Use Redis for cross-process slot locks (process-local lock is always held)",
    )
    slot_lock_ttl_seconds: int = Field(default=30, ge=1)
    slot_lock_wait_seconds: float = Field(
        default=5.0, ge=0, description="How long create/confirm waits for a busy slot lock"
    )

    # Scheduling policy
    default_venue_timezone: str = Field(
        default="Asia/Kolkata", description="Timezone applied to venues without their own"
    )
    cancellation_grace_minutes: int = Field(
        default=15, ge=0, description="Same-day cancellation allowed until start + grace"
    )
    permanent_cancel_after_minutes: int = Field(
        default=10, ge=0, description="Cancelled reservations older than this become permanent"
    )
    reconciliation_interval_seconds: int = Field(
        default=60, ge=1, description="Period of the session reconciliation beat task"
    )
    verification_code_length: int = Field(default=6, ge=4, le=10)

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("default_venue_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return (value or "INFO").upper()

    @property
    def is_sqlite(self) -> bool:
        return self.get_database_url().startswith("sqlite")

    def get_database_url(self) -> str:
        """Get the appropriate database URL based on context."""
        if self.is_testing or is_running_tests():
            return self.test_database_url
        return self.database_url


settings = Settings()
