"""Ledger configuration from environment variables and .env file."""

import logging
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class DunningPolicy(str, Enum):
    """How the reconciler treats an invoice that was manually put in collections."""

    STICKY_UNTIL_PAID = "sticky_until_paid"
    """Keep DUNNING while paid < total; a full payment moves it to PAID."""

    STICKY = "sticky"
    """Never leave DUNNING automatically (same guard as CANCELLED)."""

    TRANSIENT = "transient"
    """Recompute DUNNING invoices like any other status."""


class LedgerSettings(BaseSettings):
    """Ledger configuration loaded from environment variables.

    Pydantic loads values from OS environment variables first, then from the
    .env file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = "sqlite:///./billing.db"
    log_level: str = "INFO"
    log_file: str = "logs/billing.log"

    # Calendar used for "is the due date in the past"
    business_timezone: str = "UTC"

    dunning_policy: DunningPolicy = DunningPolicy.STICKY_UNTIL_PAID

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown LOG_LEVEL: {value}")
        return level

    @field_validator("business_timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown BUSINESS_TIMEZONE: {value}") from e
        return value


_settings_instance: Optional[LedgerSettings] = None


def get_settings() -> LedgerSettings:
    """Get or create the settings instance.

    Lazy so that .env is read after the entry point had a chance to load it.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = LedgerSettings()
        logger.debug(
            "Loaded ledger settings: timezone=%s, dunning_policy=%s",
            _settings_instance.business_timezone,
            _settings_instance.dunning_policy.value,
        )
    return _settings_instance


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings_instance
    _settings_instance = None


__all__ = ["DunningPolicy", "LedgerSettings", "get_settings", "reset_settings"]
