"""Ledger configuration from environment variables and .env file."""

import logging
from decimal import Decimal
from typing import Optional

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class LedgerSettings(BaseSettings):
    """Settings for the billing and allocation engine.

    Pydantic automatically loads values from:
    1. OS environment variables (at instantiation time)
    2. .env file in the working directory
    """

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./estate_ledger.db",
        description="Async SQLAlchemy connection string",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/ledger.log", description="Log file path")

    # Billing
    bill_due_days: int = Field(default=30, ge=0, description="Days from bill date to due date")
    anomaly_decrease_threshold: Decimal = Field(
        default=Decimal("0.30"),
        description="Relative reading decrease above which a meter swap is suspected",
    )
    anomaly_max_new_meter_reading: Decimal = Field(
        default=Decimal("100"),
        description="Readings below this value are plausible for a freshly installed meter",
    )
    special_condition_overrides_vacancy: bool = Field(
        default=True,
        description="Special-condition households get the reduced tier even when vacant",
    )

    # Reconciliation
    reconciliation_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        description="Largest balance discrepancy still reported as consistent",
    )


_settings_instance: Optional[LedgerSettings] = None


def get_settings() -> LedgerSettings:
    """Get or create the settings instance.

    Lazy-loaded so environment variables set before first use are honored.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = LedgerSettings()
        logger.debug("Loaded ledger settings (database_url=%s)", _settings_instance.database_url)
    return _settings_instance


def reset_settings() -> None:
    """Drop the cached settings instance (next get_settings() re-reads the environment)."""
    global _settings_instance
    _settings_instance = None


__all__ = ["LedgerSettings", "get_settings", "reset_settings"]
