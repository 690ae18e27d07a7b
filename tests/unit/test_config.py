"""Unit tests for configuration loading."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from estate_ledger.config import LedgerSettings, get_settings, reset_settings


class TestLedgerSettings:
    """Tests for LedgerSettings defaults and environment overrides."""

    def test_defaults(self, ledger_settings):
        assert ledger_settings.database_url == "sqlite+aiosqlite:///./estate_ledger.db"
        assert ledger_settings.bill_due_days == 30
        assert ledger_settings.anomaly_decrease_threshold == Decimal("0.30")
        assert ledger_settings.anomaly_max_new_meter_reading == Decimal("100")
        assert ledger_settings.reconciliation_tolerance == Decimal("0.01")
        assert ledger_settings.special_condition_overrides_vacancy is True

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("BILL_DUE_DAYS", "14")
        monkeypatch.setenv("ANOMALY_DECREASE_THRESHOLD", "0.5")
        monkeypatch.setenv("SPECIAL_CONDITION_OVERRIDES_VACANCY", "false")

        settings = LedgerSettings(_env_file=None)

        assert settings.bill_due_days == 14
        assert settings.anomaly_decrease_threshold == Decimal("0.5")
        assert settings.special_condition_overrides_vacancy is False

    def test_env_file_is_read(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("DATABASE_URL=sqlite+aiosqlite:///./other.db\nLOG_LEVEL=DEBUG\n")

        settings = LedgerSettings(_env_file=str(env_file))

        assert settings.database_url == "sqlite+aiosqlite:///./other.db"
        assert settings.log_level == "DEBUG"

    def test_negative_due_days_rejected(self, monkeypatch):
        monkeypatch.setenv("BILL_DUE_DAYS", "-1")

        with pytest.raises(ValidationError):
            LedgerSettings(_env_file=None)


def test_get_settings_is_cached_until_reset(monkeypatch):
    first = get_settings()
    assert get_settings() is first

    monkeypatch.setenv("BILL_DUE_DAYS", "7")
    reset_settings()

    assert get_settings().bill_due_days == 7
