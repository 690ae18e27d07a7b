"""Unit tests for meter replacement detection."""

from decimal import Decimal

import pytest

from estate_ledger.config import LedgerSettings
from estate_ledger.services.anomaly_detector import MeterAnomalyDetector


class TestMeterAnomalyDetector:
    """Test replacement heuristic and usage computation."""

    @pytest.fixture
    def detector(self, ledger_settings):
        return MeterAnomalyDetector(ledger_settings)

    def test_replacement_uses_current_reading_as_usage(self, detector):
        check = detector.detect(Decimal("1000"), Decimal("20"))

        assert check.is_replacement is True
        assert check.usage == Decimal("20")
        assert check.relative_decrease == Decimal("0.98")

    def test_normal_increase(self, detector):
        check = detector.detect(Decimal("1000"), Decimal("1025"))

        assert check.is_replacement is False
        assert check.usage == Decimal("25")

    def test_small_decrease_is_not_replacement(self, detector):
        """A 10% drop stays below the threshold; usage is left negative for callers."""
        check = detector.detect(Decimal("100"), Decimal("90"))

        assert check.is_replacement is False
        assert check.usage == Decimal("-10")

    def test_large_drop_above_new_meter_ceiling_is_not_replacement(self, detector):
        check = detector.detect(Decimal("5000"), Decimal("150"))

        assert check.is_replacement is False
        assert check.usage == Decimal("-4850")

    def test_zero_previous_never_flags(self, detector):
        check = detector.detect(Decimal("0"), Decimal("10"))

        assert check.is_replacement is False
        assert check.relative_decrease == Decimal("0")
        assert check.usage == Decimal("10")

    def test_negative_reading_rejected(self, detector):
        """-5 after 100 would otherwise look like a meter swap with negative usage."""
        with pytest.raises(ValueError):
            detector.detect(Decimal("100"), Decimal("-5"))

        with pytest.raises(ValueError):
            detector.detect(Decimal("-1"), Decimal("10"))

    def test_thresholds_come_from_settings(self):
        settings = LedgerSettings(
            _env_file=None,
            anomaly_decrease_threshold=Decimal("0.90"),
            anomaly_max_new_meter_reading=Decimal("50"),
        )
        detector = MeterAnomalyDetector(settings)

        # 50% drop: replacement under defaults, not with a 90% threshold
        assert detector.detect(Decimal("60"), Decimal("30")).is_replacement is False
        assert detector.detect(Decimal("1000"), Decimal("20")).is_replacement is True

    def test_note_for(self):
        note = MeterAnomalyDetector.note_for(Decimal("1000"), Decimal("20"))

        assert note == "Meter replacement handled. Previous: 1000, Current: 20"
