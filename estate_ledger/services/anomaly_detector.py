"""Meter replacement detection for water readings."""

import logging
from decimal import Decimal
from typing import NamedTuple

from estate_ledger.config import LedgerSettings, get_settings

logger = logging.getLogger(__name__)


class AnomalyCheck(NamedTuple):
    """Outcome of comparing a current reading with the previous one."""

    is_replacement: bool
    usage: Decimal
    relative_decrease: Decimal


class MeterAnomalyDetector:
    """Flags readings that look like a freshly installed meter.

    A reading that dropped by more than the decrease threshold (30%) and is
    below the new-meter ceiling (100) is taken as a meter swap: the new meter
    is assumed to have started at zero, so usage equals the current reading.
    Heuristic only; thresholds come from settings.
    """

    def __init__(self, settings: LedgerSettings | None = None):
        settings = settings or get_settings()
        self.decrease_threshold = Decimal(str(settings.anomaly_decrease_threshold))
        self.max_new_meter_reading = Decimal(str(settings.anomaly_max_new_meter_reading))

    @staticmethod
    def relative_decrease(previous: Decimal, current: Decimal) -> Decimal:
        """(previous - current) / previous; zero when there is nothing to compare against."""
        if previous <= 0:
            return Decimal("0")
        return (previous - current) / previous

    def detect(self, previous: Decimal, current: Decimal) -> AnomalyCheck:
        """Compare readings and compute the usage to bill.

        Args:
            previous: Reading from the nearest older period
            current: Reading for the period being billed

        Returns:
            AnomalyCheck; usage is current - previous unless a replacement
            was detected (may be negative for a plain decrease, callers clamp)

        Raises:
            ValueError: If either reading is negative
        """
        previous = Decimal(str(previous))
        current = Decimal(str(current))
        if previous < 0 or current < 0:
            raise ValueError(f"Meter readings cannot be negative: {previous} -> {current}")

        decrease = self.relative_decrease(previous, current)

        if decrease > self.decrease_threshold and current < self.max_new_meter_reading:
            logger.warning("Meter discontinuity detected: %s -> %s", previous, current)
            return AnomalyCheck(True, current, decrease)

        return AnomalyCheck(False, current - previous, decrease)

    @staticmethod
    def note_for(previous: Decimal, current: Decimal) -> str:
        """Annotation stored on a bill whose usage came from a meter replacement."""
        return f"Meter replacement handled. Previous: {previous}, Current: {current}"


__all__ = ["AnomalyCheck", "MeterAnomalyDetector"]
