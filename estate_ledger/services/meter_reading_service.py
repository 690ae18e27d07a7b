"""Service for water meter readings and usage calculation."""

from decimal import Decimal
from enum import Enum
from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from estate_ledger.models.bill import WaterBill
from estate_ledger.models.period import Period
from estate_ledger.services.anomaly_detector import MeterAnomalyDetector
from estate_ledger.services.period_service import PeriodIndex


class UsageSource(str, Enum):
    """How the billed usage was derived."""

    NORMAL = "normal"
    METER_REPLACEMENT = "meter_replacement"
    CLAMPED = "clamped"


class UsageCalculation(NamedTuple):
    """Usage to bill for one household in one period."""

    previous_reading: Decimal
    current_reading: Decimal
    usage: Decimal
    source: UsageSource

    @property
    def is_replacement(self) -> bool:
        return self.source == UsageSource.METER_REPLACEMENT


class MeterReadingService:
    """Service for reading history and usage calculation.

    Readings live on the water billing records themselves; the "last reading"
    of a household is the current reading of its most recent record.
    """

    def __init__(
        self,
        session: AsyncSession,
        period_index: PeriodIndex | None = None,
        anomaly_detector: MeterAnomalyDetector | None = None,
    ) -> None:
        """Initialize service with database session and collaborators.

        Args:
            session: SQLAlchemy async session
            period_index: Period ordering service (built from session if omitted)
            anomaly_detector: Meter replacement detector (default thresholds if omitted)
        """
        self.session = session
        self.period_index = period_index or PeriodIndex(session)
        self.anomaly_detector = anomaly_detector or MeterAnomalyDetector()

    async def has_billing_history(self, household_id: int) -> bool:
        """Whether any water billing record exists for the household."""
        result = await self.session.execute(
            select(WaterBill.id).where(WaterBill.household_id == household_id).limit(1)
        )
        return result.first() is not None

    async def get_last_reading(self, household_id: int) -> WaterBill | None:
        """Get the household's water record from the most recent period.

        Args:
            household_id: Household ID

        Returns:
            Latest WaterBill (by period sequence) or None if no readings exist
        """
        stmt = (
            select(WaterBill)
            .join(Period, Period.id == WaterBill.period_id)
            .where(WaterBill.household_id == household_id)
            .order_by(Period.sequence_number.desc(), WaterBill.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def calculate_usage(
        self,
        household_id: int,
        period: Period,
        current_reading: Decimal,
    ) -> UsageCalculation | None:
        """Calculate usage for a bill from the previous period's reading.

        Meter replacements are delegated to the anomaly detector. Any other
        decrease is clamped to zero usage.

        Args:
            household_id: Household ID
            period: Period being billed
            current_reading: Reading entered for the period

        Returns:
            UsageCalculation, or None when no previous reading exists

        Raises:
            ValueError: If the current reading is negative
        """
        previous = await self.period_index.previous_reading(household_id, period)
        if previous is None:
            return None

        current = Decimal(str(current_reading))
        check = self.anomaly_detector.detect(previous, current)

        if check.is_replacement:
            return UsageCalculation(previous, current, check.usage, UsageSource.METER_REPLACEMENT)

        if check.usage < 0:
            return UsageCalculation(previous, current, Decimal("0"), UsageSource.CLAMPED)

        return UsageCalculation(previous, current, check.usage, UsageSource.NORMAL)


__all__ = ["MeterReadingService", "UsageCalculation", "UsageSource"]
