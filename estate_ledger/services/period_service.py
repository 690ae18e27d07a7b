"""Billing period service: ordering, previous-reading lookup and period administration."""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from estate_ledger.models.bill import WaterBill
from estate_ledger.models.period import Period
from estate_ledger.services.audit_service import AuditService
from estate_ledger.services.errors import DuplicateError

logger = logging.getLogger(__name__)


class PeriodIndex:
    """Orders billing periods by sequence number and answers "previous period" questions.

    Used by the water bill generator to compute usage and by bulk reading
    entry to preview previous readings.
    """

    def __init__(self, session: AsyncSession):
        """Initialize with async database session."""
        self.session = session

    async def get_by_id(self, period_id: int) -> Period | None:
        """Get period by ID.

        Args:
            period_id: Period ID to fetch

        Returns:
            Period if found, None otherwise
        """
        result = await self.session.execute(select(Period).where(Period.id == period_id))
        return result.scalar_one_or_none()

    async def ordered_periods(self) -> list[Period]:
        """All periods, most recent (highest sequence number) first."""
        result = await self.session.execute(
            select(Period).order_by(Period.sequence_number.desc())
        )
        return list(result.scalars().all())

    async def older_periods(self, period: Period) -> list[Period]:
        """Periods strictly older than the given one, nearest first.

        Returns an empty list when the period is not in the index.
        """
        periods = await self.ordered_periods()
        position = next((i for i, p in enumerate(periods) if p.id == period.id), None)
        if position is None:
            return []
        return periods[position + 1 :]

    async def previous_reading(self, household_id: int, period: Period) -> Decimal | None:
        """Find the household's meter reading from the nearest older period with data.

        Scans periods older than `period` (by sequence number) until one has a
        water billing record for the household and returns that record's
        current reading.

        Args:
            household_id: Household ID
            period: Period being billed

        Returns:
            Previous reading, or None when the household has no earlier record
            (callers treat that as "first billing", not as an error)
        """
        for older in await self.older_periods(period):
            result = await self.session.execute(
                select(WaterBill.current_reading)
                .where(
                    WaterBill.household_id == household_id,
                    WaterBill.period_id == older.id,
                )
                .limit(1)
            )
            reading = result.scalar_one_or_none()
            if reading is not None:
                return reading

        return None

    async def preview_previous_readings(
        self,
        household_ids: list[int],
        period: Period,
    ) -> dict[int, Decimal | None]:
        """Previous readings for bulk meter entry.

        Returns a dict mapping household_id -> previous reading (or None).
        """
        if not household_ids:
            return {}

        older = await self.older_periods(period)
        previous: dict[int, Decimal | None] = {hid: None for hid in household_ids}
        if not older:
            return previous

        rank = {p.id: i for i, p in enumerate(older)}
        result = await self.session.execute(
            select(WaterBill.household_id, WaterBill.period_id, WaterBill.current_reading).where(
                WaterBill.household_id.in_(household_ids),
                WaterBill.period_id.in_(list(rank)),
            )
        )

        best_rank: dict[int, int] = {}
        for household_id, period_id, reading in result.all():
            if reading is None:
                continue
            if household_id not in best_rank or rank[period_id] < best_rank[household_id]:
                best_rank[household_id] = rank[period_id]
                previous[household_id] = reading

        return previous

    async def next_sequence_number(self) -> int:
        """Sequence number for a new period appended after the latest one."""
        result = await self.session.execute(select(func.max(Period.sequence_number)))
        return int(result.scalar() or 0) + 1

    async def create_period(
        self,
        name: str,
        start_date: date,
        end_date: date,
        sequence_number: int | None = None,
        actor_id: int | None = None,
    ) -> Period:
        """Create a new billing period.

        Args:
            name: Display name (unique)
            start_date: Period start date
            end_date: Period end date
            sequence_number: Explicit order; defaults to after the latest period
            actor_id: Operator creating the period (optional)

        Returns:
            Created Period

        Raises:
            ValueError: If start_date is not before end_date
            DuplicateError: If name or sequence number is already used
        """
        if start_date >= end_date:
            raise ValueError("start_date must be before end_date")

        if sequence_number is None:
            sequence_number = await self.next_sequence_number()

        existing = await self.session.execute(
            select(Period.id).where(
                (Period.name == name) | (Period.sequence_number == sequence_number)
            )
        )
        if existing.first() is not None:
            raise DuplicateError(
                f"Period with name '{name}' or sequence number {sequence_number} already exists"
            )

        period = Period(
            name=name,
            start_date=start_date,
            end_date=end_date,
            sequence_number=sequence_number,
        )
        self.session.add(period)
        await self.session.flush()

        AuditService.log(
            self.session,
            "period",
            period.id,
            "create",
            actor_id,
            {"name": name, "sequence_number": sequence_number},
        )
        await self.session.commit()

        logger.info(
            "Created period: id=%d, name=%s, sequence=%d, dates=%s to %s",
            period.id,
            name,
            sequence_number,
            start_date,
            end_date,
        )
        return period


__all__ = ["PeriodIndex"]
