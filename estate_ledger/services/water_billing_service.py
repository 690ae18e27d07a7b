"""Water bill generation from periodic meter readings."""

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, NamedTuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from estate_ledger.config import LedgerSettings, get_settings
from estate_ledger.models.bill import BillStatus, WaterBill, WaterBillClassification
from estate_ledger.models.household import Household
from estate_ledger.models.period import Period
from estate_ledger.services.audit_service import AuditService
from estate_ledger.services.billing import (
    ZERO,
    BillOutcome,
    GenerationResult,
    OutcomeKind,
    SkipReason,
    attributed_resident_id,
    bill_exists,
    derive_status,
    due_date_for,
    outstanding_bills,
    to_money,
)
from estate_ledger.services.errors import LedgerError, NotFoundError
from estate_ledger.services.meter_reading_service import (
    MeterReadingService,
    UsageCalculation,
    UsageSource,
)
from estate_ledger.services.tariff_service import ResolutionSource, TariffResolver

logger = logging.getLogger(__name__)


class MeterReadingInput(NamedTuple):
    """Reading entered for one household (single or bulk entry)."""

    household_id: int
    current_reading: Decimal


class WaterBillGenerator:
    """Produces one water billing record per household per period.

    Per household:
    1. Not a water customer, record already exists for the period, or a
       negative reading -> skipped
    2. No billing history, or an explicit initiation run -> zero-amount
       baseline record; billing starts next period
    3. History but no previous reading -> skipped (needs an operator)
    4. Otherwise usage x water rate (meter swaps handled by the anomaly detector)

    Every household is its own unit of work: it is committed on success and
    rolled back alone on failure.
    """

    def __init__(
        self,
        session: AsyncSession,
        tariff_resolver: TariffResolver | None = None,
        reading_service: MeterReadingService | None = None,
        settings: LedgerSettings | None = None,
    ):
        """Initialize with async database session and collaborators."""
        self.session = session
        self.settings = settings or get_settings()
        self.tariff_resolver = tariff_resolver or TariffResolver(session)
        self.reading_service = reading_service or MeterReadingService(session)

    async def generate(
        self,
        period_id: int,
        readings: Iterable[MeterReadingInput],
        *,
        is_initiation: bool = False,
        bill_date: date | None = None,
        actor_id: int | None = None,
    ) -> GenerationResult:
        """Generate water billing records for a period.

        Args:
            period_id: Period being billed
            readings: Current meter readings per household
            is_initiation: Record every reading as a zero-amount initial
                baseline, even for households with billing history
            bill_date: Bill date (default: today)
            actor_id: Operator running the generation (for audit)

        Returns:
            GenerationResult with one outcome per reading
        """
        period = await self.reading_service.period_index.get_by_id(period_id)
        if period is None:
            return GenerationResult(success=False, message=f"Period {period_id} not found")

        bill_date = bill_date or date.today()
        result = GenerationResult(success=True)

        for reading in readings:
            try:
                outcome = await self._bill_household(
                    period, reading, is_initiation, bill_date, actor_id
                )
                await self.session.commit()
            except (SQLAlchemyError, LedgerError, ValueError) as e:
                await self.session.rollback()
                logger.exception(
                    "Water billing failed for household %d in period %d",
                    reading.household_id,
                    period_id,
                )
                outcome = BillOutcome(
                    household_id=reading.household_id,
                    kind=OutcomeKind.ERROR,
                    message=f"Record creation failed: {e}",
                )
                # Rollback expires loaded instances; reload the period
                period = await self.reading_service.period_index.get_by_id(period_id)

            result.outcomes.append(outcome)

        result.message = f"Water billing for {period.name}: {result.summary()}"
        logger.info(result.message)
        return result

    async def _bill_household(
        self,
        period: Period,
        reading: MeterReadingInput,
        is_initiation: bool,
        bill_date: date,
        actor_id: int | None,
    ) -> BillOutcome:
        household = await self.session.get(Household, reading.household_id)
        if household is None:
            return BillOutcome(
                household_id=reading.household_id,
                kind=OutcomeKind.SKIPPED,
                message=f"Household {reading.household_id} not found",
                reason=SkipReason.HOUSEHOLD_NOT_FOUND,
            )

        if not household.is_water_customer:
            return self._skipped(
                household,
                SkipReason.NOT_WATER_CUSTOMER,
                f"{household.unit_label} is not a water customer",
            )

        if await bill_exists(self.session, WaterBill, household.id, period.id):
            return self._skipped(
                household,
                SkipReason.DUPLICATE,
                f"Bill already exists for {household.unit_label} in period {period.name}",
            )

        current = Decimal(str(reading.current_reading))
        if current < 0:
            return self._skipped(
                household,
                SkipReason.INVALID_READING,
                f"Meter reading {current} for {household.unit_label} is negative",
            )

        resident_id = await attributed_resident_id(self.session, WaterBill, household)

        has_history = await self.reading_service.has_billing_history(household.id)
        if not has_history or is_initiation:
            bill = await self._create_baseline(
                period, household, current, resident_id, is_initiation, bill_date, actor_id
            )
            return BillOutcome(
                household_id=household.id,
                unit_label=household.unit_label,
                kind=OutcomeKind.BASELINE,
                bill_id=bill.id,
                message=f"Baseline recorded: {current}m³ - billing starts next period",
            )

        usage = await self.reading_service.calculate_usage(household.id, period, current)
        if usage is None:
            return self._skipped(
                household,
                SkipReason.NO_PREVIOUS_READING,
                f"No previous reading found for {household.unit_label} - contact admin",
            )

        try:
            resolution = await self.tariff_resolver.resolve_water(period.start_date)
        except NotFoundError:
            return self._skipped(
                household,
                SkipReason.TARIFF_NOT_FOUND,
                f"No water tariff found for period {period.name}",
            )

        rate = resolution.tariff.rate_per_unit
        amount = to_money(usage.usage * rate)
        note = self._note_for(usage)
        if resolution.source == ResolutionSource.LATEST_ACTIVE:
            fallback = f"Tariff from {resolution.tariff.effective_from.isoformat()} applied"
            note = f"{note}. {fallback}" if note else fallback

        bill = WaterBill(
            household_id=household.id,
            period_id=period.id,
            resident_id=resident_id,
            current_reading=usage.current_reading,
            previous_reading=usage.previous_reading,
            usage=usage.usage,
            is_meter_replacement=usage.is_replacement,
            rate=rate,
            nominal_amount=amount,
            amount_paid=ZERO,
            amount_remaining=amount,
            status=derive_status(ZERO, amount),
            classification=WaterBillClassification.AUTOMATIC,
            bill_date=bill_date,
            due_date=due_date_for(bill_date, self.settings.bill_due_days),
            note=note,
        )
        self.session.add(bill)
        await self.session.flush()

        AuditService.log(
            self.session,
            "water_bill",
            bill.id,
            "create",
            actor_id,
            {
                "household_id": household.id,
                "period_id": period.id,
                "previous_reading": str(usage.previous_reading),
                "current_reading": str(usage.current_reading),
                "usage": str(usage.usage),
                "source": usage.source.value,
                "amount": float(amount),
            },
        )
        logger.debug(
            "Water bill %d for %s: %s m³ x %s = %s",
            bill.id,
            household.unit_label,
            usage.usage,
            rate,
            amount,
        )

        return BillOutcome(
            household_id=household.id,
            unit_label=household.unit_label,
            kind=OutcomeKind.BILL,
            bill_id=bill.id,
            message=f"Bill created: {usage.usage}m³ = {amount}",
        )

    async def _create_baseline(
        self,
        period: Period,
        household: Household,
        current: Decimal,
        resident_id: int | None,
        is_initiation: bool,
        bill_date: date,
        actor_id: int | None,
    ) -> WaterBill:
        classification = (
            WaterBillClassification.INITIAL if is_initiation else WaterBillClassification.BASELINE
        )
        bill = WaterBill(
            household_id=household.id,
            period_id=period.id,
            resident_id=resident_id,
            current_reading=current,
            previous_reading=current,
            usage=ZERO,
            is_meter_replacement=False,
            rate=ZERO,
            nominal_amount=ZERO,
            amount_paid=ZERO,
            amount_remaining=ZERO,
            status=BillStatus.PAID,
            classification=classification,
            bill_date=bill_date,
            due_date=None,
            note=(
                "Initial reading recorded - billing restarts next period"
                if is_initiation
                else "First meter reading - billing starts next period"
            ),
        )
        self.session.add(bill)
        await self.session.flush()

        AuditService.log(
            self.session,
            "water_bill",
            bill.id,
            "create",
            actor_id,
            {
                "household_id": household.id,
                "period_id": period.id,
                "current_reading": str(current),
                "classification": classification.value,
            },
        )
        return bill

    def _note_for(self, usage: UsageCalculation) -> str | None:
        if usage.source == UsageSource.METER_REPLACEMENT:
            return self.reading_service.anomaly_detector.note_for(
                usage.previous_reading, usage.current_reading
            )
        if usage.source == UsageSource.CLAMPED:
            return (
                f"Reading decreased without meter replacement; usage set to 0. "
                f"Previous: {usage.previous_reading}, Current: {usage.current_reading}"
            )
        return None

    @staticmethod
    def _skipped(household: Household, reason: SkipReason, message: str) -> BillOutcome:
        logger.info("Skipped %s: %s", household.unit_label, message)
        return BillOutcome(
            household_id=household.id,
            unit_label=household.unit_label,
            kind=OutcomeKind.SKIPPED,
            message=message,
            reason=reason,
        )

    async def outstanding_bills(self, household_id: int) -> list[WaterBill]:
        """Unpaid and partially paid water bills of a household, oldest first."""
        return await outstanding_bills(self.session, WaterBill, household_id)

    async def bills_for_period(self, period_id: int) -> list[WaterBill]:
        """All water billing records of a period, grouped by status."""
        result = await self.session.execute(
            select(WaterBill)
            .where(WaterBill.period_id == period_id)
            .order_by(WaterBill.status.asc(), WaterBill.household_id.asc())
        )
        return list(result.scalars().all())


__all__ = ["MeterReadingInput", "WaterBillGenerator"]
