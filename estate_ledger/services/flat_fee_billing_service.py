"""IPL (flat monthly fee) bill generation."""

import logging
from datetime import date
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from estate_ledger.config import LedgerSettings, get_settings
from estate_ledger.models.bill import FeeType, FlatFeeBill
from estate_ledger.models.household import Household, OccupancyStatus, Resident
from estate_ledger.models.period import Period
from estate_ledger.models.tariff import FlatFeeTariff
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
from estate_ledger.services.errors import LedgerError, NotFoundError, TariffConfigurationError
from estate_ledger.services.period_service import PeriodIndex
from estate_ledger.services.tariff_service import TariffResolver

logger = logging.getLogger(__name__)


class FlatFeeBillGenerator:
    """Produces one IPL bill per household per period.

    The fee tier is decided once per household per run and stored on the bill,
    so payments can later be categorized from the bill itself.
    """

    def __init__(
        self,
        session: AsyncSession,
        tariff_resolver: TariffResolver | None = None,
        period_index: PeriodIndex | None = None,
        settings: LedgerSettings | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.tariff_resolver = tariff_resolver or TariffResolver(session)
        self.period_index = period_index or PeriodIndex(session)

    def classify(self, household: Household, resident: Resident | None = None) -> FeeType:
        """Fee tier for a household.

        Vacant units pay the vacant tier, special-condition units or residents
        the reduced tier, everyone else the normal tier. When a unit is both
        vacant and special, the overlap setting decides.
        """
        is_vacant = household.occupancy_status == OccupancyStatus.VACANT
        is_special = household.has_special_condition or (
            resident is not None and resident.has_special_condition
        )

        if is_vacant and is_special:
            if self.settings.special_condition_overrides_vacancy:
                return FeeType.REDUCED
            return FeeType.VACANT
        if is_special:
            return FeeType.REDUCED
        if is_vacant:
            return FeeType.VACANT
        return FeeType.NORMAL

    async def generate(
        self,
        period_id: int,
        household_ids: Iterable[int] | None = None,
        *,
        resident_overrides: dict[int, int] | None = None,
        bill_date: date | None = None,
        actor_id: int | None = None,
    ) -> GenerationResult:
        """Generate IPL bills for a period.

        Args:
            period_id: Period being billed
            household_ids: Households to bill (default: every household)
            resident_overrides: household_id -> resident_id to attribute the
                bill to, for units whose occupant changed mid-period
            bill_date: Bill date (default: today)
            actor_id: Operator running the generation (for audit)

        Returns:
            GenerationResult with one outcome per household
        """
        period = await self.period_index.get_by_id(period_id)
        if period is None:
            return GenerationResult(success=False, message=f"Period {period_id} not found")

        if household_ids is None:
            rows = await self.session.execute(select(Household.id).order_by(Household.id))
            household_ids = list(rows.scalars().all())

        bill_date = bill_date or date.today()
        resident_overrides = resident_overrides or {}
        result = GenerationResult(success=True)

        for household_id in household_ids:
            try:
                outcome = await self._bill_household(
                    period, household_id, resident_overrides.get(household_id), bill_date, actor_id
                )
                await self.session.commit()
            except (SQLAlchemyError, LedgerError) as e:
                await self.session.rollback()
                logger.exception(
                    "IPL billing failed for household %d in period %d", household_id, period_id
                )
                outcome = BillOutcome(
                    household_id=household_id,
                    kind=OutcomeKind.ERROR,
                    message=f"Bill creation failed: {e}",
                )
                period = await self.period_index.get_by_id(period_id)

            result.outcomes.append(outcome)

        result.message = f"IPL billing for {period.name}: {result.summary()}"
        logger.info(result.message)
        return result

    async def _bill_household(
        self,
        period: Period,
        household_id: int,
        override_resident_id: int | None,
        bill_date: date,
        actor_id: int | None,
    ) -> BillOutcome:
        household = await self.session.get(Household, household_id)
        if household is None:
            return BillOutcome(
                household_id=household_id,
                kind=OutcomeKind.SKIPPED,
                message=f"Household {household_id} not found",
                reason=SkipReason.HOUSEHOLD_NOT_FOUND,
            )

        if await bill_exists(self.session, FlatFeeBill, household.id, period.id):
            return self._skipped(
                household,
                SkipReason.DUPLICATE,
                f"IPL bill already exists for {household.unit_label} in period {period.name}",
            )

        resident_id = override_resident_id or await attributed_resident_id(
            self.session, FlatFeeBill, household
        )
        resident = await self.session.get(Resident, resident_id) if resident_id else None
        fee_type = self.classify(household, resident)

        try:
            tariff = await self._resolve_tariff(fee_type, period)
        except NotFoundError:
            return self._skipped(
                household,
                SkipReason.TARIFF_NOT_FOUND,
                f"No {fee_type.value} IPL tariff found for period {period.name}",
            )
        except TariffConfigurationError as e:
            return self._skipped(household, SkipReason.TARIFF_CONFIGURATION_ERROR, str(e))

        amount = to_money(tariff.amount)
        bill = FlatFeeBill(
            household_id=household.id,
            period_id=period.id,
            resident_id=resident_id,
            tariff_id=tariff.id,
            fee_type=fee_type,
            nominal_amount=amount,
            amount_paid=ZERO,
            amount_remaining=amount,
            status=derive_status(ZERO, amount),
            bill_date=bill_date,
            due_date=due_date_for(bill_date, self.settings.bill_due_days),
        )
        self.session.add(bill)
        await self.session.flush()

        AuditService.log(
            self.session,
            "flat_fee_bill",
            bill.id,
            "create",
            actor_id,
            {
                "household_id": household.id,
                "period_id": period.id,
                "fee_type": fee_type.value,
                "tariff_id": tariff.id,
                "amount": float(amount),
            },
        )
        logger.debug(
            "IPL bill %d for %s: %s tier = %s", bill.id, household.unit_label, fee_type.value, amount
        )

        return BillOutcome(
            household_id=household.id,
            unit_label=household.unit_label,
            kind=OutcomeKind.BILL,
            bill_id=bill.id,
            message=f"IPL bill created: {fee_type.value} = {amount}",
        )

    async def _resolve_tariff(self, fee_type: FeeType, period: Period) -> FlatFeeTariff:
        """Tariff for the tier as of the period start.

        Raises:
            NotFoundError: If no active IPL tariff exists
            TariffConfigurationError: If only a tariff of another tier is active
        """
        resolution = await self.tariff_resolver.resolve_flat_fee(fee_type, period.start_date)
        if resolution.is_configuration_error:
            raise TariffConfigurationError(
                f"No active {fee_type.value} IPL tariff; only a "
                f"{resolution.tariff.fee_type.value} tariff is active"
            )
        return resolution.tariff

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

    async def outstanding_bills(self, household_id: int) -> list[FlatFeeBill]:
        """Unpaid and partially paid IPL bills of a household, oldest first."""
        return await outstanding_bills(self.session, FlatFeeBill, household_id)

    async def bills_for_period(self, period_id: int) -> list[FlatFeeBill]:
        result = await self.session.execute(
            select(FlatFeeBill)
            .where(FlatFeeBill.period_id == period_id)
            .order_by(FlatFeeBill.status.asc(), FlatFeeBill.household_id.asc())
        )
        return list(result.scalars().all())


__all__ = ["FlatFeeBillGenerator"]
