"""Shared billing helpers: money rounding, status derivation and batch run results."""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from estate_ledger.models.bill import BillStatus, FlatFeeBill, WaterBill
from estate_ledger.models.household import Household

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Convert a number to Decimal rounded half-up to cents."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def derive_status(amount_paid: Decimal, nominal_amount: Decimal) -> BillStatus:
    """Derive bill status from what has been paid against the nominal amount.

    paid iff nothing remains; unpaid iff nothing was paid; partial otherwise.
    A zero-amount bill is paid.
    """
    remaining = nominal_amount - amount_paid
    if remaining <= 0:
        return BillStatus.PAID
    if amount_paid == 0:
        return BillStatus.UNPAID
    return BillStatus.PARTIAL


def due_date_for(bill_date: date, due_days: int) -> date:
    """Due date is a fixed number of days after the bill date."""
    return bill_date + timedelta(days=due_days)


async def bill_exists(
    session: AsyncSession,
    bill_model: type[WaterBill] | type[FlatFeeBill],
    household_id: int,
    period_id: int,
) -> bool:
    """Whether a bill of this kind already exists for (household, period)."""
    result = await session.execute(
        select(bill_model.id)
        .where(bill_model.household_id == household_id, bill_model.period_id == period_id)
        .limit(1)
    )
    return result.first() is not None


async def outstanding_bills(
    session: AsyncSession,
    bill_model: type[WaterBill] | type[FlatFeeBill],
    household_id: int,
) -> list[WaterBill] | list[FlatFeeBill]:
    """Unpaid and partially paid bills of a household, oldest bill date first."""
    result = await session.execute(
        select(bill_model)
        .where(
            bill_model.household_id == household_id,
            bill_model.status.in_([BillStatus.UNPAID, BillStatus.PARTIAL]),
        )
        .order_by(bill_model.bill_date.asc(), bill_model.id.asc())
    )
    return list(result.scalars().all())


async def attributed_resident_id(
    session: AsyncSession,
    bill_model: type[WaterBill] | type[FlatFeeBill],
    household: Household,
) -> int | None:
    """Resident a new bill is attributed to.

    The household's current resident wins; otherwise the most recent resident
    found on the same household's own bills of this kind.
    """
    if household.current_resident_id is not None:
        return household.current_resident_id

    result = await session.execute(
        select(bill_model.resident_id)
        .where(
            bill_model.household_id == household.id,
            bill_model.resident_id.is_not(None),
        )
        .order_by(bill_model.bill_date.desc(), bill_model.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


class OutcomeKind(str, Enum):
    """Per-household result of a billing run."""

    BILL = "bill"
    BASELINE = "baseline"
    SKIPPED = "skipped"
    ERROR = "error"


class SkipReason(str, Enum):
    """Why a household was skipped in a billing run."""

    DUPLICATE = "duplicate"
    NO_PREVIOUS_READING = "no_previous_reading"
    TARIFF_NOT_FOUND = "tariff_not_found"
    TARIFF_CONFIGURATION_ERROR = "tariff_configuration_error"
    HOUSEHOLD_NOT_FOUND = "household_not_found"
    NOT_WATER_CUSTOMER = "not_water_customer"
    INVALID_READING = "invalid_reading"


@dataclass
class BillOutcome:
    """What happened to one household during a billing run."""

    household_id: int
    kind: OutcomeKind
    message: str
    unit_label: str | None = None
    bill_id: int | None = None
    reason: SkipReason | None = None


@dataclass
class GenerationResult:
    """Result of a billing run over many households.

    The run never fails atomically: each household gets its own outcome.
    success is False only when the run could not start at all.
    """

    success: bool
    outcomes: list[BillOutcome] = field(default_factory=list)
    message: str = ""

    def _count(self, kind: OutcomeKind) -> int:
        return sum(1 for outcome in self.outcomes if outcome.kind == kind)

    @property
    def bill_count(self) -> int:
        return self._count(OutcomeKind.BILL)

    @property
    def baseline_count(self) -> int:
        return self._count(OutcomeKind.BASELINE)

    @property
    def skipped_count(self) -> int:
        return self._count(OutcomeKind.SKIPPED)

    @property
    def error_count(self) -> int:
        return self._count(OutcomeKind.ERROR)

    @property
    def total_records(self) -> int:
        """Records written (bills + baselines)."""
        return self.bill_count + self.baseline_count

    def summary(self) -> str:
        return (
            f"{self.bill_count} bills, {self.baseline_count} baselines, "
            f"{self.skipped_count} skipped, {self.error_count} errors"
        )


__all__ = [
    "BillOutcome",
    "CENT",
    "GenerationResult",
    "OutcomeKind",
    "SkipReason",
    "ZERO",
    "attributed_resident_id",
    "bill_exists",
    "derive_status",
    "due_date_for",
    "outstanding_bills",
    "to_money",
]
