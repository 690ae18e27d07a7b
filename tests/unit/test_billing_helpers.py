"""Unit tests for shared billing helpers."""

from datetime import date
from decimal import Decimal

from estate_ledger.models.bill import BillStatus, FeeType, FlatFeeBill
from estate_ledger.services.billing import (
    BillOutcome,
    GenerationResult,
    OutcomeKind,
    SkipReason,
    derive_status,
    due_date_for,
    outstanding_bills,
    to_money,
)


class TestToMoney:
    def test_rounds_half_up_to_cents(self):
        assert to_money(Decimal("10.005")) == Decimal("10.01")
        assert to_money(Decimal("10.004")) == Decimal("10.00")

    def test_accepts_floats_and_ints(self):
        assert to_money(0.1 + 0.2) == Decimal("0.30")
        assert to_money(60000) == Decimal("60000.00")


class TestDeriveStatus:
    """paid + remaining == nominal drives the status."""

    def test_nothing_paid_is_unpaid(self):
        assert derive_status(Decimal("0"), Decimal("60000")) == BillStatus.UNPAID

    def test_partly_paid_is_partial(self):
        assert derive_status(Decimal("15000"), Decimal("30000")) == BillStatus.PARTIAL

    def test_fully_paid_is_paid(self):
        assert derive_status(Decimal("60000"), Decimal("60000")) == BillStatus.PAID

    def test_zero_amount_bill_is_paid(self):
        assert derive_status(Decimal("0"), Decimal("0")) == BillStatus.PAID


def test_due_date_is_thirty_days_after_bill_date():
    assert due_date_for(date(2025, 1, 15), 30) == date(2025, 2, 14)


def test_generation_result_counts():
    result = GenerationResult(success=True)
    result.outcomes.extend(
        [
            BillOutcome(household_id=1, kind=OutcomeKind.BILL, message="ok"),
            BillOutcome(household_id=2, kind=OutcomeKind.BILL, message="ok"),
            BillOutcome(household_id=3, kind=OutcomeKind.BASELINE, message="baseline"),
            BillOutcome(
                household_id=4,
                kind=OutcomeKind.SKIPPED,
                message="dup",
                reason=SkipReason.DUPLICATE,
            ),
            BillOutcome(household_id=5, kind=OutcomeKind.ERROR, message="boom"),
        ]
    )

    assert result.bill_count == 2
    assert result.baseline_count == 1
    assert result.skipped_count == 1
    assert result.error_count == 1
    assert result.total_records == 3
    assert result.summary() == "2 bills, 1 baselines, 1 skipped, 1 errors"


async def test_outstanding_bills_skips_paid_and_orders_by_bill_date(
    async_db_session, periods, households
):
    def ipl_bill(period, status, bill_date):
        return FlatFeeBill(
            household_id=households[0].id,
            period_id=period.id,
            fee_type=FeeType.NORMAL,
            nominal_amount=Decimal("150000"),
            amount_paid=Decimal("150000") if status == BillStatus.PAID else Decimal("0"),
            amount_remaining=Decimal("0") if status == BillStatus.PAID else Decimal("150000"),
            status=status,
            bill_date=bill_date,
        )

    march = ipl_bill(periods[2], BillStatus.UNPAID, date(2025, 3, 1))
    january = ipl_bill(periods[0], BillStatus.UNPAID, date(2025, 1, 1))
    february = ipl_bill(periods[1], BillStatus.PAID, date(2025, 2, 1))
    async_db_session.add_all([march, january, february])
    await async_db_session.commit()

    bills = await outstanding_bills(async_db_session, FlatFeeBill, households[0].id)

    assert [b.id for b in bills] == [january.id, march.id]
    assert await outstanding_bills(async_db_session, FlatFeeBill, households[1].id) == []
