"""End-to-end billing cycle: readings -> bills -> payments -> reconciliation."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from estate_ledger.models.allocation import FlatFeePaymentAllocation, WaterPaymentAllocation
from estate_ledger.models.bill import (
    BillStatus,
    FeeType,
    FlatFeeBill,
    WaterBill,
    WaterBillClassification,
)
from estate_ledger.models.household import Household
from estate_ledger.models.ledger import Account, Category, EscrowDeposit, IncomingPayment
from estate_ledger.services import (
    BalanceReconciler,
    FlatFeeBillGenerator,
    MeterReadingInput,
    PaymentAllocator,
    PeriodIndex,
    SkipReason,
    TariffResolver,
    WaterBillGenerator,
)


@pytest.fixture
async def neighborhood(async_db_session, ledger_settings):
    """Three periods, two households, water and IPL tariffs, one bank account."""
    index = PeriodIndex(async_db_session)
    periods = [
        await index.create_period("Januari 2025", date(2025, 1, 1), date(2025, 1, 31)),
        await index.create_period("Februari 2025", date(2025, 2, 1), date(2025, 2, 28)),
        await index.create_period("Maret 2025", date(2025, 3, 1), date(2025, 3, 31)),
    ]

    resolver = TariffResolver(async_db_session)
    await resolver.create_water_tariff(Decimal("3000"), date(2024, 1, 1))
    await resolver.create_flat_fee_tariff(FeeType.NORMAL, Decimal("60000"), date(2024, 1, 1))
    await resolver.create_flat_fee_tariff(FeeType.VACANT, Decimal("30000"), date(2024, 1, 1))
    await resolver.create_flat_fee_tariff(FeeType.REDUCED, Decimal("20000"), date(2024, 1, 1))

    households = [Household(unit_label="C3/01"), Household(unit_label="C3/02")]
    async_db_session.add_all(households)

    account = Account(name="Bank BRI", starting_balance=Decimal("0"))
    ipl = Category(name="IPL", starting_balance=Decimal("0"))
    water = Category(name="Air", starting_balance=Decimal("0"))
    async_db_session.add_all([account, ipl, water])
    await async_db_session.commit()

    return {
        "periods": periods,
        "households": households,
        "account": account,
        "categories": {"ipl": ipl, "water": water},
        "resolver": resolver,
    }


async def receive(session, neighborhood, household, amount, category) -> IncomingPayment:
    payment = IncomingPayment(
        account_id=neighborhood["account"].id,
        category_id=neighborhood["categories"][category].id,
        household_id=household.id,
        amount=Decimal(amount),
        payment_date=date(2025, 3, 15),
    )
    session.add(payment)
    await session.commit()
    return payment


async def test_full_cycle(async_db_session, neighborhood, ledger_settings):
    periods = neighborhood["periods"]
    house = neighborhood["households"][0]
    water = WaterBillGenerator(async_db_session, settings=ledger_settings)
    ipl = FlatFeeBillGenerator(async_db_session, settings=ledger_settings)
    allocator = PaymentAllocator(async_db_session)

    # January: first reading is a baseline
    january = await water.generate(
        periods[0].id, [MeterReadingInput(house.id, Decimal("150"))], bill_date=date(2025, 1, 5)
    )
    assert january.baseline_count == 1

    # February: normal usage; March: meter swapped (1000 -> 20 pattern)
    await water.generate(
        periods[1].id, [MeterReadingInput(house.id, Decimal("1000"))], bill_date=date(2025, 2, 5)
    )
    await water.generate(
        periods[2].id, [MeterReadingInput(house.id, Decimal("20"))], bill_date=date(2025, 3, 5)
    )

    bills = (
        await async_db_session.execute(
            select(WaterBill)
            .where(WaterBill.household_id == house.id)
            .order_by(WaterBill.bill_date)
        )
    ).scalars().all()
    assert [b.classification for b in bills] == [
        WaterBillClassification.BASELINE,
        WaterBillClassification.AUTOMATIC,
        WaterBillClassification.AUTOMATIC,
    ]
    assert bills[1].usage == Decimal("850")
    assert bills[1].nominal_amount == Decimal("2550000.00")
    assert bills[2].usage == Decimal("20")
    assert bills[2].is_meter_replacement is True
    assert bills[2].nominal_amount == Decimal("60000.00")

    # IPL for two months
    await ipl.generate(periods[0].id, [house.id], bill_date=date(2025, 1, 5))
    await ipl.generate(periods[1].id, [house.id], bill_date=date(2025, 2, 5))

    payment = await receive(async_db_session, neighborhood, house, "90000", "ipl")
    result = await allocator.allocate_flat_fee_payment(payment.id)
    assert result.total_allocated == Decimal("90000")
    assert result.category_totals == {"normal": Decimal("90000")}

    ipl_bills = (
        await async_db_session.execute(
            select(FlatFeeBill)
            .where(FlatFeeBill.household_id == house.id)
            .order_by(FlatFeeBill.bill_date)
        )
    ).scalars().all()
    assert [b.status for b in ipl_bills] == [BillStatus.PAID, BillStatus.PARTIAL]
    for bill in list(bills) + list(ipl_bills):
        assert bill.amount_paid + bill.amount_remaining == bill.nominal_amount

    report = await BalanceReconciler(async_db_session, ledger_settings).reconcile()
    assert report.category_total == Decimal("90000")
    assert report.account_total == Decimal("90000")
    assert report.is_consistent is True


async def test_regenerating_a_period_is_a_no_op(async_db_session, neighborhood, ledger_settings):
    periods = neighborhood["periods"]
    house_ids = [h.id for h in neighborhood["households"]]
    water = WaterBillGenerator(async_db_session, settings=ledger_settings)
    ipl = FlatFeeBillGenerator(async_db_session, settings=ledger_settings)
    readings = [MeterReadingInput(hid, Decimal("10")) for hid in house_ids]

    await water.generate(periods[0].id, readings)
    await ipl.generate(periods[0].id)
    water_again = await water.generate(periods[0].id, readings)
    ipl_again = await ipl.generate(periods[0].id)

    assert {o.reason for o in water_again.outcomes} == {SkipReason.DUPLICATE}
    assert {o.reason for o in ipl_again.outcomes} == {SkipReason.DUPLICATE}
    water_count = (
        await async_db_session.execute(select(func.count(WaterBill.id)))
    ).scalar_one()
    ipl_count = (
        await async_db_session.execute(select(func.count(FlatFeeBill.id)))
    ).scalar_one()
    assert water_count == 2
    assert ipl_count == 2


async def test_allocation_example_60k_30k_75k(async_db_session, neighborhood, ledger_settings):
    """Oldest 60,000 bill paid in full, newer 30,000 bill left with 15,000."""
    periods = neighborhood["periods"]
    house = neighborhood["households"][1]
    resolver = neighborhood["resolver"]
    water = WaterBillGenerator(async_db_session, resolver, settings=ledger_settings)

    # 20 m³ x 3000 = 60,000 in February, 10 m³ x 3000 = 30,000 in March
    await water.generate(periods[0].id, [MeterReadingInput(house.id, Decimal("100"))])
    await water.generate(
        periods[1].id, [MeterReadingInput(house.id, Decimal("120"))], bill_date=date(2025, 2, 5)
    )
    await water.generate(
        periods[2].id, [MeterReadingInput(house.id, Decimal("130"))], bill_date=date(2025, 3, 5)
    )

    payment = await receive(async_db_session, neighborhood, house, "75000", "water")
    result = await PaymentAllocator(async_db_session).allocate_water_payment(payment.id)

    assert [(line.amount, line.bill_status) for line in result.allocations] == [
        (Decimal("60000"), BillStatus.PAID),
        (Decimal("15000"), BillStatus.PARTIAL),
    ]
    assert result.allocations[1].amount_remaining == Decimal("15000")
    assert result.unallocated == Decimal("0")

    allocated = (
        await async_db_session.execute(
            select(func.sum(WaterPaymentAllocation.amount)).where(
                WaterPaymentAllocation.payment_id == payment.id
            )
        )
    ).scalar_one()
    ipl_allocated = (
        await async_db_session.execute(
            select(func.coalesce(func.sum(FlatFeePaymentAllocation.amount), 0)).where(
                FlatFeePaymentAllocation.payment_id == payment.id
            )
        )
    ).scalar_one()
    assert allocated + ipl_allocated <= payment.amount


async def test_reconciliation_example(async_db_session, ledger_settings):
    """Categories 500,000 + escrow 20,000 against accounts 520,000, then 510,000."""
    operations = Category(name="Operasional", starting_balance=Decimal("500000"))
    bank = Account(name="Bank BRI", starting_balance=Decimal("500000"))
    async_db_session.add_all([operations, bank])
    await async_db_session.flush()
    async_db_session.add(
        EscrowDeposit(account_id=bank.id, amount=Decimal("20000"), deposit_date=date(2025, 1, 1))
    )
    await async_db_session.commit()
    reconciler = BalanceReconciler(async_db_session, ledger_settings)

    consistent = await reconciler.reconcile()
    assert consistent.account_total == Decimal("520000")
    assert consistent.discrepancy == Decimal("0")
    assert consistent.is_consistent is True

    bank.starting_balance = Decimal("490000")
    await async_db_session.commit()

    flagged = await reconciler.reconcile()
    assert flagged.account_total == Decimal("510000")
    assert flagged.discrepancy == Decimal("10000")
    assert flagged.is_consistent is False
