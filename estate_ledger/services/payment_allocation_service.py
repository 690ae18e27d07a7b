"""Payment allocation: applying incoming payments to outstanding bills.

Payments are applied oldest bill first (FIFO by bill date). Each (bill, payment)
pair has exactly one allocation row; allocating the same payment to the same
bill again adds to that row. A bill's paid/remaining/status are always
re-derived from the sum of its allocation rows, never adjusted incrementally.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import NamedTuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from estate_ledger.models.allocation import FlatFeePaymentAllocation, WaterPaymentAllocation
from estate_ledger.models.bill import BillStatus, FeeType, FlatFeeBill, WaterBill
from estate_ledger.models.ledger import IncomingPayment
from estate_ledger.services.audit_service import AuditService
from estate_ledger.services.billing import ZERO, derive_status, outstanding_bills, to_money
from estate_ledger.services.errors import AllocationError, LedgerError, NotFoundError

logger = logging.getLogger(__name__)


class BillKind(str, Enum):
    """Which bill ledger an allocation targets."""

    WATER = "water"
    FLAT_FEE = "flat_fee"


class _BillBook(NamedTuple):
    bill_model: type[WaterBill] | type[FlatFeeBill]
    allocation_model: type[WaterPaymentAllocation] | type[FlatFeePaymentAllocation]


_BOOKS = {
    BillKind.WATER: _BillBook(WaterBill, WaterPaymentAllocation),
    BillKind.FLAT_FEE: _BillBook(FlatFeeBill, FlatFeePaymentAllocation),
}


@dataclass
class AllocationLine:
    """Amount placed on one bill by one allocation run."""

    bill_id: int
    bill_date: date
    amount: Decimal
    bill_status: BillStatus
    amount_remaining: Decimal
    fee_type: FeeType | None = None


@dataclass
class AllocationResult:
    """Outcome of allocating (part of) a payment.

    unallocated is what is left of the requested amount; the caller decides
    whether to hold, refund or re-offer it.
    """

    success: bool
    allocations: list[AllocationLine] = field(default_factory=list)
    unallocated: Decimal = ZERO
    message: str = ""
    category_totals: dict[str, Decimal] = field(default_factory=dict)

    @property
    def total_allocated(self) -> Decimal:
        return sum((line.amount for line in self.allocations), ZERO)


class PaymentAllocator:
    """Apply incoming payments to a household's water or IPL bills.

    Every public allocation is one transaction: committed when all bills are
    updated, rolled back entirely on any failure.
    """

    def __init__(self, session: AsyncSession):
        """Initialize with async database session."""
        self.session = session

    async def allocate_water_payment(
        self,
        payment_id: int,
        amount: Decimal | None = None,
        *,
        allocation_date: date | None = None,
        actor_id: int | None = None,
    ) -> AllocationResult:
        """Allocate a payment to the household's outstanding water bills."""
        return await self._allocate(BillKind.WATER, payment_id, amount, allocation_date, actor_id)

    async def allocate_flat_fee_payment(
        self,
        payment_id: int,
        amount: Decimal | None = None,
        *,
        allocation_date: date | None = None,
        actor_id: int | None = None,
    ) -> AllocationResult:
        """Allocate a payment to the household's outstanding IPL bills.

        Each allocation is tagged with the bill's fee tier; category_totals
        sums the placed amounts per tier.
        """
        return await self._allocate(BillKind.FLAT_FEE, payment_id, amount, allocation_date, actor_id)

    async def allocate_to_bill(
        self,
        kind: BillKind,
        payment_id: int,
        bill_id: int,
        amount: Decimal,
        *,
        allocation_date: date | None = None,
        actor_id: int | None = None,
    ) -> AllocationResult:
        """Pay one selected bill, capped at its remaining amount and the payment's budget.

        Args:
            kind: Bill ledger (water or IPL)
            payment_id: Incoming payment to draw from
            bill_id: Bill to pay
            amount: Amount the operator wants to place
            allocation_date: Allocation date (default: today)
            actor_id: Operator (for audit)

        Returns:
            AllocationResult with at most one line
        """
        book = _BOOKS[kind]
        payment = await self.session.get(IncomingPayment, payment_id)
        if payment is None:
            return AllocationResult(success=False, message=f"Payment {payment_id} not found")

        bill = await self.session.get(book.bill_model, bill_id)
        if bill is None:
            return AllocationResult(success=False, message=f"Bill {bill_id} not found")

        if payment.household_id is None:
            return AllocationResult(
                success=False, message=f"Payment {payment_id} is not tied to a household"
            )
        if payment.household_id != bill.household_id:
            return AllocationResult(
                success=False,
                message=f"Bill {bill_id} does not belong to household {payment.household_id}",
            )

        requested = to_money(amount)
        if requested <= 0:
            return AllocationResult(success=False, message="Allocation amount must be positive")

        budget = min(requested, await self.available_amount(payment))
        if budget <= 0:
            return AllocationResult(
                success=False,
                unallocated=requested,
                message=f"Payment {payment_id} is fully allocated",
            )

        take = min(budget, bill.amount_remaining)
        if take <= 0:
            return AllocationResult(
                success=False,
                unallocated=requested,
                message=f"Bill {bill_id} is already paid",
            )

        allocation_date = allocation_date or date.today()
        try:
            line = await self._place(kind, bill, payment.id, take, allocation_date)
            self._audit(kind, payment.id, [line], actor_id)
            await self.session.commit()
        except (SQLAlchemyError, LedgerError) as e:
            await self.session.rollback()
            logger.exception("Allocation of payment %d to bill %d failed", payment_id, bill_id)
            return AllocationResult(
                success=False, unallocated=requested, message=f"Allocation failed: {e}"
            )

        return AllocationResult(
            success=True,
            allocations=[line],
            unallocated=requested - take,
            message=f"Allocated {take} to bill {bill_id}",
            category_totals=self._category_totals(kind, [line]),
        )

    async def unallocate_payment(
        self, kind: BillKind, payment_id: int, actor_id: int | None = None
    ) -> AllocationResult:
        """Delete every allocation of a payment to bills of one kind.

        Used when a payment is corrected or removed. Affected bills are
        re-derived from their remaining allocation rows.

        Returns:
            AllocationResult with one line per removed allocation; each line
            carries the removed amount and the bill's re-derived state
        """
        book = _BOOKS[kind]
        rows = (
            await self.session.execute(
                select(book.allocation_model).where(book.allocation_model.payment_id == payment_id)
            )
        ).scalars().all()
        if not rows:
            return AllocationResult(
                success=True, message=f"Payment {payment_id} has no {kind.value} allocations"
            )

        removed = {row.bill_id: to_money(row.amount) for row in rows}
        lines: list[AllocationLine] = []
        try:
            for row in rows:
                await self.session.delete(row)
            await self.session.flush()

            for bill_id in sorted(removed):
                bill = await self.session.get(book.bill_model, bill_id)
                await self._rederive(kind, bill)
                lines.append(
                    AllocationLine(
                        bill_id=bill.id,
                        bill_date=bill.bill_date,
                        amount=removed[bill_id],
                        bill_status=bill.status,
                        amount_remaining=bill.amount_remaining,
                        fee_type=bill.fee_type if kind == BillKind.FLAT_FEE else None,
                    )
                )

            AuditService.log(
                self.session,
                "payment_allocation",
                payment_id,
                "unallocate",
                actor_id,
                {
                    "kind": kind.value,
                    "bills": {str(bill_id): float(amount) for bill_id, amount in removed.items()},
                },
            )
            await self.session.commit()
        except (SQLAlchemyError, LedgerError) as e:
            await self.session.rollback()
            logger.exception("Removing allocations of payment %d failed", payment_id)
            return AllocationResult(success=False, message=f"Unallocation failed: {e}")

        logger.info("Removed %d %s allocations of payment %d", len(lines), kind.value, payment_id)
        return AllocationResult(
            success=True,
            allocations=lines,
            message=f"Removed {len(lines)} allocations of payment {payment_id}",
        )

    async def available_amount(self, payment: IncomingPayment) -> Decimal:
        """Part of a payment not yet allocated to any bill of either kind."""
        allocated = ZERO
        for book in _BOOKS.values():
            total = (
                await self.session.execute(
                    select(func.coalesce(func.sum(book.allocation_model.amount), 0)).where(
                        book.allocation_model.payment_id == payment.id
                    )
                )
            ).scalar_one()
            allocated += to_money(total)
        return max(to_money(payment.amount) - allocated, ZERO)

    async def recalculate_bill(self, kind: BillKind, bill_id: int) -> WaterBill | FlatFeeBill:
        """Re-derive a bill's paid/remaining/status from its allocation rows and commit.

        Raises:
            NotFoundError: If bill does not exist
            AllocationError: If allocations exceed the bill's nominal amount
        """
        bill = await self.session.get(_BOOKS[kind].bill_model, bill_id)
        if bill is None:
            raise NotFoundError(f"{kind.value} bill {bill_id} not found")

        await self._rederive(kind, bill)
        await self.session.commit()
        return bill

    async def revenue_by_fee_type(self, period_id: int | None = None) -> dict[str, Decimal]:
        """IPL revenue collected per fee tier.

        total_ipl counts the normal and vacant tiers only; reduced-tier
        payments are reported separately.
        """
        stmt = select(
            FlatFeePaymentAllocation.fee_type, func.sum(FlatFeePaymentAllocation.amount)
        ).group_by(FlatFeePaymentAllocation.fee_type)
        if period_id is not None:
            stmt = stmt.join(FlatFeeBill, FlatFeeBill.id == FlatFeePaymentAllocation.bill_id).where(
                FlatFeeBill.period_id == period_id
            )

        revenue = {fee_type.value: ZERO for fee_type in FeeType}
        for fee_type, total in (await self.session.execute(stmt)).all():
            revenue[fee_type.value] = to_money(total or 0)

        revenue["total_ipl"] = revenue[FeeType.NORMAL.value] + revenue[FeeType.VACANT.value]
        return revenue

    async def _allocate(
        self,
        kind: BillKind,
        payment_id: int,
        amount: Decimal | None,
        allocation_date: date | None,
        actor_id: int | None,
    ) -> AllocationResult:
        payment = await self.session.get(IncomingPayment, payment_id)
        if payment is None:
            return AllocationResult(success=False, message=f"Payment {payment_id} not found")
        if payment.household_id is None:
            return AllocationResult(
                success=False, message=f"Payment {payment_id} is not tied to a household"
            )

        requested = to_money(payment.amount if amount is None else amount)
        if requested <= 0:
            return AllocationResult(success=False, message="Allocation amount must be positive")

        budget = min(requested, await self.available_amount(payment))
        if budget <= 0:
            return AllocationResult(
                success=False,
                unallocated=requested,
                message=f"Payment {payment_id} is fully allocated",
            )

        bills = await self.outstanding_bills(kind, payment.household_id)
        if not bills:
            return AllocationResult(
                success=False,
                unallocated=requested,
                message=f"No outstanding {kind.value} bills for household {payment.household_id}",
            )

        allocation_date = allocation_date or date.today()
        lines: list[AllocationLine] = []
        left = budget
        try:
            for bill in bills:
                if left <= 0:
                    break
                take = min(left, bill.amount_remaining)
                if take <= 0:
                    continue
                lines.append(await self._place(kind, bill, payment.id, take, allocation_date))
                left -= take

            self._audit(kind, payment.id, lines, actor_id)
            await self.session.commit()
        except (SQLAlchemyError, LedgerError) as e:
            await self.session.rollback()
            logger.exception("Allocation of %s payment %d failed", kind.value, payment_id)
            return AllocationResult(
                success=False, unallocated=requested, message=f"Allocation failed: {e}"
            )

        unallocated = requested - (budget - left)
        logger.info(
            "Payment %d: allocated %s to %d %s bills, %s unallocated",
            payment_id,
            budget - left,
            len(lines),
            kind.value,
            unallocated,
        )
        return AllocationResult(
            success=True,
            allocations=lines,
            unallocated=unallocated,
            message=f"Allocated {budget - left} to {len(lines)} bills",
            category_totals=self._category_totals(kind, lines),
        )

    async def outstanding_bills(
        self, kind: BillKind, household_id: int
    ) -> list[WaterBill] | list[FlatFeeBill]:
        """Unpaid and partial bills of a household, oldest bill date first."""
        return await outstanding_bills(self.session, _BOOKS[kind].bill_model, household_id)

    async def _place(
        self,
        kind: BillKind,
        bill: WaterBill | FlatFeeBill,
        payment_id: int,
        amount: Decimal,
        allocation_date: date,
    ) -> AllocationLine:
        """Upsert the (bill, payment) allocation row and re-derive the bill."""
        allocation_model = _BOOKS[kind].allocation_model
        row = (
            await self.session.execute(
                select(allocation_model).where(
                    allocation_model.bill_id == bill.id,
                    allocation_model.payment_id == payment_id,
                )
            )
        ).scalar_one_or_none()

        if row is not None:
            row.amount = to_money(row.amount + amount)
            row.allocation_date = allocation_date
        else:
            row = allocation_model(
                bill_id=bill.id,
                payment_id=payment_id,
                amount=amount,
                allocation_date=allocation_date,
            )
            if kind == BillKind.FLAT_FEE:
                row.fee_type = bill.fee_type
            self.session.add(row)
        await self.session.flush()

        await self._rederive(kind, bill)
        return AllocationLine(
            bill_id=bill.id,
            bill_date=bill.bill_date,
            amount=amount,
            bill_status=bill.status,
            amount_remaining=bill.amount_remaining,
            fee_type=bill.fee_type if kind == BillKind.FLAT_FEE else None,
        )

    async def _rederive(self, kind: BillKind, bill: WaterBill | FlatFeeBill) -> None:
        allocation_model = _BOOKS[kind].allocation_model
        total = (
            await self.session.execute(
                select(func.coalesce(func.sum(allocation_model.amount), 0)).where(
                    allocation_model.bill_id == bill.id
                )
            )
        ).scalar_one()

        paid = to_money(total)
        nominal = to_money(bill.nominal_amount)
        if paid > nominal:
            raise AllocationError(
                f"Allocations for {kind.value} bill {bill.id} ({paid}) exceed its amount ({nominal})"
            )

        bill.amount_paid = paid
        bill.amount_remaining = nominal - paid
        bill.status = derive_status(paid, nominal)
        await self.session.flush()

    def _audit(
        self, kind: BillKind, payment_id: int, lines: list[AllocationLine], actor_id: int | None
    ) -> None:
        AuditService.log(
            self.session,
            "payment_allocation",
            payment_id,
            "allocate",
            actor_id,
            {
                "kind": kind.value,
                "bills": {str(line.bill_id): float(line.amount) for line in lines},
            },
        )

    @staticmethod
    def _category_totals(kind: BillKind, lines: list[AllocationLine]) -> dict[str, Decimal]:
        if kind != BillKind.FLAT_FEE:
            return {}
        totals: dict[str, Decimal] = {}
        for line in lines:
            key = line.fee_type.value
            totals[key] = totals.get(key, ZERO) + line.amount
        return totals


__all__ = ["AllocationLine", "AllocationResult", "BillKind", "PaymentAllocator"]
