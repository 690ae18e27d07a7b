"""Payment allocation rows linking incoming payments to bills."""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from estate_ledger.models import Base, BaseModel
from estate_ledger.models.bill import FeeType


class WaterPaymentAllocation(Base, BaseModel):
    """Part of an incoming payment applied to a water bill.

    One row per (bill, payment); re-allocating the same payment to the same
    bill updates the row instead of adding another.
    """

    __tablename__ = "water_payment_allocations"

    bill_id: Mapped[int] = mapped_column(
        ForeignKey("water_bills.id"),
        nullable=False,
        index=True,
    )
    payment_id: Mapped[int] = mapped_column(
        ForeignKey("incoming_payments.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    allocation_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        UniqueConstraint("bill_id", "payment_id", name="uq_water_allocation_bill_payment"),
    )

    def __repr__(self) -> str:
        return (
            f"<WaterPaymentAllocation(id={self.id}, bill_id={self.bill_id}, "
            f"payment_id={self.payment_id}, amount={self.amount})>"
        )


class FlatFeePaymentAllocation(Base, BaseModel):
    """Part of an incoming payment applied to an IPL bill, tagged with the fee tier."""

    __tablename__ = "flat_fee_payment_allocations"

    bill_id: Mapped[int] = mapped_column(
        ForeignKey("flat_fee_bills.id"),
        nullable=False,
        index=True,
    )
    payment_id: Mapped[int] = mapped_column(
        ForeignKey("incoming_payments.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    allocation_date: Mapped[date] = mapped_column(Date, nullable=False)
    fee_type: Mapped[FeeType] = mapped_column(
        SQLEnum(FeeType),
        nullable=False,
        index=True,
        comment="Revenue category, copied from the bill",
    )

    __table_args__ = (
        UniqueConstraint("bill_id", "payment_id", name="uq_flat_fee_allocation_bill_payment"),
    )

    def __repr__(self) -> str:
        return (
            f"<FlatFeePaymentAllocation(id={self.id}, bill_id={self.bill_id}, "
            f"payment_id={self.payment_id}, amount={self.amount}, fee_type={self.fee_type})>"
        )


__all__ = ["FlatFeePaymentAllocation", "WaterPaymentAllocation"]
