"""Water and IPL (flat fee) billing record ORM models."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, ForeignKey, Index, Numeric, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from estate_ledger.models import Base, BaseModel


class BillStatus(str, Enum):
    """Payment status of a bill, derived from paid vs. nominal amount."""

    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class WaterBillClassification(str, Enum):
    """How a water billing record came to be."""

    BASELINE = "baseline"
    """First reading ever recorded for the household; no charge"""

    AUTOMATIC = "automatic"
    """Regular usage-based bill"""

    INITIAL = "initial"
    """Deliberate re-baselining requested by the operator; no charge"""


class FeeType(str, Enum):
    """IPL fee tiers."""

    NORMAL = "normal"
    VACANT = "vacant"
    REDUCED = "reduced"


class WaterBill(Base, BaseModel):
    """Meter reading and water bill for one household in one period.

    A single row holds both the reading and the resulting charge. Payment
    tracking fields (amount_paid, amount_remaining, status) are re-derived from
    the allocation rows whenever a payment is applied.
    """

    __tablename__ = "water_bills"

    household_id: Mapped[int] = mapped_column(
        ForeignKey("households.id"),
        nullable=False,
        index=True,
    )
    period_id: Mapped[int] = mapped_column(
        ForeignKey("periods.id"),
        nullable=False,
        index=True,
    )
    resident_id: Mapped[int | None] = mapped_column(
        ForeignKey("residents.id"),
        nullable=True,
        index=True,
        comment="Resident the bill is attributed to",
    )

    # Meter data
    current_reading: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    previous_reading: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    usage: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Billed usage in m³ (never negative)",
    )
    is_meter_replacement: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    # Bill calculation
    rate: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    nominal_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    amount_remaining: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[BillStatus] = mapped_column(
        SQLEnum(BillStatus),
        nullable=False,
        default=BillStatus.UNPAID,
        index=True,
    )
    classification: Mapped[WaterBillClassification] = mapped_column(
        SQLEnum(WaterBillClassification),
        nullable=False,
        default=WaterBillClassification.AUTOMATIC,
    )

    # Dates
    bill_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    note: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        Index("idx_water_bill_household_period", "household_id", "period_id"),
        Index("idx_water_bill_household_status", "household_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<WaterBill(id={self.id}, household_id={self.household_id}, "
            f"period_id={self.period_id}, usage={self.usage}, "
            f"nominal_amount={self.nominal_amount}, status={self.status})>"
        )


class FlatFeeBill(Base, BaseModel):
    """Monthly IPL bill for one household in one period.

    The fee tier is stored on the bill at creation time, so payment categories
    never have to be guessed from amounts.
    """

    __tablename__ = "flat_fee_bills"

    household_id: Mapped[int] = mapped_column(
        ForeignKey("households.id"),
        nullable=False,
        index=True,
    )
    period_id: Mapped[int] = mapped_column(
        ForeignKey("periods.id"),
        nullable=False,
        index=True,
    )
    resident_id: Mapped[int | None] = mapped_column(
        ForeignKey("residents.id"),
        nullable=True,
        index=True,
    )
    tariff_id: Mapped[int | None] = mapped_column(
        ForeignKey("flat_fee_tariffs.id"),
        nullable=True,
        comment="Tariff the amount was taken from",
    )
    fee_type: Mapped[FeeType] = mapped_column(
        SQLEnum(FeeType),
        nullable=False,
        index=True,
    )

    nominal_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    amount_remaining: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[BillStatus] = mapped_column(
        SQLEnum(BillStatus),
        nullable=False,
        default=BillStatus.UNPAID,
        index=True,
    )

    bill_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        Index("idx_flat_fee_bill_household_period", "household_id", "period_id"),
        Index("idx_flat_fee_bill_household_status", "household_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<FlatFeeBill(id={self.id}, household_id={self.household_id}, "
            f"period_id={self.period_id}, fee_type={self.fee_type}, "
            f"nominal_amount={self.nominal_amount}, status={self.status})>"
        )


__all__ = ["BillStatus", "FeeType", "FlatFeeBill", "WaterBill", "WaterBillClassification"]
