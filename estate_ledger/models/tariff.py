"""Versioned water and IPL tariff ORM models."""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Index, Numeric
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from estate_ledger.models import Base, BaseModel
from estate_ledger.models.bill import FeeType


class WaterTariff(Base, BaseModel):
    """Price per cubic meter of water, effective from a date.

    Only one water tariff is active at a time.
    """

    __tablename__ = "water_tariffs"

    rate_per_unit: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        comment="Price per m³",
    )
    effective_from: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<WaterTariff(id={self.id}, rate_per_unit={self.rate_per_unit}, "
            f"effective_from={self.effective_from}, is_active={self.is_active})>"
        )


class FlatFeeTariff(Base, BaseModel):
    """Monthly IPL amount for one fee tier, effective from a date.

    One tariff per fee tier is active at a time.
    """

    __tablename__ = "flat_fee_tariffs"

    fee_type: Mapped[FeeType] = mapped_column(
        SQLEnum(FeeType),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        comment="Monthly amount for the tier",
    )
    effective_from: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
    )

    __table_args__ = (Index("idx_flat_fee_tariff_type_active", "fee_type", "is_active"),)

    def __repr__(self) -> str:
        return (
            f"<FlatFeeTariff(id={self.id}, fee_type={self.fee_type}, amount={self.amount}, "
            f"effective_from={self.effective_from}, is_active={self.is_active})>"
        )


__all__ = ["FlatFeeTariff", "WaterTariff"]
