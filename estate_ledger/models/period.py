"""Billing period ORM model ordered by an explicit sequence number."""

from datetime import date

from sqlalchemy import Date, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from estate_ledger.models import Base, BaseModel


class Period(Base, BaseModel):
    """Model representing a billing cycle (usually a calendar month).

    Periods are ordered by sequence_number, not by dates: the higher the number,
    the more recent the period. A period must not change once bills reference it.
    """

    __tablename__ = "periods"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        index=True,
        comment="Display name (e.g., 'Januari 2025')",
    )
    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Period start date (tariffs are resolved as of this date)",
    )
    end_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Period end date",
    )
    sequence_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        unique=True,
        index=True,
        comment="Strict ordering of periods; higher = more recent",
    )

    def __repr__(self) -> str:
        return (
            f"<Period(id={self.id}, name={self.name!r}, "
            f"sequence_number={self.sequence_number})>"
        )


__all__ = ["Period"]
