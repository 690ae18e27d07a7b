"""Household and resident ORM models."""

from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from estate_ledger.models import Base, BaseModel


class OccupancyStatus(str, Enum):
    """Whether somebody lives in the housing unit."""

    OCCUPIED = "occupied"
    VACANT = "vacant"


class Resident(Base, BaseModel):
    """Head of family living in (or responsible for) a household."""

    __tablename__ = "residents"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Head of family name",
    )
    has_special_condition: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Special-condition resident (billed on the reduced IPL tier)",
    )

    def __repr__(self) -> str:
        return f"<Resident(id={self.id}, name={self.name!r})>"


class Household(Base, BaseModel):
    """Model representing a housing unit in the neighborhood.

    The household is the billing subject for both water and IPL bills. The
    current resident is only used for attribution; bills stay with the unit.
    """

    __tablename__ = "households"

    unit_label: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Block/unit label (e.g., 'A1/12')",
    )
    occupancy_status: Mapped[OccupancyStatus] = mapped_column(
        SQLEnum(OccupancyStatus),
        nullable=False,
        default=OccupancyStatus.OCCUPIED,
        index=True,
    )
    is_water_customer: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="Household has a water meter and receives water bills",
    )
    current_resident_id: Mapped[int | None] = mapped_column(
        ForeignKey("residents.id"),
        nullable=True,
        index=True,
    )
    has_special_condition: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Special-condition flag on the unit itself",
    )

    current_resident: Mapped["Resident | None"] = relationship(
        "Resident",
        foreign_keys=[current_resident_id],
    )

    __table_args__ = (Index("idx_household_water", "is_water_customer"),)

    def __repr__(self) -> str:
        return (
            f"<Household(id={self.id}, unit_label={self.unit_label!r}, "
            f"occupancy_status={self.occupancy_status}, "
            f"current_resident_id={self.current_resident_id})>"
        )


__all__ = ["Household", "OccupancyStatus", "Resident"]
