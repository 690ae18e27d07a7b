"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from estate_ledger.models.allocation import (  # noqa: E402
    FlatFeePaymentAllocation,
    WaterPaymentAllocation,
)
from estate_ledger.models.audit_log import AuditLog  # noqa: E402
from estate_ledger.models.bill import (  # noqa: E402
    BillStatus,
    FeeType,
    FlatFeeBill,
    WaterBill,
    WaterBillClassification,
)
from estate_ledger.models.household import Household, OccupancyStatus, Resident  # noqa: E402
from estate_ledger.models.ledger import (  # noqa: E402
    Account,
    Category,
    EscrowDeposit,
    Expense,
    IncomingPayment,
    Transfer,
)
from estate_ledger.models.period import Period  # noqa: E402
from estate_ledger.models.tariff import FlatFeeTariff, WaterTariff  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "Account",
    "AuditLog",
    "BillStatus",
    "Category",
    "EscrowDeposit",
    "Expense",
    "FeeType",
    "FlatFeeBill",
    "FlatFeePaymentAllocation",
    "FlatFeeTariff",
    "Household",
    "IncomingPayment",
    "OccupancyStatus",
    "Period",
    "Resident",
    "Transfer",
    "WaterBill",
    "WaterBillClassification",
    "WaterPaymentAllocation",
    "WaterTariff",
]
