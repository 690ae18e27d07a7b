"""Billing, allocation and reconciliation services.

Every service takes an AsyncSession at construction; collaborators
(tariff resolver, period index, anomaly detector) are injected the same way.
"""

from estate_ledger.services.anomaly_detector import MeterAnomalyDetector
from estate_ledger.services.audit_service import AuditService
from estate_ledger.services.balance_service import BalanceReconciler, ReconciliationReport
from estate_ledger.services.billing import BillOutcome, GenerationResult, OutcomeKind, SkipReason
from estate_ledger.services.errors import (
    AllocationError,
    DuplicateError,
    LedgerError,
    NotFoundError,
    TariffConfigurationError,
)
from estate_ledger.services.flat_fee_billing_service import FlatFeeBillGenerator
from estate_ledger.services.meter_reading_service import MeterReadingService
from estate_ledger.services.payment_allocation_service import (
    AllocationResult,
    BillKind,
    PaymentAllocator,
)
from estate_ledger.services.period_service import PeriodIndex
from estate_ledger.services.tariff_service import TariffResolver
from estate_ledger.services.water_billing_service import MeterReadingInput, WaterBillGenerator

__all__ = [
    "AllocationError",
    "AllocationResult",
    "AuditService",
    "BalanceReconciler",
    "BillKind",
    "BillOutcome",
    "DuplicateError",
    "FlatFeeBillGenerator",
    "GenerationResult",
    "LedgerError",
    "MeterAnomalyDetector",
    "MeterReadingInput",
    "MeterReadingService",
    "NotFoundError",
    "OutcomeKind",
    "PaymentAllocator",
    "PeriodIndex",
    "ReconciliationReport",
    "SkipReason",
    "TariffConfigurationError",
    "TariffResolver",
    "WaterBillGenerator",
]
