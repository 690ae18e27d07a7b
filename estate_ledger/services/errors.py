"""Custom exception classes for billing and allocation.

Lookups raise these; batch operations catch them at their boundary and turn
them into per-household outcomes or a failed result.
"""


class LedgerError(Exception):
    """Base exception for ledger engine errors."""

    pass


class NotFoundError(LedgerError):
    """Entity, tariff or previous reading could not be resolved."""

    pass


class DuplicateError(LedgerError):
    """Record already exists (e.g., a bill for the same household and period)."""

    pass


class TariffConfigurationError(LedgerError):
    """Tariff only resolved through the cross-tier fallback; operator must fix tariffs."""

    pass


class AllocationError(LedgerError):
    """Payment cannot be allocated (no household, no outstanding bills, bad amount)."""

    pass


__all__ = [
    "AllocationError",
    "DuplicateError",
    "LedgerError",
    "NotFoundError",
    "TariffConfigurationError",
]
