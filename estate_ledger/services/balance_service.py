"""Balance reconciliation between the category view and the account view.

Category ending = starting + inflows - outflows
Account ending  = starting + inflows - outflows + transfers in - transfers out
                  + escrow deposits

Expected identity: sum(category endings) + sum(escrow) == sum(account endings).
A mismatch is reported and logged, never raised.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import NamedTuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from estate_ledger.config import LedgerSettings, get_settings
from estate_ledger.models.ledger import (
    Account,
    Category,
    EscrowDeposit,
    Expense,
    IncomingPayment,
    Transfer,
)
from estate_ledger.services.billing import ZERO, to_money

logger = logging.getLogger(__name__)


@dataclass
class CategoryBalance:
    category_id: int
    name: str
    starting_balance: Decimal
    inflows: Decimal
    outflows: Decimal

    @property
    def ending_balance(self) -> Decimal:
        return self.starting_balance + self.inflows - self.outflows


@dataclass
class AccountBalance:
    account_id: int
    name: str
    starting_balance: Decimal
    inflows: Decimal
    outflows: Decimal
    transfers_in: Decimal
    transfers_out: Decimal
    escrow: Decimal

    @property
    def ending_balance(self) -> Decimal:
        return (
            self.starting_balance
            + self.inflows
            - self.outflows
            + self.transfers_in
            - self.transfers_out
            + self.escrow
        )

    @property
    def balance_excluding_escrow(self) -> Decimal:
        return self.ending_balance - self.escrow


class TotalsComparison(NamedTuple):
    """Result of checking the category/escrow/account identity."""

    expected_account_total: Decimal
    discrepancy: Decimal
    is_consistent: bool


@dataclass
class ReconciliationReport:
    categories: list[CategoryBalance] = field(default_factory=list)
    accounts: list[AccountBalance] = field(default_factory=list)
    category_total: Decimal = ZERO
    escrow_total: Decimal = ZERO
    account_total: Decimal = ZERO
    expected_account_total: Decimal = ZERO
    discrepancy: Decimal = ZERO
    is_consistent: bool = True


class BalanceReconciler:
    """Compute category and account balances and check they agree."""

    def __init__(self, session: AsyncSession, settings: LedgerSettings | None = None):
        """Initialize with database session.

        Args:
            session: AsyncSession for database operations
            settings: Ledger settings (tolerance); global settings if omitted
        """
        self.session = session
        self.settings = settings or get_settings()

    @staticmethod
    def compare_totals(
        category_total: Decimal,
        escrow_total: Decimal,
        account_total: Decimal,
        tolerance: Decimal = Decimal("0.01"),
    ) -> TotalsComparison:
        """Check sum(categories) + sum(escrow) against sum(accounts).

        Args:
            category_total: Sum of category ending balances
            escrow_total: Sum of escrow deposits
            account_total: Sum of account ending balances
            tolerance: Largest absolute difference still considered consistent

        Returns:
            TotalsComparison with expected total, absolute discrepancy and verdict
        """
        expected = to_money(Decimal(str(category_total)) + Decimal(str(escrow_total)))
        discrepancy = abs(expected - to_money(account_total))
        return TotalsComparison(expected, discrepancy, discrepancy <= Decimal(str(tolerance)))

    async def _sums_by(self, column, group_column) -> dict[int, Decimal]:
        result = await self.session.execute(
            select(group_column, func.sum(column)).group_by(group_column)
        )
        return {key: to_money(total or 0) for key, total in result.all() if key is not None}

    async def category_balances(self) -> list[CategoryBalance]:
        """Ending balance of every category."""
        inflows = await self._sums_by(IncomingPayment.amount, IncomingPayment.category_id)
        outflows = await self._sums_by(Expense.amount, Expense.category_id)

        categories = (
            await self.session.execute(select(Category).order_by(Category.id))
        ).scalars().all()
        return [
            CategoryBalance(
                category_id=category.id,
                name=category.name,
                starting_balance=to_money(category.starting_balance),
                inflows=inflows.get(category.id, ZERO),
                outflows=outflows.get(category.id, ZERO),
            )
            for category in categories
        ]

    async def account_balances(self) -> list[AccountBalance]:
        """Ending balance of every account, escrow included."""
        inflows = await self._sums_by(IncomingPayment.amount, IncomingPayment.account_id)
        outflows = await self._sums_by(Expense.amount, Expense.account_id)
        transfers_in = await self._sums_by(Transfer.amount, Transfer.to_account_id)
        transfers_out = await self._sums_by(Transfer.amount, Transfer.from_account_id)
        escrow = await self._sums_by(EscrowDeposit.amount, EscrowDeposit.account_id)

        accounts = (
            await self.session.execute(select(Account).order_by(Account.id))
        ).scalars().all()
        return [
            AccountBalance(
                account_id=account.id,
                name=account.name,
                starting_balance=to_money(account.starting_balance),
                inflows=inflows.get(account.id, ZERO),
                outflows=outflows.get(account.id, ZERO),
                transfers_in=transfers_in.get(account.id, ZERO),
                transfers_out=transfers_out.get(account.id, ZERO),
                escrow=escrow.get(account.id, ZERO),
            )
            for account in accounts
        ]

    async def escrow_total(self) -> Decimal:
        total = (
            await self.session.execute(select(func.coalesce(func.sum(EscrowDeposit.amount), 0)))
        ).scalar_one()
        return to_money(total)

    async def total_balance(self) -> Decimal:
        """Money held across all accounts, excluding escrow (dashboard total)."""
        accounts = await self.account_balances()
        return sum((account.balance_excluding_escrow for account in accounts), ZERO)

    async def reconcile(self) -> ReconciliationReport:
        """Build both breakdowns and check the category/escrow/account identity."""
        categories = await self.category_balances()
        accounts = await self.account_balances()
        escrow_total = await self.escrow_total()

        category_total = sum((c.ending_balance for c in categories), ZERO)
        account_total = sum((a.ending_balance for a in accounts), ZERO)
        comparison = self.compare_totals(
            category_total,
            escrow_total,
            account_total,
            self.settings.reconciliation_tolerance,
        )

        if not comparison.is_consistent:
            logger.warning(
                "Balance mismatch: categories %s + escrow %s = %s, accounts %s (difference %s)",
                category_total,
                escrow_total,
                comparison.expected_account_total,
                account_total,
                comparison.discrepancy,
            )

        return ReconciliationReport(
            categories=categories,
            accounts=accounts,
            category_total=category_total,
            escrow_total=escrow_total,
            account_total=account_total,
            expected_account_total=comparison.expected_account_total,
            discrepancy=comparison.discrepancy,
            is_consistent=comparison.is_consistent,
        )


__all__ = [
    "AccountBalance",
    "BalanceReconciler",
    "CategoryBalance",
    "ReconciliationReport",
    "TotalsComparison",
]
