"""Cash-book ORM models: accounts, categories and the money movements between them."""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from estate_ledger.models import Base, BaseModel


class Account(Base, BaseModel):
    """Bank or cash account holding the neighborhood's money.

    Accounts and categories are two independent views of the same pool of
    money; the balance reconciler compares them.
    """

    __tablename__ = "accounts"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        comment="Account label (e.g., 'Kas', 'Bank BRI')",
    )
    starting_balance: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
    )

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, name={self.name!r}, starting_balance={self.starting_balance})>"


class Category(Base, BaseModel):
    """Purpose bucket for money (e.g., 'IPL', 'Air', 'Kegiatan')."""

    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )
    starting_balance: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
    )
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name={self.name!r}, starting_balance={self.starting_balance})>"


class IncomingPayment(Base, BaseModel):
    """Money received into an account, tagged with a category.

    Payments tied to a household are the source for bill allocations.
    """

    __tablename__ = "incoming_payments"

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"),
        nullable=False,
        index=True,
    )
    household_id: Mapped[int | None] = mapped_column(
        ForeignKey("households.id"),
        nullable=True,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<IncomingPayment(id={self.id}, account_id={self.account_id}, "
            f"category_id={self.category_id}, household_id={self.household_id}, "
            f"amount={self.amount})>"
        )


class Expense(Base, BaseModel):
    """Money paid out of an account, tagged with a category."""

    __tablename__ = "expenses"

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Expense(id={self.id}, account_id={self.account_id}, "
            f"category_id={self.category_id}, amount={self.amount})>"
        )


class Transfer(Base, BaseModel):
    """Book transfer between two accounts. Category balances are unaffected."""

    __tablename__ = "transfers"

    from_account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )
    to_account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    transfer_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (Index("idx_transfer_from_to", "from_account_id", "to_account_id"),)

    def __repr__(self) -> str:
        return (
            f"<Transfer(id={self.id}, from_account_id={self.from_account_id}, "
            f"to_account_id={self.to_account_id}, amount={self.amount})>"
        )


class EscrowDeposit(Base, BaseModel):
    """Money held in an account on behalf of a resident (dana titipan).

    Counted in the account view only; it belongs to no category.
    """

    __tablename__ = "escrow_deposits"

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )
    household_id: Mapped[int | None] = mapped_column(
        ForeignKey("households.id"),
        nullable=True,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    deposit_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<EscrowDeposit(id={self.id}, account_id={self.account_id}, "
            f"household_id={self.household_id}, amount={self.amount})>"
        )


__all__ = ["Account", "Category", "EscrowDeposit", "Expense", "IncomingPayment", "Transfer"]
