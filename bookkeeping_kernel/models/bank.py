"""
Module: bookkeeping_kernel.models.bank
Responsibility: ORM persistence for bank accounts and imported bank
    statement lines.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (bank_account_id, external_id) is unique: re-importing an overlapping
      statement cannot create duplicate rows.
    - reconciled_transaction_id is unique: one bank line per ledger
      transaction, and a bank line holds at most one link at a time.

Failure modes:
    - IntegrityError when a concurrent import or reconcile races past the
      service-level checks.

Audit relevance:
    reconciled_at / reconciled_by_id record who asserted each correspondence
    between the bank and the ledger.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bookkeeping_kernel.db.base import TenantScopedMixin, TrackedBase, UUIDString
from bookkeeping_kernel.db.types import ZERO


class BankAccountKind(str, Enum):
    SAVINGS = "savings"
    CURRENT = "current"
    OVERDRAFT = "overdraft"
    CASH_CREDIT = "cash_credit"


class BankAccount(TenantScopedMixin, TrackedBase):
    """
    A real bank account whose statements are imported and reconciled.

    account_id links the ledger account (asset, bank or cash) that mirrors
    this bank account in the chart; matching compares bank lines with that
    account's side of each ledger transaction.
    """

    __tablename__ = "bank_accounts"

    account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    bank_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_number_last4: Mapped[str | None] = mapped_column(String(4), nullable=True)
    ifsc_code: Mapped[str | None] = mapped_column(String(11), nullable=True)
    branch: Mapped[str | None] = mapped_column(String(255), nullable=True)
    account_kind: Mapped[BankAccountKind] = mapped_column(
        String(20),
        default=BankAccountKind.CURRENT,
        nullable=False,
    )
    opening_balance: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<BankAccount {self.bank_name} {self.account_name}>"


class BankTransaction(TenantScopedMixin, TrackedBase):
    """
    One row of an imported bank statement.

    debit_amount is a withdrawal and credit_amount a deposit, from the
    bank's point of view.  Mutated only by reconciliation (link/unlink).
    """

    __tablename__ = "bank_transactions"

    __table_args__ = (
        UniqueConstraint("bank_account_id", "external_id", name="uq_bank_transaction_external"),
        UniqueConstraint("reconciled_transaction_id", name="uq_bank_transaction_reconciled"),
        Index("idx_bank_transaction_account_date", "bank_account_id", "transaction_date"),
        Index("idx_bank_transaction_reconciled", "bank_account_id", "is_reconciled"),
    )

    bank_account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("bank_accounts.id"),
        nullable=False,
    )

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    value_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    debit_amount: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)
    credit_amount: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)

    # Running balance as reported by the bank
    balance: Mapped[Decimal | None] = mapped_column(nullable=True)

    is_reconciled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reconciled_transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=True,
    )
    reconciled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reconciled_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    import_batch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Bank-supplied id, or a content fingerprint when the bank gives none
    external_id: Mapped[str] = mapped_column(String(128), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<BankTransaction {self.transaction_date} "
            f"Dr {self.debit_amount} Cr {self.credit_amount}>"
        )

    @property
    def net_amount(self) -> Decimal:
        """Deposit positive, withdrawal negative."""
        return self.credit_amount - self.debit_amount

    @property
    def amount(self) -> Decimal:
        return abs(self.net_amount)
