"""
Module: bookkeeping_kernel.models.transaction
Responsibility: ORM persistence for double-entry transactions and their
    lines.
Architecture position: Kernel > Models.  May import from db/ and
    models/account.py.

Invariants enforced:
    - sum(line.debit_amount) == sum(line.credit_amount) for draft and posted
      transactions.  Checked by LedgerService BEFORE persistence; the
      is_balanced property lets tests and selectors re-verify it.
    - (tenant_id, transaction_number) is unique.
    - (tenant_id, idempotency_key) is unique when a key is supplied.
    - Rows are append-only: transactions are voided, never deleted, and lines
      are frozen once the parent leaves draft (db/immutability.py).

Failure modes:
    - IntegrityError on a duplicate transaction number or idempotency key.
    - ImmutabilityViolationError on edits to posted/void rows.

Audit relevance:
    Void keeps the original row with void_reason, voided_by_id and voided_at
    so the trail of every balance change stays reconstructable.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookkeeping_kernel.db.base import Base, TenantScopedMixin, TrackedBase, UUIDString
from bookkeeping_kernel.db.types import ZERO, to_cents

if TYPE_CHECKING:
    from bookkeeping_kernel.models.account import Account


class TransactionType(str, Enum):
    """Kind of financial event; determines the number prefix."""

    SALE = "sale"
    PURCHASE = "purchase"
    RECEIPT = "receipt"
    PAYMENT = "payment"
    EXPENSE = "expense"
    JOURNAL = "journal"
    TRANSFER = "transfer"


class TransactionStatus(str, Enum):
    """Lifecycle status.  VOID is terminal."""

    DRAFT = "draft"
    POSTED = "posted"
    VOID = "void"


class ReferenceType(str, Enum):
    """Originating document kind."""

    INVOICE = "invoice"
    BILL = "bill"
    MANUAL = "manual"
    RECURRING_JOURNAL = "recurring_journal"


class PartyType(str, Enum):
    CUSTOMER = "customer"
    VENDOR = "vendor"


class PaymentMode(str, Enum):
    CASH = "cash"
    BANK = "bank"
    UPI = "upi"
    CARD = "card"
    CREDIT = "credit"
    CHEQUE = "cheque"


class Transaction(TenantScopedMixin, TrackedBase):
    """
    An atomic financial event made of two or more balanced lines.

    Contract:
        Created once.  Mutable only while DRAFT; POSTED -> VOID is the only
        further transition and is terminal.

    Guarantees:
        - lines are ordered by line_order.
        - transaction_number is unique per tenant.

    Non-goals:
        - Does not apply balance effects; LedgerService does.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        UniqueConstraint("tenant_id", "transaction_number", name="uq_transaction_number"),
        UniqueConstraint("tenant_id", "idempotency_key", name="uq_transaction_idempotency"),
        Index("idx_transaction_tenant_date", "tenant_id", "transaction_date"),
        Index("idx_transaction_tenant_status", "tenant_id", "status"),
    )

    store_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Human-readable number, e.g. SAL-2025-0001
    transaction_number: Mapped[str] = mapped_column(String(40), nullable=False)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    transaction_type: Mapped[TransactionType] = mapped_column(String(20), nullable=False)

    # Originating document
    reference_type: Mapped[ReferenceType | None] = mapped_column(String(30), nullable=True)
    reference_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Counterparty
    party_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    party_type: Mapped[PartyType | None] = mapped_column(String(20), nullable=True)
    party_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)

    payment_mode: Mapped[PaymentMode | None] = mapped_column(String(20), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[TransactionStatus] = mapped_column(
        String(10),
        default=TransactionStatus.DRAFT,
        nullable=False,
    )

    # Caller-supplied retry key
    idempotency_key: Mapped[str | None] = mapped_column(String(200), nullable=True)

    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    voided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    lines: Mapped[list["TransactionLine"]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionLine.line_order",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.transaction_number} status={self.status}>"

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit_amount for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit_amount for line in self.lines), ZERO)

    @property
    def is_balanced(self) -> bool:
        """Check the double-entry invariant in integer cents."""
        return to_cents(self.total_debits) == to_cents(self.total_credits)

    @property
    def is_draft(self) -> bool:
        return self.status == TransactionStatus.DRAFT

    @property
    def is_posted(self) -> bool:
        return self.status == TransactionStatus.POSTED

    @property
    def is_void(self) -> bool:
        return self.status == TransactionStatus.VOID

    def amount_on(self, account_id: UUID) -> Decimal:
        """Net debit (debit - credit) this transaction puts on one account."""
        return sum(
            (
                line.debit_amount - line.credit_amount
                for line in self.lines
                if line.account_id == account_id
            ),
            ZERO,
        )


class TransactionLine(TenantScopedMixin, Base):
    """
    One leg of a transaction.

    Owned exclusively by its Transaction; only removed together with a draft
    parent's line set.
    """

    __tablename__ = "transaction_lines"

    __table_args__ = (
        Index("idx_transaction_line_account", "account_id"),
        Index("idx_transaction_line_transaction", "transaction_id"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    debit_amount: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)
    credit_amount: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)

    tax_rate_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    tax_amount: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)

    line_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    transaction: Mapped["Transaction"] = relationship(back_populates="lines")

    account: Mapped["Account"] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<TransactionLine {self.account_id} "
            f"Dr {self.debit_amount} Cr {self.credit_amount}>"
        )
