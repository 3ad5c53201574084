"""
Module: bookkeeping_kernel.models.recurring
Responsibility: ORM persistence for recurring journal templates, their
    template lines, and the GeneratedJournal join rows that trace every
    materialized occurrence.
Architecture position: Kernel > Models.  May import from db/ and
    models/transaction.py.

Invariants enforced:
    - Template lines balance like a real transaction (checked by
      RecurringJournalService before insert/update).
    - (recurring_journal_id, occurrence_number) is unique in
      generated_journals: a duplicate generation attempt fails cleanly
      instead of double-posting, even with concurrent sweep workers.
    - COMPLETED and CANCELLED are terminal.

Failure modes:
    - IntegrityError on a duplicate occurrence row (a concurrent worker won).

Audit relevance:
    GeneratedJournal rows are append-only and link each generated ledger
    transaction back to its template and occurrence.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookkeeping_kernel.db.base import Base, TenantScopedMixin, TrackedBase, UUIDString
from bookkeeping_kernel.db.types import ZERO
from bookkeeping_kernel.models.transaction import TransactionType


class RecurrenceFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"


class RecurringJournalStatus(str, Enum):
    """
    active <-> paused by command; active -> completed automatically;
    any non-terminal -> cancelled.
    """

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    RecurringJournalStatus.COMPLETED,
    RecurringJournalStatus.CANCELLED,
})


class RecurringJournal(TenantScopedMixin, TrackedBase):
    """
    A template that produces future transactions on a recurrence calendar.

    Contract:
        next_run_date is the scheduled date of the next occurrence; it is
        advanced only after a successful generation.

    Guarantees:
        - occurrence_count equals the number of GeneratedJournal rows.
        - interval_count >= 1.
        - anchor_day is the start date's day, or the next run's day as of
          the last frequency change.
    """

    __tablename__ = "recurring_journals"

    __table_args__ = (
        Index("idx_recurring_due", "status", "next_run_date"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    transaction_type: Mapped[TransactionType] = mapped_column(
        String(20),
        default=TransactionType.JOURNAL,
        nullable=False,
    )

    total_amount: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)

    frequency: Mapped[RecurrenceFrequency] = mapped_column(String(20), nullable=False)
    interval_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Preferred day of month for monthly, quarterly and annual steps
    anchor_day: Mapped[int] = mapped_column(Integer, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    max_occurrences: Mapped[int | None] = mapped_column(Integer, nullable=True)

    occurrence_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    next_run_date: Mapped[date] = mapped_column(Date, nullable=False)
    last_run_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[RecurringJournalStatus] = mapped_column(
        String(20),
        default=RecurringJournalStatus.ACTIVE,
        nullable=False,
    )

    lines: Mapped[list["RecurringJournalLine"]] = relationship(
        back_populates="recurring_journal",
        cascade="all, delete-orphan",
        order_by="RecurringJournalLine.line_order",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<RecurringJournal {self.name} status={self.status}>"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class RecurringJournalLine(TenantScopedMixin, Base):
    """One template leg: account plus debit/credit template amounts."""

    __tablename__ = "recurring_journal_lines"

    recurring_journal_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("recurring_journals.id"),
        nullable=False,
        index=True,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    debit_amount: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)
    credit_amount: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)
    line_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    recurring_journal: Mapped["RecurringJournal"] = relationship(back_populates="lines")


class GeneratedJournal(TenantScopedMixin, Base):
    """Join row: one materialized occurrence of a recurring journal."""

    __tablename__ = "generated_journals"

    __table_args__ = (
        UniqueConstraint(
            "recurring_journal_id",
            "occurrence_number",
            name="uq_generated_journal_occurrence",
        ),
    )

    recurring_journal_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("recurring_journals.id"),
        nullable=False,
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=False,
    )

    occurrence_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Scheduled date the occurrence stands for
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)

    generated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<GeneratedJournal {self.recurring_journal_id} "
            f"#{self.occurrence_number}>"
        )
