"""
SequenceService -- tenant-scoped transaction numbers via locked counter rows.

Responsibility:
    Allocates human-readable transaction numbers of the form
    ``<PREFIX>-<YEAR>-<SEQ>`` (e.g. ``SAL-2025-0001``).  Each tenant has one
    counter row per (transaction type, year), locked with
    ``SELECT ... FOR UPDATE`` while it is incremented.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by LedgerService inside the posting transaction.

Invariants enforced:
    - Monotonicity: numbers for one (tenant, type, year) strictly increase.
      Counting existing transactions (max-plus-one) is never used; the
      locked counter row is the sole source of truth.
    - Transactional: the increment is only visible once the caller
      commits.  A rolled-back posting returns its number.

Failure modes:
    - IntegrityError: concurrent first use of a counter (handled with a
      savepoint rollback and a locked re-read).

Audit relevance:
    Allocation is logged at DEBUG with the counter name and value.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import BigInteger, String, UniqueConstraint, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from bookkeeping_kernel.db.base import Base, TenantScopedMixin
from bookkeeping_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class TransactionNumberCounter(TenantScopedMixin, Base):
    """
    Counter table.

    One row per (tenant, counter name).  Row-level locking ensures
    monotonicity under concurrency.
    """

    __tablename__ = "transaction_number_counters"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_counter_tenant_name"),
    )

    # Counter name, "<transaction_type>:<year>" (e.g. "sale:2025")
    name: Mapped[str] = mapped_column(String(50), nullable=False)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Service for allocating transaction numbers.

    Contract:
        Accepts a tenant and counter name and returns the next value.  The
        increment is transactional -- it is only committed when the
        caller's transaction commits.

    Guarantees:
        - Strictly monotonic values via a locked counter row.
        - ``SELECT ... FOR UPDATE`` serializes concurrent allocations for
          the same counter (PostgreSQL; SQLite serializes whole writes).

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def counter_name(transaction_type: str, year: int) -> str:
        return f"{transaction_type}:{year}"

    def _locked_counter(self, tenant_id: UUID, name: str) -> TransactionNumberCounter | None:
        return self._session.execute(
            select(TransactionNumberCounter)
            .where(
                TransactionNumberCounter.tenant_id == tenant_id,
                TransactionNumberCounter.name == name,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, tenant_id: UUID, name: str) -> int:
        """
        Get the next value for a tenant's named counter.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously committed for this (tenant, name).
            - The counter row stays locked until the transaction ends.
        """
        counter = self._locked_counter(tenant_id, name)

        if counter is None:
            # First use; another session may be creating the same row
            savepoint = self._session.begin_nested()
            try:
                counter = TransactionNumberCounter(
                    tenant_id=tenant_id, name=name, current_value=1
                )
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"tenant_id": str(tenant_id), "sequence_name": name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"tenant_id": str(tenant_id), "sequence_name": name},
                )
                savepoint.rollback()
                counter = self._locked_counter(tenant_id, name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={
                "tenant_id": str(tenant_id),
                "sequence_name": name,
                "value": counter.current_value,
            },
        )
        return counter.current_value

    def next_transaction_number(
        self,
        tenant_id: UUID,
        transaction_type: str,
        year: int,
        prefix: str,
        width: int = 4,
    ) -> str:
        """Allocate ``<prefix>-<year>-<seq>`` with seq zero-padded to width."""
        seq = self.next_value(tenant_id, self.counter_name(transaction_type, year))
        return f"{prefix}-{year}-{seq:0{width}d}"

    def current_value(self, tenant_id: UUID, name: str) -> int | None:
        """Current value of a counter without incrementing, or None."""
        counter = self._session.execute(
            select(TransactionNumberCounter).where(
                TransactionNumberCounter.tenant_id == tenant_id,
                TransactionNumberCounter.name == name,
            )
        ).scalar_one_or_none()
        return counter.current_value if counter else None
