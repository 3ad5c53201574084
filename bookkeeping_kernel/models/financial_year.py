"""
Module: bookkeeping_kernel.models.financial_year
Responsibility: ORM persistence for tenant financial years.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Financial years of one tenant never overlap (FinancialYearService).
    - A closed year is immutable (db/immutability.py) and refuses postings
      and voids dated inside it (LedgerService).

Audit relevance:
    closed_at / closed_by_id record who froze the year.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Boolean, Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from bookkeeping_kernel.db.base import TenantScopedMixin, TrackedBase, UUIDString


class FinancialYear(TenantScopedMixin, TrackedBase):
    """An accounting year for a tenant, e.g. FY 2025-26."""

    __tablename__ = "financial_years"

    __table_args__ = (
        Index("idx_financial_year_range", "tenant_id", "year_start", "year_end"),
    )

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    year_start: Mapped[date] = mapped_column(Date, nullable=False)
    year_end: Mapped[date] = mapped_column(Date, nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<FinancialYear {self.name} closed={self.is_closed}>"

    def contains(self, day: date) -> bool:
        return self.year_start <= day <= self.year_end
