"""
FinancialYearService -- financial year registry and closed-year guard.

Responsibility:
    Creates a tenant's financial years, marks them closed, and answers the
    Ledger Engine's question "may this date still be posted to?".

Architecture position:
    Kernel > Services.  Called by LedgerService on every post and void.

Invariants enforced:
    - Financial years of one tenant never overlap.
    - A closed year is frozen (ORM listener) and refuses postings and
      voids dated inside it.
    - At most one year per tenant is flagged current.

Failure modes:
    - ValidationError: overlap, inverted dates, blank name.
    - InvalidStateError: closing an already closed year.
    - ClosedFinancialYearError: posting into a closed year.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select

from bookkeeping_kernel.exceptions import (
    ClosedFinancialYearError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from bookkeeping_kernel.logging_config import get_logger
from bookkeeping_kernel.models.financial_year import FinancialYear
from bookkeeping_kernel.services.base import BaseService

logger = get_logger("services.financial_year")


class FinancialYearService(BaseService):
    """Create, close and look up financial years."""

    def get_financial_year(self, tenant_id: UUID, year_id: UUID) -> FinancialYear:
        year = self.session.execute(
            select(FinancialYear).where(
                FinancialYear.id == year_id,
                FinancialYear.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if year is None:
            raise NotFoundError("FinancialYear", str(year_id))
        return year

    def list_financial_years(self, tenant_id: UUID) -> list[FinancialYear]:
        return list(
            self.session.execute(
                select(FinancialYear)
                .where(FinancialYear.tenant_id == tenant_id)
                .order_by(FinancialYear.year_start)
            ).scalars().all()
        )

    def find_for_date(self, tenant_id: UUID, day: date) -> FinancialYear | None:
        return self.session.execute(
            select(FinancialYear).where(
                FinancialYear.tenant_id == tenant_id,
                FinancialYear.year_start <= day,
                FinancialYear.year_end >= day,
            )
        ).scalar_one_or_none()

    def ensure_open(self, tenant_id: UUID, day: date) -> None:
        """
        Refuse a date that falls inside a closed financial year.

        Dates outside every registered year are allowed.

        Raises:
            ClosedFinancialYearError: The date's year is closed.
        """
        year = self.find_for_date(tenant_id, day)
        if year is not None and year.is_closed:
            raise ClosedFinancialYearError(str(year.id), year.name, day.isoformat())

    def create_financial_year(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        name: str,
        year_start: date,
        year_end: date,
        is_current: bool = False,
    ) -> FinancialYear:
        """
        Raises:
            ValidationError: Blank name, year_end before year_start, or an
                overlap with an existing year of the tenant.
        """
        with self._write_scope():
            name = (name or "").strip()
            if not name:
                raise ValidationError("Financial year name is required", field="name")
            if year_end < year_start:
                raise ValidationError(
                    "year_end must not be before year_start", field="year_end"
                )

            overlapping = self.session.execute(
                select(FinancialYear).where(
                    FinancialYear.tenant_id == tenant_id,
                    FinancialYear.year_start <= year_end,
                    FinancialYear.year_end >= year_start,
                )
            ).scalars().first()
            if overlapping is not None:
                raise ValidationError(
                    f"Financial year overlaps {overlapping.name} "
                    f"({overlapping.year_start} to {overlapping.year_end})",
                    field="year_start",
                )

            if is_current:
                self._clear_current(tenant_id, actor_id)

            year = FinancialYear(
                tenant_id=tenant_id,
                name=name,
                year_start=year_start,
                year_end=year_end,
                is_current=is_current,
                is_closed=False,
                created_by_id=actor_id,
            )
            self.session.add(year)
            self.session.flush()

        logger.info(
            "financial_year_created",
            extra={
                "tenant_id": str(tenant_id),
                "financial_year_id": str(year.id),
                "year_name": year.name,
                "year_start": year_start.isoformat(),
                "year_end": year_end.isoformat(),
            },
        )
        return year

    def _clear_current(self, tenant_id: UUID, actor_id: UUID) -> None:
        # Closed years are never current, so this only touches open rows
        for other in self.session.execute(
            select(FinancialYear).where(
                FinancialYear.tenant_id == tenant_id,
                FinancialYear.is_current == True,  # noqa: E712
                FinancialYear.is_closed == False,  # noqa: E712
            )
        ).scalars():
            other.is_current = False
            other.updated_by_id = actor_id

    def close_financial_year(
        self, tenant_id: UUID, year_id: UUID, actor_id: UUID
    ) -> FinancialYear:
        """
        Mark a financial year closed.  Closing also clears is_current.

        Raises:
            NotFoundError: Unknown year.
            InvalidStateError: The year is already closed.
        """
        with self._write_scope():
            year = self.session.execute(
                select(FinancialYear)
                .where(FinancialYear.id == year_id, FinancialYear.tenant_id == tenant_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if year is None:
                raise NotFoundError("FinancialYear", str(year_id))
            if year.is_closed:
                raise InvalidStateError("FinancialYear", str(year_id), "closed", "close")

            year.is_closed = True
            year.is_current = False
            year.closed_at = self._clock.now()
            year.closed_by_id = actor_id
            year.updated_by_id = actor_id

        logger.info(
            "financial_year_closed",
            extra={
                "tenant_id": str(tenant_id),
                "financial_year_id": str(year_id),
                "year_name": year.name,
                "actor_id": str(actor_id),
            },
        )
        return year
