"""
Pure recurrence arithmetic for recurring journals.

Contract:
    ``advance()``, ``roll_forward()``, ``is_exhausted()`` and ``is_due()``
    are PURE -- no I/O, no clock access.  The service passes in the stored
    state and "today".

Architecture: bookkeeping_kernel/domain.  ZERO I/O.

Month arithmetic:
    Monthly, quarterly and annual steps clamp to the last day of a short
    month and re-anchor to the template's start day when the month allows,
    so a schedule starting on the 31st runs Jan 31, Feb 28, Mar 31, Apr 30.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta

from bookkeeping_kernel.models.recurring import RecurrenceFrequency, RecurringJournalStatus

_DAY_STEPS = {
    RecurrenceFrequency.DAILY: 1,
    RecurrenceFrequency.WEEKLY: 7,
    RecurrenceFrequency.BIWEEKLY: 14,
}

_MONTH_STEPS = {
    RecurrenceFrequency.MONTHLY: 1,
    RecurrenceFrequency.QUARTERLY: 3,
    RecurrenceFrequency.ANNUALLY: 12,
}


def add_months(day: date, months: int, anchor_day: int | None = None) -> date:
    """Add calendar months, clamping to month end.

    Args:
        day: Starting date.
        months: Number of months to add (may be negative).
        anchor_day: Preferred day of month; defaults to ``day.day``.
    """
    anchor = anchor_day or day.day
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(anchor, last_day))


def advance(
    current: date,
    frequency: RecurrenceFrequency | str,
    interval_count: int = 1,
    anchor_day: int | None = None,
) -> date:
    """Advance a run date by one period of ``interval_count`` units.

    daily +N days, weekly +7N days, biweekly +14N days, monthly +N months,
    quarterly +3N months, annually +N years.

    Raises:
        ValueError: If interval_count < 1 or the frequency is unknown.
    """
    if interval_count < 1:
        raise ValueError(f"interval_count must be >= 1, got {interval_count}")

    frequency = RecurrenceFrequency(frequency)
    if frequency in _DAY_STEPS:
        return current + timedelta(days=_DAY_STEPS[frequency] * interval_count)
    return add_months(current, _MONTH_STEPS[frequency] * interval_count, anchor_day)


def is_exhausted(
    occurrence_count: int,
    max_occurrences: int | None,
    next_run_date: date,
    end_date: date | None,
) -> bool:
    """True when no further occurrence may be generated."""
    if max_occurrences is not None and occurrence_count >= max_occurrences:
        return True
    if end_date is not None and next_run_date > end_date:
        return True
    return False


def is_due(
    status: RecurringJournalStatus | str,
    next_run_date: date,
    today: date,
    occurrence_count: int,
    max_occurrences: int | None,
    end_date: date | None,
) -> bool:
    """Should the sweep generate an occurrence for this template today?"""
    if status != RecurringJournalStatus.ACTIVE:
        return False
    if next_run_date > today:
        return False
    return not is_exhausted(occurrence_count, max_occurrences, next_run_date, end_date)


def roll_forward(
    current: date,
    limit: date,
    frequency: RecurrenceFrequency | str,
    interval_count: int = 1,
    anchor_day: int | None = None,
    *,
    inclusive: bool = False,
) -> date:
    """Step ``current`` by whole periods until it lies after ``limit``.

    With ``inclusive=True`` the result may equal ``limit``.  A date already
    past the limit is returned unchanged, and the anchor day is kept, so
    a schedule on the 31st stays on month ends.
    """
    while current < limit or (current == limit and not inclusive):
        current = advance(current, frequency, interval_count, anchor_day)
    return current
