"""
Tests for RecurringJournalScheduler.

The scheduler opens its own sessions.  On SQLite every session shares one
in-memory connection, so the fixture session is closed before a tick.
"""

import threading
from datetime import date

import pytest
from sqlalchemy import func, select

from bookkeeping_kernel.domain.clock import DeterministicClock
from bookkeeping_kernel.domain.dtos import RecurringJournalInput, RecurringLineInput
from bookkeeping_kernel.models.recurring import GeneratedJournal, RecurrenceFrequency
from bookkeeping_kernel.services import RecurringJournalScheduler


class ExplodingClock(DeterministicClock):
    def now(self):
        raise RuntimeError("clock unavailable")


class SignallingScheduler(RecurringJournalScheduler):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.ticked = threading.Event()

    def tick(self):
        result = super().tick()
        self.ticked.set()
        return result


@pytest.fixture
def daily_template(recurring_service, chart, session, tenant_id, actor_id):
    rj = recurring_service.create(
        tenant_id,
        actor_id,
        RecurringJournalInput(
            name="Daily float top-up",
            frequency=RecurrenceFrequency.DAILY,
            start_date=date(2025, 4, 10),
            lines=[
                RecurringLineInput(account_id=chart["1100"].id, debit="2000"),
                RecurringLineInput(account_id=chart["1200"].id, credit="2000"),
            ],
        ),
    )
    session.close()
    return rj


def _generated_count(session_factory) -> int:
    with session_factory() as session:
        return session.execute(select(func.count(GeneratedJournal.id))).scalar_one()


class TestTick:
    def test_tick_generates_due_occurrence(
        self, daily_template, session_factory, clock, config, publisher
    ):
        scheduler = RecurringJournalScheduler(session_factory, clock, config, publisher)

        result = scheduler.tick()

        assert result.generated_count == 1
        assert result.generated[0].recurring_journal_id == daily_template.id
        assert _generated_count(session_factory) == 1
        assert len(publisher.events) == 1

    def test_repeated_tick_same_day_is_noop(self, daily_template, session_factory, clock, config):
        scheduler = RecurringJournalScheduler(session_factory, clock, config)
        scheduler.tick()
        assert scheduler.tick().generated_count == 0
        assert _generated_count(session_factory) == 1

    def test_tick_follows_clock(self, daily_template, session_factory, clock, config):
        scheduler = RecurringJournalScheduler(session_factory, clock, config)
        scheduler.tick()
        clock.advance_days(1)
        assert scheduler.tick().generated[0].scheduled_date == date(2025, 4, 11)

    def test_crashed_sweep_returns_none(self, daily_template, session_factory, config, captured_logs):
        scheduler = RecurringJournalScheduler(session_factory, ExplodingClock(), config)

        assert scheduler.tick() is None
        assert any(r["message"] == "recurring_sweep_failed" for r in captured_logs())
        assert _generated_count(session_factory) == 0


class TestLifecycle:
    def test_interval_from_config(self, session_factory, config):
        scheduler = RecurringJournalScheduler(session_factory, config=config)
        assert scheduler.interval_seconds == config.recurring.sweep_interval_seconds

    def test_start_runs_a_sweep_and_stop_joins(
        self, daily_template, session_factory, clock, config
    ):
        scheduler = SignallingScheduler(
            session_factory, clock, config, interval_seconds=3600
        )
        scheduler.start()
        assert scheduler.is_running

        assert scheduler.ticked.wait(timeout=5)
        scheduler.stop(timeout=5)
        assert not scheduler.is_running
        assert _generated_count(session_factory) == 1

    def test_start_twice_keeps_one_thread(self, session_factory, clock, config):
        scheduler = SignallingScheduler(
            session_factory, clock, config, interval_seconds=3600
        )
        scheduler.start()
        first = scheduler._thread
        scheduler.start()
        assert scheduler._thread is first
        scheduler.ticked.wait(timeout=5)
        scheduler.stop(timeout=5)
