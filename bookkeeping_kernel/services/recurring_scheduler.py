"""
RecurringJournalScheduler -- in-process polling loop for recurring journals.

Contract:
    Every interval, opens a session from the factory and runs
    ``RecurringJournalService.generate_due(clock.now())``.

Architecture: bookkeeping_kernel/services.  Thin driver; all generation
    rules live in RecurringJournalService.

Invariants enforced:
    - All timestamps come from the injected Clock.
    - Graceful shutdown: ``stop()`` is honoured between ticks and the
      current sweep is allowed to finish.
    - Several schedulers may run against the same database; row locks and
      the occurrence unique constraint keep generation exactly-once.
"""

from __future__ import annotations

import threading
from typing import Callable

from sqlalchemy.orm import Session

from bookkeeping_config import BookkeepingConfig, get_active_config
from bookkeeping_kernel.domain.clock import Clock, SystemClock
from bookkeeping_kernel.domain.dtos import SweepResult
from bookkeeping_kernel.logging_config import get_logger
from bookkeeping_kernel.services.event_publisher import EventPublisher
from bookkeeping_kernel.services.recurring_journal_service import RecurringJournalService

logger = get_logger("services.recurring_scheduler")


class RecurringJournalScheduler:
    """Background sweeper for due recurring journals.

    Contract:
        - ``tick()`` runs one sweep and returns its SweepResult.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (no leader election).
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        config: BookkeepingConfig | None = None,
        publisher: EventPublisher | None = None,
        interval_seconds: float | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._publisher = publisher
        self._interval = (
            interval_seconds
            if interval_seconds is not None
            else self._config.recurring.sweep_interval_seconds
        )
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def interval_seconds(self) -> float:
        return self._interval

    def tick(self) -> SweepResult | None:
        """Run one sweep (public for testing).  Returns None if the sweep crashed."""
        session = self._session_factory()
        try:
            service = RecurringJournalService(
                session, self._clock, self._config, self._publisher
            )
            return service.generate_due(self._clock.now())
        except Exception:
            session.rollback()
            logger.exception("recurring_sweep_failed")
            return None
        finally:
            session.close()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="recurring-journal-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("recurring_scheduler_started", extra={"interval_seconds": self._interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current sweep to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("recurring_scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._interval)
