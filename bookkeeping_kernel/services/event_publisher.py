"""
Domain event publication after commit.

Responsibility:
    Queues ``DomainEvent`` objects on the session during a write and hands
    them to an ``EventPublisher`` once the storage transaction has
    committed.  A rollback discards the queue.

Architecture position:
    Kernel > Services -- infrastructure used by LedgerService and
    ReconciliationService.  Publishers are the seam to the notification
    layer outside the kernel.

Invariants enforced:
    - Events are only published for committed work (session
      ``after_commit`` hook); rolled-back work publishes nothing.
    - A SAVEPOINT commit inside the write publishes nothing; the queue
      waits for the outermost commit.
    - Publication never holds the storage transaction open and never
      rolls back committed ledger writes.

Failure modes:
    - A publisher that raises is logged with ``logger.exception`` and the
      remaining events are still attempted.  Delivery is at-most-once.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from threading import Lock

from sqlalchemy import event
from sqlalchemy.orm import Session

from bookkeeping_kernel.domain.events import DomainEvent
from bookkeeping_kernel.logging_config import get_logger

logger = get_logger("services.events")

_PENDING_KEY = "pending_domain_events"
_INSTALLED_KEY = "domain_event_hooks_installed"


class EventPublisher(ABC):
    """Seam to the external notification layer."""

    @abstractmethod
    def publish(self, domain_event: DomainEvent) -> None:
        ...


class LoggingEventPublisher(EventPublisher):
    """Default publisher: writes each event as a structured log line."""

    def publish(self, domain_event: DomainEvent) -> None:
        logger.info(
            "domain_event_published",
            extra={
                "event_id": str(domain_event.event_id),
                "event_type": domain_event.event_type.value,
                "tenant_id": str(domain_event.tenant_id),
                "entity_id": str(domain_event.entity_id),
            },
        )


class InMemoryEventPublisher(EventPublisher):
    """Collects events in a list. Used by tests and in-process consumers."""

    def __init__(self) -> None:
        self._events: list[DomainEvent] = []
        self._lock = Lock()

    def publish(self, domain_event: DomainEvent) -> None:
        with self._lock:
            self._events.append(domain_event)

    @property
    def events(self) -> list[DomainEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type) -> list[DomainEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


def _publish_pending(session: Session) -> None:
    # after_commit also fires for a released SAVEPOINT; wait for the outer commit
    if session.in_nested_transaction():
        return
    pending = session.info.pop(_PENDING_KEY, [])
    for publisher, domain_event in pending:
        try:
            publisher.publish(domain_event)
        except Exception:
            logger.exception(
                "domain_event_publish_failed",
                extra={
                    "event_id": str(domain_event.event_id),
                    "event_type": domain_event.event_type.value,
                    "entity_id": str(domain_event.entity_id),
                },
            )


def _discard_pending(session: Session, previous_transaction) -> None:
    # Savepoint rollbacks keep the queue; only the outermost rollback clears it
    if previous_transaction.parent is not None:
        return
    dropped = session.info.pop(_PENDING_KEY, [])
    if dropped:
        logger.debug("domain_events_discarded", extra={"count": len(dropped)})


class EventDispatcher:
    """
    Queues events on a session and publishes them after commit.

    Contract:
        ``queue()`` may be called any number of times inside a write.  The
        queued events are delivered, in queue order, after the session's
        next successful commit; a rollback discards them.

    Non-goals:
        - No retry and no outbox: a lost event stays lost.
    """

    def __init__(self, publisher: EventPublisher | None = None):
        self._publisher = publisher or LoggingEventPublisher()

    @property
    def publisher(self) -> EventPublisher:
        return self._publisher

    def queue(self, session: Session, domain_event: DomainEvent) -> None:
        if not session.info.get(_INSTALLED_KEY):
            event.listen(session, "after_commit", _publish_pending)
            event.listen(session, "after_soft_rollback", _discard_pending)
            session.info[_INSTALLED_KEY] = True
        session.info.setdefault(_PENDING_KEY, []).append((self._publisher, domain_event))
        logger.debug(
            "domain_event_queued",
            extra={
                "event_type": domain_event.event_type.value,
                "entity_id": str(domain_event.entity_id),
            },
        )
