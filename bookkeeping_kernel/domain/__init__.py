"""
Domain layer.

Data transfer objects, recurrence arithmetic, typed account settings,
domain events, and the CSV statement parser.  Nothing here touches a
Session; the only time source is the injected Clock.
"""

from bookkeeping_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from bookkeeping_kernel.domain.events import DomainEvent, DomainEventType
from bookkeeping_kernel.domain.settings import AccountSettingKey, AccountSettings

__all__ = [
    "AccountSettingKey",
    "AccountSettings",
    "Clock",
    "DeterministicClock",
    "DomainEvent",
    "DomainEventType",
    "SystemClock",
]
