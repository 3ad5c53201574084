"""
bookkeeping_kernel.services -- write side of the kernel.

Responsibility:
    Session-holding services that enforce the ledger invariants: the
    Account Registry, the Ledger Engine, the Bank Reconciliation Matcher,
    the Recurring Journal Scheduler and the Financial Year Registry.

Architecture position:
    Kernel > Services.  Only this layer commits.  Every public service
    extends BaseService and takes its Session, Clock and configuration
    from the caller.
"""

from bookkeeping_kernel.services.account_service import AccountService
from bookkeeping_kernel.services.base import BaseService
from bookkeeping_kernel.services.event_publisher import (
    EventDispatcher,
    EventPublisher,
    InMemoryEventPublisher,
    LoggingEventPublisher,
)
from bookkeeping_kernel.services.financial_year_service import FinancialYearService
from bookkeeping_kernel.services.ledger_service import LedgerService
from bookkeeping_kernel.services.reconciliation_service import ReconciliationService
from bookkeeping_kernel.services.recurring_journal_service import RecurringJournalService
from bookkeeping_kernel.services.recurring_scheduler import RecurringJournalScheduler
from bookkeeping_kernel.services.sequence_service import SequenceService, TransactionNumberCounter

__all__ = [
    "AccountService",
    "BaseService",
    "EventDispatcher",
    "EventPublisher",
    "FinancialYearService",
    "InMemoryEventPublisher",
    "LedgerService",
    "LoggingEventPublisher",
    "ReconciliationService",
    "RecurringJournalScheduler",
    "RecurringJournalService",
    "SequenceService",
    "TransactionNumberCounter",
]
