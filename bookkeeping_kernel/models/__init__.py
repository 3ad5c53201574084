"""Domain models for the bookkeeping kernel."""

from bookkeeping_kernel.models.account import (
    ALLOWED_SUB_TYPES,
    Account,
    AccountSubType,
    AccountType,
    NormalBalance,
)
from bookkeeping_kernel.models.bank import BankAccount, BankAccountKind, BankTransaction
from bookkeeping_kernel.models.financial_year import FinancialYear
from bookkeeping_kernel.models.recurring import (
    GeneratedJournal,
    RecurrenceFrequency,
    RecurringJournal,
    RecurringJournalLine,
    RecurringJournalStatus,
)
from bookkeeping_kernel.models.transaction import (
    PartyType,
    PaymentMode,
    ReferenceType,
    Transaction,
    TransactionLine,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    "ALLOWED_SUB_TYPES",
    "Account",
    "AccountSubType",
    "AccountType",
    "BankAccount",
    "BankAccountKind",
    "BankTransaction",
    "FinancialYear",
    "GeneratedJournal",
    "NormalBalance",
    "PartyType",
    "PaymentMode",
    "RecurrenceFrequency",
    "RecurringJournal",
    "RecurringJournalLine",
    "RecurringJournalStatus",
    "ReferenceType",
    "Transaction",
    "TransactionLine",
    "TransactionStatus",
    "TransactionType",
]
