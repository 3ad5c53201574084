"""Selectors for the bookkeeping kernel (read side)."""

from bookkeeping_kernel.selectors.bank_selector import BankLineRow, BankSelector
from bookkeeping_kernel.selectors.ledger_selector import (
    AccountBalance,
    DailySummary,
    LedgerSelector,
    TransactionRow,
    TrialBalanceRow,
)

__all__ = [
    "AccountBalance",
    "BankLineRow",
    "BankSelector",
    "DailySummary",
    "LedgerSelector",
    "TransactionRow",
    "TrialBalanceRow",
]
