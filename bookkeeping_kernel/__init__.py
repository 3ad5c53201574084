"""
Bookkeeping Kernel

The ledger core of a multi-tenant bookkeeping product:
- Tenant-scoped chart of accounts
- Balanced double-entry transactions with running balances
- Bank statement import and reconciliation
- Recurring journal generation
"""

__version__ = "0.1.0"
