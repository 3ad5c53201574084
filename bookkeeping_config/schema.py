"""
Configuration schema (``bookkeeping_config.schema``).

Responsibility
--------------
Frozen dataclasses describing one bookkeeping configuration set: the seed
chart of accounts, transaction numbering, matching windows for bank
reconciliation, the recurring sweep interval, and the account codes used
by quick entries.

Invariants enforced
-------------------
* Every object is frozen; a loaded configuration cannot be altered.
* Defaults here are the product defaults; YAML only needs to state what
  differs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

DEFAULT_NUMBER_PREFIXES: Mapping[str, str] = MappingProxyType({
    "sale": "SAL",
    "purchase": "PUR",
    "receipt": "REC",
    "payment": "PAY",
    "expense": "EXP",
    "journal": "JRN",
    "transfer": "TRF",
})


@dataclass(frozen=True)
class SeedAccount:
    """One account of the seeded chart."""

    code: str
    name: str
    account_type: str
    sub_type: str | None = None
    parent_code: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class LedgerSettings:
    number_width: int = 4
    number_prefixes: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_NUMBER_PREFIXES)
    )

    def prefix_for(self, transaction_type: str) -> str:
        return self.number_prefixes[transaction_type]


@dataclass(frozen=True)
class ReconciliationSettings:
    auto_match_window_days: int = 3
    suggestion_window_days: int = 7
    max_suggestions: int = 20


@dataclass(frozen=True)
class RecurringSettings:
    sweep_interval_seconds: int = 3600


@dataclass(frozen=True)
class QuickEntrySettings:
    """
    Account codes for quick sales and expenses.

    payment_account_codes maps a payment mode to the account that receives
    (sale) or pays (expense) the money.  Credit sales land on the
    receivable code; credit expenses on the payable code.
    """

    sales_account_code: str = "4100"
    receivable_account_code: str = "1300"
    payable_account_code: str = "2100"
    payment_account_codes: Mapping[str, str] = field(default_factory=lambda: {
        "cash": "1100",
        "bank": "1200",
        "upi": "1200",
        "card": "1200",
        "cheque": "1200",
    })


@dataclass(frozen=True)
class BookkeepingConfig:
    """The fully-loaded, validated configuration."""

    config_id: str
    version: int
    ledger: LedgerSettings
    reconciliation: ReconciliationSettings
    recurring: RecurringSettings
    quick_entry: QuickEntrySettings
    seed_accounts: tuple[SeedAccount, ...] = ()
    checksum: str = ""

    def seed_account(self, code: str) -> SeedAccount | None:
        for account in self.seed_accounts:
            if account.code == code:
                return account
        return None
