"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that flow into and out of the
    kernel services: account specs, transaction inputs, statement lines,
    recurring templates, and the result objects returned by reconciliation
    and the recurring sweep.

Architecture position:
    Kernel > Domain -- zero I/O.  Uses the model enums; ChartOfAccounts
    wraps Account rows that a service already loaded.

Invariants enforced:
    - Amounts are Decimal (never float).  Callers may pass str/int; services
      normalize through db.types.to_decimal/round_money before validating.
    - Result objects are frozen so a caller cannot alter what the kernel
      reported.

Data flow:
    TransactionInput -> LedgerService.post_transaction -> Transaction (ORM)
    StatementLine    -> ReconciliationService.import_statement -> ImportResult
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterator, Sequence
from uuid import UUID

from bookkeeping_kernel.models.account import Account, AccountSubType, AccountType
from bookkeeping_kernel.models.recurring import RecurrenceFrequency
from bookkeeping_kernel.models.transaction import (
    PartyType,
    PaymentMode,
    ReferenceType,
    TransactionType,
)

_ZERO = Decimal("0")


# =============================================================================
# Accounts
# =============================================================================


@dataclass(frozen=True)
class AccountSpec:
    """Input for AccountService.create_account."""

    code: str
    name: str
    account_type: AccountType
    sub_type: AccountSubType | None = None
    parent_id: UUID | None = None
    description: str | None = None
    opening_balance: Decimal = _ZERO
    is_system: bool = False
    settings: dict[str, Any] | None = None


@dataclass(frozen=True)
class AccountUpdate:
    """Partial update for AccountService.update_account.  None = unchanged."""

    code: str | None = None
    name: str | None = None
    description: str | None = None
    is_active: bool | None = None
    settings: dict[str, Any] | None = None


@dataclass(frozen=True)
class ChartNode:
    """One account in a depth-first chart traversal."""

    account: Account
    depth: int
    path: tuple[str, ...]

    @property
    def code(self) -> str:
        return self.account.code


class ChartOfAccounts:
    """
    Snapshot of a tenant's chart of accounts.

    Contract:
        Rows are read once when the snapshot is built; iterating never
        touches the database.  Each ``iter()`` starts a fresh depth-first
        traversal, so the snapshot can be walked any number of times.

    Guarantees:
        - Roots are ordered by account type (asset, liability, equity,
          income, expense), then code, then name.  Children follow the same
          code/name ordering under their parent.
        - Accounts whose parent is missing from the snapshot are treated as
          roots.
    """

    def __init__(self, tenant_id: UUID, accounts: Sequence[Account]):
        from bookkeeping_kernel.models.account import TYPE_ORDER

        self.tenant_id = tenant_id
        self._accounts = tuple(accounts)
        ids = {a.id for a in self._accounts}

        def sort_key(account: Account):
            return (TYPE_ORDER[AccountType(account.account_type)], account.code, account.name)

        self._children: dict[UUID | None, list[Account]] = {}
        for account in sorted(self._accounts, key=sort_key):
            parent = account.parent_id if account.parent_id in ids else None
            self._children.setdefault(parent, []).append(account)

    def __iter__(self) -> Iterator[ChartNode]:
        return self._walk(None, 0, ())

    def __len__(self) -> int:
        return len(self._accounts)

    def _walk(
        self, parent_id: UUID | None, depth: int, path: tuple[str, ...]
    ) -> Iterator[ChartNode]:
        for account in self._children.get(parent_id, ()):
            node_path = path + (account.code,)
            yield ChartNode(account=account, depth=depth, path=node_path)
            yield from self._walk(account.id, depth + 1, node_path)


# =============================================================================
# Transactions
# =============================================================================


@dataclass(frozen=True)
class LineInput:
    """One requested transaction leg."""

    account_id: UUID
    debit: Decimal | str | int = _ZERO
    credit: Decimal | str | int = _ZERO
    description: str | None = None
    tax_rate_id: UUID | None = None
    tax_amount: Decimal | str | int = _ZERO


@dataclass(frozen=True)
class TransactionInput:
    """
    Input for LedgerService.post_transaction.

    When total_amount is omitted it is derived from the line debits.
    idempotency_key makes a retried call return the original transaction.
    """

    transaction_type: TransactionType
    transaction_date: date
    lines: Sequence[LineInput]
    description: str | None = None
    notes: str | None = None
    store_id: UUID | None = None
    reference_type: ReferenceType | None = None
    reference_id: UUID | None = None
    party_id: UUID | None = None
    party_type: PartyType | None = None
    party_name: str | None = None
    subtotal: Decimal | str | int | None = None
    tax_amount: Decimal | str | int | None = None
    discount_amount: Decimal | str | int | None = None
    total_amount: Decimal | str | int | None = None
    payment_mode: PaymentMode | None = None
    payment_reference: str | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class QuickSaleInput:
    """
    Single-amount sale.

    amount is the pre-tax value; the customer pays amount + tax.  When the
    account pair is omitted, the debit side is resolved from payment_mode
    and the credit side is the configured sales account.  A missing
    tax_rate falls back to the sales account's default_tax_rate setting.
    """

    amount: Decimal | str | int
    transaction_date: date
    tax_rate: Decimal | str | int | None = None
    payment_mode: PaymentMode = PaymentMode.CASH
    debit_account_id: UUID | None = None
    credit_account_id: UUID | None = None
    party_id: UUID | None = None
    party_name: str | None = None
    description: str | None = None
    payment_reference: str | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class QuickExpenseInput:
    """
    Single-amount expense.

    expense_account_id is debited; the payment account (explicit, or
    resolved from payment_mode) is credited.  A missing tax_rate falls back
    to the expense account's default_tax_rate setting.
    """

    amount: Decimal | str | int
    transaction_date: date
    expense_account_id: UUID
    tax_rate: Decimal | str | int | None = None
    payment_mode: PaymentMode = PaymentMode.CASH
    payment_account_id: UUID | None = None
    party_id: UUID | None = None
    party_name: str | None = None
    description: str | None = None
    payment_reference: str | None = None
    idempotency_key: str | None = None


# =============================================================================
# Bank reconciliation
# =============================================================================


@dataclass(frozen=True)
class BankAccountSpec:
    """Input for ReconciliationService.create_bank_account."""

    bank_name: str
    account_name: str
    account_id: UUID | None = None
    account_number_last4: str | None = None
    ifsc_code: str | None = None
    branch: str | None = None
    account_kind: str = "current"
    opening_balance: Decimal = _ZERO
    is_primary: bool = False


@dataclass(frozen=True)
class StatementLine:
    """One bank statement row (debit = withdrawal, credit = deposit)."""

    transaction_date: date
    debit_amount: Decimal | str | int = _ZERO
    credit_amount: Decimal | str | int = _ZERO
    description: str | None = None
    reference: str | None = None
    balance: Decimal | str | int | None = None
    value_date: date | None = None
    external_id: str | None = None


@dataclass(frozen=True)
class ImportResult:
    """Outcome of a statement import."""

    batch_id: UUID
    total_rows: int
    imported_rows: int
    duplicate_rows: int
    skipped_rows: int = 0
    bank_transaction_ids: tuple[UUID, ...] = ()
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class MatchSuggestion:
    """One ranked candidate ledger transaction for a bank line."""

    transaction_id: UUID
    transaction_number: str
    transaction_date: date
    amount: Decimal
    amount_difference: Decimal
    days_apart: int
    exact_amount: bool
    reference_match: bool
    score: int
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReconciliationMatch:
    bank_transaction_id: UUID
    transaction_id: UUID


@dataclass(frozen=True)
class AutoReconcileResult:
    """matched lines were committed; needs_review lines were left untouched."""

    matched: tuple[ReconciliationMatch, ...]
    needs_review: tuple[UUID, ...]
    total_processed: int

    @property
    def matched_count(self) -> int:
        return len(self.matched)


@dataclass(frozen=True)
class ReconciliationSummary:
    bank_account_id: UUID
    as_of: date
    bank_balance: Decimal
    ledger_balance: Decimal
    unreconciled_count: int
    unreconciled_debits: Decimal
    unreconciled_credits: Decimal
    difference: Decimal

    @property
    def is_reconciled(self) -> bool:
        return self.difference == _ZERO and self.unreconciled_count == 0


# =============================================================================
# Recurring journals
# =============================================================================


@dataclass(frozen=True)
class RecurringLineInput:
    account_id: UUID
    debit: Decimal | str | int = _ZERO
    credit: Decimal | str | int = _ZERO
    description: str | None = None


@dataclass(frozen=True)
class RecurringJournalInput:
    """Input for RecurringJournalService.create."""

    name: str
    frequency: RecurrenceFrequency
    start_date: date
    lines: Sequence[RecurringLineInput]
    transaction_type: TransactionType = TransactionType.JOURNAL
    description: str | None = None
    interval_count: int | None = 1
    end_date: date | None = None
    max_occurrences: int | None = None


@dataclass(frozen=True)
class RecurringJournalUpdate:
    """Partial update; None = unchanged.  lines replaces the whole set."""

    name: str | None = None
    description: str | None = None
    frequency: RecurrenceFrequency | None = None
    interval_count: int | None = None
    end_date: date | None = None
    max_occurrences: int | None = None
    lines: Sequence[RecurringLineInput] | None = None


@dataclass(frozen=True)
class OccurrenceResult:
    recurring_journal_id: UUID
    occurrence_number: int
    transaction_id: UUID
    scheduled_date: date
    completed: bool


@dataclass(frozen=True)
class SweepResult:
    """Outcome of one generate_due sweep."""

    generated: tuple[OccurrenceResult, ...] = ()
    skipped: tuple[UUID, ...] = ()
    failed: tuple[tuple[UUID, str], ...] = field(default_factory=tuple)

    @property
    def generated_count(self) -> int:
        return len(self.generated)
