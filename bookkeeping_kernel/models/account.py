"""
Module: bookkeeping_kernel.models.account
Responsibility: ORM persistence for the tenant-scoped chart of accounts --
    the target of every transaction line.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - account_type determines the natural balance side: asset/expense are
      debit-natured, liability/equity/income are credit-natured.
    - sub_type must be consistent with account_type (ALLOWED_SUB_TYPES,
      checked by AccountService before insert).
    - current_balance is held in the account's natural sign and is mutated
      only by the Ledger Engine (AccountService.adjust_balance).
    - Accounts are soft-deleted (is_deleted); rows are never removed.

Failure modes:
    - InvalidAccountError when a posting references a deleted, inactive or
      foreign account.
    - AccountReferencedError when deletion is attempted on a referenced account.

Audit relevance:
    Account rows define the ledger structure.  Keeping deleted accounts as
    rows keeps historical transactions reproducible.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from bookkeeping_kernel.db.base import TenantScopedMixin, TrackedBase, UUIDString
from bookkeeping_kernel.db.types import ZERO


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts (also the chart ordering)."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"


class AccountSubType(str, Enum):
    """Finer classification of an account within its type."""

    CASH = "cash"
    BANK = "bank"
    RECEIVABLE = "receivable"
    PAYABLE = "payable"
    INVENTORY = "inventory"
    FIXED_ASSET = "fixed_asset"
    SALES = "sales"
    PURCHASE = "purchase"
    DIRECT_EXPENSE = "direct_expense"
    INDIRECT_EXPENSE = "indirect_expense"
    TAX = "tax"
    CAPITAL = "capital"


class NormalBalance(str, Enum):
    """Side on which an account's balance increases."""

    DEBIT = "debit"
    CREDIT = "credit"


NORMAL_BALANCE: dict[AccountType, NormalBalance] = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.INCOME: NormalBalance.CREDIT,
}

ALLOWED_SUB_TYPES: dict[AccountType, frozenset[AccountSubType]] = {
    AccountType.ASSET: frozenset({
        AccountSubType.CASH,
        AccountSubType.BANK,
        AccountSubType.RECEIVABLE,
        AccountSubType.INVENTORY,
        AccountSubType.FIXED_ASSET,
        AccountSubType.TAX,
    }),
    AccountType.LIABILITY: frozenset({
        AccountSubType.PAYABLE,
        AccountSubType.TAX,
    }),
    AccountType.EQUITY: frozenset({AccountSubType.CAPITAL}),
    AccountType.INCOME: frozenset({AccountSubType.SALES}),
    AccountType.EXPENSE: frozenset({
        AccountSubType.PURCHASE,
        AccountSubType.DIRECT_EXPENSE,
        AccountSubType.INDIRECT_EXPENSE,
        AccountSubType.TAX,
    }),
}

# Position of each type in the chart of accounts
TYPE_ORDER: dict[AccountType, int] = {t: i for i, t in enumerate(AccountType)}


def normal_balance_for(account_type: AccountType | str) -> NormalBalance:
    """Return the natural balance side for an account type."""
    return NORMAL_BALANCE[AccountType(account_type)]


def signed_balance_delta(
    account_type: AccountType | str,
    debit: Decimal,
    credit: Decimal,
) -> Decimal:
    """
    Effect of one line on an account's natural-sign balance.

    Debit-natured accounts grow by debit - credit; credit-natured accounts
    grow by credit - debit.
    """
    if normal_balance_for(account_type) == NormalBalance.DEBIT:
        return debit - credit
    return credit - debit


class Account(TenantScopedMixin, TrackedBase):
    """
    Chart of accounts entry -- one node of a tenant's ledger tree.

    Contract:
        code is unique within the tenant's working set (non-deleted rows);
        the check lives in AccountService because soft-deleted codes may be
        reused.

    Guarantees:
        - account_type is one of AccountType.
        - current_balance starts at opening_balance.

    Non-goals:
        - Does not maintain balances itself; see LedgerService.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        Index("idx_account_tenant_code", "tenant_id", "code"),
        Index("idx_account_tenant_type", "tenant_id", "account_type"),
    )

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    sub_type: Mapped[AccountSubType | None] = mapped_column(String(30), nullable=True)

    # Seeded accounts the product relies on (quick entries, defaults)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Soft delete
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    deleted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    opening_balance: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)

    current_balance: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)

    # Typed settings, see domain/settings.py
    settings: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def normal_balance(self) -> NormalBalance:
        return normal_balance_for(self.account_type)

    @property
    def is_debit_natured(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT
