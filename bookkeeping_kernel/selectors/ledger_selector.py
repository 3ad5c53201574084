"""
Module: bookkeeping_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: transaction listing, daily
    summaries, point-in-time account balances and the trial balance.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants enforced:
    - Only POSTED transactions contribute to balances and summaries; drafts
      and voids are listed but never summed.
    - account_balance(as_of=None) equals Account.current_balance, because
      both are opening_balance plus the signed effect of posted lines.

Audit relevance:
    The derived balances here are the cross-check for the stored
    current_balance that LedgerService maintains incrementally.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from bookkeeping_kernel.db.types import ZERO
from bookkeeping_kernel.exceptions import NotFoundError
from bookkeeping_kernel.models.account import Account, AccountType, signed_balance_delta
from bookkeeping_kernel.models.transaction import (
    Transaction,
    TransactionLine,
    TransactionStatus,
    TransactionType,
)
from bookkeeping_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class TransactionRow:
    """One transaction header in a listing."""

    transaction_id: UUID
    transaction_number: str
    transaction_date: date
    transaction_type: str
    status: str
    description: str | None
    party_name: str | None
    total_amount: Decimal
    payment_mode: str | None


@dataclass(frozen=True)
class DailySummary:
    """Posted activity for one day."""

    day: date
    transaction_count: int
    totals_by_type: dict[str, Decimal] = field(default_factory=dict)
    counts_by_type: dict[str, int] = field(default_factory=dict)

    def total_for(self, transaction_type: TransactionType | str) -> Decimal:
        return self.totals_by_type.get(TransactionType(transaction_type).value, ZERO)

    @property
    def total_sales(self) -> Decimal:
        return self.total_for(TransactionType.SALE)

    @property
    def total_expenses(self) -> Decimal:
        return self.total_for(TransactionType.EXPENSE)


@dataclass(frozen=True)
class AccountBalance:
    """Balance for a single account, in the account's natural sign."""

    account_id: UUID
    account_code: str
    account_type: str
    opening_balance: Decimal
    debit_total: Decimal
    credit_total: Decimal

    @property
    def balance(self) -> Decimal:
        return self.opening_balance + signed_balance_delta(
            self.account_type, self.debit_total, self.credit_total
        )


@dataclass(frozen=True)
class TrialBalanceRow:
    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    debit_total: Decimal
    credit_total: Decimal

    @property
    def net(self) -> Decimal:
        """Net debit (debits - credits)."""
        return self.debit_total - self.credit_total


def _row(txn: Transaction) -> TransactionRow:
    return TransactionRow(
        transaction_id=txn.id,
        transaction_number=txn.transaction_number,
        transaction_date=txn.transaction_date,
        transaction_type=txn.transaction_type,
        status=txn.status,
        description=txn.description,
        party_name=txn.party_name,
        total_amount=txn.total_amount,
        payment_mode=txn.payment_mode,
    )


class LedgerSelector(BaseSelector[Transaction]):
    """
    Selector for ledger queries.

    Contract:
        Every query is scoped to one tenant.  Balance queries sum posted
        lines with transaction_date <= as_of when as_of is given.

    Non-goals:
        - No multi-currency conversion; all amounts are in one currency.
    """

    def get_transaction(self, tenant_id: UUID, transaction_id: UUID) -> TransactionRow | None:
        txn = self.session.execute(
            select(Transaction).where(
                Transaction.id == transaction_id,
                Transaction.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        return _row(txn) if txn is not None else None

    def list_transactions(
        self,
        tenant_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
        transaction_type: TransactionType | str | None = None,
        status: TransactionStatus | str | None = None,
        account_id: UUID | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[TransactionRow]:
        """
        List transaction headers, newest first.

        Args:
            account_id: Only transactions with a line on this account.
        """
        query = select(Transaction).where(Transaction.tenant_id == tenant_id)

        if start_date is not None:
            query = query.where(Transaction.transaction_date >= start_date)
        if end_date is not None:
            query = query.where(Transaction.transaction_date <= end_date)
        if transaction_type is not None:
            query = query.where(
                Transaction.transaction_type == TransactionType(transaction_type).value
            )
        if status is not None:
            query = query.where(Transaction.status == TransactionStatus(status).value)
        if account_id is not None:
            query = query.where(
                Transaction.id.in_(
                    select(TransactionLine.transaction_id).where(
                        TransactionLine.tenant_id == tenant_id,
                        TransactionLine.account_id == account_id,
                    )
                )
            )

        query = query.order_by(
            Transaction.transaction_date.desc(), Transaction.transaction_number.desc()
        )
        if limit is not None:
            query = query.limit(limit)
        if offset is not None:
            query = query.offset(offset)

        return [_row(txn) for txn in self.session.execute(query).scalars().all()]

    def daily_summary(self, tenant_id: UUID, day: date) -> DailySummary:
        rows = self.session.execute(
            select(
                Transaction.transaction_type,
                func.count(Transaction.id),
                func.coalesce(func.sum(Transaction.total_amount), 0),
            )
            .where(
                Transaction.tenant_id == tenant_id,
                Transaction.transaction_date == day,
                Transaction.status == TransactionStatus.POSTED.value,
            )
            .group_by(Transaction.transaction_type)
        ).all()

        totals = {txn_type: Decimal(str(total)) for txn_type, _, total in rows}
        counts = {txn_type: count for txn_type, count, _ in rows}
        return DailySummary(
            day=day,
            transaction_count=sum(counts.values()),
            totals_by_type=totals,
            counts_by_type=counts,
        )

    def _posted_totals(self, tenant_id: UUID, as_of: date | None):
        query = (
            select(
                TransactionLine.account_id,
                func.coalesce(func.sum(TransactionLine.debit_amount), 0),
                func.coalesce(func.sum(TransactionLine.credit_amount), 0),
            )
            .join(Transaction, TransactionLine.transaction_id == Transaction.id)
            .where(
                Transaction.tenant_id == tenant_id,
                Transaction.status == TransactionStatus.POSTED.value,
            )
            .group_by(TransactionLine.account_id)
        )
        if as_of is not None:
            query = query.where(Transaction.transaction_date <= as_of)
        return query

    def account_balance(
        self, tenant_id: UUID, account_id: UUID, as_of: date | None = None
    ) -> AccountBalance:
        """
        Opening balance plus the signed effect of posted lines up to as_of.

        Raises:
            NotFoundError: Unknown account for this tenant.
        """
        account = self.session.execute(
            select(Account).where(Account.id == account_id, Account.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if account is None:
            raise NotFoundError("Account", str(account_id))

        totals = self.session.execute(
            self._posted_totals(tenant_id, as_of).where(TransactionLine.account_id == account_id)
        ).one_or_none()
        debit_total = Decimal(str(totals[1])) if totals else ZERO
        credit_total = Decimal(str(totals[2])) if totals else ZERO

        return AccountBalance(
            account_id=account.id,
            account_code=account.code,
            account_type=account.account_type,
            opening_balance=account.opening_balance,
            debit_total=debit_total,
            credit_total=credit_total,
        )

    def trial_balance(self, tenant_id: UUID, as_of: date | None = None) -> list[TrialBalanceRow]:
        """Debit and credit totals per account with posted activity, by code."""
        totals = {
            account_id: (Decimal(str(debits)), Decimal(str(credits)))
            for account_id, debits, credits in self.session.execute(
                self._posted_totals(tenant_id, as_of)
            ).all()
        }
        if not totals:
            return []

        accounts = self.session.execute(
            select(Account)
            .where(Account.tenant_id == tenant_id, Account.id.in_(totals.keys()))
            .order_by(Account.code)
        ).scalars().all()

        return [
            TrialBalanceRow(
                account_id=account.id,
                account_code=account.code,
                account_name=account.name,
                account_type=AccountType(account.account_type).value,
                debit_total=totals[account.id][0],
                credit_total=totals[account.id][1],
            )
            for account in accounts
        ]
