"""
Module: bookkeeping_kernel.selectors.bank_selector
Responsibility: Read-only bank reconciliation queries: unreconciled
    statement lines and the bank-versus-ledger reconciliation summary.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - The ledger balance is derived from posted lines of the linked account
      (LedgerSelector.account_balance), never from bank data.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from bookkeeping_kernel.db.types import ZERO
from bookkeeping_kernel.domain.dtos import ReconciliationSummary
from bookkeeping_kernel.exceptions import NotFoundError
from bookkeeping_kernel.models.bank import BankAccount, BankTransaction
from bookkeeping_kernel.selectors.base import BaseSelector
from bookkeeping_kernel.selectors.ledger_selector import LedgerSelector


@dataclass(frozen=True)
class BankLineRow:
    bank_transaction_id: UUID
    transaction_date: date
    description: str | None
    reference: str | None
    debit_amount: Decimal
    credit_amount: Decimal
    balance: Decimal | None
    is_reconciled: bool
    reconciled_transaction_id: UUID | None


def _row(line: BankTransaction) -> BankLineRow:
    return BankLineRow(
        bank_transaction_id=line.id,
        transaction_date=line.transaction_date,
        description=line.description,
        reference=line.reference,
        debit_amount=line.debit_amount,
        credit_amount=line.credit_amount,
        balance=line.balance,
        is_reconciled=line.is_reconciled,
        reconciled_transaction_id=line.reconciled_transaction_id,
    )


class BankSelector(BaseSelector[BankTransaction]):
    """Selector for bank statement lines and reconciliation status."""

    def _bank_account(self, tenant_id: UUID, bank_account_id: UUID) -> BankAccount:
        bank_account = self.session.execute(
            select(BankAccount).where(
                BankAccount.id == bank_account_id,
                BankAccount.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if bank_account is None:
            raise NotFoundError("BankAccount", str(bank_account_id))
        return bank_account

    def list_lines(
        self,
        tenant_id: UUID,
        bank_account_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
        reconciled: bool | None = None,
    ) -> list[BankLineRow]:
        query = select(BankTransaction).where(
            BankTransaction.tenant_id == tenant_id,
            BankTransaction.bank_account_id == bank_account_id,
        )
        if start_date is not None:
            query = query.where(BankTransaction.transaction_date >= start_date)
        if end_date is not None:
            query = query.where(BankTransaction.transaction_date <= end_date)
        if reconciled is not None:
            query = query.where(BankTransaction.is_reconciled == reconciled)
        query = query.order_by(BankTransaction.transaction_date, BankTransaction.created_at)
        return [_row(line) for line in self.session.execute(query).scalars().all()]

    def list_unreconciled(self, tenant_id: UUID, bank_account_id: UUID) -> list[BankLineRow]:
        return self.list_lines(tenant_id, bank_account_id, reconciled=False)

    def reconciliation_summary(
        self, tenant_id: UUID, bank_account_id: UUID, as_of: date
    ) -> ReconciliationSummary:
        """
        Compare the bank's balance with the linked ledger account as of a date.

        The bank balance is the last balance the bank reported on or before
        as_of; when the statement carries no balances it is the opening
        balance plus deposits minus withdrawals.  Without a linked ledger
        account the ledger balance is zero.

        Raises:
            NotFoundError: Unknown bank account.
        """
        bank_account = self._bank_account(tenant_id, bank_account_id)
        scope = (
            BankTransaction.tenant_id == tenant_id,
            BankTransaction.bank_account_id == bank_account_id,
            BankTransaction.transaction_date <= as_of,
        )

        reported = self.session.execute(
            select(BankTransaction.balance)
            .where(*scope, BankTransaction.balance.is_not(None))
            .order_by(BankTransaction.transaction_date.desc(), BankTransaction.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        if reported is not None:
            bank_balance = reported
        else:
            deposits, withdrawals = self.session.execute(
                select(
                    func.coalesce(func.sum(BankTransaction.credit_amount), 0),
                    func.coalesce(func.sum(BankTransaction.debit_amount), 0),
                ).where(*scope)
            ).one()
            bank_balance = (
                bank_account.opening_balance
                + Decimal(str(deposits))
                - Decimal(str(withdrawals))
            )

        count, open_debits, open_credits = self.session.execute(
            select(
                func.count(BankTransaction.id),
                func.coalesce(func.sum(BankTransaction.debit_amount), 0),
                func.coalesce(func.sum(BankTransaction.credit_amount), 0),
            ).where(*scope, BankTransaction.is_reconciled == False)  # noqa: E712
        ).one()

        ledger_balance = ZERO
        if bank_account.account_id is not None:
            ledger_balance = LedgerSelector(self.session).account_balance(
                tenant_id, bank_account.account_id, as_of
            ).balance

        return ReconciliationSummary(
            bank_account_id=bank_account.id,
            as_of=as_of,
            bank_balance=bank_balance,
            ledger_balance=ledger_balance,
            unreconciled_count=count,
            unreconciled_debits=Decimal(str(open_debits)),
            unreconciled_credits=Decimal(str(open_credits)),
            difference=bank_balance - ledger_balance,
        )
