"""
LedgerService -- the Ledger Engine: post, draft, void and quick entries.

Responsibility:
    The only path by which Transactions come into existence and the only
    caller of ``AccountService.adjust_balance``.  Validates the
    double-entry invariant, allocates transaction numbers, persists the
    transaction with its lines and applies signed balance deltas in the
    same storage transaction, then queues a domain event for after commit.

Architecture position:
    Kernel > Services -- the central invariant-enforcing component.
    ReconciliationService reads what it writes; RecurringJournalService
    creates transactions only through it (with ``auto_commit=False``).

Invariants enforced:
    - Balance: sum(debit) == sum(credit), compared in integer cents after
      rounding every amount to 2 dp (ROUND_HALF_UP).  Checked before any
      row is written.
    - Atomicity: transaction, lines and balance deltas commit together or
      not at all.
    - Lifecycle: draft -> posted -> void; void is terminal.  Voiding
      subtracts exactly the balance contribution the posting added.
    - Closed financial years accept neither postings nor voids.
    - Idempotency: a caller-supplied idempotency key returns the original
      transaction instead of posting twice.

Failure modes:
    - ValidationError: malformed lines or header amounts.
    - UnbalancedTransactionError: debits != credits.
    - InvalidAccountError: unknown, foreign, deleted or inactive account.
    - ClosedFinancialYearError: date inside a closed financial year.
    - InvalidStateError: void of a non-posted transaction, edit of a
      non-draft.
    - ConflictError: void of a transaction still reconciled to a bank line.

Audit relevance:
    Every post and void is logged (``transaction_posted``,
    ``transaction_voided``) with tenant, actor, number and totals; void
    reason, actor and time are stored on the row.
"""

from __future__ import annotations

import time
from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookkeeping_config import BookkeepingConfig
from bookkeeping_kernel.db.types import ZERO, round_money, to_cents, to_decimal
from bookkeeping_kernel.domain.clock import Clock
from bookkeeping_kernel.domain.dtos import (
    LineInput,
    QuickExpenseInput,
    QuickSaleInput,
    TransactionInput,
)
from bookkeeping_kernel.domain.events import (
    DomainEvent,
    DomainEventType,
    transaction_snapshot,
)
from bookkeeping_kernel.domain.settings import AccountSettings
from bookkeeping_kernel.exceptions import (
    ConflictError,
    InvalidAccountError,
    InvalidStateError,
    NotFoundError,
    UnbalancedTransactionError,
    ValidationError,
)
from bookkeeping_kernel.logging_config import LogContext, get_logger
from bookkeeping_kernel.models.account import Account, signed_balance_delta
from bookkeeping_kernel.models.bank import BankTransaction
from bookkeeping_kernel.models.transaction import (
    PartyType,
    PaymentMode,
    ReferenceType,
    Transaction,
    TransactionLine,
    TransactionStatus,
    TransactionType,
)
from bookkeeping_kernel.services.account_service import AccountService
from bookkeeping_kernel.services.base import BaseService
from bookkeeping_kernel.services.event_publisher import EventDispatcher, EventPublisher
from bookkeeping_kernel.services.financial_year_service import FinancialYearService
from bookkeeping_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger")


def _money(value, field: str) -> Decimal:
    try:
        amount = round_money(to_decimal(value))
    except ValueError as exc:
        raise ValidationError(str(exc), field=field)
    if amount < ZERO:
        raise ValidationError(f"{field} must not be negative, got {amount}", field=field)
    return amount


def normalize_line_amounts(
    pairs: Sequence[tuple[object, object]],
) -> list[tuple[Decimal, Decimal]]:
    """
    Round (debit, credit) pairs to 2 dp and check the double-entry rules.

    Shared by transaction posting and recurring templates so both enforce
    the invariant identically.

    Raises:
        ValidationError: Fewer than two lines, a negative amount, or a line
            with neither a debit nor a credit.
        UnbalancedTransactionError: Total debits != total credits.
    """
    if len(pairs) < 2:
        raise ValidationError("A transaction needs at least two lines", field="lines")

    amounts: list[tuple[Decimal, Decimal]] = []
    for index, (debit, credit) in enumerate(pairs):
        debit_amount = _money(debit, f"lines[{index}].debit")
        credit_amount = _money(credit, f"lines[{index}].credit")
        if debit_amount == ZERO and credit_amount == ZERO:
            raise ValidationError(
                f"Line {index} has neither a debit nor a credit amount",
                field=f"lines[{index}]",
            )
        amounts.append((debit_amount, credit_amount))

    total_debits = sum((d for d, _ in amounts), ZERO)
    total_credits = sum((c for _, c in amounts), ZERO)
    # INVARIANT: integer-cent comparison, never a float tolerance
    if to_cents(total_debits) != to_cents(total_credits):
        raise UnbalancedTransactionError(str(total_debits), str(total_credits))
    return amounts


def _optional_money(value, field: str) -> Decimal | None:
    return None if value is None else _money(value, field)


def _or_default(value: Decimal | None, default: Decimal) -> Decimal:
    return default if value is None else value


def _payment_mode(value) -> PaymentMode:
    try:
        return PaymentMode(value)
    except ValueError:
        raise ValidationError(f"Unknown payment mode: {value!r}", field="payment_mode")


class LedgerService(BaseService):
    """
    Ledger Engine.

    Contract:
        ``post_transaction`` / ``void_transaction`` / ``post_draft`` /
        ``update_draft`` / ``quick_sale`` / ``quick_expense`` each run as
        one storage transaction.

    Guarantees:
        - A call that raises leaves no Transaction rows and no balance
          change (auto_commit=True rolls back; with auto_commit=False the
          caller must roll back).
        - Domain events are only published after the commit.

    Non-goals:
        - Does NOT create reversing transactions; void flips the status and
          removes the balance contribution.
        - Does NOT retry on storage errors.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: BookkeepingConfig | None = None,
        publisher: EventPublisher | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session, clock, config, auto_commit)
        # Helpers never commit; this service owns the boundary
        self._accounts = AccountService(session, self._clock, self._config, auto_commit=False)
        self._years = FinancialYearService(session, self._clock, self._config, auto_commit=False)
        self._sequences = SequenceService(session)
        self._events = EventDispatcher(publisher)

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_transaction(self, tenant_id: UUID, transaction_id: UUID) -> Transaction:
        """
        Raises:
            NotFoundError: Unknown id or another tenant's transaction.
        """
        txn = self.session.execute(
            select(Transaction).where(
                Transaction.id == transaction_id,
                Transaction.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if txn is None:
            raise NotFoundError("Transaction", str(transaction_id))
        return txn

    def find_by_idempotency_key(self, tenant_id: UUID, key: str) -> Transaction | None:
        return self.session.execute(
            select(Transaction).where(
                Transaction.tenant_id == tenant_id,
                Transaction.idempotency_key == key,
            )
        ).scalar_one_or_none()

    def _lock_transaction(self, tenant_id: UUID, transaction_id: UUID) -> Transaction:
        # Re-read under the row lock so a concurrent void/reconcile is seen
        txn = self.session.execute(
            select(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.tenant_id == tenant_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if txn is None:
            raise NotFoundError("Transaction", str(transaction_id))
        return txn

    # =========================================================================
    # Posting
    # =========================================================================

    def post_transaction(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        data: TransactionInput,
        as_draft: bool = False,
    ) -> Transaction:
        """
        Validate and record a transaction.

        Steps: normalise amounts, check balance, check accounts, check the
        financial year, honour the idempotency key, allocate the number,
        persist transaction + lines, apply balance deltas (posted only),
        queue ``transaction.created``.

        Args:
            as_draft: Store as DRAFT: numbered and validated, but with no
                balance effect until ``post_draft``.

        Returns:
            The new Transaction, or the existing one when
            ``data.idempotency_key`` was already used.
        """
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            t0 = time.monotonic()
            try:
                with self._write_scope():
                    txn, created = self._post(tenant_id, actor_id, data, as_draft)
            except IntegrityError:
                # A concurrent call with the same key won the race
                if not (self._auto_commit and data.idempotency_key):
                    raise
                existing = self.find_by_idempotency_key(tenant_id, data.idempotency_key)
                if existing is None:
                    raise
                txn, created = existing, False
            except Exception:
                logger.warning(
                    "transaction_post_failed",
                    extra={"transaction_type": str(data.transaction_type)},
                    exc_info=True,
                )
                raise

            if created:
                logger.info(
                    "transaction_posted" if not as_draft else "transaction_drafted",
                    extra={
                        "transaction_id": str(txn.id),
                        "transaction_number": txn.transaction_number,
                        "transaction_type": txn.transaction_type,
                        "total_amount": str(txn.total_amount),
                        "line_count": len(txn.lines),
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
            else:
                logger.info(
                    "transaction_idempotent_replay",
                    extra={
                        "transaction_id": str(txn.id),
                        "idempotency_key": data.idempotency_key,
                    },
                )
            return txn

    def _post(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        data: TransactionInput,
        as_draft: bool,
    ) -> tuple[Transaction, bool]:
        try:
            txn_type = TransactionType(data.transaction_type)
        except ValueError:
            raise ValidationError(
                f"Unknown transaction type: {data.transaction_type!r}",
                field="transaction_type",
            )
        if data.transaction_date is None:
            raise ValidationError("transaction_date is required", field="transaction_date")

        amounts = normalize_line_amounts([(l.debit, l.credit) for l in data.lines])
        manual = data.reference_type != ReferenceType.RECURRING_JOURNAL
        accounts = self._accounts.require_postable(
            tenant_id, {l.account_id for l in data.lines}, manual=manual
        )
        self._years.ensure_open(tenant_id, data.transaction_date)

        if data.idempotency_key:
            existing = self.find_by_idempotency_key(tenant_id, data.idempotency_key)
            if existing is not None:
                return existing, False

        total_debits = sum((d for d, _ in amounts), ZERO)
        total_amount = _optional_money(data.total_amount, "total_amount")
        if total_amount is None:
            total_amount = total_debits

        number = self._sequences.next_transaction_number(
            tenant_id,
            txn_type.value,
            data.transaction_date.year,
            self._config.ledger.prefix_for(txn_type.value),
            self._config.ledger.number_width,
        )

        now = self._clock.now()
        txn = Transaction(
            tenant_id=tenant_id,
            store_id=data.store_id,
            transaction_number=number,
            transaction_date=data.transaction_date,
            transaction_type=txn_type.value,
            reference_type=ReferenceType(data.reference_type).value if data.reference_type else None,
            reference_id=data.reference_id,
            party_id=data.party_id,
            party_type=PartyType(data.party_type).value if data.party_type else None,
            party_name=data.party_name,
            description=data.description,
            notes=data.notes,
            subtotal=_or_default(_optional_money(data.subtotal, "subtotal"), total_amount),
            tax_amount=_or_default(_optional_money(data.tax_amount, "tax_amount"), ZERO),
            discount_amount=_or_default(_optional_money(data.discount_amount, "discount_amount"), ZERO),
            total_amount=total_amount,
            payment_mode=_payment_mode(data.payment_mode).value if data.payment_mode else None,
            payment_reference=data.payment_reference,
            status=(TransactionStatus.DRAFT if as_draft else TransactionStatus.POSTED).value,
            idempotency_key=data.idempotency_key,
            posted_at=None if as_draft else now,
            created_by_id=actor_id,
        )
        txn.lines = self._build_lines(tenant_id, data.lines, amounts)
        self.session.add(txn)
        self.session.flush()

        if not as_draft:
            self._apply_balances(tenant_id, txn.lines, accounts, sign=1)
            self._queue_event(DomainEventType.TRANSACTION_CREATED, txn)
        return txn, True

    def _build_lines(
        self,
        tenant_id: UUID,
        lines: Sequence[LineInput],
        amounts: list[tuple[Decimal, Decimal]],
    ) -> list[TransactionLine]:
        return [
            TransactionLine(
                tenant_id=tenant_id,
                account_id=line.account_id,
                description=line.description,
                debit_amount=debit,
                credit_amount=credit,
                tax_rate_id=line.tax_rate_id,
                tax_amount=_money(line.tax_amount, f"lines[{index}].tax_amount"),
                line_order=index,
            )
            for index, (line, (debit, credit)) in enumerate(zip(lines, amounts))
        ]

    def _apply_balances(
        self,
        tenant_id: UUID,
        lines: Iterable[TransactionLine],
        accounts: dict[UUID, Account],
        sign: int,
    ) -> None:
        deltas: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for line in lines:
            account = accounts[line.account_id]
            deltas[line.account_id] += signed_balance_delta(
                account.account_type, line.debit_amount, line.credit_amount
            )
        # Fixed lock order across concurrent postings
        for account_id in sorted(deltas, key=str):
            self._accounts.adjust_balance(tenant_id, account_id, deltas[account_id] * sign)

    def _queue_event(self, event_type: DomainEventType, txn: Transaction) -> None:
        self._events.queue(
            self.session,
            DomainEvent(
                event_type=event_type,
                tenant_id=txn.tenant_id,
                entity_id=txn.id,
                payload=transaction_snapshot(txn),
                occurred_at=self._clock.now(),
            ),
        )

    # =========================================================================
    # Drafts
    # =========================================================================

    def update_draft(
        self,
        tenant_id: UUID,
        transaction_id: UUID,
        data: TransactionInput,
        actor_id: UUID,
    ) -> Transaction:
        """
        Replace a draft's header fields and lines.

        The transaction number and type stay as allocated.

        Raises:
            InvalidStateError: The transaction is not a draft.
        """
        with self._write_scope():
            txn = self._lock_transaction(tenant_id, transaction_id)
            if not txn.is_draft:
                raise InvalidStateError("Transaction", str(transaction_id), txn.status, "edit")

            amounts = normalize_line_amounts([(l.debit, l.credit) for l in data.lines])
            manual = data.reference_type != ReferenceType.RECURRING_JOURNAL
            self._accounts.require_postable(
                tenant_id, {l.account_id for l in data.lines}, manual=manual
            )
            self._years.ensure_open(tenant_id, data.transaction_date)

            total_amount = _optional_money(data.total_amount, "total_amount")
            if total_amount is None:
                total_amount = sum((d for d, _ in amounts), ZERO)

            txn.transaction_date = data.transaction_date
            txn.description = data.description
            txn.notes = data.notes
            txn.store_id = data.store_id
            txn.reference_type = ReferenceType(data.reference_type).value if data.reference_type else None
            txn.reference_id = data.reference_id
            txn.party_id = data.party_id
            txn.party_type = PartyType(data.party_type).value if data.party_type else None
            txn.party_name = data.party_name
            txn.subtotal = _or_default(_optional_money(data.subtotal, "subtotal"), total_amount)
            txn.tax_amount = _or_default(_optional_money(data.tax_amount, "tax_amount"), ZERO)
            txn.discount_amount = _or_default(_optional_money(data.discount_amount, "discount_amount"), ZERO)
            txn.total_amount = total_amount
            txn.payment_mode = _payment_mode(data.payment_mode).value if data.payment_mode else None
            txn.payment_reference = data.payment_reference
            txn.lines = self._build_lines(tenant_id, data.lines, amounts)
            txn.updated_by_id = actor_id
            self.session.flush()

        logger.info(
            "transaction_draft_updated",
            extra={
                "tenant_id": str(tenant_id),
                "transaction_id": str(txn.id),
                "actor_id": str(actor_id),
            },
        )
        return txn

    def post_draft(self, tenant_id: UUID, transaction_id: UUID, actor_id: UUID) -> Transaction:
        """
        Move a draft to POSTED and apply its balance deltas.

        Accounts and the financial year are re-checked, since either may
        have changed since the draft was saved.

        Raises:
            InvalidStateError: The transaction is not a draft.
        """
        with self._write_scope():
            txn = self._lock_transaction(tenant_id, transaction_id)
            if not txn.is_draft:
                raise InvalidStateError("Transaction", str(transaction_id), txn.status, "post")
            if not txn.is_balanced:
                raise UnbalancedTransactionError(str(txn.total_debits), str(txn.total_credits))

            manual = txn.reference_type != ReferenceType.RECURRING_JOURNAL
            accounts = self._accounts.require_postable(
                tenant_id, {l.account_id for l in txn.lines}, manual=manual
            )
            self._years.ensure_open(tenant_id, txn.transaction_date)

            txn.status = TransactionStatus.POSTED.value
            txn.posted_at = self._clock.now()
            txn.updated_by_id = actor_id
            self.session.flush()

            self._apply_balances(tenant_id, txn.lines, accounts, sign=1)
            self._queue_event(DomainEventType.TRANSACTION_CREATED, txn)

        logger.info(
            "transaction_posted",
            extra={
                "tenant_id": str(tenant_id),
                "transaction_id": str(txn.id),
                "transaction_number": txn.transaction_number,
                "total_amount": str(txn.total_amount),
                "actor_id": str(actor_id),
            },
        )
        return txn

    # =========================================================================
    # Void
    # =========================================================================

    def void_transaction(
        self,
        tenant_id: UUID,
        transaction_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> Transaction:
        """
        Void a posted transaction and subtract its balance contribution.

        No reversing transaction is created: the row flips to VOID and
        keeps its lines for the audit trail.

        Raises:
            NotFoundError: Unknown transaction.
            InvalidStateError: Not POSTED (already void, or a draft).
            ConflictError: Still reconciled to a bank statement line.
            ClosedFinancialYearError: Dated inside a closed financial year.
        """
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            with self._write_scope():
                txn = self._lock_transaction(tenant_id, transaction_id)
                if not txn.is_posted:
                    raise InvalidStateError("Transaction", str(transaction_id), txn.status, "void")

                linked = self.session.execute(
                    select(BankTransaction.id).where(
                        BankTransaction.tenant_id == tenant_id,
                        BankTransaction.reconciled_transaction_id == txn.id,
                    )
                ).scalar_one_or_none()
                if linked is not None:
                    raise ConflictError(
                        "Transaction", str(transaction_id),
                        f"reconciled to bank line {linked}; unreconcile it first",
                    )

                self._years.ensure_open(tenant_id, txn.transaction_date)

                accounts = {
                    a.id: a
                    for a in self.session.execute(
                        select(Account).where(
                            Account.tenant_id == tenant_id,
                            Account.id.in_({l.account_id for l in txn.lines}),
                        )
                    ).scalars()
                }
                self._apply_balances(tenant_id, txn.lines, accounts, sign=-1)

                txn.status = TransactionStatus.VOID.value
                txn.voided_at = self._clock.now()
                txn.voided_by_id = actor_id
                txn.void_reason = reason
                txn.updated_by_id = actor_id
                self.session.flush()

                self._queue_event(DomainEventType.TRANSACTION_VOIDED, txn)

            logger.info(
                "transaction_voided",
                extra={
                    "transaction_id": str(txn.id),
                    "transaction_number": txn.transaction_number,
                    "total_amount": str(txn.total_amount),
                    "reason": reason,
                },
            )
            return txn

    # =========================================================================
    # Quick entries
    # =========================================================================

    def _account_by_code(self, tenant_id: UUID, code: str) -> Account:
        account = self._accounts.find_by_code(tenant_id, code)
        if account is None:
            raise InvalidAccountError(code, "configured account code not found in tenant")
        return account

    def _default_tax_rate(self, tenant_id: UUID, account_id: UUID) -> Decimal:
        account = self.session.execute(
            select(Account).where(Account.id == account_id, Account.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if account is None:
            return ZERO
        return AccountSettings.from_dict(account.settings).default_tax_rate or ZERO

    def _tax_for(self, amount: Decimal, rate) -> Decimal:
        try:
            rate = to_decimal(rate)
        except ValueError as exc:
            raise ValidationError(str(exc), field="tax_rate")
        if rate < 0 or rate > 100:
            raise ValidationError("tax_rate must be between 0 and 100", field="tax_rate")
        return round_money(amount * rate / Decimal("100"))

    def _quick_amount(self, value) -> Decimal:
        amount = _money(value, "amount")
        if amount == ZERO:
            raise ValidationError("amount must be greater than zero", field="amount")
        return amount

    def _payment_account(self, tenant_id: UUID, mode: PaymentMode, credit_code: str) -> Account:
        quick = self._config.quick_entry
        if mode == PaymentMode.CREDIT:
            return self._account_by_code(tenant_id, credit_code)
        code = quick.payment_account_codes.get(mode.value)
        if code is None:
            raise ValidationError(f"No account configured for payment mode {mode.value}", field="payment_mode")
        return self._account_by_code(tenant_id, code)

    def quick_sale(self, tenant_id: UUID, actor_id: UUID, data: QuickSaleInput) -> Transaction:
        """
        Post a two-line sale from a single pre-tax amount.

        Debit: payment account (explicit, or by payment mode; credit sales
        go to receivables).  Credit: sales account (explicit, or the
        configured sales code).  Both lines carry amount + tax; the header
        records subtotal and tax separately.
        """
        mode = _payment_mode(data.payment_mode)
        amount = self._quick_amount(data.amount)

        credit_id = data.credit_account_id or self._account_by_code(
            tenant_id, self._config.quick_entry.sales_account_code
        ).id
        debit_id = data.debit_account_id or self._payment_account(
            tenant_id, mode, self._config.quick_entry.receivable_account_code
        ).id

        rate = data.tax_rate if data.tax_rate is not None else self._default_tax_rate(tenant_id, credit_id)
        tax = self._tax_for(amount, rate)
        total = amount + tax

        return self.post_transaction(
            tenant_id,
            actor_id,
            TransactionInput(
                transaction_type=TransactionType.SALE,
                transaction_date=data.transaction_date,
                lines=[
                    LineInput(account_id=debit_id, debit=total, description="Payment received"),
                    LineInput(
                        account_id=credit_id,
                        credit=total,
                        description="Sales revenue",
                        tax_amount=tax,
                    ),
                ],
                description=data.description,
                party_id=data.party_id,
                party_type=PartyType.CUSTOMER if (data.party_id or data.party_name) else None,
                party_name=data.party_name,
                subtotal=amount,
                tax_amount=tax,
                total_amount=total,
                payment_mode=mode,
                payment_reference=data.payment_reference,
                idempotency_key=data.idempotency_key,
            ),
        )

    def quick_expense(self, tenant_id: UUID, actor_id: UUID, data: QuickExpenseInput) -> Transaction:
        """
        Post a two-line expense from a single pre-tax amount.

        Debit: the expense account.  Credit: payment account (explicit, or
        by payment mode; credit purchases go to payables).
        """
        mode = _payment_mode(data.payment_mode)
        amount = self._quick_amount(data.amount)

        credit_id = data.payment_account_id or self._payment_account(
            tenant_id, mode, self._config.quick_entry.payable_account_code
        ).id

        rate = (
            data.tax_rate
            if data.tax_rate is not None
            else self._default_tax_rate(tenant_id, data.expense_account_id)
        )
        tax = self._tax_for(amount, rate)
        total = amount + tax

        return self.post_transaction(
            tenant_id,
            actor_id,
            TransactionInput(
                transaction_type=TransactionType.EXPENSE,
                transaction_date=data.transaction_date,
                lines=[
                    LineInput(
                        account_id=data.expense_account_id,
                        debit=total,
                        description=data.description or "Expense",
                        tax_amount=tax,
                    ),
                    LineInput(account_id=credit_id, credit=total, description="Payment made"),
                ],
                description=data.description,
                party_id=data.party_id,
                party_type=PartyType.VENDOR if (data.party_id or data.party_name) else None,
                party_name=data.party_name,
                subtotal=amount,
                tax_amount=tax,
                total_amount=total,
                payment_mode=mode,
                payment_reference=data.payment_reference,
                idempotency_key=data.idempotency_key,
            ),
        )
