"""
ReconciliationService -- the Bank Reconciliation Matcher.

Responsibility:
    Registers bank accounts, imports statement lines (de-duplicated on
    re-import), proposes ranked ledger candidates for a bank line, and
    commits matches automatically (unambiguous only) or manually.

Architecture position:
    Kernel > Services.  Reads Transactions written by the Ledger Engine and
    records the bank-line <-> transaction correspondence.  Never creates
    transactions and never touches account balances.

Invariants enforced:
    - A statement line is stored once per (bank_account_id, external_id).
      Lines without a bank id get a SHA-256 fingerprint as external id.
    - A bank line links to at most one transaction, and a transaction to
      at most one bank line (unique reconciled_transaction_id).
    - Reconcile/unreconcile re-read the bank line under a row lock, so the
      second of two concurrent reconcile calls fails with ConflictError.
    - auto_reconcile only links a line whose sole exact-amount candidate
      within the window is not claimed by any other line in the run.

Failure modes:
    - NotFoundError: unknown bank account, bank line or transaction.
    - AlreadyReconciledError / ConflictError: double links.
    - InvalidStateError: reconciling a draft or void transaction.
    - ValidationError: bad bank account spec or unparseable CSV header.

Audit relevance:
    Imports log batch id and row counts; every link records the actor and
    time on the bank line and emits ``bank.reconciled`` after commit.
"""

from __future__ import annotations

from collections import Counter
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterator, Sequence
from uuid import UUID, uuid4

from sqlalchemy import exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookkeeping_config import BookkeepingConfig
from bookkeeping_kernel.db.types import ZERO, round_money, to_cents, to_decimal
from bookkeeping_kernel.domain.clock import Clock
from bookkeeping_kernel.domain.dtos import (
    AutoReconcileResult,
    BankAccountSpec,
    ImportResult,
    MatchSuggestion,
    ReconciliationMatch,
    StatementLine,
)
from bookkeeping_kernel.domain.events import (
    DomainEvent,
    DomainEventType,
    bank_transaction_snapshot,
)
from bookkeeping_kernel.domain.settings import AccountSettings
from bookkeeping_kernel.domain.statement_parser import parse_csv_statement
from bookkeeping_kernel.exceptions import (
    AlreadyReconciledError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from bookkeeping_kernel.logging_config import LogContext, get_logger
from bookkeeping_kernel.models.account import Account, AccountSubType, AccountType
from bookkeeping_kernel.models.bank import BankAccount, BankAccountKind, BankTransaction
from bookkeeping_kernel.models.transaction import Transaction, TransactionStatus
from bookkeeping_kernel.services.base import BaseService
from bookkeeping_kernel.services.event_publisher import EventDispatcher, EventPublisher
from bookkeeping_kernel.utils.hashing import fingerprint_statement_line

logger = get_logger("services.reconciliation")

_LINKABLE_SUB_TYPES = frozenset({AccountSubType.BANK, AccountSubType.CASH})

# Minimum length for a reference to count as a substring match
_MIN_REFERENCE_LENGTH = 3


def _contains(haystack: str | None, needle: str | None) -> bool:
    if not haystack or not needle:
        return False
    needle = needle.strip().lower()
    return len(needle) >= _MIN_REFERENCE_LENGTH and needle in haystack.lower()


def _reference_match(bank_line: BankTransaction, txn: Transaction) -> bool:
    """Payment reference / number of the transaction found on the bank line, or vice versa."""
    bank_text = " ".join(filter(None, (bank_line.reference, bank_line.description)))
    for needle in (txn.payment_reference, txn.transaction_number):
        if _contains(bank_text, needle):
            return True
    return _contains(txn.payment_reference, bank_line.reference)


class ReconciliationService(BaseService):
    """
    Bank Reconciliation Matcher.

    Contract:
        Matching is deterministic and rule-based.  ``suggest_matches`` is
        advisory; only ``reconcile`` and ``auto_reconcile`` write links.

    Guarantees:
        - Re-importing an overlapping statement creates no duplicate rows.
        - ``auto_reconcile`` never links an ambiguous line; false positives
          are worse than leaving a line for manual review.

    Non-goals:
        - No statistical or fuzzy matching; no split matches (one bank line
          to many transactions).
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
        self._events = EventDispatcher(publisher)

    # =========================================================================
    # Bank accounts
    # =========================================================================

    def create_bank_account(
        self, tenant_id: UUID, actor_id: UUID, spec: BankAccountSpec
    ) -> BankAccount:
        """
        Register a bank account, optionally linked to a ledger account.

        Raises:
            ValidationError: Blank names, unknown account kind, or a linked
                account that is not a bank/cash asset of the tenant (or has
                reconciliation disabled).
        """
        with self._write_scope():
            bank_name = (spec.bank_name or "").strip()
            account_name = (spec.account_name or "").strip()
            if not bank_name:
                raise ValidationError("bank_name is required", field="bank_name")
            if not account_name:
                raise ValidationError("account_name is required", field="account_name")
            try:
                kind = BankAccountKind(spec.account_kind)
            except ValueError:
                raise ValidationError(
                    f"Unknown bank account kind: {spec.account_kind!r}", field="account_kind"
                )

            if spec.account_id is not None:
                self._validate_linked_account(tenant_id, spec.account_id)

            if spec.is_primary:
                self.session.execute(
                    update(BankAccount)
                    .where(BankAccount.tenant_id == tenant_id, BankAccount.is_primary == True)  # noqa: E712
                    .values(is_primary=False, updated_by_id=actor_id)
                    .execution_options(synchronize_session="fetch")
                )

            last4 = (spec.account_number_last4 or "").strip()
            bank_account = BankAccount(
                tenant_id=tenant_id,
                account_id=spec.account_id,
                bank_name=bank_name,
                account_name=account_name,
                account_number_last4=last4[-4:] or None,
                ifsc_code=spec.ifsc_code,
                branch=spec.branch,
                account_kind=kind.value,
                opening_balance=round_money(to_decimal(spec.opening_balance)),
                is_primary=spec.is_primary,
                is_active=True,
                created_by_id=actor_id,
            )
            self.session.add(bank_account)
            self.session.flush()

        logger.info(
            "bank_account_created",
            extra={
                "tenant_id": str(tenant_id),
                "bank_account_id": str(bank_account.id),
                "linked_account_id": str(spec.account_id) if spec.account_id else None,
            },
        )
        return bank_account

    def _validate_linked_account(self, tenant_id: UUID, account_id: UUID) -> Account:
        account = self.session.execute(
            select(Account).where(Account.id == account_id, Account.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if account is None or account.is_deleted:
            raise ValidationError(f"Account {account_id} not found", field="account_id")
        if (
            AccountType(account.account_type) != AccountType.ASSET
            or account.sub_type is None
            or AccountSubType(account.sub_type) not in _LINKABLE_SUB_TYPES
        ):
            raise ValidationError(
                f"Account {account.code} must be an asset account of sub-type bank or cash",
                field="account_id",
            )
        if not AccountSettings.from_dict(account.settings).allow_reconciliation:
            raise ValidationError(
                f"Account {account.code} does not allow reconciliation", field="account_id"
            )
        return account

    def get_bank_account(self, tenant_id: UUID, bank_account_id: UUID) -> BankAccount:
        bank_account = self.session.execute(
            select(BankAccount).where(
                BankAccount.id == bank_account_id,
                BankAccount.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if bank_account is None:
            raise NotFoundError("BankAccount", str(bank_account_id))
        return bank_account

    def get_bank_transaction(self, tenant_id: UUID, bank_transaction_id: UUID) -> BankTransaction:
        bank_line = self.session.execute(
            select(BankTransaction).where(
                BankTransaction.id == bank_transaction_id,
                BankTransaction.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if bank_line is None:
            raise NotFoundError("BankTransaction", str(bank_transaction_id))
        return bank_line

    # =========================================================================
    # Import
    # =========================================================================

    def import_statement(
        self,
        tenant_id: UUID,
        bank_account_id: UUID,
        lines: Sequence[StatementLine],
        actor_id: UUID,
        batch_id: UUID | None = None,
    ) -> ImportResult:
        """
        Store statement lines, skipping ones already imported.

        Duplicates (same external id, stored or earlier in this batch) are
        skipped silently and counted.  Lines with a negative amount, or
        with neither or both sides set, are skipped with an error message.

        Raises:
            NotFoundError: Unknown bank account.
            ConflictError: A concurrent import stored the same lines first.
        """
        batch_id = batch_id or uuid4()
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            with self._write_scope():
                self.get_bank_account(tenant_id, bank_account_id)

                prepared: list[tuple[str, StatementLine, Decimal, Decimal, Decimal | None]] = []
                errors: list[str] = []
                for index, line in enumerate(lines):
                    try:
                        debit = round_money(to_decimal(line.debit_amount))
                        credit = round_money(to_decimal(line.credit_amount))
                        balance = (
                            round_money(to_decimal(line.balance))
                            if line.balance is not None
                            else None
                        )
                    except ValueError as exc:
                        errors.append(f"line {index}: {exc}")
                        continue
                    if debit < ZERO or credit < ZERO:
                        errors.append(f"line {index}: negative amount")
                        continue
                    if (debit == ZERO) == (credit == ZERO):
                        errors.append(f"line {index}: exactly one of debit or credit must be set")
                        continue

                    external_id = (line.external_id or "").strip() or fingerprint_statement_line(
                        bank_account_id,
                        line.transaction_date,
                        debit,
                        credit,
                        line.reference,
                        line.description,
                        balance,
                    )
                    prepared.append((external_id, line, debit, credit, balance))

                stored = set(
                    self.session.execute(
                        select(BankTransaction.external_id).where(
                            BankTransaction.bank_account_id == bank_account_id,
                            BankTransaction.external_id.in_({p[0] for p in prepared}),
                        )
                    ).scalars().all()
                ) if prepared else set()

                seen: set[str] = set()
                created: list[BankTransaction] = []
                duplicates = 0
                for external_id, line, debit, credit, balance in prepared:
                    if external_id in stored or external_id in seen:
                        duplicates += 1
                        continue
                    seen.add(external_id)
                    bank_line = BankTransaction(
                        tenant_id=tenant_id,
                        bank_account_id=bank_account_id,
                        transaction_date=line.transaction_date,
                        value_date=line.value_date,
                        description=line.description,
                        reference=line.reference,
                        debit_amount=debit,
                        credit_amount=credit,
                        balance=balance,
                        is_reconciled=False,
                        import_batch_id=batch_id,
                        external_id=external_id,
                        created_by_id=actor_id,
                    )
                    self.session.add(bank_line)
                    created.append(bank_line)

                try:
                    self.session.flush()
                except IntegrityError:
                    raise ConflictError(
                        "BankAccount", str(bank_account_id),
                        "statement lines were imported concurrently; retry the import",
                    )

            result = ImportResult(
                batch_id=batch_id,
                total_rows=len(lines),
                imported_rows=len(created),
                duplicate_rows=duplicates,
                skipped_rows=len(errors),
                bank_transaction_ids=tuple(b.id for b in created),
                errors=tuple(errors),
            )
            logger.info(
                "statement_imported",
                extra={
                    "bank_account_id": str(bank_account_id),
                    "batch_id": str(batch_id),
                    "total_rows": result.total_rows,
                    "imported_rows": result.imported_rows,
                    "duplicate_rows": result.duplicate_rows,
                    "skipped_rows": result.skipped_rows,
                },
            )
            return result

    def import_csv_statement(
        self,
        tenant_id: UUID,
        bank_account_id: UUID,
        text: str,
        actor_id: UUID,
        batch_id: UUID | None = None,
        delimiter: str = ",",
    ) -> ImportResult:
        """
        Parse a CSV statement export and import its rows.

        Rows the parser rejects are counted as skipped, with their errors.

        Raises:
            ValidationError: The header has no date or amount column.
        """
        parsed = parse_csv_statement(text, delimiter=delimiter)
        result = self.import_statement(
            tenant_id, bank_account_id, parsed.lines, actor_id, batch_id=batch_id
        )
        return ImportResult(
            batch_id=result.batch_id,
            total_rows=parsed.total_rows,
            imported_rows=result.imported_rows,
            duplicate_rows=result.duplicate_rows,
            skipped_rows=parsed.skipped_rows + result.skipped_rows,
            bank_transaction_ids=result.bank_transaction_ids,
            errors=parsed.errors + result.errors,
        )

    # =========================================================================
    # Matching
    # =========================================================================

    def _candidates(
        self,
        tenant_id: UUID,
        bank_line: BankTransaction,
        linked_account_id: UUID | None,
        window_days: int,
    ) -> list[tuple[Transaction, Decimal]]:
        """
        Posted, unreconciled transactions within the date window, with the
        amount each one puts on the bank side.

        With a linked ledger account the amount is the signed net debit on
        that account (a deposit matches a debit to the bank account);
        transactions that do not touch the account are not candidates.
        Without one, the transaction total is compared with the absolute
        bank amount.
        """
        start = bank_line.transaction_date - timedelta(days=window_days)
        end = bank_line.transaction_date + timedelta(days=window_days)

        already_linked = exists().where(
            BankTransaction.reconciled_transaction_id == Transaction.id
        )
        txns = self.session.execute(
            select(Transaction)
            .where(
                Transaction.tenant_id == tenant_id,
                Transaction.status == TransactionStatus.POSTED.value,
                Transaction.transaction_date >= start,
                Transaction.transaction_date <= end,
                ~already_linked,
            )
            .order_by(Transaction.transaction_date, Transaction.transaction_number)
        ).scalars().all()

        result: list[tuple[Transaction, Decimal]] = []
        for txn in txns:
            if linked_account_id is not None:
                if not any(l.account_id == linked_account_id for l in txn.lines):
                    continue
                amount = txn.amount_on(linked_account_id)
            else:
                amount = txn.total_amount
            if to_cents(amount) == 0:
                continue
            result.append((txn, amount))
        return result

    def _target_amount(self, bank_line: BankTransaction, linked: bool) -> Decimal:
        # Deposit (credit) is a debit on the bank ledger account
        return bank_line.net_amount if linked else bank_line.amount

    def _rank(
        self,
        bank_line: BankTransaction,
        candidates: list[tuple[Transaction, Decimal]],
        linked: bool,
    ) -> list[MatchSuggestion]:
        target = self._target_amount(bank_line, linked)
        suggestions: list[MatchSuggestion] = []
        for txn, amount in candidates:
            difference = abs(amount - target)
            exact = to_cents(difference) == 0
            days_apart = abs((txn.transaction_date - bank_line.transaction_date).days)
            reference = _reference_match(bank_line, txn)

            score = 50 if exact else 0
            if not exact and target != ZERO:
                closeness = Decimal(1) - min(difference / abs(target), Decimal(1))
                score += int(closeness * 30)
            score += max(0, 30 - 5 * days_apart)
            if reference:
                score += 20

            reasons = ["exact amount" if exact else f"amount differs by {difference}"]
            reasons.append("same day" if days_apart == 0 else f"{days_apart} day(s) apart")
            if reference:
                reasons.append("reference matches")

            suggestions.append(
                MatchSuggestion(
                    transaction_id=txn.id,
                    transaction_number=txn.transaction_number,
                    transaction_date=txn.transaction_date,
                    amount=amount,
                    amount_difference=difference,
                    days_apart=days_apart,
                    exact_amount=exact,
                    reference_match=reference,
                    score=min(score, 100),
                    reasons=tuple(reasons),
                )
            )

        suggestions.sort(
            key=lambda s: (
                not s.exact_amount,
                s.days_apart,
                not s.reference_match,
                s.amount_difference,
                s.transaction_number,
            )
        )
        return suggestions

    def suggest_matches(
        self,
        tenant_id: UUID,
        bank_transaction_id: UUID,
        window_days: int | None = None,
        limit: int | None = None,
    ) -> Iterator[MatchSuggestion]:
        """
        Ranked candidate transactions for one bank line (advisory only).

        Order: exact amount first, then closer date, then reference match,
        then smaller amount difference, then transaction number.  The
        bank line is looked up eagerly (NotFoundError is raised here); the
        candidates are produced lazily as the result is iterated.

        Raises:
            NotFoundError: Unknown bank line.
        """
        bank_line = self.get_bank_transaction(tenant_id, bank_transaction_id)
        settings = self._config.reconciliation
        window = settings.suggestion_window_days if window_days is None else window_days
        limit = settings.max_suggestions if limit is None else limit
        return self._iter_suggestions(tenant_id, bank_line, window, limit)

    def _iter_suggestions(
        self,
        tenant_id: UUID,
        bank_line: BankTransaction,
        window_days: int,
        limit: int,
    ) -> Iterator[MatchSuggestion]:
        if bank_line.is_reconciled:
            return
        bank_account = self.get_bank_account(tenant_id, bank_line.bank_account_id)
        linked_id = bank_account.account_id
        candidates = self._candidates(tenant_id, bank_line, linked_id, window_days)
        for suggestion in self._rank(bank_line, candidates, linked_id is not None)[:limit]:
            yield suggestion

    def auto_reconcile(
        self,
        tenant_id: UUID,
        bank_account_id: UUID,
        actor_id: UUID,
        window_days: int | None = None,
    ) -> AutoReconcileResult:
        """
        Link every unambiguous unreconciled line of a bank account.

        A line is linked only when exactly one posted, unreconciled
        transaction has the exact amount within ``window_days`` of the line
        date, and that transaction is not also the sole candidate of another
        line in this run.  Everything else is returned as needs_review.
        One storage transaction for the whole run.
        """
        window = (
            self._config.reconciliation.auto_match_window_days
            if window_days is None
            else window_days
        )
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            with self._write_scope():
                bank_account = self.get_bank_account(tenant_id, bank_account_id)
                linked_id = bank_account.account_id
                open_lines = self.session.execute(
                    select(BankTransaction)
                    .where(
                        BankTransaction.tenant_id == tenant_id,
                        BankTransaction.bank_account_id == bank_account_id,
                        BankTransaction.is_reconciled == False,  # noqa: E712
                    )
                    .order_by(BankTransaction.transaction_date, BankTransaction.id)
                ).scalars().all()

                exact: dict[UUID, list[Transaction]] = {}
                for bank_line in open_lines:
                    target = self._target_amount(bank_line, linked_id is not None)
                    exact[bank_line.id] = [
                        txn
                        for txn, amount in self._candidates(tenant_id, bank_line, linked_id, window)
                        if to_cents(amount) == to_cents(target)
                    ]

                sole_claims = Counter(
                    found[0].id for found in exact.values() if len(found) == 1
                )

                matched: list[ReconciliationMatch] = []
                needs_review: list[UUID] = []
                for bank_line in open_lines:
                    found = exact[bank_line.id]
                    if len(found) != 1 or sole_claims[found[0].id] > 1:
                        needs_review.append(bank_line.id)
                        continue
                    self._link(tenant_id, bank_line.id, found[0].id, actor_id)
                    matched.append(ReconciliationMatch(bank_line.id, found[0].id))

            result = AutoReconcileResult(
                matched=tuple(matched),
                needs_review=tuple(needs_review),
                total_processed=len(open_lines),
            )
            logger.info(
                "auto_reconcile_completed",
                extra={
                    "bank_account_id": str(bank_account_id),
                    "window_days": window,
                    "total_processed": result.total_processed,
                    "matched": result.matched_count,
                    "needs_review": len(result.needs_review),
                },
            )
            return result

    # =========================================================================
    # Manual reconciliation
    # =========================================================================

    def _lock_bank_line(self, tenant_id: UUID, bank_transaction_id: UUID) -> BankTransaction:
        bank_line = self.session.execute(
            select(BankTransaction)
            .where(
                BankTransaction.id == bank_transaction_id,
                BankTransaction.tenant_id == tenant_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if bank_line is None:
            raise NotFoundError("BankTransaction", str(bank_transaction_id))
        return bank_line

    def _link(
        self,
        tenant_id: UUID,
        bank_transaction_id: UUID,
        transaction_id: UUID,
        actor_id: UUID,
    ) -> BankTransaction:
        bank_line = self._lock_bank_line(tenant_id, bank_transaction_id)
        if bank_line.is_reconciled:
            raise AlreadyReconciledError(
                str(bank_transaction_id),
                str(bank_line.reconciled_transaction_id)
                if bank_line.reconciled_transaction_id
                else None,
            )

        txn = self.session.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id, Transaction.tenant_id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if txn is None:
            raise NotFoundError("Transaction", str(transaction_id))
        if not txn.is_posted:
            raise InvalidStateError("Transaction", str(transaction_id), txn.status, "reconcile")

        other = self.session.execute(
            select(BankTransaction.id).where(
                BankTransaction.tenant_id == tenant_id,
                BankTransaction.reconciled_transaction_id == transaction_id,
            )
        ).scalar_one_or_none()
        if other is not None:
            raise ConflictError(
                "Transaction", str(transaction_id),
                f"already reconciled to bank line {other}",
            )

        bank_line.is_reconciled = True
        bank_line.reconciled_transaction_id = txn.id
        bank_line.reconciled_at = self._clock.now()
        bank_line.reconciled_by_id = actor_id
        bank_line.updated_by_id = actor_id
        try:
            self.session.flush()
        except IntegrityError:
            raise ConflictError(
                "Transaction", str(transaction_id),
                "reconciled concurrently to another bank line",
            )

        self._events.queue(
            self.session,
            DomainEvent(
                event_type=DomainEventType.BANK_RECONCILED,
                tenant_id=tenant_id,
                entity_id=bank_line.id,
                payload=bank_transaction_snapshot(bank_line),
                occurred_at=self._clock.now(),
            ),
        )
        return bank_line

    def reconcile(
        self,
        tenant_id: UUID,
        bank_transaction_id: UUID,
        transaction_id: UUID,
        actor_id: UUID,
    ) -> BankTransaction:
        """
        Link a bank line to a posted ledger transaction.

        Account balances are not touched; they changed when the transaction
        was posted.

        Raises:
            NotFoundError: Unknown bank line or transaction.
            AlreadyReconciledError: The bank line is already linked.
            InvalidStateError: The transaction is not posted.
            ConflictError: The transaction is linked to another bank line.
        """
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            with self._write_scope():
                bank_line = self._link(tenant_id, bank_transaction_id, transaction_id, actor_id)
            logger.info(
                "bank_transaction_reconciled",
                extra={
                    "bank_transaction_id": str(bank_transaction_id),
                    "transaction_id": str(transaction_id),
                },
            )
            return bank_line

    def unreconcile(
        self, tenant_id: UUID, bank_transaction_id: UUID, actor_id: UUID
    ) -> BankTransaction:
        """
        Remove a bank line's link.  A line that is not linked is left as is.

        Raises:
            NotFoundError: Unknown bank line.
        """
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            with self._write_scope():
                bank_line = self._lock_bank_line(tenant_id, bank_transaction_id)
                if not bank_line.is_reconciled:
                    logger.debug(
                        "bank_transaction_not_reconciled",
                        extra={"bank_transaction_id": str(bank_transaction_id)},
                    )
                    return bank_line

                previous = bank_line.reconciled_transaction_id
                bank_line.is_reconciled = False
                bank_line.reconciled_transaction_id = None
                bank_line.reconciled_at = None
                bank_line.reconciled_by_id = None
                bank_line.updated_by_id = actor_id

            logger.info(
                "bank_transaction_unreconciled",
                extra={
                    "bank_transaction_id": str(bank_transaction_id),
                    "transaction_id": str(previous),
                },
            )
            return bank_line
