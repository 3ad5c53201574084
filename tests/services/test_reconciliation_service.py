"""
Tests for ReconciliationService -- the Bank Reconciliation Matcher.

Covers:
- Bank account registration and the linked-account rules
- Statement import: dedup by external id and by fingerprint, bad rows
- CSV import through the statement parser
- suggest_matches(): ranking order, scores, linked vs unlinked accounts
- auto_reconcile(): exact unambiguous matches only, idempotent re-run
- reconcile()/unreconcile(): exclusivity and state guards
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from bookkeeping_kernel.domain.dtos import (
    AccountSpec,
    AccountUpdate,
    BankAccountSpec,
    StatementLine,
)
from bookkeeping_kernel.domain.events import DomainEventType
from bookkeeping_kernel.exceptions import (
    AlreadyReconciledError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from bookkeeping_kernel.models.account import AccountSubType, AccountType


@pytest.fixture
def bank_account(reconciliation_service, chart, tenant_id, actor_id):
    """HDFC current account linked to ledger account 1200."""
    return reconciliation_service.create_bank_account(
        tenant_id,
        actor_id,
        BankAccountSpec(
            bank_name="HDFC Bank",
            account_name="Current Account",
            account_id=chart["1200"].id,
            account_number_last4="0012345678",
        ),
    )


@pytest.fixture
def import_lines(reconciliation_service, bank_account, tenant_id, actor_id):
    def _import(*lines):
        result = reconciliation_service.import_statement(
            tenant_id, bank_account.id, list(lines), actor_id
        )
        return list(result.bank_transaction_ids)

    return _import


def deposit(day, amount, **kwargs):
    return StatementLine(transaction_date=day, credit_amount=amount, **kwargs)


def withdrawal(day, amount, **kwargs):
    return StatementLine(transaction_date=day, debit_amount=amount, **kwargs)


class TestBankAccounts:
    def test_create_linked_account(self, bank_account, chart):
        assert bank_account.account_id == chart["1200"].id
        assert bank_account.account_number_last4 == "5678"
        assert bank_account.is_active

    def test_link_must_be_bank_or_cash_asset(
        self, reconciliation_service, chart, tenant_id, actor_id
    ):
        with pytest.raises(ValidationError, match="bank or cash"):
            reconciliation_service.create_bank_account(
                tenant_id,
                actor_id,
                BankAccountSpec(bank_name="SBI", account_name="Main", account_id=chart["4100"].id),
            )

    def test_link_refused_when_reconciliation_disabled(
        self, reconciliation_service, account_service, tenant_id, actor_id, chart
    ):
        petty = account_service.create_account(
            tenant_id,
            AccountSpec(
                code="1110",
                name="Petty Cash",
                account_type=AccountType.ASSET,
                sub_type=AccountSubType.CASH,
                settings={"allow_reconciliation": False},
            ),
            actor_id,
        )
        with pytest.raises(ValidationError, match="reconciliation"):
            reconciliation_service.create_bank_account(
                tenant_id,
                actor_id,
                BankAccountSpec(bank_name="SBI", account_name="Petty", account_id=petty.id),
            )

    def test_link_to_other_tenants_account_refused(
        self, reconciliation_service, chart, other_tenant_id, actor_id
    ):
        with pytest.raises(ValidationError):
            reconciliation_service.create_bank_account(
                other_tenant_id,
                actor_id,
                BankAccountSpec(bank_name="SBI", account_name="Main", account_id=chart["1200"].id),
            )

    def test_unknown_kind_rejected(self, reconciliation_service, tenant_id, actor_id):
        with pytest.raises(ValidationError):
            reconciliation_service.create_bank_account(
                tenant_id,
                actor_id,
                BankAccountSpec(bank_name="SBI", account_name="Main", account_kind="crypto"),
            )

    def test_only_one_primary(self, reconciliation_service, tenant_id, actor_id):
        first = reconciliation_service.create_bank_account(
            tenant_id, actor_id, BankAccountSpec(bank_name="SBI", account_name="A", is_primary=True)
        )
        second = reconciliation_service.create_bank_account(
            tenant_id, actor_id, BankAccountSpec(bank_name="ICICI", account_name="B", is_primary=True)
        )
        reconciliation_service.session.expire_all()
        assert not reconciliation_service.get_bank_account(tenant_id, first.id).is_primary
        assert reconciliation_service.get_bank_account(tenant_id, second.id).is_primary

    def test_get_unknown_bank_account(self, reconciliation_service, tenant_id):
        with pytest.raises(NotFoundError):
            reconciliation_service.get_bank_account(tenant_id, uuid4())


class TestImportStatement:
    def test_import_stores_lines(self, reconciliation_service, bank_account, tenant_id, actor_id):
        result = reconciliation_service.import_statement(
            tenant_id,
            bank_account.id,
            [
                deposit(date(2025, 4, 1), "1500.00", description="NEFT FROM SHARMA"),
                withdrawal(date(2025, 4, 2), "250.50", reference="CHQ 001122"),
            ],
            actor_id,
        )
        assert result.total_rows == 2
        assert result.imported_rows == 2
        assert result.duplicate_rows == 0

        line = reconciliation_service.get_bank_transaction(tenant_id, result.bank_transaction_ids[1])
        assert line.debit_amount == Decimal("250.50")
        assert line.net_amount == Decimal("-250.50")
        assert not line.is_reconciled
        assert line.import_batch_id == result.batch_id

    def test_reimport_skips_fingerprinted_duplicates(
        self, reconciliation_service, bank_account, tenant_id, actor_id
    ):
        lines = [
            deposit(date(2025, 4, 1), "1500.00", description="NEFT FROM SHARMA"),
            withdrawal(date(2025, 4, 2), "250.50"),
        ]
        reconciliation_service.import_statement(tenant_id, bank_account.id, lines, actor_id)
        overlap = lines + [deposit(date(2025, 4, 3), "99.00")]
        result = reconciliation_service.import_statement(tenant_id, bank_account.id, overlap, actor_id)

        assert result.imported_rows == 1
        assert result.duplicate_rows == 2

    def test_external_id_dedup_within_batch(
        self, reconciliation_service, bank_account, tenant_id, actor_id
    ):
        result = reconciliation_service.import_statement(
            tenant_id,
            bank_account.id,
            [
                deposit(date(2025, 4, 1), "10", external_id="TXN-1"),
                deposit(date(2025, 4, 1), "20", external_id="TXN-1"),
            ],
            actor_id,
        )
        assert result.imported_rows == 1
        assert result.duplicate_rows == 1

    def test_same_line_in_another_bank_account_is_not_a_duplicate(
        self, reconciliation_service, bank_account, tenant_id, actor_id
    ):
        other = reconciliation_service.create_bank_account(
            tenant_id, actor_id, BankAccountSpec(bank_name="SBI", account_name="Savings",
                                                 account_kind="savings")
        )
        line = deposit(date(2025, 4, 1), "10", external_id="TXN-1")
        reconciliation_service.import_statement(tenant_id, bank_account.id, [line], actor_id)
        result = reconciliation_service.import_statement(tenant_id, other.id, [line], actor_id)
        assert result.imported_rows == 1

    def test_bad_rows_are_skipped_with_errors(
        self, reconciliation_service, bank_account, tenant_id, actor_id
    ):
        result = reconciliation_service.import_statement(
            tenant_id,
            bank_account.id,
            [
                deposit(date(2025, 4, 1), "-10"),
                StatementLine(transaction_date=date(2025, 4, 1), debit_amount="5", credit_amount="5"),
                StatementLine(transaction_date=date(2025, 4, 1)),
                deposit(date(2025, 4, 1), "10"),
            ],
            actor_id,
        )
        assert result.imported_rows == 1
        assert result.skipped_rows == 3
        assert result.errors[0].startswith("line 0:")

    def test_unknown_bank_account(self, reconciliation_service, chart, tenant_id, actor_id):
        with pytest.raises(NotFoundError):
            reconciliation_service.import_statement(
                tenant_id, uuid4(), [deposit(date(2025, 4, 1), "10")], actor_id
            )

    def test_import_is_logged(self, import_lines, captured_logs):
        import_lines(deposit(date(2025, 4, 1), "10"))
        record = next(r for r in captured_logs() if r["message"] == "statement_imported")
        assert record["imported_rows"] == 1


class TestImportCsvStatement:
    CSV = (
        "Date,Narration,Chq./Ref.No.,Withdrawal Amt.,Deposit Amt.,Closing Balance\n"
        "01/04/2025,NEFT FROM SHARMA,UTR001,,\"1,500.00\",\"11,500.00\"\n"
        "02/04/2025,RENT APRIL,CHQ9,\"9,000.00\",,\"2,500.00\"\n"
        "31/02/2025,BROKEN DATE,,10.00,,\n"
        "\n"
    )

    def test_rows_imported_and_errors_reported(
        self, reconciliation_service, bank_account, tenant_id, actor_id
    ):
        result = reconciliation_service.import_csv_statement(
            tenant_id, bank_account.id, self.CSV, actor_id
        )
        assert result.total_rows == 3
        assert result.imported_rows == 2
        assert result.skipped_rows == 1
        assert result.errors[0].startswith("row 4:")

        line = reconciliation_service.get_bank_transaction(tenant_id, result.bank_transaction_ids[0])
        assert line.credit_amount == Decimal("1500.00")
        assert line.balance == Decimal("11500.00")
        assert line.reference == "UTR001"

    def test_reimport_is_all_duplicates(
        self, reconciliation_service, bank_account, tenant_id, actor_id
    ):
        reconciliation_service.import_csv_statement(tenant_id, bank_account.id, self.CSV, actor_id)
        result = reconciliation_service.import_csv_statement(
            tenant_id, bank_account.id, self.CSV, actor_id
        )
        assert result.imported_rows == 0
        assert result.duplicate_rows == 2

    def test_missing_date_column(self, reconciliation_service, bank_account, tenant_id, actor_id):
        with pytest.raises(ValidationError, match="date"):
            reconciliation_service.import_csv_statement(
                tenant_id, bank_account.id, "Narration,Deposit\nX,10\n", actor_id
            )


class TestSuggestMatches:
    def test_ranking_order_and_scores(self, import_lines, reconciliation_service, post, tenant_id):
        (line_id,) = import_lines(deposit(date(2025, 4, 10), "1000.00", reference="UTR123"))
        later = post("1200", "4100", "1000.00", transaction_date=date(2025, 4, 12))
        same_day = post("1200", "4100", "1000.00", transaction_date=date(2025, 4, 10))
        near = post("1200", "4100", "990.00", transaction_date=date(2025, 4, 10),
                    payment_reference="UTR123")
        post("1100", "4100", "1000.00", transaction_date=date(2025, 4, 10))

        suggestions = list(reconciliation_service.suggest_matches(tenant_id, line_id))

        assert [s.transaction_id for s in suggestions] == [same_day.id, later.id, near.id]
        assert [s.score for s in suggestions] == [80, 70, 79]
        assert suggestions[1].days_apart == 2
        assert suggestions[2].amount_difference == Decimal("10.00")
        assert suggestions[2].reference_match
        assert "reference matches" in suggestions[2].reasons

    def test_withdrawal_matches_credit_to_bank(self, import_lines, reconciliation_service, post, tenant_id):
        (line_id,) = import_lines(withdrawal(date(2025, 4, 10), "9000.00"))
        rent = post("5300", "1200", "9000.00")
        post("1200", "4100", "9000.00")

        suggestions = list(reconciliation_service.suggest_matches(tenant_id, line_id))
        assert suggestions[0].transaction_id == rent.id
        assert suggestions[0].exact_amount
        assert not suggestions[1].exact_amount

    def test_outside_window_excluded(self, import_lines, reconciliation_service, post, tenant_id):
        (line_id,) = import_lines(deposit(date(2025, 4, 10), "100"))
        post("1200", "4100", "100", transaction_date=date(2025, 4, 1))
        assert list(reconciliation_service.suggest_matches(tenant_id, line_id, window_days=3)) == []

    def test_limit(self, import_lines, reconciliation_service, post, tenant_id):
        (line_id,) = import_lines(deposit(date(2025, 4, 10), "100"))
        for _ in range(3):
            post("1200", "4100", "100")
        assert len(list(reconciliation_service.suggest_matches(tenant_id, line_id, limit=2))) == 2

    def test_void_and_draft_transactions_excluded(
        self, import_lines, reconciliation_service, ledger_service, post, tenant_id, actor_id
    ):
        (line_id,) = import_lines(deposit(date(2025, 4, 10), "100"))
        txn = post("1200", "4100", "100")
        ledger_service.void_transaction(tenant_id, txn.id, actor_id)
        assert list(reconciliation_service.suggest_matches(tenant_id, line_id)) == []

    def test_reconciled_line_has_no_suggestions(
        self, import_lines, reconciliation_service, post, tenant_id, actor_id
    ):
        (line_id,) = import_lines(deposit(date(2025, 4, 10), "100"))
        txn = post("1200", "4100", "100")
        post("1200", "4100", "100")
        reconciliation_service.reconcile(tenant_id, line_id, txn.id, actor_id)
        assert list(reconciliation_service.suggest_matches(tenant_id, line_id)) == []

    def test_transaction_linked_elsewhere_excluded(
        self, import_lines, reconciliation_service, post, tenant_id, actor_id
    ):
        first, second = import_lines(
            deposit(date(2025, 4, 10), "100", external_id="a"),
            deposit(date(2025, 4, 10), "100", external_id="b"),
        )
        txn = post("1200", "4100", "100")
        reconciliation_service.reconcile(tenant_id, first, txn.id, actor_id)
        assert list(reconciliation_service.suggest_matches(tenant_id, second)) == []

    def test_unknown_line_raises_eagerly(self, reconciliation_service, tenant_id):
        with pytest.raises(NotFoundError):
            reconciliation_service.suggest_matches(tenant_id, uuid4())

    def test_unlinked_bank_account_matches_on_total(
        self, reconciliation_service, post, tenant_id, actor_id
    ):
        unlinked = reconciliation_service.create_bank_account(
            tenant_id, actor_id, BankAccountSpec(bank_name="SBI", account_name="Loose")
        )
        result = reconciliation_service.import_statement(
            tenant_id, unlinked.id, [withdrawal(date(2025, 4, 10), "450")], actor_id
        )
        txn = post("5500", "1100", "450")
        suggestions = list(
            reconciliation_service.suggest_matches(tenant_id, result.bank_transaction_ids[0])
        )
        assert [s.transaction_id for s in suggestions] == [txn.id]
        assert suggestions[0].exact_amount


class TestAutoReconcile:
    def test_exact_match_within_window(
        self, import_lines, reconciliation_service, bank_account, post, tenant_id, actor_id
    ):
        (line_id,) = import_lines(deposit(date(2025, 3, 10), "500.00"))
        txn = post("1200", "4100", "500.00", transaction_date=date(2025, 3, 11))

        result = reconciliation_service.auto_reconcile(tenant_id, bank_account.id, actor_id)

        assert result.matched_count == 1
        assert result.matched[0].bank_transaction_id == line_id
        assert result.matched[0].transaction_id == txn.id
        assert result.needs_review == ()
        line = reconciliation_service.get_bank_transaction(tenant_id, line_id)
        assert line.is_reconciled
        assert line.reconciled_transaction_id == txn.id
        assert line.reconciled_by_id == actor_id

        again = reconciliation_service.auto_reconcile(tenant_id, bank_account.id, actor_id)
        assert again.matched_count == 0
        assert again.total_processed == 0

    def test_two_candidates_needs_review(
        self, import_lines, reconciliation_service, bank_account, post, tenant_id, actor_id
    ):
        (line_id,) = import_lines(deposit(date(2025, 4, 10), "500.00"))
        post("1200", "4100", "500.00")
        post("1200", "4100", "500.00", transaction_date=date(2025, 4, 11))

        result = reconciliation_service.auto_reconcile(tenant_id, bank_account.id, actor_id)
        assert result.matched_count == 0
        assert result.needs_review == (line_id,)

    def test_shared_sole_candidate_needs_review(
        self, import_lines, reconciliation_service, bank_account, post, tenant_id, actor_id
    ):
        lines = import_lines(
            deposit(date(2025, 4, 10), "300", external_id="a"),
            deposit(date(2025, 4, 10), "300", external_id="b"),
        )
        post("1200", "4100", "300")

        result = reconciliation_service.auto_reconcile(tenant_id, bank_account.id, actor_id)
        assert result.matched_count == 0
        assert set(result.needs_review) == set(lines)

    def test_outside_window_not_matched(
        self, import_lines, reconciliation_service, bank_account, post, tenant_id, actor_id
    ):
        import_lines(deposit(date(2025, 4, 1), "500.00"))
        post("1200", "4100", "500.00", transaction_date=date(2025, 4, 5))

        assert reconciliation_service.auto_reconcile(
            tenant_id, bank_account.id, actor_id
        ).matched_count == 0
        assert reconciliation_service.auto_reconcile(
            tenant_id, bank_account.id, actor_id, window_days=4
        ).matched_count == 1

    def test_near_amount_not_matched(
        self, import_lines, reconciliation_service, bank_account, post, tenant_id, actor_id
    ):
        import_lines(deposit(date(2025, 4, 10), "500.00"))
        post("1200", "4100", "500.01")
        result = reconciliation_service.auto_reconcile(tenant_id, bank_account.id, actor_id)
        assert result.matched_count == 0
        assert len(result.needs_review) == 1

    def test_balances_untouched(
        self, import_lines, reconciliation_service, bank_account, post, chart, tenant_id,
        actor_id, balance_of,
    ):
        import_lines(deposit(date(2025, 4, 10), "500.00"))
        post("1200", "4100", "500.00")
        reconciliation_service.auto_reconcile(tenant_id, bank_account.id, actor_id)
        assert balance_of(chart["1200"]) == Decimal("500.00")


class TestReconcile:
    def test_reconcile_and_event(
        self, import_lines, reconciliation_service, post, tenant_id, actor_id, publisher
    ):
        (line_id,) = import_lines(deposit(date(2025, 4, 10), "100"))
        txn = post("1200", "4100", "100")

        line = reconciliation_service.reconcile(tenant_id, line_id, txn.id, actor_id)

        assert line.is_reconciled
        assert line.reconciled_at is not None
        events = publisher.of_type(DomainEventType.BANK_RECONCILED)
        assert [e.entity_id for e in events] == [line_id]
        assert events[0].payload["reconciled_transaction_id"] == str(txn.id)

    def test_manual_reconcile_ignores_amount(
        self, import_lines, reconciliation_service, post, tenant_id, actor_id
    ):
        (line_id,) = import_lines(deposit(date(2025, 4, 10), "100"))
        txn = post("1200", "4100", "95", transaction_date=date(2025, 3, 1))
        assert reconciliation_service.reconcile(tenant_id, line_id, txn.id, actor_id).is_reconciled

    def test_line_already_reconciled(
        self, import_lines, reconciliation_service, post, tenant_id, actor_id
    ):
        (line_id,) = import_lines(deposit(date(2025, 4, 10), "100"))
        first = post("1200", "4100", "100")
        second = post("1200", "4100", "100")
        reconciliation_service.reconcile(tenant_id, line_id, first.id, actor_id)

        with pytest.raises(AlreadyReconciledError) as exc_info:
            reconciliation_service.reconcile(tenant_id, line_id, second.id, actor_id)
        assert exc_info.value.transaction_id == str(first.id)

    def test_transaction_linked_to_one_line_only(
        self, import_lines, reconciliation_service, post, tenant_id, actor_id
    ):
        first, second = import_lines(
            deposit(date(2025, 4, 10), "100", external_id="a"),
            deposit(date(2025, 4, 10), "100", external_id="b"),
        )
        txn = post("1200", "4100", "100")
        reconciliation_service.reconcile(tenant_id, first, txn.id, actor_id)

        with pytest.raises(ConflictError):
            reconciliation_service.reconcile(tenant_id, second, txn.id, actor_id)
        assert not reconciliation_service.get_bank_transaction(tenant_id, second).is_reconciled

    def test_draft_cannot_be_reconciled(
        self, import_lines, reconciliation_service, ledger_service, chart, tenant_id, actor_id
    ):
        from bookkeeping_kernel.domain.dtos import LineInput, TransactionInput
        from bookkeeping_kernel.models.transaction import TransactionType

        (line_id,) = import_lines(deposit(date(2025, 4, 10), "100"))
        draft = ledger_service.post_transaction(
            tenant_id,
            actor_id,
            TransactionInput(
                transaction_type=TransactionType.RECEIPT,
                transaction_date=date(2025, 4, 10),
                lines=[
                    LineInput(account_id=chart["1200"].id, debit="100"),
                    LineInput(account_id=chart["1300"].id, credit="100"),
                ],
            ),
            as_draft=True,
        )
        with pytest.raises(InvalidStateError):
            reconciliation_service.reconcile(tenant_id, line_id, draft.id, actor_id)

    def test_unknown_transaction(self, import_lines, reconciliation_service, tenant_id, actor_id):
        (line_id,) = import_lines(deposit(date(2025, 4, 10), "100"))
        with pytest.raises(NotFoundError):
            reconciliation_service.reconcile(tenant_id, line_id, uuid4(), actor_id)

    def test_other_tenant_cannot_reconcile(
        self, import_lines, reconciliation_service, post, other_tenant_id, actor_id
    ):
        (line_id,) = import_lines(deposit(date(2025, 4, 10), "100"))
        txn = post("1200", "4100", "100")
        with pytest.raises(NotFoundError):
            reconciliation_service.reconcile(other_tenant_id, line_id, txn.id, actor_id)

    def test_unreconcile_frees_both_sides(
        self, import_lines, reconciliation_service, post, tenant_id, actor_id
    ):
        first, second = import_lines(
            deposit(date(2025, 4, 10), "100", external_id="a"),
            deposit(date(2025, 4, 10), "100", external_id="b"),
        )
        txn = post("1200", "4100", "100")
        reconciliation_service.reconcile(tenant_id, first, txn.id, actor_id)

        line = reconciliation_service.unreconcile(tenant_id, first, actor_id)
        assert not line.is_reconciled
        assert line.reconciled_transaction_id is None
        assert line.reconciled_at is None
        assert reconciliation_service.reconcile(tenant_id, second, txn.id, actor_id).is_reconciled

    def test_unreconcile_unlinked_line_is_noop(
        self, import_lines, reconciliation_service, tenant_id, actor_id, captured_logs
    ):
        (line_id,) = import_lines(deposit(date(2025, 4, 10), "100"))
        line = reconciliation_service.unreconcile(tenant_id, line_id, actor_id)
        assert not line.is_reconciled
        assert not any(
            r["message"] == "bank_transaction_unreconciled" for r in captured_logs()
        )
