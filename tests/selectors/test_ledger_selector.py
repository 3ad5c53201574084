"""
Tests for LedgerSelector.

Verifies:
- list_transactions(): filters, newest-first ordering, tenant scoping
- daily_summary(): posted transactions only, grouped by type
- account_balance(): as_of cut-off, agreement with the stored balance
- trial_balance(): debits equal credits
"""

from datetime import date
from decimal import Decimal

import pytest

from bookkeeping_kernel.domain.dtos import LineInput, TransactionInput
from bookkeeping_kernel.exceptions import NotFoundError
from bookkeeping_kernel.models.transaction import TransactionStatus, TransactionType


class TestListTransactions:
    def test_newest_first(self, post, ledger_selector, tenant_id):
        older = post("1100", "3100", "500", transaction_date=date(2025, 4, 1))
        newer = post("5300", "1100", "100", transaction_date=date(2025, 4, 5))

        rows = ledger_selector.list_transactions(tenant_id)

        assert [r.transaction_id for r in rows] == [newer.id, older.id]
        assert rows[0].total_amount == Decimal("100.00")

    def test_date_range(self, post, ledger_selector, tenant_id):
        post("1100", "3100", "1", transaction_date=date(2025, 4, 1))
        inside = post("1100", "3100", "2", transaction_date=date(2025, 4, 3))
        post("1100", "3100", "3", transaction_date=date(2025, 4, 6))

        rows = ledger_selector.list_transactions(
            tenant_id, start_date=date(2025, 4, 2), end_date=date(2025, 4, 5)
        )

        assert [r.transaction_id for r in rows] == [inside.id]

    def test_type_and_status_filters(self, post, ledger_service, ledger_selector, tenant_id, actor_id):
        sale = post("1100", "4100", "250", transaction_type=TransactionType.SALE)
        journal = post("1100", "3100", "50")
        ledger_service.void_transaction(tenant_id, journal.id, actor_id, reason="typo")

        sales = ledger_selector.list_transactions(tenant_id, transaction_type="sale")
        voided = ledger_selector.list_transactions(tenant_id, status=TransactionStatus.VOID)

        assert [r.transaction_id for r in sales] == [sale.id]
        assert [r.transaction_id for r in voided] == [journal.id]
        assert voided[0].status == "void"

    def test_account_filter(self, post, ledger_selector, chart, tenant_id):
        rent = post("5300", "1200", "15000")
        post("1100", "4100", "99")

        rows = ledger_selector.list_transactions(tenant_id, account_id=chart["5300"].id)

        assert [r.transaction_id for r in rows] == [rent.id]

    def test_limit_and_offset(self, post, ledger_selector, tenant_id):
        for day in range(1, 6):
            post("1100", "3100", str(day), transaction_date=date(2025, 4, day))

        page = ledger_selector.list_transactions(tenant_id, limit=2, offset=1)

        assert [r.transaction_date for r in page] == [date(2025, 4, 4), date(2025, 4, 3)]

    def test_other_tenant_sees_nothing(self, post, ledger_selector, other_tenant_id):
        post("1100", "3100", "10")
        assert ledger_selector.list_transactions(other_tenant_id) == []

    def test_get_transaction(self, post, ledger_selector, tenant_id, other_tenant_id):
        txn = post("1100", "3100", "10")

        row = ledger_selector.get_transaction(tenant_id, txn.id)

        assert row.transaction_number == txn.transaction_number
        assert ledger_selector.get_transaction(other_tenant_id, txn.id) is None


class TestDailySummary:
    def test_groups_posted_by_type(self, post, ledger_service, ledger_selector, tenant_id, actor_id):
        post("1100", "4100", "250", transaction_type=TransactionType.SALE)
        post("1200", "4100", "750", transaction_type=TransactionType.SALE)
        post("5500", "1100", "40", transaction_type=TransactionType.EXPENSE)
        voided = post("5500", "1100", "999", transaction_type=TransactionType.EXPENSE)
        ledger_service.void_transaction(tenant_id, voided.id, actor_id)
        post("1100", "4100", "5", transaction_date=date(2025, 4, 11),
             transaction_type=TransactionType.SALE)

        summary = ledger_selector.daily_summary(tenant_id, date(2025, 4, 10))

        assert summary.transaction_count == 3
        assert summary.total_sales == Decimal("1000.00")
        assert summary.total_expenses == Decimal("40.00")
        assert summary.counts_by_type == {"sale": 2, "expense": 1}

    def test_drafts_not_counted(self, ledger_service, ledger_selector, chart, tenant_id, actor_id):
        ledger_service.post_transaction(
            tenant_id,
            actor_id,
            TransactionInput(
                transaction_type=TransactionType.SALE,
                transaction_date=date(2025, 4, 10),
                lines=[
                    LineInput(account_id=chart["1100"].id, debit="60"),
                    LineInput(account_id=chart["4100"].id, credit="60"),
                ],
            ),
            as_draft=True,
        )

        summary = ledger_selector.daily_summary(tenant_id, date(2025, 4, 10))

        assert summary.transaction_count == 0
        assert summary.total_sales == Decimal("0")

    def test_empty_day(self, chart, ledger_selector, tenant_id):
        summary = ledger_selector.daily_summary(tenant_id, date(2025, 1, 1))
        assert summary.transaction_count == 0
        assert summary.totals_by_type == {}


class TestAccountBalance:
    def test_matches_stored_balance(self, post, ledger_selector, balance_of, chart, tenant_id):
        post("1100", "3100", "1000")
        post("5300", "1100", "300")
        post("1100", "4100", "45.50", transaction_type=TransactionType.SALE)

        for code in ("1100", "3100", "4100", "5300"):
            derived = ledger_selector.account_balance(tenant_id, chart[code].id)
            assert derived.balance == balance_of(chart[code]), code

        assert ledger_selector.account_balance(tenant_id, chart["1100"].id).balance == Decimal("745.50")

    def test_natural_sign_for_credit_accounts(self, post, ledger_selector, chart, tenant_id):
        post("1100", "4100", "200", transaction_type=TransactionType.SALE)

        income = ledger_selector.account_balance(tenant_id, chart["4100"].id)

        assert income.credit_total == Decimal("200.00")
        assert income.balance == Decimal("200.00")

    def test_as_of_cutoff(self, post, ledger_selector, chart, tenant_id):
        post("1100", "3100", "100", transaction_date=date(2025, 4, 1))
        post("1100", "3100", "50", transaction_date=date(2025, 4, 8))

        early = ledger_selector.account_balance(tenant_id, chart["1100"].id, as_of=date(2025, 4, 7))
        late = ledger_selector.account_balance(tenant_id, chart["1100"].id, as_of=date(2025, 4, 8))

        assert early.balance == Decimal("100.00")
        assert late.balance == Decimal("150.00")

    def test_void_excluded(self, post, ledger_service, ledger_selector, chart, tenant_id, actor_id):
        txn = post("1100", "3100", "100")
        ledger_service.void_transaction(tenant_id, txn.id, actor_id)

        assert ledger_selector.account_balance(tenant_id, chart["1100"].id).balance == Decimal("0")

    def test_no_activity(self, chart, ledger_selector, tenant_id):
        result = ledger_selector.account_balance(tenant_id, chart["1400"].id)
        assert result.debit_total == Decimal("0")
        assert result.balance == Decimal("0")

    def test_unknown_account(self, chart, ledger_selector, other_tenant_id):
        with pytest.raises(NotFoundError):
            ledger_selector.account_balance(other_tenant_id, chart["1100"].id)


class TestTrialBalance:
    def test_debits_equal_credits(self, post, ledger_selector, tenant_id):
        post("1100", "3100", "10000")
        post("1200", "1100", "6000", transaction_type=TransactionType.TRANSFER)
        post("5300", "1200", "1500", transaction_type=TransactionType.EXPENSE)
        post("1300", "4100", "2360", transaction_type=TransactionType.SALE)

        rows = ledger_selector.trial_balance(tenant_id)

        assert sum(r.debit_total for r in rows) == sum(r.credit_total for r in rows)
        assert sum(r.net for r in rows) == Decimal("0")

    def test_ordered_by_code_activity_only(self, post, ledger_selector, tenant_id):
        post("5300", "1200", "1500")
        post("1100", "3100", "20")

        rows = ledger_selector.trial_balance(tenant_id)

        assert [r.account_code for r in rows] == ["1100", "1200", "3100", "5300"]
        assert rows[1].credit_total == Decimal("1500.00")
        assert rows[1].account_type == "asset"

    def test_as_of(self, post, ledger_selector, tenant_id):
        post("1100", "3100", "20", transaction_date=date(2025, 4, 1))
        post("5300", "1200", "1500", transaction_date=date(2025, 4, 9))

        rows = ledger_selector.trial_balance(tenant_id, as_of=date(2025, 4, 5))

        assert [r.account_code for r in rows] == ["1100", "3100"]

    def test_empty(self, chart, ledger_selector, tenant_id):
        assert ledger_selector.trial_balance(tenant_id) == []
