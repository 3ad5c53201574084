"""
ORM-level append-only enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here check the ledger's append-only
rules and raise ImmutabilityViolationError, which aborts the flush (and the
caller's transaction) before anything is written::

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete()       --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities:

Entity            | Rule
------------------|------------------------------------------------------------
Transaction       | Never deleted.  Posted rows may only move to void; void
                  | rows are frozen.
TransactionLine   | Frozen once the parent transaction leaves draft.
Account           | Never deleted (soft delete only); type and tenant fixed.
GeneratedJournal  | Always frozen (occurrence trace).
FinancialYear     | Frozen once closed.

updated_at / updated_by_id are audit metadata and may always change.

Bulk SQL (e.g. the balance increment in AccountService.adjust_balance) does
not pass through mapper events; balance columns are written only that way.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from bookkeeping_kernel.exceptions import ImmutabilityViolationError
from bookkeeping_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

# Fields a posted transaction may change while being voided
_VOID_FIELDS = frozenset({"status", "voided_at", "voided_by_id", "void_reason"})


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.mapper.column_attrs
        if attr.key not in _AUDIT_FIELDS
        and insp.attrs[attr.key].history.has_changes()
    ]


def _previous_value(target, key: str):
    """Value the attribute had before this flush."""
    history = get_history(target, key)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, key)


def _block(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_transaction_immutability(mapper, connection, target):
    """
    Posted transactions may only be voided; void transactions are frozen.

    Draft -> posted is the posting workflow itself and is allowed.
    """
    previous_status = _previous_value(target, "status")
    if previous_status == "draft":
        return

    changed = _changed_fields(target)
    if previous_status == "void" and changed:
        _block(
            "Transaction", target.id, "UPDATE",
            f"Cannot modify void transaction (fields: {', '.join(changed)})",
        )

    if previous_status == "posted":
        illegal = [f for f in changed if f not in _VOID_FIELDS]
        if illegal:
            _block(
                "Transaction", target.id, "UPDATE",
                f"Cannot modify posted transaction (fields: {', '.join(illegal)})",
            )
        if "status" in changed and target.status != "void":
            _block(
                "Transaction", target.id, "UPDATE",
                f"Posted transaction can only move to void, not {target.status}",
            )


def _check_transaction_delete(mapper, connection, target):
    _block("Transaction", target.id, "DELETE", "Transactions are never deleted")


def _parent_is_draft(line) -> bool:
    parent = line.transaction
    if parent is None:
        return True
    return _previous_value(parent, "status") == "draft"


def _check_transaction_line_immutability(mapper, connection, target):
    if not _parent_is_draft(target):
        _block(
            "TransactionLine", target.id, "UPDATE",
            "Lines cannot be modified after the transaction leaves draft",
        )


def _check_transaction_line_delete(mapper, connection, target):
    if not _parent_is_draft(target):
        _block(
            "TransactionLine", target.id, "DELETE",
            "Lines cannot be deleted after the transaction leaves draft",
        )


def _check_account_structural_immutability(mapper, connection, target):
    for key in ("account_type", "tenant_id"):
        if get_history(target, key).deleted:
            _block("Account", target.id, "UPDATE", f"Account field '{key}' is fixed")


def _check_account_delete(mapper, connection, target):
    _block("Account", target.id, "DELETE", "Accounts are soft-deleted, never removed")


def _check_generated_journal_immutability(mapper, connection, target):
    _block("GeneratedJournal", target.id, "UPDATE", "Occurrence records are immutable")


def _check_generated_journal_delete(mapper, connection, target):
    _block("GeneratedJournal", target.id, "DELETE", "Occurrence records cannot be deleted")


def _check_financial_year_immutability(mapper, connection, target):
    if _previous_value(target, "is_closed") and _changed_fields(target):
        _block("FinancialYear", target.id, "UPDATE", "Closed financial years are frozen")


def _check_financial_year_delete(mapper, connection, target):
    if target.is_closed:
        _block("FinancialYear", target.id, "DELETE", "Closed financial years cannot be deleted")


def _listeners():
    from bookkeeping_kernel.models.account import Account
    from bookkeeping_kernel.models.financial_year import FinancialYear
    from bookkeeping_kernel.models.recurring import GeneratedJournal
    from bookkeeping_kernel.models.transaction import Transaction, TransactionLine

    return [
        (Transaction, "before_update", _check_transaction_immutability),
        (Transaction, "before_delete", _check_transaction_delete),
        (TransactionLine, "before_update", _check_transaction_line_immutability),
        (TransactionLine, "before_delete", _check_transaction_line_delete),
        (Account, "before_update", _check_account_structural_immutability),
        (Account, "before_delete", _check_account_delete),
        (GeneratedJournal, "before_update", _check_generated_journal_immutability),
        (GeneratedJournal, "before_delete", _check_generated_journal_delete),
        (FinancialYear, "before_update", _check_financial_year_immutability),
        (FinancialYear, "before_delete", _check_financial_year_delete),
    ]


def register_immutability_listeners() -> None:
    """
    Register all append-only enforcement listeners (idempotent).

    Called by init_engine_from_url(); tests call it directly.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
