"""
Typed exception hierarchy for the bookkeeping kernel.

Every error raised by the kernel is an instance of ``BookkeepingError`` and
carries:

  1. A TYPED class, so callers catch by type rather than by message.
  2. A ``code`` class attribute (machine-readable, API-safe).
  3. Structured attributes describing the failure.

Hierarchy::

    BookkeepingError
    |
    +-- ValidationError                 VALIDATION_ERROR
    |   +-- SystemAccountError          SYSTEM_ACCOUNT_PROTECTED
    |
    +-- UnbalancedTransactionError      UNBALANCED_TRANSACTION
    +-- InvalidAccountError             INVALID_ACCOUNT
    |
    +-- InvalidStateError               INVALID_STATE
    |   +-- ClosedFinancialYearError    CLOSED_FINANCIAL_YEAR
    |   +-- ImmutabilityViolationError  IMMUTABILITY_VIOLATION
    |
    +-- ConflictError                   CONFLICT
    |   +-- AccountReferencedError      ACCOUNT_REFERENCED
    |   +-- AlreadyReconciledError      ALREADY_RECONCILED
    |   +-- DuplicateOccurrenceError    DUPLICATE_OCCURRENCE
    |
    +-- NotFoundError                   NOT_FOUND

All of these are local failures: they abort the in-flight storage
transaction before commit and are surfaced to the caller verbatim.  None
is retried automatically.

Handling pattern::

    try:
        ledger.post_transaction(tenant_id, actor_id, data)
    except UnbalancedTransactionError as e:
        return {"error": e.code, "debits": e.debits, "credits": e.credits}
"""


class BookkeepingError(Exception):
    """
    Base exception for all bookkeeping kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "BOOKKEEPING_ERROR"


# Validation


class ValidationError(BookkeepingError):
    """Malformed input, detected before any write."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class SystemAccountError(ValidationError):
    """A protected operation was attempted on a system (seeded) account."""

    code: str = "SYSTEM_ACCOUNT_PROTECTED"

    def __init__(self, account_id: str, operation: str):
        self.account_id = account_id
        self.operation = operation
        super().__init__(
            f"Cannot {operation} system account {account_id}",
            field="is_system",
        )


# Posting


class UnbalancedTransactionError(BookkeepingError):
    """Transaction debits do not equal credits."""

    code: str = "UNBALANCED_TRANSACTION"

    def __init__(self, debits: str, credits: str):
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Unbalanced transaction: debits={debits}, credits={credits}"
        )


class InvalidAccountError(BookkeepingError):
    """Account reference is unknown, foreign to the tenant, deleted or inactive."""

    code: str = "INVALID_ACCOUNT"

    def __init__(self, account_id: str, reason: str):
        self.account_id = account_id
        self.reason = reason
        super().__init__(f"Invalid account {account_id}: {reason}")


# State


class InvalidStateError(BookkeepingError):
    """Illegal state transition (e.g. voiding a void transaction)."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        state: str,
        action: str,
        message: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.state = state
        self.action = action
        super().__init__(
            message
            or f"Cannot {action} {entity_type} {entity_id} in state '{state}'"
        )


class ClosedFinancialYearError(InvalidStateError):
    """Posting or voiding inside a closed financial year."""

    code: str = "CLOSED_FINANCIAL_YEAR"

    def __init__(self, financial_year_id: str, year_name: str, transaction_date: str):
        self.year_name = year_name
        self.transaction_date = transaction_date
        super().__init__(
            entity_type="FinancialYear",
            entity_id=financial_year_id,
            state="closed",
            action="post",
            message=(
                f"Financial year {year_name} is closed; "
                f"cannot record activity dated {transaction_date}"
            ),
        )


class ImmutabilityViolationError(InvalidStateError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.reason = reason
        super().__init__(
            entity_type=entity_type,
            entity_id=entity_id,
            state="immutable",
            action="modify",
            message=f"Immutability violation on {entity_type} {entity_id}: {reason}",
        )


# Conflicts


class ConflictError(BookkeepingError):
    """Duplicate reconciliation, referenced record or concurrent mutation race."""

    code: str = "CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Conflict on {entity_type} {entity_id}: {reason}")


class AccountReferencedError(ConflictError):
    """Account cannot be deleted while non-void transaction lines reference it."""

    code: str = "ACCOUNT_REFERENCED"

    def __init__(self, account_id: str, line_count: int):
        self.line_count = line_count
        super().__init__(
            entity_type="Account",
            entity_id=account_id,
            reason=f"referenced by {line_count} non-void transaction line(s)",
        )


class AlreadyReconciledError(ConflictError):
    """Bank line or ledger transaction is already part of a reconciliation."""

    code: str = "ALREADY_RECONCILED"

    def __init__(self, bank_transaction_id: str, transaction_id: str | None):
        self.bank_transaction_id = bank_transaction_id
        self.transaction_id = transaction_id
        super().__init__(
            entity_type="BankTransaction",
            entity_id=bank_transaction_id,
            reason=f"already reconciled to transaction {transaction_id}",
        )


class DuplicateOccurrenceError(ConflictError):
    """A recurring journal occurrence was already generated."""

    code: str = "DUPLICATE_OCCURRENCE"

    def __init__(self, recurring_journal_id: str, occurrence_number: int):
        self.occurrence_number = occurrence_number
        super().__init__(
            entity_type="RecurringJournal",
            entity_id=recurring_journal_id,
            reason=f"occurrence {occurrence_number} already generated",
        )


# Lookup


class NotFoundError(BookkeepingError):
    """Entity does not exist within the caller's tenant."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")
