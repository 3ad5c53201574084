"""
AccountService -- the Account Registry (chart of accounts).

Responsibility:
    Creates, updates, lists and soft-deletes a tenant's ledger accounts,
    seeds the configured default chart, and applies balance deltas on
    behalf of the Ledger Engine.

Architecture position:
    Kernel > Services -- imperative shell, owns account persistence.
    Leaf component: LedgerService, ReconciliationService and
    RecurringJournalService depend on it; it depends on nothing above it.

Invariants enforced:
    - Type/sub-type consistency (ALLOWED_SUB_TYPES) on create.
    - A code is unique within the tenant's working set (non-deleted rows).
    - A parent belongs to the same tenant, is not deleted and has the same
      account type.
    - current_balance changes only through ``adjust_balance``, an atomic
      SQL increment that runs inside the Ledger Engine's transaction.
    - Accounts referenced by non-void transaction lines are never deleted.

Failure modes:
    - ValidationError for malformed specs, duplicate codes, bad parents.
    - SystemAccountError for protected operations on system accounts.
    - AccountReferencedError / ConflictError when deletion would orphan
      ledger history or child accounts.
    - NotFoundError for unknown (or foreign-tenant) account ids.

Audit relevance:
    Account creation, update and deletion are logged with the actor id.
    Deleted accounts stay in the table so past transactions still resolve.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from bookkeeping_config import BookkeepingConfig
from bookkeeping_kernel.db.types import ZERO, round_money, to_decimal
from bookkeeping_kernel.domain.clock import Clock
from bookkeeping_kernel.domain.dtos import AccountSpec, AccountUpdate, ChartOfAccounts
from bookkeeping_kernel.domain.settings import AccountSettings
from bookkeeping_kernel.exceptions import (
    AccountReferencedError,
    ConflictError,
    InvalidAccountError,
    NotFoundError,
    SystemAccountError,
    ValidationError,
)
from bookkeeping_kernel.logging_config import get_logger
from bookkeeping_kernel.models.account import (
    ALLOWED_SUB_TYPES,
    Account,
    AccountSubType,
    AccountType,
)
from bookkeeping_kernel.models.bank import BankAccount
from bookkeeping_kernel.models.recurring import (
    TERMINAL_STATUSES,
    RecurringJournal,
    RecurringJournalLine,
)
from bookkeeping_kernel.models.transaction import (
    Transaction,
    TransactionLine,
    TransactionStatus,
)
from bookkeeping_kernel.services.base import BaseService

logger = get_logger("services.account")


def _parse_type(value) -> AccountType:
    try:
        return AccountType(value)
    except ValueError:
        raise ValidationError(f"Unknown account type: {value!r}", field="account_type")


def _parse_sub_type(account_type: AccountType, value) -> AccountSubType | None:
    if value is None:
        return None
    try:
        sub_type = AccountSubType(value)
    except ValueError:
        raise ValidationError(f"Unknown account sub-type: {value!r}", field="sub_type")
    if sub_type not in ALLOWED_SUB_TYPES[account_type]:
        raise ValidationError(
            f"Sub-type '{sub_type.value}' is not valid for {account_type.value} accounts",
            field="sub_type",
        )
    return sub_type


class AccountService(BaseService):
    """
    Account Registry.

    Contract:
        Every method takes the caller's ``tenant_id`` and only ever reads
        or writes that tenant's rows.  Methods that mutate take the
        ``actor_id`` recorded in the audit columns.

    Guarantees:
        - ``get_chart_of_accounts`` reads the rows once and returns a
          restartable snapshot.
        - ``adjust_balance`` never commits; it is part of the caller's
          posting transaction.

    Non-goals:
        - Does NOT compute balances from history (see LedgerSelector).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: BookkeepingConfig | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session, clock, config, auto_commit)

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_account(
        self, tenant_id: UUID, account_id: UUID, include_deleted: bool = False
    ) -> Account:
        """
        Raises:
            NotFoundError: Unknown id, another tenant's account, or a
                deleted account when include_deleted is False.
        """
        account = self.session.execute(
            select(Account).where(Account.id == account_id, Account.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if account is None or (account.is_deleted and not include_deleted):
            raise NotFoundError("Account", str(account_id))
        return account

    def find_by_code(self, tenant_id: UUID, code: str) -> Account | None:
        """The non-deleted account with this code, or None."""
        return self.session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.code == code,
                Account.is_deleted == False,  # noqa: E712
            )
        ).scalar_one_or_none()

    def list_accounts(
        self,
        tenant_id: UUID,
        account_type: AccountType | None = None,
        include_inactive: bool = True,
    ) -> list[Account]:
        stmt = select(Account).where(
            Account.tenant_id == tenant_id,
            Account.is_deleted == False,  # noqa: E712
        )
        if account_type is not None:
            stmt = stmt.where(Account.account_type == AccountType(account_type).value)
        if not include_inactive:
            stmt = stmt.where(Account.is_active == True)  # noqa: E712
        stmt = stmt.order_by(Account.code, Account.name)
        return list(self.session.execute(stmt).scalars().all())

    def get_chart_of_accounts(self, tenant_id: UUID) -> ChartOfAccounts:
        """
        Snapshot of the tenant's working chart (non-deleted accounts).

        Iterating the result yields ChartNode objects depth-first, roots
        ordered by type then code then name; every iteration starts over.
        """
        accounts = self.session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.is_deleted == False,  # noqa: E712
            )
        ).scalars().all()
        return ChartOfAccounts(tenant_id, accounts)

    def require_postable(
        self,
        tenant_id: UUID,
        account_ids: set[UUID],
        manual: bool = True,
    ) -> dict[UUID, Account]:
        """
        Load accounts a posting refers to and check each one may be posted to.

        Args:
            manual: When True, accounts whose settings disable manual
                posting are refused as well.

        Raises:
            InvalidAccountError: Unknown or foreign-tenant id, deleted or
                inactive account, or manual posting disabled.
        """
        accounts = {
            a.id: a
            for a in self.session.execute(
                select(Account).where(
                    Account.tenant_id == tenant_id,
                    Account.id.in_(account_ids),
                )
            ).scalars().all()
        }
        for account_id in sorted(account_ids, key=str):
            account = accounts.get(account_id)
            if account is None:
                raise InvalidAccountError(str(account_id), "not found in tenant")
            if account.is_deleted:
                raise InvalidAccountError(str(account_id), "account is deleted")
            if not account.is_active:
                raise InvalidAccountError(str(account_id), "account is inactive")
            if manual and not AccountSettings.from_dict(account.settings).allow_manual_posting:
                raise InvalidAccountError(str(account_id), "manual posting is disabled")
        return accounts

    # =========================================================================
    # Mutation
    # =========================================================================

    def _validate_code(self, tenant_id: UUID, code: str, exclude_id: UUID | None = None) -> str:
        code = (code or "").strip()
        if not code:
            raise ValidationError("Account code is required", field="code")
        existing = self.find_by_code(tenant_id, code)
        if existing is not None and existing.id != exclude_id:
            raise ValidationError(f"Account code {code} already exists", field="code")
        return code

    def _validate_parent(
        self, tenant_id: UUID, parent_id: UUID, account_type: AccountType
    ) -> Account:
        parent = self.session.execute(
            select(Account).where(Account.id == parent_id, Account.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if parent is None or parent.is_deleted:
            raise ValidationError(
                f"Parent account {parent_id} not found", field="parent_id"
            )
        if AccountType(parent.account_type) != account_type:
            raise ValidationError(
                f"Parent account {parent.code} is {parent.account_type}, "
                f"not {account_type.value}",
                field="parent_id",
            )
        return parent

    def _build_account(self, tenant_id: UUID, spec: AccountSpec, actor_id: UUID) -> Account:
        account_type = _parse_type(spec.account_type)
        sub_type = _parse_sub_type(account_type, spec.sub_type)
        code = self._validate_code(tenant_id, spec.code)
        name = (spec.name or "").strip()
        if not name:
            raise ValidationError("Account name is required", field="name")
        if spec.parent_id is not None:
            self._validate_parent(tenant_id, spec.parent_id, account_type)

        try:
            opening = round_money(to_decimal(spec.opening_balance))
        except ValueError as exc:
            raise ValidationError(str(exc), field="opening_balance")
        settings = AccountSettings.from_dict(spec.settings).to_dict()

        account = Account(
            tenant_id=tenant_id,
            parent_id=spec.parent_id,
            code=code,
            name=name,
            description=spec.description,
            account_type=account_type.value,
            sub_type=sub_type.value if sub_type else None,
            is_system=spec.is_system,
            is_active=True,
            is_deleted=False,
            opening_balance=opening,
            current_balance=opening,
            settings=settings or None,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()
        return account

    def create_account(self, tenant_id: UUID, spec: AccountSpec, actor_id: UUID) -> Account:
        """
        Create an account.

        The opening balance (natural sign) becomes the current balance.

        Raises:
            ValidationError: Type/sub-type mismatch, duplicate code, missing
                name, bad parent, or invalid settings.
        """
        with self._write_scope():
            account = self._build_account(tenant_id, spec, actor_id)

        logger.info(
            "account_created",
            extra={
                "tenant_id": str(tenant_id),
                "account_id": str(account.id),
                "code": account.code,
                "account_type": account.account_type,
                "actor_id": str(actor_id),
            },
        )
        return account

    def update_account(
        self,
        tenant_id: UUID,
        account_id: UUID,
        changes: AccountUpdate,
        actor_id: UUID,
    ) -> Account:
        """
        Apply a partial update (None fields are left alone).

        Raises:
            NotFoundError: Unknown or deleted account.
            SystemAccountError: Code change or deactivation of a system account.
            ValidationError: Duplicate code, blank name, invalid settings.
        """
        with self._write_scope():
            account = self.get_account(tenant_id, account_id)

            if changes.code is not None and changes.code.strip() != account.code:
                if account.is_system:
                    raise SystemAccountError(str(account_id), "change the code of")
                account.code = self._validate_code(tenant_id, changes.code, exclude_id=account.id)

            if changes.name is not None:
                name = changes.name.strip()
                if not name:
                    raise ValidationError("Account name is required", field="name")
                account.name = name

            if changes.description is not None:
                account.description = changes.description

            if changes.is_active is not None:
                if account.is_system and not changes.is_active:
                    raise SystemAccountError(str(account_id), "deactivate")
                account.is_active = changes.is_active

            if changes.settings is not None:
                account.settings = AccountSettings.from_dict(changes.settings).to_dict() or None

            account.updated_by_id = actor_id

        logger.info(
            "account_updated",
            extra={
                "tenant_id": str(tenant_id),
                "account_id": str(account.id),
                "actor_id": str(actor_id),
            },
        )
        return account

    def adjust_balance(self, tenant_id: UUID, account_id: UUID, signed_delta) -> None:
        """
        Atomically add ``signed_delta`` to an account's current balance.

        LEDGER-ENGINE INTERNAL.  Called only by LedgerService inside the
        transaction that writes the triggering Transaction.  The delta is in
        the account's natural sign (see models.account.signed_balance_delta).
        Flush-only: never commits, whatever auto_commit says.

        Raises:
            InvalidAccountError: No such account in the tenant.
        """
        delta = round_money(to_decimal(signed_delta))
        if delta == ZERO:
            return

        # UPDATE ... SET current_balance = current_balance + :delta
        result = self.session.execute(
            update(Account)
            .where(Account.id == account_id, Account.tenant_id == tenant_id)
            .values(current_balance=Account.current_balance + delta)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidAccountError(str(account_id), "not found in tenant")

        cached = self.session.identity_map.get(self.session.identity_key(Account, account_id))
        if cached is not None:
            self.session.expire(cached, ["current_balance"])

        logger.debug(
            "account_balance_adjusted",
            extra={"account_id": str(account_id), "delta": str(delta)},
        )

    def delete_account(self, tenant_id: UUID, account_id: UUID, actor_id: UUID) -> Account:
        """
        Soft-delete an account.

        Raises:
            NotFoundError: Unknown or already deleted account.
            SystemAccountError: The account is a system account.
            AccountReferencedError: Non-void transaction lines use it.
            ConflictError: It still has child accounts, a live recurring
                template uses it, or a bank account is linked to it.
        """
        with self._write_scope():
            account = self.get_account(tenant_id, account_id)
            if account.is_system:
                raise SystemAccountError(str(account_id), "delete")

            line_count = self.session.execute(
                select(func.count(TransactionLine.id))
                .join(Transaction, TransactionLine.transaction_id == Transaction.id)
                .where(
                    TransactionLine.tenant_id == tenant_id,
                    TransactionLine.account_id == account_id,
                    Transaction.status != TransactionStatus.VOID.value,
                )
            ).scalar_one()
            if line_count:
                raise AccountReferencedError(str(account_id), line_count)

            child_count = self.session.execute(
                select(func.count(Account.id)).where(
                    Account.tenant_id == tenant_id,
                    Account.parent_id == account_id,
                    Account.is_deleted == False,  # noqa: E712
                )
            ).scalar_one()
            if child_count:
                raise ConflictError(
                    "Account", str(account_id),
                    f"has {child_count} child account(s); delete them first",
                )

            template_count = self.session.execute(
                select(func.count(func.distinct(RecurringJournal.id)))
                .join(RecurringJournalLine, RecurringJournalLine.recurring_journal_id == RecurringJournal.id)
                .where(
                    RecurringJournal.tenant_id == tenant_id,
                    RecurringJournalLine.account_id == account_id,
                    RecurringJournal.status.not_in([s.value for s in TERMINAL_STATUSES]),
                )
            ).scalar_one()
            if template_count:
                raise ConflictError(
                    "Account", str(account_id),
                    f"used by {template_count} recurring journal template(s)",
                )

            linked_bank = self.session.execute(
                select(func.count(BankAccount.id)).where(
                    BankAccount.tenant_id == tenant_id,
                    BankAccount.account_id == account_id,
                )
            ).scalar_one()
            if linked_bank:
                raise ConflictError("Account", str(account_id), "linked to a bank account")

            now = self._clock.now()
            account.is_deleted = True
            account.is_active = False
            account.deleted_at = now
            account.deleted_by_id = actor_id
            account.updated_by_id = actor_id

        logger.info(
            "account_deleted",
            extra={
                "tenant_id": str(tenant_id),
                "account_id": str(account_id),
                "code": account.code,
                "actor_id": str(actor_id),
            },
        )
        return account

    def initialize_default_accounts(self, tenant_id: UUID, actor_id: UUID) -> list[Account]:
        """
        Seed the configured chart of accounts as system accounts.

        Idempotent per code: codes that already exist are left untouched
        and reused as parents.  Returns only the accounts created now.
        """
        created: list[Account] = []
        with self._write_scope():
            by_code: dict[str, Account] = {
                a.code: a for a in self.list_accounts(tenant_id)
            }
            pending = list(self._config.seed_accounts)
            while pending:
                progressed = False
                for seed in list(pending):
                    if seed.code in by_code:
                        pending.remove(seed)
                        progressed = True
                        continue
                    if seed.parent_code is not None and seed.parent_code not in by_code:
                        continue
                    parent = by_code.get(seed.parent_code) if seed.parent_code else None
                    account = self._build_account(
                        tenant_id,
                        AccountSpec(
                            code=seed.code,
                            name=seed.name,
                            account_type=AccountType(seed.account_type),
                            sub_type=AccountSubType(seed.sub_type) if seed.sub_type else None,
                            parent_id=parent.id if parent else None,
                            description=seed.description,
                            is_system=True,
                        ),
                        actor_id,
                    )
                    by_code[seed.code] = account
                    created.append(account)
                    pending.remove(seed)
                    progressed = True
                if not progressed:
                    raise ValidationError(
                        "Seed chart has unresolvable parents: "
                        + ", ".join(s.code for s in pending),
                        field="chart_of_accounts",
                    )

        logger.info(
            "default_accounts_initialized",
            extra={
                "tenant_id": str(tenant_id),
                "created_count": len(created),
                "actor_id": str(actor_id),
            },
        )
        return created
