"""
RecurringJournalService -- recurring journal templates and their generation.

Responsibility:
    Stores balanced journal templates with a recurrence calendar and
    materializes each due occurrence as a posted transaction through the
    Ledger Engine.

Architecture position:
    Kernel > Services.  Uses domain/recurrence.py for the pure calendar
    arithmetic and LedgerService (auto_commit=False) for posting, so a
    generated transaction obeys exactly the same rules as a manual one.

Invariants enforced:
    - Templates balance when created or edited (same check as posting).
    - Each (template, occurrence number) is generated at most once:
      GeneratedJournal has a unique constraint on the pair and the ledger
      idempotency key ``recurring:<template id>:<n>`` is unique per tenant.
    - One commit per occurrence.  A failed occurrence rolls back alone and
      leaves the template unchanged, so the next sweep retries it.
    - completed and cancelled are terminal.

Failure modes:
    - ValidationError / UnbalancedTransactionError / InvalidAccountError on
      create and update.
    - InvalidStateError for an illegal status transition, or generate_now
      on a finished template.
    - DuplicateOccurrenceError when the next occurrence already exists.

Audit relevance:
    Every generated transaction carries reference_type=recurring_journal
    and reference_id=<template id>; the GeneratedJournal row records which
    occurrence and scheduled date it stands for.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookkeeping_config import BookkeepingConfig
from bookkeeping_kernel.db.types import ZERO
from bookkeeping_kernel.domain.clock import Clock
from bookkeeping_kernel.domain.dtos import (
    LineInput,
    OccurrenceResult,
    RecurringJournalInput,
    RecurringJournalUpdate,
    RecurringLineInput,
    SweepResult,
    TransactionInput,
)
from bookkeeping_kernel.domain.recurrence import advance, is_due, is_exhausted, roll_forward
from bookkeeping_kernel.exceptions import (
    BookkeepingError,
    ConflictError,
    DuplicateOccurrenceError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from bookkeeping_kernel.logging_config import LogContext, get_logger
from bookkeeping_kernel.models.recurring import (
    GeneratedJournal,
    RecurrenceFrequency,
    RecurringJournal,
    RecurringJournalLine,
    RecurringJournalStatus,
)
from bookkeeping_kernel.models.transaction import ReferenceType, TransactionType
from bookkeeping_kernel.services.account_service import AccountService
from bookkeeping_kernel.services.base import BaseService
from bookkeeping_kernel.services.event_publisher import EventPublisher
from bookkeeping_kernel.services.ledger_service import LedgerService, normalize_line_amounts

logger = get_logger("services.recurring")


def _frequency(value) -> RecurrenceFrequency:
    try:
        return RecurrenceFrequency(value)
    except ValueError:
        raise ValidationError(f"Unknown frequency: {value!r}", field="frequency")


def _interval(value: int | None) -> int:
    # 0 and None both mean "every period"
    interval = value or 1
    if interval < 1:
        raise ValidationError(
            f"interval_count must be >= 1, got {interval}", field="interval_count"
        )
    return interval


def _check_limits(start_date: date, end_date: date | None, max_occurrences: int | None) -> None:
    if end_date is not None and end_date < start_date:
        raise ValidationError("end_date must not be before start_date", field="end_date")
    if max_occurrences is not None and max_occurrences < 1:
        raise ValidationError(
            f"max_occurrences must be >= 1, got {max_occurrences}", field="max_occurrences"
        )


class RecurringJournalService(BaseService):
    """
    Recurring Journal Scheduler.

    Contract:
        Template commands (create, update, pause, resume, cancel) follow
        ``auto_commit`` like every other service.  ``generate_due`` and
        ``generate_now`` own their boundaries: they always commit (or roll
        back) once per occurrence.

    Guarantees:
        - No catch-up.  After a generation next_run_date lies after the
          run date, and resume moves a stale next_run_date forward by
          whole periods, so missed dates are skipped rather than posted.
        - Two sweeps running at the same time never generate the same
          occurrence twice; the loser is reported as skipped.

    Non-goals:
        - No amount formulas or variable templates.
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
        self._publisher = publisher
        self._accounts = AccountService(session, self._clock, self._config, auto_commit=False)

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, tenant_id: UUID, recurring_journal_id: UUID) -> RecurringJournal:
        rj = self.session.execute(
            select(RecurringJournal).where(
                RecurringJournal.id == recurring_journal_id,
                RecurringJournal.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if rj is None:
            raise NotFoundError("RecurringJournal", str(recurring_journal_id))
        return rj

    def list_journals(
        self,
        tenant_id: UUID,
        status: RecurringJournalStatus | None = None,
    ) -> list[RecurringJournal]:
        stmt = select(RecurringJournal).where(RecurringJournal.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(RecurringJournal.status == RecurringJournalStatus(status).value)
        stmt = stmt.order_by(RecurringJournal.next_run_date, RecurringJournal.name)
        return list(self.session.execute(stmt).scalars().all())

    def list_generated(self, tenant_id: UUID, recurring_journal_id: UUID) -> list[GeneratedJournal]:
        self.get(tenant_id, recurring_journal_id)
        return list(
            self.session.execute(
                select(GeneratedJournal)
                .where(
                    GeneratedJournal.tenant_id == tenant_id,
                    GeneratedJournal.recurring_journal_id == recurring_journal_id,
                )
                .order_by(GeneratedJournal.occurrence_number)
            ).scalars().all()
        )

    def _lock(self, tenant_id: UUID, recurring_journal_id: UUID) -> RecurringJournal:
        rj = self.session.execute(
            select(RecurringJournal)
            .where(
                RecurringJournal.id == recurring_journal_id,
                RecurringJournal.tenant_id == tenant_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if rj is None:
            raise NotFoundError("RecurringJournal", str(recurring_journal_id))
        return rj

    # =========================================================================
    # Template commands
    # =========================================================================

    def _build_lines(
        self, tenant_id: UUID, lines: Sequence[RecurringLineInput]
    ) -> tuple[list[RecurringJournalLine], Decimal]:
        amounts = normalize_line_amounts([(l.debit, l.credit) for l in lines])
        # Generated postings are not manual; the allow_manual_posting flag is not checked
        self._accounts.require_postable(
            tenant_id, {l.account_id for l in lines}, manual=False
        )
        built = [
            RecurringJournalLine(
                tenant_id=tenant_id,
                account_id=line.account_id,
                description=line.description,
                debit_amount=debit,
                credit_amount=credit,
                line_order=index,
            )
            for index, (line, (debit, credit)) in enumerate(zip(lines, amounts))
        ]
        return built, sum((d for d, _ in amounts), ZERO)

    def create(
        self, tenant_id: UUID, actor_id: UUID, data: RecurringJournalInput
    ) -> RecurringJournal:
        """
        Store a new active template whose first run is its start date.

        Raises:
            ValidationError: Blank name, unknown frequency or transaction
                type, interval < 1, end before start, max_occurrences < 1,
                fewer than two lines.
            UnbalancedTransactionError: Template lines do not balance.
            InvalidAccountError: A line account is unknown or not postable.
        """
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            with self._write_scope():
                name = (data.name or "").strip()
                if not name:
                    raise ValidationError("Recurring journal name is required", field="name")
                frequency = _frequency(data.frequency)
                interval = _interval(data.interval_count)
                if data.start_date is None:
                    raise ValidationError("start_date is required", field="start_date")
                _check_limits(data.start_date, data.end_date, data.max_occurrences)
                try:
                    txn_type = TransactionType(data.transaction_type)
                except ValueError:
                    raise ValidationError(
                        f"Unknown transaction type: {data.transaction_type!r}",
                        field="transaction_type",
                    )

                lines, total = self._build_lines(tenant_id, data.lines)
                rj = RecurringJournal(
                    tenant_id=tenant_id,
                    name=name,
                    description=data.description,
                    transaction_type=txn_type.value,
                    total_amount=total,
                    frequency=frequency.value,
                    interval_count=interval,
                    start_date=data.start_date,
                    anchor_day=data.start_date.day,
                    end_date=data.end_date,
                    max_occurrences=data.max_occurrences,
                    occurrence_count=0,
                    next_run_date=data.start_date,
                    status=RecurringJournalStatus.ACTIVE.value,
                    created_by_id=actor_id,
                )
                rj.lines = lines
                self.session.add(rj)
                self.session.flush()

            logger.info(
                "recurring_journal_created",
                extra={
                    "recurring_journal_id": str(rj.id),
                    "frequency": rj.frequency,
                    "interval_count": rj.interval_count,
                    "next_run_date": rj.next_run_date.isoformat(),
                    "total_amount": str(rj.total_amount),
                },
            )
            return rj

    def update(
        self,
        tenant_id: UUID,
        recurring_journal_id: UUID,
        data: RecurringJournalUpdate,
        actor_id: UUID,
    ) -> RecurringJournal:
        """
        Edit an active or paused template.  next_run_date is kept.

        A template whose new limits are already reached is completed.

        Raises:
            InvalidStateError: The template is completed or cancelled.
        """
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            with self._write_scope():
                rj = self._lock(tenant_id, recurring_journal_id)
                if rj.is_terminal:
                    raise InvalidStateError(
                        "RecurringJournal", str(rj.id), rj.status, "update"
                    )

                if data.name is not None:
                    name = data.name.strip()
                    if not name:
                        raise ValidationError("Recurring journal name is required", field="name")
                    rj.name = name
                if data.description is not None:
                    rj.description = data.description
                if data.frequency is not None:
                    frequency = _frequency(data.frequency).value
                    if frequency != rj.frequency:
                        rj.frequency = frequency
                        rj.anchor_day = rj.next_run_date.day
                if data.interval_count is not None:
                    rj.interval_count = _interval(data.interval_count)

                end_date = data.end_date if data.end_date is not None else rj.end_date
                max_occurrences = (
                    data.max_occurrences
                    if data.max_occurrences is not None
                    else rj.max_occurrences
                )
                _check_limits(rj.start_date, end_date, max_occurrences)
                rj.end_date = end_date
                rj.max_occurrences = max_occurrences

                if data.lines is not None:
                    lines, total = self._build_lines(tenant_id, data.lines)
                    rj.lines = lines
                    rj.total_amount = total

                self._complete_if_exhausted(rj)
                rj.updated_by_id = actor_id

            logger.info(
                "recurring_journal_updated",
                extra={"recurring_journal_id": str(rj.id), "status": rj.status},
            )
            return rj

    def _transition(
        self,
        tenant_id: UUID,
        recurring_journal_id: UUID,
        actor_id: UUID,
        allowed_from: frozenset[RecurringJournalStatus],
        target: RecurringJournalStatus,
        operation: str,
        event: str,
        on_enter: Callable[[RecurringJournal], None] | None = None,
    ) -> RecurringJournal:
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            with self._write_scope():
                rj = self._lock(tenant_id, recurring_journal_id)
                if RecurringJournalStatus(rj.status) not in allowed_from:
                    raise InvalidStateError("RecurringJournal", str(rj.id), rj.status, operation)
                previous = rj.status
                rj.status = target.value
                if on_enter is not None:
                    on_enter(rj)
                rj.updated_by_id = actor_id

            logger.info(
                event,
                extra={
                    "recurring_journal_id": str(rj.id),
                    "from_status": previous,
                    "to_status": rj.status,
                },
            )
            return rj

    def pause(self, tenant_id: UUID, recurring_journal_id: UUID, actor_id: UUID) -> RecurringJournal:
        """Active -> paused.  Raises InvalidStateError from any other status."""
        return self._transition(
            tenant_id, recurring_journal_id, actor_id,
            frozenset({RecurringJournalStatus.ACTIVE}),
            RecurringJournalStatus.PAUSED,
            "pause",
            "recurring_journal_paused",
        )

    def resume(self, tenant_id: UUID, recurring_journal_id: UUID, actor_id: UUID) -> RecurringJournal:
        """
        Paused -> active.

        Dates missed while paused are not generated: a next_run_date before
        today moves forward by whole periods to the first date on or after
        today.  A template whose end date passes in the meantime resumes as
        completed.
        """
        today = self._clock.today()

        def skip_missed(rj: RecurringJournal) -> None:
            rj.next_run_date = roll_forward(
                rj.next_run_date,
                today,
                rj.frequency,
                rj.interval_count,
                rj.anchor_day,
                inclusive=True,
            )
            self._complete_if_exhausted(rj)

        return self._transition(
            tenant_id, recurring_journal_id, actor_id,
            frozenset({RecurringJournalStatus.PAUSED}),
            RecurringJournalStatus.ACTIVE,
            "resume",
            "recurring_journal_resumed",
            on_enter=skip_missed,
        )

    def cancel(self, tenant_id: UUID, recurring_journal_id: UUID, actor_id: UUID) -> RecurringJournal:
        return self._transition(
            tenant_id, recurring_journal_id, actor_id,
            frozenset({
                RecurringJournalStatus.ACTIVE,
                RecurringJournalStatus.PAUSED,
                RecurringJournalStatus.COMPLETED,
            }),
            RecurringJournalStatus.CANCELLED,
            "cancel",
            "recurring_journal_cancelled",
        )

    def _complete_if_exhausted(self, rj: RecurringJournal) -> bool:
        if is_exhausted(rj.occurrence_count, rj.max_occurrences, rj.next_run_date, rj.end_date):
            rj.status = RecurringJournalStatus.COMPLETED.value
            return True
        return False

    # =========================================================================
    # Generation
    # =========================================================================

    def _generate_occurrence(
        self,
        rj: RecurringJournal,
        transaction_date: date,
        now: datetime,
        actor_id: UUID,
    ) -> OccurrenceResult:
        """
        Post the next occurrence and advance the template.  Flushes only;
        the caller commits or rolls back.
        """
        occurrence = rj.occurrence_count + 1
        already = self.session.execute(
            select(GeneratedJournal.id).where(
                GeneratedJournal.recurring_journal_id == rj.id,
                GeneratedJournal.occurrence_number == occurrence,
            )
        ).scalar_one_or_none()
        if already is not None:
            raise DuplicateOccurrenceError(str(rj.id), occurrence)

        ledger = LedgerService(
            self.session, self._clock, self._config, self._publisher, auto_commit=False
        )
        txn = ledger.post_transaction(
            rj.tenant_id,
            actor_id,
            TransactionInput(
                transaction_type=TransactionType(rj.transaction_type),
                transaction_date=transaction_date,
                lines=[
                    LineInput(
                        account_id=line.account_id,
                        debit=line.debit_amount,
                        credit=line.credit_amount,
                        description=line.description,
                    )
                    for line in rj.lines
                ],
                description=rj.description or rj.name,
                reference_type=ReferenceType.RECURRING_JOURNAL,
                reference_id=rj.id,
                idempotency_key=f"recurring:{rj.id}:{occurrence}",
            ),
        )

        scheduled = rj.next_run_date
        self.session.add(
            GeneratedJournal(
                tenant_id=rj.tenant_id,
                recurring_journal_id=rj.id,
                transaction_id=txn.id,
                occurrence_number=occurrence,
                scheduled_date=scheduled,
                generated_at=now,
            )
        )
        rj.occurrence_count = occurrence
        rj.last_run_date = now.date()
        rj.next_run_date = roll_forward(
            advance(scheduled, rj.frequency, rj.interval_count, rj.anchor_day),
            now.date(),
            rj.frequency,
            rj.interval_count,
            rj.anchor_day,
        )
        completed = self._complete_if_exhausted(rj)
        self.session.flush()

        logger.info(
            "recurring_occurrence_generated",
            extra={
                "recurring_journal_id": str(rj.id),
                "occurrence_number": occurrence,
                "transaction_id": str(txn.id),
                "transaction_number": txn.transaction_number,
                "scheduled_date": scheduled.isoformat(),
                "next_run_date": rj.next_run_date.isoformat(),
                "completed": completed,
            },
        )
        return OccurrenceResult(
            recurring_journal_id=rj.id,
            occurrence_number=occurrence,
            transaction_id=txn.id,
            scheduled_date=scheduled,
            completed=completed,
        )

    def generate_due(self, now: datetime | None = None) -> SweepResult:
        """
        Generate one occurrence for every due active template, all tenants.

        Each occurrence commits on its own.  A template locked by another
        worker, or whose occurrence already exists, is reported as skipped;
        a domain error (deleted account, closed year, ...) rolls back that
        occurrence and is reported as failed with its error code.
        """
        now = now or self._clock.now()
        today = now.date()

        due = self.session.execute(
            select(RecurringJournal.id, RecurringJournal.tenant_id)
            .where(
                RecurringJournal.status == RecurringJournalStatus.ACTIVE.value,
                RecurringJournal.next_run_date <= today,
            )
            .order_by(RecurringJournal.next_run_date, RecurringJournal.id)
        ).all()
        # Release the read snapshot before taking row locks one by one
        self.session.rollback()

        generated: list[OccurrenceResult] = []
        skipped: list[UUID] = []
        failed: list[tuple[UUID, str]] = []

        for rj_id, tenant_id in due:
            with LogContext.bind(tenant_id=tenant_id):
                try:
                    rj = self.session.execute(
                        select(RecurringJournal)
                        .where(RecurringJournal.id == rj_id)
                        .with_for_update(skip_locked=True)
                        .execution_options(populate_existing=True)
                    ).scalar_one_or_none()
                    if rj is None:
                        self.session.rollback()
                        skipped.append(rj_id)
                        continue
                    if not is_due(
                        rj.status, rj.next_run_date, today,
                        rj.occurrence_count, rj.max_occurrences, rj.end_date,
                    ):
                        # State changed since the scan, or limits already reached
                        if rj.status == RecurringJournalStatus.ACTIVE and self._complete_if_exhausted(rj):
                            self.session.commit()
                        else:
                            self.session.rollback()
                        continue

                    result = self._generate_occurrence(rj, rj.next_run_date, now, rj.created_by_id)
                    self.session.commit()
                    generated.append(result)
                except (IntegrityError, ConflictError):
                    self.session.rollback()
                    logger.warning(
                        "recurring_occurrence_skipped",
                        extra={"recurring_journal_id": str(rj_id)},
                    )
                    skipped.append(rj_id)
                except BookkeepingError as exc:
                    self.session.rollback()
                    logger.warning(
                        "recurring_occurrence_failed",
                        extra={
                            "recurring_journal_id": str(rj_id),
                            "error_code": exc.code,
                            "error": str(exc),
                        },
                    )
                    failed.append((rj_id, exc.code))

        result = SweepResult(
            generated=tuple(generated),
            skipped=tuple(skipped),
            failed=tuple(failed),
        )
        logger.info(
            "recurring_sweep_completed",
            extra={
                "due": len(due),
                "generated": result.generated_count,
                "skipped": len(result.skipped),
                "failed": len(result.failed),
            },
        )
        return result

    def generate_now(
        self, tenant_id: UUID, recurring_journal_id: UUID, actor_id: UUID
    ) -> OccurrenceResult:
        """
        Generate the next occurrence immediately, dated today.

        Works for active and paused templates; the occurrence counts as the
        one scheduled for next_run_date, which then advances as usual.

        Raises:
            InvalidStateError: The template is completed, cancelled or has
                reached its limits.
            DuplicateOccurrenceError: The next occurrence already exists.
        """
        now = self._clock.now()
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            try:
                rj = self._lock(tenant_id, recurring_journal_id)
                if rj.is_terminal or is_exhausted(
                    rj.occurrence_count, rj.max_occurrences, rj.next_run_date, rj.end_date
                ):
                    raise InvalidStateError(
                        "RecurringJournal", str(rj.id), rj.status, "generate"
                    )
                result = self._generate_occurrence(rj, now.date(), now, actor_id)
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise
            return result
