"""
BaseService -- common constructor and transaction boundary for services.

Responsibility:
    Gives every write-side service the same collaborators (session, clock,
    configuration) and the same transaction-boundary rule.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Every public
    service in ``bookkeeping_kernel/services/`` extends this class.

Invariants enforced:
    - Transaction boundaries: with ``auto_commit=True`` (default) a public
      mutating call commits on success and rolls back on any failure, so a
      failed call leaves no partial rows and no balance change.  With
      ``auto_commit=False`` the service only flushes and the caller owns
      commit/rollback (this is how the recurring scheduler composes the
      ledger inside its own per-occurrence transaction).

Failure modes:
    - Exceptions raised inside ``_write_scope()`` propagate unchanged after
      the rollback.
"""

from __future__ import annotations

from abc import ABC
from contextlib import contextmanager
from typing import Generator

from sqlalchemy.orm import Session

from bookkeeping_config import BookkeepingConfig, get_active_config
from bookkeeping_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller.  Mutating public
        methods run their body inside ``_write_scope()``.

    Guarantees:
        - ``auto_commit=True``: commit on success, rollback on failure.
        - ``auto_commit=False``: flush only; never commits or rolls back.

    Non-goals:
        - Does NOT provide query-only (read) methods for reporting -- those
          belong in ``bookkeeping_kernel/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: BookkeepingConfig | None = None,
        auto_commit: bool = True,
    ):
        """
        Args:
            session: SQLAlchemy session for database operations.
            clock: Time source. Defaults to SystemClock.
            config: Active configuration. Defaults to get_active_config().
            auto_commit: If True (default), commits on success and rolls back
                on failure. If False, the caller manages the transaction.
        """
        self.session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._auto_commit = auto_commit

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def config(self) -> BookkeepingConfig:
        return self._config

    @contextmanager
    def _write_scope(self) -> Generator[Session, None, None]:
        """Run a mutation; commit or roll back according to auto_commit."""
        try:
            yield self.session
            if self._auto_commit:
                self.session.commit()
            else:
                self.session.flush()
        except Exception:
            if self._auto_commit:
                self.session.rollback()
            raise
