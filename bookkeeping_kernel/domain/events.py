"""
Domain events emitted by the kernel after a successful commit.

Events carry the tenant id, the affected entity id and a JSON-safe snapshot
of the entity.  Delivery is best-effort and at-most-once; see
services/event_publisher.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class DomainEventType(str, Enum):
    TRANSACTION_CREATED = "transaction.created"
    TRANSACTION_VOIDED = "transaction.voided"
    BANK_RECONCILED = "bank.reconciled"


@dataclass(frozen=True)
class DomainEvent:
    event_type: DomainEventType
    tenant_id: UUID
    entity_id: UUID
    payload: dict[str, Any]
    occurred_at: datetime
    event_id: UUID = field(default_factory=uuid4)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type.value,
            "tenant_id": str(self.tenant_id),
            "entity_id": str(self.entity_id),
            "occurred_at": self.occurred_at.isoformat(),
            "payload": self.payload,
        }


def _str_or_none(value: Any) -> str | None:
    return None if value is None else str(value)


def _enum_value(value: Any) -> str | None:
    if value is None:
        return None
    return getattr(value, "value", value)


def transaction_snapshot(txn) -> dict[str, Any]:
    """JSON-safe snapshot of a Transaction and its lines."""
    return {
        "id": str(txn.id),
        "transaction_number": txn.transaction_number,
        "transaction_date": txn.transaction_date.isoformat(),
        "transaction_type": _enum_value(txn.transaction_type),
        "status": _enum_value(txn.status),
        "description": txn.description,
        "party_id": _str_or_none(txn.party_id),
        "party_name": txn.party_name,
        "subtotal": str(txn.subtotal),
        "tax_amount": str(txn.tax_amount),
        "discount_amount": str(txn.discount_amount),
        "total_amount": str(txn.total_amount),
        "payment_mode": _enum_value(txn.payment_mode),
        "void_reason": txn.void_reason,
        "lines": [
            {
                "account_id": str(line.account_id),
                "description": line.description,
                "debit_amount": str(line.debit_amount),
                "credit_amount": str(line.credit_amount),
                "line_order": line.line_order,
            }
            for line in txn.lines
        ],
    }


def bank_transaction_snapshot(bank_txn) -> dict[str, Any]:
    """JSON-safe snapshot of a BankTransaction's reconciliation state."""
    return {
        "id": str(bank_txn.id),
        "bank_account_id": str(bank_txn.bank_account_id),
        "transaction_date": bank_txn.transaction_date.isoformat(),
        "description": bank_txn.description,
        "reference": bank_txn.reference,
        "debit_amount": str(bank_txn.debit_amount),
        "credit_amount": str(bank_txn.credit_amount),
        "is_reconciled": bank_txn.is_reconciled,
        "reconciled_transaction_id": _str_or_none(bank_txn.reconciled_transaction_id),
        "reconciled_at": (
            bank_txn.reconciled_at.isoformat() if bank_txn.reconciled_at else None
        ),
    }
