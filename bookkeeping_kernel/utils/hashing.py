"""
Deterministic hashing utilities.

All hashing in the bookkeeping kernel must be deterministic and
reproducible.  Used for statement-line fingerprints (import de-duplication)
and configuration checksums.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        # Normalize so 500, 500.0 and 500.00 hash identically
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.hex()

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to a canonical JSON string.

    - Keys are sorted alphabetically
    - No whitespace
    - Consistent handling of Decimal, datetime, date and UUID
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """
    Compute SHA-256 hash of a payload.

    Returns:
        Hex-encoded SHA-256 hash (64 characters).
    """
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def fingerprint_statement_line(
    bank_account_id: UUID,
    transaction_date: date,
    debit_amount: Decimal,
    credit_amount: Decimal,
    reference: str | None,
    description: str | None,
    balance: Decimal | None,
) -> str:
    """
    Derive a stable external id for a statement row the bank gave no id for.

    The reported running balance is included so that two genuinely distinct
    same-day, same-amount rows (which differ in balance) stay distinct, while
    re-importing the same row yields the same fingerprint.
    """
    return "fp:" + hash_payload({
        "bank_account_id": bank_account_id,
        "date": transaction_date,
        "debit": debit_amount,
        "credit": credit_amount,
        "reference": (reference or "").strip().lower(),
        "description": " ".join((description or "").split()).lower(),
        "balance": balance,
    })[:60]
