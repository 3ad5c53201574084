"""Utility modules for the bookkeeping kernel."""

from bookkeeping_kernel.utils.hashing import (
    canonicalize_json,
    fingerprint_statement_line,
    hash_payload,
)

__all__ = [
    "canonicalize_json",
    "fingerprint_statement_line",
    "hash_payload",
]
