"""
Configuration loader (``bookkeeping_config.loader``).

Responsibility
--------------
Reads a YAML configuration file and parses it into the frozen
``bookkeeping_config.schema`` dataclasses, then validates the result.
Runtime callers go through ``bookkeeping_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Structural problems (unknown account type, dangling parent code,
  non-positive window)  -> ``ValueError`` listing every problem found.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from bookkeeping_config.schema import (
    DEFAULT_NUMBER_PREFIXES,
    BookkeepingConfig,
    LedgerSettings,
    QuickEntrySettings,
    ReconciliationSettings,
    RecurringSettings,
    SeedAccount,
)

_ACCOUNT_TYPES = frozenset({"asset", "liability", "equity", "income", "expense"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of the raw configuration."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_seed_account(data: dict[str, Any]) -> SeedAccount:
    return SeedAccount(
        code=str(data["code"]),
        name=data["name"],
        account_type=data["type"],
        sub_type=data.get("sub_type"),
        parent_code=str(data["parent"]) if data.get("parent") is not None else None,
        description=data.get("description"),
    )


def parse_ledger(data: dict[str, Any]) -> LedgerSettings:
    prefixes = dict(DEFAULT_NUMBER_PREFIXES)
    prefixes.update(data.get("number_prefixes") or {})
    return LedgerSettings(
        number_width=int(data.get("number_width", 4)),
        number_prefixes=prefixes,
    )


def parse_reconciliation(data: dict[str, Any]) -> ReconciliationSettings:
    return ReconciliationSettings(
        auto_match_window_days=int(data.get("auto_match_window_days", 3)),
        suggestion_window_days=int(data.get("suggestion_window_days", 7)),
        max_suggestions=int(data.get("max_suggestions", 20)),
    )


def parse_recurring(data: dict[str, Any]) -> RecurringSettings:
    return RecurringSettings(
        sweep_interval_seconds=int(data.get("sweep_interval_seconds", 3600)),
    )


def parse_quick_entry(data: dict[str, Any]) -> QuickEntrySettings:
    defaults = QuickEntrySettings()
    codes = dict(defaults.payment_account_codes)
    codes.update({k: str(v) for k, v in (data.get("payment_account_codes") or {}).items()})
    return QuickEntrySettings(
        sales_account_code=str(data.get("sales_account_code", defaults.sales_account_code)),
        receivable_account_code=str(
            data.get("receivable_account_code", defaults.receivable_account_code)
        ),
        payable_account_code=str(
            data.get("payable_account_code", defaults.payable_account_code)
        ),
        payment_account_codes=codes,
    )


def parse_config(data: dict[str, Any]) -> BookkeepingConfig:
    """Parse a raw YAML mapping into a BookkeepingConfig (not yet validated)."""
    return BookkeepingConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        ledger=parse_ledger(data.get("ledger") or {}),
        reconciliation=parse_reconciliation(data.get("reconciliation") or {}),
        recurring=parse_recurring(data.get("recurring") or {}),
        quick_entry=parse_quick_entry(data.get("quick_entry") or {}),
        seed_accounts=tuple(
            parse_seed_account(a) for a in data.get("chart_of_accounts") or []
        ),
        checksum=compute_checksum(data),
    )


def validate_config(config: BookkeepingConfig) -> list[str]:
    """Return every structural problem found; empty means valid."""
    errors: list[str] = []

    if config.ledger.number_width < 1:
        errors.append("ledger.number_width must be >= 1")
    for txn_type in DEFAULT_NUMBER_PREFIXES:
        if not config.ledger.number_prefixes.get(txn_type):
            errors.append(f"ledger.number_prefixes has no prefix for '{txn_type}'")

    recon = config.reconciliation
    if recon.auto_match_window_days < 0:
        errors.append("reconciliation.auto_match_window_days must be >= 0")
    if recon.suggestion_window_days < 0:
        errors.append("reconciliation.suggestion_window_days must be >= 0")
    if recon.max_suggestions < 1:
        errors.append("reconciliation.max_suggestions must be >= 1")

    if config.recurring.sweep_interval_seconds < 1:
        errors.append("recurring.sweep_interval_seconds must be >= 1")

    codes: set[str] = set()
    for account in config.seed_accounts:
        if account.code in codes:
            errors.append(f"chart_of_accounts: duplicate code {account.code}")
        codes.add(account.code)
        if account.account_type not in _ACCOUNT_TYPES:
            errors.append(
                f"chart_of_accounts: {account.code} has unknown type '{account.account_type}'"
            )

    for account in config.seed_accounts:
        if account.parent_code is not None and account.parent_code not in codes:
            errors.append(
                f"chart_of_accounts: {account.code} parent {account.parent_code} not found"
            )

    if config.seed_accounts:
        quick = config.quick_entry
        referenced = {
            quick.sales_account_code,
            quick.receivable_account_code,
            quick.payable_account_code,
            *quick.payment_account_codes.values(),
        }
        for code in sorted(referenced - codes):
            errors.append(f"quick_entry references unknown account code {code}")

    return errors


def load_config(path: Path) -> BookkeepingConfig:
    """
    Load, parse and validate a configuration file.

    Raises:
        ValueError: If validation reports any problem.
    """
    config = parse_config(load_yaml_file(path))
    errors = validate_config(config)
    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )
    return config
