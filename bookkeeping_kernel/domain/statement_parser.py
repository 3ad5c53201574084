"""
CSV bank statement parser.

Uses csv.DictReader over the statement text.  Banks disagree on column
names and date formats, so headers are matched against alias lists and
dates are tried against the formats Indian bank exports commonly use.

Pure: takes text, returns StatementLine DTOs plus per-row errors.  A row
that cannot be parsed is skipped and reported; it never aborts the import.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from bookkeeping_kernel.domain.dtos import StatementLine
from bookkeeping_kernel.exceptions import ValidationError

HEADER_ALIASES: dict[str, tuple[str, ...]] = {
    "date": ("date", "transaction date", "txn date", "tran date", "posting date"),
    "value_date": ("value date", "value dt"),
    "description": ("description", "narration", "particulars", "remarks", "details"),
    "debit": ("debit", "withdrawal", "withdrawals", "dr", "debit amount", "withdrawal amt."),
    "credit": ("credit", "deposit", "deposits", "cr", "credit amount", "deposit amt."),
    "balance": ("balance", "closing balance", "available balance", "running balance"),
    "reference": ("reference", "ref no", "ref no.", "cheque no", "chq./ref.no.", "utr"),
    "external_id": ("transaction id", "txn id", "id"),
}

# Day-first formats are tried before month-first ones
DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%Y/%m/%d",
    "%d-%b-%Y",
    "%d %b %Y",
    "%d-%m-%y",
    "%d/%m/%y",
)


@dataclass(frozen=True)
class ParsedStatement:
    lines: tuple[StatementLine, ...]
    errors: tuple[str, ...]
    total_rows: int

    @property
    def skipped_rows(self) -> int:
        return self.total_rows - len(self.lines)


def parse_date(value: str) -> date:
    """Parse a statement date using DATE_FORMATS, first match wins.

    Raises:
        ValueError: If no format matches.
    """
    text = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date: {value!r}")


def parse_amount(value: str | None) -> Decimal:
    """Parse a statement amount.

    Thousands separators and spaces are dropped, a trailing Dr/Cr marker is
    ignored, and ``(1,200.00)`` is read as -1200.00.  Blank means zero.

    Raises:
        ValueError: If the value is not numeric.
    """
    text = (value or "").strip()
    if not text or text in ("-", "--"):
        return Decimal("0")

    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]

    text = text.replace(",", "").replace(" ", "")
    for marker in ("Dr", "DR", "Cr", "CR"):
        if text.endswith(marker):
            text = text[: -len(marker)]
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Not an amount: {value!r}")
    return -amount if negative else amount


def resolve_columns(fieldnames: list[str]) -> dict[str, str]:
    """Map canonical column keys to the header names present in the file."""
    normalized = {name.strip().lower(): name for name in fieldnames if name}
    columns: dict[str, str] = {}
    for key, aliases in HEADER_ALIASES.items():
        for alias in aliases:
            if alias in normalized:
                columns[key] = normalized[alias]
                break
    return columns


def parse_csv_statement(text: str, delimiter: str = ",") -> ParsedStatement:
    """Parse CSV statement text into StatementLine rows.

    Raises:
        ValidationError: If the header has no date column or has neither a
            debit nor a credit column.
    """
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")), delimiter=delimiter)
    columns = resolve_columns(list(reader.fieldnames or []))

    if "date" not in columns:
        raise ValidationError("Statement has no date column", field="date")
    if "debit" not in columns and "credit" not in columns:
        raise ValidationError("Statement has no debit or credit column", field="amount")

    lines: list[StatementLine] = []
    errors: list[str] = []
    total = 0

    # Row numbers count the header as row 1
    for row_number, row in enumerate(reader, start=2):
        if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
            continue
        total += 1

        def cell(key: str) -> str | None:
            name = columns.get(key)
            value = row.get(name) if name else None
            return value.strip() if isinstance(value, str) and value.strip() else None

        try:
            txn_date = parse_date(cell("date") or "")
            debit = parse_amount(cell("debit"))
            credit = parse_amount(cell("credit"))
            balance_text = cell("balance")
            balance = parse_amount(balance_text) if balance_text else None
            value_date_text = cell("value_date")
            value_date = parse_date(value_date_text) if value_date_text else None
        except ValueError as exc:
            errors.append(f"row {row_number}: {exc}")
            continue

        # A negative in one column is a movement on the other side
        if debit < 0:
            debit, credit = Decimal("0"), credit + abs(debit)
        if credit < 0:
            debit, credit = debit + abs(credit), Decimal("0")

        if debit == 0 and credit == 0:
            errors.append(f"row {row_number}: no debit or credit amount")
            continue

        lines.append(
            StatementLine(
                transaction_date=txn_date,
                debit_amount=debit,
                credit_amount=credit,
                description=cell("description"),
                reference=cell("reference"),
                balance=balance,
                value_date=value_date,
                external_id=cell("external_id"),
            )
        )

    return ParsedStatement(lines=tuple(lines), errors=tuple(errors), total_rows=total)
