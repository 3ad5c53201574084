"""
Module: bookkeeping_kernel.db.types
Responsibility: Annotated type aliases and helpers for monetary values.
    Centralizes precision and rounding so that every model and service uses
    identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Amounts carry exactly two fractional digits.  round_money() is the
      ONLY sanctioned rounding function.
    - Equality between amounts is decided in integer cents (to_cents), never
      with a floating-point tolerance.

Failure modes:
    - ValueError on a value that cannot be read as a number.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String

# Monetary amount: 15 digits, 2 decimal places
Money = Annotated[Decimal, Numeric(15, 2)]

# Percentage rate (e.g. 18.00 for 18 %)
Percentage = Annotated[Decimal, Numeric(7, 4)]

# SHA-256 hash as hex string (64 characters)
PayloadHash = Annotated[str, String(64)]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# Long text for descriptions
LongText = Annotated[str, String(2000)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0.00")


def to_decimal(value: Decimal | int | str | float | None) -> Decimal:
    """
    Coerce a caller-supplied amount to Decimal.

    Floats go through ``str()`` so that 0.1 becomes Decimal("0.1") rather than
    its binary expansion.  None is treated as zero.

    Raises:
        ValueError: If the value cannot be interpreted as a number.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Not a numeric amount: {value!r}") from exc


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Preconditions: value is a Decimal.
    Postconditions: Returns value quantized using ROUND_HALF_UP by default.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_cents(value: Decimal) -> int:
    """Convert an amount to integer minor units after rounding to 2 places."""
    return int(round_money(value) * 100)


def money_from_cents(value: int) -> Decimal:
    """
    Create an amount from integer minor units.

    Example:
        money_from_cents(1050) -> Decimal("10.50")
    """
    return round_money(Decimal(value) / Decimal(100))
