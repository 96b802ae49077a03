"""Utility functions for shopledger."""

import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import ValidationError

CENT = Decimal("0.01")


def utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def generate_id() -> str:
    """Generate a new opaque record ID."""
    return uuid.uuid4().hex


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """
    Parse a monetary value without rounding it.

    Floats go through str() first so 19.99 stays 19.99 rather than its
    binary expansion.

    Raises:
        ValidationError: If the value is not a finite number.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount


def round_money(value: Decimal | int | float | str) -> Decimal:
    """
    Round a monetary value to 2 decimal places (half-up).

    A result of -0.00 is returned as 0.00.

    Raises:
        ValidationError: If the value is not a finite number, or too large
            to hold to the cent.
    """
    amount = to_decimal(value)
    try:
        rounded = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {value!r}")
    if rounded.is_zero():
        return abs(rounded)
    return rounded


def money_to_json(value: Decimal) -> float:
    """Convert a rounded amount to the JSON number clients expect."""
    return float(round_money(value))


def format_money(value: Decimal) -> str:
    """Format an amount for terminal output."""
    return f"${round_money(value):.2f}"
