from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")
# Amount columns are DecimalField(max_digits=18, decimal_places=2).
MAX_AMOUNT = Decimal("1e16")


def quantize_money(value) -> Decimal:
    """Round to cents, half-up, the way every amount in the ledger is stored."""
    value = to_decimal(value)
    if not value.is_finite():
        raise ValueError(f"Not a finite monetary amount: {value!r}")
    try:
        return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Monetary amount out of range: {value!r}") from exc


def to_decimal(value) -> Decimal:
    """Coerce ints, strings and floats to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc
