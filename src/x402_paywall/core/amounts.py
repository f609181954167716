# src/x402_paywall/core/amounts.py
"""Conversion between display amounts and integer smallest-unit amounts.

Token amounts are fixed-point: an SPL token with ``decimals = 6`` stores
``0.10`` as ``100000``. All arithmetic here is done on ``Decimal`` under a
private high-precision context so that no binary floating point ever touches
a value used for verification or accounting.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Context, Decimal, InvalidOperation

from x402_paywall.core.errors import ValidationError

MAX_TOKEN_DECIMALS = 38

_CONTEXT = Context(prec=100, rounding=ROUND_FLOOR)

DisplayAmount = Decimal | int | str | float


def _check_decimals(token_decimals: int) -> None:
    if isinstance(token_decimals, bool) or not isinstance(token_decimals, int):
        raise ValidationError("Token decimals must be an integer", field="token_decimals")
    if not 0 <= token_decimals <= MAX_TOKEN_DECIMALS:
        raise ValidationError(
            f"Token decimals must be between 0 and {MAX_TOKEN_DECIMALS}",
            field="token_decimals",
        )


def parse_amount(value: DisplayAmount) -> Decimal:
    """Coerce a display amount into a finite, non-negative ``Decimal``.

    Floats go through ``repr`` so ``0.1`` becomes ``Decimal("0.1")`` rather
    than its binary expansion.
    """
    if isinstance(value, bool):
        raise ValidationError("Amount must be numeric", field="amount")
    try:
        if isinstance(value, float):
            amount = Decimal(repr(value))
        else:
            amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {value!r}", field="amount") from exc
    if not amount.is_finite():
        raise ValidationError("Amount must be finite", field="amount")
    if amount < 0:
        raise ValidationError("Amount must not be negative", field="amount")
    return amount


def to_smallest_unit(display_amount: DisplayAmount, token_decimals: int) -> int:
    """Convert a display amount to integer smallest units, rounding down."""
    _check_decimals(token_decimals)
    amount = parse_amount(display_amount)
    scaled = amount.scaleb(token_decimals, context=_CONTEXT)
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR, context=_CONTEXT))


def to_display(smallest_unit: int, token_decimals: int) -> Decimal:
    """Convert integer smallest units back to an exact display ``Decimal``."""
    _check_decimals(token_decimals)
    if isinstance(smallest_unit, bool) or not isinstance(smallest_unit, int):
        raise ValidationError("Smallest-unit amount must be an integer", field="amount")
    if smallest_unit < 0:
        raise ValidationError("Amount must not be negative", field="amount")
    return Decimal(smallest_unit).scaleb(-token_decimals, context=_CONTEXT)


def format_amount(smallest_unit: int, token_decimals: int) -> str:
    """Render smallest units as a fixed-point string with all token decimals."""
    value = to_display(smallest_unit, token_decimals)
    return f"{value:.{token_decimals}f}"
