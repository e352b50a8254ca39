# Overview: Integer-cent money helpers; half-up rounding, basis-point rates and provider price parsing.

"""
Integer-cent money helpers.

All monetary amounts are integer cents and all rates are basis points
(500 bps = 5.00%). Derived amounts round half-up to the nearest cent.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

BPS_DENOMINATOR = 10_000
MAX_RATE_BPS = 10_000


def round_half_up_div(numerator: int, denominator: int) -> int:
    """Integer division rounding half-up (non-negative operands)."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    if numerator < 0:
        raise ValueError("numerator must be non-negative")
    return (numerator + denominator // 2) // denominator


def validate_rate_bps(rate_bps: int) -> int:
    if isinstance(rate_bps, bool) or not isinstance(rate_bps, int):
        raise ValueError("rate must be an integer number of basis points")
    if rate_bps < 0 or rate_bps > MAX_RATE_BPS:
        raise ValueError("rate must be between 0 and 100 percent")
    return rate_bps


def bps_to_percent(rate_bps: int | None) -> float | None:
    if rate_bps is None:
        return None
    return rate_bps / 100


def format_cents(amount_cents: int) -> str:
    sign = "-" if amount_cents < 0 else ""
    amount_cents = abs(amount_cents)
    return f"{sign}${amount_cents // 100:,}.{amount_cents % 100:02d}"


def dollars_to_cents(value) -> int:
    """Provider prices arrive as decimal dollars ("12.5", 12.5); round half-up."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"invalid price: {value!r}")
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"invalid price: {value!r}")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
