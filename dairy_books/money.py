"""
Fixed-point money helpers.

Balances and entry amounts are stored as integers in the base
currency's minor unit. Integer addition is exact, so a ledger's
running balance can never drift the way a float column does.
The API speaks Decimal; conversion happens only at the edges.
"""

from decimal import Decimal, InvalidOperation

from dairy_books.config import get_settings


def _scale() -> int:
    return 10 ** get_settings().CURRENCY_DECIMALS


def quantum() -> Decimal:
    """Smallest representable currency unit, e.g. Decimal('0.01')."""
    return Decimal(1).scaleb(-get_settings().CURRENCY_DECIMALS)


def to_minor(amount: Decimal | int | str) -> int:
    """
    Convert a major-unit amount to integer minor units.

    Raises ValueError if the amount carries more precision than
    the smallest currency unit; rounding here would silently
    change what the caller asked to post.
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")

    scaled = value * _scale()
    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"Amount {value} has more precision than {quantum()}"
        )
    return int(scaled)


def from_minor(minor: int) -> Decimal:
    """Convert integer minor units back to a Decimal amount."""
    return (Decimal(minor) / _scale()).quantize(quantum())
