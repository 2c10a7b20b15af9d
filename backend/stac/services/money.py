from __future__ import annotations
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from stac.config import settings

CENT = Decimal("0.01")


class InvalidAmount(ValueError):
    pass


def to_cents(value: Decimal | str | int | float) -> int:
    """Parse a money amount ("12.5", "₹1,000", 40) into integer cents, half-up."""
    if isinstance(value, str):
        value = value.replace(settings.currency_symbol, "").replace(",", "").strip()
    try:
        d = Decimal(str(value))
    except InvalidOperation:
        raise InvalidAmount(f"not a number: {value!r}")
    if not d.is_finite():
        raise InvalidAmount(f"not a finite amount: {value!r}")
    return int((d.quantize(CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def format_money(cents: int, symbol: str | None = None) -> str:
    """1234567 -> '₹12,345.67'. Sign is the caller's business; abs() is applied."""
    sym = settings.currency_symbol if symbol is None else symbol
    return f"{sym}{from_cents(abs(cents)):,.2f}"


def format_signed(cents: int, symbol: str | None = None) -> str:
    return ("+" if cents >= 0 else "-") + format_money(cents, symbol)
