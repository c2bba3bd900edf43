# Overview: Cent/decimal conversions shared by statements, CSV export and reports.

from __future__ import annotations

from decimal import Decimal, InvalidOperation

_CENT = Decimal("0.01")


def format_amount(cents: int) -> str:
    """Render cents as a plain 2-decimal amount with no currency symbol."""
    return str((Decimal(cents) / 100).quantize(_CENT))


def format_money(cents: int, symbol: str = "€") -> str:
    """Render cents for display, e.g. '€1,234.50' or '-€30.00'."""
    sign = "-" if cents < 0 else ""
    return f"{sign}{symbol}{abs(cents) / 100:,.2f}"


def parse_amount(text: str) -> int:
    """
    Parse a 2-decimal amount back into cents.

    Currency symbols and thousands separators are stripped first.
    """
    cleaned = "".join(ch for ch in text.strip() if ch.isdigit() or ch in "-.")
    if not cleaned:
        raise ValueError(f"Not an amount: {text!r}")
    try:
        return int((Decimal(cleaned) * 100).quantize(Decimal(1)))
    except InvalidOperation:
        raise ValueError(f"Not an amount: {text!r}")
