# PATH: core/format_money.py
"""
Display formatting for Decimal money.

Display values are truncated (ROUND_DOWN), never rounded up, so printed
profit is never higher than the computed figure.
"""

from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from core.constants import USD_DISPLAY_DECIMALS
from core.math import round_down


def format_money(value: Union[str, Decimal, int, None], decimals: int = 6) -> str:
    """
    Format a money value to a fixed number of decimal places.

    Truncates toward zero: format_money(Decimal("1.239"), 2) -> "1.23",
    format_money(Decimal("-1.239"), 2) -> "-1.23".

    Args:
        value: Money value (str, Decimal or int); None formats as zero
        decimals: Number of decimal places

    Returns:
        Formatted string like "123.456789"
    """
    zero = f"0.{'0' * decimals}" if decimals > 0 else "0"
    if value is None:
        return zero

    try:
        if isinstance(value, bool):
            dec_value = Decimal(1 if value else 0)
        elif isinstance(value, str):
            if not value.strip():
                return zero
            dec_value = Decimal(value)
        else:
            dec_value = Decimal(value)

        if not dec_value.is_finite():
            return zero

        with localcontext() as ctx:
            ctx.prec = 50
            truncated = round_down(dec_value, decimals)

        return f"{truncated:.{decimals}f}"

    except (InvalidOperation, ValueError, TypeError):
        return zero


def format_usd(value: Union[str, Decimal, int, None]) -> str:
    """Format a USD amount for display, e.g. "$-15.33"."""
    return f"${format_money(value, USD_DISPLAY_DECIMALS)}"


def format_pct(value: Union[str, Decimal, int, None], decimals: int = 4) -> str:
    """
    Format percentage value.

    Args:
        value: Percentage value (0.5 = 0.5%)

    Returns:
        Formatted string like "0.5671%"
    """
    return f"{format_money(value, decimals)}%"
