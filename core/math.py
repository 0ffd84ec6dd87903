# PATH: core/math.py
"""
core/math.py - Decimal helpers for prices, fees and gas.

No float is allowed in prices, fees or PnL. Token amounts crossing the
RPC boundary are int (smallest units); everything else is Decimal.
"""

from decimal import Decimal, ROUND_DOWN, InvalidOperation

from core.constants import PCT_DENOMINATOR, WEI_PER_ETH, WEI_PER_GWEI
from core.exceptions import ValidationError

Q96 = 2**96

ZERO = Decimal("0")


# =============================================================================
# SAFE CONVERSIONS (NO FLOAT)
# =============================================================================

def safe_decimal(value: int | str | Decimal) -> Decimal:
    """
    Safely convert value to Decimal.

    Raises ValidationError if float is passed or conversion fails.
    """
    if isinstance(value, float):
        raise ValidationError(
            "Float values are not allowed. Use int, str, or Decimal.",
            {"value": value, "type": type(value).__name__}
        )

    try:
        result = Decimal(value)
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValidationError(
            f"Cannot convert to Decimal: {value}",
            {"value": str(value), "type": type(value).__name__, "error": str(e)}
        )

    if not result.is_finite():
        raise ValidationError(f"Non-finite value: {value}", {"value": str(value)})
    return result


def is_positive(value: Decimal | None) -> bool:
    """True for a finite Decimal strictly above zero."""
    return value is not None and value.is_finite() and value > 0


# =============================================================================
# PERCENT HELPERS
# =============================================================================

def pct_change(base: Decimal, value: Decimal) -> Decimal:
    """
    Percentage move from base to value: (value - base) / base * 100.

    Returns 0 when base is zero.
    """
    if base == 0:
        return ZERO
    return (value - base) / base * PCT_DENOMINATOR


def apply_buffer(value: Decimal, buffer_pct: Decimal) -> Decimal:
    """Inflate value by a safety buffer: value * (100 + buffer) / 100."""
    return value * (PCT_DENOMINATOR + buffer_pct) / PCT_DENOMINATOR


def apply_haircut(value: Decimal, haircut_pct: Decimal) -> Decimal:
    """Reduce value by a percentage: value * (100 - haircut) / 100."""
    return value * (PCT_DENOMINATOR - haircut_pct) / PCT_DENOMINATOR


def calculate_roi(profit: Decimal, investment: Decimal) -> Decimal:
    """ROI in percent. Zero investment gives zero ROI."""
    if investment == 0:
        return ZERO
    return profit / investment * PCT_DENOMINATOR


# =============================================================================
# WEI CONVERSIONS
# =============================================================================

def wei_to_eth(wei: int) -> Decimal:
    """Convert wei to ETH as Decimal."""
    return Decimal(wei) / Decimal(WEI_PER_ETH)


def wei_to_gwei(wei: int) -> Decimal:
    """Convert wei to gwei as Decimal."""
    return Decimal(wei) / Decimal(WEI_PER_GWEI)


def gwei_to_wei(gwei: Decimal | str | int) -> int:
    """Convert gwei to wei as int."""
    return int(Decimal(gwei) * WEI_PER_GWEI)


def wei_to_human(wei: int, decimals: int) -> Decimal:
    """
    Convert smallest-unit amount to human-readable Decimal.

    Example: wei_to_human(1000000, 6) -> Decimal('1')  # 1 USDC
    """
    if decimals < 0 or decimals > 36:
        raise ValidationError(f"Invalid decimals: {decimals}")
    return Decimal(wei) / Decimal(10**decimals)


def human_to_wei(amount: Decimal | str, decimals: int) -> int:
    """
    Convert human-readable amount to smallest units, truncating dust.

    Example: human_to_wei('1.0', 6) -> 1000000  # 1 USDC
    """
    if decimals < 0 or decimals > 36:
        raise ValidationError(f"Invalid decimals: {decimals}")
    scaled = Decimal(amount) * Decimal(10**decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def gas_cost_native(gas_used: int, gas_price_wei: int) -> Decimal:
    """Gas cost in native units (ETH)."""
    return wei_to_eth(gas_used * gas_price_wei)


# =============================================================================
# POOL PRICE MATH
# =============================================================================

def sqrt_price_x96_to_price(
    sqrt_price_x96: int,
    decimals0: int,
    decimals1: int,
) -> Decimal:
    """
    Convert a V3 sqrtPriceX96 into token1 per token0 in human units.

    (sqrtP / 2^96)^2 is the smallest-unit ratio; shifting by
    10^(decimals0 - decimals1) gives whole-token units.
    """
    if sqrt_price_x96 <= 0:
        return ZERO
    ratio = Decimal(sqrt_price_x96 * sqrt_price_x96) / Decimal(Q96 * Q96)
    return ratio * (Decimal(10) ** (decimals0 - decimals1))


def reserves_to_price(
    reserve_in: int,
    reserve_out: int,
    decimals_in: int,
    decimals_out: int,
) -> Decimal:
    """
    Spot price of a constant-product pool: out per in, in human units.

    Returns 0 for an empty pool.
    """
    if reserve_in == 0 or reserve_out == 0:
        return ZERO
    normalized_in = Decimal(reserve_in) / Decimal(10**decimals_in)
    normalized_out = Decimal(reserve_out) / Decimal(10**decimals_out)
    return normalized_out / normalized_in


# =============================================================================
# ROUNDING HELPERS
# =============================================================================

def round_down(value: Decimal, decimals: int) -> Decimal:
    """Truncate to specified decimal places."""
    quantizer = Decimal(10) ** (-decimals)
    return value.quantize(quantizer, rounding=ROUND_DOWN)
