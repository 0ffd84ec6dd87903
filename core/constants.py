# PATH: core/constants.py
"""
Constants for dexwatch.

Contains enums, defaults, and tunables shared across the pipeline.
Values here are defaults only; runtime values come from StrategyConfig.
"""

from decimal import Decimal
from enum import Enum
from typing import Final, List, Tuple

# =============================================================================
# UNITS
# =============================================================================

BPS_DENOMINATOR: Final[Decimal] = Decimal("10000")
PCT_DENOMINATOR: Final[Decimal] = Decimal("100")
WEI_PER_ETH: Final[int] = 10**18
WEI_PER_GWEI: Final[int] = 10**9

# Display precision for USD figures (truncated, never rounded up)
USD_DISPLAY_DECIMALS: Final[int] = 2


# =============================================================================
# VENUES AND FEE TIERS
# =============================================================================

# V3 fee tiers (in hundredths of a bip)
V3_FEE_TIERS: List[int] = [100, 500, 3000, 10000]

# Lookup order when a caller asks for a pair without naming a fee tier
FEE_TIER_PREFERENCE: Tuple[int, ...] = (500, 3000, 10000, 100)

# Constant-product pools charge a flat 0.3%
V2_FEE_TIER: Final[int] = 3000


class VenueKind(str, Enum):
    """Pool implementations dexwatch can read."""
    UNISWAP_V2 = "uniswap_v2"
    UNISWAP_V3 = "uniswap_v3"


class OpportunityType(str, Enum):
    """Opportunity variants."""
    SIMPLE = "simple"
    TRIANGULAR = "triangular"


class OpportunityStatus(str, Enum):
    """Opportunity lifecycle states."""
    DETECTED = "detected"
    SIMULATED = "simulated"
    PROFITABLE = "profitable"
    UNPROFITABLE = "unprofitable"
    EXPIRED = "expired"
    EXECUTED = "executed"
    FAILED = "failed"


TERMINAL_STATUSES: Tuple[OpportunityStatus, ...] = (
    OpportunityStatus.EXECUTED,
    OpportunityStatus.FAILED,
    OpportunityStatus.EXPIRED,
)


class NormalizationKind(str, Enum):
    """How a venue quote was turned into a usable price."""
    NORMALIZED = "normalized"
    INVERTED = "inverted"
    FALLBACK = "fallback"


# =============================================================================
# NORMALIZER
# =============================================================================

# Deviation from the reference ratio beyond which a quote is replaced
MAX_PRICE_DEVIATION: Final[Decimal] = Decimal("0.5")

# Bounded jitter applied to substituted reference prices
FALLBACK_JITTER: Final[Decimal] = Decimal("0.02")

# Two-source spread helper bounds (percent)
SPREAD_HELPER_MIN_PCT: Final[Decimal] = Decimal("0.01")
SPREAD_HELPER_MAX_PCT: Final[Decimal] = Decimal("2")
SPREAD_HELPER_FEE_RATE: Final[Decimal] = Decimal("0.006")
SPREAD_HELPER_GAS_USD: Final[Decimal] = Decimal("50")
SPREAD_HELPER_MIN_NET_USD: Final[Decimal] = Decimal("10")


# =============================================================================
# SCANNER / PROFIT DEFAULTS
# =============================================================================

DEFAULT_MIN_SPREAD_PCT: Final[Decimal] = Decimal("0.5")
DEFAULT_MIN_PROFIT_RATE: Final[Decimal] = Decimal("0.005")
DEFAULT_MIN_PROFIT_USD: Final[Decimal] = Decimal("50")
DEFAULT_NOTIONAL_USD: Final[Decimal] = Decimal("1000")
DEFAULT_SWAP_FEE_RATE: Final[Decimal] = Decimal("0.003")
DEFAULT_GAS_BUFFER_PCT: Final[Decimal] = Decimal("20")
DEFAULT_NATIVE_USD_PRICE: Final[Decimal] = Decimal("2000")

GAS_LIMIT_SINGLE_SWAP: Final[int] = 150_000
GAS_LIMIT_TRIANGULAR_SWAP: Final[int] = 450_000
DEFAULT_QUOTE_GAS: Final[int] = 150_000

# Fallback gas quote when the RPC has never answered
DEFAULT_GAS_PRICE_GWEI: Final[int] = 20
DEFAULT_MAX_FEE_GWEI: Final[int] = 30
DEFAULT_PRIORITY_FEE_GWEI: Final[int] = 2

MIN_TRADE_SIZE_USD: Final[Decimal] = Decimal("100")
MAX_TRADE_SIZE_USD: Final[Decimal] = Decimal("10000")
TRADE_SIZE_LADDER: Tuple[Decimal, ...] = (
    Decimal("100"),
    Decimal("500"),
    Decimal("1000"),
    Decimal("2500"),
    Decimal("5000"),
    Decimal("10000"),
)

# Coarse price impact: base percent plus one percent per $10k notional
PRICE_IMPACT_BASE_PCT: Final[Decimal] = Decimal("1")
PRICE_IMPACT_NOTIONAL_DIVISOR: Final[Decimal] = Decimal("10000")


# =============================================================================
# SLIPPAGE (percent)
# =============================================================================

SLIPPAGE_MIN_PCT: Final[Decimal] = Decimal("0.1")
SLIPPAGE_DEFAULT_PCT: Final[Decimal] = Decimal("0.5")
SLIPPAGE_MAX_PCT: Final[Decimal] = Decimal("2")


# =============================================================================
# TIMING (milliseconds unless noted)
# =============================================================================

PRICE_UPDATE_INTERVAL_MS: Final[int] = 5_000
SCAN_INTERVAL_MS: Final[int] = 10_000
HEALTH_INTERVAL_MS: Final[int] = 30_000
GAS_REFRESH_INTERVAL_S: Final[int] = 30

PRICE_MAX_AGE_MS: Final[int] = 30_000
PRICE_HISTORY_SIZE: Final[int] = 100
PRICE_CLEANUP_AGE_MS: Final[int] = 60 * 60 * 1000

OPPORTUNITY_TTL_MS: Final[int] = 5 * 60 * 1000
STORE_RETENTION_MS: Final[int] = 24 * 60 * 60 * 1000

SIMULATION_CACHE_TTL_MS: Final[int] = 30_000
EXTERNAL_CALL_TIMEOUT_S: Final[float] = 5.0
