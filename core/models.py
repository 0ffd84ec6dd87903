# PATH: core/models.py
"""
Core data models for dexwatch.

PRICE CONTRACT
==============
A PriceObservation quotes token_b per token_a in whole-token units, as a
Decimal. Observations are frozen: the cache replaces them, never edits them.

OPPORTUNITY CONTRACT
====================
OpportunityCandidate is a tagged variant: SimpleCandidate or
TriangularCandidate, discriminated by `kind`. Every variant carries the
same money fields:

    net_profit_usd = gross_profit_usd - fees.total_usd

net_profit_usd is a property, so it can never drift from the itemized fees.
Status changes go through execution.state_machine.transition().
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from core.constants import (
    NormalizationKind,
    OpportunityStatus,
    OpportunityType,
)
from core.math import ZERO, calculate_roi
from core.time import now_ms


# =============================================================================
# TOKENS
# =============================================================================

@dataclass(frozen=True)
class Token:
    """ERC20 token metadata."""
    symbol: str
    address: str
    decimals: int

    def to_dict(self) -> Dict[str, Any]:
        return {"symbol": self.symbol, "address": self.address, "decimals": self.decimals}


# =============================================================================
# PRICES
# =============================================================================

@dataclass(frozen=True)
class PriceObservation:
    """Latest price seen for one (venue, pair, fee tier) pool."""
    venue: str
    token_a: str
    token_b: str
    fee_tier: Optional[int]
    price: Decimal
    block_number: int
    timestamp_ms: int
    kind: NormalizationKind = NormalizationKind.NORMALIZED
    reason: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str, str, Optional[int]]:
        return (self.venue, self.token_a, self.token_b, self.fee_tier)

    @property
    def pool_id(self) -> str:
        """Human-readable key, e.g. uniswap_v3:WETH-USDT:500."""
        fee = "na" if self.fee_tier is None else str(self.fee_tier)
        return f"{self.venue}:{self.token_a}-{self.token_b}:{fee}"

    @property
    def is_synthetic(self) -> bool:
        return self.kind == NormalizationKind.FALLBACK

    def oriented(self, token_a: str, token_b: str) -> Optional[Decimal]:
        """
        Price as token_b per token_a, reciprocating a reverse-stored quote.

        Returns None if the observation is for another pair or the price
        cannot be inverted.
        """
        if (self.token_a, self.token_b) == (token_a, token_b):
            return self.price
        if (self.token_a, self.token_b) == (token_b, token_a):
            if self.price <= 0:
                return None
            return Decimal(1) / self.price
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "venue": self.venue,
            "token_a": self.token_a,
            "token_b": self.token_b,
            "fee_tier": self.fee_tier,
            "price": str(self.price),
            "block_number": self.block_number,
            "timestamp_ms": self.timestamp_ms,
            "kind": self.kind.value,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class DirectedQuote:
    """A cached observation viewed in a requested direction (b per a)."""
    price: Decimal
    observation: PriceObservation

    @property
    def venue(self) -> str:
        return self.observation.venue

    @property
    def fee_tier(self) -> Optional[int]:
        return self.observation.fee_tier

    @property
    def pool_id(self) -> str:
        return self.observation.pool_id


@dataclass(frozen=True)
class PoolState:
    """
    Pool snapshot from a price source.

    raw_price_ratio is token_b per token_a. When decimals_adjusted is False
    the ratio still carries the 10^(decimals_a - decimals_b) scale and must
    go through PriceNormalizer.normalize.
    """
    raw_price_ratio: Decimal
    liquidity: int
    block_number: int
    decimals_adjusted: bool = False


@dataclass(frozen=True)
class Reserves:
    """Constant-product pool reserves in smallest units."""
    reserve0: int
    reserve1: int
    token0: str
    block_number: int


@dataclass(frozen=True)
class GasQuote:
    """Gas price snapshot in wei."""
    gas_price_wei: int
    max_fee_per_gas_wei: Optional[int] = None
    max_priority_fee_wei: Optional[int] = None
    timestamp_ms: int = 0
    is_default: bool = False


@dataclass(frozen=True)
class QuoteResult:
    """Output of a single exact-input quote."""
    amount_out: int
    gas_estimate: int
    latency_ms: int = 0


# =============================================================================
# PROFIT
# =============================================================================

@dataclass(frozen=True)
class FeeBreakdown:
    """Itemized costs. The total is always the sum of the items."""
    swap_fees_usd: Decimal = ZERO
    gas_cost_usd: Decimal = ZERO

    @property
    def total_usd(self) -> Decimal:
        return self.swap_fees_usd + self.gas_cost_usd

    def to_dict(self) -> Dict[str, str]:
        return {
            "swap_fees_usd": str(self.swap_fees_usd),
            "gas_cost_usd": str(self.gas_cost_usd),
            "total_usd": str(self.total_usd),
        }


@dataclass(frozen=True)
class ProfitBreakdown:
    """Profit Calculator output for one candidate at one notional."""
    notional_usd: Decimal
    gross_profit_usd: Decimal
    fees: FeeBreakdown
    price_impact_pct: Decimal = ZERO
    gas_price_wei: int = 0

    @property
    def net_profit_usd(self) -> Decimal:
        return self.gross_profit_usd - self.fees.total_usd

    @property
    def roi_pct(self) -> Decimal:
        return calculate_roi(self.net_profit_usd, self.notional_usd)

    @property
    def is_profitable(self) -> bool:
        return self.net_profit_usd > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "notional_usd": str(self.notional_usd),
            "gross_profit_usd": str(self.gross_profit_usd),
            "fees": self.fees.to_dict(),
            "net_profit_usd": str(self.net_profit_usd),
            "roi_pct": str(self.roi_pct),
            "price_impact_pct": str(self.price_impact_pct),
            "gas_price_wei": self.gas_price_wei,
        }


# =============================================================================
# SIMULATION
# =============================================================================

@dataclass(frozen=True)
class LegSimulation:
    """One simulated swap."""
    venue: str
    fee_tier: Optional[int]
    token_in: str
    token_out: str
    amount_in: Decimal
    amount_out: Decimal
    gas_used: int
    gas_cost_usd: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "venue": self.venue,
            "fee_tier": self.fee_tier,
            "token_in": self.token_in,
            "token_out": self.token_out,
            "amount_in": str(self.amount_in),
            "amount_out": str(self.amount_out),
            "gas_used": self.gas_used,
            "gas_cost_usd": str(self.gas_cost_usd),
        }


@dataclass(frozen=True)
class SlippageAdjustment:
    """Simulation figures after a multiplicative slippage haircut."""
    slippage_pct: Decimal
    final_amount: Decimal
    profit_usd: Decimal
    net_profit_usd: Decimal

    @property
    def is_profitable(self) -> bool:
        return self.net_profit_usd > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slippage_pct": str(self.slippage_pct),
            "final_amount": str(self.final_amount),
            "profit_usd": str(self.profit_usd),
            "net_profit_usd": str(self.net_profit_usd),
            "is_profitable": self.is_profitable,
        }


@dataclass(frozen=True)
class SimulationResult:
    """
    Trade Simulator output.

    success=False means the simulation could not run (quote revert,
    timeout, zero output). It is never a zero-profit result.
    """
    success: bool
    opportunity_id: str
    kind: OpportunityType
    notional_usd: Decimal
    start_token: str = ""
    legs: Tuple[LegSimulation, ...] = ()
    initial_amount: Decimal = ZERO
    final_amount: Decimal = ZERO
    profit_usd: Decimal = ZERO
    total_gas_cost_usd: Decimal = ZERO
    slippage: Optional[SlippageAdjustment] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    simulated_at_ms: int = field(default_factory=now_ms)

    @property
    def net_profit_usd(self) -> Decimal:
        return self.profit_usd - self.total_gas_cost_usd

    @property
    def is_profitable(self) -> bool:
        return self.success and self.net_profit_usd > 0

    @property
    def gas_used(self) -> int:
        return sum(leg.gas_used for leg in self.legs)

    @classmethod
    def failed(
        cls,
        opportunity_id: str,
        kind: OpportunityType,
        notional_usd: Decimal,
        error_code: str,
        error: str,
        legs: Tuple[LegSimulation, ...] = (),
        simulated_at_ms: Optional[int] = None,
    ) -> "SimulationResult":
        return cls(
            success=False,
            opportunity_id=opportunity_id,
            kind=kind,
            notional_usd=notional_usd,
            legs=legs,
            error=error,
            error_code=error_code,
            simulated_at_ms=now_ms() if simulated_at_ms is None else simulated_at_ms,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "opportunity_id": self.opportunity_id,
            "kind": self.kind.value,
            "notional_usd": str(self.notional_usd),
            "start_token": self.start_token,
            "legs": [leg.to_dict() for leg in self.legs],
            "initial_amount": str(self.initial_amount),
            "final_amount": str(self.final_amount),
            "profit_usd": str(self.profit_usd),
            "total_gas_cost_usd": str(self.total_gas_cost_usd),
            "net_profit_usd": str(self.net_profit_usd),
            "is_profitable": self.is_profitable,
            "slippage": self.slippage.to_dict() if self.slippage else None,
            "error": self.error,
            "error_code": self.error_code,
            "simulated_at_ms": self.simulated_at_ms,
        }


# =============================================================================
# OPPORTUNITIES
# =============================================================================

@dataclass(frozen=True)
class TradeLeg:
    """One hop of a triangular cycle."""
    venue: str
    fee_tier: Optional[int]
    token_in: str
    token_out: str
    price: Decimal
    amount_in: Decimal
    notional_usd: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "venue": self.venue,
            "fee_tier": self.fee_tier,
            "token_in": self.token_in,
            "token_out": self.token_out,
            "price": str(self.price),
            "amount_in": str(self.amount_in),
            "notional_usd": str(self.notional_usd),
        }


@dataclass(kw_only=True)
class OpportunityCandidate:
    """Fields shared by every opportunity variant."""
    kind: ClassVar[OpportunityType]

    id: str
    key: str
    tokens: Tuple[str, ...]
    notional_usd: Decimal
    price_difference_pct: Decimal
    gross_profit_usd: Decimal = ZERO
    fees: FeeBreakdown = field(default_factory=FeeBreakdown)
    price_impact_pct: Decimal = ZERO
    status: OpportunityStatus = OpportunityStatus.DETECTED
    created_at_ms: int = field(default_factory=now_ms)
    updated_at_ms: int = 0
    simulation: Optional[SimulationResult] = None
    status_history: List[Any] = field(default_factory=list)

    @property
    def net_profit_usd(self) -> Decimal:
        return self.gross_profit_usd - self.fees.total_usd

    @property
    def roi_pct(self) -> Decimal:
        return calculate_roi(self.net_profit_usd, self.notional_usd)

    @property
    def venues(self) -> Tuple[str, ...]:
        raise NotImplementedError

    def apply_profit(self, breakdown: ProfitBreakdown) -> None:
        """Replace the money fields with a calculator breakdown."""
        self.notional_usd = breakdown.notional_usd
        self.gross_profit_usd = breakdown.gross_profit_usd
        self.fees = breakdown.fees
        self.price_impact_pct = breakdown.price_impact_pct

    def _base_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "kind": self.kind.value,
            "tokens": list(self.tokens),
            "venues": list(self.venues),
            "notional_usd": str(self.notional_usd),
            "price_difference_pct": str(self.price_difference_pct),
            "gross_profit_usd": str(self.gross_profit_usd),
            "fees": self.fees.to_dict(),
            "net_profit_usd": str(self.net_profit_usd),
            "roi_pct": str(self.roi_pct),
            "price_impact_pct": str(self.price_impact_pct),
            "status": self.status.value,
            "created_at_ms": self.created_at_ms,
            "updated_at_ms": self.updated_at_ms,
            "simulation": self.simulation.to_dict() if self.simulation else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        return self._base_dict()


@dataclass(kw_only=True)
class SimpleCandidate(OpportunityCandidate):
    """Buy token_a on the cheap venue, sell it on the expensive one."""
    kind: ClassVar[OpportunityType] = OpportunityType.SIMPLE

    buy_venue: str
    buy_fee_tier: Optional[int]
    buy_price: Decimal
    sell_venue: str
    sell_fee_tier: Optional[int]
    sell_price: Decimal

    @property
    def token_a(self) -> str:
        return self.tokens[0]

    @property
    def token_b(self) -> str:
        return self.tokens[1]

    @property
    def spread_pct(self) -> Decimal:
        return self.price_difference_pct

    @property
    def venues(self) -> Tuple[str, ...]:
        return (self.buy_venue, self.sell_venue)

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data.update({
            "buy_venue": self.buy_venue,
            "buy_fee_tier": self.buy_fee_tier,
            "buy_price": str(self.buy_price),
            "sell_venue": self.sell_venue,
            "sell_fee_tier": self.sell_fee_tier,
            "sell_price": str(self.sell_price),
        })
        return data


@dataclass(kw_only=True)
class TriangularCandidate(OpportunityCandidate):
    """A cycle origin -> b -> c -> origin that returns more than it started with."""
    kind: ClassVar[OpportunityType] = OpportunityType.TRIANGULAR

    legs: Tuple[TradeLeg, ...]
    compounded_rate: Decimal

    @property
    def origin(self) -> str:
        return self.tokens[0]

    @property
    def profit_rate(self) -> Decimal:
        return self.compounded_rate - 1

    @property
    def venues(self) -> Tuple[str, ...]:
        return tuple(leg.venue for leg in self.legs)

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data.update({
            "legs": [leg.to_dict() for leg in self.legs],
            "compounded_rate": str(self.compounded_rate),
            "profit_rate": str(self.profit_rate),
        })
        return data
