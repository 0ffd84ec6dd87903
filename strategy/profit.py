# PATH: strategy/profit.py
"""
Profit Calculator.

MONEY CONTRACT
==============
All figures are Decimal USD. For a candidate at a notional:

    gross      = notional * spread_pct / 100          (simple)
               = notional * (compounded_rate - 1)     (triangular)
    swap_fees  = notional * swap_fee_rate * legs
    gas_usd    = gas_price_wei * gas_limit / 1e18 * native_usd * (100 + buffer) / 100
    net        = gross - swap_fees - gas_usd

Gas comes from GasPriceCache, which never raises: on a failed refresh it
keeps the last good quote, or the 20/30/2 gwei defaults if it never had one.
"""

import asyncio
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional

from core import constants as C
from core.exceptions import ArbError
from core.logging import get_logger
from core.math import ZERO, apply_buffer, apply_haircut, calculate_roi, gas_cost_native, gwei_to_wei, wei_to_gwei
from core.models import (
    FeeBreakdown,
    GasQuote,
    OpportunityCandidate,
    ProfitBreakdown,
    SimpleCandidate,
    TriangularCandidate,
)
from core.time import now_ms
from dex.sources import GasPriceSource
from strategy.config import StrategyConfig

logger = get_logger(__name__)


def default_gas_quote() -> GasQuote:
    return GasQuote(
        gas_price_wei=gwei_to_wei(C.DEFAULT_GAS_PRICE_GWEI),
        max_fee_per_gas_wei=gwei_to_wei(C.DEFAULT_MAX_FEE_GWEI),
        max_priority_fee_wei=gwei_to_wei(C.DEFAULT_PRIORITY_FEE_GWEI),
        timestamp_ms=0,
        is_default=True,
    )


class GasPriceCache:
    """Last good gas quote with a refresh interval."""

    def __init__(
        self,
        source: Optional[GasPriceSource] = None,
        refresh_interval_s: float = C.GAS_REFRESH_INTERVAL_S,
        timeout_s: float = C.EXTERNAL_CALL_TIMEOUT_S,
        clock: Callable[[], int] = now_ms,
    ):
        self.source = source
        self.refresh_interval_s = refresh_interval_s
        self.timeout_s = timeout_s
        self.clock = clock
        self._quote: Optional[GasQuote] = None
        self._fetched_at_ms = 0
        self.refreshes = 0
        self.failures = 0

    def set(self, quote: GasQuote) -> None:
        self._quote = quote
        self._fetched_at_ms = self.clock()

    def current(self) -> GasQuote:
        if self._quote is None:
            return default_gas_quote()
        return self._quote

    def is_stale(self) -> bool:
        if self._quote is None:
            return True
        return self.clock() - self._fetched_at_ms > self.refresh_interval_s * 1000

    async def refresh(self) -> GasQuote:
        """Fetch a new quote; on failure keep the previous one."""
        if self.source is None:
            return self.current()
        try:
            quote = await asyncio.wait_for(self.source.get_gas_price(), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            self.failures += 1
            logger.warning(
                "Gas price refresh timed out, keeping last value",
                extra={"context": {"timeout_s": self.timeout_s, "has_value": self._quote is not None}}
            )
            return self.current()
        except ArbError as e:
            self.failures += 1
            logger.warning(
                f"Gas price refresh failed: {e}",
                extra={"context": {"has_value": self._quote is not None, **e.to_dict()}}
            )
            return self.current()
        except Exception as e:
            self.failures += 1
            logger.error(
                f"Gas price refresh error: {e}",
                exc_info=True,
                extra={"context": {"has_value": self._quote is not None, "error_type": type(e).__name__}}
            )
            return self.current()

        if quote.gas_price_wei <= 0:
            self.failures += 1
            logger.warning(
                "Gas source returned a non-positive price, ignored",
                extra={"context": {"gas_price_wei": quote.gas_price_wei}}
            )
            return self.current()

        self.set(quote)
        self.refreshes += 1
        logger.debug(
            f"Gas price refreshed: {wei_to_gwei(quote.gas_price_wei):.2f} gwei",
            extra={"context": {"gas_price_wei": quote.gas_price_wei}}
        )
        return quote

    async def maybe_refresh(self) -> GasQuote:
        if self.is_stale():
            return await self.refresh()
        return self.current()


class ProfitCalculator:
    """Gross, itemized fees and net for opportunity candidates."""

    def __init__(
        self,
        config: StrategyConfig,
        gas_cache: GasPriceCache,
        native_usd_price: Optional[Callable[[], Decimal]] = None,
    ):
        self.config = config
        self.gas_cache = gas_cache
        self._native_usd_price = native_usd_price

    # -------------------------------------------------------------------------
    # Building blocks
    # -------------------------------------------------------------------------

    def native_usd_price(self) -> Decimal:
        if self._native_usd_price is not None:
            return self._native_usd_price()
        return self.config.gas.native_usd_price or C.DEFAULT_NATIVE_USD_PRICE

    def gas_cost_usd(
        self,
        gas_limit: int,
        buffered: bool = True,
        gas_price_wei: Optional[int] = None,
    ) -> Decimal:
        if gas_price_wei is None:
            gas_price_wei = self.gas_cache.current().gas_price_wei
        cost = gas_cost_native(gas_limit, gas_price_wei) * self.native_usd_price()
        if buffered:
            cost = apply_buffer(cost, self.config.gas.buffer_pct)
        return cost

    def swap_fees_usd(self, notional_usd: Decimal, legs: int) -> Decimal:
        return notional_usd * self.config.thresholds.swap_fee_rate * legs

    @staticmethod
    def price_impact_pct(notional_usd: Decimal) -> Decimal:
        """Coarse impact estimate: 1% plus 1% per $10k."""
        return C.PRICE_IMPACT_BASE_PCT + notional_usd / C.PRICE_IMPACT_NOTIONAL_DIVISOR

    def _breakdown(self, notional_usd: Decimal, gross: Decimal, legs: int, gas_limit: int) -> ProfitBreakdown:
        gas_price_wei = self.gas_cache.current().gas_price_wei
        fees = FeeBreakdown(
            swap_fees_usd=self.swap_fees_usd(notional_usd, legs),
            gas_cost_usd=self.gas_cost_usd(gas_limit, gas_price_wei=gas_price_wei),
        )
        return ProfitBreakdown(
            notional_usd=notional_usd,
            gross_profit_usd=gross,
            fees=fees,
            price_impact_pct=self.price_impact_pct(notional_usd),
            gas_price_wei=gas_price_wei,
        )

    # -------------------------------------------------------------------------
    # Candidates
    # -------------------------------------------------------------------------

    def calculate_simple(self, candidate: SimpleCandidate, notional_usd: Optional[Decimal] = None) -> ProfitBreakdown:
        notional = candidate.notional_usd if notional_usd is None else notional_usd
        gross = notional * candidate.spread_pct / C.PCT_DENOMINATOR
        return self._breakdown(notional, gross, legs=2, gas_limit=self.config.gas.single_swap_limit)

    def calculate_triangular(
        self,
        candidate: TriangularCandidate,
        notional_usd: Optional[Decimal] = None,
    ) -> ProfitBreakdown:
        notional = candidate.notional_usd if notional_usd is None else notional_usd
        gross = notional * candidate.profit_rate
        return self._breakdown(
            notional, gross,
            legs=len(candidate.legs),
            gas_limit=self.config.gas.triangular_swap_limit,
        )

    def calculate(self, candidate: OpportunityCandidate, notional_usd: Optional[Decimal] = None) -> ProfitBreakdown:
        if isinstance(candidate, SimpleCandidate):
            return self.calculate_simple(candidate, notional_usd)
        if isinstance(candidate, TriangularCandidate):
            return self.calculate_triangular(candidate, notional_usd)
        raise TypeError(f"Unsupported candidate type: {type(candidate).__name__}")

    def apply(self, candidate: OpportunityCandidate, breakdown: ProfitBreakdown) -> OpportunityCandidate:
        candidate.apply_profit(breakdown)
        return candidate

    def batch_calculate(
        self,
        candidates: Iterable[OpportunityCandidate],
        notional_usd: Optional[Decimal] = None,
    ) -> List[ProfitBreakdown]:
        return [self.calculate(c, notional_usd) for c in candidates]

    def trade_sizes(self) -> List[Decimal]:
        ts = self.config.trade_size
        return [s for s in ts.ladder if ts.min_usd <= s <= ts.max_usd]

    def optimal_trade_size(self, candidate: OpportunityCandidate) -> Optional[ProfitBreakdown]:
        """
        Highest-net breakdown across the trade size ladder.

        Ties go to the smaller size. Returns None if no ladder step falls
        inside the configured bounds.
        """
        best: Optional[ProfitBreakdown] = None
        for size in sorted(self.trade_sizes()):
            breakdown = self.calculate(candidate, size)
            if best is None or breakdown.net_profit_usd > best.net_profit_usd:
                best = breakdown
        return best

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def calculate_roi(profit_usd: Decimal, investment_usd: Decimal) -> Decimal:
        return calculate_roi(profit_usd, investment_usd)

    def slippage_adjusted_amount(self, amount: Decimal, slippage_pct: Optional[Decimal] = None) -> Decimal:
        pct = self.config.slippage.default_pct if slippage_pct is None else slippage_pct
        return apply_haircut(amount, pct)

    @staticmethod
    def break_even_price(buy_price: Decimal, total_fees_usd: Decimal, notional_usd: Decimal) -> Decimal:
        """Sell price at which a buy at buy_price exactly covers the fees."""
        if notional_usd <= 0:
            return buy_price
        return buy_price * (1 + total_fees_usd / notional_usd)

    @staticmethod
    def profit_margin_pct(net_profit_usd: Decimal, gross_profit_usd: Decimal) -> Decimal:
        if gross_profit_usd == 0:
            return ZERO
        return net_profit_usd / gross_profit_usd * C.PCT_DENOMINATOR

    def summary(self) -> Dict[str, str]:
        quote = self.gas_cache.current()
        return {
            "gas_price_wei": str(quote.gas_price_wei),
            "gas_is_default": str(quote.is_default),
            "native_usd_price": str(self.native_usd_price()),
            "gas_buffer_pct": str(self.config.gas.buffer_pct),
        }
