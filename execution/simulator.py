# PATH: execution/simulator.py
"""
Trade Simulator.

SIMULATION CONTRACT:
====================

Legs are quoted in sequence, each leg's output feeding the next:

  simple      buy leg  token_b -> token_a on the buy venue
              sell leg token_a -> token_b on the sell venue
              start amount = notional / usd(token_b)
  triangular  origin -> b -> c -> origin
              start amount = notional / usd(origin)

  profit_usd  = (final_amount - initial_amount) * usd(start_token)
  gas per leg = gas_estimate (default when the quoter reports 0)
                * gas price * native USD, no buffer
  net         = profit_usd - total gas

Failures (leg timeout, quote revert, zero output) give success=False with
an error code. They are never reported as zero profit and are not cached.

Successful results are cached per (kind, opportunity id, notional) for
ttl_ms; a hit returns the identical object, and overlapping calls for the
same key share one run.

====================
"""

import asyncio
import dataclasses
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from core import constants as C
from core.constants import OpportunityStatus, OpportunityType
from core.exceptions import ArbError, ErrorCode, ValidationError
from core.logging import get_logger
from core.math import apply_haircut, gas_cost_native, human_to_wei, wei_to_human
from core.models import (
    LegSimulation,
    OpportunityCandidate,
    SimpleCandidate,
    SimulationResult,
    SlippageAdjustment,
    TriangularCandidate,
)
from core.time import now_ms
from dex.sources import Quoter
from execution.state_machine import can_transition, transition
from pricing.tokens import TokenRegistry
from strategy.config import StrategyConfig
from strategy.profit import GasPriceCache

logger = get_logger(__name__)

CacheKey = Tuple[str, str, str]
Hop = Tuple[str, Optional[int], str, str]


class SimulationCache:
    """TTL cache of successful simulation results."""

    def __init__(self, ttl_ms: int = C.SIMULATION_CACHE_TTL_MS, clock: Callable[[], int] = now_ms):
        self.ttl_ms = ttl_ms
        self.clock = clock
        self._entries: Dict[CacheKey, Tuple[int, SimulationResult]] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(kind: OpportunityType, opportunity_id: str, notional_usd: Decimal) -> CacheKey:
        return (kind.value, opportunity_id, str(notional_usd))

    @property
    def requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> Decimal:
        if self.requests == 0:
            return Decimal(0)
        return Decimal(self.hits) / Decimal(self.requests)

    def get(self, key: CacheKey) -> Optional[SimulationResult]:
        entry = self._entries.get(key)
        if entry is not None and self.clock() - entry[0] > self.ttl_ms:
            del self._entries[key]
            entry = None
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return entry[1]

    def put(self, key: CacheKey, result: SimulationResult) -> None:
        self._entries[key] = (self.clock(), result)

    def sweep(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self.clock()
        expired = [k for k, (stored, _) in self._entries.items() if now - stored > self.ttl_ms]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, object]:
        return {
            "size": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "requests": self.requests,
            "hit_rate": str(self.hit_rate),
        }


class TradeSimulator:
    """
    Quotes every leg of a candidate and reports the realized outcome.

    Usage:
        simulator = TradeSimulator(quoter, gas_cache, tokens, config)
        result = await simulator.simulate(candidate)
        adjusted = await simulator.simulate_with_slippage(candidate, slippage_pct=Decimal("1"))
    """

    def __init__(
        self,
        quoter: Quoter,
        gas_cache: GasPriceCache,
        tokens: TokenRegistry,
        config: StrategyConfig,
        native_usd_price: Optional[Callable[[], Decimal]] = None,
        clock: Callable[[], int] = now_ms,
        timeout_s: Optional[float] = None,
    ):
        self.quoter = quoter
        self.gas_cache = gas_cache
        self.tokens = tokens
        self.config = config
        self.clock = clock
        self.timeout_s = float(config.intervals.call_timeout_s) if timeout_s is None else timeout_s
        self._native_usd_price = native_usd_price
        self.cache = SimulationCache(config.retention.simulation_cache_ttl_ms, clock=clock)
        self._in_flight: Dict[CacheKey, "asyncio.Future[SimulationResult]"] = {}

        self.simulations = 0
        self.failures = 0

    def native_usd_price(self) -> Decimal:
        if self._native_usd_price is not None:
            return self._native_usd_price()
        return self.config.gas.native_usd_price or C.DEFAULT_NATIVE_USD_PRICE

    # -------------------------------------------------------------------------
    # Leg execution
    # -------------------------------------------------------------------------

    async def _run(
        self,
        opportunity_id: str,
        kind: OpportunityType,
        notional_usd: Decimal,
        start_token: str,
        hops: List[Hop],
    ) -> SimulationResult:
        self.simulations += 1
        start_usd = self.tokens.usd_price(start_token)
        start_decimals = self.tokens.decimals(start_token)

        amount_in = human_to_wei(notional_usd / start_usd, start_decimals)
        initial_amount = wei_to_human(amount_in, start_decimals)
        gas_price_wei = self.gas_cache.current().gas_price_wei
        native_usd = self.native_usd_price()

        legs: List[LegSimulation] = []
        amount = amount_in
        for venue, fee_tier, token_in, token_out in hops:
            try:
                quote = await asyncio.wait_for(
                    self.quoter.quote_exact_input(venue, token_in, token_out, fee_tier, amount),
                    timeout=self.timeout_s,
                )
            except asyncio.TimeoutError:
                return self._failed(
                    opportunity_id, kind, notional_usd, legs,
                    ErrorCode.QUOTE_TIMEOUT, f"Quote timed out on {venue} {token_in}->{token_out}",
                )
            except ArbError as e:
                return self._failed(opportunity_id, kind, notional_usd, legs, e.code, e.message)
            except Exception as e:
                logger.error(
                    f"Quoter error on {venue} {token_in}->{token_out}: {e}",
                    exc_info=True,
                    extra={"context": {"opportunity_id": opportunity_id, "venue": venue, "error_type": type(e).__name__}}
                )
                return self._failed(
                    opportunity_id, kind, notional_usd, legs,
                    ErrorCode.UNKNOWN, f"{type(e).__name__} on {venue} {token_in}->{token_out}: {e}",
                )

            if quote.amount_out <= 0:
                return self._failed(
                    opportunity_id, kind, notional_usd, legs,
                    ErrorCode.QUOTE_ZERO_OUTPUT, f"Zero output on {venue} {token_in}->{token_out}",
                )

            gas_used = quote.gas_estimate or self.config.gas.default_quote_gas
            legs.append(LegSimulation(
                venue=venue,
                fee_tier=fee_tier,
                token_in=token_in,
                token_out=token_out,
                amount_in=wei_to_human(amount, self.tokens.decimals(token_in)),
                amount_out=wei_to_human(quote.amount_out, self.tokens.decimals(token_out)),
                gas_used=gas_used,
                gas_cost_usd=gas_cost_native(gas_used, gas_price_wei) * native_usd,
            ))
            amount = quote.amount_out

        final_amount = wei_to_human(amount, start_decimals)
        return SimulationResult(
            success=True,
            opportunity_id=opportunity_id,
            kind=kind,
            notional_usd=notional_usd,
            start_token=start_token,
            legs=tuple(legs),
            initial_amount=initial_amount,
            final_amount=final_amount,
            profit_usd=(final_amount - initial_amount) * start_usd,
            total_gas_cost_usd=sum((leg.gas_cost_usd for leg in legs), Decimal(0)),
            simulated_at_ms=self.clock(),
        )

    def _failed(
        self,
        opportunity_id: str,
        kind: OpportunityType,
        notional_usd: Decimal,
        legs: List[LegSimulation],
        code: ErrorCode,
        message: str,
    ) -> SimulationResult:
        self.failures += 1
        logger.warning(
            f"Simulation failed for {opportunity_id}: {message}",
            extra={"context": {
                "opportunity_id": opportunity_id,
                "error_code": code.value,
                "completed_legs": len(legs),
            }}
        )
        return SimulationResult.failed(
            opportunity_id=opportunity_id,
            kind=kind,
            notional_usd=notional_usd,
            error_code=code.value,
            error=message,
            legs=tuple(legs),
            simulated_at_ms=self.clock(),
        )

    async def _cached(
        self,
        candidate: OpportunityCandidate,
        notional_usd: Decimal,
        start_token: str,
        hops: List[Hop],
    ) -> SimulationResult:
        key = SimulationCache.key(candidate.kind, candidate.id, notional_usd)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        # Overlapping calls for one key share a single run
        pending = self._in_flight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        run = asyncio.ensure_future(self._run(candidate.id, candidate.kind, notional_usd, start_token, hops))
        self._in_flight[key] = run
        try:
            result = await asyncio.shield(run)
        finally:
            self._in_flight.pop(key, None)
        if result.success:
            self.cache.put(key, result)
        return result

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def simulate_simple(
        self,
        candidate: SimpleCandidate,
        notional_usd: Optional[Decimal] = None,
    ) -> SimulationResult:
        notional = candidate.notional_usd if notional_usd is None else notional_usd
        hops: List[Hop] = [
            (candidate.buy_venue, candidate.buy_fee_tier, candidate.token_b, candidate.token_a),
            (candidate.sell_venue, candidate.sell_fee_tier, candidate.token_a, candidate.token_b),
        ]
        return await self._cached(candidate, notional, candidate.token_b, hops)

    async def simulate_triangular(
        self,
        candidate: TriangularCandidate,
        notional_usd: Optional[Decimal] = None,
    ) -> SimulationResult:
        notional = candidate.notional_usd if notional_usd is None else notional_usd
        hops: List[Hop] = [(leg.venue, leg.fee_tier, leg.token_in, leg.token_out) for leg in candidate.legs]
        return await self._cached(candidate, notional, candidate.origin, hops)

    async def _simulate_base(
        self,
        candidate: OpportunityCandidate,
        notional_usd: Optional[Decimal],
    ) -> SimulationResult:
        if isinstance(candidate, SimpleCandidate):
            return await self.simulate_simple(candidate, notional_usd)
        if isinstance(candidate, TriangularCandidate):
            return await self.simulate_triangular(candidate, notional_usd)
        raise TypeError(f"Unsupported candidate type: {type(candidate).__name__}")

    async def simulate_with_slippage(
        self,
        candidate: OpportunityCandidate,
        notional_usd: Optional[Decimal] = None,
        slippage_pct: Optional[Decimal] = None,
    ) -> SimulationResult:
        """
        Base simulation plus a multiplicative haircut on the final amount.

        Raises ValidationError if slippage_pct is outside the configured
        bounds. The cached base result is not modified.
        """
        bounds = self.config.slippage
        slippage = bounds.default_pct if slippage_pct is None else slippage_pct
        if not (bounds.min_pct <= slippage <= bounds.max_pct):
            raise ValidationError(
                f"Slippage {slippage}% outside [{bounds.min_pct}, {bounds.max_pct}]",
                {"slippage_pct": str(slippage), "min": str(bounds.min_pct), "max": str(bounds.max_pct)},
            )

        base = await self._simulate_base(candidate, notional_usd)
        if not base.success:
            return base

        final_amount = apply_haircut(base.final_amount, slippage)
        profit_usd = (final_amount - base.initial_amount) * self.tokens.usd_price(base.start_token)
        adjustment = SlippageAdjustment(
            slippage_pct=slippage,
            final_amount=final_amount,
            profit_usd=profit_usd,
            net_profit_usd=profit_usd - base.total_gas_cost_usd,
        )
        return dataclasses.replace(base, slippage=adjustment)

    async def simulate(
        self,
        candidate: OpportunityCandidate,
        notional_usd: Optional[Decimal] = None,
    ) -> SimulationResult:
        """
        Simulate, attach the result and advance the candidate's status.

        DETECTED -> SIMULATED -> PROFITABLE | UNPROFITABLE on success.
        A failed simulation leaves the status unchanged.
        """
        result = await self._simulate_base(candidate, notional_usd)
        candidate.simulation = result
        if not result.success:
            return result

        if can_transition(candidate.status, OpportunityStatus.SIMULATED):
            transition(candidate, OpportunityStatus.SIMULATED, reason="simulated", timestamp_ms=self.clock())
        if candidate.status == OpportunityStatus.SIMULATED:
            outcome = OpportunityStatus.PROFITABLE if result.is_profitable else OpportunityStatus.UNPROFITABLE
            transition(
                candidate, outcome,
                reason="simulation",
                metadata={"net_profit_usd": str(result.net_profit_usd)},
                timestamp_ms=self.clock(),
            )

        logger.info(
            f"Simulated {candidate.id}: net ${result.net_profit_usd:.2f}",
            extra={"context": {
                "opportunity_id": candidate.id,
                "kind": candidate.kind.value,
                "net_profit_usd": str(result.net_profit_usd),
                "status": candidate.status.value,
            }}
        )
        return result

    async def batch_simulate(
        self,
        candidates: Iterable[OpportunityCandidate],
        notional_usd: Optional[Decimal] = None,
    ) -> List[SimulationResult]:
        return list(await asyncio.gather(*(self.simulate(c, notional_usd) for c in candidates)))

    def clear_cache(self) -> None:
        self.cache.clear()

    def get_stats(self) -> Dict[str, object]:
        return {
            "simulations": self.simulations,
            "failures": self.failures,
            "cache": self.cache.stats(),
        }

    @staticmethod
    def validate_result(result: SimulationResult) -> List[str]:
        """Consistency problems in a result; empty when it is sound."""
        problems = []
        if not result.success:
            if not result.error_code:
                problems.append("failed result has no error code")
            return problems
        if not result.legs:
            problems.append("no legs")
        if result.initial_amount <= 0:
            problems.append("non-positive initial amount")
        if result.final_amount <= 0:
            problems.append("non-positive final amount")
        for prev, leg in zip(result.legs, result.legs[1:]):
            if prev.amount_out != leg.amount_in:
                problems.append(f"leg {leg.token_in}->{leg.token_out} does not chain")
        if result.legs and result.legs[-1].token_out != result.start_token:
            problems.append("cycle does not return to the start token")
        if result.total_gas_cost_usd < 0:
            problems.append("negative gas cost")
        return problems
