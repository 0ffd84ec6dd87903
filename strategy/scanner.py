# PATH: strategy/scanner.py
"""
Arbitrage Scanner.

SCAN CONTRACT
=============
Simple (two-venue) for pair (A, B), prices quoted as B per A:
  1. Collect fresh quotes in both stored orientations.
  2. buy = lowest price, sell = highest price on a different pool.
     Ties break on (venue priority, fee-tier preference, pool id).
  3. spread_pct = (sell - buy) / buy * 100, gated by min_spread_pct.
  4. Profit from ProfitCalculator at the reference notional, gated by
     min_profit_usd. Rejected candidates stay on the evaluation, marked
     UNPROFITABLE.

Triangular for path (A, B, C):
  1. Best price on each hop A->B, B->C, C->A.
  2. compounded = p1 * p2 * p3, gated by compounded - 1 >= min_profit_rate.
  3. Profit and threshold as above.

Every rejection carries an ErrorCode. A failing evaluation is logged and
skipped; it never aborts a scan.
"""

from dataclasses import dataclass, field
from decimal import Decimal, DecimalException
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from core import constants as C
from core.constants import OpportunityStatus, OpportunityType
from core.exceptions import ArbError, ErrorCode
from core.logging import get_logger
from core.models import (
    DirectedQuote,
    OpportunityCandidate,
    SimpleCandidate,
    TradeLeg,
    TriangularCandidate,
)
from core.time import now_ms
from execution.state_machine import expire, is_terminal, transition
from pricing.cache import PriceCache
from pricing.tokens import TokenRegistry
from strategy.config import StrategyConfig
from strategy.profit import ProfitCalculator

logger = get_logger(__name__)


@dataclass
class ScanEvaluation:
    """Outcome of evaluating one pair or path."""
    accepted: bool
    reason: Optional[ErrorCode] = None
    candidate: Optional[OpportunityCandidate] = None
    target: str = ""

    def to_dict(self) -> Dict[str, object]:
        return {
            "accepted": self.accepted,
            "reason": self.reason.value if self.reason else None,
            "target": self.target,
            "candidate": self.candidate.to_dict() if self.candidate else None,
        }


@dataclass
class ScanReport:
    """Accepted candidates and rejection counts for one scan."""
    candidates: List[OpportunityCandidate] = field(default_factory=list)
    rejections: Dict[str, int] = field(default_factory=dict)
    errors: int = 0
    duration_ms: int = 0

    def reject(self, reason: ErrorCode) -> None:
        self.rejections[reason.value] = self.rejections.get(reason.value, 0) + 1


def simple_key(token_a: str, token_b: str, buy_venue: str, sell_venue: str) -> str:
    return f"simple:{token_a}-{token_b}:{buy_venue}-{sell_venue}"


def triangular_key(path: Sequence[str]) -> str:
    return "triangular:" + "-".join(path)


class ArbitrageScanner:
    """Finds simple and triangular candidates in the price cache."""

    def __init__(
        self,
        cache: PriceCache,
        calculator: ProfitCalculator,
        tokens: TokenRegistry,
        config: StrategyConfig,
        venue_priority: Optional[Mapping[str, int]] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.cache = cache
        self.calculator = calculator
        self.tokens = tokens
        self.config = config
        self.venue_priority: Dict[str, int] = dict(
            venue_priority if venue_priority is not None else cache.venue_priority
        )
        self.clock = clock

        self._active: Dict[str, OpportunityCandidate] = {}
        self.stats: Dict[str, int] = {
            "total_scans": 0,
            "opportunities_found": 0,
            "profitable_opportunities": 0,
            "simple_found": 0,
            "triangular_found": 0,
            "evaluation_errors": 0,
            "expired": 0,
        }

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _tie_key(self, quote: DirectedQuote) -> Tuple[int, int, str]:
        priority = self.venue_priority.get(quote.venue, len(self.venue_priority))
        preference = self.cache.fee_tier_preference
        tier_rank = preference.index(quote.fee_tier) if quote.fee_tier in preference else len(preference)
        return (priority, tier_rank, quote.pool_id)

    def _quotes(self, token_a: str, token_b: str, current_ms: int) -> List[DirectedQuote]:
        return self.cache.quotes(
            token_a,
            token_b,
            max_age_ms=self.config.retention.price_max_age_ms,
            include_synthetic=self.config.thresholds.allow_synthetic_prices,
            current_ms=current_ms,
        )

    def _best_quote(self, token_in: str, token_out: str, current_ms: int) -> Optional[DirectedQuote]:
        """Highest token_out per token_in; ties go to the preferred pool."""
        quotes = self._quotes(token_in, token_out, current_ms)
        if not quotes:
            return None
        return min(quotes, key=lambda q: (-q.price, self._tie_key(q)))

    def _gate_profit(self, candidate: OpportunityCandidate, target: str) -> ScanEvaluation:
        if candidate.net_profit_usd < self.config.thresholds.min_profit_usd:
            transition(
                candidate,
                OpportunityStatus.UNPROFITABLE,
                reason=ErrorCode.PROFIT_BELOW_THRESHOLD.value,
                metadata={"net_profit_usd": str(candidate.net_profit_usd)},
                timestamp_ms=self.clock(),
            )
            return ScanEvaluation(False, ErrorCode.PROFIT_BELOW_THRESHOLD, candidate, target)
        return ScanEvaluation(True, None, candidate, target)

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def evaluate_simple(
        self,
        token_a: str,
        token_b: str,
        notional_usd: Optional[Decimal] = None,
    ) -> ScanEvaluation:
        """Best two-venue candidate for a pair, or the reason there is none."""
        target = f"{token_a}-{token_b}"
        current = self.clock()
        notional = self.config.thresholds.notional_usd if notional_usd is None else notional_usd

        quotes = self._quotes(token_a, token_b, current)
        if len(quotes) < 2:
            return ScanEvaluation(False, ErrorCode.PRICE_MISSING, target=target)

        buy = min(quotes, key=lambda q: (q.price, self._tie_key(q)))
        # A reverse-stored quote from the same venue and tier is the same pool
        others = [q for q in quotes if (q.venue, q.fee_tier) != (buy.venue, buy.fee_tier)]
        if not others:
            return ScanEvaluation(False, ErrorCode.SAME_POOL, target=target)
        sell = min(others, key=lambda q: (-q.price, self._tie_key(q)))

        spread_pct = (sell.price - buy.price) / buy.price * C.PCT_DENOMINATOR
        if spread_pct < self.config.thresholds.min_spread_pct:
            return ScanEvaluation(False, ErrorCode.SPREAD_TOO_SMALL, target=target)

        key = simple_key(token_a, token_b, buy.venue, sell.venue)
        candidate = SimpleCandidate(
            id=f"{key}:{current}",
            key=key,
            tokens=(token_a, token_b),
            notional_usd=notional,
            price_difference_pct=spread_pct,
            created_at_ms=current,
            updated_at_ms=current,
            buy_venue=buy.venue,
            buy_fee_tier=buy.fee_tier,
            buy_price=buy.price,
            sell_venue=sell.venue,
            sell_fee_tier=sell.fee_tier,
            sell_price=sell.price,
        )
        self.calculator.apply(candidate, self.calculator.calculate_simple(candidate, notional))
        return self._gate_profit(candidate, target)

    def evaluate_triangular(
        self,
        path: Sequence[str],
        notional_usd: Optional[Decimal] = None,
    ) -> ScanEvaluation:
        """Cycle path[0] -> ... -> path[-1] -> path[0] at the best price per hop."""
        path = tuple(path)
        target = "-".join(path)
        current = self.clock()
        notional = self.config.thresholds.notional_usd if notional_usd is None else notional_usd

        hops = [(path[i], path[(i + 1) % len(path)]) for i in range(len(path))]
        quotes: List[DirectedQuote] = []
        for token_in, token_out in hops:
            quote = self._best_quote(token_in, token_out, current)
            if quote is None:
                return ScanEvaluation(False, ErrorCode.PRICE_MISSING, target=target)
            quotes.append(quote)

        compounded = Decimal(1)
        for quote in quotes:
            compounded *= quote.price
        if compounded - 1 < self.config.thresholds.min_profit_rate:
            return ScanEvaluation(False, ErrorCode.RATE_BELOW_THRESHOLD, target=target)

        legs = []
        amount = notional / self.tokens.usd_price(path[0])
        for (token_in, token_out), quote in zip(hops, quotes):
            legs.append(TradeLeg(
                venue=quote.venue,
                fee_tier=quote.fee_tier,
                token_in=token_in,
                token_out=token_out,
                price=quote.price,
                amount_in=amount,
                notional_usd=amount * self.tokens.usd_price(token_in),
            ))
            amount = amount * quote.price

        key = triangular_key(path)
        candidate = TriangularCandidate(
            id=f"{key}:{current}",
            key=key,
            tokens=path,
            notional_usd=notional,
            price_difference_pct=(compounded - 1) * C.PCT_DENOMINATOR,
            created_at_ms=current,
            updated_at_ms=current,
            legs=tuple(legs),
            compounded_rate=compounded,
        )
        self.calculator.apply(candidate, self.calculator.calculate_triangular(candidate, notional))
        return self._gate_profit(candidate, target)

    # -------------------------------------------------------------------------
    # Scan
    # -------------------------------------------------------------------------

    def scan(self, notional_usd: Optional[Decimal] = None) -> ScanReport:
        """Evaluate every configured pair and path once."""
        start = self.clock()
        report = ScanReport()

        jobs: List[Tuple[str, Callable[[], ScanEvaluation]]] = []
        for token_a, token_b in self.config.pairs:
            jobs.append((f"{token_a}-{token_b}", lambda a=token_a, b=token_b: self.evaluate_simple(a, b, notional_usd)))
        for path in self.config.triangular_paths:
            jobs.append(("-".join(path), lambda p=path: self.evaluate_triangular(p, notional_usd)))

        for target, job in jobs:
            try:
                evaluation = job()
            except (ArbError, DecimalException) as e:
                report.errors += 1
                self.stats["evaluation_errors"] += 1
                logger.warning(
                    f"Evaluation failed for {target}: {e}",
                    extra={"context": {"target": target, "error_type": type(e).__name__}}
                )
                continue

            if not evaluation.accepted:
                report.reject(evaluation.reason or ErrorCode.UNKNOWN)
                logger.debug(
                    f"Rejected {target}: {evaluation.reason.value if evaluation.reason else 'unknown'}",
                    extra={"context": {"target": target, "reason": evaluation.reason}}
                )
                continue

            candidate = self._remember(evaluation.candidate)
            report.candidates.append(candidate)

        self.stats["total_scans"] += 1
        report.duration_ms = self.clock() - start

        logger.info(
            f"Scan complete: {len(report.candidates)} candidates",
            extra={"context": {
                "candidates": len(report.candidates),
                "rejections": report.rejections,
                "errors": report.errors,
                "duration_ms": report.duration_ms,
            }}
        )
        return report

    def _remember(self, candidate: OpportunityCandidate) -> OpportunityCandidate:
        """Store an accepted candidate; a known key keeps its id and age."""
        previous = self._active.get(candidate.key)
        if previous is not None and not is_terminal(previous.status):
            candidate.id = previous.id
            candidate.created_at_ms = previous.created_at_ms
        else:
            self.stats["opportunities_found"] += 1
            if candidate.kind == OpportunityType.SIMPLE:
                self.stats["simple_found"] += 1
            else:
                self.stats["triangular_found"] += 1
            if candidate.net_profit_usd > 0:
                self.stats["profitable_opportunities"] += 1
        self._active[candidate.key] = candidate
        return candidate

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def active_opportunities(self) -> List[OpportunityCandidate]:
        """Active candidates, highest net first."""
        return sorted(self._active.values(), key=lambda c: c.net_profit_usd, reverse=True)

    def opportunities_for_pair(self, token_a: str, token_b: str) -> List[OpportunityCandidate]:
        wanted = {token_a, token_b}
        return [c for c in self.active_opportunities() if wanted <= set(c.tokens)]

    def best_opportunity(self) -> Optional[OpportunityCandidate]:
        active = self.active_opportunities()
        return active[0] if active else None

    def expire(self, max_age_ms: Optional[int] = None, current_ms: Optional[int] = None) -> List[OpportunityCandidate]:
        """Expire and drop candidates older than max_age_ms or already terminal."""
        ttl = self.config.retention.opportunity_ttl_ms if max_age_ms is None else max_age_ms
        current = self.clock() if current_ms is None else current_ms

        dropped = []
        for key, candidate in list(self._active.items()):
            if is_terminal(candidate.status):
                del self._active[key]
                continue
            if current - candidate.created_at_ms > ttl:
                expire(candidate, timestamp_ms=current)
                del self._active[key]
                dropped.append(candidate)

        if dropped:
            self.stats["expired"] += len(dropped)
            logger.debug(
                f"Expired {len(dropped)} opportunities",
                extra={"context": {"expired": len(dropped), "ttl_ms": ttl}}
            )
        return dropped

    def validate(self, candidate: OpportunityCandidate) -> ScanEvaluation:
        """Re-check a candidate against the current cache."""
        if isinstance(candidate, SimpleCandidate):
            evaluation = self.evaluate_simple(candidate.token_a, candidate.token_b, candidate.notional_usd)
        elif isinstance(candidate, TriangularCandidate):
            evaluation = self.evaluate_triangular(candidate.tokens, candidate.notional_usd)
        else:
            raise TypeError(f"Unsupported candidate type: {type(candidate).__name__}")

        if evaluation.accepted and evaluation.candidate is not None and evaluation.candidate.key != candidate.key:
            return ScanEvaluation(False, ErrorCode.PRICE_STALE, evaluation.candidate, evaluation.target)
        return evaluation

    def get_stats(self) -> Dict[str, int]:
        return {**self.stats, "active_opportunities": len(self._active)}
