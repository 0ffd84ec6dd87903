# PATH: pricing/normalizer.py
"""
Price normalization.

Turns a raw venue ratio (token_b per token_a) into a comparable Decimal price:

1. Decimal scaling: raw / 10^(decimals_a - decimals_b)
2. Inversion: if the reciprocal sits closer to the reference ratio
   (usd_a / usd_b), the quote was inverted and the reciprocal is used
3. Sanity clamp: if the result still deviates more than max_deviation from
   the reference ratio, the reference ratio (with bounded jitter) is
   substituted and the result is tagged FALLBACK

A FALLBACK result is synthetic data. It is logged at WARNING and callers
decide whether to use it.
"""

import random
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional

from core import constants as C
from core.constants import NormalizationKind
from core.logging import get_logger
from core.math import ZERO, is_positive, safe_decimal
from core.models import FeeBreakdown
from core.exceptions import ErrorCode
from pricing.tokens import TokenRegistry

logger = get_logger(__name__)

_JITTER_STEPS = 10_000


@dataclass(frozen=True)
class NormalizedPrice:
    """Normalizer output for one quote."""
    token_a: str
    token_b: str
    kind: NormalizationKind
    price: Decimal
    reverse_price: Decimal
    implied_usd_a: Decimal
    implied_usd_b: Decimal
    expected_ratio: Decimal
    scaled_input: Decimal
    reason: Optional[str] = None

    @property
    def was_inverted(self) -> bool:
        return self.kind == NormalizationKind.INVERTED

    @property
    def is_synthetic(self) -> bool:
        return self.kind == NormalizationKind.FALLBACK


@dataclass(frozen=True)
class SpreadEvaluation:
    """Two-source comparison for one pair."""
    profitable: bool
    reason: Optional[ErrorCode]
    buy_source: str
    sell_source: str
    buy_price: Decimal
    sell_price: Decimal
    spread_pct: Decimal
    gross_profit_usd: Decimal = ZERO
    fees: FeeBreakdown = FeeBreakdown()

    @property
    def net_profit_usd(self) -> Decimal:
        return self.gross_profit_usd - self.fees.total_usd


class PriceNormalizer:
    """
    Decimal-scaling, inversion and sanity correction for venue quotes.

    Usage:
        normalizer = PriceNormalizer(tokens)
        result = normalizer.normalize("WETH", "USDT", raw_ratio)
        if result.is_synthetic:
            ...
    """

    def __init__(
        self,
        tokens: TokenRegistry,
        rng: Optional[random.Random] = None,
        fallback_jitter_pct: Decimal = C.FALLBACK_JITTER,
        max_deviation: Decimal = C.MAX_PRICE_DEVIATION,
    ):
        self.tokens = tokens
        self.rng = rng or random.Random()
        self.fallback_jitter_pct = fallback_jitter_pct
        self.max_deviation = max_deviation

    # -------------------------------------------------------------------------
    # Reference prices
    # -------------------------------------------------------------------------

    def usd_price(self, symbol: str) -> Decimal:
        return self.tokens.usd_price(symbol)

    def update_usd_prices(self, prices: Mapping[str, Decimal]) -> None:
        self.tokens.update_usd_prices(prices)

    def expected_ratio(self, token_a: str, token_b: str) -> Decimal:
        """Reference token_b per token_a from USD prices."""
        return self.usd_price(token_a) / self.usd_price(token_b)

    # -------------------------------------------------------------------------
    # Normalization
    # -------------------------------------------------------------------------

    def fix_decimal_scaling(self, token_a: str, token_b: str, raw_ratio: Decimal) -> Decimal:
        """Remove the 10^(decimals_a - decimals_b) scale from a raw ratio."""
        shift = self.tokens.decimals(token_a) - self.tokens.decimals(token_b)
        return raw_ratio / (Decimal(10) ** shift)

    def normalize(self, token_a: str, token_b: str, raw_ratio: Decimal | int | str) -> NormalizedPrice:
        """Scale, invert if needed, and sanity-check a raw venue ratio."""
        raw = raw_ratio if isinstance(raw_ratio, Decimal) else safe_decimal(raw_ratio)
        if not raw.is_finite():
            return self._fallback(token_a, token_b, raw, "non_finite_price")
        scaled = self.fix_decimal_scaling(token_a, token_b, raw)
        return self._correct(token_a, token_b, scaled)

    def normalize_scaled(self, token_a: str, token_b: str, price: Decimal) -> NormalizedPrice:
        """Inversion and sanity checks for a price already in whole-token units."""
        if not price.is_finite():
            return self._fallback(token_a, token_b, price, "non_finite_price")
        return self._correct(token_a, token_b, price)

    def _correct(self, token_a: str, token_b: str, scaled: Decimal) -> NormalizedPrice:
        expected = self.expected_ratio(token_a, token_b)
        if not is_positive(scaled):
            return self._fallback(token_a, token_b, scaled, "non_positive_price")

        reciprocal = Decimal(1) / scaled
        inverted = abs(scaled - expected) > abs(reciprocal - expected)
        price = reciprocal if inverted else scaled

        deviation = abs(price - expected) / expected
        if deviation > self.max_deviation:
            return self._fallback(
                token_a, token_b, scaled,
                f"deviation {deviation:.4f} exceeds {self.max_deviation}",
            )

        return self._build(
            token_a, token_b,
            NormalizationKind.INVERTED if inverted else NormalizationKind.NORMALIZED,
            price, expected, scaled,
        )

    def _fallback(self, token_a: str, token_b: str, scaled: Decimal, reason: str) -> NormalizedPrice:
        expected = self.expected_ratio(token_a, token_b)
        step = Decimal(self.rng.randint(-_JITTER_STEPS, _JITTER_STEPS)) / Decimal(_JITTER_STEPS)
        price = expected * (1 + step * self.fallback_jitter_pct)

        logger.warning(
            f"Price fallback {token_a}/{token_b}: {reason}",
            extra={"context": {
                "token_a": token_a,
                "token_b": token_b,
                "observed": str(scaled),
                "expected": str(expected),
                "substituted": str(price),
            }}
        )
        return self._build(token_a, token_b, NormalizationKind.FALLBACK, price, expected, scaled, reason)

    def _build(
        self,
        token_a: str,
        token_b: str,
        kind: NormalizationKind,
        price: Decimal,
        expected: Decimal,
        scaled: Decimal,
        reason: Optional[str] = None,
    ) -> NormalizedPrice:
        return NormalizedPrice(
            token_a=token_a,
            token_b=token_b,
            kind=kind,
            price=price,
            reverse_price=Decimal(1) / price,
            implied_usd_a=price * self.usd_price(token_b),
            implied_usd_b=self.usd_price(token_a) / price,
            expected_ratio=expected,
            scaled_input=scaled,
            reason=reason,
        )

    # -------------------------------------------------------------------------
    # Two-source spread helper
    # -------------------------------------------------------------------------

    def evaluate_spread(
        self,
        price_a: Decimal,
        price_b: Decimal,
        notional_usd: Decimal = C.DEFAULT_NOTIONAL_USD,
        source_a: str = "a",
        source_b: str = "b",
    ) -> SpreadEvaluation:
        """
        Compare two normalized prices for the same pair.

        Spread is |sell - buy| / mid * 100. Spreads under 0.01% are noise
        and spreads over 2% on a liquid pair are treated as bad data.
        """
        if price_a <= price_b:
            buy_source, buy, sell_source, sell = source_a, price_a, source_b, price_b
        else:
            buy_source, buy, sell_source, sell = source_b, price_b, source_a, price_a

        if not is_positive(buy):
            return SpreadEvaluation(False, ErrorCode.PRICE_ZERO, buy_source, sell_source, buy, sell, ZERO)

        mid = (buy + sell) / 2
        spread_pct = abs(sell - buy) / mid * 100

        if spread_pct < C.SPREAD_HELPER_MIN_PCT:
            return SpreadEvaluation(False, ErrorCode.SPREAD_TOO_SMALL, buy_source, sell_source, buy, sell, spread_pct)
        if spread_pct > C.SPREAD_HELPER_MAX_PCT:
            return SpreadEvaluation(False, ErrorCode.SPREAD_TOO_LARGE, buy_source, sell_source, buy, sell, spread_pct)

        gross = notional_usd * spread_pct / 100
        fees = FeeBreakdown(
            swap_fees_usd=notional_usd * C.SPREAD_HELPER_FEE_RATE,
            gas_cost_usd=C.SPREAD_HELPER_GAS_USD,
        )
        net = gross - fees.total_usd
        profitable = net > C.SPREAD_HELPER_MIN_NET_USD
        return SpreadEvaluation(
            profitable=profitable,
            reason=None if profitable else ErrorCode.PROFIT_BELOW_THRESHOLD,
            buy_source=buy_source,
            sell_source=sell_source,
            buy_price=buy,
            sell_price=sell,
            spread_pct=spread_pct,
            gross_profit_usd=gross,
            fees=fees,
        )
