"""
tests/unit/test_normalizer.py - Tests for pricing/normalizer.py

Covers:
- Decimal scaling between tokens of different precision
- Inverted quote detection
- Fallback substitution with bounded jitter
- Two-source spread helper
"""

import random
from decimal import Decimal

import pytest

from core.constants import NormalizationKind
from core.exceptions import ErrorCode, UnsupportedTokenError
from pricing.normalizer import PriceNormalizer


@pytest.fixture
def normalizer(tokens):
    return PriceNormalizer(tokens, rng=random.Random(7))


class TestScaling:

    def test_weth_usdt_raw_ratio(self, normalizer):
        """Raw 2650 * 10^12 is 2650 USDT per WETH."""
        result = normalizer.normalize("WETH", "USDT", Decimal(2650) * Decimal(10) ** 12)
        assert result.kind == NormalizationKind.NORMALIZED
        assert result.price == Decimal("2650")
        assert result.reverse_price == Decimal(1) / Decimal("2650")
        assert result.implied_usd_a == Decimal("2650")

    @pytest.mark.parametrize("token_a,token_b", [
        ("WETH", "USDT"),
        ("USDT", "WETH"),
        ("WBTC", "USDC"),
        ("USDC", "WBTC"),
        ("AAVE", "WETH"),
        ("WETH", "AAVE"),
        ("WBTC", "WETH"),
        ("AAVE", "USDC"),
    ])
    def test_reverse_is_reciprocal_across_decimals(self, normalizer, tokens, token_a, token_b):
        shift = tokens.decimals(token_a) - tokens.decimals(token_b)
        quoted = normalizer.expected_ratio(token_a, token_b) * Decimal("1.01")
        result = normalizer.normalize(token_a, token_b, quoted * Decimal(10) ** shift)

        assert result.kind == NormalizationKind.NORMALIZED
        assert abs(result.price - quoted) / quoted < Decimal("1E-20")
        assert result.reverse_price == Decimal(1) / result.price
        assert abs(result.price * result.reverse_price - 1) < Decimal("1E-20")

    def test_same_decimals_unchanged(self, normalizer):
        result = normalizer.normalize("USDC", "USDT", Decimal("1.001"))
        assert result.price == Decimal("1.001")

    def test_int_and_str_input(self, normalizer):
        assert normalizer.normalize("USDC", "USDT", "1").price == Decimal("1")
        assert normalizer.normalize("USDC", "USDT", 1).price == Decimal("1")

    def test_unknown_token_raises(self, normalizer):
        with pytest.raises(UnsupportedTokenError):
            normalizer.normalize("WETH", "PEPE", Decimal("1"))


class TestInversion:

    def test_inverted_quote_is_reciprocated(self, normalizer):
        """A USDT-per-WETH pool reporting WETH per USDT."""
        raw = (Decimal(1) / Decimal("2650")) * Decimal(10) ** 12
        result = normalizer.normalize("WETH", "USDT", raw)
        assert result.kind == NormalizationKind.INVERTED
        assert result.was_inverted
        assert abs(result.price - Decimal("2650")) < Decimal("0.000001")

    def test_normalize_scaled_skips_decimal_shift(self, normalizer):
        result = normalizer.normalize_scaled("WETH", "USDT", Decimal("2660"))
        assert result.kind == NormalizationKind.NORMALIZED
        assert result.price == Decimal("2660")


class TestFallback:

    def test_far_off_price_is_replaced(self, normalizer):
        result = normalizer.normalize_scaled("WETH", "USDT", Decimal("100"))
        assert result.kind == NormalizationKind.FALLBACK
        assert result.is_synthetic
        assert result.scaled_input == Decimal("100")
        assert "deviation" in result.reason
        # Reference 2650 with at most 2% jitter
        assert Decimal("2597") <= result.price <= Decimal("2703")

    def test_zero_price(self, normalizer):
        result = normalizer.normalize("WETH", "USDT", Decimal("0"))
        assert result.kind == NormalizationKind.FALLBACK
        assert result.reason == "non_positive_price"

    def test_non_finite_price(self, normalizer):
        result = normalizer.normalize_scaled("WETH", "USDT", Decimal("Infinity"))
        assert result.reason == "non_finite_price"

    def test_seeded_jitter_is_reproducible(self, tokens):
        a = PriceNormalizer(tokens, rng=random.Random(1)).normalize_scaled("WETH", "USDT", Decimal("1"))
        b = PriceNormalizer(tokens, rng=random.Random(1)).normalize_scaled("WETH", "USDT", Decimal("1"))
        assert a.price == b.price

    def test_zero_jitter_returns_reference(self, tokens):
        normalizer = PriceNormalizer(tokens, fallback_jitter_pct=Decimal("0"))
        result = normalizer.normalize_scaled("WETH", "USDT", Decimal("5"))
        assert result.price == Decimal("2650")

    def test_reference_update_moves_fallback(self, normalizer):
        normalizer.update_usd_prices({"WETH": Decimal("3000")})
        assert normalizer.expected_ratio("WETH", "USDT") == Decimal("3000")
        assert normalizer.normalize_scaled("WETH", "USDT", Decimal("2990")).kind == NormalizationKind.NORMALIZED


class TestEvaluateSpread:

    def test_orders_buy_and_sell(self, normalizer):
        result = normalizer.evaluate_spread(Decimal("2660"), Decimal("2645"), source_a="x", source_b="y")
        assert result.buy_source == "y"
        assert result.sell_source == "x"

    def test_noise_spread(self, normalizer):
        result = normalizer.evaluate_spread(Decimal("2650"), Decimal("2650.1"))
        assert not result.profitable
        assert result.reason == ErrorCode.SPREAD_TOO_SMALL

    def test_implausible_spread(self, normalizer):
        result = normalizer.evaluate_spread(Decimal("2600"), Decimal("2700"))
        assert result.reason == ErrorCode.SPREAD_TOO_LARGE

    def test_fees_dominate_small_notional(self, normalizer):
        result = normalizer.evaluate_spread(Decimal("2640"), Decimal("2680"))
        assert not result.profitable
        assert result.reason == ErrorCode.PROFIT_BELOW_THRESHOLD
        assert result.fees.gas_cost_usd == Decimal("50")
        assert result.net_profit_usd == result.gross_profit_usd - result.fees.total_usd

    def test_zero_buy_price(self, normalizer):
        result = normalizer.evaluate_spread(Decimal("0"), Decimal("2650"))
        assert result.reason == ErrorCode.PRICE_ZERO
