"""
tests/unit/test_scanner.py - Tests for strategy/scanner.py

Covers:
- Simple two-venue evaluation and its rejection reasons
- Triangular cycles
- Deterministic tie-breaks
- Scan isolation, candidate identity, expiry and revalidation
"""

from decimal import Decimal

import pytest

from core.constants import NormalizationKind, OpportunityStatus, OpportunityType
from core.exceptions import ErrorCode
from strategy.scanner import ArbitrageScanner, simple_key, triangular_key

from tests.conftest import NOW_MS, make_observation


@pytest.fixture
def scanner(price_cache, calculator, tokens, config, clock):
    return ArbitrageScanner(price_cache, calculator, tokens, config, clock=clock)


def _seed(cache, *entries):
    for venue, a, b, price, *rest in entries:
        fee_tier = rest[0] if rest else 500
        cache.update(make_observation(venue, a, b, price, fee_tier=fee_tier))


def _q(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.0001"))


TRIANGLE = (
    ("uniswap_v3", "USDC", "WETH", "0.00038"),
    ("uniswap_v3", "WETH", "AAVE", "16.5"),
    ("uniswap_v3", "AAVE", "USDC", "160"),
)


class TestSimple:

    def test_thin_spread_rejected_on_profit(self, scanner, price_cache):
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2645"), ("sushiswap_v3", "WETH", "USDT", "2660"))
        evaluation = scanner.evaluate_simple("WETH", "USDT")
        assert not evaluation.accepted
        assert evaluation.reason == ErrorCode.PROFIT_BELOW_THRESHOLD
        candidate = evaluation.candidate
        assert candidate.status == OpportunityStatus.UNPROFITABLE
        assert _q(candidate.spread_pct) == Decimal("0.5671")
        assert _q(candidate.net_profit_usd) == Decimal("-15.3289")
        assert candidate.buy_venue == "uniswap_v3"
        assert candidate.sell_venue == "sushiswap_v3"

    def test_two_percent_spread_still_below_fifty_usd(self, scanner, price_cache):
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2640"), ("sushiswap_v3", "WETH", "USDT", "2700"))
        evaluation = scanner.evaluate_simple("WETH", "USDT")
        assert evaluation.reason == ErrorCode.PROFIT_BELOW_THRESHOLD
        assert _q(evaluation.candidate.net_profit_usd) == Decimal("1.7273")

    def test_accepted_with_lower_threshold(self, scanner, price_cache, config):
        config.thresholds.min_profit_usd = Decimal("1")
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2640"), ("sushiswap_v3", "WETH", "USDT", "2700"))
        evaluation = scanner.evaluate_simple("WETH", "USDT")
        assert evaluation.accepted
        assert evaluation.reason is None
        assert evaluation.candidate.status == OpportunityStatus.DETECTED
        assert evaluation.candidate.kind == OpportunityType.SIMPLE
        assert evaluation.candidate.created_at_ms == NOW_MS

    def test_spread_below_minimum(self, scanner, price_cache):
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2650"), ("sushiswap_v3", "WETH", "USDT", "2655"))
        evaluation = scanner.evaluate_simple("WETH", "USDT")
        assert evaluation.reason == ErrorCode.SPREAD_TOO_SMALL
        assert evaluation.candidate is None

    def test_equal_prices(self, scanner, price_cache):
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2650"), ("sushiswap_v3", "WETH", "USDT", "2650"))
        assert scanner.evaluate_simple("WETH", "USDT").reason == ErrorCode.SPREAD_TOO_SMALL

    def test_single_quote_is_missing(self, scanner, price_cache):
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2650"))
        assert scanner.evaluate_simple("WETH", "USDT").reason == ErrorCode.PRICE_MISSING

    def test_both_orientations_of_one_pool(self, scanner, price_cache):
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2640"), ("uniswap_v3", "USDT", "WETH", "0.00037"))
        assert scanner.evaluate_simple("WETH", "USDT").reason == ErrorCode.SAME_POOL

    def test_reverse_stored_quote_is_used(self, scanner, price_cache, config):
        config.thresholds.min_profit_usd = Decimal("0")
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2640"), ("sushiswap_v3", "USDT", "WETH", "0.00037"))
        evaluation = scanner.evaluate_simple("WETH", "USDT")
        assert evaluation.accepted
        assert evaluation.candidate.sell_venue == "sushiswap_v3"
        assert evaluation.candidate.sell_price == Decimal(1) / Decimal("0.00037")

    def test_stale_quotes_ignored(self, scanner, price_cache, clock):
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2640"), ("sushiswap_v3", "WETH", "USDT", "2700"))
        clock.advance(30_001)
        assert scanner.evaluate_simple("WETH", "USDT").reason == ErrorCode.PRICE_MISSING

    def test_synthetic_quotes_ignored_unless_allowed(self, scanner, price_cache, config):
        config.thresholds.min_profit_usd = Decimal("0")
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2640"))
        price_cache.update(make_observation("sushiswap_v3", "WETH", "USDT", "2700", kind=NormalizationKind.FALLBACK))
        assert scanner.evaluate_simple("WETH", "USDT").reason == ErrorCode.PRICE_MISSING
        config.thresholds.allow_synthetic_prices = True
        assert scanner.evaluate_simple("WETH", "USDT").accepted


class TestTieBreak:

    def test_buy_tie_goes_to_priority_venue(self, scanner, price_cache, config):
        config.thresholds.min_profit_usd = Decimal("0")
        _seed(
            price_cache,
            ("sushiswap_v3", "WETH", "USDT", "2640"),
            ("uniswap_v3", "WETH", "USDT", "2640"),
            ("uniswap_v2", "WETH", "USDT", "2700", None),
        )
        candidate = scanner.evaluate_simple("WETH", "USDT").candidate
        assert candidate.buy_venue == "uniswap_v3"
        assert candidate.sell_venue == "uniswap_v2"
        assert candidate.sell_fee_tier is None
        assert candidate.key == simple_key("WETH", "USDT", "uniswap_v3", "uniswap_v2")

    def test_same_venue_tie_goes_to_fee_tier(self, scanner, price_cache, config):
        config.thresholds.min_profit_usd = Decimal("0")
        _seed(
            price_cache,
            ("uniswap_v3", "WETH", "USDT", "2640", 3000),
            ("uniswap_v3", "WETH", "USDT", "2640", 500),
            ("sushiswap_v3", "WETH", "USDT", "2700"),
        )
        assert scanner.evaluate_simple("WETH", "USDT").candidate.buy_fee_tier == 500

    def test_repeatable(self, scanner, price_cache, config):
        config.thresholds.min_profit_usd = Decimal("0")
        _seed(
            price_cache,
            ("uniswap_v3", "WETH", "USDT", "2700"),
            ("sushiswap_v3", "WETH", "USDT", "2700"),
            ("uniswap_v2", "WETH", "USDT", "2640", None),
        )
        first = scanner.evaluate_simple("WETH", "USDT").candidate
        second = scanner.evaluate_simple("WETH", "USDT").candidate
        assert first.sell_venue == second.sell_venue == "uniswap_v3"


class TestTriangular:

    def test_rate_below_threshold(self, scanner, price_cache):
        _seed(price_cache, *TRIANGLE)
        evaluation = scanner.evaluate_triangular(("USDC", "WETH", "AAVE"))
        assert evaluation.reason == ErrorCode.RATE_BELOW_THRESHOLD

    def test_costs_exceed_cycle_gain(self, scanner, price_cache, config):
        config.thresholds.min_profit_rate = Decimal("0")
        config.gas.triangular_swap_limit = 200_000
        _seed(price_cache, *TRIANGLE)
        evaluation = scanner.evaluate_triangular(("USDC", "WETH", "AAVE"))
        assert evaluation.reason == ErrorCode.PROFIT_BELOW_THRESHOLD
        candidate = evaluation.candidate
        assert candidate.compounded_rate == Decimal("1.0032")
        assert candidate.gross_profit_usd == Decimal("3.2")
        assert candidate.fees.swap_fees_usd == Decimal("9")
        assert candidate.fees.gas_cost_usd == Decimal("20")
        assert candidate.net_profit_usd == Decimal("-25.8")
        assert candidate.key == triangular_key(("USDC", "WETH", "AAVE"))

    def test_legs_chain_amounts(self, scanner, price_cache, config):
        config.thresholds.min_profit_rate = Decimal("0")
        _seed(price_cache, *TRIANGLE)
        legs = scanner.evaluate_triangular(("USDC", "WETH", "AAVE")).candidate.legs
        assert [(leg.token_in, leg.token_out) for leg in legs] == [
            ("USDC", "WETH"), ("WETH", "AAVE"), ("AAVE", "USDC"),
        ]
        assert legs[0].amount_in == Decimal("1000")
        assert legs[1].amount_in == Decimal("0.38")
        assert legs[2].amount_in == Decimal("6.27")

    def test_missing_hop(self, scanner, price_cache):
        _seed(price_cache, *TRIANGLE[:2])
        assert scanner.evaluate_triangular(("USDC", "WETH", "AAVE")).reason == ErrorCode.PRICE_MISSING


class TestScan:

    def test_scan_counts_rejections(self, scanner, price_cache):
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2645"), ("sushiswap_v3", "WETH", "USDT", "2660"))
        report = scanner.scan()
        assert report.candidates == []
        assert report.rejections == {"PROFIT_BELOW_THRESHOLD": 1, "PRICE_MISSING": 1}
        assert scanner.get_stats()["total_scans"] == 1

    def test_failing_evaluation_does_not_abort(self, scanner, price_cache, config):
        """A path through an unregistered token raises inside the evaluation."""
        config.thresholds.min_profit_usd = Decimal("0")
        config.triangular_paths = [("PEPE", "WETH", "USDT")]
        _seed(
            price_cache,
            ("uniswap_v3", "WETH", "USDT", "2640"),
            ("sushiswap_v3", "WETH", "USDT", "2700"),
            ("uniswap_v3", "PEPE", "WETH", "1"),
            ("uniswap_v3", "USDT", "PEPE", "0.01"),
        )
        report = scanner.scan()
        assert report.errors == 1
        assert len(report.candidates) == 1
        assert scanner.get_stats()["evaluation_errors"] == 1

    def test_rescan_keeps_identity(self, scanner, price_cache, config, clock):
        config.thresholds.min_profit_usd = Decimal("0")
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2640"), ("sushiswap_v3", "WETH", "USDT", "2700"))
        first = scanner.scan().candidates[0]
        clock.advance(1_000)
        second = scanner.scan().candidates[0]
        assert second.id == first.id
        assert second.created_at_ms == NOW_MS
        stats = scanner.get_stats()
        assert stats["opportunities_found"] == 1
        assert stats["simple_found"] == 1
        assert stats["profitable_opportunities"] == 1
        assert stats["active_opportunities"] == 1

    def test_queries(self, scanner, price_cache, config):
        config.thresholds.min_profit_usd = Decimal("0")
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2640"), ("sushiswap_v3", "WETH", "USDT", "2700"))
        scanner.scan()
        assert scanner.best_opportunity().key == simple_key("WETH", "USDT", "uniswap_v3", "sushiswap_v3")
        assert len(scanner.opportunities_for_pair("USDT", "WETH")) == 1
        assert scanner.opportunities_for_pair("WBTC", "WETH") == []

    def test_expire(self, scanner, price_cache, config):
        config.thresholds.min_profit_usd = Decimal("0")
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2640"), ("sushiswap_v3", "WETH", "USDT", "2700"))
        scanner.scan()
        assert scanner.expire(max_age_ms=1_000, current_ms=NOW_MS + 500) == []
        expired = scanner.expire(max_age_ms=1_000, current_ms=NOW_MS + 2_000)
        assert len(expired) == 1
        assert expired[0].status == OpportunityStatus.EXPIRED
        assert scanner.best_opportunity() is None
        assert scanner.get_stats()["expired"] == 1

    def test_rejection_stamped_with_scan_clock(self, scanner, price_cache, clock):
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2645"), ("sushiswap_v3", "WETH", "USDT", "2660"))
        clock.advance(250)
        rejected = scanner.evaluate_simple("WETH", "USDT").candidate
        assert rejected.status_history[-1].timestamp_ms == NOW_MS + 250
        assert rejected.updated_at_ms == NOW_MS + 250

    def test_expiry_stamped_with_given_time(self, scanner, price_cache, config):
        config.thresholds.min_profit_usd = Decimal("0")
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2640"), ("sushiswap_v3", "WETH", "USDT", "2700"))
        scanner.scan()
        expired = scanner.expire(max_age_ms=1_000, current_ms=NOW_MS + 2_000)
        assert expired[0].status_history[-1].timestamp_ms == NOW_MS + 2_000
        assert expired[0].updated_at_ms == NOW_MS + 2_000

    def test_validate_detects_moved_market(self, scanner, price_cache, config):
        config.thresholds.min_profit_usd = Decimal("0")
        _seed(price_cache, ("uniswap_v3", "WETH", "USDT", "2640"), ("sushiswap_v3", "WETH", "USDT", "2700"))
        candidate = scanner.scan().candidates[0]
        assert scanner.validate(candidate).accepted

        _seed(price_cache, ("uniswap_v2", "WETH", "USDT", "2720", None))
        evaluation = scanner.validate(candidate)
        assert not evaluation.accepted
        assert evaluation.reason == ErrorCode.PRICE_STALE
