"""
tests/integration/test_pipeline.py - End-to-end monitor runs with fake venues.

Poll -> normalize -> cache -> scan -> simulate -> store, with every
external call replaced by an in-memory fake.
"""

import random
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.constants import OpportunityStatus
from core.exceptions import StoreError
from core.models import PoolState
from execution.quoting import PriceModelQuoter
from execution.simulator import TradeSimulator
from pricing.cache import PriceCache
from pricing.normalizer import PriceNormalizer
from pricing.poller import PricePoller
from storage.store import JsonlOpportunityStore, OpportunityFilter
from strategy.monitor import ArbitrageMonitor, build_monitor
from strategy.scanner import ArbitrageScanner, simple_key

pytestmark = pytest.mark.integration


class StaticSource:
    """Venue returning fixed whole-unit prices."""

    def __init__(self, venue, prices):
        self.venue = venue
        self.prices = prices

    async def get_pool_state(self, token_a, token_b, fee_tier):
        price = self.prices.get((token_a, token_b, fee_tier))
        if price is None:
            return None
        return PoolState(Decimal(price), 10**18, 100, decimals_adjusted=True)


@pytest.fixture
def sources():
    return {
        "uniswap_v3": StaticSource("uniswap_v3", {("WETH", "USDT", 500): "2640"}),
        "sushiswap_v3": StaticSource("sushiswap_v3", {("WETH", "USDT", 500): "2700"}),
    }


@pytest.fixture
def pipeline(sources, venues, tokens, config, gas_cache, calculator, clock, tmp_path):
    config.thresholds.min_profit_usd = Decimal("1")
    config.intervals.price_update_ms = 10
    config.intervals.scan_ms = 10
    config.intervals.health_ms = 50
    config.intervals.gas_refresh_s = 1

    price_cache = PriceCache(venue_priority=venues.priorities(), clock=clock)
    normalizer = PriceNormalizer(tokens, rng=random.Random(0))
    poller = PricePoller(sources, venues, normalizer, price_cache, config.pairs, timeout_s=1.0, clock=clock)
    scanner = ArbitrageScanner(price_cache, calculator, tokens, config, clock=clock)
    quoter = PriceModelQuoter(price_cache, tokens, venues, clock=clock)
    simulator = TradeSimulator(quoter, gas_cache, tokens, config, clock=clock)
    store = JsonlOpportunityStore(tmp_path, session_id="it", clock=clock)

    def build(**overrides):
        parts = dict(
            config=config,
            cache=price_cache,
            poller=poller,
            gas_cache=gas_cache,
            scanner=scanner,
            simulator=simulator,
            store=store,
        )
        parts.update(overrides)
        return ArbitrageMonitor(**parts)

    return build


class TestRunOnce:

    @pytest.mark.asyncio
    async def test_detects_simulates_and_stores(self, pipeline):
        monitor = pipeline()
        summary = await monitor.run_once()

        assert summary["monitor"]["poll_ticks"] == 1
        assert summary["scanner"]["opportunities_found"] == 1
        assert summary["monitor"]["simulated"] == 1
        assert summary["price_cache"]["total_prices"] == 2

        key = simple_key("WETH", "USDT", "uniswap_v3", "sushiswap_v3")
        candidate = monitor.scanner.best_opportunity()
        assert candidate.key == key
        # Net after two 0.05% tier fees and $30 of gas is negative
        assert candidate.status == OpportunityStatus.UNPROFITABLE
        assert candidate.simulation.success

        record = monitor.store.get(candidate.id)
        assert record["status"] == "unprofitable"
        assert record["simulation"]["success"] is True
        assert summary["store"]["simulated"] == 1

    @pytest.mark.asyncio
    async def test_closes_provider(self, pipeline):
        provider = AsyncMock()
        monitor = pipeline(provider=provider)
        await monitor.run_once()
        provider.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_store_failure_is_not_fatal(self, pipeline):
        store = MagicMock()
        store.upsert.side_effect = StoreError("disk full")
        store.aggregate_stats.return_value = {}
        monitor = pipeline(store=store)

        summary = await monitor.run_once()
        assert summary["monitor"]["store_errors"] == 1
        assert summary["monitor"]["simulated"] == 1
        store.mark_simulated.assert_called_once()

    @pytest.mark.asyncio
    async def test_nothing_to_do_without_prices(self, pipeline, venues, tokens, config, clock):
        monitor = pipeline()
        monitor.poller = PricePoller({}, venues, PriceNormalizer(tokens), monitor.cache, config.pairs, clock=clock)
        summary = await monitor.run_once()
        assert summary["scanner"]["opportunities_found"] == 0
        assert summary["monitor"]["simulated"] == 0


class TestLoops:

    @pytest.mark.asyncio
    async def test_run_drains_queue_on_stop(self, pipeline):
        monitor = pipeline()
        await monitor.run(duration_s=0.2)

        stats = monitor.stats
        assert stats["poll_ticks"] >= 1
        assert stats["scan_ticks"] >= 1
        assert stats["queued"] >= 1
        assert stats["simulated"] == stats["queued"]
        assert monitor.queue.empty()
        assert not monitor.running

    @pytest.mark.asyncio
    async def test_failing_tick_does_not_stop_other_loops(self, pipeline):
        poller = MagicMock()
        poller.poll_once = AsyncMock(side_effect=RuntimeError("boom"))
        monitor = pipeline(poller=poller)
        await monitor.run(duration_s=0.1)

        assert monitor.stats["tick_errors"] >= 1
        assert monitor.stats["scan_ticks"] >= 1

    @pytest.mark.asyncio
    async def test_request_stop_ends_run(self, pipeline):
        import asyncio

        monitor = pipeline()
        task = asyncio.create_task(monitor.run())
        await asyncio.sleep(0.05)
        monitor.request_stop()
        await asyncio.wait_for(task, timeout=2)
        assert monitor.stats["poll_ticks"] >= 1

    @pytest.mark.asyncio
    async def test_stored_records_queryable(self, pipeline):
        monitor = pipeline()
        await monitor.run(duration_s=0.1)
        records = monitor.store.find_recent(OpportunityFilter(token="WETH"))
        assert len(records) == 1


def test_build_monitor_from_default_config(tmp_path):
    provider = AsyncMock()
    monitor = build_monitor(data_dir=tmp_path, env={}, notional_usd=Decimal("2500"), session_id="b", provider=provider)
    assert monitor.config.thresholds.notional_usd == Decimal("2500")
    assert monitor.provider is provider
    assert set(monitor.poller.sources) == {"uniswap_v3", "sushiswap_v3", "sushiswap_v2", "uniswap_v2"}
    assert monitor.store.journal_file.parent == tmp_path
