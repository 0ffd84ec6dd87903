"""
tests/unit/test_price_cache.py - Tests for pricing/cache.py
"""

import threading
from decimal import Decimal

from core.constants import NormalizationKind

from tests.conftest import NOW_MS, make_observation


class TestWrites:

    def test_update_and_get(self, price_cache):
        obs = make_observation("uniswap_v3", "WETH", "USDT", "2650")
        assert price_cache.update(obs)
        assert price_cache.get("uniswap_v3", "WETH", "USDT", 500) is obs
        assert len(price_cache) == 1

    def test_last_write_wins_by_timestamp(self, price_cache):
        newer = make_observation("uniswap_v3", "WETH", "USDT", "2651", timestamp_ms=NOW_MS + 10)
        older = make_observation("uniswap_v3", "WETH", "USDT", "2649", timestamp_ms=NOW_MS)
        price_cache.update(newer)
        assert not price_cache.update(older)
        assert price_cache.get("uniswap_v3", "WETH", "USDT", 500).price == Decimal("2651")
        assert price_cache.ignored_updates == 1

    def test_same_timestamp_replaces(self, price_cache):
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2650"))
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2652"))
        assert price_cache.get("uniswap_v3", "WETH", "USDT", 500).price == Decimal("2652")

    def test_history_is_bounded(self, venues):
        from pricing.cache import PriceCache

        cache = PriceCache(history_size=3, venue_priority=venues.priorities())
        for i in range(5):
            cache.update(make_observation("uniswap_v3", "WETH", "USDT", str(2650 + i), timestamp_ms=NOW_MS + i))
        history = cache.history("uniswap_v3", "WETH", "USDT", 500)
        assert [o.price for o in history] == [Decimal("2652"), Decimal("2653"), Decimal("2654")]
        assert len(cache.history("uniswap_v3", "WETH", "USDT", 500, limit=1)) == 1

    def test_cleanup(self, price_cache):
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2650", timestamp_ms=NOW_MS - 10_000))
        price_cache.update(make_observation("sushiswap_v3", "WETH", "USDT", "2651", timestamp_ms=NOW_MS))
        removed = price_cache.cleanup(max_age_ms=5_000, current_ms=NOW_MS)
        assert removed == 1
        assert price_cache.get("uniswap_v3", "WETH", "USDT", 500) is None
        assert price_cache.history("uniswap_v3", "WETH", "USDT", 500) == []

    def test_clear(self, price_cache):
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2650"))
        price_cache.clear()
        assert len(price_cache) == 0


class TestReads:

    def test_get_prefers_fee_tier_order(self, price_cache):
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2651", fee_tier=3000))
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2650", fee_tier=500))
        assert price_cache.get("uniswap_v3", "WETH", "USDT").fee_tier == 500

    def test_get_constant_fee_key(self, price_cache):
        price_cache.update(make_observation("uniswap_v2", "WETH", "USDT", "2650", fee_tier=None))
        assert price_cache.get("uniswap_v2", "WETH", "USDT").venue == "uniswap_v2"

    def test_quotes_reciprocate_reverse_entries(self, price_cache):
        price_cache.update(make_observation("uniswap_v3", "USDT", "WETH", "0.0004"))
        quotes = price_cache.quotes("WETH", "USDT")
        assert len(quotes) == 1
        assert quotes[0].price == Decimal("2500")

    def test_quotes_skip_stale(self, price_cache):
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2650", timestamp_ms=NOW_MS - 31_000))
        assert price_cache.quotes("WETH", "USDT", max_age_ms=30_000, current_ms=NOW_MS) == []
        assert len(price_cache.quotes("WETH", "USDT", current_ms=NOW_MS)) == 1

    def test_quotes_skip_synthetic_unless_allowed(self, price_cache):
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2650", kind=NormalizationKind.FALLBACK))
        assert price_cache.quotes("WETH", "USDT") == []
        assert len(price_cache.quotes("WETH", "USDT", include_synthetic=True)) == 1

    def test_quotes_skip_non_positive(self, price_cache):
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "0"))
        assert price_cache.quotes("WETH", "USDT") == []

    def test_is_stale(self, price_cache):
        obs = make_observation("uniswap_v3", "WETH", "USDT", "2650", timestamp_ms=NOW_MS)
        assert not price_cache.is_stale(obs, 30_000, current_ms=NOW_MS + 30_000)
        assert price_cache.is_stale(obs, 30_000, current_ms=NOW_MS + 30_001)


class TestBestPrice:

    def test_highest_price_wins(self, price_cache):
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2650"))
        price_cache.update(make_observation("sushiswap_v3", "WETH", "USDT", "2655"))
        best = price_cache.best_price("WETH", "USDT")
        assert best.price == Decimal("2655")
        assert best.venue == "sushiswap_v3"

    def test_tie_goes_to_venue_priority(self, price_cache):
        price_cache.update(make_observation("sushiswap_v3", "WETH", "USDT", "2650"))
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2650"))
        assert price_cache.best_price("WETH", "USDT").venue == "uniswap_v3"

    def test_tie_on_same_venue_goes_to_fee_tier(self, price_cache):
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2650", fee_tier=3000))
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2650", fee_tier=500))
        assert price_cache.best_price("WETH", "USDT").observation.fee_tier == 500

    def test_no_quotes(self, price_cache):
        assert price_cache.best_price("WETH", "USDT") is None


class TestStats:

    def test_price_difference(self, price_cache):
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2640"))
        price_cache.update(make_observation("sushiswap_v3", "WETH", "USDT", "2700"))
        diff = price_cache.calculate_price_difference("WETH", "USDT", "uniswap_v3", "sushiswap_v3")
        assert diff.quantize(Decimal("0.0001")) == Decimal("2.2727")

    def test_price_difference_missing_venue(self, price_cache):
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2640"))
        assert price_cache.calculate_price_difference("WETH", "USDT", "uniswap_v3", "uniswap_v2") is None

    def test_stats_counts(self, price_cache):
        price_cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2650"))
        price_cache.update(make_observation("sushiswap_v3", "WETH", "USDT", "2650", kind=NormalizationKind.FALLBACK))
        stats = price_cache.stats()
        assert stats["total_prices"] == 2
        assert stats["synthetic_prices"] == 1
        assert stats["by_pair"] == {"WETH-USDT": 2}

    def test_stats_last_update_follows_clock(self, venues, clock):
        from pricing.cache import PriceCache

        cache = PriceCache(venue_priority=venues.priorities(), clock=clock)
        assert cache.stats()["last_update_ms"] is None
        cache.update(make_observation("uniswap_v3", "WETH", "USDT", "2650"))
        clock.advance(250)
        cache.update(make_observation("sushiswap_v3", "WETH", "USDT", "2651"))
        assert cache.stats()["last_update_ms"] == NOW_MS + 250


class TestConcurrency:

    WRITERS = 4
    ROUNDS = 200
    VENUES = ("uniswap_v3", "sushiswap_v3")

    @staticmethod
    def _price_for(timestamp_ms: int) -> Decimal:
        return Decimal(2600) + Decimal(timestamp_ms - NOW_MS) / 100

    def test_interleaved_writers_and_readers(self, price_cache):
        """Readers only ever see whole observations; the newest write wins."""
        problems = []
        writers_done = threading.Event()

        def write(offset):
            for i in range(self.ROUNDS):
                ts = NOW_MS + i * self.WRITERS + offset
                for venue in self.VENUES:
                    price_cache.update(make_observation(venue, "WETH", "USDT", self._price_for(ts), timestamp_ms=ts))

        def read():
            while not writers_done.is_set():
                snapshot = price_cache.snapshot()
                if len(snapshot) > len(self.VENUES):
                    problems.append(f"snapshot has {len(snapshot)} keys")
                for obs in snapshot.values():
                    if obs.price != self._price_for(obs.timestamp_ms):
                        problems.append(f"torn observation {obs.timestamp_ms} {obs.price}")
                for quote in price_cache.quotes("WETH", "USDT", current_ms=NOW_MS):
                    if quote.price != self._price_for(quote.observation.timestamp_ms):
                        problems.append(f"torn quote {quote.observation.timestamp_ms}")

        readers = [threading.Thread(target=read) for _ in range(2)]
        writers = [threading.Thread(target=write, args=(t,)) for t in range(self.WRITERS)]
        for thread in readers + writers:
            thread.start()
        for thread in writers:
            thread.join()
        writers_done.set()
        for thread in readers:
            thread.join()

        assert problems == []
        newest = NOW_MS + (self.ROUNDS - 1) * self.WRITERS + self.WRITERS - 1
        for venue in self.VENUES:
            obs = price_cache.get(venue, "WETH", "USDT", 500)
            assert obs.timestamp_ms == newest
            assert obs.price == self._price_for(newest)
        total_writes = self.WRITERS * self.ROUNDS * len(self.VENUES)
        assert price_cache.updates + price_cache.ignored_updates == total_writes
