# PATH: pricing/cache.py
"""
Price cache.

Holds the latest PriceObservation per (venue, token_a, token_b, fee_tier)
plus a bounded history ring per key.

CONCURRENCY
===========
Writers (poll loop, possibly worker threads) serialize on a short lock and
swap in a new dict; observations are frozen. Readers take the current dict
reference without locking, so they never see a partial write. Writes are
last-write-wins by observation timestamp.
"""

import threading
from collections import deque
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Deque, Dict, Iterable, List, Mapping, Optional, Tuple

from core import constants as C
from core.logging import get_logger
from core.math import pct_change
from core.models import DirectedQuote, PriceObservation
from core.time import is_fresh, now_ms

logger = get_logger(__name__)

CacheKey = Tuple[str, str, str, Optional[int]]


@dataclass(frozen=True)
class BestPrice:
    """Highest quote for a pair across venues."""
    price: Decimal
    observation: PriceObservation

    @property
    def venue(self) -> str:
        return self.observation.venue


class PriceCache:
    """Latest observation per pool with history and staleness checks."""

    def __init__(
        self,
        history_size: int = C.PRICE_HISTORY_SIZE,
        fee_tier_preference: Iterable[int] = C.FEE_TIER_PREFERENCE,
        venue_priority: Optional[Mapping[str, int]] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.history_size = history_size
        self.fee_tier_preference = tuple(fee_tier_preference)
        self.venue_priority: Dict[str, int] = dict(venue_priority or {})
        self.clock = clock

        self._lock = threading.Lock()
        self._current: Dict[CacheKey, PriceObservation] = {}
        self._history: Dict[CacheKey, Deque[PriceObservation]] = {}
        self._updated_at: Dict[CacheKey, int] = {}

        self.updates = 0
        self.ignored_updates = 0

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def update(self, observation: PriceObservation) -> bool:
        """
        Upsert the observation for its key.

        Returns False (and keeps the current value) when the incoming
        observation is older than the one already stored.
        """
        key = observation.key
        with self._lock:
            existing = self._current.get(key)
            if existing is not None and observation.timestamp_ms < existing.timestamp_ms:
                self.ignored_updates += 1
                return False

            current = dict(self._current)
            current[key] = observation
            self._current = current

            history = self._history.get(key)
            if history is None:
                history = deque(maxlen=self.history_size)
                self._history[key] = history
            history.append(observation)
            self._updated_at[key] = self.clock()
            self.updates += 1
        return True

    def cleanup(self, max_age_ms: int = C.PRICE_CLEANUP_AGE_MS, current_ms: Optional[int] = None) -> int:
        """Drop observations older than max_age_ms. Returns the number removed."""
        now = self.clock() if current_ms is None else current_ms
        with self._lock:
            stale = [k for k, o in self._current.items() if now - o.timestamp_ms > max_age_ms]
            if not stale:
                return 0
            current = dict(self._current)
            for key in stale:
                current.pop(key, None)
                self._history.pop(key, None)
                self._updated_at.pop(key, None)
            self._current = current

        logger.debug(
            f"Price cache cleanup removed {len(stale)} entries",
            extra={"context": {"removed": len(stale), "max_age_ms": max_age_ms}}
        )
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._current = {}
            self._history.clear()
            self._updated_at.clear()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def snapshot(self) -> Dict[CacheKey, PriceObservation]:
        """Consistent copy of the current map."""
        return dict(self._current)

    def __len__(self) -> int:
        return len(self._current)

    def get(
        self,
        venue: str,
        token_a: str,
        token_b: str,
        fee_tier: Optional[int] = None,
    ) -> Optional[PriceObservation]:
        """
        Current observation for a pool.

        Without a fee tier, tiers are tried in preference order, then the
        constant-fee key, then any other tier on that venue.
        """
        current = self._current
        if fee_tier is not None:
            return current.get((venue, token_a, token_b, fee_tier))

        for tier in self.fee_tier_preference:
            found = current.get((venue, token_a, token_b, tier))
            if found is not None:
                return found
        found = current.get((venue, token_a, token_b, None))
        if found is not None:
            return found
        for (v, a, b, _), obs in sorted(current.items(), key=lambda kv: str(kv[0][3])):
            if (v, a, b) == (venue, token_a, token_b):
                return obs
        return None

    def history(
        self,
        venue: str,
        token_a: str,
        token_b: str,
        fee_tier: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[PriceObservation]:
        """Oldest-first history for one key."""
        with self._lock:
            entries = list(self._history.get((venue, token_a, token_b, fee_tier), ()))
        if limit is not None:
            entries = entries[-limit:]
        return entries

    @staticmethod
    def is_stale(
        observation: PriceObservation,
        max_age_ms: int = C.PRICE_MAX_AGE_MS,
        current_ms: Optional[int] = None,
    ) -> bool:
        """Older than max_age_ms at current_ms (wall clock when omitted)."""
        return not is_fresh(observation.timestamp_ms, max_age_ms, current_ms)

    def quotes(
        self,
        token_a: str,
        token_b: str,
        max_age_ms: Optional[int] = None,
        include_synthetic: bool = False,
        current_ms: Optional[int] = None,
    ) -> List[DirectedQuote]:
        """
        Every usable quote for the pair as token_b per token_a.

        Observations stored in the reverse direction are reciprocated.
        Stale, synthetic and non-positive prices are skipped.
        """
        now = self.clock() if current_ms is None else current_ms
        result = []
        for obs in self._current.values():
            if {obs.token_a, obs.token_b} != {token_a, token_b}:
                continue
            if obs.is_synthetic and not include_synthetic:
                continue
            if max_age_ms is not None and self.is_stale(obs, max_age_ms, now):
                continue
            if obs.price <= 0:
                continue
            price = obs.oriented(token_a, token_b)
            if price is None:
                continue
            result.append(DirectedQuote(price=price, observation=obs))
        result.sort(key=self.tie_break_key)
        return result

    def best_price(
        self,
        token_a: str,
        token_b: str,
        max_age_ms: Optional[int] = None,
        include_synthetic: bool = False,
        current_ms: Optional[int] = None,
    ) -> Optional[BestPrice]:
        """Highest token_b per token_a across venues; ties go to venue priority."""
        quotes = self.quotes(token_a, token_b, max_age_ms, include_synthetic, current_ms)
        if not quotes:
            return None
        best = quotes[0]
        for quote in quotes[1:]:
            if quote.price > best.price:
                best = quote
        return BestPrice(price=best.price, observation=best.observation)

    def tie_break_key(self, quote: DirectedQuote) -> Tuple[int, int, str]:
        """Deterministic ordering: venue priority, then fee-tier preference."""
        priority = self.venue_priority.get(quote.venue, len(self.venue_priority))
        tier = quote.fee_tier
        if tier in self.fee_tier_preference:
            tier_rank = self.fee_tier_preference.index(tier)
        else:
            tier_rank = len(self.fee_tier_preference)
        return (priority, tier_rank, quote.pool_id)

    def calculate_price_difference(
        self,
        token_a: str,
        token_b: str,
        venue_a: str,
        venue_b: str,
    ) -> Optional[Decimal]:
        """Percent by which venue_b's price exceeds venue_a's, or None."""
        obs_a = self.get(venue_a, token_a, token_b) or self.get(venue_a, token_b, token_a)
        obs_b = self.get(venue_b, token_a, token_b) or self.get(venue_b, token_b, token_a)
        if obs_a is None or obs_b is None:
            return None
        price_a = obs_a.oriented(token_a, token_b)
        price_b = obs_b.oriented(token_a, token_b)
        if not price_a or not price_b:
            return None
        return pct_change(price_a, price_b)

    def stats(self) -> Dict[str, object]:
        """Counts by venue and by pair."""
        current = self._current
        with self._lock:
            last_update = max(self._updated_at.values(), default=None)
        by_venue: Dict[str, int] = {}
        by_pair: Dict[str, int] = {}
        synthetic = 0
        for obs in current.values():
            by_venue[obs.venue] = by_venue.get(obs.venue, 0) + 1
            pair = f"{obs.token_a}-{obs.token_b}"
            by_pair[pair] = by_pair.get(pair, 0) + 1
            if obs.is_synthetic:
                synthetic += 1
        return {
            "total_prices": len(current),
            "synthetic_prices": synthetic,
            "updates": self.updates,
            "ignored_updates": self.ignored_updates,
            "last_update_ms": last_update,
            "by_venue": by_venue,
            "by_pair": by_pair,
        }
