# PATH: pricing/poller.py
"""
Price polling: venue pool state -> normalizer -> cache.

Every (pair, venue, fee tier) is fetched concurrently with its own timeout.
A missing pool is normal. A timeout, RPC failure or malformed response
only loses that one observation for this tick.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from core import constants as C
from core.exceptions import ArbError, ErrorCode
from core.logging import get_logger
from core.models import PriceObservation
from core.time import now_ms
from dex.sources import PriceSource
from dex.venues import VenueRegistry
from pricing.cache import PriceCache
from pricing.normalizer import PriceNormalizer

logger = get_logger(__name__)


@dataclass
class PollReport:
    """Outcome counts for one poll tick."""
    fetched: int = 0
    missing: int = 0
    failed: int = 0
    synthetic: int = 0
    duration_ms: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "fetched": self.fetched,
            "missing": self.missing,
            "failed": self.failed,
            "synthetic": self.synthetic,
            "duration_ms": self.duration_ms,
        }


class PricePoller:
    """Fetches every configured pool once per tick and updates the cache."""

    def __init__(
        self,
        sources: Mapping[str, PriceSource],
        venues: VenueRegistry,
        normalizer: PriceNormalizer,
        cache: PriceCache,
        pairs: Sequence[Tuple[str, str]],
        timeout_s: float = C.EXTERNAL_CALL_TIMEOUT_S,
        clock: Callable[[], int] = now_ms,
    ):
        self.sources = dict(sources)
        self.venues = venues
        self.normalizer = normalizer
        self.cache = cache
        self.pairs = list(pairs)
        self.timeout_s = timeout_s
        self.clock = clock
        self.total_polls = 0

    def targets(self) -> List[Tuple[str, str, str, Optional[int]]]:
        """(venue, token_a, token_b, fee_tier) for every pool to poll."""
        result = []
        for venue in self.venues.ordered():
            if venue.name not in self.sources:
                continue
            for token_a, token_b in self.pairs:
                for tier in venue.polled_fee_tiers:
                    result.append((venue.name, token_a, token_b, tier))
        return result

    async def poll_once(self) -> PollReport:
        start = self.clock()
        report = PollReport()
        targets = self.targets()

        outcomes = await asyncio.gather(*(self._fetch(*t) for t in targets))
        for outcome in outcomes:
            if isinstance(outcome, PriceObservation):
                self.cache.update(outcome)
                report.fetched += 1
                if outcome.is_synthetic:
                    report.synthetic += 1
            elif outcome is None:
                report.missing += 1
            else:
                report.failed += 1
                report.errors.append(outcome)

        self.total_polls += 1
        report.duration_ms = self.clock() - start

        logger.info(
            f"Price poll: {report.fetched} fetched, {report.missing} missing, {report.failed} failed",
            extra={"context": report.to_dict()}
        )
        return report

    async def _fetch(
        self,
        venue: str,
        token_a: str,
        token_b: str,
        fee_tier: Optional[int],
    ) -> PriceObservation | str | None:
        """Observation, None for a missing pool, or an error string."""
        source = self.sources[venue]
        try:
            state = await asyncio.wait_for(
                source.get_pool_state(token_a, token_b, fee_tier),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Price fetch timeout {venue} {token_a}/{token_b}",
                extra={"context": {"venue": venue, "fee_tier": fee_tier, "timeout_s": self.timeout_s}}
            )
            return f"{venue}:{token_a}-{token_b}:{fee_tier}: timeout"
        except ArbError as e:
            logger.warning(
                f"Price fetch failed {venue} {token_a}/{token_b}: {e}",
                extra={"context": {"venue": venue, "fee_tier": fee_tier, **e.to_dict()}}
            )
            return f"{venue}:{token_a}-{token_b}:{fee_tier}: {e.code.value}"
        except Exception as e:
            logger.error(
                f"Price fetch error {venue} {token_a}/{token_b}: {e}",
                exc_info=True,
                extra={"context": {"venue": venue, "fee_tier": fee_tier, "error_type": type(e).__name__}}
            )
            return f"{venue}:{token_a}-{token_b}:{fee_tier}: {ErrorCode.UNKNOWN.value}"

        if state is None:
            return None

        try:
            if state.decimals_adjusted:
                normalized = self.normalizer.normalize_scaled(token_a, token_b, state.raw_price_ratio)
            else:
                normalized = self.normalizer.normalize(token_a, token_b, state.raw_price_ratio)
        except ArbError as e:
            logger.warning(
                f"Normalization failed {venue} {token_a}/{token_b}: {e}",
                extra={"context": {"venue": venue, "fee_tier": fee_tier, **e.to_dict()}}
            )
            return f"{venue}:{token_a}-{token_b}:{fee_tier}: {e.code.value}"

        return PriceObservation(
            venue=venue,
            token_a=token_a,
            token_b=token_b,
            fee_tier=fee_tier,
            price=normalized.price,
            block_number=state.block_number,
            timestamp_ms=self.clock(),
            kind=normalized.kind,
            reason=normalized.reason,
        )
