# PATH: execution/quoting.py
"""
Quoters for the Trade Simulator.

PriceModelQuoter re-prices a swap from the price cache and takes the venue
fee off the output. It needs no RPC and backs simulation when on-chain
quoting is unavailable. VenueQuoterRouter dispatches by venue name so V3
venues can use QuoterV2 while the rest fall back to the model.
"""

from typing import Callable, Mapping, Optional

from core import constants as C
from core.exceptions import ErrorCode, QuoteError
from core.math import human_to_wei, wei_to_human
from core.models import QuoteResult
from core.time import now_ms
from dex.sources import Quoter
from dex.venues import VenueRegistry
from pricing.cache import PriceCache
from pricing.tokens import TokenRegistry


class PriceModelQuoter:
    """Exact-input quotes from cached prices minus the venue fee."""

    def __init__(
        self,
        cache: PriceCache,
        tokens: TokenRegistry,
        venues: VenueRegistry,
        max_age_ms: Optional[int] = C.PRICE_MAX_AGE_MS,
        gas_estimate: int = C.DEFAULT_QUOTE_GAS,
        clock: Callable[[], int] = now_ms,
    ):
        self.cache = cache
        self.tokens = tokens
        self.venues = venues
        self.max_age_ms = max_age_ms
        self.gas_estimate = gas_estimate
        self.clock = clock

    async def quote_exact_input(
        self,
        venue: str,
        token_in: str,
        token_out: str,
        fee_tier: Optional[int],
        amount_in: int,
    ) -> QuoteResult:
        observation = (
            self.cache.get(venue, token_in, token_out, fee_tier)
            or self.cache.get(venue, token_out, token_in, fee_tier)
        )
        if observation is None:
            raise QuoteError(
                code=ErrorCode.QUOTE_REVERT,
                message=f"No cached {venue} price for {token_in}/{token_out}",
                details={"venue": venue, "fee_tier": fee_tier},
            )
        if self.max_age_ms is not None and PriceCache.is_stale(observation, self.max_age_ms, self.clock()):
            raise QuoteError(
                code=ErrorCode.QUOTE_REVERT,
                message=f"Cached {venue} price for {token_in}/{token_out} is stale",
                details={"venue": venue, "timestamp_ms": observation.timestamp_ms},
            )

        price = observation.oriented(token_in, token_out)
        if price is None or price <= 0:
            raise QuoteError(
                code=ErrorCode.QUOTE_REVERT,
                message=f"Unusable cached price for {token_in}/{token_out}",
                details={"venue": venue},
            )

        fee_rate = self.venues.get(venue).fee_rate_for(fee_tier)
        amount = wei_to_human(amount_in, self.tokens.decimals(token_in))
        amount_out = human_to_wei(amount * price * (1 - fee_rate), self.tokens.decimals(token_out))
        if amount_out <= 0:
            raise QuoteError(
                code=ErrorCode.QUOTE_ZERO_OUTPUT,
                message=f"Zero output for {token_in}->{token_out} on {venue}",
                details={"amount_in": amount_in},
            )
        return QuoteResult(amount_out=amount_out, gas_estimate=self.gas_estimate)


class VenueQuoterRouter:
    """Routes each quote to the quoter registered for its venue."""

    def __init__(self, quoters: Mapping[str, Quoter], fallback: Optional[Quoter] = None):
        self.quoters = dict(quoters)
        self.fallback = fallback

    async def quote_exact_input(
        self,
        venue: str,
        token_in: str,
        token_out: str,
        fee_tier: Optional[int],
        amount_in: int,
    ) -> QuoteResult:
        quoter = self.quoters.get(venue, self.fallback)
        if quoter is None:
            raise QuoteError(
                code=ErrorCode.QUOTE_REVERT,
                message=f"No quoter for venue {venue}",
                details={"venue": venue},
            )
        return await quoter.quote_exact_input(venue, token_in, token_out, fee_tier, amount_in)
