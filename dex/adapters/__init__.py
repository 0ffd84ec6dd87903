"""
dex/adapters/ - Venue-specific pool readers and quoters.

Adapters:
- uniswap_v3: slot0 prices and QuoterV2 quotes
- uniswap_v2: reserve prices and x*y=k quotes
"""

from typing import Dict

from chains.providers import RPCProvider
from core.constants import VenueKind
from dex.adapters.uniswap_v2 import UniswapV2Adapter
from dex.adapters.uniswap_v3 import UniswapV3Adapter, UniswapV3QuoteResult
from dex.venues import VenueConfig, VenueRegistry
from pricing.tokens import TokenRegistry


def build_adapter(
    provider: RPCProvider,
    tokens: TokenRegistry,
    venue: VenueConfig,
) -> UniswapV2Adapter | UniswapV3Adapter:
    """Adapter for a venue based on its kind."""
    if venue.kind == VenueKind.UNISWAP_V3:
        return UniswapV3Adapter(provider, tokens, venue)
    return UniswapV2Adapter(provider, tokens, venue)


def build_adapters(
    provider: RPCProvider,
    tokens: TokenRegistry,
    venues: VenueRegistry,
) -> Dict[str, UniswapV2Adapter | UniswapV3Adapter]:
    return {v.name: build_adapter(provider, tokens, v) for v in venues.ordered()}


__all__ = [
    "UniswapV2Adapter",
    "UniswapV3Adapter",
    "UniswapV3QuoteResult",
    "build_adapter",
    "build_adapters",
]
