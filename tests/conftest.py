# PATH: tests/conftest.py
"""
Pytest configuration and fixtures for dexwatch tests.
"""

import sys
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.constants import NormalizationKind
from core.models import GasQuote, PriceObservation, SimpleCandidate
from core.math import gwei_to_wei
from dex.venues import VenueRegistry
from pricing.cache import PriceCache
from pricing.tokens import TokenRegistry
from strategy.config import StrategyConfig
from strategy.profit import GasPriceCache, ProfitCalculator


def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


NOW_MS = 1_700_000_000_000

TOKENS_CONFIG = {
    "WETH": {"address": "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "decimals": 18, "usd_price": "2650"},
    "USDT": {"address": "0xdAC17F958D2ee523a2206206994597C13D831ec7", "decimals": 6, "usd_price": "1"},
    "USDC": {"address": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "decimals": 6, "usd_price": "1"},
    "WBTC": {"address": "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599", "decimals": 8, "usd_price": "65000"},
    "AAVE": {"address": "0x7Fc66500c84A76Ad7e9c93437bFc5Ac33E2DDaE9", "decimals": 18, "usd_price": "160"},
}


class FakeClock:
    """Settable millisecond clock."""

    def __init__(self, now: int = NOW_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def make_observation(
    venue: str,
    token_a: str,
    token_b: str,
    price: str | Decimal,
    fee_tier: Optional[int] = 500,
    timestamp_ms: int = NOW_MS,
    kind: NormalizationKind = NormalizationKind.NORMALIZED,
    block_number: int = 100,
) -> PriceObservation:
    return PriceObservation(
        venue=venue,
        token_a=token_a,
        token_b=token_b,
        fee_tier=fee_tier,
        price=Decimal(price),
        block_number=block_number,
        timestamp_ms=timestamp_ms,
        kind=kind,
    )


def make_simple_candidate(
    buy_price: str = "2645",
    sell_price: str = "2660",
    buy_venue: str = "uniswap_v3",
    sell_venue: str = "sushiswap_v3",
    notional: str = "1000",
    created_at_ms: int = NOW_MS,
) -> SimpleCandidate:
    buy = Decimal(buy_price)
    sell = Decimal(sell_price)
    key = f"simple:WETH-USDT:{buy_venue}-{sell_venue}"
    return SimpleCandidate(
        id=f"{key}:{created_at_ms}",
        key=key,
        tokens=("WETH", "USDT"),
        notional_usd=Decimal(notional),
        price_difference_pct=(sell - buy) / buy * 100,
        created_at_ms=created_at_ms,
        buy_venue=buy_venue,
        buy_fee_tier=500,
        buy_price=buy,
        sell_venue=sell_venue,
        sell_fee_tier=500,
        sell_price=sell,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tokens():
    return TokenRegistry.from_config(TOKENS_CONFIG)


@pytest.fixture
def venues():
    return VenueRegistry.load()


@pytest.fixture
def config():
    """Defaults with a zero gas buffer so gas is exactly price * limit."""
    cfg = StrategyConfig(
        pairs=[("WETH", "USDT")],
        triangular_paths=[("USDC", "WETH", "AAVE")],
    )
    cfg.gas.buffer_pct = Decimal("0")
    cfg.gas.native_usd_price = Decimal("2000")
    return cfg


@pytest.fixture
def gas_cache(clock):
    cache = GasPriceCache(clock=clock)
    cache.set(GasQuote(gas_price_wei=gwei_to_wei(50), timestamp_ms=NOW_MS))
    return cache


@pytest.fixture
def calculator(config, gas_cache):
    return ProfitCalculator(config, gas_cache)


@pytest.fixture
def price_cache(venues):
    return PriceCache(venue_priority=venues.priorities())
