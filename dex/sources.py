# PATH: dex/sources.py
"""
Collaborator interfaces consumed by the pipeline.

Concrete implementations:
- PriceSource: dex.adapters.uniswap_v3.UniswapV3Adapter,
  dex.adapters.uniswap_v2.UniswapV2Adapter
- GasPriceSource: chains.gas.RPCGasPriceSource
- Quoter: dex.adapters.uniswap_v3.UniswapV3Adapter,
  execution.quoting.PriceModelQuoter

"Pool not found" is a None return, never an exception.
"""

from typing import Optional, Protocol, runtime_checkable

from core.models import GasQuote, PoolState, QuoteResult, Reserves


@runtime_checkable
class PriceSource(Protocol):
    """Reads pool prices for one venue."""

    venue: str

    async def get_pool_state(
        self,
        token_a: str,
        token_b: str,
        fee_tier: Optional[int],
    ) -> Optional[PoolState]:
        ...


@runtime_checkable
class ReserveSource(Protocol):
    """Constant-product venues also expose raw reserves."""

    venue: str

    async def get_reserves(self, token_a: str, token_b: str) -> Optional[Reserves]:
        ...


@runtime_checkable
class GasPriceSource(Protocol):
    async def get_gas_price(self) -> GasQuote:
        ...


@runtime_checkable
class Quoter(Protocol):
    """Exact-input quotes in smallest units."""

    async def quote_exact_input(
        self,
        venue: str,
        token_in: str,
        token_out: str,
        fee_tier: Optional[int],
        amount_in: int,
    ) -> QuoteResult:
        ...
