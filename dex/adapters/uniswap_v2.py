"""
dex/adapters/uniswap_v2.py - Constant-product (Uniswap V2 style) pool reader.

Implements:
- Pair lookup via factory getPair(tokenA, tokenB)
- getReserves() and a spot price from the reserve ratio
- Exact-input quotes from the x*y=k formula with the venue fee
"""

from decimal import Decimal, ROUND_DOWN
from math import isqrt
from typing import Dict, Optional, Tuple

from core.logging import get_logger
from core.math import reserves_to_price
from core.models import PoolState, QuoteResult, Reserves
from core.exceptions import ArbError, QuoteError, ErrorCode
from chains.providers import RPCProvider
from dex.adapters.uniswap_v3 import decode_address, decode_uint, sorts_before, address_word
from dex.venues import VenueConfig
from pricing.tokens import TokenRegistry

logger = get_logger(__name__)

# getPair(address,address)
SELECTOR_GET_PAIR = "0xe6a43905"
# getReserves()
SELECTOR_GET_RESERVES = "0x0902f1ac"


def encode_get_pair(token_a: str, token_b: str) -> str:
    return f"{SELECTOR_GET_PAIR}{address_word(token_a)}{address_word(token_b)}"


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int, fee_rate: Decimal) -> int:
    """
    Constant-product output for an exact input, fee taken from the input.

    Matches UniswapV2Library.getAmountOut for fee_rate=0.003.
    """
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0
    fee_denominator = 1_000_000
    fee_keep = int(((1 - fee_rate) * fee_denominator).to_integral_value(rounding=ROUND_DOWN))
    amount_in_with_fee = amount_in * fee_keep
    return (amount_in_with_fee * reserve_out) // (reserve_in * fee_denominator + amount_in_with_fee)


class UniswapV2Adapter:
    """Pair reader and formula quoter for one V2 venue."""

    def __init__(
        self,
        provider: RPCProvider,
        tokens: TokenRegistry,
        venue: VenueConfig,
    ):
        self.provider = provider
        self.tokens = tokens
        self.config = venue
        self.venue = venue.name
        self._pairs: Dict[Tuple[str, str], Optional[str]] = {}

    async def get_pair_address(self, token_a: str, token_b: str) -> Optional[str]:
        key = (min(token_a, token_b), max(token_a, token_b))
        if key in self._pairs:
            return self._pairs[key]

        response = await self.provider.eth_call(
            to=self.config.factory,
            data=encode_get_pair(self.tokens.address(token_a), self.tokens.address(token_b)),
        )
        pair = decode_address(response.result)
        self._pairs[key] = pair
        if pair is None:
            logger.debug(
                f"No {self.venue} pair for {token_a}/{token_b}",
                extra={"context": {"venue": self.venue}}
            )
        return pair

    async def get_reserves(self, token_a: str, token_b: str) -> Optional[Reserves]:
        """Raw reserves, or None if the pair does not exist."""
        pair = await self.get_pair_address(token_a, token_b)
        if pair is None:
            return None

        response = await self.provider.eth_call(to=pair, data=SELECTOR_GET_RESERVES)
        block_number = await self.provider.get_block_number()

        addr_a = self.tokens.address(token_a)
        addr_b = self.tokens.address(token_b)
        token0 = token_a if sorts_before(addr_a, addr_b) else token_b
        return Reserves(
            reserve0=decode_uint(response.result, 0),
            reserve1=decode_uint(response.result, 1),
            token0=token0,
            block_number=block_number,
        )

    def _oriented(self, reserves: Reserves, token_in: str) -> Tuple[int, int]:
        if reserves.token0 == token_in:
            return reserves.reserve0, reserves.reserve1
        return reserves.reserve1, reserves.reserve0

    async def get_pool_state(
        self,
        token_a: str,
        token_b: str,
        fee_tier: Optional[int] = None,
    ) -> Optional[PoolState]:
        """token_b per token_a from reserves; None for a missing or empty pair."""
        reserves = await self.get_reserves(token_a, token_b)
        if reserves is None:
            return None

        reserve_a, reserve_b = self._oriented(reserves, token_a)
        price = reserves_to_price(
            reserve_a, reserve_b,
            self.tokens.decimals(token_a), self.tokens.decimals(token_b),
        )
        if price == 0:
            return None

        return PoolState(
            raw_price_ratio=price,
            liquidity=isqrt(reserve_a * reserve_b),
            block_number=reserves.block_number,
            decimals_adjusted=True,
        )

    async def quote_exact_input(
        self,
        venue: str,
        token_in: str,
        token_out: str,
        fee_tier: Optional[int],
        amount_in: int,
    ) -> QuoteResult:
        """
        Quote from current reserves.

        gas_estimate is 0: the pair has no on-chain quoter, so the caller's
        default swap gas applies.
        """
        try:
            reserves = await self.get_reserves(token_in, token_out)
        except ArbError as e:
            raise QuoteError(
                code=ErrorCode.QUOTE_REVERT,
                message=f"Reserve read failed: {e.message}",
                details={"venue": self.venue, "token_in": token_in, "token_out": token_out},
            )
        if reserves is None:
            raise QuoteError(
                code=ErrorCode.QUOTE_REVERT,
                message=f"No {self.venue} pair for {token_in}/{token_out}",
                details={"venue": self.venue},
            )

        reserve_in, reserve_out = self._oriented(reserves, token_in)
        amount_out = get_amount_out(amount_in, reserve_in, reserve_out, self.config.fee_rate)
        if amount_out == 0:
            raise QuoteError(
                code=ErrorCode.QUOTE_ZERO_OUTPUT,
                message=f"{self.venue} returned zero output for {token_in}->{token_out}",
                details={"amount_in": amount_in},
            )
        return QuoteResult(amount_out=amount_out, gas_estimate=0)
