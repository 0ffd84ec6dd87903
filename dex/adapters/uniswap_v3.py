"""
dex/adapters/uniswap_v3.py - Uniswap V3 style pool reader and quoter.

Implements:
- Pool lookup via factory getPool(tokenA, tokenB, fee)
- Spot price from slot0().sqrtPriceX96 plus liquidity()
- Exact-input quotes via QuoterV2 quoteExactInputSingle

Works for any V3 fork sharing the factory/QuoterV2 ABI (e.g. SushiSwap V3).
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Tuple

from core.logging import get_logger
from core.math import sqrt_price_x96_to_price
from core.models import PoolState, QuoteResult
from core.exceptions import ArbError, QuoteError, ErrorCode
from chains.providers import RPCProvider
from dex.venues import VenueConfig
from pricing.tokens import TokenRegistry

logger = get_logger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


# =============================================================================
# ABI ENCODING
# =============================================================================

# quoteExactInputSingle((address,address,uint256,uint24,uint160))
SELECTOR_QUOTE_EXACT_INPUT_SINGLE = "0xc6a5026a"
# getPool(address,address,uint24)
SELECTOR_GET_POOL = "0x1698ee82"
# slot0()
SELECTOR_SLOT0 = "0x3850c7bd"
# liquidity()
SELECTOR_LIQUIDITY = "0x1a686502"


def _word(value: int) -> str:
    return hex(value)[2:].zfill(64)


def address_word(address: str) -> str:
    return address[2:].lower().zfill(64)


def _data_words(hex_result: str) -> str:
    return hex_result[2:] if hex_result.startswith("0x") else hex_result


def encode_quote_exact_input_single(
    token_in: str,
    token_out: str,
    amount_in: int,
    fee: int,
    sqrt_price_limit_x96: int = 0,
) -> str:
    """
    Encode quoteExactInputSingle call data for QuoterV2.

    QuoterV2 takes a static struct, so the encoding is the selector
    followed by five 32-byte words (no offset).
    """
    return (
        f"{SELECTOR_QUOTE_EXACT_INPUT_SINGLE}"
        f"{address_word(token_in)}"
        f"{address_word(token_out)}"
        f"{_word(amount_in)}"
        f"{_word(fee)}"
        f"{_word(sqrt_price_limit_x96)}"
    )


def decode_quote_response(hex_result: str) -> Tuple[int, int, int, int]:
    """
    Decode quoteExactInputSingle response.

    Returns:
        (amountOut, sqrtPriceX96After, initializedTicksCrossed, gasEstimate)
    """
    if not hex_result or hex_result == "0x":
        raise QuoteError(
            code=ErrorCode.QUOTE_REVERT,
            message="Empty quote response",
        )

    data = _data_words(hex_result)
    if len(data) < 256:
        raise QuoteError(
            code=ErrorCode.QUOTE_REVERT,
            message=f"Quote response too short: {len(data)} chars",
            details={"data_length": len(data), "raw": hex_result[:100]},
        )

    amount_out = int(data[0:64], 16)
    sqrt_price_x96_after = int(data[64:128], 16)
    ticks_crossed = int(data[128:192], 16)
    gas_estimate = int(data[192:256], 16)

    return amount_out, sqrt_price_x96_after, ticks_crossed, gas_estimate


def encode_get_pool(token_a: str, token_b: str, fee: int) -> str:
    return f"{SELECTOR_GET_POOL}{address_word(token_a)}{address_word(token_b)}{_word(fee)}"


def decode_address(hex_result: str) -> Optional[str]:
    """Last 20 bytes of the first word; None for the zero address."""
    data = _data_words(hex_result or "")
    if len(data) < 64:
        return None
    address = "0x" + data[24:64]
    if address == ZERO_ADDRESS:
        return None
    return address


def decode_uint(hex_result: str, index: int = 0) -> int:
    data = _data_words(hex_result or "")
    start = index * 64
    if len(data) < start + 64:
        raise QuoteError(
            code=ErrorCode.QUOTE_REVERT,
            message="Call response too short",
            details={"data_length": len(data), "word": index},
        )
    return int(data[start:start + 64], 16)


def sorts_before(address_a: str, address_b: str) -> bool:
    """True if address_a is token0 of an (address_a, address_b) pool."""
    return int(address_a, 16) < int(address_b, 16)


# =============================================================================
# ADAPTER
# =============================================================================

@dataclass
class UniswapV3QuoteResult:
    """Result from Uniswap V3 quote."""
    amount_out: int
    sqrt_price_x96_after: int
    ticks_crossed: int
    gas_estimate: int
    latency_ms: int


class UniswapV3Adapter:
    """
    Pool reader and QuoterV2 adapter for one V3 venue.

    Usage:
        adapter = UniswapV3Adapter(provider, tokens, venue_config)
        state = await adapter.get_pool_state("WETH", "USDT", 500)
        quote = await adapter.quote_exact_input("uniswap_v3", "USDT", "WETH", 500, 10**9)
    """

    def __init__(
        self,
        provider: RPCProvider,
        tokens: TokenRegistry,
        venue: VenueConfig,
    ):
        if not venue.quoter:
            raise ArbError(ErrorCode.CONFIG_INVALID, f"Venue {venue.name} has no quoter")
        self.provider = provider
        self.tokens = tokens
        self.config = venue
        self.venue = venue.name
        self.quoter_address = venue.quoter
        self._pools: Dict[Tuple[str, str, int], Optional[str]] = {}

    async def get_pool_address(self, token_a: str, token_b: str, fee: int) -> Optional[str]:
        """Pool address for the pair and fee tier, or None if it does not exist."""
        addr_a = self.tokens.address(token_a)
        addr_b = self.tokens.address(token_b)
        key = (min(token_a, token_b), max(token_a, token_b), fee)
        if key in self._pools:
            return self._pools[key]

        response = await self.provider.eth_call(
            to=self.config.factory,
            data=encode_get_pool(addr_a, addr_b, fee),
        )
        pool = decode_address(response.result)
        self._pools[key] = pool
        if pool is None:
            logger.debug(
                f"No {self.venue} pool for {token_a}/{token_b} fee={fee}",
                extra={"context": {"venue": self.venue, "fee": fee}}
            )
        return pool

    async def get_pool_state(
        self,
        token_a: str,
        token_b: str,
        fee_tier: Optional[int],
    ) -> Optional[PoolState]:
        """
        token_b per token_a from slot0, in whole-token units.

        Returns None when the pool does not exist or has no liquidity.
        """
        if fee_tier is None:
            return None
        pool = await self.get_pool_address(token_a, token_b, fee_tier)
        if pool is None:
            return None

        slot0 = await self.provider.eth_call(to=pool, data=SELECTOR_SLOT0)
        liquidity_resp = await self.provider.eth_call(to=pool, data=SELECTOR_LIQUIDITY)
        block_number = await self.provider.get_block_number()

        sqrt_price_x96 = decode_uint(slot0.result, 0)
        liquidity = decode_uint(liquidity_resp.result, 0)
        if sqrt_price_x96 == 0 or liquidity == 0:
            return None

        token_a_info = self.tokens.get(token_a)
        token_b_info = self.tokens.get(token_b)
        if sorts_before(token_a_info.address, token_b_info.address):
            price = sqrt_price_x96_to_price(sqrt_price_x96, token_a_info.decimals, token_b_info.decimals)
        else:
            price_a_per_b = sqrt_price_x96_to_price(sqrt_price_x96, token_b_info.decimals, token_a_info.decimals)
            if price_a_per_b == 0:
                return None
            price = Decimal(1) / price_a_per_b

        return PoolState(
            raw_price_ratio=price,
            liquidity=liquidity,
            block_number=block_number,
            decimals_adjusted=True,
        )

    async def get_quote_raw(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        fee: int,
        block_number: int | None = None,
    ) -> UniswapV3QuoteResult:
        """
        Get raw quote from QuoterV2.

        Args:
            token_in: Input token address
            token_out: Output token address
            amount_in: Input amount in smallest units
            fee: Fee tier (100, 500, 3000, 10000)
            block_number: Block number to query at (None = latest)
        """
        call_data = encode_quote_exact_input_single(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            fee=fee,
        )
        block_tag = hex(block_number) if block_number else "latest"

        try:
            response = await self.provider.eth_call(
                to=self.quoter_address,
                data=call_data,
                block=block_tag,
            )
        except ArbError as e:
            raise QuoteError(
                code=ErrorCode.QUOTE_REVERT,
                message=f"Quote call failed: {e.message}",
                details={
                    "token_in": token_in,
                    "token_out": token_out,
                    "amount_in": amount_in,
                    "fee": fee,
                    "quoter": self.quoter_address,
                },
            )

        amount_out, sqrt_price, ticks, gas = decode_quote_response(response.result)
        return UniswapV3QuoteResult(
            amount_out=amount_out,
            sqrt_price_x96_after=sqrt_price,
            ticks_crossed=ticks,
            gas_estimate=gas,
            latency_ms=response.latency_ms,
        )

    async def quote_exact_input(
        self,
        venue: str,
        token_in: str,
        token_out: str,
        fee_tier: Optional[int],
        amount_in: int,
    ) -> QuoteResult:
        """Quoter protocol entry point (symbols in, smallest units in and out)."""
        if fee_tier is None:
            raise QuoteError(
                code=ErrorCode.QUOTE_REVERT,
                message=f"{self.venue} quotes need a fee tier",
                details={"venue": venue},
            )
        raw = await self.get_quote_raw(
            token_in=self.tokens.address(token_in),
            token_out=self.tokens.address(token_out),
            amount_in=amount_in,
            fee=fee_tier,
        )
        if raw.amount_out == 0:
            raise QuoteError(
                code=ErrorCode.QUOTE_ZERO_OUTPUT,
                message=f"{self.venue} returned zero output for {token_in}->{token_out}",
                details={"amount_in": amount_in, "fee": fee_tier},
            )
        return QuoteResult(
            amount_out=raw.amount_out,
            gas_estimate=raw.gas_estimate,
            latency_ms=raw.latency_ms,
        )
