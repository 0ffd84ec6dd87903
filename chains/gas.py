"""
chains/gas.py - Gas price source backed by the RPC provider.
"""

from core.exceptions import InfraError
from core.logging import get_logger
from core.models import GasQuote
from core.time import now_ms
from chains.providers import RPCProvider

logger = get_logger(__name__)


class RPCGasPriceSource:
    """
    Reads eth_gasPrice and, where supported, eth_maxPriorityFeePerGas.

    maxFeePerGas is estimated as 2 * gasPrice + priority fee, the usual
    wallet heuristic.
    """

    def __init__(self, provider: RPCProvider):
        self.provider = provider

    async def get_gas_price(self) -> GasQuote:
        gas_price = await self.provider.get_gas_price()

        priority_fee = None
        try:
            priority_fee = await self.provider.get_max_priority_fee()
        except InfraError as e:
            # Pre-London chains do not implement the method
            logger.debug(
                "Priority fee unavailable",
                extra={"context": {"error": e.message}}
            )

        max_fee = None
        if priority_fee is not None:
            max_fee = gas_price * 2 + priority_fee

        return GasQuote(
            gas_price_wei=gas_price,
            max_fee_per_gas_wei=max_fee,
            max_priority_fee_wei=priority_fee,
            timestamp_ms=now_ms(),
        )
