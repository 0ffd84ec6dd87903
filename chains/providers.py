"""
chains/providers.py - RPC provider with endpoint failover.

Provides RPC access with:
- Multiple endpoint failover (tried in order)
- Request timeout handling
- Connection pooling
- Latency tracking per endpoint
"""

import os
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import httpx

from core.logging import get_logger
from core.exceptions import ConfigError, InfraError, ErrorCode

logger = get_logger(__name__)


@dataclass
class RPCStats:
    """Statistics for an RPC endpoint."""
    url: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: int = 0
    last_error: str | None = None
    last_success_ts: int | None = None

    @property
    def avg_latency_ms(self) -> int:
        if self.successful_requests == 0:
            return 0
        return self.total_latency_ms // self.successful_requests

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests


@dataclass
class RPCResponse:
    """Response from an RPC call."""
    result: Any
    latency_ms: int
    endpoint_used: str


class RPCProvider:
    """
    RPC provider with failover support.

    Tries multiple endpoints in order until one succeeds.
    Tracks statistics per endpoint for monitoring.
    """

    def __init__(
        self,
        chain_id: int,
        rpc_urls: List[str],
        timeout_seconds: float = 10,
        client: httpx.AsyncClient | None = None,
    ):
        self.chain_id = chain_id
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._request_id = 0

        self.rpc_urls = self._resolve_urls(rpc_urls)

        self.stats: Dict[str, RPCStats] = {
            url: RPCStats(url=url) for url in self.rpc_urls
        }

    def _resolve_urls(self, urls: List[str]) -> List[str]:
        """Resolve ${ALCHEMY_API_KEY} in URLs, dropping keyed URLs without a key."""
        api_key = os.getenv("ALCHEMY_API_KEY", "")
        resolved = []
        for url in urls:
            resolved_url = url.replace("${ALCHEMY_API_KEY}", api_key)
            if api_key or "${ALCHEMY_API_KEY}" not in url:
                resolved.append(resolved_url)
        return resolved

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_connections=10),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def call(
        self,
        method: str,
        params: list | None = None,
    ) -> RPCResponse:
        """
        Make an RPC call with failover.

        Args:
            method: RPC method name
            params: Method parameters

        Returns:
            RPCResponse with result and metadata

        Raises:
            InfraError: If all endpoints fail
        """
        if not self.rpc_urls:
            raise InfraError(
                code=ErrorCode.INFRA_RPC_ERROR,
                message="No RPC endpoints configured",
                details={"chain_id": self.chain_id},
            )

        client = await self._get_client()
        last_error: str | None = None
        timed_out = False

        for url in self.rpc_urls:
            stats = self.stats[url]
            stats.total_requests += 1

            payload = {
                "jsonrpc": "2.0",
                "method": method,
                "params": params or [],
                "id": self._next_request_id(),
            }

            start_ms = int(time.time() * 1000)

            try:
                resp = await client.post(url, json=payload)
                latency_ms = int(time.time() * 1000) - start_ms
                resp.raise_for_status()
                result = resp.json()

                if "error" in result:
                    error = result["error"]
                    error_msg = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                    stats.failed_requests += 1
                    stats.last_error = error_msg
                    last_error = f"RPC error: {error_msg}"
                    timed_out = False
                    logger.debug(
                        f"RPC error from {url}: {error_msg}",
                        extra={"context": {"method": method}}
                    )
                    continue

                stats.successful_requests += 1
                stats.total_latency_ms += latency_ms
                stats.last_success_ts = int(time.time() * 1000)

                return RPCResponse(
                    result=result.get("result"),
                    latency_ms=latency_ms,
                    endpoint_used=url,
                )

            except httpx.TimeoutException:
                latency_ms = int(time.time() * 1000) - start_ms
                stats.failed_requests += 1
                stats.last_error = f"Timeout after {latency_ms}ms"
                last_error = stats.last_error
                timed_out = True
                logger.debug(
                    f"RPC timeout for {url}: {latency_ms}ms",
                    extra={"context": {"method": method}}
                )
                continue

            except (httpx.HTTPError, ValueError) as e:
                stats.failed_requests += 1
                stats.last_error = str(e)
                last_error = str(e)
                timed_out = False
                logger.debug(
                    f"RPC failed for {url}: {e}",
                    extra={"context": {"method": method}}
                )
                continue

        raise InfraError(
            code=ErrorCode.INFRA_TIMEOUT if timed_out else ErrorCode.INFRA_RPC_ERROR,
            message=f"All RPC endpoints failed for chain {self.chain_id}",
            details={
                "chain_id": self.chain_id,
                "method": method,
                "endpoints_tried": len(self.rpc_urls),
                "last_error": last_error,
            },
        )

    async def get_block_number(self) -> int:
        """Get latest block number."""
        response = await self.call("eth_blockNumber")
        return int(response.result, 16)

    async def eth_call(
        self,
        to: str,
        data: str,
        block: str = "latest",
    ) -> RPCResponse:
        """
        Make eth_call.

        Args:
            to: Contract address
            data: Encoded call data
            block: Block number or "latest"
        """
        return await self.call(
            "eth_call",
            [{"to": to, "data": data}, block],
        )

    async def get_gas_price(self) -> int:
        """Current gas price in wei."""
        response = await self.call("eth_gasPrice")
        return int(response.result, 16)

    async def get_max_priority_fee(self) -> int:
        """Suggested EIP-1559 priority fee in wei."""
        response = await self.call("eth_maxPriorityFeePerGas")
        return int(response.result, 16)

    def get_stats_summary(self) -> Dict[str, Dict[str, Any]]:
        """Get statistics summary for all endpoints."""
        return {
            url: {
                "total_requests": s.total_requests,
                "success_rate": round(s.success_rate, 3),
                "avg_latency_ms": s.avg_latency_ms,
                "last_error": s.last_error,
            }
            for url, s in self.stats.items()
        }


def build_provider(
    chain_config: Mapping[str, Any],
    rpc_urls_override: Optional[List[str]] = None,
) -> RPCProvider:
    """Create a provider from a chains.yaml entry; RPC_URLS replaces the list."""
    try:
        chain_id = int(chain_config["chain_id"])
    except (KeyError, ValueError, TypeError):
        raise ConfigError("Chain config needs an integer chain_id")
    urls = rpc_urls_override or list(chain_config.get("rpc_urls", []))
    provider = RPCProvider(
        chain_id=chain_id,
        rpc_urls=urls,
        timeout_seconds=float(chain_config.get("timeout_seconds", 10)),
    )
    if not provider.rpc_urls:
        raise ConfigError("No usable RPC endpoints", {"chain_id": chain_id})
    return provider
