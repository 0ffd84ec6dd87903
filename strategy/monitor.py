# PATH: strategy/monitor.py
"""
Arbitrage monitor: wiring and the long-running task set.

TASKS
=====
  price loop       PricePoller.poll_once          every price_update_ms
  gas loop         GasPriceCache.refresh          every gas_refresh_s
  scan loop        ArbitrageScanner.scan          every scan_ms
                   -> accepted candidates onto the event queue
  simulation       TradeSimulator.simulate        per queued candidate
  cleanup loop     cache / scanner / simulator / store housekeeping
                                                  every health_ms

A failing tick is logged and the loop carries on. stop() sets an event;
loops exit between ticks and the simulation worker drains the queue first.
Store calls are guarded: a persistence failure is logged, never fatal.
"""

import asyncio
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from chains.gas import RPCGasPriceSource
from chains.providers import RPCProvider, build_provider
from config import CONFIG_DIR, get_chain_config
from core.constants import VenueKind
from core.exceptions import ArbError
from core.logging import get_logger
from core.models import OpportunityCandidate
from dex.adapters import build_adapters
from dex.venues import VenueRegistry
from execution.quoting import PriceModelQuoter, VenueQuoterRouter
from execution.simulator import TradeSimulator
from pricing.cache import PriceCache
from pricing.normalizer import PriceNormalizer
from pricing.poller import PricePoller
from pricing.tokens import TokenRegistry
from storage.store import JsonlOpportunityStore, OpportunityStore
from strategy.config import StrategyConfig, load_strategy_config
from strategy.profit import GasPriceCache, ProfitCalculator
from strategy.scanner import ArbitrageScanner

logger = get_logger(__name__)


class ArbitrageMonitor:
    """Runs the poll, gas, scan, simulation and cleanup tasks."""

    def __init__(
        self,
        config: StrategyConfig,
        cache: PriceCache,
        poller: PricePoller,
        gas_cache: GasPriceCache,
        scanner: ArbitrageScanner,
        simulator: TradeSimulator,
        store: Optional[OpportunityStore] = None,
        provider: Optional[RPCProvider] = None,
    ):
        self.config = config
        self.cache = cache
        self.poller = poller
        self.gas_cache = gas_cache
        self.scanner = scanner
        self.simulator = simulator
        self.store = store
        self.provider = provider

        self.queue: asyncio.Queue[OpportunityCandidate] = asyncio.Queue()
        self._stop = asyncio.Event()
        self._tasks: List[asyncio.Task] = []

        self.stats: Dict[str, int] = {
            "poll_ticks": 0,
            "scan_ticks": 0,
            "queued": 0,
            "simulated": 0,
            "profitable": 0,
            "tick_errors": 0,
            "store_errors": 0,
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return bool(self._tasks) and not self._stop.is_set()

    def start(self) -> None:
        if self._tasks:
            return
        self._stop.clear()
        intervals = self.config.intervals
        self._tasks = [
            asyncio.create_task(self._loop("price", self.poll_tick, intervals.price_update_ms / 1000)),
            asyncio.create_task(self._loop("gas", self.gas_tick, intervals.gas_refresh_s)),
            asyncio.create_task(self._loop("scan", self.scan_tick, intervals.scan_ms / 1000)),
            asyncio.create_task(self._loop("cleanup", self.cleanup_tick, intervals.health_ms / 1000)),
            asyncio.create_task(self._simulation_worker()),
        ]
        logger.info(
            "Monitor started",
            extra={"context": {
                "pairs": len(self.config.pairs),
                "triangular_paths": len(self.config.triangular_paths),
                "price_update_ms": intervals.price_update_ms,
                "scan_ms": intervals.scan_ms,
            }}
        )

    async def stop(self) -> None:
        """Signal every loop to finish and wait for them."""
        self._stop.set()
        if self._tasks:
            await asyncio.gather(*self._tasks)
            self._tasks = []
        if self.provider is not None:
            await self.provider.close()
        logger.info("Monitor stopped", extra={"context": self.stats})

    def request_stop(self) -> None:
        """Signal-handler safe: only flips the stop event."""
        self._stop.set()

    async def run(self, duration_s: Optional[float] = None) -> None:
        """Run until stop is requested or duration_s elapses."""
        self.start()
        try:
            if duration_s:
                await self._sleep(duration_s)
            else:
                await self._stop.wait()
        finally:
            await self.stop()

    async def run_once(self, notional_usd: Optional[Decimal] = None) -> Dict[str, Any]:
        """One gas refresh, poll, scan and simulation pass."""
        await self.gas_cache.refresh()
        await self.poll_tick()
        report = self.scanner.scan(notional_usd)
        self.stats["scan_ticks"] += 1
        for candidate in report.candidates:
            self._persist("upsert", candidate)
            await self._simulate(candidate, notional_usd)
        if self.provider is not None:
            await self.provider.close()
        return self.summary()

    async def _sleep(self, seconds: float) -> None:
        """Sleep that returns early when stop is requested."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _loop(self, name: str, tick: Callable[[], Any], interval_s: float) -> None:
        while not self._stop.is_set():
            try:
                await tick()
            except Exception as e:
                self.stats["tick_errors"] += 1
                logger.error(
                    f"{name} tick failed: {e}",
                    exc_info=True,
                    extra={"context": {"loop": name, "error_type": type(e).__name__}}
                )
            await self._sleep(interval_s)
        logger.debug(f"{name} loop terminated", extra={"context": {"loop": name}})

    # -------------------------------------------------------------------------
    # Ticks
    # -------------------------------------------------------------------------

    async def poll_tick(self) -> None:
        await self.poller.poll_once()
        self.stats["poll_ticks"] += 1

    async def gas_tick(self) -> None:
        await self.gas_cache.refresh()

    async def scan_tick(self) -> None:
        report = self.scanner.scan()
        self.stats["scan_ticks"] += 1
        for candidate in report.candidates:
            self._persist("upsert", candidate)
            self.queue.put_nowait(candidate)
            self.stats["queued"] += 1

    async def cleanup_tick(self) -> None:
        retention = self.config.retention
        self.cache.cleanup(retention.price_cleanup_age_ms)
        for candidate in self.scanner.expire():
            self._persist("upsert", candidate)
        self.simulator.cache.sweep()
        if self.store is not None:
            self._guarded("purge", lambda: self.store.purge(retention.store_retention_ms))

    async def _simulation_worker(self) -> None:
        while not (self._stop.is_set() and self.queue.empty()):
            try:
                candidate = await asyncio.wait_for(self.queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue
            try:
                await self._simulate(candidate)
            except Exception as e:
                self.stats["tick_errors"] += 1
                logger.error(
                    f"Simulation worker error for {candidate.id}: {e}",
                    exc_info=True,
                    extra={"context": {"opportunity_id": candidate.id}}
                )
            finally:
                self.queue.task_done()
        logger.debug("Simulation worker terminated")

    async def _simulate(self, candidate: OpportunityCandidate, notional_usd: Optional[Decimal] = None) -> None:
        result = await self.simulator.simulate(candidate, notional_usd)
        self.stats["simulated"] += 1
        if result.is_profitable:
            self.stats["profitable"] += 1
            logger.info(
                f"Profitable opportunity {candidate.id}: net ${result.net_profit_usd:.2f}",
                extra={"context": {
                    "opportunity_id": candidate.id,
                    "venues": list(candidate.venues),
                    "net_profit_usd": str(result.net_profit_usd),
                }}
            )
        if self.store is not None:
            self._guarded("mark_simulated", lambda: self.store.mark_simulated(candidate.id, result))

    # -------------------------------------------------------------------------
    # Store guard
    # -------------------------------------------------------------------------

    def _persist(self, op: str, candidate: OpportunityCandidate) -> None:
        if self.store is not None:
            self._guarded(op, lambda: self.store.upsert(candidate))

    def _guarded(self, op: str, call: Callable[[], Any]) -> Any:
        try:
            return call()
        except (ArbError, OSError) as e:
            self.stats["store_errors"] += 1
            logger.error(
                f"Store {op} failed: {e}",
                extra={"context": {"op": op, "error_type": type(e).__name__}}
            )
            return None

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def summary(self) -> Dict[str, Any]:
        summary: Dict[str, Any] = {
            "monitor": dict(self.stats),
            "scanner": self.scanner.get_stats(),
            "simulator": self.simulator.get_stats(),
            "price_cache": self.cache.stats(),
            "gas": self.scanner.calculator.summary(),
        }
        if self.store is not None:
            summary["store"] = self._guarded("aggregate_stats", lambda: self.store.aggregate_stats())
        return summary


def build_monitor(
    config_dir: Optional[Path] = None,
    data_dir: Path = Path("data"),
    env: Optional[Mapping[str, str]] = None,
    notional_usd: Optional[Decimal] = None,
    session_id: Optional[str] = None,
    provider: Optional[RPCProvider] = None,
) -> ArbitrageMonitor:
    """
    Construct the full pipeline from config files.

    Everything is created here and passed down; nothing is a module-level
    singleton.
    """
    config_dir = config_dir or CONFIG_DIR
    tokens = TokenRegistry.load(config_dir)
    venues = VenueRegistry.load(config_dir)
    config = load_strategy_config(config_dir / "strategy.yaml", env=env, tokens=tokens)
    if notional_usd is not None:
        config.thresholds.notional_usd = notional_usd

    if provider is None:
        provider = build_provider(get_chain_config(config.chain, config_dir), config.rpc_urls or None)

    timeout_s = float(config.intervals.call_timeout_s)
    adapters = build_adapters(provider, tokens, venues)

    def native_usd_price() -> Decimal:
        return config.gas.native_usd_price or tokens.usd_price(config.native_token)

    cache = PriceCache(
        history_size=config.retention.price_history_size,
        venue_priority=venues.priorities(),
    )
    normalizer = PriceNormalizer(
        tokens,
        fallback_jitter_pct=config.normalizer.fallback_jitter_pct,
        max_deviation=config.normalizer.max_deviation,
    )
    poller = PricePoller(adapters, venues, normalizer, cache, config.pairs, timeout_s=timeout_s)
    gas_cache = GasPriceCache(
        RPCGasPriceSource(provider),
        refresh_interval_s=config.intervals.gas_refresh_s,
        timeout_s=timeout_s,
    )
    calculator = ProfitCalculator(config, gas_cache, native_usd_price)
    scanner = ArbitrageScanner(cache, calculator, tokens, config, venues.priorities())

    onchain = {name: a for name, a in adapters.items() if venues.get(name).kind == VenueKind.UNISWAP_V3}
    quoter = VenueQuoterRouter(
        onchain,
        fallback=PriceModelQuoter(cache, tokens, venues, max_age_ms=config.retention.price_max_age_ms),
    )
    simulator = TradeSimulator(quoter, gas_cache, tokens, config, native_usd_price, timeout_s=timeout_s)
    store = JsonlOpportunityStore(data_dir, session_id=session_id)

    return ArbitrageMonitor(
        config=config,
        cache=cache,
        poller=poller,
        gas_cache=gas_cache,
        scanner=scanner,
        simulator=simulator,
        store=store,
        provider=provider,
    )
