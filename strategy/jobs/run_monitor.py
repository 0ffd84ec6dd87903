#!/usr/bin/env python3
"""
strategy/jobs/run_monitor.py - CLI entrypoint for the arbitrage monitor.

Usage:
    python -m strategy.jobs.run_monitor
    python -m strategy.jobs.run_monitor --once --notional 2500
    python -m strategy.jobs.run_monitor --duration 3600 --json-logs
"""

import asyncio
import json
import signal
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

import click

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from core.exceptions import ArbError
from core.format_money import format_usd
from core.logging import get_logger, setup_logging, set_global_context
from core.time import session_id as new_session_id
from strategy.monitor import ArbitrageMonitor, build_monitor

logger = get_logger("dexwatch.monitor")


def _parse_notional(value: str | None) -> Decimal | None:
    if value is None:
        return None
    try:
        notional = Decimal(value)
    except InvalidOperation:
        raise click.BadParameter(f"not a number: {value}", param_hint="--notional")
    if not notional.is_finite() or notional <= 0:
        raise click.BadParameter("must be positive", param_hint="--notional")
    return notional


def print_summary(summary: dict) -> None:
    """Human-readable run summary on stdout."""
    monitor = summary.get("monitor", {})
    scanner = summary.get("scanner", {})
    cache = summary.get("simulator", {}).get("cache", {})
    store = summary.get("store") or {}

    click.echo("")
    click.echo("=" * 60)
    click.echo("DEXWATCH RUN SUMMARY")
    click.echo("=" * 60)
    click.echo(f"Poll ticks:            {monitor.get('poll_ticks', 0)}")
    click.echo(f"Scans:                 {scanner.get('total_scans', 0)}")
    click.echo(f"Opportunities found:   {scanner.get('opportunities_found', 0)}")
    click.echo(f"  simple / triangular: {scanner.get('simple_found', 0)} / {scanner.get('triangular_found', 0)}")
    click.echo(f"Simulated:             {monitor.get('simulated', 0)}")
    click.echo(f"Profitable:            {monitor.get('profitable', 0)}")
    click.echo(f"Simulation cache:      {cache.get('hits', 0)}/{cache.get('requests', 0)} hits")
    if store:
        click.echo(f"Stored opportunities:  {store.get('total', 0)}")
        click.echo(f"Simulated net profit:  {format_usd(store.get('simulated_net_profit_usd', '0'))}")
    click.echo(f"Errors (tick / store): {monitor.get('tick_errors', 0)} / {monitor.get('store_errors', 0)}")
    click.echo("=" * 60)


async def _run(monitor: ArbitrageMonitor, duration: int, once: bool, notional: Decimal | None) -> dict:
    if once:
        return await monitor.run_once(notional)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, monitor.request_stop)
    await monitor.run(duration_s=duration or None)
    return monitor.summary()


@click.command()
@click.option("--config-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory holding tokens/venues/chains/strategy YAML")
@click.option("--data-dir", "-d", type=click.Path(file_okay=False, path_type=Path), default=Path("data/opportunities"),
              help="Directory for the opportunity journal")
@click.option("--duration", default=0, type=int, help="Seconds to run (0 = until signal)")
@click.option("--once", is_flag=True, help="Run a single poll, scan and simulate pass and exit")
@click.option("--log-level", "-l", default="INFO", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]))
@click.option("--json-logs/--no-json-logs", default=False)
@click.option("--notional", default=None, help="Reference trade notional in USD")
def main(
    config_dir: Path | None,
    data_dir: Path,
    duration: int,
    once: bool,
    log_level: str,
    json_logs: bool,
    notional: str | None,
) -> None:
    """dexwatch - DEX arbitrage monitor (detection and simulation only)."""
    setup_logging(level=log_level, json_format=json_logs)
    session = new_session_id()
    set_global_context(service="dexwatch", session_id=session)

    notional_usd = _parse_notional(notional)

    try:
        monitor = build_monitor(
            config_dir=config_dir,
            data_dir=data_dir,
            notional_usd=notional_usd,
            session_id=session,
        )
    except ArbError as e:
        logger.error(f"Startup failed: {e}", extra={"context": e.to_dict()})
        sys.exit(2)

    logger.info(
        "Starting dexwatch monitor",
        extra={"context": {
            "once": once,
            "duration": duration,
            "pairs": len(monitor.config.pairs),
            "triangular_paths": len(monitor.config.triangular_paths),
            "notional_usd": str(monitor.config.thresholds.notional_usd),
        }}
    )

    try:
        summary = asyncio.run(_run(monitor, duration, once, notional_usd))
    except KeyboardInterrupt:
        logger.info("Monitor interrupted")
        summary = monitor.summary()
    except Exception as e:
        logger.error(f"Monitor error: {e}", exc_info=True)
        sys.exit(1)

    logger.info("Final session summary", extra={"context": summary})
    if json_logs:
        click.echo(json.dumps(summary, default=str))
    else:
        print_summary(summary)


if __name__ == "__main__":
    main()
