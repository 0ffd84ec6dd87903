"""
strategy/config.py - Strategy configuration.

Scanner thresholds, profit settings, slippage bounds and intervals.
Values come from config/strategy.yaml, then environment overrides.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import yaml
from dotenv import load_dotenv

from config import CONFIG_DIR
from core import constants as C
from core.exceptions import ConfigError
from pricing.tokens import TokenRegistry


@dataclass
class Thresholds:
    """Scanner gates."""
    min_spread_pct: Decimal = C.DEFAULT_MIN_SPREAD_PCT
    min_profit_rate: Decimal = C.DEFAULT_MIN_PROFIT_RATE
    min_profit_usd: Decimal = C.DEFAULT_MIN_PROFIT_USD
    notional_usd: Decimal = C.DEFAULT_NOTIONAL_USD
    swap_fee_rate: Decimal = C.DEFAULT_SWAP_FEE_RATE
    allow_synthetic_prices: bool = False


@dataclass
class GasSettings:
    """Gas limits and USD conversion."""
    buffer_pct: Decimal = C.DEFAULT_GAS_BUFFER_PCT
    native_usd_price: Optional[Decimal] = C.DEFAULT_NATIVE_USD_PRICE
    single_swap_limit: int = C.GAS_LIMIT_SINGLE_SWAP
    triangular_swap_limit: int = C.GAS_LIMIT_TRIANGULAR_SWAP
    default_quote_gas: int = C.DEFAULT_QUOTE_GAS


@dataclass
class TradeSizeSettings:
    """Trade size ladder for optimal-size search."""
    min_usd: Decimal = C.MIN_TRADE_SIZE_USD
    max_usd: Decimal = C.MAX_TRADE_SIZE_USD
    ladder: Tuple[Decimal, ...] = C.TRADE_SIZE_LADDER


@dataclass
class SlippageBounds:
    """Accepted slippage haircut range (percent)."""
    min_pct: Decimal = C.SLIPPAGE_MIN_PCT
    default_pct: Decimal = C.SLIPPAGE_DEFAULT_PCT
    max_pct: Decimal = C.SLIPPAGE_MAX_PCT


@dataclass
class Intervals:
    """Loop timings."""
    price_update_ms: int = C.PRICE_UPDATE_INTERVAL_MS
    scan_ms: int = C.SCAN_INTERVAL_MS
    health_ms: int = C.HEALTH_INTERVAL_MS
    gas_refresh_s: int = C.GAS_REFRESH_INTERVAL_S
    call_timeout_s: Decimal = Decimal(str(C.EXTERNAL_CALL_TIMEOUT_S))


@dataclass
class Retention:
    """Ages and sizes for caches and the store."""
    price_max_age_ms: int = C.PRICE_MAX_AGE_MS
    price_history_size: int = C.PRICE_HISTORY_SIZE
    price_cleanup_age_ms: int = C.PRICE_CLEANUP_AGE_MS
    opportunity_ttl_ms: int = C.OPPORTUNITY_TTL_MS
    store_retention_ms: int = C.STORE_RETENTION_MS
    simulation_cache_ttl_ms: int = C.SIMULATION_CACHE_TTL_MS


@dataclass
class NormalizerSettings:
    max_deviation: Decimal = C.MAX_PRICE_DEVIATION
    fallback_jitter_pct: Decimal = C.FALLBACK_JITTER


@dataclass
class StrategyConfig:
    """Full strategy configuration."""

    chain: str = "ethereum"
    native_token: str = "WETH"
    pairs: List[Tuple[str, str]] = field(default_factory=list)
    triangular_paths: List[Tuple[str, ...]] = field(default_factory=list)
    thresholds: Thresholds = field(default_factory=Thresholds)
    gas: GasSettings = field(default_factory=GasSettings)
    trade_size: TradeSizeSettings = field(default_factory=TradeSizeSettings)
    slippage: SlippageBounds = field(default_factory=SlippageBounds)
    intervals: Intervals = field(default_factory=Intervals)
    retention: Retention = field(default_factory=Retention)
    normalizer: NormalizerSettings = field(default_factory=NormalizerSettings)
    rpc_urls: List[str] = field(default_factory=list)

    def validate(self, tokens: Optional[TokenRegistry] = None) -> None:
        """
        Check internal consistency and, when given, token references.

        Raises ConfigError on the first problem found.
        """
        if self.trade_size.min_usd <= 0 or self.trade_size.min_usd > self.trade_size.max_usd:
            raise ConfigError(
                "trade_size.min_usd must be positive and <= max_usd",
                {"min_usd": str(self.trade_size.min_usd), "max_usd": str(self.trade_size.max_usd)},
            )
        s = self.slippage
        if not (Decimal(0) <= s.min_pct <= s.default_pct <= s.max_pct < 100):
            raise ConfigError(
                "slippage bounds must satisfy 0 <= min <= default <= max < 100",
                {"min": str(s.min_pct), "default": str(s.default_pct), "max": str(s.max_pct)},
            )
        if self.thresholds.notional_usd <= 0:
            raise ConfigError("thresholds.notional_usd must be positive")
        if not (Decimal(0) <= self.thresholds.swap_fee_rate < 1):
            raise ConfigError("thresholds.swap_fee_rate must be in [0, 1)")
        if self.gas.buffer_pct < 0:
            raise ConfigError("gas.buffer_pct must not be negative")
        for name in ("price_update_ms", "scan_ms", "health_ms", "gas_refresh_s"):
            if getattr(self.intervals, name) <= 0:
                raise ConfigError(f"intervals.{name} must be positive")
        if self.intervals.call_timeout_s <= 0:
            raise ConfigError("intervals.call_timeout_s must be positive")

        for pair in self.pairs:
            if len(pair) != 2 or pair[0] == pair[1]:
                raise ConfigError(f"Pair must name two distinct tokens: {list(pair)}")
        for path in self.triangular_paths:
            if len(path) < 3 or len(set(path)) != len(path):
                raise ConfigError(f"Triangular path needs 3+ distinct tokens: {list(path)}")

        if tokens is not None:
            referenced = {s for p in self.pairs for s in p}
            referenced |= {s for p in self.triangular_paths for s in p}
            referenced.add(self.native_token)
            unknown = sorted(s for s in referenced if s not in tokens)
            if unknown:
                raise ConfigError("Config references unsupported tokens", {"symbols": unknown})


# =============================================================================
# PARSING
# =============================================================================

def _decimal(name: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be numeric, got {value!r}")
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ConfigError(f"{name} must be numeric, got {value!r}")
    if not result.is_finite():
        raise ConfigError(f"{name} must be finite, got {value!r}")
    return result


def _int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}")


def _bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _csv(name: str, value: Any) -> List[str]:
    return [part.strip() for part in str(value).split(",") if part.strip()]


# (section, field, parser); section None means a top-level field
_Override = Tuple[Optional[str], str, Callable[[str, Any], Any]]

ENV_OVERRIDES: Dict[str, _Override] = {
    "MIN_PROFIT_USD": ("thresholds", "min_profit_usd", _decimal),
    "MIN_SPREAD_PCT": ("thresholds", "min_spread_pct", _decimal),
    "TRADE_NOTIONAL_USD": ("thresholds", "notional_usd", _decimal),
    "GAS_BUFFER_PERCENTAGE": ("gas", "buffer_pct", _decimal),
    "ETH_PRICE_USD": ("gas", "native_usd_price", _decimal),
    "MIN_TRADE_SIZE_USD": ("trade_size", "min_usd", _decimal),
    "MAX_TRADE_SIZE_USD": ("trade_size", "max_usd", _decimal),
    "SLIPPAGE_TOLERANCE_MIN": ("slippage", "min_pct", _decimal),
    "SLIPPAGE_TOLERANCE_DEFAULT": ("slippage", "default_pct", _decimal),
    "SLIPPAGE_TOLERANCE_MAX": ("slippage", "max_pct", _decimal),
    "PRICE_UPDATE_INTERVAL_MS": ("intervals", "price_update_ms", _int),
    "SCAN_INTERVAL_MS": ("intervals", "scan_ms", _int),
    "HEALTH_CHECK_INTERVAL_MS": ("intervals", "health_ms", _int),
    "ALLOW_SYNTHETIC_PRICES": ("thresholds", "allow_synthetic_prices", _bool),
    "RPC_URLS": (None, "rpc_urls", _csv),
}

_SECTION_TYPES = {
    "thresholds": Thresholds,
    "gas": GasSettings,
    "trade_size": TradeSizeSettings,
    "slippage": SlippageBounds,
    "intervals": Intervals,
    "retention": Retention,
    "normalizer": NormalizerSettings,
}


def _parse_section(name: str, data: Mapping[str, Any]) -> Any:
    cls = _SECTION_TYPES[name]
    base = cls()
    for key, raw in (data or {}).items():
        if not hasattr(base, key):
            raise ConfigError(f"Unknown setting {name}.{key}")
        current = getattr(base, key)
        label = f"{name}.{key}"
        if isinstance(current, bool):
            value: Any = _bool(label, raw)
        elif isinstance(current, int):
            value = _int(label, raw)
        elif isinstance(current, tuple):
            value = tuple(_decimal(label, v) for v in raw)
        else:
            value = _decimal(label, raw)
        setattr(base, key, value)
    return base


def _apply_env(config: StrategyConfig, env: Mapping[str, str]) -> None:
    for var, (section, attr, parser) in ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or str(raw).strip() == "":
            continue
        target = config if section is None else getattr(config, section)
        setattr(target, attr, parser(var, raw))


def parse_strategy_config(data: Mapping[str, Any]) -> StrategyConfig:
    """Build a StrategyConfig from the strategy.yaml mapping."""
    config = StrategyConfig(
        chain=str(data.get("chain", "ethereum")),
        native_token=str(data.get("native_token", "WETH")),
        pairs=[tuple(p) for p in data.get("pairs", [])],
        triangular_paths=[tuple(p) for p in data.get("triangular_paths", [])],
        rpc_urls=list(data.get("rpc_urls", [])),
    )
    for section in _SECTION_TYPES:
        if section in data:
            setattr(config, section, _parse_section(section, data[section]))
    return config


def load_strategy_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
    tokens: TokenRegistry | None = None,
) -> StrategyConfig:
    """
    Load strategy configuration from YAML plus environment overrides.

    Args:
        config_path: Path to strategy.yaml (default: config/strategy.yaml)
        env: Environment mapping (default: os.environ after load_dotenv)
        tokens: Registry used to validate token references

    Returns:
        Validated StrategyConfig
    """
    if config_path is None:
        config_path = CONFIG_DIR / "strategy.yaml"

    data: Dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    config = parse_strategy_config(data)

    if env is None:
        load_dotenv()
        env = os.environ
    _apply_env(config, env)

    config.validate(tokens)
    return config
