# PATH: pricing/tokens.py
"""
Token registry: decimals, addresses and USD reference prices.

Unknown symbols are a programming error and raise UnsupportedTokenError;
decimals are never guessed.
"""

import threading
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

from config import load_tokens
from core.exceptions import ConfigError, UnsupportedTokenError
from core.logging import get_logger
from core.math import safe_decimal
from core.models import Token

logger = get_logger(__name__)


class TokenRegistry:
    """Supported tokens plus a replaceable USD reference price table."""

    def __init__(self, tokens: Iterable[Token], usd_prices: Mapping[str, Decimal]):
        self._tokens: Dict[str, Token] = {t.symbol: t for t in tokens}
        self._usd_prices: Dict[str, Decimal] = {}
        self._lock = threading.Lock()
        self.update_usd_prices(usd_prices)

    @classmethod
    def from_config(cls, data: Dict[str, Any]) -> "TokenRegistry":
        """Build from the tokens.yaml mapping (symbol -> fields)."""
        tokens = []
        prices: Dict[str, Decimal] = {}
        for symbol, spec in data.items():
            if not isinstance(spec, dict):
                raise ConfigError(f"Token {symbol} must be a mapping")
            try:
                decimals = int(spec["decimals"])
                address = str(spec["address"])
                price = Decimal(str(spec["usd_price"]))
            except (KeyError, ValueError, ArithmeticError) as e:
                raise ConfigError(f"Invalid token config for {symbol}: {e}", {"symbol": symbol})
            if decimals < 0 or decimals > 36:
                raise ConfigError(f"Invalid decimals for {symbol}: {decimals}")
            tokens.append(Token(symbol=symbol, address=address, decimals=decimals))
            prices[symbol] = price
        return cls(tokens, prices)

    @classmethod
    def load(cls, config_dir: Optional[Path] = None) -> "TokenRegistry":
        return cls.from_config(load_tokens(config_dir))

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._tokens

    @property
    def symbols(self) -> list[str]:
        return list(self._tokens)

    def get(self, symbol: str) -> Token:
        token = self._tokens.get(symbol)
        if token is None:
            raise UnsupportedTokenError(symbol)
        return token

    def decimals(self, symbol: str) -> int:
        return self.get(symbol).decimals

    def address(self, symbol: str) -> str:
        return self.get(symbol).address

    def usd_price(self, symbol: str) -> Decimal:
        self.get(symbol)
        return self._usd_prices[symbol]

    def update_usd_prices(self, prices: Mapping[str, Decimal]) -> None:
        """
        Replace reference prices for known tokens.

        Raises ConfigError for a non-positive price.
        """
        updated = {}
        for symbol, price in prices.items():
            self.get(symbol)
            price = safe_decimal(price)
            if not price.is_finite() or price <= 0:
                raise ConfigError(f"USD price for {symbol} must be positive", {"price": str(price)})
            updated[symbol] = price

        with self._lock:
            self._usd_prices = {**self._usd_prices, **updated}

        missing = [s for s in self._tokens if s not in self._usd_prices]
        if missing:
            raise ConfigError("Tokens without a USD reference price", {"symbols": missing})

        logger.debug(
            "USD reference prices updated",
            extra={"context": {k: str(v) for k, v in updated.items()}}
        )

    def by_address(self, address: str) -> Optional[Token]:
        address = address.lower()
        for token in self._tokens.values():
            if token.address.lower() == address:
                return token
        return None
