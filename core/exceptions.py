# PATH: core/exceptions.py
"""
Typed exceptions for dexwatch.

Expected conditions (missing price, thin spread) are returned as result
objects with an ErrorCode reason. Exceptions are for configuration mistakes,
unsupported tokens and failures at the I/O boundary.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Reason codes shared by exceptions and rejected results."""

    # Price data
    PRICE_MISSING = "PRICE_MISSING"
    PRICE_STALE = "PRICE_STALE"
    PRICE_ZERO = "PRICE_ZERO"
    PRICE_SYNTHETIC = "PRICE_SYNTHETIC"

    # Scanner gates
    SAME_POOL = "SAME_POOL"
    SPREAD_TOO_SMALL = "SPREAD_TOO_SMALL"
    SPREAD_TOO_LARGE = "SPREAD_TOO_LARGE"
    RATE_BELOW_THRESHOLD = "RATE_BELOW_THRESHOLD"
    PROFIT_BELOW_THRESHOLD = "PROFIT_BELOW_THRESHOLD"

    # Quoting / simulation
    QUOTE_REVERT = "QUOTE_REVERT"
    QUOTE_TIMEOUT = "QUOTE_TIMEOUT"
    QUOTE_ZERO_OUTPUT = "QUOTE_ZERO_OUTPUT"
    SIMULATION_FAILED = "SIMULATION_FAILED"

    # Infrastructure
    INFRA_RPC_ERROR = "INFRA_RPC_ERROR"
    INFRA_TIMEOUT = "INFRA_TIMEOUT"

    # Programming / configuration
    CONFIG_INVALID = "CONFIG_INVALID"
    TOKEN_UNSUPPORTED = "TOKEN_UNSUPPORTED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # Persistence
    STORE_ERROR = "STORE_ERROR"

    UNKNOWN = "UNKNOWN"


class ArbError(Exception):
    """Base exception for dexwatch."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.UNKNOWN,
        message: str = "",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSON logs and the opportunity journal."""
        return {
            "error_code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ConfigError(ArbError):
    """Invalid or inconsistent configuration."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.CONFIG_INVALID, message, details)


class UnsupportedTokenError(ArbError):
    """Token symbol is not in the registry."""

    def __init__(self, symbol: str):
        super().__init__(
            ErrorCode.TOKEN_UNSUPPORTED,
            f"Unsupported token: {symbol}",
            {"symbol": symbol},
        )
        self.symbol = symbol


class ValidationError(ArbError):
    """A value failed validation (float money, out-of-range input)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.VALIDATION_ERROR, message, details)


class InfraError(ArbError):
    """Infrastructure-related errors (RPC, timeouts)."""
    pass


class QuoteError(ArbError):
    """Quote call reverted, timed out or returned nothing usable."""
    pass


class StoreError(ArbError):
    """Opportunity persistence failed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.STORE_ERROR, message, details)


class InvalidTransitionError(ArbError):
    """Raised when an invalid opportunity status transition is attempted."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.INVALID_TRANSITION, message, details)
