"""
core - Core utilities and models for dexwatch.

This package contains:
- models.py: Data models (PriceObservation, candidates, simulation results)
- constants.py: Enums and defaults
- exceptions.py: Typed exceptions with error codes
- math.py: Decimal helpers (no float)
- time.py: Millisecond clocks and freshness
- logging.py: Structured JSON logging
- format_money.py: Truncating display formatting
"""

from core.constants import (
    NormalizationKind,
    OpportunityStatus,
    OpportunityType,
    VenueKind,
    V3_FEE_TIERS,
)
from core.exceptions import (
    ArbError,
    ConfigError,
    ErrorCode,
    InfraError,
    InvalidTransitionError,
    QuoteError,
    StoreError,
    UnsupportedTokenError,
    ValidationError,
)
from core.logging import get_logger, setup_logging
from core.models import (
    DirectedQuote,
    FeeBreakdown,
    GasQuote,
    LegSimulation,
    OpportunityCandidate,
    PoolState,
    PriceObservation,
    ProfitBreakdown,
    QuoteResult,
    Reserves,
    SimpleCandidate,
    SimulationResult,
    SlippageAdjustment,
    Token,
    TradeLeg,
    TriangularCandidate,
)

__all__ = [
    "NormalizationKind",
    "OpportunityStatus",
    "OpportunityType",
    "VenueKind",
    "V3_FEE_TIERS",
    "ArbError",
    "ConfigError",
    "ErrorCode",
    "InfraError",
    "InvalidTransitionError",
    "QuoteError",
    "StoreError",
    "UnsupportedTokenError",
    "ValidationError",
    "get_logger",
    "setup_logging",
    "DirectedQuote",
    "FeeBreakdown",
    "GasQuote",
    "LegSimulation",
    "OpportunityCandidate",
    "PoolState",
    "PriceObservation",
    "ProfitBreakdown",
    "QuoteResult",
    "Reserves",
    "SimpleCandidate",
    "SimulationResult",
    "SlippageAdjustment",
    "Token",
    "TradeLeg",
    "TriangularCandidate",
]
