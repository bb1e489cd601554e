"""
Core Module Package.

This package contains the infrastructure every engine component
depends on.

Components:
- config: Engine configuration loaded from the environment
- clock: Unix-seconds clock abstraction for freshness checks
- constants: Fixed-point scales and layout capacities
- exceptions: Typed error hierarchy
- logging_setup: Structured logging
"""

from .clock import ClockProtocol, MockClock, SystemClock, get_clock, set_clock, use_mock_clock
from .config import (
    EngineConfig,
    GatewayConfig,
    ProgramConfig,
    StalenessConfig,
    get_config,
    set_config,
)
from .exceptions import (
    AccountNotFound,
    ConfigurationError,
    DecodeError,
    EngineError,
    ErrorClassification,
    GatewayError,
    InsufficientLiquidity,
    InsufficientMargin,
    InvalidDiscriminator,
    InvalidLeverage,
    LimitPriceOutOfBand,
    MalformedOptionTag,
    NoLiquidityAvailable,
    RateLimitError,
    StalePrice,
    TradeValidationError,
    TruncatedRecord,
    VenueUnreadable,
)
from .logging_setup import setup_logging, short_key


__all__ = [
    # Clock
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "get_clock",
    "set_clock",
    "use_mock_clock",
    # Config
    "EngineConfig",
    "GatewayConfig",
    "ProgramConfig",
    "StalenessConfig",
    "get_config",
    "set_config",
    # Errors
    "AccountNotFound",
    "ConfigurationError",
    "DecodeError",
    "EngineError",
    "ErrorClassification",
    "GatewayError",
    "InsufficientLiquidity",
    "InsufficientMargin",
    "InvalidDiscriminator",
    "InvalidLeverage",
    "LimitPriceOutOfBand",
    "MalformedOptionTag",
    "NoLiquidityAvailable",
    "RateLimitError",
    "StalePrice",
    "TradeValidationError",
    "TruncatedRecord",
    "VenueUnreadable",
    # Logging
    "setup_logging",
    "short_key",
]
