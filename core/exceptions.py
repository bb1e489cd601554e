"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the typed error results of the trading engine.

Nothing in the engine is fatal to the process. Every failure is one
of the exceptions below, carrying enough structured context for the
caller to decide whether to retry with adjusted parameters.

============================================================
EXCEPTION HIERARCHY
============================================================
EngineError (base)
├── ConfigurationError
├── DecodeError
│   ├── InvalidDiscriminator
│   ├── TruncatedRecord
│   └── MalformedOptionTag
├── StalePrice
├── TradeValidationError
│   ├── InsufficientLiquidity
│   ├── InsufficientMargin
│   ├── InvalidLeverage
│   └── LimitPriceOutOfBand
├── GatewayError
│   ├── AccountNotFound
│   └── RateLimitError
├── VenueUnreadable
└── NoLiquidityAvailable

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    TRANSIENT = "transient"
    """Temporary error, re-reading may succeed."""

    ADJUSTABLE = "adjustable"
    """Caller can retry with different parameters."""

    PERMANENT = "permanent"
    """Data is malformed; retrying the same input cannot succeed."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class EngineError(Exception):
    """
    Base exception for all engine errors.

    All exceptions carry:
    - context: structured details for the caller
    - classification: for retry decisions
    - timestamp: when the error occurred
    """

    default_classification: ErrorClassification = ErrorClassification.ADJUSTABLE

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.context = context or {}
        self.classification = self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_retryable(self) -> bool:
        """Check if re-issuing the same request may succeed."""
        return self.classification == ErrorClassification.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class ConfigurationError(EngineError):
    """Configuration is missing or invalid."""

    default_classification = ErrorClassification.PERMANENT

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message, context={"errors": errors or []})
        self.errors = errors or []


# ============================================================
# DECODE ERRORS
# ============================================================

class DecodeError(EngineError):
    """
    A binary record could not be decoded.

    Always local to one record and never retried automatically.
    """

    default_classification = ErrorClassification.PERMANENT

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        record: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = dict(context or {})
        if address:
            context["address"] = address
        if record:
            context["record"] = record
        super().__init__(message, context=context)
        self.address = address
        self.record = record


class InvalidDiscriminator(DecodeError):
    """Leading discriminator or magic value does not match the record kind."""

    def __init__(
        self,
        record: str,
        expected: Any,
        actual: Any,
        address: Optional[str] = None,
    ):
        super().__init__(
            f"Invalid discriminator for {record}: expected {expected!r}, got {actual!r}",
            address=address,
            record=record,
            context={"expected": repr(expected), "actual": repr(actual)},
        )
        self.expected = expected
        self.actual = actual


class TruncatedRecord(DecodeError):
    """Buffer is shorter than the record layout requires."""

    def __init__(
        self,
        record: str,
        expected_length: int,
        actual_length: int,
        address: Optional[str] = None,
    ):
        super().__init__(
            f"Truncated {record}: need {expected_length} bytes, got {actual_length}",
            address=address,
            record=record,
            context={
                "expected_length": expected_length,
                "actual_length": actual_length,
            },
        )
        self.expected_length = expected_length
        self.actual_length = actual_length


class MalformedOptionTag(DecodeError):
    """Optional sub-record tag byte was neither 0 nor 1."""

    def __init__(
        self,
        record: str,
        tag: int,
        offset: int,
        address: Optional[str] = None,
    ):
        super().__init__(
            f"Malformed option tag {tag} at offset {offset} in {record}",
            address=address,
            record=record,
            context={"tag": tag, "offset": offset},
        )
        self.tag = tag
        self.offset = offset


# ============================================================
# PRICE FRESHNESS
# ============================================================

class StalePrice(EngineError):
    """
    A decoded price or quote is too old to trade on.

    Soft failure: the source is excluded from routing decisions.
    """

    default_classification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        age_seconds: Optional[float] = None,
        max_age_seconds: Optional[float] = None,
    ):
        context: Dict[str, Any] = {}
        if address:
            context["address"] = address
        if age_seconds is not None:
            context["age_seconds"] = age_seconds
        if max_age_seconds is not None:
            context["max_age_seconds"] = max_age_seconds
        super().__init__(message, context=context)
        self.address = address
        self.age_seconds = age_seconds
        self.max_age_seconds = max_age_seconds


# ============================================================
# TRADE VALIDATION ERRORS
# ============================================================

class TradeValidationError(EngineError):
    """Base class for proposed-trade validation failures."""

    default_classification = ErrorClassification.ADJUSTABLE


class InsufficientLiquidity(TradeValidationError):
    """Requested quantity exceeds what the venues can fill."""

    def __init__(
        self,
        requested: int,
        available: int,
        best_price: Optional[int] = None,
        venue: Optional[str] = None,
    ):
        shortfall = requested - available
        super().__init__(
            f"Insufficient liquidity: requested {requested}, available {available} "
            f"(short {shortfall})",
            context={
                "requested": requested,
                "available": available,
                "shortfall": shortfall,
                "best_price": best_price,
                "venue": venue,
            },
        )
        self.requested = requested
        self.available = available
        self.shortfall = shortfall
        self.best_price = best_price
        self.venue = venue


class InsufficientMargin(TradeValidationError):
    """Available equity does not cover the margin a trade commits."""

    def __init__(self, required: int, available: int):
        shortfall = required - available
        super().__init__(
            f"Insufficient margin: need {required}, have {available}",
            context={
                "required": required,
                "available": available,
                "shortfall": shortfall,
            },
        )
        self.required = required
        self.available = available
        self.shortfall = shortfall


class InvalidLeverage(TradeValidationError):
    """Leverage multiplier outside the supported range."""

    def __init__(self, leverage: Any, minimum: int, maximum: int):
        super().__init__(
            f"Invalid leverage {leverage}: must be a whole number in [{minimum}, {maximum}]",
            context={"leverage": leverage, "minimum": minimum, "maximum": maximum},
        )
        self.leverage = leverage
        self.minimum = minimum
        self.maximum = maximum


class LimitPriceOutOfBand(TradeValidationError):
    """Limit price deviates too far from the oracle price."""

    def __init__(
        self,
        limit_price: int,
        oracle_price: int,
        lower_bound: int,
        upper_bound: int,
    ):
        super().__init__(
            f"Limit price {limit_price} outside [{lower_bound}, {upper_bound}] "
            f"around oracle {oracle_price}",
            context={
                "limit_price": limit_price,
                "oracle_price": oracle_price,
                "lower_bound": lower_bound,
                "upper_bound": upper_bound,
            },
        )
        self.limit_price = limit_price
        self.oracle_price = oracle_price
        self.lower_bound = lower_bound
        self.upper_bound = upper_bound


# ============================================================
# GATEWAY / AGGREGATION ERRORS
# ============================================================

class GatewayError(EngineError):
    """Ledger gateway connection or response error."""

    default_classification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        rpc_url: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        context = dict(context or {})
        if rpc_url:
            context["rpc_url"] = rpc_url
        if status_code is not None:
            context["status_code"] = status_code
        super().__init__(message, context=context, cause=cause)
        self.rpc_url = rpc_url
        self.status_code = status_code


class AccountNotFound(GatewayError):
    """The requested account does not exist on the ledger."""

    default_classification = ErrorClassification.PERMANENT

    def __init__(self, address: str):
        super().__init__(
            f"Account not found: {address}",
            context={"address": address},
        )
        self.address = address


class RateLimitError(GatewayError):
    """Gateway rate limit exceeded."""

    def __init__(
        self,
        message: str,
        rpc_url: Optional[str] = None,
        retry_after_seconds: Optional[int] = None,
    ):
        super().__init__(
            message,
            rpc_url=rpc_url,
            status_code=429,
            context={"retry_after_seconds": retry_after_seconds},
        )
        self.retry_after_seconds = retry_after_seconds


class VenueUnreadable(EngineError):
    """A single venue's read or decode failed during aggregation."""

    default_classification = ErrorClassification.TRANSIENT

    def __init__(self, venue: str, cause: Optional[Exception] = None):
        reason = str(cause) if cause else "unknown"
        super().__init__(
            f"Venue {venue} unreadable: {reason}",
            context={"venue": venue},
            cause=cause,
        )
        self.venue = venue


class NoLiquidityAvailable(EngineError):
    """Every candidate venue was excluded; nothing left to route to."""

    default_classification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str = "No liquidity available",
        failures: Optional[List[EngineError]] = None,
    ):
        failures = failures or []
        super().__init__(
            message,
            context={"failures": [f.to_dict() for f in failures]},
        )
        self.failures = failures
