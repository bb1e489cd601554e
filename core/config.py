"""
Core Module - Configuration.

============================================================
RESPONSIBILITY
============================================================
Holds the opaque configuration consumed by the engine components:
network endpoint, program and account addresses, staleness thresholds.

Values are loaded from environment variables (a local .env file is
honoured). Addresses are kept as base58 strings here and parsed by the
components that need them.

============================================================
ENVIRONMENT VARIABLES
============================================================
PERP_RPC_URL                 Ledger JSON-RPC endpoint
PERP_COMMITMENT              Read commitment level
PERP_RPC_TIMEOUT_SECONDS     Per-request timeout
PERP_ROUTER_PROGRAM_ID       Router program address
PERP_SLAB_PROGRAM_ID         Slab program address
PERP_REGISTRY_ADDRESS        Venue registry account
PERP_VAULT_ADDRESS           Collateral vault account
PERP_ORACLE_MAX_AGE_SECONDS  Oracle staleness threshold
PERP_VENUE_FETCH_TIMEOUT     Per-venue read timeout during aggregation
PERP_LOG_LEVEL               Logging level
PERP_LOG_FORMAT              json or text

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .constants import DEFAULT_ORACLE_MAX_AGE_SECONDS, DEFAULT_ORACLE_MAX_CONFIDENCE_BPS


# ============================================================
# GATEWAY CONFIG
# ============================================================

VALID_COMMITMENTS = ("processed", "confirmed", "finalized")


@dataclass
class GatewayConfig:
    """Ledger gateway endpoint settings."""

    rpc_url: str = "http://127.0.0.1:8899"
    commitment: str = "confirmed"
    request_timeout_seconds: float = 20.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rpc_url": self.rpc_url,
            "commitment": self.commitment,
            "request_timeout_seconds": self.request_timeout_seconds,
        }


@dataclass
class ProgramConfig:
    """
    On-ledger program and account addresses.

    Empty strings mean "not configured"; the components that need an
    address raise ConfigurationError through EngineConfig.require().
    """

    router_program_id: str = ""
    slab_program_id: str = ""
    registry_address: str = ""
    vault_address: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "router_program_id": self.router_program_id,
            "slab_program_id": self.slab_program_id,
            "registry_address": self.registry_address,
            "vault_address": self.vault_address,
        }


@dataclass
class StalenessConfig:
    """Freshness thresholds."""

    oracle_max_age_seconds: int = DEFAULT_ORACLE_MAX_AGE_SECONDS
    venue_fetch_timeout_seconds: float = 10.0
    oracle_max_confidence_bps: int = DEFAULT_ORACLE_MAX_CONFIDENCE_BPS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "oracle_max_age_seconds": self.oracle_max_age_seconds,
            "venue_fetch_timeout_seconds": self.venue_fetch_timeout_seconds,
            "oracle_max_confidence_bps": self.oracle_max_confidence_bps,
        }


# ============================================================
# ENGINE CONFIG
# ============================================================

@dataclass
class EngineConfig:
    """Main configuration for the trading engine."""

    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    programs: ProgramConfig = field(default_factory=ProgramConfig)
    staleness: StalenessConfig = field(default_factory=StalenessConfig)

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "EngineConfig":
        """Load configuration from environment variables."""
        load_dotenv(dotenv_path)
        return cls(
            gateway=GatewayConfig(
                rpc_url=os.getenv("PERP_RPC_URL", "http://127.0.0.1:8899"),
                commitment=os.getenv("PERP_COMMITMENT", "confirmed"),
                request_timeout_seconds=float(os.getenv("PERP_RPC_TIMEOUT_SECONDS", "20")),
            ),
            programs=ProgramConfig(
                router_program_id=os.getenv("PERP_ROUTER_PROGRAM_ID", ""),
                slab_program_id=os.getenv("PERP_SLAB_PROGRAM_ID", ""),
                registry_address=os.getenv("PERP_REGISTRY_ADDRESS", ""),
                vault_address=os.getenv("PERP_VAULT_ADDRESS", ""),
            ),
            staleness=StalenessConfig(
                oracle_max_age_seconds=int(
                    os.getenv("PERP_ORACLE_MAX_AGE_SECONDS", str(DEFAULT_ORACLE_MAX_AGE_SECONDS))
                ),
                venue_fetch_timeout_seconds=float(os.getenv("PERP_VENUE_FETCH_TIMEOUT", "10")),
                oracle_max_confidence_bps=int(
                    os.getenv("PERP_ORACLE_MAX_CONFIDENCE_BPS", str(DEFAULT_ORACLE_MAX_CONFIDENCE_BPS))
                ),
            ),
            log_level=os.getenv("PERP_LOG_LEVEL", "INFO"),
            log_format=os.getenv("PERP_LOG_FORMAT", "text"),
        )

    @classmethod
    def for_testing(cls) -> "EngineConfig":
        """Create configuration for tests: short timeouts, local endpoint."""
        return cls(
            gateway=GatewayConfig(rpc_url="http://127.0.0.1:8899", request_timeout_seconds=1.0),
            staleness=StalenessConfig(oracle_max_age_seconds=60, venue_fetch_timeout_seconds=1.0),
            log_level="DEBUG",
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not self.gateway.rpc_url.startswith(("http://", "https://")):
            errors.append("rpc_url must be an http(s) URL")

        if self.gateway.commitment not in VALID_COMMITMENTS:
            errors.append(f"commitment must be one of {', '.join(VALID_COMMITMENTS)}")

        if self.gateway.request_timeout_seconds <= 0:
            errors.append("request_timeout_seconds must be positive")

        if self.staleness.oracle_max_age_seconds < 1:
            errors.append("oracle_max_age_seconds must be at least 1")

        if self.staleness.venue_fetch_timeout_seconds <= 0:
            errors.append("venue_fetch_timeout_seconds must be positive")

        if self.staleness.oracle_max_confidence_bps <= 0:
            errors.append("oracle_max_confidence_bps must be positive")

        if self.log_format not in ("json", "text"):
            errors.append("log_format must be json or text")

        return errors

    def require(self, name: str) -> str:
        """Return a configured program/account address or raise."""
        from .exceptions import ConfigurationError

        value = getattr(self.programs, name, "")
        if not value:
            raise ConfigurationError(
                f"Missing required configuration: {name}",
                errors=[f"{name} is not set"],
            )
        return value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gateway": self.gateway.to_dict(),
            "programs": self.programs.to_dict(),
            "staleness": self.staleness.to_dict(),
            "log_level": self.log_level,
            "log_format": self.log_format,
        }


# Default configuration instance
_default_config: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """Get the default configuration."""
    global _default_config
    if _default_config is None:
        _default_config = EngineConfig()
    return _default_config


def set_config(config: Optional[EngineConfig]) -> None:
    """Set the default configuration."""
    global _default_config
    _default_config = config
