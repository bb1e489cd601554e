"""
Portfolio Model - Data Models.

============================================================
PURPOSE
============================================================
Value types produced by the resolve, net and margin steps.

Scales follow the ledger:
- prices, quantities, PnL: 1e6
- collateral, margin held: 1e9

============================================================
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from account_codec.pubkey import PublicKey
from account_codec.records import PositionDetails


# ============================================================
# RESOLVED EXPOSURE
# ============================================================

@dataclass(frozen=True)
class ResolvedExposure:
    """
    A venue-local exposure with its global identity resolved.

    `details` is None when the position has no PositionDetails record
    (for example one opened before entry tracking existed).
    """
    instrument: PublicKey
    slab: PublicKey
    slab_index: int
    instrument_index: int
    quantity: int
    details: Optional[PositionDetails] = None
    mark_price: Optional[int] = None
    """Venue mark price at resolution time."""

    @property
    def key(self) -> Tuple[int, int]:
        return (self.slab_index, self.instrument_index)


# ============================================================
# NETTED POSITION
# ============================================================

@dataclass(frozen=True)
class NettedPosition:
    """Per-instrument view of exposure aggregated across venues."""

    instrument: PublicKey
    net_quantity: int
    avg_entry_price: int
    mark_price: Optional[int]
    unrealized_pnl: int
    margin_held: int
    """Sum of every leg's margin; not reduced when legs offset."""

    legs: Tuple[ResolvedExposure, ...] = ()

    @property
    def leg_count(self) -> int:
        return len(self.legs)

    @property
    def is_flat(self) -> bool:
        """Zero directional risk, although margin may still be held."""
        return self.net_quantity == 0

    @property
    def is_long(self) -> bool:
        return self.net_quantity > 0

    @property
    def is_short(self) -> bool:
        return self.net_quantity < 0

    @property
    def gross_quantity(self) -> int:
        return sum(abs(leg.quantity) for leg in self.legs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instrument": str(self.instrument),
            "net_quantity": self.net_quantity,
            "avg_entry_price": self.avg_entry_price,
            "mark_price": self.mark_price,
            "unrealized_pnl": self.unrealized_pnl,
            "margin_held": self.margin_held,
            "leg_count": self.leg_count,
            "venues": [str(leg.slab) for leg in self.legs],
        }


# ============================================================
# LEVERAGE
# ============================================================

class TradeMode(Enum):
    """Reported trading mode for a proposed trade."""
    SPOT = "spot"
    MARGIN = "margin"


@dataclass(frozen=True)
class LeverageResult:
    """
    Margin maths for a proposed trade.

    `quantity` is the collateral-denominated input; leverage multiplies
    the resulting position, never the collateral required.
    """
    quantity: int
    price: int
    leverage: int
    available_equity: int

    margin_committed: int
    position_size: int
    actual_quantity: int
    max_quantity: int
    valid: bool
    mode: TradeMode

    @property
    def shortfall(self) -> int:
        return max(0, self.margin_committed - self.available_equity)


# ============================================================
# POSITION STATE
# ============================================================

@dataclass(frozen=True)
class PositionState:
    """
    Client-side mirror of one venue-local position's accounting.

    Fields mirror PositionDetails; `quantity` is signed.
    """
    quantity: int = 0
    avg_entry_price: int = 0
    realized_pnl: int = 0
    total_fees: int = 0
    margin_held: int = 0
    trade_count: int = 0
    last_update_ts: int = 0

    @classmethod
    def from_details(cls, details: PositionDetails) -> "PositionState":
        return cls(
            quantity=details.total_qty,
            avg_entry_price=details.avg_entry_price,
            realized_pnl=details.realized_pnl,
            total_fees=details.total_fees,
            margin_held=details.margin_held,
            trade_count=details.trade_count,
            last_update_ts=details.last_update_ts,
        )

    @property
    def is_flat(self) -> bool:
        return self.quantity == 0

    def evolve(self, **changes: Any) -> "PositionState":
        return replace(self, **changes)


@dataclass(frozen=True)
class FillOutcome:
    """Result of applying one fill to a position."""
    position: PositionState
    realized_pnl: int = 0
    margin_released: int = 0
    margin_added: int = 0
    reversed: bool = False


# ============================================================
# PORTFOLIO SUMMARY
# ============================================================

@dataclass(frozen=True)
class PortfolioSummary:
    """Headline risk figures for one Portfolio."""
    equity: int
    principal: int
    pnl: int
    initial_margin: int
    maintenance_margin: int
    free_collateral: int
    health: int
    utilization_bps: int
    is_liquidatable: bool
    is_consistent: bool
    open_exposures: int
    positions: Tuple[NettedPosition, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "equity": self.equity,
            "principal": self.principal,
            "pnl": self.pnl,
            "initial_margin": self.initial_margin,
            "maintenance_margin": self.maintenance_margin,
            "free_collateral": self.free_collateral,
            "health": self.health,
            "utilization_bps": self.utilization_bps,
            "is_liquidatable": self.is_liquidatable,
            "is_consistent": self.is_consistent,
            "open_exposures": self.open_exposures,
            "positions": [p.to_dict() for p in self.positions],
        }
