"""
Order Router - Data Models.

Prices and quantities are 1e6 fixed-point integers throughout.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from account_codec.instructions import Side
from account_codec.pubkey import PublicKey


@dataclass(frozen=True)
class VenueSelection:
    """The single venue chosen to fill an order."""
    slab: PublicKey
    price: int
    available_quantity: int
    venue_index: int
    """Position of the venue in the quote list."""


@dataclass(frozen=True)
class Fill:
    """One (venue, price, quantity) step of a fill plan."""
    slab: PublicKey
    price: int
    quantity: int
    venue_index: int
    level: int

    @property
    def notional(self) -> int:
        return self.price * self.quantity


@dataclass(frozen=True)
class SplitPlan:
    """
    Ordered fill plan across one or more venues.

    Fill order is execution order; callers must preserve it for the
    slippage to be reproducible.
    """
    side: Side
    fills: Tuple[Fill, ...]
    total_quantity: int
    average_price: int
    worst_price: int

    @property
    def best_price(self) -> int:
        return self.fills[0].price

    @property
    def venues(self) -> Tuple[PublicKey, ...]:
        """Distinct venues in first-fill order."""
        return tuple(dict.fromkeys(fill.slab for fill in self.fills))

    @property
    def is_single_venue(self) -> bool:
        return len(self.venues) == 1

    @property
    def slippage_bps(self) -> int:
        """Average price distance from the best level, in basis points."""
        best = self.best_price
        if best == 0:
            return 0
        return abs(self.average_price - best) * 10_000 // best

    def to_dict(self) -> Dict[str, Any]:
        return {
            "side": self.side.name.lower(),
            "total_quantity": self.total_quantity,
            "average_price": self.average_price,
            "worst_price": self.worst_price,
            "fills": [
                {"slab": str(f.slab), "price": f.price, "quantity": f.quantity}
                for f in self.fills
            ],
        }


@dataclass(frozen=True)
class VenueOrder:
    """Per-venue aggregate of a plan, ready to become one execution split."""
    slab: PublicKey
    side: Side
    quantity: int
    limit_price: int
    """Worst price accepted at this venue."""


@dataclass(frozen=True)
class RouteDecision:
    """Outcome of route_order: a plan and whether a single venue sufficed."""
    plan: SplitPlan
    selection: Optional[VenueSelection] = None

    @property
    def split(self) -> bool:
        return self.selection is None
