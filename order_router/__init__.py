"""
Order Router Package.

============================================================
PURPOSE
============================================================
Choose where to execute: the single best venue when it covers the
order, otherwise an ordered multi-venue fill plan.

All functions work over an explicit list of decoded quotes; nothing
here reads the ledger except OrderRouter.

============================================================
"""

from account_codec.instructions import OrderType, Side

from .models import Fill, RouteDecision, SplitPlan, VenueOrder, VenueSelection
from .pricing import market_limit_price, price_band, validate_limit_price
from .router import OrderRouter, route_order
from .selection import find_best_venue
from .splitting import build_optimal_split, plan_to_orders, plan_to_splits


__all__ = [
    "OrderType",
    "Side",
    "Fill",
    "RouteDecision",
    "SplitPlan",
    "VenueOrder",
    "VenueSelection",
    "market_limit_price",
    "price_band",
    "validate_limit_price",
    "OrderRouter",
    "route_order",
    "find_best_venue",
    "build_optimal_split",
    "plan_to_orders",
    "plan_to_splits",
]
