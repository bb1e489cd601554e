"""
Order Router - Multi-Venue Splitting.

============================================================
ALGORITHM
============================================================
1. Flatten every venue's levels on the taker's side into one list
2. Stable sort by price (ascending to buy, descending to sell)
3. Allocate the requested quantity level by level

Equal prices keep quote-list order, then level order, so the plan is
reproducible for a given snapshot.

============================================================
"""

import logging
from typing import Dict, List, Sequence

from account_codec.instructions import CrossSlabLeg, Side
from account_codec.pubkey import PublicKey
from account_codec.records import SlabQuote
from core.constants import MAX_SPLITS
from core.exceptions import InsufficientLiquidity, TradeValidationError

from .models import Fill, SplitPlan, VenueOrder
from .selection import price_priority, require_positive_quantity, side_levels


logger = logging.getLogger(__name__)


def build_optimal_split(
    quotes: Sequence[SlabQuote],
    side: Side,
    quantity: int,
) -> SplitPlan:
    """
    Greedy fill plan across every venue's visible depth.

    Raises:
        TradeValidationError: quantity not positive
        InsufficientLiquidity: combined depth is short; reports the
            unfilled remainder as the shortfall
    """
    require_positive_quantity(quantity)

    levels: List[Fill] = []
    for venue_index, quote in enumerate(quotes):
        for level_index, level in enumerate(side_levels(quote, side)):
            if level.quantity <= 0:
                continue
            levels.append(Fill(
                slab=quote.slab,
                price=level.price,
                quantity=level.quantity,
                venue_index=venue_index,
                level=level_index,
            ))

    levels.sort(key=lambda f: price_priority(side, f.price))

    fills: List[Fill] = []
    remaining = quantity
    for level in levels:
        if remaining == 0:
            break
        take = min(remaining, level.quantity)
        fills.append(Fill(
            slab=level.slab,
            price=level.price,
            quantity=take,
            venue_index=level.venue_index,
            level=level.level,
        ))
        remaining -= take

    if remaining > 0:
        filled = quantity - remaining
        logger.info(f"Split plan short by {remaining}: only {filled} of {quantity} available")
        raise InsufficientLiquidity(
            requested=quantity,
            available=filled,
            best_price=levels[0].price if levels else None,
        )

    notional = sum(f.notional for f in fills)
    plan = SplitPlan(
        side=side,
        fills=tuple(fills),
        total_quantity=quantity,
        average_price=notional // quantity,
        worst_price=fills[-1].price,
    )

    logger.debug(
        f"Split {side.name} {quantity} across {len(plan.venues)} venues, "
        f"avg {plan.average_price}, worst {plan.worst_price}"
    )
    return plan


def plan_to_orders(plan: SplitPlan) -> List[VenueOrder]:
    """
    Collapse a plan into one order per venue, in first-fill order.

    Each order's limit is the worst price the plan accepts there.
    """
    quantities: Dict[PublicKey, int] = {}
    limits: Dict[PublicKey, int] = {}
    for fill in plan.fills:
        quantities[fill.slab] = quantities.get(fill.slab, 0) + fill.quantity
        current = limits.get(fill.slab)
        if current is None or price_priority(plan.side, fill.price) > price_priority(plan.side, current):
            limits[fill.slab] = fill.price

    return [
        VenueOrder(slab=slab, side=plan.side, quantity=qty, limit_price=limits[slab])
        for slab, qty in quantities.items()
    ]


def plan_to_splits(
    plan: SplitPlan,
    receipts: Dict[PublicKey, PublicKey],
    oracles: Dict[PublicKey, PublicKey],
    position_details: Dict[PublicKey, PublicKey],
) -> List[CrossSlabLeg]:
    """
    Execution legs for a plan, one per venue.

    Args:
        plan: Plan from build_optimal_split or route_order
        receipts: Fill receipt account per slab
        oracles: Oracle account per slab
        position_details: PositionDetails account per slab

    Raises:
        TradeValidationError: more venues than one execution accepts,
            or an account is missing for a venue
    """
    orders = plan_to_orders(plan)
    if len(orders) > MAX_SPLITS:
        raise TradeValidationError(
            f"Plan uses {len(orders)} venues; at most {MAX_SPLITS} per execution",
            context={"venues": len(orders), "max_splits": MAX_SPLITS},
        )

    legs = []
    for order in orders:
        try:
            legs.append(CrossSlabLeg(
                slab=order.slab,
                receipt=receipts[order.slab],
                oracle=oracles[order.slab],
                position_details=position_details[order.slab],
                side=order.side,
                quantity=order.quantity,
                limit_price=order.limit_price,
            ))
        except KeyError as e:
            raise TradeValidationError(
                f"Missing execution account for venue {order.slab}",
                context={"slab": str(order.slab), "missing": str(e)},
            )
    return legs
