"""
Order Router - Route Selection.

============================================================
FLOW
============================================================
1. Try the single best venue (find_best_venue)
2. If it cannot cover the order, split across venues
   (build_optimal_split)
3. If combined depth is short, InsufficientLiquidity propagates

OrderRouter wires this to a QuoteAggregator so a caller can route an
instrument straight from a registry snapshot.

============================================================
"""

import logging
from typing import Optional, Sequence

from account_codec.instructions import OrderType, Side
from account_codec.pubkey import PublicKey
from account_codec.records import SlabQuote, VenueRegistry
from core.exceptions import InsufficientLiquidity, TradeValidationError
from core.logging_setup import short_key
from quote_aggregator.aggregator import QuoteAggregator, fetch_instrument_quotes

from .models import Fill, RouteDecision, SplitPlan
from .pricing import market_limit_price, validate_limit_price
from .selection import find_best_venue
from .splitting import build_optimal_split


logger = logging.getLogger(__name__)


def route_order(
    quotes: Sequence[SlabQuote],
    side: Side,
    quantity: int,
) -> RouteDecision:
    """
    Single venue when one suffices, otherwise a split plan.

    Raises:
        InsufficientLiquidity: combined depth cannot fill `quantity`
    """
    try:
        selection = find_best_venue(quotes, side, quantity)
    except InsufficientLiquidity as e:
        logger.info(f"No single venue fills {quantity} ({e.message}); splitting")
        return RouteDecision(plan=build_optimal_split(quotes, side, quantity))

    fill = Fill(
        slab=selection.slab,
        price=selection.price,
        quantity=quantity,
        venue_index=selection.venue_index,
        level=0,
    )
    plan = SplitPlan(
        side=side,
        fills=(fill,),
        total_quantity=quantity,
        average_price=selection.price,
        worst_price=selection.price,
    )
    return RouteDecision(plan=plan, selection=selection)


class OrderRouter:
    """
    Routes orders for an instrument using freshly aggregated quotes.

    Usage:
        router = OrderRouter(aggregator)
        decision = await router.route(instrument, registry, Side.BUY, 5_000_000)
    """

    def __init__(self, aggregator: QuoteAggregator, check_oracles: bool = True) -> None:
        self.aggregator = aggregator
        self.check_oracles = check_oracles

    async def route(
        self,
        instrument: PublicKey,
        registry: VenueRegistry,
        side: Side,
        quantity: int,
    ) -> RouteDecision:
        _, quotes = await fetch_instrument_quotes(
            self.aggregator, instrument, registry, self.check_oracles,
        )
        decision = route_order(quotes, side, quantity)
        logger.info(
            f"Routed {side.name} {quantity} of {short_key(instrument)}: "
            f"{len(decision.plan.venues)} venue(s), avg {decision.plan.average_price}"
        )
        return decision

    async def limit_for(
        self,
        oracle: PublicKey,
        side: Side,
        order_type: OrderType,
        limit_price: Optional[int] = None,
    ) -> int:
        """
        Limit price to send: validated for limit orders, derived from the
        fresh oracle price for market orders.
        """
        price = await self.aggregator.fetch_fresh_oracle(oracle)
        max_confidence = self.aggregator.config.staleness.oracle_max_confidence_bps
        if price.confidence_bps > max_confidence:
            raise TradeValidationError(
                f"Oracle {short_key(oracle)} confidence {price.confidence_bps} bps exceeds {max_confidence} bps",
                context={
                    "oracle": str(oracle),
                    "confidence_bps": price.confidence_bps,
                    "max_confidence_bps": max_confidence,
                },
            )
        if order_type == OrderType.MARKET:
            return market_limit_price(price.price, side)
        if limit_price is None:
            raise TradeValidationError("limit_price is required for limit orders")
        return validate_limit_price(limit_price, price.price, order_type)
