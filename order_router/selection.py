"""
Order Router - Single-Venue Selection.

============================================================
RULES
============================================================
- BUY considers each venue's best ask, lowest price wins
- SELL considers each venue's best bid, highest price wins
- Levels with zero quantity are skipped
- Ties: larger quantity first, then quote list order
- The winner must cover the whole order, otherwise
  InsufficientLiquidity reports shortfall and best price

============================================================
"""

import logging
from typing import List, Optional, Sequence, Tuple

from account_codec.instructions import Side
from account_codec.records import QuoteLevel, SlabQuote
from core.exceptions import InsufficientLiquidity, TradeValidationError
from core.logging_setup import short_key

from .models import VenueSelection


logger = logging.getLogger(__name__)


def require_positive_quantity(quantity: int) -> None:
    if quantity <= 0:
        raise TradeValidationError(
            f"Order quantity must be positive, got {quantity}",
            context={"quantity": quantity},
        )


def side_levels(quote: SlabQuote, side: Side) -> Tuple[QuoteLevel, ...]:
    """Levels a taker on `side` trades against: asks to buy, bids to sell."""
    return quote.cache.asks if side == Side.BUY else quote.cache.bids


def price_priority(side: Side, price: int) -> int:
    """Sort key where smaller is better for the taker."""
    return price if side == Side.BUY else -price


def find_best_venue(
    quotes: Sequence[SlabQuote],
    side: Side,
    quantity: int,
) -> VenueSelection:
    """
    Pick the venue with the best top-of-book price for `side`.

    Raises:
        TradeValidationError: quantity not positive
        InsufficientLiquidity: no usable level, or the winner is short
    """
    require_positive_quantity(quantity)

    candidates: List[Tuple[Tuple[int, int, int], VenueSelection]] = []
    for index, quote in enumerate(quotes):
        levels = side_levels(quote, side)
        top: Optional[QuoteLevel] = levels[0] if levels else None
        if top is None or top.quantity <= 0:
            continue

        selection = VenueSelection(
            slab=quote.slab,
            price=top.price,
            available_quantity=top.quantity,
            venue_index=index,
        )
        candidates.append(((price_priority(side, top.price), -top.quantity, index), selection))

    if not candidates:
        logger.info(f"No {side.name} liquidity across {len(quotes)} venues")
        raise InsufficientLiquidity(requested=quantity, available=0)

    best = min(candidates, key=lambda c: c[0])[1]

    if best.available_quantity < quantity:
        raise InsufficientLiquidity(
            requested=quantity,
            available=best.available_quantity,
            best_price=best.price,
            venue=str(best.slab),
        )

    logger.debug(
        f"Best {side.name} venue {short_key(best.slab)} @ {best.price} "
        f"({best.available_quantity} available)"
    )
    return best
