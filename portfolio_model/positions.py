"""
Portfolio Model - Position Accounting.

============================================================
PURPOSE
============================================================
Mirror of the ledger's per-position entry price, realized PnL and
margin bookkeeping, so a caller can preview what a fill will do.

============================================================
RULES
============================================================
Same direction (or opening):
    new_avg = (old_avg * |old_qty| + price * |fill_qty|) / |new_qty|
    margin_added = |fill_qty| * MARGIN_PER_UNIT / leverage

Opposite direction, |fill| <= |position|:
    pnl = closed * (exit - avg) / 1e6      (negated for shorts)
    partial close releases margin pro rata, full close releases all

Opposite direction, |fill| > |position| (reversal):
    close the whole position, then open the remainder at the fill
    price with fresh margin

Integer division truncates toward zero, as on the ledger.

============================================================
"""

import logging
from typing import Optional, Tuple

from core.constants import MAX_LEVERAGE, MIN_LEVERAGE, PRICE_SCALE

from .models import FillOutcome, PositionState


logger = logging.getLogger(__name__)


MARGIN_PER_UNIT = 1_000
"""Collateral (1e9) held per quantity unit (1e6) at 1x leverage."""


def div_trunc(numerator: int, denominator: int) -> int:
    """Integer division rounding toward zero."""
    if denominator == 0:
        raise ZeroDivisionError("division by zero")
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


def fill_margin(quantity: int, leverage: int) -> int:
    """Collateral the ledger moves to hold a fill of `quantity`."""
    if not MIN_LEVERAGE <= leverage <= MAX_LEVERAGE:
        raise ValueError(f"leverage {leverage} outside [{MIN_LEVERAGE}, {MAX_LEVERAGE}]")
    return abs(quantity) * MARGIN_PER_UNIT // leverage


# ============================================================
# PRIMITIVE UPDATES
# ============================================================

def add_to_position(
    position: PositionState,
    price: int,
    quantity: int,
    margin: int = 0,
    fee: int = 0,
    timestamp: int = 0,
) -> PositionState:
    """Grow a position in its own direction (or open a flat one)."""
    new_quantity = position.quantity + quantity
    if new_quantity == 0:
        raise ValueError("add_to_position cannot produce a flat position")

    old_cost = position.avg_entry_price * abs(position.quantity)
    new_cost = price * abs(quantity)

    return position.evolve(
        quantity=new_quantity,
        avg_entry_price=div_trunc(old_cost + new_cost, abs(new_quantity)),
        total_fees=position.total_fees + fee,
        margin_held=position.margin_held + margin,
        trade_count=position.trade_count + 1,
        last_update_ts=timestamp,
    )


def reduce_position(
    position: PositionState,
    exit_price: int,
    quantity: int,
    fee: int = 0,
    timestamp: int = 0,
) -> Tuple[PositionState, int, int]:
    """
    Close up to |quantity| of a position.

    Returns:
        (new position, realized pnl, margin released)
    """
    if position.is_flat:
        return position, 0, 0

    previous = abs(position.quantity)
    closed = min(abs(quantity), previous)

    price_diff = exit_price - position.avg_entry_price
    if position.quantity > 0:
        pnl = div_trunc(closed * price_diff, PRICE_SCALE)
        remaining = position.quantity - closed
    else:
        pnl = div_trunc(-closed * price_diff, PRICE_SCALE)
        remaining = position.quantity + closed

    if remaining == 0:
        released = position.margin_held
    else:
        proportion = closed * PRICE_SCALE // previous
        released = position.margin_held * proportion // PRICE_SCALE

    updated = position.evolve(
        quantity=remaining,
        realized_pnl=position.realized_pnl + pnl,
        total_fees=position.total_fees + fee,
        margin_held=position.margin_held - released,
        trade_count=position.trade_count + 1,
        last_update_ts=timestamp,
    )
    return updated, pnl, released


# ============================================================
# FILL APPLICATION
# ============================================================

def apply_fill(
    position: PositionState,
    quantity: int,
    price: int,
    leverage: int = 1,
    margin: Optional[int] = None,
    fee: int = 0,
    timestamp: int = 0,
) -> FillOutcome:
    """
    Apply a signed fill (+buy, -sell) to a position.

    Args:
        position: Current state (flat for a new position)
        quantity: Signed filled quantity (1e6)
        price: Fill price (1e6)
        leverage: Leverage used to size margin for the opening part
        margin: Explicit margin for the opening part; overrides leverage
        fee: Fee charged on the fill
        timestamp: Fill time (unix seconds)
    """
    if quantity == 0:
        return FillOutcome(position=position)

    same_direction = position.is_flat or (position.quantity > 0) == (quantity > 0)

    if same_direction:
        added = margin if margin is not None else fill_margin(quantity, leverage)
        updated = add_to_position(position, price, quantity, added, fee, timestamp)
        return FillOutcome(position=updated, margin_added=added)

    if abs(quantity) <= abs(position.quantity):
        updated, pnl, released = reduce_position(position, price, quantity, fee, timestamp)
        return FillOutcome(position=updated, realized_pnl=pnl, margin_released=released)

    # Reversal: close everything, then open the remainder fresh
    closed, pnl, released = reduce_position(position, price, -position.quantity, fee, timestamp)
    remainder = quantity + position.quantity
    added = margin if margin is not None else fill_margin(remainder, leverage)

    opened = PositionState(
        realized_pnl=closed.realized_pnl,
        total_fees=closed.total_fees,
        trade_count=closed.trade_count - 1,
    )
    opened = add_to_position(opened, price, remainder, added, 0, timestamp)

    logger.debug(f"Position reversed: {position.quantity} -> {opened.quantity} @ {price}")
    return FillOutcome(
        position=opened,
        realized_pnl=pnl,
        margin_released=released,
        margin_added=added,
        reversed=True,
    )
