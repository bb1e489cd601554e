"""
Portfolio Model - Cross-Venue Netting.

============================================================
PURPOSE
============================================================
Phase two: aggregate resolved exposures by instrument public key.

Per instrument:
- net quantity      = signed sum of leg quantities
- avg entry price   = sum(avg_entry * |qty|) / sum(|qty|)
- margin held       = sum of leg margin (never reduced by offsetting)
- unrealized PnL    = net * (mark - avg_entry) / 1e6, zero when flat

Grouping is by the resolved key, never by venue-local indices: two
venues can use the same local index for different instruments.

============================================================
"""

import logging
from typing import Dict, List, Mapping, Optional

from account_codec.pubkey import PublicKey
from account_codec.records import Portfolio, PositionDetails, SlabHeader, VenueRegistry
from core.constants import PRICE_SCALE

from .models import NettedPosition, ResolvedExposure
from .positions import div_trunc
from .resolver import PositionKey, resolve_exposures


logger = logging.getLogger(__name__)


def _net_group(
    instrument: PublicKey,
    legs: List[ResolvedExposure],
    mark_price: Optional[int],
) -> NettedPosition:
    net_quantity = sum(leg.quantity for leg in legs)

    notional = 0
    weight = 0
    margin = 0
    for leg in legs:
        if leg.details is None:
            continue
        notional += leg.details.avg_entry_price * abs(leg.quantity)
        weight += abs(leg.quantity)
        margin += leg.details.margin_held

    avg_entry = div_trunc(notional, weight) if weight else 0

    if mark_price is None:
        mark_price = next((leg.mark_price for leg in legs if leg.mark_price is not None), None)

    if net_quantity == 0 or mark_price is None or weight == 0:
        unrealized = 0
    else:
        unrealized = div_trunc(net_quantity * (mark_price - avg_entry), PRICE_SCALE)

    return NettedPosition(
        instrument=instrument,
        net_quantity=net_quantity,
        avg_entry_price=avg_entry,
        mark_price=mark_price,
        unrealized_pnl=unrealized,
        margin_held=margin,
        legs=tuple(legs),
    )


def net_positions(
    resolved: List[ResolvedExposure],
    mark_prices: Optional[Mapping[PublicKey, int]] = None,
) -> List[NettedPosition]:
    """
    Net resolved exposures per instrument.

    Args:
        resolved: Output of resolve_exposures
        mark_prices: Mark price per instrument; defaults to the first
            leg's venue mark

    Returns:
        One NettedPosition per instrument, in first-seen order
    """
    groups: Dict[PublicKey, List[ResolvedExposure]] = {}
    for leg in resolved:
        groups.setdefault(leg.instrument, []).append(leg)

    marks = mark_prices or {}
    positions = [
        _net_group(instrument, legs, marks.get(instrument))
        for instrument, legs in groups.items()
    ]

    logger.debug(
        f"Netted {len(resolved)} legs into {len(positions)} instruments "
        f"({sum(1 for p in positions if p.is_flat)} flat)"
    )
    return positions


def net_portfolio(
    portfolio: Portfolio,
    registry: VenueRegistry,
    slab_headers: Mapping[PublicKey, SlabHeader],
    position_details: Optional[Mapping[PositionKey, PositionDetails]] = None,
    mark_prices: Optional[Mapping[PublicKey, int]] = None,
) -> List[NettedPosition]:
    """Resolve then net, over snapshots already read."""
    resolved = resolve_exposures(portfolio, registry, slab_headers, position_details)
    return net_positions(resolved, mark_prices)
