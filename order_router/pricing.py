"""
Order Router - Limit Price Checks.

The venue rejects limit prices more than LIMIT_PRICE_BAND_BPS away from
the oracle. Checking locally gives the caller a typed error before
anything is signed.
"""

import logging
from typing import Tuple

from account_codec.instructions import OrderType, Side
from core.constants import BPS_DENOMINATOR, LIMIT_PRICE_BAND_BPS, MARKET_ORDER_SLIPPAGE_BPS
from core.exceptions import LimitPriceOutOfBand, TradeValidationError


logger = logging.getLogger(__name__)


def price_band(oracle_price: int, band_bps: int = LIMIT_PRICE_BAND_BPS) -> Tuple[int, int]:
    """Inclusive (lower, upper) limits around an oracle price."""
    lower = oracle_price * (BPS_DENOMINATOR - band_bps) // BPS_DENOMINATOR
    upper = oracle_price * (BPS_DENOMINATOR + band_bps) // BPS_DENOMINATOR
    return lower, upper


def market_limit_price(
    reference_price: int,
    side: Side,
    slippage_bps: int = MARKET_ORDER_SLIPPAGE_BPS,
) -> int:
    """Protective limit for a market order: above reference to buy, below to sell."""
    if reference_price <= 0:
        raise TradeValidationError(
            f"Reference price must be positive, got {reference_price}",
            context={"reference_price": reference_price},
        )
    if side == Side.BUY:
        return reference_price * (BPS_DENOMINATOR + slippage_bps) // BPS_DENOMINATOR
    return reference_price * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def validate_limit_price(
    limit_price: int,
    oracle_price: int,
    order_type: OrderType = OrderType.LIMIT,
    band_bps: int = LIMIT_PRICE_BAND_BPS,
) -> int:
    """
    Check a limit price against the oracle band.

    Market orders carry a derived protective limit and are not banded.

    Raises:
        TradeValidationError: non-positive prices
        LimitPriceOutOfBand: limit outside the band
    """
    if limit_price <= 0 or oracle_price <= 0:
        raise TradeValidationError(
            "Limit and oracle prices must be positive",
            context={"limit_price": limit_price, "oracle_price": oracle_price},
        )

    if order_type == OrderType.MARKET:
        return limit_price

    lower, upper = price_band(oracle_price, band_bps)
    if not lower <= limit_price <= upper:
        logger.info(f"Limit {limit_price} rejected: outside [{lower}, {upper}]")
        raise LimitPriceOutOfBand(limit_price, oracle_price, lower, upper)

    return limit_price
