"""
Portfolio Model - Leverage and Margin.

============================================================
PURPOSE
============================================================
Pre-validate a proposed trade against available collateral.

The input quantity q is the collateral the trader commits, not the
resulting position size:

    margin_committed = q * p / 1e6
    position_size    = margin_committed * L
    actual_quantity  = q * L
    valid            = equity >= margin_committed
    max_quantity     = equity * 1e6 / p

max_quantity does not depend on L. Leverage multiplies the resulting
position only, never the collateral required.

Leverage is checked before any equity arithmetic.

============================================================
"""

import logging
import math
from decimal import Decimal, InvalidOperation
from enum import Enum
from numbers import Real
from typing import Any, Iterable, Optional

from account_codec.records import Portfolio
from core.constants import BPS_DENOMINATOR, MAX_LEVERAGE, MIN_LEVERAGE, PRICE_SCALE
from core.exceptions import InsufficientMargin, InvalidLeverage, TradeValidationError

from .models import LeverageResult, NettedPosition, PortfolioSummary, TradeMode


logger = logging.getLogger(__name__)


class LeverageRisk(Enum):
    """Advisory risk band shown before a margin trade."""
    NORMAL = "normal"
    CAUTION = "caution"
    HIGH = "high"


CAUTION_LEVERAGE = 5
HIGH_LEVERAGE = 8


# ============================================================
# LEVERAGE VALIDATION
# ============================================================

def validate_leverage(leverage: Any) -> int:
    """
    Return leverage as an int in [MIN_LEVERAGE, MAX_LEVERAGE].

    Raises:
        InvalidLeverage: non-numeric, non-integral or out of range
    """
    if isinstance(leverage, bool) or not isinstance(leverage, (Real, Decimal)):
        raise InvalidLeverage(leverage, MIN_LEVERAGE, MAX_LEVERAGE)

    if isinstance(leverage, float) and not math.isfinite(leverage):
        raise InvalidLeverage(leverage, MIN_LEVERAGE, MAX_LEVERAGE)

    try:
        whole = int(leverage)
    except (ValueError, OverflowError, InvalidOperation):
        raise InvalidLeverage(leverage, MIN_LEVERAGE, MAX_LEVERAGE)

    if whole != leverage or not MIN_LEVERAGE <= whole <= MAX_LEVERAGE:
        raise InvalidLeverage(leverage, MIN_LEVERAGE, MAX_LEVERAGE)

    return whole


def parse_leverage(text: str) -> int:
    """Parse "5x", "10X" or "3" into a validated leverage."""
    cleaned = text.strip().lower().rstrip("x").strip()
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        raise InvalidLeverage(text, MIN_LEVERAGE, MAX_LEVERAGE)
    return validate_leverage(value)


def leverage_risk(leverage: int) -> LeverageRisk:
    if leverage >= HIGH_LEVERAGE:
        return LeverageRisk.HIGH
    if leverage >= CAUTION_LEVERAGE:
        return LeverageRisk.CAUTION
    return LeverageRisk.NORMAL


def _require_positive_price(price: int) -> None:
    if price <= 0:
        raise TradeValidationError(
            f"Price must be positive, got {price}",
            context={"price": price},
        )


# ============================================================
# MARGIN MATHS
# ============================================================

def max_input_quantity(available_equity: int, price: int) -> int:
    """Largest collateral-denominated quantity the equity can commit."""
    _require_positive_price(price)
    return max(0, available_equity) * PRICE_SCALE // price


def calculate_leverage(
    available_equity: int,
    quantity: int,
    price: int,
    leverage: Any = 1,
) -> LeverageResult:
    """
    Margin figures for committing `quantity` at `price` with leverage L.

    Raises:
        InvalidLeverage: before anything else is computed
    """
    validated = validate_leverage(leverage)
    _require_positive_price(price)
    if quantity < 0:
        raise TradeValidationError(
            f"Quantity must not be negative, got {quantity}",
            context={"quantity": quantity},
        )

    margin_committed = quantity * price // PRICE_SCALE

    return LeverageResult(
        quantity=quantity,
        price=price,
        leverage=validated,
        available_equity=available_equity,
        margin_committed=margin_committed,
        position_size=margin_committed * validated,
        actual_quantity=quantity * validated,
        max_quantity=max_input_quantity(available_equity, price),
        valid=available_equity >= margin_committed,
        mode=TradeMode.SPOT if validated == 1 else TradeMode.MARGIN,
    )


def require_margin(
    available_equity: int,
    quantity: int,
    price: int,
    leverage: Any = 1,
) -> LeverageResult:
    """
    Like calculate_leverage, but raise when the trade is not covered.

    Raises:
        InvalidLeverage: leverage out of range
        InsufficientMargin: equity below margin committed
    """
    result = calculate_leverage(available_equity, quantity, price, leverage)
    if not result.valid:
        logger.info(
            f"Margin check failed: need {result.margin_committed}, have {available_equity}"
        )
        raise InsufficientMargin(result.margin_committed, available_equity)
    return result


# ============================================================
# PORTFOLIO SUMMARY
# ============================================================

def portfolio_summary(
    portfolio: Portfolio,
    positions: Optional[Iterable[NettedPosition]] = None,
) -> PortfolioSummary:
    """Headline risk figures; `positions` are attached when supplied."""
    if portfolio.equity > 0:
        utilization = portfolio.mm * BPS_DENOMINATOR // portfolio.equity
    else:
        utilization = BPS_DENOMINATOR if portfolio.mm > 0 else 0

    return PortfolioSummary(
        equity=portfolio.equity,
        principal=portfolio.principal,
        pnl=portfolio.pnl,
        initial_margin=portfolio.im,
        maintenance_margin=portfolio.mm,
        free_collateral=portfolio.free_collateral,
        health=portfolio.health,
        utilization_bps=utilization,
        is_liquidatable=portfolio.health < 0,
        is_consistent=portfolio.is_consistent(),
        open_exposures=len(portfolio.exposures),
        positions=tuple(positions or ()),
    )
