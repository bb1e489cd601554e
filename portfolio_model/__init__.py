"""
Portfolio Model Package.

============================================================
PURPOSE
============================================================
Turn a decoded Portfolio, a registry snapshot and PositionDetails
into a per-instrument netted view, and pre-validate trades against
available collateral.

============================================================
FLOW
============================================================
1. resolve_exposures   local indices -> instrument public keys
2. net_positions       group by instrument, net and average
3. calculate_leverage  margin maths for a proposed trade

============================================================
"""

from .margin import (
    LeverageRisk,
    calculate_leverage,
    leverage_risk,
    max_input_quantity,
    parse_leverage,
    portfolio_summary,
    require_margin,
    validate_leverage,
)
from .models import (
    FillOutcome,
    LeverageResult,
    NettedPosition,
    PortfolioSummary,
    PositionState,
    ResolvedExposure,
    TradeMode,
)
from .netting import net_portfolio, net_positions
from .positions import (
    MARGIN_PER_UNIT,
    add_to_position,
    apply_fill,
    div_trunc,
    fill_margin,
    reduce_position,
)
from .resolver import PortfolioResolver, resolve_exposures


__all__ = [
    # Margin
    "LeverageRisk",
    "calculate_leverage",
    "leverage_risk",
    "max_input_quantity",
    "parse_leverage",
    "portfolio_summary",
    "require_margin",
    "validate_leverage",
    # Models
    "FillOutcome",
    "LeverageResult",
    "NettedPosition",
    "PortfolioSummary",
    "PositionState",
    "ResolvedExposure",
    "TradeMode",
    # Netting
    "net_portfolio",
    "net_positions",
    # Positions
    "MARGIN_PER_UNIT",
    "add_to_position",
    "apply_fill",
    "div_trunc",
    "fill_margin",
    "reduce_position",
    # Resolution
    "PortfolioResolver",
    "resolve_exposures",
]
