"""
Tests for leverage validation, margin maths and position accounting.

============================================================
TEST PRINCIPLES
============================================================
- Leverage is validated before any equity arithmetic
- Max quantity does not depend on leverage
- Position updates match the ledger's integer arithmetic

============================================================
"""

from decimal import Decimal

import pytest

from account_codec.decoders import decode_portfolio
from core.exceptions import InsufficientMargin, InvalidLeverage, TradeValidationError
from portfolio_model.margin import (
    LeverageRisk,
    calculate_leverage,
    leverage_risk,
    max_input_quantity,
    parse_leverage,
    portfolio_summary,
    require_margin,
    validate_leverage,
)
from portfolio_model.models import PositionState, TradeMode
from portfolio_model.positions import (
    MARGIN_PER_UNIT,
    apply_fill,
    div_trunc,
    fill_margin,
    reduce_position,
)

from tests.fixtures import portfolio_bytes, scaled


EQUITY = scaled(1_000)
PRICE = scaled(100)


# ============================================================
# LEVERAGE
# ============================================================

class TestValidateLeverage:
    """Tests for validate_leverage and parse_leverage."""

    @pytest.mark.parametrize("leverage", [1, 5, 10, 3.0, Decimal("7")])
    def test_valid(self, leverage):
        """Whole numbers in [1, 10] are accepted."""
        assert validate_leverage(leverage) == int(leverage)

    @pytest.mark.parametrize("leverage", [0, 0.5, 11, -1, 2.5, float("nan"), float("inf"), True, "5", None])
    def test_invalid(self, leverage):
        """Out of range, fractional and non-numeric values are rejected."""
        with pytest.raises(InvalidLeverage):
            validate_leverage(leverage)

    @pytest.mark.parametrize("text,expected", [("5x", 5), ("10X", 10), (" 3 ", 3)])
    def test_parse(self, text, expected):
        """Trailing x is optional."""
        assert parse_leverage(text) == expected

    @pytest.mark.parametrize("text", ["abc", "x", "11x", "1.5x"])
    def test_parse_invalid(self, text):
        """Unparseable or out-of-range text is InvalidLeverage."""
        with pytest.raises(InvalidLeverage):
            parse_leverage(text)

    def test_risk_bands(self):
        """Warnings start at 5x and escalate at 8x."""
        assert leverage_risk(1) == LeverageRisk.NORMAL
        assert leverage_risk(4) == LeverageRisk.NORMAL
        assert leverage_risk(5) == LeverageRisk.CAUTION
        assert leverage_risk(8) == LeverageRisk.HIGH
        assert leverage_risk(10) == LeverageRisk.HIGH


# ============================================================
# MARGIN MATHS
# ============================================================

class TestCalculateLeverage:
    """Tests for calculate_leverage and require_margin."""

    @pytest.mark.parametrize("leverage", [1, 5, 10])
    def test_max_quantity_independent_of_leverage(self, leverage):
        """Leverage scales the position, never the input bound."""
        result = calculate_leverage(EQUITY, scaled(5), PRICE, leverage)

        assert result.max_quantity == scaled(10)
        assert result.margin_committed == scaled(500)
        assert result.actual_quantity == scaled(5) * leverage
        assert result.position_size == scaled(500) * leverage
        assert result.valid

    def test_modes(self):
        """1x is spot, anything above is margin."""
        assert calculate_leverage(EQUITY, 1, PRICE, 1).mode == TradeMode.SPOT
        assert calculate_leverage(EQUITY, 1, PRICE, 2).mode == TradeMode.MARGIN

    def test_exact_equity_is_valid(self):
        """Committing exactly the available equity is allowed."""
        result = calculate_leverage(EQUITY, scaled(10), PRICE)
        assert result.valid
        assert result.shortfall == 0

    def test_over_commit(self):
        """More collateral than equity is invalid with a shortfall."""
        result = calculate_leverage(EQUITY, scaled(11), PRICE, 10)
        assert not result.valid
        assert result.shortfall == scaled(100)

    @pytest.mark.parametrize("leverage", [0, 0.5, 11])
    def test_leverage_checked_first(self, leverage):
        """Bad leverage wins over insufficient equity."""
        with pytest.raises(InvalidLeverage):
            require_margin(0, scaled(1_000), PRICE, leverage)

    def test_require_margin(self):
        """Uncovered trades raise InsufficientMargin."""
        with pytest.raises(InsufficientMargin) as exc_info:
            require_margin(EQUITY, scaled(11), PRICE)
        assert exc_info.value.required == scaled(1_100)
        assert exc_info.value.available == EQUITY

    def test_bad_inputs(self):
        """Non-positive price and negative quantity are rejected."""
        with pytest.raises(TradeValidationError):
            calculate_leverage(EQUITY, 1, 0)
        with pytest.raises(TradeValidationError):
            calculate_leverage(EQUITY, -1, PRICE)

    def test_negative_equity_max_quantity(self):
        """Negative equity can commit nothing."""
        assert max_input_quantity(-EQUITY, PRICE) == 0


# ============================================================
# POSITION ACCOUNTING
# ============================================================

class TestApplyFill:
    """Tests for apply_fill and its primitives."""

    def test_average_then_partial_close(self):
        """10@200 + 10@202 averages 201; selling 15@203 realizes 30."""
        position = PositionState()
        position = apply_fill(position, scaled(10), scaled(200)).position
        position = apply_fill(position, scaled(10), scaled(202)).position

        assert position.avg_entry_price == scaled(201)
        assert position.quantity == scaled(20)
        assert position.margin_held == 2 * scaled(10) * MARGIN_PER_UNIT

        outcome = apply_fill(position, scaled(-15), scaled(203))

        assert outcome.realized_pnl == scaled(30)
        assert outcome.position.quantity == scaled(5)
        assert outcome.position.avg_entry_price == scaled(201)
        assert outcome.margin_released == scaled(15) * MARGIN_PER_UNIT
        assert outcome.position.margin_held == scaled(5) * MARGIN_PER_UNIT

    def test_full_close_releases_all(self):
        """Closing everything releases every unit of margin."""
        position = PositionState(quantity=scaled(3), avg_entry_price=scaled(100), margin_held=7)
        outcome = apply_fill(position, scaled(-3), scaled(99))

        assert outcome.position.is_flat
        assert outcome.margin_released == 7
        assert outcome.realized_pnl == scaled(-3)

    def test_short_close(self):
        """Buying back a short below entry is a gain."""
        position = PositionState(quantity=scaled(-2), avg_entry_price=scaled(100))
        outcome = apply_fill(position, scaled(2), scaled(90))
        assert outcome.realized_pnl == scaled(20)

    def test_reversal(self):
        """Overshooting the position closes it and opens the remainder once."""
        position = apply_fill(PositionState(), scaled(5), scaled(100)).position
        outcome = apply_fill(position, scaled(-8), scaled(110), leverage=2)

        assert outcome.reversed
        assert outcome.realized_pnl == scaled(50)
        assert outcome.position.quantity == scaled(-3)
        assert outcome.position.avg_entry_price == scaled(110)
        assert outcome.margin_released == scaled(5) * MARGIN_PER_UNIT
        assert outcome.margin_added == scaled(3) * MARGIN_PER_UNIT // 2
        assert outcome.position.margin_held == outcome.margin_added
        assert outcome.position.realized_pnl == scaled(50)

    def test_explicit_margin(self):
        """An explicit margin overrides the leverage sizing."""
        outcome = apply_fill(PositionState(), scaled(1), PRICE, leverage=5, margin=42)
        assert outcome.margin_added == 42

    def test_zero_fill(self):
        """A zero fill changes nothing."""
        position = PositionState(quantity=scaled(1), avg_entry_price=PRICE)
        assert apply_fill(position, 0, PRICE).position == position

    def test_reduce_flat(self):
        """Reducing a flat position is a no-op."""
        assert reduce_position(PositionState(), PRICE, scaled(1)) == (PositionState(), 0, 0)

    def test_fill_margin(self):
        """Margin is |qty| * 1000 / L and leverage must be in range."""
        assert fill_margin(scaled(-4), 4) == scaled(1) * MARGIN_PER_UNIT
        with pytest.raises(ValueError):
            fill_margin(scaled(1), 0)

    @pytest.mark.parametrize("numerator,denominator,expected", [
        (7, 2, 3),
        (-7, 2, -3),
        (7, -2, -3),
        (-7, -2, 3),
        (0, 5, 0),
    ])
    def test_div_trunc(self, numerator, denominator, expected):
        """Division truncates toward zero."""
        assert div_trunc(numerator, denominator) == expected


# ============================================================
# SUMMARY
# ============================================================

class TestPortfolioSummary:
    """Tests for portfolio_summary."""

    def test_healthy(self):
        """Utilization is maintenance margin over equity in bps."""
        portfolio = decode_portfolio(portfolio_bytes(
            equity=10 * 10**9, principal=10 * 10**9, mm=2 * 10**9, health=8 * 10**9,
        ))

        summary = portfolio_summary(portfolio)

        assert summary.utilization_bps == 2_000
        assert not summary.is_liquidatable
        assert summary.is_consistent
        assert summary.to_dict()["positions"] == []

    def test_liquidatable(self):
        """Negative health is liquidatable; no equity is full utilization."""
        portfolio = decode_portfolio(portfolio_bytes(
            equity=0, principal=10**9, pnl=-10**9, mm=10**9, health=-10**9,
        ))

        summary = portfolio_summary(portfolio)

        assert summary.utilization_bps == 10_000
        assert summary.is_liquidatable
        assert summary.is_consistent

    def test_inconsistent(self):
        """Equity that is not principal plus PnL is flagged."""
        portfolio = decode_portfolio(portfolio_bytes(equity=5, principal=1, pnl=1))
        assert not portfolio_summary(portfolio).is_consistent
