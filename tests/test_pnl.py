"""
Tests for P&L math
"""

import pytest

from tradebook.models import AssetType, Direction
from tradebook.reconciliation.pnl import PnlCalculator, gross_pnl, pnl_percentage


class TestPnlCalculator:
    """Test cases for PnlCalculator"""

    def setup_method(self):
        self.calculator = PnlCalculator()

    def test_long_profit(self):
        result = self.calculator.compute(Direction.LONG, 100, 110, 4)
        assert result.pnl == pytest.approx(40)
        assert result.pnl_percentage == pytest.approx(10)

    def test_short_profit_when_price_falls(self):
        result = self.calculator.compute(Direction.SHORT, 100, 90, 2)
        assert result.pnl == pytest.approx(20)

    def test_short_loss_when_price_rises(self):
        result = self.calculator.compute(Direction.SHORT, 100, 105, 2)
        assert result.pnl == pytest.approx(-10)

    def test_fees_netted(self):
        result = self.calculator.compute(Direction.LONG, 100, 110, 1, fees=1.5)
        assert result.gross_pnl == pytest.approx(10)
        assert result.pnl == pytest.approx(8.5)
        assert result.fees == pytest.approx(1.5)

    def test_fees_not_netted_when_embedded(self):
        result = self.calculator.compute(Direction.LONG, 100, 110, 1, fees=1.5, net=False)
        assert result.pnl == pytest.approx(10)

    def test_option_multiplier(self):
        multiplier = self.calculator.multiplier_for(AssetType.OPTION, "SPY 240621C00500000")
        result = self.calculator.compute(Direction.LONG, 1.00, 2.00, 1, multiplier)
        assert multiplier == 100
        assert result.pnl == pytest.approx(100)
        assert result.pnl_percentage == pytest.approx(100)

    def test_forex_contract_sizes(self):
        assert self.calculator.multiplier_for(AssetType.FOREX, "XAGUSD") == 5000
        assert self.calculator.multiplier_for(AssetType.FOREX, "XAUUSD") == 100
        assert self.calculator.multiplier_for(AssetType.FOREX, "EURUSD") == 1
        assert self.calculator.multiplier_for(AssetType.CRYPTO, "XAGUSD") == 1

    def test_configured_contract_sizes(self):
        calculator = PnlCalculator({"option": 10, "contract_sizes": {"xpt": 50}})
        assert calculator.multiplier_for(AssetType.OPTION) == 10
        assert calculator.multiplier_for(AssetType.FOREX, "XPTUSD") == 50
        assert calculator.multiplier_for(AssetType.FOREX, "XAGUSD") == 1


class TestPnlHelpers:

    def test_percentage_zero_base(self):
        assert pnl_percentage(50, 0, 1) == 0.0
        assert pnl_percentage(50, 10, 0) == 0.0

    def test_gross_pnl_sign(self):
        assert gross_pnl(Direction.LONG, 10, 12, 3) == pytest.approx(6)
        assert gross_pnl(Direction.SHORT, 10, 12, 3) == pytest.approx(-6)
