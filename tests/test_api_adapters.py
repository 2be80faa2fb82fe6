"""
Tests for Schwab and crypto exchange API adapters
"""

import pytest

from tradebook.adapters.exchange_api import ExchangeApiAdapter
from tradebook.adapters.schwab_api import (SchwabApiAdapter, display_symbol, find_trade_item,
                                           total_fees)
from tradebook.models import AssetType, Direction
from tradebook.reconciliation.diagnostics import DiagnosticLog

OPTION_SYMBOL = "ISRG  251031C00600000"


def schwab_option_tx(activity_id, amount, price, effect, time="2024-03-01T14:30:00+0000"):
    return {
        "activityId": activity_id,
        "time": time,
        "type": "TRADE",
        "transferItems": [
            {"instrument": {"assetType": "CURRENCY", "symbol": "CURRENCY_USD"},
             "amount": 0, "cost": -0.65, "feeType": "COMMISSION"},
            {"instrument": {"assetType": "OPTION", "symbol": OPTION_SYMBOL,
                            "underlyingSymbol": "ISRG", "strikePrice": 600, "putCall": "CALL"},
             "amount": amount, "price": price, "cost": -amount * price * 100,
             "positionEffect": effect},
        ],
    }


class TestSchwabApiHelpers:

    def test_find_trade_item_skips_fee_and_cash_legs(self):
        items = schwab_option_tx(1, 1, 5.0, "OPENING")["transferItems"]
        assert find_trade_item(items)["instrument"]["symbol"] == OPTION_SYMBOL
        assert total_fees(items) == pytest.approx(0.65)

    def test_display_symbol(self):
        assert display_symbol({"assetType": "OPTION", "underlyingSymbol": "ISRG",
                               "strikePrice": 600, "putCall": "CALL"}) == "ISRG 600C"
        assert display_symbol({"assetType": "EQUITY", "symbol": "AAPL"}) == "AAPL"


class TestSchwabApiAdapter:
    """Test cases for SchwabApiAdapter"""

    def setup_method(self):
        self.adapter = SchwabApiAdapter("Schwab")
        self.log = DiagnosticLog()

    def test_option_open_and_close(self):
        output = self.adapter.parse([
            schwab_option_tx(1, 1, 5.0, "OPENING"),
            schwab_option_tx(2, -1, 7.0, "CLOSING", time="2024-03-02T14:30:00+0000"),
        ], self.log)

        opening, closing = output.fills
        assert opening.is_opening and opening.direction is Direction.LONG
        assert not closing.is_opening and closing.direction is Direction.LONG
        assert opening.asset_type is AssetType.OPTION
        assert opening.multiplier == 100
        assert opening.fee == pytest.approx(0.65)
        assert opening.ticker == "ISRG 600C"
        assert opening.instrument == OPTION_SYMBOL
        assert opening.fill_id == "1"

    def test_short_option_open_and_close(self):
        output = self.adapter.parse([
            schwab_option_tx(1, -1, 5.0, "OPENING"),
            schwab_option_tx(2, 1, 3.0, "CLOSING", time="2024-03-02T14:30:00+0000"),
        ], self.log)

        assert [(f.is_opening, f.direction) for f in output.fills] == [
            (True, Direction.SHORT), (False, Direction.SHORT)]

    def test_missing_position_effect_inferred(self):
        output = self.adapter.parse([{
            "activityId": 9, "time": "2024-03-01T14:30:00+0000", "type": "TRADE",
            "transferItems": [{"instrument": {"assetType": "EQUITY", "symbol": "AAPL"},
                               "amount": -10, "price": 150.0}],
        }], self.log)

        fill = output.fills[0]
        assert not fill.is_opening
        assert fill.direction is Direction.LONG
        assert "Transaction 9: no positionEffect, treating sell as closing" in self.log

    def test_non_trade_transactions_skipped(self):
        output = self.adapter.parse([
            {"activityId": 3, "type": "DIVIDEND_OR_INTEREST", "transferItems": []},
            {"activityId": 4, "type": "TRADE", "transferItems": [
                {"instrument": {"assetType": "CURRENCY"}, "cost": -1, "feeType": "COMMISSION"}]},
        ], self.log)

        assert output.fills == []
        assert output.skipped == 2
        assert "transaction 4 has no trade item" in self.log

    def test_malformed_transaction_skipped(self):
        output = self.adapter.parse([None, schwab_option_tx(1, 1, 5.0, "OPENING")], self.log)

        assert len(output.fills) == 1
        assert output.skipped == 1
        assert "Row 1: skipped (unreadable row" in self.log


class TestExchangeApiAdapter:
    """Test cases for ExchangeApiAdapter"""

    def setup_method(self):
        self.log = DiagnosticLog()

    def test_mexc_side_codes(self):
        adapter = ExchangeApiAdapter("MEXC")
        output = adapter.parse([
            {"symbol": "BTC_USDT", "side": 4, "dealVol": 2, "dealAvgPrice": 41000, "profit": 100,
             "totalFee": 0.5, "createTime": 1709254800000, "orderId": "b2"},
            {"symbol": "BTC_USDT", "side": 1, "dealVol": 2, "dealAvgPrice": 40000, "profit": 0,
             "totalFee": 0.5, "createTime": 1709251200000, "orderId": "a1"},
        ], self.log)

        opening, closing = output.fills
        assert opening.is_opening and opening.direction is Direction.LONG
        assert opening.external_id == "a1"
        assert not closing.is_opening and closing.direction is Direction.LONG
        assert closing.reported_pnl == pytest.approx(100)
        assert closing.asset_type is AssetType.CRYPTO

    def test_binance_is_buyer_flag(self):
        adapter = ExchangeApiAdapter("Binance")
        output = adapter.parse([
            {"symbol": "ETHUSDT", "isBuyer": True, "price": "3000", "qty": "1",
             "commission": "0.1", "time": 1709251200000, "id": 5},
            {"symbol": "ETHUSDT", "isBuyer": False, "price": "3100", "qty": "1",
             "commission": "0.1", "time": 1709254800000, "id": 6},
        ], self.log)

        opening, closing = output.fills
        assert opening.is_opening and opening.direction is Direction.LONG
        assert not closing.is_opening and closing.direction is Direction.LONG
        assert closing.fee == pytest.approx(0.1)

    def test_bybit_short_execution(self):
        adapter = ExchangeApiAdapter("ByBit")
        output = adapter.parse([
            {"symbol": "SOLUSDT", "side": "Sell", "execPrice": "100", "execQty": "3",
             "execFee": "0.1", "execTime": "1709251200000", "execId": "x1", "closedPnl": "0"},
        ], self.log)

        fill = output.fills[0]
        assert fill.is_opening and fill.direction is Direction.SHORT
        assert fill.quantity == 3

    def test_invalid_records_skipped(self):
        adapter = ExchangeApiAdapter("ByBit")
        output = adapter.parse([
            {"symbol": "SOLUSDT", "side": "Sell", "execPrice": "100", "execQty": "0"},
            {"symbol": "SOLUSDT", "side": "Funding", "execPrice": "100", "execQty": "1"},
            {"side": "Buy", "execPrice": "100", "execQty": "1"},
        ], self.log)

        assert output.fills == []
        assert output.skipped == 3
        assert "no filled quantity for SOLUSDT" in self.log
        assert "unknown side 'Funding' for SOLUSDT" in self.log

    def test_malformed_record_does_not_abort_batch(self):
        adapter = ExchangeApiAdapter("ByBit")
        output = adapter.parse([
            None,
            {"symbol": "SOLUSDT", "side": "Buy", "execPrice": "100", "execQty": "1",
             "execTime": "1709251200000"},
        ], self.log)

        assert len(output.fills) == 1
        assert output.skipped == 1
        assert "Row 1: skipped (unreadable row" in self.log

    def test_identical_executions_get_distinct_fill_ids(self):
        adapter = ExchangeApiAdapter("ByBit")
        execution = {"symbol": "SOLUSDT", "side": "Buy", "execPrice": "100", "execQty": "1",
                     "execTime": "1709251200000"}
        output = adapter.parse([dict(execution), dict(execution)], self.log)

        first, second = output.fills
        assert first.fill_id != second.fill_id
