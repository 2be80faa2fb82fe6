"""
Integration tests for the import pipeline
"""

import asyncio
from datetime import datetime, timezone

import pytest

from tradebook.models import (AssetType, Direction, ImportFailure, ImportResult, StructuralImportError,
                              UnsupportedVenueError, Venue)
from tradebook.pipeline import (ImportBatch, ImportPipeline, import_api_transactions, import_csv,
                                sync_all)

MEXC_CSV = (
    "Futures Trading Pair,Time,Direction,Average Filled Price,Filled Qty (Crypto),Realized PNL,Trading Fee\n"
    "BTC_USDT,2024-03-01 10:00:10,Open Long,10,1,,0\n"
    "BTC_USDT,2024-03-01 10:00:40,Open Long,12,2,,0\n"
    "BTC_USDT,2024-03-01 11:00:05,Close Long,15,3,,0\n"
)

SCHWAB_TRANSACTIONS_CSV = (
    '"Date","Action","Symbol","Description","Quantity","Price","Fees & Comm","Amount"\n'
    '"01/10/2024","Buy to Open","SPY 01/19/2024 500.00 C","CALL SPDR S&P 500","1","$2.00","$0.66","-$200.66"\n'
    '"01/10/2024","Buy","AAPL","APPLE INC","10","$150.00","","-$1,500.00"\n'
    '"01/12/2024","Qualified Dividend","AAPL","APPLE INC","","","","$2.40"\n'
)

HEROFX_CSV = (
    "Instrument,Side,Amount,Entry Time,Entry Price,Exit Time,Exit Price,Fee,Swap,P&L,Net P&L,Position ID\n"
    "EURUSD,Buy,1,2024-01-15 12:00:00,1.1000,2024-01-15 14:00:00,1.1100,-0.5,0,100,99.5,77\n"
)

BINANCE_CSV = (
    "Date(UTC),Pair,Side,Price,Executed,Amount,Fee\n"
    "2024-03-01 10:00:00,BTCUSDT,BUY,40000,0.5BTC,20000USDT,10USDT\n"
    "2024-03-01 12:00:00,BTCUSDT,SELL,41000,0.5BTC,20500USDT,10USDT\n"
)

COINBASE_CSV = (
    "Transactions\n"
    "User,jane@example.com,5f1c\n"
    "Timestamp,Transaction Type,Asset,Quantity Transacted,Spot Price Currency,Spot Price at Transaction,"
    "Subtotal,Total (inclusive of fees and/or spread),Fees and/or Spread,Notes\n"
    '2024-03-01T10:00:00Z,Buy,BTC,0.5,USD,"$40,000.00","$20,000.00","$20,010.00",$10.00,Bought 0.5 BTC\n'
    '2024-03-02T10:00:00Z,Send,BTC,0.1,USD,"$40,500.00","$4,050.00","$4,050.00",$0.00,Sent 0.1 BTC\n'
    '2024-03-03T10:00:00Z,Sell,BTC,0.5,USD,"$42,000.00","$21,000.00","$20,990.00",$10.00,Sold 0.5 BTC\n'
)

BLOFIN_CSV = (
    "Underlying Asset,Margin Mode,Leverage,Order Time,Side,Avg Fill,Price,Filled,Total,PNL,PNL%,Fee,Status\n"
    "BTCUSDT,Cross,10,03/01/2024 10:00:00,Open Long,40000,Market,0.5 BTC,20000 USDT,--,--,2 USDT,Filled\n"
    "BTCUSDT,Cross,10,03/01/2024 12:00:00,Close Long,41000,Market,0.5 BTC,20500 USDT,500 USDT,2.5%,2 USDT,Filled\n"
)

MEXC_ORDERS_CSV = (
    "Time,Futures Trading Pair,Direction,Leverage,Order Type,Average Filled Price,"
    "Filled Qty (Crypto),Trading Fee,Closing PNL\n"
    "2024-03-01 10:00:00,SOLUSDT,buy long,20,Market,100,10,0.5,0\n"
    "2024-03-01 11:00:00,SOLUSDT,sell long,20,Market,110,10,0.5,100\n"
    "2024-03-01 12:00:00,ZECUSDT,sell short,20,Market,30,5,0.1,0\n"
    "2024-03-01 13:00:00,ZECUSDT,buy short,20,Market,28,5,0.1,10\n"
)

IB_CSV = (
    "Symbol,Date/Time,Quantity,T. Price,Comm/Fee,Realized P/L\n"
    "AAPL,2024-03-01 10:00:00,10,150,-1,0\n"
    "AAPL,2024-03-01 11:00:00,-10,155,-1,48\n"
)


class TestImportPipeline:
    """Test cases for ImportPipeline"""

    def setup_method(self):
        self.as_of = datetime(2025, 6, 1, tzinfo=timezone.utc)
        self.pipeline = ImportPipeline(as_of=self.as_of)

    def test_bybit_closed_pnl_export(self, bybit_closed_pnl_csv):
        result = self.pipeline.import_csv(bybit_closed_pnl_csv, "ByBit")

        assert isinstance(result, ImportResult)
        assert result.venue == "ByBit"
        assert result.trade_count == 1
        trade = result.trades[0]
        assert trade.pnl == pytest.approx(500)
        assert trade.fees == pytest.approx(4)
        assert trade.pnl_percentage == pytest.approx(2.5)
        assert trade.notes == "Auto-aggregated via FIFO (imported P&L)"

        logs = "\n".join(result.logs)
        assert "Detected header at row 1" in logs
        assert "Detected ByBit trade history format" in logs
        assert "Column mapping: " in logs
        assert "processed 2 fills, skipped 0 rows" in logs
        assert result.logs[-1] == "Generated 1 trades from ByBit trade history"

    def test_partial_fills_aggregated(self):
        result = self.pipeline.import_csv(MEXC_CSV, Venue.MEXC)

        assert result.trade_count == 1
        trade = result.trades[0]
        assert trade.quantity == pytest.approx(3)
        assert trade.entry_price == pytest.approx(34 / 3)
        assert trade.exit_price == pytest.approx(15)
        assert trade.pnl == pytest.approx(11)
        assert trade.pnl_percentage == pytest.approx(11 / 34 * 100)
        assert any("Aggregated 2 partial fills for BTC_USDT" in line for line in result.logs)

    def test_aggregation_can_be_disabled(self):
        pipeline = ImportPipeline({"aggregation": {"enabled": False}})
        result = pipeline.import_csv(MEXC_CSV, "MEXC")
        assert result.trade_count == 2

    def test_schwab_realized_gains(self, schwab_realized_csv):
        result = self.pipeline.import_csv(schwab_realized_csv, "schwab")

        assert result.trade_count == 2
        assert result.total_pnl == pytest.approx(200)
        assert any("Detected Schwab realized gain/loss format" in line for line in result.logs)
        assert any("Row 3: skipped (summary row 'Total')" in line for line in result.logs)

    def test_expired_option_and_open_positions(self):
        result = self.pipeline.import_csv(SCHWAB_TRANSACTIONS_CSV, "Schwab")

        assert result.trade_count == 1
        expired = result.trades[0]
        assert expired.exit_price == 0
        assert expired.pnl == pytest.approx(-200.66)
        assert expired.pnl_percentage == -100
        assert expired.exit_date == datetime(2024, 1, 19, tzinfo=timezone.utc)

        assert len(result.open_positions) == 1
        assert result.open_positions[0]["ticker"] == "AAPL"
        assert "Open position: AAPL - 10 LONG still held" in result.logs

    def test_option_not_expired_before_expiration(self):
        pipeline = ImportPipeline(as_of=datetime(2024, 1, 15, tzinfo=timezone.utc))
        result = pipeline.import_csv(SCHWAB_TRANSACTIONS_CSV, "Schwab")

        assert result.trade_count == 0
        assert len(result.open_positions) == 2

    def test_herofx_complete_history(self):
        result = self.pipeline.import_csv(HEROFX_CSV, "HeroFX")

        assert result.trade_count == 1
        assert result.trades[0].pnl == pytest.approx(99.5)
        assert result.trades[0].entry_date == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)

    def test_empty_input(self):
        with pytest.raises(StructuralImportError) as exc:
            self.pipeline.import_csv("   \n", "ByBit")
        assert exc.value.logs

    def test_no_header_row(self):
        with pytest.raises(StructuralImportError) as exc:
            self.pipeline.import_csv("hello,world\nfoo,bar\n", "ByBit")
        assert "No header row found in the first 25 lines" in exc.value.logs

    def test_unsupported_venue(self):
        with pytest.raises(UnsupportedVenueError):
            self.pipeline.import_csv(MEXC_CSV, "Kraken")

    def test_orphan_close_logged(self):
        csv_text = (
            "Futures Trading Pair,Time,Direction,Average Filled Price,Filled Qty (Crypto),Realized PNL,Trading Fee\n"
            "BTC_USDT,2024-03-01 11:00:05,Close Long,15,5,,0\n"
        )
        result = self.pipeline.import_csv(csv_text, "MEXC")

        assert result.trades == []
        unmatched = [line for line in result.logs if "unmatched closing quantity" in line]
        assert len(unmatched) == 1
        assert "quantity 5 " in unmatched[0]

    def test_reimport_is_deterministic(self, bybit_closed_pnl_csv):
        first = self.pipeline.import_csv(bybit_closed_pnl_csv, "ByBit")
        second = self.pipeline.import_csv(bybit_closed_pnl_csv, "ByBit")

        assert [t.id for t in first.trades] == [t.id for t in second.trades]
        assert [t.fingerprint for t in first.trades] == [t.fingerprint for t in second.trades]

    def test_import_file(self, tmp_path, bybit_closed_pnl_csv):
        path = tmp_path / "bybit.csv"
        path.write_text(bybit_closed_pnl_csv, encoding="utf-8")

        result = self.pipeline.import_file(path, "ByBit")
        assert result.trade_count == 1

    def test_import_missing_file(self, tmp_path):
        with pytest.raises(StructuralImportError):
            self.pipeline.import_file(tmp_path / "missing.csv", "ByBit")

    def test_paste_import(self):
        text = "\n".join([
            "Entry Time\tType\tSide\tAmount\tEntry Price\tSL Price\tTP Price\t"
            "Exit Time\tExit Price\tFee\tSwap\tP&L\tNet P&L",
            "EURUSD",
            "2024-01-15 12:00:00\tTP\tBuy\t1\t1.1000\t1.0950\t1.1100\t2024-01-15 14:00:00\t1.1100\t-0.5\t0\t100\t99.5",
        ])
        result = self.pipeline.import_paste(text)

        assert result.trade_count == 1
        assert result.trades[0].notes.startswith("Exit: TP")
        assert result.logs[-1] == "=== 1 trade(s) imported ==="

    def test_empty_paste(self):
        with pytest.raises(StructuralImportError):
            self.pipeline.import_paste("  ")

    def test_schwab_api_round_trip(self):
        def tx(activity_id, amount, price, effect, time):
            return {
                "activityId": activity_id, "time": time, "type": "TRADE",
                "transferItems": [
                    {"instrument": {"assetType": "CURRENCY"}, "cost": -0.65, "feeType": "COMMISSION"},
                    {"instrument": {"assetType": "OPTION", "symbol": "ISRG  251031C00600000",
                                    "underlyingSymbol": "ISRG", "strikePrice": 600, "putCall": "CALL"},
                     "amount": amount, "price": price, "positionEffect": effect},
                ],
            }

        result = self.pipeline.import_api_transactions([
            tx(1, 1, 5.0, "OPENING", "2024-03-01T14:30:00+0000"),
            tx(2, -1, 7.0, "CLOSING", "2024-03-02T15:00:00+0000"),
        ], "Schwab")

        assert result.trade_count == 1
        trade = result.trades[0]
        assert trade.ticker == "ISRG 600C"
        assert trade.fees == pytest.approx(1.3)
        assert trade.pnl == pytest.approx(200 - 1.3)
        assert trade.pnl_percentage == pytest.approx((200 - 1.3) / 500 * 100)

    def test_api_venue_without_adapter(self):
        with pytest.raises(UnsupportedVenueError):
            import_api_transactions([], "HeroFX")

    def test_config_overrides_merge_with_defaults(self):
        pipeline = ImportPipeline({"header_detection": {"scan_lines": 3}})

        assert pipeline.scan_lines == 3
        assert pipeline.min_keyword_hits == 2
        assert pipeline.config["multipliers"]["option"] == 100

    def test_module_level_import_csv(self, bybit_closed_pnl_csv):
        assert import_csv(bybit_closed_pnl_csv, "bybit").trade_count == 1


class TestVenueExports:
    """Per-venue history exports imported end to end"""

    def setup_method(self):
        self.pipeline = ImportPipeline(as_of=datetime(2025, 6, 1, tzinfo=timezone.utc))

    def test_binance_trade_history(self):
        result = self.pipeline.import_csv(BINANCE_CSV, "Binance")

        assert result.trade_count == 1
        trade = result.trades[0]
        assert trade.quantity == pytest.approx(0.5)
        assert trade.entry_price == pytest.approx(40000)
        assert trade.exit_price == pytest.approx(41000)
        assert trade.fees == pytest.approx(20)
        assert trade.pnl == pytest.approx(480)
        assert trade.pnl_percentage == pytest.approx(2.4)
        assert "Using venue column 'Executed' for 'quantity' instead of 'Amount'" in result.logs

    def test_coinbase_transactions_with_preamble(self):
        result = self.pipeline.import_csv(COINBASE_CSV, "Coinbase")

        assert result.trade_count == 1
        trade = result.trades[0]
        assert trade.ticker == "BTC"
        assert trade.entry_price == pytest.approx(40000)
        assert trade.exit_price == pytest.approx(42000)
        assert trade.fees == pytest.approx(20)
        assert trade.pnl == pytest.approx(980)
        assert trade.pnl_percentage == pytest.approx(4.9)
        assert "Row 2: skipped (non-trade action 'Send')" in result.logs

    def test_blofin_order_history(self):
        result = self.pipeline.import_csv(BLOFIN_CSV, "BloFin")

        assert result.trade_count == 1
        trade = result.trades[0]
        assert trade.ticker == "BTCUSDT"
        assert trade.quantity == pytest.approx(0.5)
        assert trade.entry_price == pytest.approx(40000)
        assert trade.exit_price == pytest.approx(41000)
        assert trade.fees == pytest.approx(4)
        assert trade.pnl == pytest.approx(500)
        assert trade.pnl_percentage == pytest.approx(2.5)
        assert "Using venue column 'Avg Fill' for 'price' instead of 'Price'" in result.logs

    def test_mexc_order_export_sides(self):
        result = self.pipeline.import_csv(MEXC_ORDERS_CSV, "MEXC")

        trades = {t.ticker: t for t in result.trades}
        assert set(trades) == {"SOLUSDT", "ZECUSDT"}

        sol = trades["SOLUSDT"]
        assert sol.direction is Direction.LONG
        assert sol.quantity == pytest.approx(10)
        assert sol.fees == pytest.approx(1.0)
        assert sol.pnl == pytest.approx(100)

        zec = trades["ZECUSDT"]
        assert zec.direction is Direction.SHORT
        assert zec.entry_price == pytest.approx(30)
        assert zec.exit_price == pytest.approx(28)
        assert zec.pnl == pytest.approx(10)
        assert result.open_positions == []

    def test_interactive_brokers_signed_quantities(self):
        result = self.pipeline.import_csv(IB_CSV, "Interactive Brokers")

        assert result.trade_count == 1
        trade = result.trades[0]
        assert trade.direction is Direction.LONG
        assert trade.asset_type is AssetType.STOCK
        assert trade.fees == pytest.approx(2)
        assert trade.pnl == pytest.approx(48)

    def test_naive_as_of(self):
        result = ImportPipeline(as_of=datetime(2025, 6, 1)).import_csv(SCHWAB_TRANSACTIONS_CSV, "Schwab")

        assert result.trade_count == 1
        assert result.trades[0].exit_price == 0


class TestSyncAll:
    """Test cases for parallel batch imports"""

    def test_batches_isolated(self, bybit_closed_pnl_csv):
        batches = [
            ImportBatch(venue="ByBit", text=bybit_closed_pnl_csv),
            ImportBatch(venue="MEXC", text="no header here\n"),
            ImportBatch(venue="MEXC", text=MEXC_CSV),
        ]
        results = asyncio.run(sync_all(batches))

        assert len(results) == 3
        assert isinstance(results[0], ImportResult)
        assert isinstance(results[1], ImportFailure)
        assert isinstance(results[2], ImportResult)
        assert results[0].trade_count == 1
        assert results[2].trades[0].quantity == pytest.approx(3)
