"""
Auto-netting adapter for exchange trade-history exports.

Serves both raw fill exports and "closed P&L" exports through one column
mapping: a row closes a position when it carries realized P&L or trades
against the held direction.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..models import AssetType, CanonicalFill
from ..reconciliation.diagnostics import DiagnosticLog
from ..reconciliation.fields import (CanonicalField, FieldMap, FieldResolver,
                                     detect_mapping, resolve)
from ..reconciliation.instruments import classify_instrument
from ..reconciliation.normalize import (parse_flexible_date, parse_flexible_money,
                                        parse_optional_money)
from .base import (AdapterOutput, AdapterShape, BaseAdapter, NetPositionTracker,
                   RawRecord, is_trade_action, parse_side)

logger = logging.getLogger(__name__)

F = CanonicalField

PERP_DEFAULTS = {
    F.SYMBOL: ("Contracts", "Symbol", "Pair", "Market"),
    F.PRICE: ("Exec Price", "Price", "Filled Price", "Avg Fill Price"),
    F.QUANTITY: ("Exec Qty", "Qty", "Filled Quantity", "Filled"),
    F.TIME: ("Transaction Time", "Time(UTC)", "Time", "Order Time"),
    F.PNL: ("Closed P&L", "P&L", "PNL"),
    F.FEE: ("Trading Fee", "Exec Fee", "Fee"),
    F.DIRECTION: ("Side", "Direction"),
}

# Venue -> (declared columns, asset class). Declared columns that appear in
# the headers override synonym detection.
VENUE_DEFAULTS: Dict[str, Tuple[Mapping[CanonicalField, Sequence[str]], AssetType]] = {
    "MEXC": ({
        F.SYMBOL: ("Futures Trading Pair", "Contracts", "Symbol", "Pair"),
        F.PRICE: ("Average Filled Price", "Avg Price", "Price"),
        F.QUANTITY: ("Filled Qty (Crypto)", "Filled Qty", "Qty", "Quantity"),
        F.TIME: ("Time", "Create Time", "Transaction Time"),
        F.PNL: ("Closing PNL", "Realized PNL", "PNL"),
        F.FEE: ("Trading Fee", "Fee"),
        F.DIRECTION: ("Direction", "Side"),
    }, AssetType.CRYPTO),
    "ByBit": (PERP_DEFAULTS, AssetType.CRYPTO),
    "BloFin": ({
        F.SYMBOL: ("Underlying Asset", "Symbol", "Contracts"),
        F.PRICE: ("Avg Fill", "Average Filled Price", "Exec Price"),
        F.QUANTITY: ("Filled", "Exec Qty", "Qty"),
        F.TIME: ("Order Time", "Time"),
        F.PNL: ("PNL", "Closed P&L"),
        F.FEE: ("Fee", "Trading Fee"),
        F.DIRECTION: ("Side",),
    }, AssetType.CRYPTO),
    "Binance": ({
        F.SYMBOL: ("Pair", "Symbol", "Market"),
        F.PRICE: ("Price", "Avg Trading Price"),
        F.QUANTITY: ("Executed", "Quantity", "Filled"),
        F.TIME: ("Date(UTC)", "Time"),
        F.PNL: ("Realized Profit",),
        F.FEE: ("Fee",),
        F.DIRECTION: ("Side", "Type"),
    }, AssetType.CRYPTO),
    "Coinbase": ({
        F.SYMBOL: ("Asset", "Product"),
        F.PRICE: ("Spot Price at Transaction", "Price"),
        F.QUANTITY: ("Quantity Transacted", "Size"),
        F.TIME: ("Timestamp", "Created At"),
        F.FEE: ("Fees and/or Spread", "Fees", "Fee"),
        F.DIRECTION: ("Transaction Type", "Side"),
    }, AssetType.CRYPTO),
    "Interactive Brokers": ({
        F.SYMBOL: ("Symbol",),
        F.PRICE: ("T. Price", "TradePrice", "Price"),
        F.QUANTITY: ("Quantity",),
        F.TIME: ("Date/Time", "TradeDate"),
        F.PNL: ("Realized P/L", "FifoPnlRealized"),
        F.FEE: ("Comm/Fee", "IBCommission"),
        F.DIRECTION: ("Buy/Sell",),
    }, AssetType.STOCK),
}

ID_COLUMNS = ("Order ID", "Order No", "Order No.", "Trade ID", "Exec ID", "TradeID", "orderId")


class AggregatedExchangeAdapter(BaseAdapter):
    """
    Fill-stream adapter for MEXC, ByBit, BloFin, Binance, Coinbase and
    Interactive Brokers history exports.
    """

    shape = AdapterShape.FILL_STREAM
    format_name = "trade history"

    def __init__(self, venue: str, config: Optional[Dict[str, Any]] = None):
        super().__init__(venue, config)
        defaults, asset_type = VENUE_DEFAULTS.get(venue, (PERP_DEFAULTS, AssetType.CRYPTO))
        self.fallback = defaults
        self.asset_type = asset_type

    def build_field_map(self, headers: Sequence[str], log: DiagnosticLog) -> FieldMap:
        field_map = detect_mapping(headers).with_preferred(self.fallback, headers, log)
        log.append(f"Column mapping: {field_map.describe()}")
        if field_map.missing():
            field_map = field_map.with_fallback(self.fallback, log)
        return field_map

    def parse(self, records: Sequence[RawRecord], log: DiagnosticLog) -> AdapterOutput:
        output = self.new_output()
        log.append(f"Starting {self.venue} processing with {len(records)} rows")
        if not records:
            return self.finish(output, log)

        resolver = FieldResolver(self.build_field_map(list(records[0].keys()), log))

        pending = []
        for row_number, record in enumerate(records, start=1):
            parsed = self.read_row(self._parse_row, record, output, log, row_number, resolver)
            if parsed is not None:
                pending.append(parsed)

        # Netting depends on history, so classify in time order
        pending.sort(key=lambda p: p["timestamp"])
        tracker = NetPositionTracker()
        for row in pending:
            is_opening, direction = tracker.classify(
                row["instrument"], row["side"], row["quantity"],
                has_pnl=row["pnl"] != 0, explicit_opening=row["explicit"])

            reported = row["pnl"] if (not is_opening and row["pnl"] != 0) else None
            self.accept_fill(output, log, row["row_number"], CanonicalFill(
                instrument=row["instrument"],
                timestamp=row["timestamp"],
                price=row["price"],
                quantity=row["quantity"],
                direction=direction,
                is_opening=is_opening,
                fee=row["fee"],
                asset_type=row["asset_type"],
                multiplier=self.calculator.multiplier_for(row["asset_type"], row["instrument"]),
                external_id=row["external_id"],
                sequence=row["row_number"],
                reported_pnl=reported,
                notes=f"Auto-aggregated via FIFO ({'imported' if reported is not None else 'calculated'} P&L)",
            ))

        return self.finish(output, log)

    def _parse_row(self, record: RawRecord, output: AdapterOutput, log: DiagnosticLog,
                   row_number: int, resolver: FieldResolver) -> Optional[Dict[str, Any]]:
        symbol = resolver.get(record, F.SYMBOL).strip()
        if not symbol:
            self.skip(output, log, row_number, "missing symbol")
            return None

        raw_side = resolver.get(record, F.DIRECTION)
        if raw_side.strip() and not is_trade_action(raw_side):
            self.skip(output, log, row_number, f"non-trade action '{raw_side.strip()}'")
            return None

        raw_price = resolver.get(record, F.PRICE)
        price = parse_optional_money(raw_price)
        if price is None or price <= 0 or price > self.max_price:
            self.skip(output, log, row_number, f"invalid price '{raw_price}' for {symbol}")
            return None

        raw_qty = resolver.get(record, F.QUANTITY)
        signed_qty = parse_optional_money(raw_qty)
        if not signed_qty:
            self.skip(output, log, row_number, f"invalid quantity '{raw_qty}' for {symbol}")
            return None

        if raw_side.strip():
            side, explicit = parse_side(raw_side)
        else:
            # Signed quantity exports: negative means sell
            side, explicit = parse_side("sell" if signed_qty < 0 else "buy")

        asset_type = classify_instrument(symbol, default=self.asset_type)
        pnl = parse_flexible_money(resolver.get(record, F.PNL), log, "pnl") if resolver.has(F.PNL) else 0.0

        return {
            "instrument": symbol,
            "timestamp": parse_flexible_date(resolver.get(record, F.TIME), log),
            "price": price,
            "quantity": abs(signed_qty),
            "side": side,
            "explicit": explicit,
            "fee": abs(parse_flexible_money(resolver.get(record, F.FEE), log, "fee")),
            "pnl": pnl,
            "asset_type": asset_type,
            "external_id": resolve(record, ID_COLUMNS) or None,
            "row_number": row_number,
        }
