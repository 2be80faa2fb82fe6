"""
Crypto exchange API fills (MEXC futures orders, MEXC spot trades, ByBit
executions) -> auto-netted directional fills
"""

import logging
from typing import Any, Mapping, Optional, Sequence

from ..models import AssetType, CanonicalFill
from ..reconciliation.diagnostics import DiagnosticLog
from ..reconciliation.fields import resolve
from ..reconciliation.normalize import (parse_flexible_date, parse_flexible_money,
                                        parse_optional_money)
from .base import (AdapterOutput, AdapterShape, BaseAdapter, NetPositionTracker,
                   is_trade_action, parse_side)

logger = logging.getLogger(__name__)

SYMBOL_KEYS = ("symbol", "ticker", "instId")
# Executed average first, then the order price
PRICE_KEYS = ("dealAvgPrice", "avgPrice", "execPrice", "price", "entryPrice")
# Filled quantity before ordered quantity
QUANTITY_KEYS = ("dealVol", "execQty", "executedQty", "quantity", "qty", "vol")
PNL_KEYS = ("pnl", "profit", "closedPnl", "realised_pnl", "realisedPnl")
FEE_KEYS = ("fee", "totalFee", "commission", "execFee")
TIME_KEYS = ("createTime", "execTime", "time", "updateTime")
ID_KEYS = ("execId", "orderId", "id")


class ExchangeApiAdapter(BaseAdapter):
    """Fill-stream adapter for exchange order/execution objects"""

    shape = AdapterShape.FILL_STREAM
    format_name = "API fills"

    def parse(self, records: Sequence[Mapping[str, Any]], log: DiagnosticLog) -> AdapterOutput:
        output = self.new_output()
        log.append(f"Processing {len(records)} {self.venue} API records")

        pending = []
        for row_number, record in enumerate(records, start=1):
            row = self.read_row(self._parse_record, record, output, log, row_number)
            if row is not None:
                pending.append(row)

        pending.sort(key=lambda r: r["timestamp"])
        tracker = NetPositionTracker()
        for row in pending:
            is_opening, direction = tracker.classify(
                row["instrument"], row["side"], row["quantity"],
                has_pnl=row["pnl"] != 0, explicit_opening=row["explicit"])
            self.accept_fill(output, log, row["row_number"], CanonicalFill(
                instrument=row["instrument"],
                timestamp=row["timestamp"],
                price=row["price"],
                quantity=row["quantity"],
                direction=direction,
                is_opening=is_opening,
                fee=row["fee"],
                asset_type=AssetType.CRYPTO,
                external_id=row["external_id"],
                sequence=row["row_number"],
                reported_pnl=row["pnl"] if (not is_opening and row["pnl"] != 0) else None,
                notes=f"Imported from {self.venue} API",
            ))

        return self.finish(output, log)

    def _parse_record(self, record: Mapping[str, Any], output: AdapterOutput,
                      log: DiagnosticLog, row_number: int) -> Optional[dict]:
        symbol = resolve(record, SYMBOL_KEYS).strip()
        if not symbol:
            self.skip(output, log, row_number, "missing symbol")
            return None

        quantity = abs(parse_optional_money(resolve(record, QUANTITY_KEYS)) or 0.0)
        if quantity <= 0:
            self.skip(output, log, row_number, f"no filled quantity for {symbol}")
            return None

        price = parse_optional_money(resolve(record, PRICE_KEYS))
        if price is None or price <= 0 or price > self.max_price:
            self.skip(output, log, row_number, f"invalid price for {symbol}")
            return None

        if "isBuyer" in record:
            raw_side = "buy" if record["isBuyer"] else "sell"
        else:
            raw_side = resolve(record, ("side",))
        if not is_trade_action(raw_side):
            self.skip(output, log, row_number, f"unknown side '{raw_side}' for {symbol}")
            return None
        side, explicit = parse_side(raw_side)

        return {
            "instrument": symbol,
            "timestamp": parse_flexible_date(resolve(record, TIME_KEYS), log),
            "price": price,
            "quantity": quantity,
            "side": side,
            "explicit": explicit,
            "fee": abs(parse_flexible_money(resolve(record, FEE_KEYS), log, "fee")),
            "pnl": parse_flexible_money(resolve(record, PNL_KEYS), log, "pnl"),
            "external_id": resolve(record, ID_KEYS) or None,
            "row_number": row_number,
        }
