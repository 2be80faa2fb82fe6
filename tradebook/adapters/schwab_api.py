"""
Schwab Trader API transaction objects -> directional fills
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..models import AssetType, CanonicalFill, Direction
from ..reconciliation.diagnostics import DiagnosticLog
from ..reconciliation.normalize import parse_flexible_date, parse_optional_money
from .base import AdapterOutput, AdapterShape, BaseAdapter

logger = logging.getLogger(__name__)

OPTION_ASSET_TYPES = ("OPTION",)


def find_trade_item(items: Sequence[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    """The priced, non-fee, non-cash leg of a transaction"""
    for item in items:
        instrument = item.get("instrument") or {}
        if item.get("price") is None or item.get("feeType"):
            continue
        if instrument.get("assetType") == "CURRENCY":
            continue
        return item
    return None


def total_fees(items: Sequence[Mapping[str, Any]]) -> float:
    return sum(abs(parse_optional_money(item.get("cost")) or 0.0)
               for item in items if item.get("feeType"))


def display_symbol(instrument: Mapping[str, Any]) -> str:
    """``ISRG 600C`` for options, the plain symbol otherwise"""
    symbol = instrument.get("symbol", "")
    underlying = instrument.get("underlyingSymbol") or symbol
    if instrument.get("assetType") not in OPTION_ASSET_TYPES:
        return underlying
    strike = parse_optional_money(instrument.get("strikePrice"))
    put_call = (instrument.get("putCall") or "")[:1]
    strike_text = f"{strike:g}" if strike is not None else ""
    return f"{underlying} {strike_text}{put_call}"


class SchwabApiAdapter(BaseAdapter):
    """
    Fill-stream adapter for ``/accounts/{hash}/transactions`` responses.

    Only ``TRADE`` transactions with transfer items are used. The queue key is
    the full instrument symbol so calls and puts on one underlying never share
    a queue.
    """

    shape = AdapterShape.FILL_STREAM
    format_name = "API transactions"

    def parse(self, records: Sequence[Mapping[str, Any]], log: DiagnosticLog) -> AdapterOutput:
        output = self.new_output()
        log.append(f"Processing {len(records)} {self.venue} API transactions")

        for row_number, tx in enumerate(records, start=1):
            fill = self.read_row(self._to_fill, tx, output, log, row_number)
            if fill is not None:
                self.accept_fill(output, log, row_number, fill)

        return self.finish(output, log)

    def _to_fill(self, tx: Mapping[str, Any], output: AdapterOutput, log: DiagnosticLog,
                 row_number: int) -> Optional[CanonicalFill]:
        activity_id = str(tx.get("activityId", row_number))
        items: List[Mapping[str, Any]] = tx.get("transferItems") or []

        if tx.get("type") != "TRADE" or not items:
            self.skip(output, log, row_number, f"transaction {activity_id} is {tx.get('type')}, not a trade")
            return None

        item = find_trade_item(items)
        if item is None:
            self.skip(output, log, row_number, f"transaction {activity_id} has no trade item")
            return None

        instrument: Dict[str, Any] = item.get("instrument") or {}
        symbol = instrument.get("symbol") or instrument.get("underlyingSymbol") or ""
        if not symbol:
            self.skip(output, log, row_number, f"transaction {activity_id} has no symbol")
            return None

        price = parse_optional_money(item.get("price"))
        if price is None or price <= 0 or price > self.max_price:
            self.skip(output, log, row_number, f"invalid price {item.get('price')} for {symbol}")
            return None

        amount = parse_optional_money(item.get("amount")) or 0.0
        if amount == 0:
            self.skip(output, log, row_number, f"zero quantity for {symbol}")
            return None

        effect = item.get("positionEffect")
        if effect == "OPENING":
            is_opening = True
            direction = Direction.LONG if amount > 0 else Direction.SHORT
        elif effect == "CLOSING":
            is_opening = False
            direction = Direction.LONG if amount < 0 else Direction.SHORT
        else:
            # Equity trades may omit positionEffect: buys open, sells close longs
            is_opening = amount > 0
            direction = Direction.LONG
            log.append(f"Transaction {activity_id}: no positionEffect, treating "
                       f"{'buy as opening' if is_opening else 'sell as closing'}")

        asset_type = AssetType.OPTION if instrument.get("assetType") in OPTION_ASSET_TYPES else AssetType.STOCK

        return CanonicalFill(
            instrument=symbol,
            timestamp=parse_flexible_date(tx.get("time") or tx.get("tradeDate"), log),
            price=price,
            quantity=abs(amount),
            direction=direction,
            is_opening=is_opening,
            fee=total_fees(items),
            ticker=display_symbol(instrument),
            asset_type=asset_type,
            multiplier=self.calculator.multiplier_for(asset_type, symbol),
            fill_id=activity_id,
            external_id=activity_id,
            notes=f"Imported from {self.venue} API",
        )
