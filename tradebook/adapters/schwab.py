"""
Schwab CSV exports: Realized Gain/Loss (closed lots) and account
transaction history (raw buy/sell legs)
"""

import logging
from typing import Optional, Sequence, Tuple

from ..models import AssetType, CanonicalFill, Direction, Trade, stable_id
from ..reconciliation.diagnostics import DiagnosticLog
from ..reconciliation.fields import resolve
from ..reconciliation.instruments import direction_for_option, option_type_of
from ..reconciliation.normalize import (parse_flexible_date, parse_flexible_money,
                                        parse_optional_money)
from ..reconciliation.pnl import pnl_percentage
from .base import AdapterOutput, AdapterShape, BaseAdapter, RawRecord

logger = logging.getLogger(__name__)

REALIZED_MARKERS = ("total gain/loss", "cost basis", "proceeds", "gain/loss")

SYMBOL_COLUMNS = ("Symbol", "Ticker", "Security")
ACTION_COLUMNS = ("Action", "Type")
DATE_COLUMNS = ("Date", "Trade Date", "Transaction Date")
PRICE_COLUMNS = ("Price", "Exec Price", "Fill Price")
QUANTITY_COLUMNS = ("Quantity", "Qty", "Shares")
FEE_COLUMNS = ("Fees & Comm", "Fee", "Commission", "Fees")


def is_realized_gains(headers: Sequence[str]) -> bool:
    cleaned = [str(h).replace('"', "").replace("'", "").lower() for h in headers]
    return any(marker in h for h in cleaned for marker in REALIZED_MARKERS)


def classify_action(action: str) -> Optional[Tuple[bool, Direction]]:
    """
    Map a Schwab action to (is_opening, position direction).

    Returns:
        None for non-trade actions (dividends, transfers, journal entries)
    """
    text = (action or "").strip().lower()
    if "cover" in text or "buy to close" in text:
        return False, Direction.SHORT
    if ("sell" in text and "short" in text) or "sell to open" in text:
        return True, Direction.SHORT
    if "sell" in text:
        return False, Direction.LONG
    if "buy" in text:
        return True, Direction.LONG
    if "short" in text:
        return True, Direction.SHORT
    return None


class SchwabRealizedGainsAdapter(BaseAdapter):
    """Direct-trade adapter for the Realized Gain/Loss Summary and Details exports"""

    shape = AdapterShape.DIRECT
    format_name = "realized gain/loss"

    def parse(self, records: Sequence[RawRecord], log: DiagnosticLog) -> AdapterOutput:
        output = self.new_output()
        log.append(f"Starting Schwab Realized Gain/Loss processing with {len(records)} rows")
        self._details_logged = False

        for row_number, row in enumerate(records, start=1):
            trade = self.read_row(self._parse_row, row, output, log, row_number)
            if trade is not None:
                output.trades.append(trade)

        return self.finish(output, log)

    def _parse_row(self, row: RawRecord, output: AdapterOutput, log: DiagnosticLog,
                   row_number: int) -> Optional[Trade]:
        symbol = resolve(row, ["Symbol"]).strip()
        if not symbol or symbol == "Symbol" or symbol.lower().startswith("total"):
            self.skip(output, log, row_number, f"summary row '{symbol}'" if symbol else "blank symbol")
            return None

        quantity = abs(parse_optional_money(resolve(row, ["Quantity", "Qty"])) or 0.0)
        if quantity <= 0:
            self.skip(output, log, row_number, f"invalid quantity for {symbol}")
            return None

        opened = resolve(row, ["Opened Date", "Open Date", "Opening Date"]).strip()
        if opened and not self._details_logged:
            log.append("Details format detected - using Opened Date and Closed Date")
            self._details_logged = True

        return self._build_trade(row, symbol, quantity, opened, log, row_number)

    def _build_trade(self, row: RawRecord, symbol: str, quantity: float,
                     opened: str, log: DiagnosticLog, row_number: int) -> Trade:
        name = resolve(row, ["Name", "Description"])
        option_type = option_type_of(symbol, name)
        is_option = option_type is not None
        multiplier = self.calculator.multiplier_for(AssetType.OPTION) if is_option else 1.0

        proceeds = parse_flexible_money(resolve(row, ["Proceeds"]), log, "proceeds")
        cost_basis = parse_flexible_money(resolve(row, ["Cost Basis (CB)", "Cost Basis"]), log, "cost basis")
        pnl = parse_flexible_money(
            resolve(row, ["Total Gain/Loss ($)", "Total Gain/Loss", "Gain/Loss ($)"]), log, "gain/loss")

        # Per-share columns exist only in the Details export
        entry_price = parse_optional_money(resolve(row, ["Cost Per Share", "Average Cost", "Price"])) or 0.0
        exit_price = parse_optional_money(
            resolve(row, ["Proceeds Per Share", "Average Price", "Closing Price"])) or 0.0
        if not entry_price:
            entry_price = cost_basis / quantity / multiplier
        if not exit_price:
            exit_price = proceeds / quantity / multiplier

        closed_raw = resolve(row, ["Closed Date", "Transaction Closed Date"])
        exit_date = parse_flexible_date(closed_raw, log)
        entry_date = parse_flexible_date(opened, log) if opened else exit_date

        source = "Details" if opened else "Summary"
        if is_option:
            notes = f"{option_type.value} Option - Imported from Schwab {source} CSV"
            direction = direction_for_option(option_type)
        else:
            notes = f"Imported from Schwab {source} CSV"
            direction = Direction.LONG

        return Trade(
            id=stable_id(symbol, closed_raw, opened, quantity, pnl, row_number, prefix="schwab"),
            exchange=self.venue,
            ticker=symbol,
            asset_type=AssetType.OPTION if is_option else AssetType.STOCK,
            direction=direction,
            entry_price=entry_price,
            exit_price=exit_price,
            quantity=quantity,
            entry_date=entry_date,
            exit_date=exit_date,
            fees=0.0,  # already inside Schwab's gain/loss figure
            pnl=pnl,
            pnl_percentage=pnl_percentage(pnl, entry_price, quantity, multiplier),
            notes=notes,
            multiplier=multiplier,
        )


class SchwabTransactionsAdapter(BaseAdapter):
    """Fill-stream adapter for the account transaction history export"""

    shape = AdapterShape.FILL_STREAM
    format_name = "transactions"

    def parse(self, records: Sequence[RawRecord], log: DiagnosticLog) -> AdapterOutput:
        output = self.new_output()
        log.append(f"Starting Schwab CSV processing with {len(records)} rows")

        for row_number, row in enumerate(records, start=1):
            fill = self.read_row(self._parse_row, row, output, log, row_number)
            if fill is not None:
                self.accept_fill(output, log, row_number, fill)

        return self.finish(output, log)

    def _parse_row(self, row: RawRecord, output: AdapterOutput, log: DiagnosticLog,
                   row_number: int) -> Optional[CanonicalFill]:
        action = resolve(row, ACTION_COLUMNS)
        classified = classify_action(action)
        if classified is None:
            self.skip(output, log, row_number, f"non-trade action '{action.strip()}'")
            return None

        symbol = resolve(row, SYMBOL_COLUMNS).strip()
        if not symbol:
            self.skip(output, log, row_number, "missing symbol")
            return None

        raw_price = resolve(row, PRICE_COLUMNS)
        price = parse_optional_money(raw_price)
        if price is None or price <= 0 or price > self.max_price:
            self.skip(output, log, row_number, f"invalid price '{raw_price}' for {symbol}")
            return None

        quantity = abs(parse_optional_money(resolve(row, QUANTITY_COLUMNS)) or 0.0)
        if quantity <= 0:
            self.skip(output, log, row_number, f"invalid quantity for {symbol}")
            return None

        is_opening, direction = classified
        description = resolve(row, ["Description"])
        asset_type = AssetType.OPTION if option_type_of(symbol, description) else AssetType.STOCK

        return CanonicalFill(
            instrument=symbol,
            timestamp=parse_flexible_date(resolve(row, DATE_COLUMNS), log),
            price=price,
            quantity=quantity,
            direction=direction,
            is_opening=is_opening,
            fee=abs(parse_flexible_money(resolve(row, FEE_COLUMNS), log, "fee")),
            asset_type=asset_type,
            multiplier=self.calculator.multiplier_for(asset_type, symbol),
            sequence=row_number,
            notes="Imported from Schwab transactions CSV",
        )
