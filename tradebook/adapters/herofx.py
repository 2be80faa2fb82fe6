"""
HeroFX / TradeLocker forex-broker inputs.

Three shapes arrive from this broker, all reported as closed positions:
the complete trading history CSV (one row per closed position), the older
transactions CSV (open and close legs sharing a position id) and a
tab-separated block pasted from the TradeLocker web terminal. Times are
wall-clock Europe/Helsinki (EET/EEST).
"""

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from ..models import Direction, StructuralImportError, Trade, stable_id
from ..reconciliation.diagnostics import DiagnosticLog
from ..reconciliation.fields import resolve
from ..reconciliation.instruments import classify_cfd
from ..reconciliation.normalize import (parse_flexible_money, parse_optional_money,
                                        parse_zoned_datetime)
from ..reconciliation.pnl import pnl_percentage
from .base import AdapterOutput, AdapterShape, BaseAdapter, RawRecord

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Helsinki"

ENTRY_TIME_COLUMNS = ("Entry Time (EET)", "Entry Time")
EXIT_TIME_COLUMNS = ("Exit Time (EET)", "Exit Time")
INSTRUMENT_COLUMNS = ("Instrument", "Symbol", "Pair", "Market")
POSITION_COLUMNS = ("Position ID", "PositionID", "position_id")
TIME_COLUMNS = ("Time (EET)", "Time", "Date")

# Column order of the TradeLocker closed-positions table
PASTE_COLUMNS = (
    "Entry Time", "Type", "Side", "Amount", "Entry Price", "SL Price", "TP Price",
    "Exit Time", "Exit Price", "Fee", "Swap", "P&L", "Net P&L",
)
PASTE_MIN_COLUMNS = 10
PASTE_NOISE_WORDS = ("actions", "currency", "flag")

_NUMERIC_LINE_RE = re.compile(r"^[\d.,\-]+$")
_INSTRUMENT_LINE_RE = re.compile(r"^[A-Z][A-Z0-9.]{4,11}$")


def is_complete_history(headers: Sequence[str]) -> bool:
    names = {str(h).strip() for h in headers}
    return (any(c in names for c in ENTRY_TIME_COLUMNS)
            and any(c in names for c in EXIT_TIME_COLUMNS)
            and "Entry Price" in names and "Exit Price" in names)


def _direction(side: str) -> Direction:
    return Direction.LONG if side.strip().upper() in ("BUY", "LONG") else Direction.SHORT


class HeroFXCompleteHistoryAdapter(BaseAdapter):
    """Direct-trade adapter: every row is one closed position"""

    shape = AdapterShape.DIRECT
    format_name = "complete history"

    def __init__(self, venue: str, config: Optional[Dict[str, Any]] = None):
        super().__init__(venue, config)
        self.timezone = self.config.get("timezones", {}).get(venue, DEFAULT_TIMEZONE)

    def parse(self, records: Sequence[RawRecord], log: DiagnosticLog) -> AdapterOutput:
        output = self.new_output()
        log.append(f"Starting {self.venue} complete history processing with {len(records)} rows")

        for row_number, row in enumerate(records, start=1):
            trade = self.read_row(self._parse_row, row, output, log, row_number)
            if trade is not None:
                output.trades.append(trade)

        # Newest first, the way the broker lists them
        output.trades.sort(key=lambda t: t.exit_date, reverse=True)
        return self.finish(output, log)

    def _parse_row(self, row: RawRecord, output: AdapterOutput, log: DiagnosticLog,
                   row_number: int) -> Optional[Trade]:
        instrument = resolve(row, INSTRUMENT_COLUMNS).strip()
        if not instrument:
            self.skip(output, log, row_number, "missing instrument")
            return None

        entry_price = parse_optional_money(resolve(row, ["Entry Price"]))
        exit_price = parse_optional_money(resolve(row, ["Exit Price"]))
        if not self._valid_price(entry_price) or not self._valid_price(exit_price):
            self.skip(output, log, row_number, f"invalid prices for {instrument} "
                                               f"(entry={entry_price}, exit={exit_price})")
            return None

        amount = abs(parse_optional_money(resolve(row, ["Amount", "Quantity", "Lots"])) or 0.0)
        if amount <= 0:
            self.skip(output, log, row_number, f"invalid amount for {instrument}")
            return None

        fee = abs(parse_flexible_money(resolve(row, ["Fee", "Commission"]), log, "fee"))
        swap = parse_flexible_money(resolve(row, ["Swap"]), log, "swap")
        gross = parse_flexible_money(resolve(row, ["P&L", "PnL", "Profit"]), log, "pnl")
        net = parse_flexible_money(resolve(row, ["Net P&L", "Net PnL", "Net Profit"]), log, "net pnl")
        pnl = net if net != 0 else gross

        entry_raw = resolve(row, ENTRY_TIME_COLUMNS)
        exit_raw = resolve(row, EXIT_TIME_COLUMNS) or entry_raw
        entry_date = parse_zoned_datetime(entry_raw, self.timezone, log)
        exit_date = parse_zoned_datetime(exit_raw, self.timezone, log)

        asset_type = classify_cfd(instrument)
        multiplier = self.calculator.multiplier_for(asset_type, instrument)
        position_id = resolve(row, POSITION_COLUMNS).strip()

        notes = []
        exit_type = resolve(row, ["Type", "Order Type"]).strip()
        if exit_type:
            notes.append(f"Exit: {exit_type}")
        sl = parse_optional_money(resolve(row, ["SL Price"])) or 0.0
        tp = parse_optional_money(resolve(row, ["TP Price"])) or 0.0
        if sl > 0:
            notes.append(f"SL: {sl:g}")
        if tp > 0:
            notes.append(f"TP: {tp:g}")
        if swap != 0:
            notes.append(f"Swap: ${swap:.2f}")
        if position_id:
            notes.append(f"Position: {position_id}")

        return Trade(
            id=stable_id(self.venue, position_id or f"{instrument}#{row_number}", entry_raw, exit_raw, amount,
                        prefix="herofx"),
            exchange=self.venue,
            ticker=instrument,
            asset_type=asset_type,
            direction=_direction(resolve(row, ["Side", "Direction"])),
            entry_price=entry_price,
            exit_price=exit_price,
            quantity=amount,
            entry_date=entry_date,
            exit_date=exit_date,
            fees=fee + abs(swap),
            pnl=pnl,
            pnl_percentage=pnl_percentage(pnl, entry_price, amount, multiplier),
            notes=" | ".join(notes),
            multiplier=multiplier,
            external_id=position_id or None,
        )

    def _valid_price(self, price: Optional[float]) -> bool:
        return price is not None and 0 < price <= self.max_price


class HeroFXTransactionsAdapter(BaseAdapter):
    """Direct-trade adapter pairing open and close legs by position id"""

    shape = AdapterShape.DIRECT
    format_name = "transactions"

    def __init__(self, venue: str, config: Optional[Dict[str, Any]] = None):
        super().__init__(venue, config)
        self.timezone = self.config.get("timezones", {}).get(venue, DEFAULT_TIMEZONE)

    def parse(self, records: Sequence[RawRecord], log: DiagnosticLog) -> AdapterOutput:
        output = self.new_output()
        log.append(f"Starting {self.venue} transactions processing with {len(records)} rows")

        positions: Dict[str, List[Dict[str, Any]]] = {}
        for row_number, row in enumerate(records, start=1):
            leg = self.read_row(self._read_leg, row, output, log, row_number)
            if leg is not None:
                positions.setdefault(leg["position_id"], []).append(leg)

        log.append(f"Found {len(positions)} unique positions")

        for position_id, legs in positions.items():
            legs.sort(key=lambda leg: leg["time"])
            open_leg = next((leg for leg in legs if leg["pnl"] == 0), None)
            close_leg = next((leg for leg in reversed(legs) if leg["pnl"] != 0), None)

            if open_leg and close_leg:
                trade = self._pair(position_id, open_leg, close_leg, log)
                if trade is not None:
                    output.trades.append(trade)
                else:
                    output.skipped += 1
            elif open_leg:
                log.append(f"Position {position_id}: still open")
            else:
                log.append(f"Position {position_id}: missing open trade")

        output.trades.sort(key=lambda t: t.exit_date, reverse=True)
        return self.finish(output, log)

    def _read_leg(self, row: RawRecord, output: AdapterOutput, log: DiagnosticLog,
                  row_number: int) -> Optional[Dict[str, Any]]:
        position_id = resolve(row, POSITION_COLUMNS).strip()
        if not position_id:
            self.skip(output, log, row_number, "missing position id")
            return None
        return {
            "position_id": position_id,
            "row": row,
            "time": parse_zoned_datetime(resolve(row, TIME_COLUMNS), self.timezone, log),
            "pnl": parse_flexible_money(resolve(row, ["P&L", "PnL", "Profit"]), log, "pnl"),
        }

    def _pair(self, position_id: str, open_leg: Dict[str, Any], close_leg: Dict[str, Any],
              log: DiagnosticLog) -> Optional[Trade]:
        open_row, close_row = open_leg["row"], close_leg["row"]
        instrument = resolve(open_row, INSTRUMENT_COLUMNS).strip()
        amount = abs(parse_optional_money(resolve(open_row, ["Amount", "Quantity", "Qty", "Lots"])) or 0.0)
        entry_price = parse_optional_money(resolve(open_row, ["Price", "Entry Price", "Open Price"]))
        exit_price = parse_optional_money(resolve(close_row, ["Price", "Exit Price", "Close Price"]))

        if not instrument or amount <= 0 or not entry_price or not exit_price:
            log.append(f"Position {position_id}: skipped (incomplete open/close legs)")
            return None

        fees = (abs(parse_flexible_money(resolve(open_row, ["Fee", "Commission"]), log, "fee"))
                + abs(parse_flexible_money(resolve(close_row, ["Fee", "Commission"]), log, "fee")))
        pnl = close_leg["pnl"]
        asset_type = classify_cfd(instrument)
        multiplier = self.calculator.multiplier_for(asset_type, instrument)

        return Trade(
            id=stable_id(self.venue, position_id, prefix="herofx"),
            exchange=self.venue,
            ticker=instrument,
            asset_type=asset_type,
            direction=_direction(resolve(open_row, ["Side", "Direction", "Type"])),
            entry_price=entry_price,
            exit_price=exit_price,
            quantity=amount,
            entry_date=open_leg["time"],
            exit_date=close_leg["time"],
            fees=fees,
            pnl=pnl,
            pnl_percentage=pnl_percentage(pnl, entry_price, amount, multiplier),
            notes=f"Position ID: {position_id} - Imported from {self.venue} Transactions",
            multiplier=multiplier,
            external_id=position_id,
        )


def merge_wrapped_lines(lines: Sequence[str], log: DiagnosticLog) -> List[str]:
    """
    Reattach values that wrapped onto their own line when copied.

    A short purely numeric line (an SL or TP value) continues the previous
    row; after such a break, the next tab-separated line carries the rest of
    that row and is joined too.
    """
    merged: List[str] = []
    i = 0
    while i < len(lines):
        line = lines[i].rstrip("\r")
        if "\t" not in line:
            merged.append(line)
            i += 1
            continue

        broken = False
        while i + 1 < len(lines):
            nxt = lines[i + 1].strip()
            if nxt and _NUMERIC_LINE_RE.match(nxt) and len(nxt) < 20:
                line += ("" if line.endswith("\t") else "\t") + nxt
                log.append(f"Merged wrapped value: {nxt}")
                broken = True
                i += 1
            elif broken and "\t" in nxt and line.count("\t") + 1 < len(PASTE_COLUMNS):
                line += ("" if line.endswith("\t") else "\t") + nxt
                log.append("Merged continuation line")
                i += 1
                break
            else:
                break

        merged.append(line)
        i += 1

    log.append(f"Pre-processed {len(lines)} -> {len(merged)} lines")
    return merged


def paste_to_records(text: str, log: DiagnosticLog) -> List[Dict[str, str]]:
    """
    Turn a pasted TradeLocker block into complete-history style records.

    Raises:
        StructuralImportError: If no "Entry Time"/"Exit Time" header line exists
    """
    lines = merge_wrapped_lines(text.split("\n"), log)

    header_index = next((i for i, line in enumerate(lines)
                         if "Entry Time" in line and "Exit Time" in line), None)
    if header_index is None:
        log.append("No header found (expected a line with 'Entry Time' and 'Exit Time')")
        raise StructuralImportError("Pasted data has no header row", log.entries)
    log.append(f"Detected header at line {header_index}")

    records: List[Dict[str, str]] = []
    instrument = ""
    for line_number, raw in enumerate(lines[header_index + 1:], start=header_index + 2):
        line = raw.strip()
        lowered = line.lower()
        if not line or any(word in lowered for word in PASTE_NOISE_WORDS):
            continue

        if "\t" not in line and _INSTRUMENT_LINE_RE.match(line):
            instrument = line
            log.append(f"Instrument: {instrument}")
            continue

        columns = [c.strip() for c in raw.split("\t")]
        if len(columns) < PASTE_MIN_COLUMNS:
            log.append(f"Line {line_number}: skipped ({len(columns)} columns)")
            continue
        if not instrument:
            log.append(f"Line {line_number}: skipped (no instrument line above it)")
            continue

        record = dict(zip(PASTE_COLUMNS, columns))
        record["Instrument"] = instrument
        records.append(record)

    log.append(f"Parsed {len(records)} pasted rows")
    return records
