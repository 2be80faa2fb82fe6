"""
Base classes for venue adapters
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..models import CanonicalFill, Direction, Trade, validate_fill
from ..reconciliation.diagnostics import DiagnosticLog
from ..reconciliation.pnl import PnlCalculator

logger = logging.getLogger(__name__)

RawRecord = Mapping[str, Any]

# Errors a malformed row can raise while being read
ROW_ERRORS = (ValueError, TypeError, KeyError, AttributeError)

TRADE_WORDS = ("buy", "sell", "long", "short", "open", "close", "cover", "bid", "ask")

# Numeric side codes used by perpetual-futures APIs
SIDE_CODES = {
    "1": (Direction.LONG, True),    # open long
    "2": (Direction.SHORT, False),  # close short
    "3": (Direction.SHORT, True),   # open short
    "4": (Direction.LONG, False),   # close long
}


class AdapterShape(Enum):
    """What an adapter hands to the pipeline"""
    DIRECT = "direct"            # closed trades, no matching needed
    FILL_STREAM = "fill_stream"  # directional fills for the FIFO matcher


@dataclass
class AdapterOutput:
    """Result of one adapter pass"""

    shape: AdapterShape
    trades: List[Trade] = field(default_factory=list)
    fills: List[CanonicalFill] = field(default_factory=list)
    processed: int = 0
    skipped: int = 0
    format_name: str = ""


class BaseAdapter(ABC):
    """Base class for venue adapters"""

    shape: AdapterShape = AdapterShape.FILL_STREAM
    format_name: str = "generic"

    def __init__(self, venue: str, config: Optional[Dict[str, Any]] = None):
        self.venue = venue
        self.config = config or {}
        self.calculator = PnlCalculator(self.config.get("multipliers"))
        validation = self.config.get("validation", {})
        self.max_price = float(validation.get("max_price", 1_000_000))

    @abstractmethod
    def parse(self, records: Sequence[RawRecord], log: DiagnosticLog) -> AdapterOutput:
        """Turn raw records into trades or fills"""
        pass

    def new_output(self) -> AdapterOutput:
        return AdapterOutput(shape=self.shape, format_name=self.format_name)

    def skip(self, output: AdapterOutput, log: DiagnosticLog, row_number: int, reason: str) -> None:
        """Count and log a rejected row"""
        output.skipped += 1
        log.append(f"Row {row_number}: skipped ({reason})")

    def read_row(self, parse_row: Callable[..., Any], record: RawRecord, output: AdapterOutput,
                 log: DiagnosticLog, row_number: int, *args: Any) -> Any:
        """Run one row parser; a row that raises is skipped instead of failing the batch"""
        try:
            return parse_row(record, output, log, row_number, *args)
        except ROW_ERRORS as e:
            logger.debug(f"{self.venue} row {row_number} unreadable: {e!r}")
            self.skip(output, log, row_number, f"unreadable row: {e}")
            return None

    def accept_fill(self, output: AdapterOutput, log: DiagnosticLog, row_number: int,
                    fill: CanonicalFill) -> bool:
        """Append a fill that passes validation; otherwise skip its row"""
        errors = validate_fill(fill)
        if errors:
            self.skip(output, log, row_number, "; ".join(errors))
            return False
        output.fills.append(fill)
        return True

    def finish(self, output: AdapterOutput, log: DiagnosticLog) -> AdapterOutput:
        """Sort fills and log processed/skipped counts"""
        if output.fills:
            output.fills = sort_fills(output.fills)
        produced = len(output.fills) if output.shape is AdapterShape.FILL_STREAM else len(output.trades)
        output.processed = produced
        kind = "fills" if output.shape is AdapterShape.FILL_STREAM else "trades"
        log.append(f"{self.venue} {self.format_name}: processed {produced} {kind}, "
                   f"skipped {output.skipped} rows")
        return output


def sort_fills(fills: List[CanonicalFill]) -> List[CanonicalFill]:
    """Ascending by timestamp; stable for equal timestamps"""
    return sorted(fills, key=lambda f: f.timestamp)


def is_trade_action(raw: str) -> bool:
    text = (raw or "").strip().lower()
    return text in SIDE_CODES or any(word in text for word in TRADE_WORDS)


def parse_side(raw: str) -> Tuple[Direction, Optional[bool]]:
    """
    Read a venue side/direction value.

    Returns:
        (direction, is_opening). ``is_opening`` is None unless the value
        says so explicitly ("Open Long", "Close Short", "buy long",
        "sell long", numeric side codes); in that case the direction is the
        position's direction. Otherwise the direction is the side of the
        execution itself.
    """
    text = (raw or "").strip().lower()
    if text in SIDE_CODES:
        return SIDE_CODES[text]

    has_position_word = "long" in text or "short" in text
    if has_position_word and ("open" in text or "close" in text):
        direction = Direction.LONG if "long" in text else Direction.SHORT
        return direction, "open" in text

    # Futures order exports: "buy long" opens, "sell long" closes
    words = text.split()
    if len(words) == 2 and words[0] in ("buy", "sell") and words[1] in ("long", "short"):
        direction = Direction.LONG if words[1] == "long" else Direction.SHORT
        opening = (words[0] == "buy") == (direction is Direction.LONG)
        return direction, opening

    if any(word in text for word in ("sell", "short", "ask")):
        return Direction.SHORT, None
    return Direction.LONG, None


class NetPositionTracker:
    """
    Running net exposure per instrument, used to classify auto-netted rows.

    A row closes when it carries realized P&L or trades against the held
    direction; everything else opens or adds to a position.
    """

    def __init__(self):
        self._held: Dict[str, Tuple[Direction, float]] = {}

    def held(self, instrument: str) -> Optional[Direction]:
        entry = self._held.get(instrument)
        return entry[0] if entry else None

    def classify(self, instrument: str, side: Direction, quantity: float,
                 has_pnl: bool = False, explicit_opening: Optional[bool] = None) -> Tuple[bool, Direction]:
        """
        Args:
            instrument: Queue key
            side: Execution side (or position direction when explicit)
            quantity: Unsigned quantity
            has_pnl: Row already carries non-zero realized P&L
            explicit_opening: Opening flag stated by the source, if any

        Returns:
            (is_opening, position direction)
        """
        held = self.held(instrument)

        if explicit_opening is not None:
            is_opening, direction = explicit_opening, side
        elif has_pnl:
            is_opening, direction = False, held or side.opposite
        elif held is not None and side is not held:
            is_opening, direction = False, held
        else:
            is_opening, direction = True, side

        self._apply(instrument, is_opening, direction, quantity)
        return is_opening, direction

    def _apply(self, instrument: str, is_opening: bool, direction: Direction, quantity: float) -> None:
        entry = self._held.get(instrument)
        if is_opening:
            if entry and entry[0] is direction:
                self._held[instrument] = (direction, entry[1] + quantity)
            elif not entry:
                self._held[instrument] = (direction, quantity)
            return

        if entry and entry[0] is direction:
            remaining = entry[1] - quantity
            if remaining > 1e-9:
                self._held[instrument] = (direction, remaining)
            else:
                del self._held[instrument]
