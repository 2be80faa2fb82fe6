"""FIFO matching of closing fills against the oldest open positions.

Each matcher instance owns its own per-instrument queues, so one instance
serves exactly one import batch and batches never share state.

For a closing fill the oldest open position of the same direction is consumed
first. Fees are attributed by proration: a match of ``q`` units takes
``q / remaining`` of the unattributed fee on both the open position and the
closing fill, so fee totals survive any number of partial matches.
"""

import logging
from collections import deque
from datetime import datetime
from typing import Deque, Dict, Iterable, List, Optional

from ..models import CanonicalFill, FillOrderError, OpenPosition, Trade, TradeStatus
from .diagnostics import DiagnosticLog
from .pnl import PnlCalculator, pnl_percentage

logger = logging.getLogger(__name__)

EPSILON = 1e-9


class FifoMatcher:
    """
    Matches a time-ordered fill stream into closed trades.

    Feed fills in non-decreasing timestamp order per instrument; the matcher
    never re-sorts.
    """

    def __init__(self, exchange: str, log: Optional[DiagnosticLog] = None,
                 calculator: Optional[PnlCalculator] = None,
                 default_note: str = "FIFO matched"):
        self.exchange = exchange
        self.log = log if log is not None else DiagnosticLog()
        self.calculator = calculator or PnlCalculator()
        self.default_note = default_note

        self._queues: Dict[str, Deque[OpenPosition]] = {}
        self._last_seen: Dict[str, datetime] = {}
        self.unmatched_quantity: Dict[str, float] = {}

    def run(self, fills: Iterable[CanonicalFill]) -> List[Trade]:
        trades: List[Trade] = []
        for fill in fills:
            trades.extend(self.process(fill))
        return trades

    def process(self, fill: CanonicalFill) -> List[Trade]:
        """Apply one fill; returns the trades it closed (possibly none)"""
        self._check_order(fill)

        if fill.is_opening:
            queue = self._queues.setdefault(fill.instrument, deque())
            queue.append(OpenPosition.from_fill(fill))
            return []

        return self._close(fill)

    def residual_positions(self) -> List[OpenPosition]:
        """Open exposure left after every fill has been consumed"""
        residual = []
        for queue in self._queues.values():
            residual.extend(p for p in queue if not p.is_exhausted)
        return residual

    def _check_order(self, fill: CanonicalFill) -> None:
        last = self._last_seen.get(fill.instrument)
        if last is not None and fill.timestamp < last:
            message = (f"Fill for {fill.instrument} at {fill.timestamp.isoformat()} "
                       f"arrived after {last.isoformat()}; fills must be time-sorted")
            self.log.append(message)
            raise FillOrderError(message, self.log.entries)
        self._last_seen[fill.instrument] = fill.timestamp

    def _next_position(self, queue: Deque[OpenPosition], fill: CanonicalFill) -> Optional[OpenPosition]:
        for position in queue:
            if position.direction is fill.direction and not position.is_exhausted:
                return position
        return None

    def _close(self, fill: CanonicalFill) -> List[Trade]:
        queue = self._queues.get(fill.instrument, deque())
        trades: List[Trade] = []

        close_remaining = fill.quantity
        close_fee_remaining = fill.fee

        while close_remaining > EPSILON:
            position = self._next_position(queue, fill)
            if position is None:
                break

            matched = min(close_remaining, position.remaining_quantity)

            open_fee_share = position.fees_paid * (matched / position.remaining_quantity)
            close_fee_share = close_fee_remaining * (matched / close_remaining)
            fees = open_fee_share + close_fee_share

            trades.append(self._build_trade(position, fill, matched, fees))

            position.remaining_quantity -= matched
            position.fees_paid -= open_fee_share
            close_remaining -= matched
            close_fee_remaining -= close_fee_share

            if position.is_exhausted:
                queue.remove(position)

        if close_remaining > EPSILON:
            self.unmatched_quantity[fill.instrument] = (
                self.unmatched_quantity.get(fill.instrument, 0.0) + close_remaining)
            self.log.warning(
                f"unmatched closing quantity {close_remaining:g} for {fill.instrument} "
                f"at {fill.timestamp.isoformat()} (no open {fill.direction.value} position in batch)"
            )

        return trades

    def _build_trade(self, position: OpenPosition, fill: CanonicalFill,
                     matched: float, fees: float) -> Trade:
        multiplier = position.multiplier or fill.multiplier

        if fill.reported_pnl is not None and fill.quantity > 0:
            # The source already realized this close; split its figure by quantity
            pnl = fill.reported_pnl * (matched / fill.quantity)
            pct = pnl_percentage(pnl, position.price, matched, multiplier)
        else:
            result = self.calculator.compute(position.direction, position.price, fill.price,
                                             matched, multiplier, fees)
            pnl, pct = result.pnl, result.pnl_percentage

        return Trade(
            id=f"{position.id}-{fill.fill_id}",
            exchange=self.exchange,
            ticker=position.ticker,
            instrument=position.instrument,
            asset_type=position.asset_type,
            direction=position.direction,
            entry_price=position.price,
            exit_price=fill.price,
            quantity=matched,
            entry_date=position.timestamp,
            exit_date=fill.timestamp,
            fees=fees,
            pnl=pnl,
            pnl_percentage=pct,
            status=TradeStatus.CLOSED,
            notes=fill.notes or self.default_note,
            multiplier=multiplier,
            external_id=fill.external_id,
        )
