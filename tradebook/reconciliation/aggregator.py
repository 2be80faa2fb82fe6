"""
Collapse partial-execution trades into one logical position
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..models import Trade
from .diagnostics import DiagnosticLog
from .pnl import pnl_percentage

logger = logging.getLogger(__name__)

GroupKey = Tuple[str, datetime, datetime]


def _minute(ts: datetime) -> datetime:
    return ts.replace(second=0, microsecond=0)


def group_key(trade: Trade) -> GroupKey:
    return (trade.instrument, _minute(trade.entry_date), _minute(trade.exit_date))


def merge_trades(group: List[Trade]) -> Trade:
    """
    Merge trades for the same instrument, entry minute and exit minute.

    Quantity, P&L and fees are summed; prices become quantity-weighted
    averages; the percentage is recomputed against the combined entry base.
    """
    if len(group) == 1:
        return group[0]

    first = group[0]
    quantities = np.array([t.quantity for t in group], dtype=float)
    total_qty = float(quantities.sum())

    if total_qty > 0:
        entry_price = float(np.average([t.entry_price for t in group], weights=quantities))
        exit_price = float(np.average([t.exit_price for t in group], weights=quantities))
    else:
        entry_price, exit_price = first.entry_price, first.exit_price

    total_pnl = float(sum(t.pnl for t in group))
    total_fees = float(sum(t.fees for t in group))
    pct = pnl_percentage(total_pnl, entry_price, total_qty, first.multiplier)

    notes = f"{first.notes} | Aggregated {len(group)} fills" if first.notes else \
        f"Aggregated {len(group)} fills"

    return replace(
        first,
        quantity=total_qty,
        entry_price=entry_price,
        exit_price=exit_price,
        pnl=total_pnl,
        fees=total_fees,
        pnl_percentage=pct,
        notes=notes,
    )


def aggregate_positions(trades: List[Trade], log: Optional[DiagnosticLog] = None) -> List[Trade]:
    """
    Group trades by (instrument, entry minute, exit minute) and merge groups.

    Args:
        trades: Closed trades from the matcher
        log: Diagnostic log for merge notices

    Returns:
        Trades in first-appearance order, one per group
    """
    groups: Dict[GroupKey, List[Trade]] = {}
    for trade in trades:
        groups.setdefault(group_key(trade), []).append(trade)

    merged = []
    for (instrument, entry_minute, exit_minute), group in groups.items():
        if len(group) > 1 and log is not None:
            log.append(f"Aggregated {len(group)} partial fills for {instrument} "
                       f"({entry_minute:%Y-%m-%d %H:%M} -> {exit_minute:%Y-%m-%d %H:%M})")
        merged.append(merge_trades(group))

    if log is not None and len(merged) != len(trades):
        log.append(f"Aggregation: {len(trades)} matched trades -> {len(merged)} positions")
    return merged
