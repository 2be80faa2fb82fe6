"""
Expired-option handling for positions left open at the end of a batch
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from ..models import AssetType, OpenPosition, Trade, TradeStatus
from .diagnostics import DiagnosticLog
from .instruments import parse_option_symbol

logger = logging.getLogger(__name__)

EXPIRED_NOTE = "Expired worthless"


def expire_position(position: OpenPosition, exchange: str, expiration: datetime) -> Trade:
    """Synthetic closing trade for an option that expired worthless"""
    cost = position.price * position.remaining_quantity * position.multiplier
    return Trade(
        id=f"{position.id}-expired",
        exchange=exchange,
        ticker=position.ticker,
        instrument=position.instrument,
        asset_type=position.asset_type,
        direction=position.direction,
        entry_price=position.price,
        exit_price=0.0,
        quantity=position.remaining_quantity,
        entry_date=position.timestamp,
        exit_date=expiration,
        fees=position.fees_paid,
        pnl=-cost - position.fees_paid,
        pnl_percentage=-100.0,
        status=TradeStatus.CLOSED,
        notes=f"{EXPIRED_NOTE} on {expiration:%Y-%m-%d}",
        multiplier=position.multiplier,
    )


def resolve_expirations(positions: List[OpenPosition], exchange: str,
                        as_of: Optional[datetime] = None,
                        log: Optional[DiagnosticLog] = None) -> Tuple[List[Trade], List[OpenPosition]]:
    """
    Close residual option positions whose expiration has passed.

    Args:
        positions: Residual open positions from the matcher
        exchange: Exchange name for synthesized trades
        as_of: Reference instant, defaults to now; a naive value is read as UTC
        log: Diagnostic log

    Returns:
        (expired trades, positions still open)
    """
    as_of = as_of or datetime.now(timezone.utc)
    if as_of.tzinfo is None:
        as_of = as_of.replace(tzinfo=timezone.utc)
    expired: List[Trade] = []
    still_open: List[OpenPosition] = []

    for position in positions:
        if position.asset_type is not AssetType.OPTION:
            still_open.append(position)
            continue

        contract = parse_option_symbol(position.instrument)
        if contract is None:
            if log is not None:
                log.warning(f"Could not read expiration from option symbol {position.instrument}")
            still_open.append(position)
            continue

        if contract.expiration < as_of:
            trade = expire_position(position, exchange, contract.expiration)
            expired.append(trade)
            if log is not None:
                log.append(f"Expired worthless: {position.ticker} x{position.remaining_quantity:g} "
                           f"(expired {contract.expiration:%Y-%m-%d}, P&L {trade.pnl:.2f})")
        else:
            still_open.append(position)

    return expired, still_open
