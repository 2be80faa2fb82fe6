"""
Venue adapters

Adapter selection is a direct dispatch on the declared venue. Within a venue,
the header row picks between that venue's export formats.
"""

from typing import Any, Dict, Optional, Sequence

from ..models import UnsupportedVenueError, Venue
from ..reconciliation.diagnostics import DiagnosticLog
from .aggregated import AggregatedExchangeAdapter
from .base import AdapterOutput, AdapterShape, BaseAdapter
from .exchange_api import ExchangeApiAdapter
from .herofx import (HeroFXCompleteHistoryAdapter, HeroFXTransactionsAdapter,
                     is_complete_history, paste_to_records)
from .schwab import SchwabRealizedGainsAdapter, SchwabTransactionsAdapter, is_realized_gains
from .schwab_api import SchwabApiAdapter

AGGREGATED_VENUES = (
    Venue.MEXC, Venue.BYBIT, Venue.BLOFIN, Venue.BINANCE, Venue.COINBASE,
    Venue.INTERACTIVE_BROKERS,
)
EXCHANGE_API_VENUES = (Venue.MEXC, Venue.BYBIT, Venue.BINANCE, Venue.BLOFIN)


def select_csv_adapter(venue: Venue, headers: Sequence[str],
                       config: Optional[Dict[str, Any]] = None,
                       log: Optional[DiagnosticLog] = None) -> BaseAdapter:
    """
    Pick the adapter for a delimited export.

    Raises:
        UnsupportedVenueError: If the venue has no CSV adapter
    """
    if venue in AGGREGATED_VENUES:
        adapter = AggregatedExchangeAdapter(venue.value, config)
    elif venue is Venue.SCHWAB:
        if is_realized_gains(headers):
            adapter = SchwabRealizedGainsAdapter(venue.value, config)
        else:
            adapter = SchwabTransactionsAdapter(venue.value, config)
    elif venue is Venue.HEROFX:
        if is_complete_history(headers):
            adapter = HeroFXCompleteHistoryAdapter(venue.value, config)
        else:
            adapter = HeroFXTransactionsAdapter(venue.value, config)
    else:
        raise UnsupportedVenueError(f"No CSV adapter for {venue.value}",
                                    log.entries if log is not None else None)

    if log is not None:
        log.append(f"Detected {venue.value} {adapter.format_name} format")
    return adapter


def select_api_adapter(venue: Venue, config: Optional[Dict[str, Any]] = None) -> BaseAdapter:
    """
    Pick the adapter for API transaction objects.

    Raises:
        UnsupportedVenueError: If the venue has no API adapter
    """
    if venue is Venue.SCHWAB:
        return SchwabApiAdapter(venue.value, config)
    if venue in EXCHANGE_API_VENUES:
        return ExchangeApiAdapter(venue.value, config)
    raise UnsupportedVenueError(f"No API adapter for {venue.value}")


__all__ = [
    'AdapterOutput',
    'AdapterShape',
    'BaseAdapter',
    'AggregatedExchangeAdapter',
    'ExchangeApiAdapter',
    'HeroFXCompleteHistoryAdapter',
    'HeroFXTransactionsAdapter',
    'SchwabApiAdapter',
    'SchwabRealizedGainsAdapter',
    'SchwabTransactionsAdapter',
    'paste_to_records',
    'select_api_adapter',
    'select_csv_adapter'
]
