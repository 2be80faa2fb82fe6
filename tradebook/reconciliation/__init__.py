"""
Reconciliation Module

Field resolution, normalization, FIFO matching, P&L math, partial-fill
aggregation and option expiration for imported fills.
"""

from .aggregator import aggregate_positions
from .diagnostics import DiagnosticLog
from .expiration import resolve_expirations
from .fields import CanonicalField, FieldMap, FieldResolver, detect_mapping, resolve
from .matcher import FifoMatcher
from .normalize import parse_flexible_date, parse_flexible_money, parse_zoned_datetime
from .pnl import PnlCalculator, PnlResult

__all__ = [
    'aggregate_positions',
    'DiagnosticLog',
    'resolve_expirations',
    'CanonicalField',
    'FieldMap',
    'FieldResolver',
    'detect_mapping',
    'resolve',
    'FifoMatcher',
    'parse_flexible_date',
    'parse_flexible_money',
    'parse_zoned_datetime',
    'PnlCalculator',
    'PnlResult'
]
