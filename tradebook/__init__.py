"""
Tradebook - Multi-Venue Trade Reconciliation

Turns raw fills and statements from crypto exchanges, a retail brokerage
and a forex broker into closed round-trip trades with P&L, fees and
percentage return.
"""

__version__ = "0.1.0"
__author__ = "Tradebook Team"
