"""
Upstream transaction sources
"""

from .schwab import SchwabClient

__all__ = ['SchwabClient']
