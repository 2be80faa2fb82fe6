"""
Shared utilities: configuration loading and structured logging
"""

from .config import ConfigManager, deep_merge
from .structured_logging import ImportLogger, configure_structured_logging

__all__ = [
    'ConfigManager',
    'deep_merge',
    'ImportLogger',
    'configure_structured_logging'
]
