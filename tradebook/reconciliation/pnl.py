"""
Profit and loss math for matched fills
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..models import AssetType, Direction

logger = logging.getLogger(__name__)

OPTION_MULTIPLIER = 100.0
DEFAULT_CONTRACT_SIZES = {"XAG": 5000.0, "XAU": 100.0}


@dataclass(frozen=True)
class PnlResult:
    gross_pnl: float
    pnl: float
    pnl_percentage: float
    fees: float


def pnl_percentage(pnl: float, entry_price: float, quantity: float,
                   multiplier: float = 1.0) -> float:
    """P&L as a percent of the entry notional; 0 when the notional is 0"""
    base = entry_price * quantity * multiplier
    if not base:
        return 0.0
    return pnl / base * 100


def gross_pnl(direction: Direction, entry_price: float, exit_price: float,
              quantity: float, multiplier: float = 1.0) -> float:
    if direction is Direction.LONG:
        return (exit_price - entry_price) * quantity * multiplier
    return (entry_price - exit_price) * quantity * multiplier


class PnlCalculator:
    """
    Computes gross, fee-netted and percentage P&L for one match.

    Contract sizes for metals-style forex symbols come from config
    (``multipliers.contract_sizes``); options always use 100.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.option_multiplier = float(config.get("option", OPTION_MULTIPLIER))
        sizes = config.get("contract_sizes", DEFAULT_CONTRACT_SIZES)
        self.contract_sizes = {str(k).upper(): float(v) for k, v in sizes.items()}

    def multiplier_for(self, asset_type: AssetType, instrument: str = "") -> float:
        if asset_type is AssetType.OPTION:
            return self.option_multiplier
        if asset_type is AssetType.FOREX:
            upper = (instrument or "").upper()
            for prefix, size in self.contract_sizes.items():
                if upper.startswith(prefix):
                    return size
        return 1.0

    def compute(self, direction: Direction, entry_price: float, exit_price: float,
                quantity: float, multiplier: float = 1.0, fees: float = 0.0,
                net: bool = True) -> PnlResult:
        """
        P&L for a matched quantity.

        Args:
            direction: Direction of the opening fill
            entry_price: Opening price per unit
            exit_price: Closing price per unit
            quantity: Matched quantity only, never the full fill size
            multiplier: Units per contract
            fees: Opening plus closing fee shares for this match
            net: Subtract fees; False when the source already embedded them

        Returns:
            PnlResult
        """
        gross = gross_pnl(direction, entry_price, exit_price, quantity, multiplier)
        pnl = gross - fees if net else gross
        return PnlResult(
            gross_pnl=gross,
            pnl=pnl,
            pnl_percentage=pnl_percentage(pnl, entry_price, quantity, multiplier),
            fees=fees,
        )
