"""
Fill, position and trade data models for the reconciliation engine
"""

import hashlib
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)


class Direction(Enum):
    """Direction of the position a fill opens or closes"""
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def opposite(self) -> "Direction":
        return Direction.SHORT if self is Direction.LONG else Direction.LONG


class AssetType(Enum):
    """Instrument classes"""
    STOCK = "STOCK"
    OPTION = "OPTION"
    CRYPTO = "CRYPTO"
    FOREX = "FOREX"
    FUTURES = "FUTURES"
    SPOT = "SPOT"


class TradeStatus(Enum):
    """Trade status"""
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class Venue(Enum):
    """Supported trading venues"""
    MEXC = "MEXC"
    BYBIT = "ByBit"
    BINANCE = "Binance"
    COINBASE = "Coinbase"
    BLOFIN = "BloFin"
    SCHWAB = "Schwab"
    INTERACTIVE_BROKERS = "Interactive Brokers"
    HEROFX = "HeroFX"

    @classmethod
    def from_name(cls, name: str) -> "Venue":
        """Look up a venue by value or member name, case-insensitively"""
        if isinstance(name, Venue):
            return name
        key = str(name).strip().lower().replace("_", " ")
        for venue in cls:
            if key in (venue.value.lower(), venue.name.lower().replace("_", " ")):
                return venue
        raise UnsupportedVenueError(f"Unsupported venue: {name}")


class ImportFailure(Exception):
    """Base import error, carrying the diagnostic log accumulated so far"""

    def __init__(self, message: str, logs: Optional[List[str]] = None):
        super().__init__(message)
        self.logs = list(logs or [])


class StructuralImportError(ImportFailure):
    """Input could not be read or no header row was found"""


class UnsupportedVenueError(ImportFailure):
    """No adapter exists for the requested venue"""


class FillOrderError(ImportFailure):
    """Fills for an instrument were handed to the matcher out of time order"""


class ReauthenticationRequired(ImportFailure):
    """Upstream credentials expired; the caller must re-authenticate"""


def stable_id(*parts: Any, prefix: str = "fill") -> str:
    """Deterministic id derived from record content, stable across re-imports"""
    digest = hashlib.sha1("|".join(str(p) for p in parts).encode("utf-8")).hexdigest()
    return f"{prefix}-{digest[:16]}"


@dataclass
class CanonicalFill:
    """One resolved directional execution"""

    # Required fields
    instrument: str
    timestamp: datetime
    price: float
    quantity: float  # Always unsigned
    direction: Direction
    is_opening: bool

    fee: float = 0.0
    ticker: Optional[str] = None
    asset_type: AssetType = AssetType.STOCK
    multiplier: float = 1.0

    # Identity
    fill_id: Optional[str] = None
    external_id: Optional[str] = None
    sequence: Optional[int] = None  # Source row number; tells identical rows apart

    # Realized P&L reported by the source row, if any
    reported_pnl: Optional[float] = None
    notes: str = ""

    def __post_init__(self):
        if self.ticker is None:
            self.ticker = self.instrument
        if self.fill_id is None:
            self.fill_id = stable_id(
                self.external_id or "", self.instrument, self.timestamp.isoformat(), self.price,
                self.quantity, self.direction.value, self.is_opening, self.sequence,
            )


@dataclass
class OpenPosition:
    """Unmatched opening fill waiting in a FIFO queue"""

    id: str
    instrument: str
    timestamp: datetime
    price: float
    remaining_quantity: float
    direction: Direction
    fees_paid: float = 0.0  # Fee not yet attributed to any trade

    ticker: Optional[str] = None
    asset_type: AssetType = AssetType.STOCK
    multiplier: float = 1.0
    original_quantity: float = 0.0

    def __post_init__(self):
        if self.ticker is None:
            self.ticker = self.instrument
        if not self.original_quantity:
            self.original_quantity = self.remaining_quantity

    @classmethod
    def from_fill(cls, fill: CanonicalFill) -> "OpenPosition":
        return cls(
            id=fill.fill_id,
            instrument=fill.instrument,
            timestamp=fill.timestamp,
            price=fill.price,
            remaining_quantity=fill.quantity,
            direction=fill.direction,
            fees_paid=fill.fee,
            ticker=fill.ticker,
            asset_type=fill.asset_type,
            multiplier=fill.multiplier,
        )

    @property
    def is_exhausted(self) -> bool:
        return self.remaining_quantity <= 1e-12

    def to_summary(self) -> Dict[str, Any]:
        """Summary row for the open-positions report"""
        return {
            "instrument": self.instrument,
            "ticker": self.ticker,
            "asset_type": self.asset_type.value,
            "direction": self.direction.value,
            "quantity": self.remaining_quantity,
            "entry_price": self.price,
            "opened_at": self.timestamp.isoformat(),
            "fees_paid": self.fees_paid,
        }


@dataclass
class Trade:
    """Closed round-trip trade, the engine's terminal output"""

    id: str
    exchange: str
    ticker: str
    asset_type: AssetType
    direction: Direction
    entry_price: float
    exit_price: float
    quantity: float
    entry_date: datetime
    exit_date: datetime
    fees: float
    pnl: float
    pnl_percentage: float

    instrument: Optional[str] = None
    status: TradeStatus = TradeStatus.CLOSED
    notes: str = ""
    multiplier: float = 1.0
    external_id: Optional[str] = None

    def __post_init__(self):
        if self.instrument is None:
            self.instrument = self.ticker

    @property
    def fingerprint(self) -> str:
        """Content key the trade store uses to suppress re-imported duplicates"""
        exit_day = self.exit_date.date().isoformat()
        return f"{self.exchange}|{self.ticker}|{exit_day}|{self.pnl:.2f}|{self.quantity:g}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        data = asdict(self)

        data["asset_type"] = self.asset_type.value
        data["direction"] = self.direction.value
        data["status"] = self.status.value

        data["entry_date"] = self.entry_date.isoformat()
        data["exit_date"] = self.exit_date.isoformat()

        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


@dataclass
class ImportResult:
    """Trades and diagnostic log produced by one import batch"""

    trades: List[Trade]
    logs: List[str]
    venue: Optional[str] = None
    open_positions: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def trade_count(self) -> int:
        return len(self.trades)

    @property
    def total_pnl(self) -> float:
        return sum(t.pnl for t in self.trades)

    def to_dataframe(self) -> pd.DataFrame:
        """Trades as a DataFrame, one row per trade"""
        if not self.trades:
            return pd.DataFrame(columns=list(Trade.__dataclass_fields__))
        return pd.DataFrame([t.to_dict() for t in self.trades])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "venue": self.venue,
            "trades": [t.to_dict() for t in self.trades],
            "logs": list(self.logs),
            "open_positions": list(self.open_positions),
        }


def validate_fill(fill: CanonicalFill) -> List[str]:
    """Validate fill and return list of errors"""
    errors = []

    if not fill.instrument:
        errors.append("Instrument is required")

    if fill.quantity <= 0:
        errors.append("Fill quantity must be positive")

    if fill.price < 0:
        errors.append("Fill price cannot be negative")

    if fill.fee < 0:
        errors.append("Fee cannot be negative")

    return errors
