"""
Instrument classification and option symbol parsing
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from ..models import AssetType, Direction

# "ISRG  251031C00600000": root, YYMMDD, type, strike * 1000
OCC_OPTION_RE = re.compile(r"(\w+)\s+(\d{6})([CP])(\d{8})")
# "ORCL 12/26/2025 202.50 C"
SPACED_OPTION_RE = re.compile(
    r"^(\S+)\s+(\d{1,2})/(\d{1,2})/(\d{4})\s+([\d.]+)\s+([CP])\b", re.IGNORECASE)
_COMPACT_OPTION_RE = re.compile(r"\d{6}[CP]\d+")
_STRIKE_SUFFIX_RE = re.compile(r" [CP]\d")
_TRAILING_TYPE_RE = re.compile(r"\s[CP]$", re.IGNORECASE)
_CALL_PUT_WORD_RE = re.compile(r"\b(call|put)\b", re.IGNORECASE)

CRYPTO_MARKERS = ("BTC", "ETH", "SOL", "XRP", "DOGE", "CRYPTO")
INDEX_MARKERS = ("SPX", "NAS", "US30", "US500", "GER40", ".PRO")


class OptionType(Enum):
    CALL = "CALL"
    PUT = "PUT"

    @property
    def letter(self) -> str:
        return self.value[0]


@dataclass(frozen=True)
class OptionContract:
    """Option fields decoded from a symbol"""

    underlying: str
    expiration: datetime
    option_type: OptionType
    strike: float

    @property
    def display_symbol(self) -> str:
        return f"{self.underlying} {self.strike:g}{self.option_type.letter}"


def parse_option_symbol(symbol: str) -> Optional[OptionContract]:
    """
    Decode an option symbol in OCC or spaced brokerage form.

    Returns:
        OptionContract with a UTC-midnight expiration, or None when the
        symbol carries no recognizable expiration
    """
    if not symbol:
        return None
    text = str(symbol).strip()

    match = OCC_OPTION_RE.search(text)
    if match:
        root, yymmdd, letter, strike = match.groups()
        try:
            expiration = datetime(2000 + int(yymmdd[:2]), int(yymmdd[2:4]),
                                  int(yymmdd[4:6]), tzinfo=timezone.utc)
        except ValueError:
            return None
        return OptionContract(
            underlying=root,
            expiration=expiration,
            option_type=OptionType.CALL if letter == "C" else OptionType.PUT,
            strike=int(strike) / 1000,
        )

    match = SPACED_OPTION_RE.match(text)
    if match:
        root, month, day, year, strike, letter = match.groups()
        try:
            expiration = datetime(int(year), int(month), int(day), tzinfo=timezone.utc)
        except ValueError:
            return None
        return OptionContract(
            underlying=root,
            expiration=expiration,
            option_type=OptionType.CALL if letter.upper() == "C" else OptionType.PUT,
            strike=float(strike),
        )

    return None


def option_type_of(symbol: str, description: str = "") -> Optional[OptionType]:
    """Call/put from the symbol encoding, else from description keywords"""
    contract = parse_option_symbol(symbol)
    if contract is not None:
        return contract.option_type

    text = (symbol or "").strip()
    if _TRAILING_TYPE_RE.search(text):
        return OptionType.CALL if text[-1].upper() == "C" else OptionType.PUT
    compact = _COMPACT_OPTION_RE.search(text) or _STRIKE_SUFFIX_RE.search(text)
    if compact:
        letter = re.search(r"[CP]", compact.group(0)).group(0)
        return OptionType.CALL if letter == "C" else OptionType.PUT

    word = _CALL_PUT_WORD_RE.search(description or "")
    if word:
        return OptionType.CALL if word.group(1).lower() == "call" else OptionType.PUT
    return None


def is_option(symbol: str, description: str = "") -> bool:
    return option_type_of(symbol, description) is not None


def direction_for_option(option_type: OptionType) -> Direction:
    """Calls are a long-bias bet, puts a short-bias one"""
    return Direction.LONG if option_type is OptionType.CALL else Direction.SHORT


def classify_instrument(symbol: str, description: str = "",
                        default: AssetType = AssetType.STOCK) -> AssetType:
    if is_option(symbol, description):
        return AssetType.OPTION
    return default


def classify_cfd(symbol: str) -> AssetType:
    """Asset class of a forex-broker CFD symbol"""
    upper = (symbol or "").upper()
    if any(marker in upper for marker in CRYPTO_MARKERS):
        return AssetType.CRYPTO
    if any(marker in upper for marker in INDEX_MARKERS):
        return AssetType.STOCK
    return AssetType.FOREX
