"""
Field resolution for venue-specific column names.

Venues name the same concept differently ("Exec Price", "Average Filled
Price", "price"). ``detect_mapping`` resolves every canonical field to the
actual headers once per batch; ``FieldResolver`` then reads rows through that
fixed map.
"""

import logging
import re
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .diagnostics import DiagnosticLog

logger = logging.getLogger(__name__)


class CanonicalField(Enum):
    """Canonical fields every fill-like record can carry"""
    TIME = "time"
    SYMBOL = "symbol"
    PRICE = "price"
    QUANTITY = "quantity"
    PNL = "pnl"
    FEE = "fee"
    DIRECTION = "direction"


# Normalized header synonyms, highest priority first
FIELD_SYNONYMS: Dict[CanonicalField, Tuple[str, ...]] = {
    CanonicalField.TIME: (
        "transactiontime", "createtime", "tradetime", "timeutc", "dateutc",
        "time", "date", "datetime", "timestamp",
    ),
    CanonicalField.SYMBOL: (
        "futurestradingpair", "contracts", "symbol", "pair", "instrument",
        "ticker", "market", "product", "contract",
    ),
    CanonicalField.PRICE: (
        "averagefilledprice", "execprice", "fillprice", "avgprice", "price",
        "entryprice", "spotprice", "avgentryprice", "filledprice",
    ),
    CanonicalField.QUANTITY: (
        "filledqtycrypto", "execqty", "filledqty", "qty", "amount", "size",
        "quantity", "vol", "volume", "executed", "filledquantity",
    ),
    CanonicalField.PNL: (
        "realizedpl", "closedpl", "pl", "pnl", "profit", "realizedprofit",
        "realizedpnl", "netprofit", "grossprofit", "closedpnl",
    ),
    CanonicalField.FEE: (
        "tradingfee", "execfee", "fee", "commission", "tradingcommission",
        "fees", "transactionfee",
    ),
    CanonicalField.DIRECTION: (
        "direction", "side", "type", "action", "buysell",
    ),
}

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_header(header: str) -> str:
    """Lowercase and strip everything that is not a letter or digit"""
    return _NON_ALNUM.sub("", str(header).lower())


def resolve(record: Mapping[str, Any], candidates: Sequence[str]) -> str:
    """
    Read the first matching field from a raw record.

    Match quality beats candidate order: every candidate is tried as an exact
    key first, then as a whitespace-trimmed key, then case-insensitively. An
    exact match on a later candidate therefore wins over a fuzzy match on an
    earlier one.

    Args:
        record: Raw record (header -> value)
        candidates: Field names to try, highest priority first

    Returns:
        The value as a string, or "" when no candidate is present
    """
    for name in candidates:
        if name in record:
            return _as_text(record[name])

    trimmed = {str(k).strip(): k for k in record}
    for name in candidates:
        key = trimmed.get(name.strip())
        if key is not None:
            return _as_text(record[key])

    folded: Dict[str, Any] = {}
    for k in record:
        folded.setdefault(str(k).strip().lower(), k)
    for name in candidates:
        key = folded.get(name.strip().lower())
        if key is not None:
            return _as_text(record[key])

    return ""


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value != value:
        return ""
    return str(value)


@dataclass
class FieldMap:
    """Canonical field -> candidate headers, resolved once per batch"""

    time: Tuple[str, ...] = ()
    symbol: Tuple[str, ...] = ()
    price: Tuple[str, ...] = ()
    quantity: Tuple[str, ...] = ()
    pnl: Tuple[str, ...] = ()
    fee: Tuple[str, ...] = ()
    direction: Tuple[str, ...] = ()

    def candidates(self, canonical: CanonicalField) -> Tuple[str, ...]:
        return getattr(self, canonical.value)

    def missing(self) -> List[CanonicalField]:
        return [c for c in CanonicalField if not self.candidates(c)]

    def with_fallback(self, defaults: Mapping[CanonicalField, Sequence[str]],
                      log: Optional[DiagnosticLog] = None) -> "FieldMap":
        """Fill unresolved fields from a venue's hard-coded candidate lists"""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for canonical in self.missing():
            fallback = tuple(defaults.get(canonical, ()))
            if not fallback:
                continue
            values[canonical.value] = fallback
            if log is not None:
                log.append(f"No header matched '{canonical.value}', "
                           f"falling back to defaults {list(fallback)}")
        return FieldMap(**values)

    def with_preferred(self, preferred: Mapping[CanonicalField, Sequence[str]],
                       headers: Iterable[str], log: Optional[DiagnosticLog] = None) -> "FieldMap":
        """
        Pin fields to a venue's declared columns when the input has them.

        Synonym detection cannot tell "Executed" from "Amount" or "Spot Price
        at Transaction" from "Spot Price Currency"; a venue's own column list
        can. A declared column that is present overrides the detected one,
        whether or not detection found something.
        """
        present: Dict[str, str] = {}
        for header in headers:
            if header is not None and str(header).strip():
                present.setdefault(normalize_header(header), header)
        values = {f.name: getattr(self, f.name) for f in fields(self)}

        for canonical, columns in preferred.items():
            match = next((present[normalize_header(c)] for c in columns
                          if normalize_header(c) in present), None)
            if match is None:
                continue
            detected = values[canonical.value]
            values[canonical.value] = (match,)
            if log is not None and detected and detected != (match,):
                log.append(f"Using venue column '{match}' for '{canonical.value}' "
                           f"instead of '{detected[0]}'")
        return FieldMap(**values)

    def describe(self) -> str:
        parts = []
        for canonical in CanonicalField:
            headers = self.candidates(canonical)
            parts.append(f"{canonical.value}={headers[0] if len(headers) == 1 else list(headers) or '-'}")
        return ", ".join(parts)


def detect_mapping(headers: Iterable[str],
                   synonyms: Optional[Mapping[CanonicalField, Sequence[str]]] = None) -> FieldMap:
    """
    Map every canonical field to one actual header.

    Headers are normalized (lowercase, alphanumerics only). For each field an
    exact normalized match against any synonym is preferred; only when none
    exists is a header accepted whose normalized form contains a synonym.

    Args:
        headers: Header names as they appear in the input
        synonyms: Optional override of ``FIELD_SYNONYMS``

    Returns:
        FieldMap with a single-header candidate tuple per resolved field
    """
    synonyms = synonyms or FIELD_SYNONYMS
    originals = [h for h in headers if h is not None and str(h).strip()]
    normalized = [(normalize_header(h), h) for h in originals]

    resolved: Dict[str, Tuple[str, ...]] = {}
    for canonical, words in synonyms.items():
        match = _find_header(normalized, words)
        if match is not None:
            resolved[canonical.value] = (match,)

    return FieldMap(**resolved)


def _find_header(normalized: List[Tuple[str, str]], words: Sequence[str]) -> Optional[str]:
    for word in words:
        for norm, original in normalized:
            if norm == word:
                return original

    for word in words:
        for norm, original in normalized:
            if word in norm:
                return original

    return None


class FieldResolver:
    """Reads canonical fields from rows through a resolved FieldMap"""

    def __init__(self, field_map: FieldMap):
        self.field_map = field_map

    def get(self, record: Mapping[str, Any], canonical: CanonicalField) -> str:
        return resolve(record, self.field_map.candidates(canonical))

    def has(self, canonical: CanonicalField) -> bool:
        return bool(self.field_map.candidates(canonical))
