"""
Date and money normalization shared by every venue adapter.

These are the only places where raw text becomes numbers or instants. They
never raise: unparseable input is replaced by a safe default (current time
or zero) and reported to the diagnostic log when one is supplied.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

import numpy as np
import pandas as pd

from .diagnostics import DiagnosticLog

logger = logging.getLogger(__name__)

BLANK_TOKENS = {"", "-", "--", "n/a", "na", "nan", "none", "null"}

_ANNOTATION_RE = re.compile(r"\s+as\s+of\b.*$", re.IGNORECASE)
_US_DATE_RE = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{4})")
_EPOCH_RE = re.compile(r"^\d{10,13}(\.0+)?$")
_CURRENCY_RE = re.compile(r"[$€£¥]|\bUSDT\b|\bUSD\b", re.IGNORECASE)
# Asset code written straight after the number: "0.5BTC", "20500USDT"
_ASSET_SUFFIX_RE = re.compile(r"(?<=[\d.])\s*[A-Za-z]{2,10}$")


def is_blank(raw: Any) -> bool:
    """True for None, NaN and the usual empty placeholders"""
    if raw is None:
        return True
    if isinstance(raw, float) and np.isnan(raw):
        return True
    return str(raw).strip().strip("\"'").strip().lower() in BLANK_TOKENS


def _to_utc(value: pd.Timestamp) -> datetime:
    if value.tzinfo is None:
        value = value.tz_localize("UTC")
    else:
        value = value.tz_convert("UTC")
    return value.to_pydatetime()


def _parse_epoch(raw: Any) -> Optional[datetime]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float, np.integer, np.floating)):
        number = float(raw)
    elif isinstance(raw, str) and _EPOCH_RE.match(raw.strip()):
        number = float(raw.strip())
    else:
        return None

    if not np.isfinite(number) or number <= 0:
        return None
    unit = "ms" if number > 1e11 else "s"
    return _to_utc(pd.to_datetime(number, unit=unit))


def _direct_parse(text: str) -> Optional[datetime]:
    try:
        parsed = pd.to_datetime(text)
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    return _to_utc(parsed)


def _us_date_parse(text: str) -> Optional[datetime]:
    match = _US_DATE_RE.match(text)
    if not match:
        return None
    month, day, year = (int(g) for g in match.groups())
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_flexible_date(raw: Any, log: Optional[DiagnosticLog] = None) -> datetime:
    """
    Parse a timestamp from any of the formats venues export.

    Tries epoch seconds/milliseconds, a direct parse, ``MM/DD/YYYY``
    reconstruction, then a retry with trailing "as of ..." annotations
    removed.

    Args:
        raw: Raw cell or API value
        log: Diagnostic log that receives a warning on total failure

    Returns:
        Timezone-aware UTC datetime; the current time if nothing parsed
    """
    epoch = _parse_epoch(raw)
    if epoch is not None:
        return epoch

    text = "" if is_blank(raw) else str(raw).strip().strip("\"'").strip()
    if text:
        for attempt in (_direct_parse, _us_date_parse):
            parsed = attempt(text)
            if parsed is not None:
                return parsed

        stripped = _ANNOTATION_RE.sub("", text).strip()
        if stripped and stripped != text:
            for attempt in (_direct_parse, _us_date_parse):
                parsed = attempt(stripped)
                if parsed is not None:
                    return parsed

    if log is not None:
        log.warning(f"Could not parse date '{raw}', using current time")
    else:
        logger.warning(f"Could not parse date '{raw}', using current time")
    return datetime.now(timezone.utc)


def parse_zoned_datetime(raw: Any, tz_name: str,
                         log: Optional[DiagnosticLog] = None) -> datetime:
    """
    Convert a local civil time recorded in ``tz_name`` to a UTC instant.

    Daylight-saving offsets come from the IANA zone database, so the same
    wall-clock time maps to different UTC instants in winter and summer.
    Ambiguous fall-back times resolve to the daylight-saving reading.
    """
    text = "" if is_blank(raw) else str(raw).strip().strip("\"'").strip()
    if text:
        try:
            parsed = pd.to_datetime(text)
            if not pd.isna(parsed):
                if parsed.tzinfo is None:
                    parsed = parsed.tz_localize(tz_name, ambiguous=True,
                                                nonexistent="shift_forward")
                return parsed.tz_convert("UTC").to_pydatetime()
        except (ValueError, TypeError, OverflowError) as e:
            logger.debug(f"Zoned parse failed for '{text}' in {tz_name}: {e}")

    return parse_flexible_date(raw, log)


def parse_optional_money(raw: Any) -> Optional[float]:
    """Parse an amount, returning None when the value is absent or unparseable"""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float, np.integer, np.floating)):
        value = float(raw)
        return value if np.isfinite(value) else None
    if is_blank(raw):
        return None

    text = str(raw).strip().strip("\"'").strip()
    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    text = _CURRENCY_RE.sub("", text).strip()
    text = _ASSET_SUFFIX_RE.sub("", text).replace(",", "").replace(" ", "")
    try:
        value = float(text)
    except ValueError:
        return None

    if not np.isfinite(value):
        return None
    return -abs(value) if negative else value


def parse_flexible_money(raw: Any, log: Optional[DiagnosticLog] = None,
                         field: str = "amount") -> float:
    """
    Parse an amount such as ``"$1,234.50"``, ``"-$12.00"`` or ``"(3.10)"``.

    Args:
        raw: Raw cell or API value
        log: Diagnostic log that receives a warning for non-empty garbage
        field: Field name used in the warning

    Returns:
        The amount, or 0.0 for empty, dash or unparseable input
    """
    value = parse_optional_money(raw)
    if value is not None:
        return value

    if not is_blank(raw):
        message = f"Unparseable {field} '{raw}' treated as 0"
        if log is not None:
            log.warning(message)
        else:
            logger.warning(message)
    return 0.0
