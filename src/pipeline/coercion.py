"""Value coercion helpers shared by the record extractors.

Garmin export JSON is loosely typed: timestamps arrive as ISO strings
(with or without a ``GMT`` suffix or fractional seconds), as bare
``YYYY-MM-DD`` dates, or as epoch milliseconds depending on the export
generation.  Everything here returns ``None`` for anything it cannot
read; nothing raises.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timezone
from typing import Any, Mapping

import pandas as pd

_EPOCH_MIN = datetime.min.replace(tzinfo=timezone.utc)
_ISO_DATE_PREFIX = re.compile(r"\d{4}-\d{1,2}-\d{1,2}")


def finite_number(value: Any) -> int | float | None:
    """Return *value* if it is a finite int/float, else None.

    Booleans are rejected even though ``bool`` subclasses ``int``, and so
    are integers too large to be represented as a float.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return value if math.isfinite(value) else None
    except OverflowError:
        return None


def first_present(payload: Mapping[str, Any], *keys: str) -> Any:
    """Return the first non-None value among *keys* in *payload*."""
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def first_number(payload: Mapping[str, Any], *keys: str) -> int | float | None:
    """Return the first finite numeric value among *keys*."""
    for key in keys:
        value = finite_number(payload.get(key))
        if value is not None:
            return value
    return None


def _from_epoch_ms(value: int | float) -> datetime | None:
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _epoch_ms(value: int | float) -> datetime | None:
    number = finite_number(value)
    return _from_epoch_ms(number) if number is not None else None


def _date_string(value: Any) -> str | None:
    # pandas reads words like "now" or "today" as the current time
    if not isinstance(value, str):
        return None
    text = value.strip()
    return text if _ISO_DATE_PREFIX.match(text) else None


def parse_timestamp(value: Any) -> datetime | None:
    """Convert a GMT timestamp (string or epoch-ms) to an aware UTC datetime.

    Naive strings are taken to be UTC, which is what Garmin's
    ``...GMT`` fields carry.  Strings must start with a ``YYYY-MM-DD`` date.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _epoch_ms(value)
    text = _date_string(value)
    if text is None:
        return None
    ts = pd.to_datetime(text, utc=True, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


def parse_local_timestamp(value: Any) -> datetime | None:
    """Convert a local wall-clock timestamp to a naive datetime.

    Epoch-ms local values in the summarized export encode the wall clock
    as if it were UTC, so they are decoded without a zone shift.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        dt = _epoch_ms(value)
        return dt.replace(tzinfo=None) if dt else None
    text = _date_string(value)
    if text is None:
        return None
    ts = pd.to_datetime(text, errors="coerce")
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_localize(None)
    return ts.to_pydatetime()


def parse_calendar_date(value: Any) -> date | None:
    """Convert a string like '2026-02-11' or epoch-ms to a date object."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        dt = _epoch_ms(value)
        return dt.date() if dt else None
    try:
        return date.fromisoformat(str(value)[:10])
    except (ValueError, TypeError):
        return None


def midnight_utc(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def date_sort_key(value: Any) -> datetime:
    """Sort key for a record's temporal field.

    Accepts datetimes, dates and raw strings (GMT-suffixed or bare
    dates).  Unreadable values sort first instead of raising.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, date):
        return midnight_utc(value)
    parsed = parse_timestamp(value)
    return parsed if parsed is not None else _EPOCH_MIN
