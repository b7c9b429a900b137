"""
Date normalization for values read back from the document store.

Stored dates arrive in several shapes depending on who wrote them: the
store-native Timestamp, a plain {"seconds", "nanoseconds"} mapping that went
through JSON, an ISO-8601 string, epoch milliseconds, or an already-built
datetime. to_datetime() folds all of them into one canonical value, a
timezone-aware UTC datetime, and returns None for anything it cannot read.
It never raises.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any

from dateutil import parser as dt_parser

from docstore import Timestamp


_log = logging.getLogger("timestamps")


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _warn(field_name: str, doc_id: str, reason: str, raw: Any) -> None:
    _log.warning(
        "unusable date field=%s doc=%s reason=%s raw=%r",
        field_name or "?",
        doc_id or "?",
        reason,
        raw,
    )


def _from_string(value: str) -> datetime | None:
    s = value.strip()
    if not s:
        return None
    try:
        return dt_parser.isoparse(s)
    except (ValueError, OverflowError):
        pass
    try:
        return dt_parser.parse(s)
    except (ValueError, OverflowError, TypeError):
        return None


def to_datetime(value: Any, field_name: str = "", doc_id: str = "") -> datetime | None:
    """Canonical UTC datetime for `value`, or None (logged) when unrepresentable."""
    if value is None or value == "":
        _warn(field_name, doc_id, "missing", value)
        return None

    try:
        if isinstance(value, datetime):
            return _as_utc(value)

        if isinstance(value, date):
            return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

        if isinstance(value, Timestamp):
            return value.to_datetime()

        if isinstance(value, str):
            dt = _from_string(value)
            if dt is None:
                _warn(field_name, doc_id, "unparseable string", value)
                return None
            return _as_utc(dt)

        if isinstance(value, bool):
            _warn(field_name, doc_id, "boolean", value)
            return None

        if isinstance(value, (int, float)):
            # Epoch milliseconds.
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)

        if isinstance(value, dict):
            seconds = value.get("seconds")
            nanos = value.get("nanoseconds")
            if isinstance(seconds, (int, float)) and isinstance(nanos, (int, float)) \
                    and not isinstance(seconds, bool) and not isinstance(nanos, bool):
                return Timestamp(int(seconds), int(nanos)).to_datetime()
            _warn(field_name, doc_id, "mapping is not a timestamp", value)
            return None
    except (ValueError, OverflowError, OSError) as e:
        _warn(field_name, doc_id, f"out of range ({e})", value)
        return None

    _warn(field_name, doc_id, f"unrecognized type {type(value).__name__}", value)
    return None


def format_day(dt: datetime) -> str:
    """YYYY-MM-DD of the UTC calendar day."""
    return _as_utc(dt).strftime("%Y-%m-%d")


def format_display(dt: datetime | None) -> str:
    """`15 May 2024, 3:04 PM` style, or N/A."""
    if dt is None:
        return "N/A"
    d = _as_utc(dt)
    hour = d.hour % 12 or 12
    return f"{d.strftime('%d %b %Y')}, {hour}:{d.strftime('%M %p')}"


def parse_instant(value: Any) -> datetime | None:
    """Parse user input that may carry a time of day; None if invalid. Date-only input is midnight UTC."""
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    s = str(value or "").strip()
    if not s:
        return None
    try:
        return _as_utc(dt_parser.isoparse(s))
    except (ValueError, OverflowError):
        return None


def parse_calendar_date(value: Any) -> datetime | None:
    """Parse user input like `1990-05-15` to midnight UTC of that day; offset-aware input uses its UTC day. None if invalid."""
    if isinstance(value, datetime):
        d = _as_utc(value)
        return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    s = str(value or "").strip()
    if not s:
        return None
    try:
        parsed = dt_parser.isoparse(s)
    except (ValueError, OverflowError):
        return None
    d = _as_utc(parsed) if parsed.tzinfo else parsed
    return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
