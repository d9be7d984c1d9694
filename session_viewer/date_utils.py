"""Shared timestamp parsing and formatting helpers."""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# Python 3.10 fromisoformat only accepts 3 or 6 fractional digits.
_FRACTIONAL_SECONDS = re.compile(r"(\d{2}:\d{2}:\d{2})[.,](\d+)")


def _pad_fraction(match: re.Match) -> str:
    return f"{match.group(1)}.{match.group(2)[:6].ljust(6, '0')}"


def format_datetime_utc(value: datetime) -> str:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def _parse_datetime_token(token: str) -> datetime | None:
    cleaned = token.strip()
    if not cleaned:
        return None
    if cleaned.endswith(("Z", "z")):
        cleaned = cleaned[:-1] + "+00:00"
    cleaned = _FRACTIONAL_SECONDS.sub(_pad_fraction, cleaned, count=1)
    try:
        parsed = datetime.fromisoformat(cleaned)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_timestamp_ms(value: Any) -> int | None:
    """Convert an ISO-8601 event timestamp into epoch milliseconds.

    Returns ``None`` for absent, non-string or unparseable values so callers
    can decide how to treat untimed events.
    """
    if not isinstance(value, str):
        return None
    parsed = _parse_datetime_token(value)
    if parsed is None:
        return None
    return (parsed - _EPOCH) // timedelta(milliseconds=1)


def sort_epoch_ms(value: Any) -> int:
    """Epoch milliseconds for ordering; unparseable values sort as 0."""
    return parse_timestamp_ms(value) or 0


def _created_timestamp(stats: Any) -> float | None:
    # st_birthtime is missing on most Linux filesystems.
    for value in (getattr(stats, "st_birthtime", None), getattr(stats, "st_ctime", None)):
        if isinstance(value, (int, float)) and value > 0:
            return float(value)
    return None


def stat_dates(stats: Any) -> dict[str, str]:
    """Return normalized creation/modified timestamps from an ``os.stat_result``."""
    modified = float(stats.st_mtime)
    created = _created_timestamp(stats) or modified
    return {
        "createdAt": format_datetime_utc(datetime.fromtimestamp(created, timezone.utc)),
        "updatedAt": format_datetime_utc(datetime.fromtimestamp(modified, timezone.utc)),
    }
