"""
Shared time helpers for the analytics layer.

Centralizes timestamp parsing, duration parsing and age rendering so the
classifier, the formatter and the config loader agree on one convention:
naive UTC datetimes truncated to the second.
"""

import re
from datetime import datetime, timedelta, timezone

_DURATION_PART = re.compile(r"([0-9]+(?:\.[0-9]+)?)(ms|s|m|h|d|w)")
_DURATION_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}


def utcnow():
    """Return the current UTC time as a naive datetime truncated to the second.

    Replaces the deprecated ``datetime.utcnow()`` while keeping the rest
    of the codebase free from timezone-aware/naive comparison headaches.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)


def parse_timestamp(value):
    """Parse common timestamp formats into a naive UTC datetime.

    Supported inputs:
      - ``None`` / empty string -> ``None``
      - ``datetime`` instance (returned after UTC conversion)
      - ISO-8601 strings  (``2024-01-15T12:30:00Z``, ``2024-01-15T12:30:00+05:00``)
      - ``YYYY-MM-DD HH:MM:SS``
      - ``YYYY-MM-DD``

    Unrecognized or out-of-range values yield ``None``.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        raw = str(value).strip()
        if not raw:
            return None
        try:
            dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
                try:
                    dt = datetime.strptime(raw, fmt)
                    break
                except ValueError:
                    dt = None
            if dt is None:
                return None
    if dt.tzinfo is not None:
        try:
            dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
        except OverflowError:
            return None
    return dt.replace(microsecond=0)


def parse_duration(value):
    """Parse a Go-style duration string (``24h``, ``1h30m``, ``2d``) into a timedelta.

    Integers and floats are read as hours. ``timedelta`` values pass through.
    Raises ``ValueError`` for anything else.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(hours=value)
    raw = str(value or "").strip().lower()
    if not raw:
        raise ValueError("empty duration")

    total = timedelta()
    position = 0
    for match in _DURATION_PART.finditer(raw):
        if match.start() != position:
            raise ValueError(f"invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(raw):
        raise ValueError(f"invalid duration: {value!r}")
    return total


def format_duration(delta):
    """Render a timedelta as a compact ``2d4h``-style string; ``None`` -> ``unknown``."""
    if delta is None:
        return "unknown"
    seconds = int(delta.total_seconds())
    sign = "-" if seconds < 0 else ""
    seconds = abs(seconds)
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes and not days:
        parts.append(f"{minutes}m")
    if not parts:
        parts.append(f"{seconds}s")
    return sign + "".join(parts)
