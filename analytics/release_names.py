"""
Release build-name parsing.

Build names carry three independently matchable facts:

  4.12.0-0.nightly-2024-01-01-000000
  ^^^^^^^^^^^^^^^^ z-stream tag      -> minor=12, kind=nightly
  ^^^^             generic version   -> minor=12 (fallback, e.g. ``4.12.3``)
                   ^^^^^^^^^^^^^^^^^ trailing timestamp (UTC)

Each pattern has its own extractor; ``parse_release_name`` combines them.
A name that yields no minor version is not an identifier at all.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

# 4.NNN.0-0.ci / 4.NNN.0-0.nightly
Z_STREAM_PATTERN = re.compile(r"4\.([1-9][0-9]*)\.0-0\.(ci|nightly)")
MINOR_PATTERN = re.compile(r"4\.([1-9][0-9]*)\.[0-9]+")
# YYYY-MM-DD-HHMMSS
TIMESTAMP_PATTERN = re.compile(
    r"([0-9]{4})-([0-9]{2})-([0-9]{2})-([0-9]{2})([0-9]{2})([0-9]{2})$"
)


class StreamKind(str, Enum):
    CI = "ci"
    NIGHTLY = "nightly"
    OTHER = "other"


@dataclass(frozen=True)
class ReleaseIdentifier:
    minor: int
    kind: StreamKind
    timestamp: Optional[datetime] = None


def extract_z_stream(name):
    """Return ``(minor, kind)`` for a z-stream tag anywhere in ``name``, else ``None``."""
    match = Z_STREAM_PATTERN.search(name)
    if not match:
        return None
    return int(match.group(1)), StreamKind(match.group(2))


def extract_minor(name):
    """Return the minor of the first ``4.<minor>.<patch>`` tag in ``name``, else ``None``."""
    match = MINOR_PATTERN.search(name)
    if not match:
        return None
    return int(match.group(1))


def extract_timestamp(name):
    """Return the trailing ``YYYY-MM-DD-HHMMSS`` suffix as a naive UTC datetime.

    Digit groups that do not form a real calendar date-time count as no
    timestamp.
    """
    match = TIMESTAMP_PATTERN.search(name)
    if not match:
        return None
    try:
        return datetime(*(int(group) for group in match.groups()))
    except ValueError:
        return None


def parse_release_name(name) -> Optional[ReleaseIdentifier]:
    """Parse a build name into a ReleaseIdentifier.

    Returns ``None`` when no minor version can be extracted. Never raises,
    whatever the input.
    """
    if not isinstance(name, str) or not name:
        return None

    z_stream = extract_z_stream(name)
    if z_stream is not None:
        minor, kind = z_stream
    else:
        minor = extract_minor(name)
        if minor is None:
            return None
        kind = StreamKind.OTHER

    return ReleaseIdentifier(minor=minor, kind=kind, timestamp=extract_timestamp(name))


def parse_stream_name(name):
    """Parse a release-stream key like ``4.12.0-0.nightly`` into ``(minor, kind)``.

    Only exact z-stream keys qualify; ``4-stable`` or ``4.12.0-0.nightly-arm64``
    return ``None``.
    """
    if not isinstance(name, str):
        return None
    match = Z_STREAM_PATTERN.fullmatch(name.strip())
    if not match:
        return None
    return int(match.group(1)), StreamKind(match.group(2))


def release_stream_name(minor, kind):
    """Inverse of ``parse_stream_name``."""
    return f"4.{int(minor)}.0-0.{StreamKind(kind).value}"
