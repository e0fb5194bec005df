"""Timestamp recognition and normalization.

Two encodings show up in system logs:

- ``2023-06-15 10:15:23,456`` (log4j/logback default, comma before millis)
- ``2025-02-27T13:24:23+0100`` / ``2025-02-27T13:24:23.120Z`` (ISO-8601 with offset)

Both normalize to a timezone-aware UTC ``datetime``. Stamps without an offset
are labelled UTC as-is; no local timezone is ever inferred.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

ISO_OFFSET_PATTERN: re.Pattern[str] = re.compile(
    r"(?P<date>\d{4}-\d{2}-\d{2})T(?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:[.,](?P<fraction>\d{1,9}))?"
    r"(?P<offset>Z|[+-]\d{2}:?\d{2})"
)

LOCAL_PATTERN: re.Pattern[str] = re.compile(
    r"(?P<date>\d{4}-\d{2}-\d{2})(?:T|\s+)(?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:[.,](?P<fraction>\d{1,9}))?"
)

TIMESTAMP_PATTERNS: tuple[re.Pattern[str], ...] = (ISO_OFFSET_PATTERN, LOCAL_PATTERN)


def _normalize_offset(offset: str | None) -> str:
    if not offset or offset == "Z":
        return "+00:00"
    if ":" not in offset:
        return f"{offset[:3]}:{offset[3:]}"
    return offset


def _build_timestamp(match: re.Match[str]) -> datetime:
    fraction = (match.group("fraction") or "").ljust(6, "0")[:6]
    offset = match.groupdict().get("offset")
    iso_text = f"{match.group('date')}T{match.group('time')}.{fraction}{_normalize_offset(offset)}"
    return datetime.fromisoformat(iso_text).astimezone(timezone.utc)


def parse_timestamp(text: str) -> datetime:
    """Parse a single timestamp token into a canonical UTC instant.

    Raises:
        ValueError: if the text is not one of the recognised encodings or
            names an impossible date.
    """
    candidate = text.strip().replace(",", ".")
    for pattern in TIMESTAMP_PATTERNS:
        if match := pattern.fullmatch(candidate):
            return _build_timestamp(match)
    raise ValueError(f"Unrecognized timestamp: {text!r}")


def extract_timestamp(line: str) -> datetime | None:
    """Return the first timestamp found in a log line, or None."""
    best: re.Match[str] | None = None
    for pattern in TIMESTAMP_PATTERNS:
        match = pattern.search(line)
        if match and (best is None or match.start() < best.start()):
            best = match
    if best is None:
        return None
    try:
        return _build_timestamp(best)
    except ValueError:
        return None


class TimestampContext:
    """Carries the most recently seen timestamp across lines.

    Continuation lines (report rows, stack traces) carry no timestamp of their
    own and belong to the last stamped line before them.
    """

    def __init__(self) -> None:
        self.current: datetime | None = None

    def observe(self, line: str) -> datetime | None:
        """Update the context from a line and return the timestamp that applies to it."""
        if (timestamp := extract_timestamp(line)) is not None:
            self.current = timestamp
        return self.current
