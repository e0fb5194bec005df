"""Cheap substring routing of raw log lines."""

from __future__ import annotations

import re
from enum import StrEnum


class LineCategory(StrEnum):
    GC = "gc"
    STATUS = "status"
    TOMBSTONE = "tombstone"
    SLOW_READ = "slow_read"
    SECTION_BOUNDARY = "section_boundary"
    OTHER = "other"


GC_MARKER = "GCInspector"
STATUS_MARKER = "StatusLogger"
TOMBSTONE_MARKERS: tuple[str, ...] = ("ReadCommand.java", "tombstone")
SLOW_READ_MARKER = "Timed out async read"

# Headers of StatusLogger sections that follow the thread-pool table
SECTION_MARKERS: tuple[str, ...] = (
    "Memtable Metrics",
    "Keyspace Metrics",
    "Cache Type",
    "ColumnFamily",
    "Message type",
    "Meters",
)
TABLE_SECTION_PATTERN: re.Pattern[str] = re.compile(r"^\s*Table\s{2,}")

LOG_LEVEL_PATTERN: re.Pattern[str] = re.compile(r"^\s*(?:TRACE|DEBUG|INFO|WARN|ERROR|FATAL)\b")


def is_log_line(line: str) -> bool:
    """True for lines that start a new log record (level prefix)."""
    return LOG_LEVEL_PATTERN.match(line) is not None


def is_section_boundary(line: str) -> bool:
    """True for headers of report sections that are not thread-pool tables."""
    return any(marker in line for marker in SECTION_MARKERS) or bool(
        TABLE_SECTION_PATTERN.match(line)
    )


def classify_line(line: str) -> LineCategory:
    """Route a line to at most one extractor category."""
    if GC_MARKER in line:
        return LineCategory.GC
    if SLOW_READ_MARKER in line:
        return LineCategory.SLOW_READ
    if all(marker in line for marker in TOMBSTONE_MARKERS):
        return LineCategory.TOMBSTONE
    if is_section_boundary(line):
        return LineCategory.SECTION_BOUNDARY
    if STATUS_MARKER in line:
        return LineCategory.STATUS
    return LineCategory.OTHER
