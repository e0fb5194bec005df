"""Timed-out asynchronous read warnings."""

from __future__ import annotations

import re
from collections import Counter
from datetime import datetime
from typing import NamedTuple

from systemlog_series.assembler import SeriesAssembler
from systemlog_series.classifier import LineCategory, classify_line
from systemlog_series.models import ParsedTimeSeries
from systemlog_series.settings import ExtractionSettings
from systemlog_series.timestamps import extract_timestamp
from systemlog_series.tracing import NullTracer, Tracer

TIMED_OUT_READS_SERIES = "Timed Out Reads"
FILE_SERIES_PREFIX = "File: "

SLOW_READ_PATTERN: re.Pattern[str] = re.compile(
    r"WARN.*Timed out async read from.*for file\s+(?P<path>/\S+)"
)


class SlowRead(NamedTuple):
    timestamp: datetime
    path: str
    file_key: str


def file_group_key(path: str) -> str:
    """Last two path segments: ``/data/ks/tbl-1a2b/nb-1-big-Data.db`` -> ``tbl-1a2b/nb-1-big-Data.db``."""
    return "/".join([segment for segment in path.split("/") if segment][-2:])


class SlowReadExtractor:
    """Counts timed-out reads over time and per data file."""

    def __init__(
        self, settings: ExtractionSettings | None = None, tracer: Tracer | None = None
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.tracer = tracer or NullTracer()

    def extract_reads(self, lines: list[str]) -> list[SlowRead]:
        reads: list[SlowRead] = []
        for line in lines:
            if classify_line(line) is not LineCategory.SLOW_READ:
                continue
            match = SLOW_READ_PATTERN.search(line)
            if not match:
                continue
            timestamp = extract_timestamp(line)
            if timestamp is None:
                continue
            path = match.group("path")
            reads.append(SlowRead(timestamp, path, file_group_key(path)))
        return reads

    def extract(self, lines: list[str]) -> ParsedTimeSeries:
        reads = self.extract_reads(lines)

        file_counts = Counter(read.file_key for read in reads)
        ranked = sorted(file_counts.items(), key=lambda item: item[1], reverse=True)
        top_files = {key for key, _ in ranked[: self.settings.top_files]}

        assembler = SeriesAssembler([TIMED_OUT_READS_SERIES], accumulate=True)
        for key, _ in ranked[: self.settings.top_files]:
            assembler.declare(f"{FILE_SERIES_PREFIX}{key}")
        for read in reads:
            values = {TIMED_OUT_READS_SERIES: 1.0}
            if read.file_key in top_files:
                values[f"{FILE_SERIES_PREFIX}{read.file_key}"] = 1.0
            assembler.add(read.timestamp, values)

        self.tracer.debug(f"Slow reads: {len(reads)} timeouts across {len(file_counts)} files")
        return assembler.build({"fileCounts": dict(ranked)})


def parse_slow_reads(
    log_content: str, settings: ExtractionSettings | None = None, tracer: Tracer | None = None
) -> ParsedTimeSeries:
    """Extract timed-out reads from raw system.log text."""
    return SlowReadExtractor(settings, tracer).extract(log_content.splitlines())
