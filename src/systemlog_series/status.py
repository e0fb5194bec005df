"""StatusLogger report occurrences."""

from __future__ import annotations

from systemlog_series.assembler import SeriesAssembler
from systemlog_series.classifier import LineCategory, classify_line, is_log_line
from systemlog_series.models import ParsedTimeSeries
from systemlog_series.threadpool import STATUS_MESSAGE_PATTERN, parse_header
from systemlog_series.timestamps import extract_timestamp
from systemlog_series.tracing import NullTracer, Tracer

STATUS_EVENTS_SERIES = "Status Events"


def is_report_start(line: str) -> bool:
    """A tagged line opening a report: empty message (rows follow) or an inline header."""
    if classify_line(line) is not LineCategory.STATUS or not is_log_line(line):
        return False
    match = STATUS_MESSAGE_PATTERN.search(line)
    if not match:
        return False
    message = match.group("message").strip()
    return not message or parse_header(message) is not None


def extract_status_events(lines: list[str], tracer: Tracer | None = None) -> ParsedTimeSeries:
    """Count StatusLogger reports per timestamp."""
    tracer = tracer or NullTracer()
    assembler = SeriesAssembler([STATUS_EVENTS_SERIES], accumulate=True)
    for line in lines:
        if not is_report_start(line):
            continue
        if (timestamp := extract_timestamp(line)) is not None:
            assembler.add(timestamp, {STATUS_EVENTS_SERIES: 1.0})
    tracer.debug(f"Status events: {len(assembler)} report timestamps")
    return assembler.build()


def parse_status_events(log_content: str, tracer: Tracer | None = None) -> ParsedTimeSeries:
    """Count StatusLogger reports in raw system.log text."""
    return extract_status_events(log_content.splitlines(), tracer)
