"""GCInspector pause extraction."""

from __future__ import annotations

import re
from collections import Counter
from datetime import datetime
from typing import NamedTuple

from systemlog_series.assembler import SeriesAssembler
from systemlog_series.classifier import GC_MARKER, LineCategory, classify_line
from systemlog_series.models import GCEvent, GCGeneration, ParsedTimeSeries
from systemlog_series.settings import ExtractionSettings
from systemlog_series.timestamps import TimestampContext, extract_timestamp, parse_timestamp
from systemlog_series.tracing import NullTracer, Tracer

GC_DURATION_SERIES = "GC Duration (ms)"
LAST_RESORT_RULE = "last_resort"

_TIMESTAMP = (
    r"(?P<timestamp>\d{4}-\d{2}-\d{2}(?:T|\s+)\d{2}:\d{2}:\d{2}(?:[,.]\d+)?"
    r"(?:Z|[+-]\d{2}:?\d{2})?)"
)
_SOURCE_TAG = r".*?GCInspector\.java:\d+\s+-\s+"

YOUNG_COLLECTORS = ("G1 Young Generation", "ParNew", "PS Scavenge", "Copy", "Young")
OLD_COLLECTORS = (
    "G1 Old Generation",
    "ConcurrentMarkSweep",
    "MarkSweepCompact",
    "PS MarkSweep",
    "Old",
    "Full",
)

YOUNG_KEYWORDS = ("young generation", "young gen", "parnew", "scavenge")
OLD_KEYWORDS = ("old generation", "old gen", "full gc", "concurrentmarksweep", "marksweep")
GENERATION_SEVERITY: tuple[GCGeneration, ...] = ("unknown", "young", "old")


class GCRule(NamedTuple):
    """One pattern in the GC cascade.

    Patterns expose ``duration`` and optionally ``timestamp`` and ``description``.
    Without a ``timestamp`` group the context timestamp is used.
    """

    name: str
    pattern: re.Pattern[str]


def _collectors(names: tuple[str, ...]) -> str:
    return "|".join(re.escape(name) for name in names)


# Ordered: structured rules first, then progressively looser ones
GC_RULES: tuple[GCRule, ...] = (
    GCRule(
        "primary",
        re.compile(
            r"INFO\s+\[GCInspector:\d+\]\s+" + _TIMESTAMP + r"\s+GCInspector\.java:\d+\s+-\s+"
            r"(?P<description>.*?)\s+in\s+(?P<duration>\d+)ms"
        ),
    ),
    GCRule(
        "young_generation",
        re.compile(
            _TIMESTAMP + _SOURCE_TAG + r"(?P<description>(?:" + _collectors(YOUNG_COLLECTORS) + r")"
            r"[^;]*?)\s+GC\s+in\s+(?P<duration>\d+)ms"
        ),
    ),
    GCRule(
        "old_generation",
        re.compile(
            _TIMESTAMP + _SOURCE_TAG + r"(?P<description>(?:" + _collectors(OLD_COLLECTORS) + r")"
            r"[^;]*?)\s+GC\s+in\s+(?P<duration>\d+)ms"
        ),
    ),
    GCRule(
        "collection_summary",
        re.compile(
            _TIMESTAMP + _SOURCE_TAG + r"GC for (?P<description>[A-Za-z ]+):\s+"
            r"(?P<duration>\d+)\s+ms for \d+ collections"
        ),
    ),
    GCRule(
        "loose_bracket",
        re.compile(
            r"\[GCInspector.*?\]\s+(?P<timestamp>\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}:\d{2}(?:[,.]\d+)?)"
            r".*?in\s+(?P<duration>\d+)ms"
        ),
    ),
    GCRule(
        "loose_timestamp",
        re.compile(_TIMESTAMP + r".*?(?P<duration>\d+(?:\.\d+)?)\s*ms\b"),
    ),
    GCRule(
        "loose_duration",
        re.compile(r"(?P<duration>\d+(?:\.\d+)?)\s*ms\b"),
    ),
)


def classify_generation(line: str) -> GCGeneration:
    """Tag a GC line young/old/unknown from keywords anywhere in it.

    Young is checked first so that lines naming both generations (a young
    collection reporting old-gen occupancy) stay young.
    """
    lowered = line.lower()
    if any(keyword in lowered for keyword in YOUNG_KEYWORDS) or (
        "young" in lowered and "old" not in lowered
    ):
        return "young"
    if any(keyword in lowered for keyword in OLD_KEYWORDS):
        return "old"
    return "unknown"


def match_gc_line(
    line: str, context_timestamp: datetime | None, settings: ExtractionSettings
) -> GCEvent | None:
    """Run the rule cascade over one line.

    A captured timestamp that does not parse counts as no timestamp: the
    context timestamp applies instead.

    Raises:
        ValueError: if a rule matched but its captured duration does not convert.
    """
    if GC_MARKER not in line:
        return None

    for rule in GC_RULES:
        match = rule.pattern.search(line)
        if not match:
            continue
        groups = match.groupdict()
        timestamp = context_timestamp
        if groups.get("timestamp"):
            try:
                timestamp = parse_timestamp(groups["timestamp"])
            except ValueError:
                timestamp = context_timestamp
        if timestamp is None:
            continue
        description = groups.get("description") or f"FALLBACK: {line.strip()[:50]}..."
        return GCEvent(
            timestamp=timestamp,
            duration_ms=float(groups["duration"]),
            generation=classify_generation(line),
            rule=rule.name,
            description=description.strip(),
        )

    # Undercounting pauses is worse than one estimated duration
    if "ms" in line:
        timestamp = extract_timestamp(line) or context_timestamp
        if timestamp is not None:
            return GCEvent(
                timestamp=timestamp,
                duration_ms=settings.estimated_gc_duration_ms,
                generation=classify_generation(line),
                rule=LAST_RESORT_RULE,
                description=f"ESTIMATED: {line.strip()[:50]}...",
            )
    return None


class GCEventExtractor:
    """Builds the GC pause series from a whole log."""

    def __init__(
        self, settings: ExtractionSettings | None = None, tracer: Tracer | None = None
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.tracer = tracer or NullTracer()

    def extract_events(self, lines: list[str]) -> list[GCEvent]:
        events: list[GCEvent] = []
        context = TimestampContext()

        for line_number, line in enumerate(lines, start=1):
            timestamp = context.observe(line)
            if classify_line(line) is not LineCategory.GC:
                continue
            try:
                event = match_gc_line(line, timestamp, self.settings)
            except ValueError as exc:
                self.tracer.warning(f"Skipping GC line {line_number}: {exc}")
                continue
            if event is not None:
                events.append(event)

        return events

    def extract(self, lines: list[str]) -> ParsedTimeSeries:
        events = self.extract_events(lines)

        # Pauses sharing a timestamp add up; the most severe generation is kept
        assembler = SeriesAssembler([GC_DURATION_SERIES], accumulate=True)
        generation_by_timestamp: dict[datetime, GCGeneration] = {}
        for event in events:
            assembler.add(event.timestamp, {GC_DURATION_SERIES: event.duration_ms})
            previous = generation_by_timestamp.get(event.timestamp, "unknown")
            generation_by_timestamp[event.timestamp] = max(
                previous, event.generation, key=GENERATION_SEVERITY.index
            )

        rule_counts = Counter(event.rule for event in events)
        generation_counts = Counter(event.generation for event in events)
        self.tracer.debug(
            f"GC: {len(events)} events "
            f"(young={generation_counts['young']}, old={generation_counts['old']}, "
            f"unknown={generation_counts['unknown']}); rules={dict(rule_counts)}"
        )

        result = assembler.build()
        result.metadata = {
            "gcTypes": [generation_by_timestamp[ts] for ts in result.timestamps],
            "rawDescriptions": [event.description for event in events],
            "ruleCounts": dict(rule_counts),
            "generationCounts": {
                generation: generation_counts[generation] for generation in ("young", "old", "unknown")
            },
        }
        return result


def parse_gc_events(
    log_content: str, settings: ExtractionSettings | None = None, tracer: Tracer | None = None
) -> ParsedTimeSeries:
    """Extract GC pauses from raw system.log text."""
    return GCEventExtractor(settings, tracer).extract(log_content.splitlines())
