from datetime import datetime, timedelta, timezone

import pytest

from systemlog_series.gc import (
    GC_DURATION_SERIES,
    LAST_RESORT_RULE,
    GCEventExtractor,
    classify_generation,
    match_gc_line,
    parse_gc_events,
)
from systemlog_series.settings import ExtractionSettings
from systemlog_series.tracing import RecordingTracer
from tests.samples import GC_LINES


def test_structured_lines():
    result = parse_gc_events("\n".join(GC_LINES))

    assert result.series[GC_DURATION_SERIES] == [255.0, 412.0, 33.0]
    assert result.metadata["gcTypes"] == ["young", "old", "young"]
    assert result.metadata["ruleCounts"] == {"primary": 1, "old_generation": 1, "young_generation": 1}
    assert result.metadata["generationCounts"] == {"young": 2, "old": 1, "unknown": 0}
    assert result.metadata["rawDescriptions"][0] == "G1 Young Generation GC"
    result.check_alignment()


def test_synthetic_lines_keep_exact_durations():
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    durations = [5, 17, 250, 1024, 3]
    lines = [
        f"INFO  [GCInspector:1] {start + timedelta(seconds=i):%Y-%m-%d %H:%M:%S},000 "
        f"GCInspector.java:284 - G1 Young Generation GC in {duration}ms.  G1 Eden Space: 1 -> 0;"
        for i, duration in enumerate(durations)
    ]

    result = parse_gc_events("\n".join(lines))

    assert len(result.timestamps) == len(durations)
    assert result.series[GC_DURATION_SERIES] == [float(d) for d in durations]
    assert result.timestamps[0] == start


def test_loose_bracket_rule():
    line = "WARN  [GCInspector-thread] 2023-06-15 10:00:15,000 something happened in 77ms"
    event = match_gc_line(line, None, ExtractionSettings())
    assert event is not None
    assert event.rule == "loose_bracket"
    assert event.duration_ms == 77.0
    assert event.generation == "unknown"
    assert event.description.startswith("FALLBACK: ")


def test_duration_only_line_uses_context_timestamp():
    lines = [
        "INFO  [main] 2023-06-15 10:00:30,000 Foo.java:1 - before",
        "ERROR [GCInspector:1] GC pause lasted 12 ms",
    ]
    events = GCEventExtractor().extract_events(lines)
    assert len(events) == 1
    assert events[0].rule == "loose_duration"
    assert events[0].duration_ms == 12.0
    assert events[0].timestamp == datetime(2023, 6, 15, 10, 0, 30, tzinfo=timezone.utc)


def test_last_resort_records_estimated_duration():
    line = "INFO  [GCInspector:1] 2023-06-15 10:00:20,000 GCInspector.java:284 - Pause took ms"
    settings = ExtractionSettings(estimated_gc_duration_ms=42.0)

    event = match_gc_line(line, None, settings)

    assert event is not None
    assert event.rule == LAST_RESORT_RULE
    assert event.duration_ms == 42.0
    assert event.description.startswith("ESTIMATED: ")


def test_line_without_timestamp_or_context_is_dropped():
    assert match_gc_line("ERROR [GCInspector:1] GC pause lasted 12 ms", None, ExtractionSettings()) is None


def test_invalid_timestamp_without_context_is_dropped():
    tracer = RecordingTracer()
    lines = [
        "INFO  [GCInspector:1] 2023-13-45 10:00:00,000 GCInspector.java:284 - ParNew GC in 5ms",
        GC_LINES[0],
    ]
    result = GCEventExtractor(tracer=tracer).extract(lines)

    assert result.series[GC_DURATION_SERIES] == [255.0]
    assert tracer.warning_messages == []


@pytest.mark.parametrize(
    ("stamp", "expected"),
    [
        # Impossible date: the previous line's timestamp applies
        ("2023-13-45 10:00:00,000", datetime(2023, 6, 15, 10, 0, 30, tzinfo=timezone.utc)),
        # Over-long fraction: the context reads the stamp to microseconds
        (
            "2023-06-15 10:00:31,1234567890",
            datetime(2023, 6, 15, 10, 0, 31, 123456, tzinfo=timezone.utc),
        ),
    ],
)
def test_unparseable_rule_timestamp_falls_back_to_context(stamp, expected):
    lines = [
        "INFO  [main] 2023-06-15 10:00:30,000 Foo.java:1 - before",
        f"INFO  [GCInspector:1] {stamp} GCInspector.java:284 - ParNew GC in 5ms",
    ]
    events = GCEventExtractor().extract_events(lines)

    assert len(events) == 1
    assert events[0].rule == "primary"
    assert events[0].duration_ms == 5.0
    assert events[0].generation == "young"
    assert events[0].timestamp == expected


def test_pauses_sharing_a_timestamp_add_up():
    lines = [
        "INFO  [Service Thread] 2023-06-15 10:00:00,000 GCInspector.java:284 - ParNew GC in 30ms.",
        "INFO  [Service Thread] 2023-06-15 10:00:00,000 GCInspector.java:284 - ConcurrentMarkSweep GC in 400ms.",
        "INFO  [Service Thread] 2023-06-15 10:00:00,000 GCInspector.java:284 - ParNew GC in 20ms.",
    ]
    result = parse_gc_events("\n".join(lines))

    assert len(result.timestamps) == 1
    assert result.series[GC_DURATION_SERIES] == [450.0]
    assert result.metadata["gcTypes"] == ["old"]
    assert result.metadata["generationCounts"] == {"young": 2, "old": 1, "unknown": 0}


def test_empty_input():
    result = parse_gc_events("nothing to see here\nINFO  [main] 2023-06-15 10:00:00,000 A.java:1 - x")
    assert result.timestamps == []
    assert result.series == {}


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("G1 Young Generation GC in 1ms", "young"),
        ("ParNew GC in 33ms.  CMS Old Gen: 1 -> 2;", "young"),
        ("PS Scavenge GC in 10ms", "young"),
        ("G1 Old Generation GC in 900ms", "old"),
        ("ConcurrentMarkSweep GC in 412ms", "old"),
        ("Full GC (Allocation Failure) 2000ms", "old"),
        ("Pause of 12ms", "unknown"),
    ],
)
def test_classify_generation(line, expected):
    assert classify_generation(line) == expected
