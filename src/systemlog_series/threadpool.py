"""Thread-pool (StatusLogger) metrics extraction.

StatusLogger reports come in several layouts depending on the server
version/distribution:

- multi-line: a tagged log line, a ``Pool Name ...`` column header, then one
  untagged row per pool (DSE 6.x style, with ``Pending (w/Backpressure)``)
- single-line: one tagged log line per pool, no usable header
- split-row: multi-line report where the pool name and its values sit on
  consecutive lines
- untagged table: a ``Pool Name`` table pasted without any StatusLogger tag

Layout parsers are tried in that order over the whole input; the first one
that recognises a pool wins and the rest never run.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import NamedTuple, Protocol

from systemlog_series.assembler import SeriesAssembler
from systemlog_series.classifier import (
    LineCategory,
    classify_line,
    is_log_line,
    is_section_boundary,
)
from systemlog_series.models import LayoutAttempt, ParsedTimeSeries, PoolCategory, PoolSample
from systemlog_series.settings import ExtractionSettings
from systemlog_series.timestamps import TimestampContext, extract_timestamp
from systemlog_series.tracing import NullTracer, Tracer

# ============================================================
# METRIC NAMES
# ============================================================

ACTIVE = "Active"
PENDING = "Pending"
BACKPRESSURE = "Backpressure"
DELAYED = "Delayed"
SHARED = "Shared"
STOLEN = "Stolen"
COMPLETED = "Completed"
BLOCKED = "Blocked"
ALL_TIME_BLOCKED = "All Time Blocked"

STANDARD_METRICS: tuple[str, ...] = (ACTIVE, PENDING, DELAYED, COMPLETED, BLOCKED, ALL_TIME_BLOCKED)
OPTIONAL_METRICS: tuple[str, ...] = (BACKPRESSURE, SHARED, STOLEN)
METRIC_ORDER: tuple[str, ...] = (
    ACTIVE,
    PENDING,
    BACKPRESSURE,
    DELAYED,
    SHARED,
    STOLEN,
    COMPLETED,
    BLOCKED,
    ALL_TIME_BLOCKED,
)

# Header-only column markers
POOL_NAME_COLUMN = "Pool Name"
PENDING_WITH_BACKPRESSURE = "Pending (w/Backpressure)"

# Positional schemas for rows without a header
SHORT_SCHEMA: tuple[str, ...] = (ACTIVE, PENDING, COMPLETED, BLOCKED, ALL_TIME_BLOCKED)
DELAYED_SCHEMA: tuple[str, ...] = (ACTIVE, PENDING, DELAYED, COMPLETED, BLOCKED, ALL_TIME_BLOCKED)
FULL_SCHEMA: tuple[str, ...] = METRIC_ORDER
# Widest first; a row takes the first schema it has enough values for
POSITIONAL_SCHEMAS: tuple[tuple[str, ...], ...] = (FULL_SCHEMA, DELAYED_SCHEMA, SHORT_SCHEMA)

TPC_PREFIX = "TPC/"

# Header cell normalization: first rule whose keywords all appear wins
HEADER_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("all time blocked",), ALL_TIME_BLOCKED),
    (("alltimeblocked",), ALL_TIME_BLOCKED),
    (("pending", "backpressure"), PENDING_WITH_BACKPRESSURE),
    (("backpressure",), BACKPRESSURE),
    (("pending",), PENDING),
    (("active",), ACTIVE),
    (("delayed",), DELAYED),
    (("completed",), COMPLETED),
    (("blocked",), BLOCKED),
    (("shared",), SHARED),
    (("stolen",), STOLEN),
    (("pool",), POOL_NAME_COLUMN),
)

NOT_A_POOL_KEYWORDS: tuple[str, ...] = ("capacity", "keystosave", "keys to save", "provider", "ops,data")

# ============================================================
# PATTERNS
# ============================================================

HEADER_SPLIT_PATTERN: re.Pattern[str] = re.compile(r"\s{2,}|\t")
HEADER_PHRASE_PATTERN: re.Pattern[str] = re.compile(
    r"pool\s*name|all\s*time\s*blocked|pending\s*\(\s*w/\s*backpressure\s*\)|\S+",
    re.IGNORECASE,
)

_NUMBER = r"N/A|n/a|-?\d+(?:\.\d+)?"
VALUE_CELL_PATTERN: re.Pattern[str] = re.compile(
    rf"(?P<value>{_NUMBER})(?:\s*\((?P<qualifier>{_NUMBER})\))?"
)
_CELL = rf"(?:{_NUMBER})(?:\s*\((?:{_NUMBER})\))?"
VALUE_RUN_PATTERN: re.Pattern[str] = re.compile(rf"{_CELL}(?:\s+{_CELL})*")
ROW_PATTERN: re.Pattern[str] = re.compile(r"^(?P<name>\S+(?: \S+)*)(?:\s{2,}|\t)\s*(?P<values>.+)$")
SINGLE_SPACE_ROW_PATTERN: re.Pattern[str] = re.compile(r"^(?P<name>\S+)\s+(?P<values>.+)$")
STATUS_MESSAGE_PATTERN: re.Pattern[str] = re.compile(
    r"StatusLogger(?:\.java)?:\d+\s+-\s*(?P<message>.*)$"
)
QUALIFIED_NAME_PATTERN: re.Pattern[str] = re.compile(
    r"(?<![\w./-])[A-Za-z_][\w-]*(?:[./][A-Za-z_][\w-]*)+"
)

SYNTHETIC_TIMESTAMP = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ============================================================
# LINE-LEVEL HELPERS
# ============================================================


class ValueCell(NamedTuple):
    value: float
    qualifier: float | None


class ReportStart(NamedTuple):
    """A tagged StatusLogger line followed by a recognised column header."""

    timestamp: datetime
    columns: list[str | None]
    body_start: int


def pool_category(pool: str) -> PoolCategory:
    """Per-core (TPC) pools are recognised purely by their name prefix."""
    return "tpc" if pool.startswith(TPC_PREFIX) else "standard"


def to_metric_value(token: str) -> float:
    """Convert a metric token; "N/A" is 0."""
    if token.upper() == "N/A":
        return 0.0
    return float(token)


def normalize_header_cell(cell: str) -> str | None:
    """Map a raw header cell onto a canonical column name (None if unknown)."""
    lowered = " ".join(cell.lower().split())
    for keywords, canonical in HEADER_RULES:
        if all(keyword in lowered for keyword in keywords):
            return canonical
    return None


def parse_header(line: str) -> list[str | None] | None:
    """Parse a ``Pool Name  Active  Pending ...`` header into canonical columns."""
    stripped = line.strip()
    if not re.match(r"pool\s*name", stripped, re.IGNORECASE):
        return None

    cells = [cell for cell in HEADER_SPLIT_PATTERN.split(stripped) if cell]
    if len(cells) < 3:
        cells = HEADER_PHRASE_PATTERN.findall(stripped)

    columns = [normalize_header_cell(cell) for cell in cells]
    if columns[0] != POOL_NAME_COLUMN or ACTIVE not in columns:
        return None
    return columns


def split_value_cells(text: str) -> list[ValueCell] | None:
    """Split a run of numeric / N/A cells; None if anything else is in it."""
    stripped = text.strip()
    if not stripped or not VALUE_RUN_PATTERN.fullmatch(stripped):
        return None
    return [
        ValueCell(
            to_metric_value(match.group("value")),
            to_metric_value(match.group("qualifier")) if match.group("qualifier") else None,
        )
        for match in VALUE_CELL_PATTERN.finditer(stripped)
    ]


def is_plausible_pool_name(name: str) -> bool:
    if len(name) < 2 or name.upper() == "N/A":
        return False
    if not re.search(r"[A-Za-z]", name):
        return False
    return not ("[" in name and "]" in name)


def is_candidate_row(line: str) -> bool:
    """Reject lines that are obviously not pool rows even inside a report."""
    lowered = line.lower()
    if ", " in line or re.search(r"\d,\d", line):
        return False
    if "---" in line or "===" in line:
        return False
    return not any(keyword in lowered for keyword in NOT_A_POOL_KEYWORDS)


def ends_report_block(line: str, settings: ExtractionSettings) -> bool:
    return (
        is_log_line(line)
        or is_section_boundary(line)
        or len(line.strip()) < settings.min_pool_row_length
    )


def split_pool_row(line: str) -> tuple[str, list[ValueCell]] | None:
    """Split ``<pool name>  <values...>`` into the name and its value cells."""
    stripped = line.strip()
    match = ROW_PATTERN.match(stripped) or SINGLE_SPACE_ROW_PATTERN.match(stripped)
    if not match:
        return None
    name = match.group("name").strip()
    cells = split_value_cells(match.group("values"))
    if cells is None or not is_plausible_pool_name(name):
        return None
    return name, cells


def map_cells_by_header(cells: list[ValueCell], columns: list[str | None]) -> dict[str, float]:
    """Assign value cells to the header's metric columns, left to right."""
    metrics: dict[str, float] = {}
    for cell, column in zip(cells, columns[1:]):
        if column is None or column == POOL_NAME_COLUMN:
            continue
        if column in (PENDING, PENDING_WITH_BACKPRESSURE):
            metrics[PENDING] = cell.value
            if cell.qualifier is not None or column == PENDING_WITH_BACKPRESSURE:
                metrics[BACKPRESSURE] = cell.qualifier or 0.0
        else:
            metrics[column] = cell.value
    return metrics


def map_cells_by_position(cells: list[ValueCell]) -> dict[str, float] | None:
    """Assign value cells using the widest positional schema their count allows."""
    schema = next((s for s in POSITIONAL_SCHEMAS if len(cells) >= len(s)), None)
    if schema is None:
        return None
    metrics: dict[str, float] = {}
    for cell, metric in zip(cells, schema):
        metrics[metric] = cell.value
        if metric == PENDING and cell.qualifier is not None:
            metrics[BACKPRESSURE] = cell.qualifier
    return metrics


def find_tagged_reports(lines: list[str], settings: ExtractionSettings) -> Iterator[ReportStart]:
    """Yield every StatusLogger tag line that is followed by a column header."""
    for index, line in enumerate(lines):
        if classify_line(line) is not LineCategory.STATUS or not is_log_line(line):
            continue
        timestamp = extract_timestamp(line)
        if timestamp is None:
            continue
        for offset in range(1, settings.header_lookahead + 1):
            if index + offset >= len(lines):
                break
            candidate = lines[index + offset]
            if is_log_line(candidate):
                break
            if columns := parse_header(candidate):
                yield ReportStart(timestamp, columns, index + offset + 1)
                break


def read_header_mapped_block(
    lines: list[str],
    start: int,
    columns: list[str | None],
    timestamp: datetime,
    attempt: LayoutAttempt,
    settings: ExtractionSettings,
    tracer: Tracer,
) -> int:
    """Read one-row-per-pool lines after a header; return the index that ended the block."""
    index = start
    while index < len(lines):
        line = lines[index]
        if ends_report_block(line, settings):
            return index
        index += 1
        if not is_candidate_row(line):
            continue
        try:
            row = split_pool_row(line)
            if row is None:
                continue
            pool, cells = row
            metrics = map_cells_by_header(cells, columns)
        except ValueError as exc:
            tracer.warning(f"Skipping thread pool row {index}: {exc}")
            continue
        if metrics:
            attempt.record(PoolSample(timestamp=timestamp, pool=pool, metrics=metrics))
    return index


# ============================================================
# LAYOUT PARSERS
# ============================================================


class PoolLayoutParser(Protocol):
    """Protocol defining a thread-pool report layout."""

    layout_name: str

    def parse(
        self, lines: list[str], settings: ExtractionSettings, tracer: Tracer
    ) -> LayoutAttempt:
        """Extract pool samples from the whole input."""
        ...


class MultiLineReportParser:
    """Tagged line, column header, then one untagged row per pool."""

    layout_name: str = "multi_line"

    def parse(
        self, lines: list[str], settings: ExtractionSettings, tracer: Tracer
    ) -> LayoutAttempt:
        attempt = LayoutAttempt(layout=self.layout_name)
        for report in find_tagged_reports(lines, settings):
            read_header_mapped_block(
                lines, report.body_start, report.columns, report.timestamp, attempt, settings, tracer
            )
        return attempt


class SingleLineReportParser:
    """One tagged StatusLogger line per pool, e.g.

    ``INFO [ScheduledTasks:1] 2024-04-11 13:47:59,901 StatusLogger.java:51 - ReadStage  1  0  3350878  0  0``

    Values are mapped positionally; rows following a tagged ``Pool Name``
    header share that header's timestamp.
    """

    layout_name: str = "single_line"

    def parse(
        self, lines: list[str], settings: ExtractionSettings, tracer: Tracer
    ) -> LayoutAttempt:
        attempt = LayoutAttempt(layout=self.layout_name)
        report_timestamp: datetime | None = None

        for line_number, line in enumerate(lines, start=1):
            category = classify_line(line)
            if category is LineCategory.SECTION_BOUNDARY:
                report_timestamp = None
                continue
            if category is not LineCategory.STATUS:
                continue
            match = STATUS_MESSAGE_PATTERN.search(line)
            timestamp = extract_timestamp(line)
            if not match or timestamp is None:
                continue

            message = match.group("message").strip()
            if parse_header(message):
                report_timestamp = timestamp
                continue
            if not message or not is_candidate_row(message):
                continue

            try:
                row = split_pool_row(message)
                if row is None:
                    continue
                pool, cells = row
                metrics = map_cells_by_position(cells)
            except ValueError as exc:
                tracer.warning(f"Skipping StatusLogger line {line_number}: {exc}")
                continue
            if metrics:
                attempt.record(
                    PoolSample(timestamp=report_timestamp or timestamp, pool=pool, metrics=metrics)
                )

        return attempt


class SplitRowReportParser:
    """Tagged report whose pool names and values sit on alternating lines."""

    layout_name: str = "split_row"

    NAME_ONLY_PATTERN: re.Pattern[str] = re.compile(r"^\S+(?: \S+)*$")

    def parse(
        self, lines: list[str], settings: ExtractionSettings, tracer: Tracer
    ) -> LayoutAttempt:
        attempt = LayoutAttempt(layout=self.layout_name)

        for report in find_tagged_reports(lines, settings):
            index = report.body_start
            while index + 1 < len(lines):
                name_line, values_line = lines[index], lines[index + 1]
                if ends_report_block(name_line, settings):
                    break
                name = name_line.strip()
                if not self.NAME_ONLY_PATTERN.match(name) or not is_plausible_pool_name(name):
                    index += 1
                    continue
                try:
                    cells = split_value_cells(values_line)
                except ValueError as exc:
                    tracer.warning(f"Skipping thread pool values line {index + 2}: {exc}")
                    cells = None
                if cells is None:
                    index += 1
                    continue
                metrics = map_cells_by_header(cells, report.columns)
                if metrics:
                    attempt.record(
                        PoolSample(timestamp=report.timestamp, pool=name, metrics=metrics)
                    )
                index += 2

        return attempt


class UntaggedTableParser:
    """``Pool Name`` tables without a StatusLogger tag (pasted tpstats output)."""

    layout_name: str = "untagged_table"

    def parse(
        self, lines: list[str], settings: ExtractionSettings, tracer: Tracer
    ) -> LayoutAttempt:
        attempt = LayoutAttempt(layout=self.layout_name)
        context = TimestampContext()

        index = 0
        while index < len(lines):
            line = lines[index]
            timestamp = context.observe(line)
            columns = parse_header(line)
            if columns and timestamp is not None:
                index = read_header_mapped_block(
                    lines, index + 1, columns, timestamp, attempt, settings, tracer
                )
                continue
            index += 1

        return attempt


DEFAULT_LAYOUTS: tuple[PoolLayoutParser, ...] = (
    MultiLineReportParser(),
    SingleLineReportParser(),
    SplitRowReportParser(),
    UntaggedTableParser(),
)


# ============================================================
# DEGRADED FALLBACK
# ============================================================


def recover_qualified_names(lines: list[str]) -> LayoutAttempt:
    """Last resort when no layout parsed anything but StatusLogger lines exist.

    Every qualified-name-like token (``a.b``, ``TPC/x/y``) on a tagged line is
    registered as a pool with zeroed standard metrics at one synthetic
    timestamp. This over-reports (table names qualify too); it only exists so
    consumers have something to show.
    """
    attempt = LayoutAttempt(layout="qualified_name_fallback")
    tagged = [line for line in lines if "StatusLogger" in line]
    if not tagged:
        return attempt

    timestamp = next(
        (ts for ts in (extract_timestamp(line) for line in tagged) if ts is not None),
        SYNTHETIC_TIMESTAMP,
    )
    zeroed = dict.fromkeys(STANDARD_METRICS, 0.0)
    for line in tagged:
        for token in QUALIFIED_NAME_PATTERN.findall(line):
            if token.endswith(".java") or token in attempt.pools:
                continue
            attempt.record(PoolSample(timestamp=timestamp, pool=token, metrics=dict(zeroed)))
    return attempt


# ============================================================
# EXTRACTOR
# ============================================================


def build_pool_series(attempt: LayoutAttempt) -> ParsedTimeSeries:
    """Align pool samples, giving every pool every reported metric at every timestamp.

    Optional metrics (Backpressure, Shared, Stolen) are only added when at
    least one pool exposed them.
    """
    observed_optional = {
        metric for sample in attempt.samples for metric in sample.metrics if metric in OPTIONAL_METRICS
    }
    metric_set = [
        metric
        for metric in METRIC_ORDER
        if metric in STANDARD_METRICS or metric in observed_optional
    ]

    assembler = SeriesAssembler()
    for pool in attempt.pools:
        for metric in metric_set:
            assembler.declare(f"{pool}: {metric}")
    for sample in attempt.samples:
        assembler.add(
            sample.timestamp,
            {f"{sample.pool}: {metric}": value for metric, value in sample.metrics.items()},
        )

    observed: dict[str, set[str]] = {pool: set() for pool in attempt.pools}
    for sample in attempt.samples:
        observed[sample.pool].update(sample.metrics)

    return assembler.build(
        {
            "threadPools": list(attempt.pools),
            "poolMetrics": {
                pool: [metric for metric in METRIC_ORDER if metric in metrics]
                for pool, metrics in observed.items()
            },
        }
    )


class ThreadPoolMetricsExtractor:
    """Runs the layout cascade and assembles the thread-pool series."""

    def __init__(
        self,
        settings: ExtractionSettings | None = None,
        tracer: Tracer | None = None,
        layouts: tuple[PoolLayoutParser, ...] = DEFAULT_LAYOUTS,
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.tracer = tracer or NullTracer()
        self.layouts = layouts

    def select_layout(self, lines: list[str]) -> tuple[LayoutAttempt | None, list[LayoutAttempt]]:
        """Try layouts in order; return the first successful attempt and all attempts made."""
        attempts: list[LayoutAttempt] = []
        for layout in self.layouts:
            attempt = layout.parse(lines, self.settings, self.tracer)
            attempts.append(attempt)
            self.tracer.debug(f"Thread pools: layout '{attempt.layout}' found {len(attempt.pools)} pools")
            if attempt.succeeded:
                return attempt, attempts
        return None, attempts

    def extract(self, lines: list[str]) -> ParsedTimeSeries:
        accepted, attempts = self.select_layout(lines)
        degraded = False

        if accepted is None:
            fallback = recover_qualified_names(lines)
            attempts.append(fallback)
            if fallback.succeeded:
                self.tracer.warning(
                    f"No thread pool layout recognised; registered {len(fallback.pools)} "
                    "names from StatusLogger lines as placeholder pools"
                )
                accepted, degraded = fallback, True

        if accepted is None:
            result = ParsedTimeSeries(metadata={"threadPools": [], "poolMetrics": {}})
        else:
            result = build_pool_series(accepted)
            self.tracer.debug(
                f"Thread pools: {len(accepted.pools)} pools across {len(result.timestamps)} timestamps"
            )

        result.metadata.update(
            {
                "layout": accepted.layout if accepted else None,
                "layoutAttempts": [
                    {"layout": attempt.layout, "pools": len(attempt.pools)} for attempt in attempts
                ],
                "degraded": degraded,
            }
        )
        return result


def parse_thread_pool_metrics(
    log_content: str, settings: ExtractionSettings | None = None, tracer: Tracer | None = None
) -> ParsedTimeSeries:
    """Extract StatusLogger thread-pool metrics from raw system.log text."""
    return ThreadPoolMetricsExtractor(settings, tracer).extract(log_content.splitlines())
