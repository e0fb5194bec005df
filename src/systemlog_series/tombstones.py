"""Tombstone-heavy read warnings (ReadCommand.java)."""

from __future__ import annotations

import re
from collections import Counter

from systemlog_series.assembler import SeriesAssembler
from systemlog_series.classifier import LineCategory, classify_line
from systemlog_series.models import ParsedTimeSeries, TableTombstones, TombstoneQuery
from systemlog_series.settings import ExtractionSettings
from systemlog_series.timestamps import extract_timestamp
from systemlog_series.tracing import NullTracer, Tracer

LIVE_ROWS_SERIES = "Live Rows"
TOMBSTONE_CELLS_SERIES = "Tombstone Cells"
TOMBSTONE_RATIO_SERIES = "Tombstone Ratio"
UNKNOWN_TABLE = "Unknown"

TOMBSTONE_WARNING_PATTERN: re.Pattern[str] = re.compile(
    r"WARN.*ReadCommand\.java:.*Read\s+(?P<live_rows>\d+)\s+live\s+rows?\s+and\s+"
    r"(?P<tombstones>\d+)\s+tombstoned?\s+cells\s+for\s+query\s+(?P<query>.*)"
)
FROM_CLAUSE_PATTERN: re.Pattern[str] = re.compile(r"\sFROM\s+([^\s(,;]+)", re.IGNORECASE)


def tombstone_ratio(live_rows: int, tombstones: int) -> float:
    """Share of tombstones among cells read; 0 when nothing was read."""
    total = live_rows + tombstones
    return tombstones / total if total else 0.0


def extract_table_name(query: str) -> str:
    """Table named in the query's FROM clause, without keyspace; "Unknown" if absent."""
    match = FROM_CLAUSE_PATTERN.search(query)
    if not match:
        return UNKNOWN_TABLE
    parts = [part.strip('"') for part in match.group(1).split(".")]
    table = parts[1] if len(parts) > 1 else parts[0]
    return table or UNKNOWN_TABLE


def preview_query(query: str, limit: int) -> str:
    query = query.strip()
    return query[:limit] + ("..." if len(query) > limit else "")


class TombstoneWarningExtractor:
    """Builds tombstone series plus ranked query and table statistics."""

    def __init__(
        self, settings: ExtractionSettings | None = None, tracer: Tracer | None = None
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.tracer = tracer or NullTracer()

    def extract_queries(self, lines: list[str]) -> list[TombstoneQuery]:
        queries: list[TombstoneQuery] = []
        for line_number, line in enumerate(lines, start=1):
            if classify_line(line) is not LineCategory.TOMBSTONE:
                continue
            match = TOMBSTONE_WARNING_PATTERN.search(line)
            if not match:
                continue
            timestamp = extract_timestamp(line)
            if timestamp is None:
                continue
            try:
                live_rows = int(match.group("live_rows"))
                tombstones = int(match.group("tombstones"))
            except ValueError as exc:
                self.tracer.warning(f"Skipping tombstone warning on line {line_number}: {exc}")
                continue
            query = match.group("query")
            queries.append(
                TombstoneQuery(
                    query=preview_query(query, self.settings.query_preview_chars),
                    live_rows=live_rows,
                    tombstones=tombstones,
                    ratio=tombstone_ratio(live_rows, tombstones),
                    timestamp=timestamp,
                    table_name=extract_table_name(query),
                )
            )
        return queries

    def extract(self, lines: list[str]) -> ParsedTimeSeries:
        queries = self.extract_queries(lines)

        assembler = SeriesAssembler([LIVE_ROWS_SERIES, TOMBSTONE_CELLS_SERIES, TOMBSTONE_RATIO_SERIES])
        table_totals: Counter[str] = Counter()
        for query in queries:
            assembler.add(
                query.timestamp,
                {
                    LIVE_ROWS_SERIES: query.live_rows,
                    TOMBSTONE_CELLS_SERIES: query.tombstones,
                    TOMBSTONE_RATIO_SERIES: query.ratio,
                },
            )
            table_totals[query.table_name] += query.tombstones

        # sorted() is stable: equal counts keep encounter order
        top_queries = sorted(queries, key=lambda q: q.tombstones, reverse=True)[
            : self.settings.top_queries
        ]
        table_stats = [
            TableTombstones(table_name=name, tombstones=total)
            for name, total in sorted(table_totals.items(), key=lambda item: item[1], reverse=True)
        ]

        self.tracer.debug(f"Tombstones: {len(queries)} warnings across {len(table_totals)} tables")
        return assembler.build(
            {
                "queryData": [query.model_dump(mode="json", by_alias=True) for query in top_queries],
                "tableStats": [stat.model_dump(by_alias=True) for stat in table_stats],
            }
        )


def parse_tombstone_warnings(
    log_content: str, settings: ExtractionSettings | None = None, tracer: Tracer | None = None
) -> ParsedTimeSeries:
    """Extract tombstone warnings from raw system.log text."""
    return TombstoneWarningExtractor(settings, tracer).extract(log_content.splitlines())
