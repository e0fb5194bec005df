"""Entry point combining every extractor over one system.log buffer."""

from __future__ import annotations

from pydantic import BaseModel, Field

from systemlog_series.gc import GCEventExtractor
from systemlog_series.models import DataQuality, ParsedTimeSeries
from systemlog_series.settings import ExtractionSettings
from systemlog_series.slow_reads import TIMED_OUT_READS_SERIES, SlowReadExtractor
from systemlog_series.status import extract_status_events
from systemlog_series.threadpool import ThreadPoolMetricsExtractor
from systemlog_series.tombstones import TombstoneWarningExtractor
from systemlog_series.tracing import NullTracer, Tracer


class SystemLogReport(BaseModel):
    """Independent result structures extracted from one log."""

    gc_events: ParsedTimeSeries = Field(default_factory=ParsedTimeSeries)
    thread_pool_metrics: ParsedTimeSeries = Field(default_factory=ParsedTimeSeries)
    tombstone_warnings: ParsedTimeSeries = Field(default_factory=ParsedTimeSeries)
    slow_reads: ParsedTimeSeries = Field(default_factory=ParsedTimeSeries)
    status_events: ParsedTimeSeries = Field(default_factory=ParsedTimeSeries)

    def results(self) -> dict[str, ParsedTimeSeries]:
        return {
            "gcEvents": self.gc_events,
            "threadPoolMetrics": self.thread_pool_metrics,
            "tombstoneWarnings": self.tombstone_warnings,
            "slowReads": self.slow_reads,
            "statusEvents": self.status_events,
        }

    def data_quality(self) -> DataQuality:
        pools = self.thread_pool_metrics.metadata.get("threadPools", [])
        all_timestamps = {
            timestamp
            for result in (
                self.gc_events,
                self.thread_pool_metrics,
                self.tombstone_warnings,
                self.slow_reads,
            )
            for timestamp in result.timestamps
        }
        return DataQuality(
            has_gc=not self.gc_events.is_empty,
            has_thread_pools=bool(pools),
            has_tombstones=not self.tombstone_warnings.is_empty,
            has_slow_reads=not self.slow_reads.is_empty,
            gc_count=len(self.gc_events.timestamps),
            thread_pool_count=len(pools),
            thread_pool_metric_count=len(self.thread_pool_metrics.series),
            tombstone_count=len(self.tombstone_warnings.timestamps),
            slow_reads_count=int(sum(self.slow_reads.series.get(TIMED_OUT_READS_SERIES, []))),
            total_timestamps=len(all_timestamps),
        )


def parse_system_log(
    log_content: str,
    settings: ExtractionSettings | None = None,
    tracer: Tracer | None = None,
) -> SystemLogReport:
    """Run every extractor over the full text of one system.log.

    Malformed lines are skipped inside the extractors; anything raised from
    here is a defect and propagates to the caller.
    """
    settings = settings or ExtractionSettings()
    tracer = tracer or NullTracer()

    if not log_content:
        tracer.warning("Empty log content")
        return SystemLogReport()

    lines = log_content.splitlines()
    tracer.debug(f"Parsing {len(lines)} lines ({len(log_content)} characters)")

    report = SystemLogReport(
        gc_events=GCEventExtractor(settings, tracer).extract(lines),
        thread_pool_metrics=ThreadPoolMetricsExtractor(settings, tracer).extract(lines),
        tombstone_warnings=TombstoneWarningExtractor(settings, tracer).extract(lines),
        slow_reads=SlowReadExtractor(settings, tracer).extract(lines),
        status_events=extract_status_events(lines, tracer),
    )

    tracer.debug(
        "Parse complete: "
        + ", ".join(f"{name}={len(result.timestamps)}" for name, result in report.results().items())
    )
    return report
