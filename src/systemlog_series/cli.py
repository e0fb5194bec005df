#!/usr/bin/env python3
"""System log time-series extractor.

Reads a database system.log and reports:
- GCInspector pauses (young/old/unknown)
- StatusLogger thread-pool metrics across known report layouts
- Tombstone-heavy query warnings per table
- Timed-out async reads per data file
- Optional JSON (full aligned series) or Markdown export
"""

from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from statistics import mean
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from systemlog_series import __version__
from systemlog_series.engine import SystemLogReport, parse_system_log
from systemlog_series.gc import GC_DURATION_SERIES
from systemlog_series.models import ParsedTimeSeries
from systemlog_series.settings import ExtractionSettings
from systemlog_series.status import STATUS_EVENTS_SERIES
from systemlog_series.threadpool import PENDING, pool_category
from systemlog_series.tracing import SYSTEMLOG_THEME, ConsoleTracer

console = Console(theme=SYSTEMLOG_THEME)

TOP_POOLS_SHOWN = 10


# ============================================================
# SUMMARY HELPERS
# ============================================================


def percentile_sorted(sorted_data: list[float], pct: float) -> float:
    """Calculate percentile from a pre-sorted list."""
    if not sorted_data:
        return 0.0
    k = (len(sorted_data) - 1) * (pct / 100)
    f = int(k)
    c = k - f
    if f + 1 < len(sorted_data):
        return sorted_data[f] + c * (sorted_data[f + 1] - sorted_data[f])
    return sorted_data[f]


def format_time_window(result: ParsedTimeSeries) -> str:
    if result.is_empty:
        return "n/a"
    first, last = result.timestamps[0], result.timestamps[-1]
    return f"{first:%Y-%m-%d %H:%M:%S} -> {last:%Y-%m-%d %H:%M:%S}"


def build_overview_rows(report: SystemLogReport, total_log_lines: int) -> list[tuple[str, str]]:
    quality = report.data_quality()
    status_reports = int(sum(report.status_events.series.get(STATUS_EVENTS_SERIES, [])))
    return [
        ("Log lines", f"{total_log_lines:,}"),
        ("Distinct timestamps", f"{quality.total_timestamps:,}"),
        ("GC events", f"{quality.gc_count:,}"),
        ("Thread pools", f"{quality.thread_pool_count:,}"),
        ("Thread pool series", f"{quality.thread_pool_metric_count:,}"),
        ("Tombstone warnings", f"{quality.tombstone_count:,}"),
        ("Timed out reads", f"{quality.slow_reads_count:,}"),
        ("StatusLogger reports", f"{status_reports:,}"),
    ]


def build_gc_rows(gc_events: ParsedTimeSeries) -> list[tuple[str, str]]:
    durations = sorted(gc_events.series.get(GC_DURATION_SERIES, []))
    if not durations:
        return [("GC events", "0")]
    counts = gc_events.metadata.get("generationCounts", {})
    rules = gc_events.metadata.get("ruleCounts", {})
    estimated = rules.get("last_resort", 0)
    rows = [
        ("Time window", format_time_window(gc_events)),
        (
            "Young / Old / Unknown",
            f"{counts.get('young', 0)} / {counts.get('old', 0)} / {counts.get('unknown', 0)}",
        ),
        ("Average pause", f"{mean(durations):.1f} ms"),
        ("P99 pause", f"{percentile_sorted(durations, 99):.1f} ms"),
        ("Max pause", f"{durations[-1]:.0f} ms"),
        ("Total pause", f"{sum(durations) / 1000:.2f} s"),
    ]
    if estimated:
        rows.append(("Estimated durations", f"{estimated} (unreadable pause value)"))
    return rows


def build_thread_pool_rows(thread_pools: ParsedTimeSeries) -> list[tuple[str, str]]:
    pools: list[str] = thread_pools.metadata.get("threadPools", [])
    if not pools:
        return [("Thread pools", "0")]
    tpc = sum(1 for pool in pools if pool_category(pool) == "tpc")
    layout = thread_pools.metadata.get("layout") or "n/a"
    if thread_pools.metadata.get("degraded"):
        layout = f"{layout} (degraded)"
    return [
        ("Layout", layout),
        ("Time window", format_time_window(thread_pools)),
        ("Reports", f"{len(thread_pools.timestamps):,}"),
        ("Standard / TPC pools", f"{len(pools) - tpc} / {tpc}"),
    ]


def rank_pools_by_pending(thread_pools: ParsedTimeSeries, top_n: int) -> list[tuple[str, float]]:
    peaks = [
        (pool, max(thread_pools.series.get(f"{pool}: {PENDING}", [0.0]), default=0.0))
        for pool in thread_pools.metadata.get("threadPools", [])
    ]
    return sorted(peaks, key=lambda item: item[1], reverse=True)[:top_n]


# ============================================================
# RENDERING
# ============================================================


def create_key_value_table(title: str, rows: list[tuple[str, str]]) -> Table:
    """Create a simple two-column key/value table."""
    table = Table(title=title, show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="label")
    table.add_column("Value", style="metric")
    for label, value in rows:
        table.add_row(label, value)
    return table


def create_top_pools_table(thread_pools: ParsedTimeSeries) -> Table:
    table = Table(title="Thread Pools by Peak Pending", header_style="header")
    table.add_column("Pool")
    table.add_column("Category")
    table.add_column("Peak Pending", justify="right")
    for pool, peak in rank_pools_by_pending(thread_pools, TOP_POOLS_SHOWN):
        table.add_row(pool, pool_category(pool), f"{peak:,.0f}")
    return table


def create_tombstone_table(tombstones: ParsedTimeSeries) -> Table:
    table = Table(title="Tombstones by Table", header_style="header")
    table.add_column("Table")
    table.add_column("Tombstones", justify="right")
    for stat in tombstones.metadata.get("tableStats", []):
        table.add_row(stat["tableName"], f"{stat['tombstones']:,}")
    return table


def create_slow_read_table(slow_reads: ParsedTimeSeries) -> Table:
    table = Table(title="Timed Out Reads by File", header_style="header")
    table.add_column("File")
    table.add_column("Timeouts", justify="right")
    for file_key, count in slow_reads.metadata.get("fileCounts", {}).items():
        table.add_row(file_key, f"{count:,}")
    return table


def render_rich_output(report: SystemLogReport, log_file: Path, total_log_lines: int) -> None:
    """Render the full terminal report."""
    console.print(
        Panel(
            create_key_value_table("", build_overview_rows(report, total_log_lines)),
            title=f"System Log: {log_file.name}",
            border_style="info",
        )
    )
    console.print(create_key_value_table("GC Pauses", build_gc_rows(report.gc_events)))
    console.print(
        create_key_value_table("Thread Pools", build_thread_pool_rows(report.thread_pool_metrics))
    )
    if report.thread_pool_metrics.metadata.get("degraded"):
        console.print(
            "[warning]Thread pool names were recovered heuristically; metric values are "
            "placeholders.[/warning]"
        )
    if report.thread_pool_metrics.metadata.get("threadPools"):
        console.print(create_top_pools_table(report.thread_pool_metrics))
    if not report.tombstone_warnings.is_empty:
        console.print(create_tombstone_table(report.tombstone_warnings))
    if not report.slow_reads.is_empty:
        console.print(create_slow_read_table(report.slow_reads))


def export_markdown_summary(
    report: SystemLogReport, log_file: Path, output_path: Path, total_log_lines: int
) -> None:
    """Export the summary to Markdown."""
    md_content: list[str] = []

    md_content.append("# System Log Analysis Report\n\n")
    md_content.append(f"**Generated:** {datetime.now().isoformat()}\n\n")
    md_content.append(f"**Log file:** {log_file}\n\n")

    sections = (
        ("Overview", build_overview_rows(report, total_log_lines)),
        ("GC Pauses", build_gc_rows(report.gc_events)),
        ("Thread Pools", build_thread_pool_rows(report.thread_pool_metrics)),
    )
    for title, rows in sections:
        md_content.append(f"## {title}\n\n")
        for label, value in rows:
            md_content.append(f"- **{label}:** {value}\n")
        md_content.append("\n")

    top_pools = rank_pools_by_pending(report.thread_pool_metrics, TOP_POOLS_SHOWN)
    if top_pools:
        md_content.append("| Pool | Category | Peak Pending |\n|---|---|---:|\n")
        for pool, peak in top_pools:
            md_content.append(f"| {pool} | {pool_category(pool)} | {peak:,.0f} |\n")
        md_content.append("\n")

    table_stats = report.tombstone_warnings.metadata.get("tableStats", [])
    if table_stats:
        md_content.append("## Tombstones by Table\n\n| Table | Tombstones |\n|---|---:|\n")
        for stat in table_stats:
            md_content.append(f"| {stat['tableName']} | {stat['tombstones']:,} |\n")
        md_content.append("\n")

    query_data = report.tombstone_warnings.metadata.get("queryData", [])
    if query_data:
        md_content.append("## Top Tombstone Queries\n\n")
        for entry in query_data:
            md_content.append(
                f"- {entry['tombstones']:,} tombstones / {entry['liveRows']:,} live "
                f"({entry['ratio']:.0%}) on `{entry['tableName']}`: `{entry['query']}`\n"
            )
        md_content.append("\n")

    file_counts = report.slow_reads.metadata.get("fileCounts", {})
    if file_counts:
        md_content.append("## Timed Out Reads by File\n\n| File | Timeouts |\n|---|---:|\n")
        for file_key, count in file_counts.items():
            md_content.append(f"| {file_key} | {count:,} |\n")
        md_content.append("\n")

    output_path.write_text("".join(md_content), encoding="utf-8")


def export_json_report(report: SystemLogReport, output_path: Path) -> None:
    """Write every aligned result structure as JSON."""
    output_path.write_text(
        report.model_dump_json(indent=2, by_alias=True), encoding="utf-8"
    )


# ============================================================
# CLI
# ============================================================

app = typer.Typer(
    name="systemlog-series",
    help="Extract GC, thread pool, tombstone and slow-read time series from a system.log",
    add_completion=False,
    rich_markup_mode="rich",
)


@app.command()
def analyze(
    log_file: Annotated[
        Path,
        typer.Argument(
            help="Path to the system.log file to analyze",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Export to a file: .json writes every aligned series, anything else Markdown",
            file_okay=True,
            dir_okay=False,
        ),
    ] = None,
    top_queries: Annotated[
        int,
        typer.Option("--top-queries", help="Tombstone queries kept in the ranking", min=1),
    ] = 20,
    top_files: Annotated[
        int,
        typer.Option("--top-files", help="Files given their own timed-out-read series", min=0),
    ] = 5,
    gc_default_duration: Annotated[
        float,
        typer.Option(
            "--gc-default-duration",
            help="Pause (ms) recorded for GCInspector lines whose duration cannot be read",
            min=0.0,
        ),
    ] = 100.0,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output with detailed parsing information",
        ),
    ] = False,
) -> None:
    """Analyze a system.log file.

    Exit codes: 0 = events extracted, 1 = error or nothing recognizable.
    """
    try:
        content = log_file.read_text(encoding="utf-8", errors="replace")
        total_log_lines = len(content.splitlines())

        if verbose:
            console.print(f"[info]Read {total_log_lines} lines from {log_file}[/info]")

        settings = ExtractionSettings(
            top_queries=top_queries,
            top_files=top_files,
            estimated_gc_duration_ms=gc_default_duration,
        )
        report = parse_system_log(content, settings, ConsoleTracer(console, verbose=verbose))

        if report.data_quality().total_timestamps == 0 and report.status_events.is_empty:
            console.print("[critical]ERROR: No recognizable events found in log file[/critical]")
            sys.exit(1)

        render_rich_output(report, log_file, total_log_lines)

        if output:
            if output.suffix.lower() == ".json":
                export_json_report(report, output)
            else:
                export_markdown_summary(report, log_file, output, total_log_lines)
            console.print(f"\n[success] Report exported to {output}[/success]")

    except Exception as e:
        console.print(f"[critical]ERROR: {e}[/critical]")
        if verbose:
            console.print_exception()
        sys.exit(1)


@app.command()
def version() -> None:
    """Display version."""
    console.print(f"systemlog-series {__version__}")


if __name__ == "__main__":
    app()
