from datetime import datetime, timezone

import pytest

from systemlog_series.settings import ExtractionSettings
from systemlog_series.threadpool import (
    BACKPRESSURE,
    PENDING_WITH_BACKPRESSURE,
    POOL_NAME_COLUMN,
    SYNTHETIC_TIMESTAMP,
    MultiLineReportParser,
    ThreadPoolMetricsExtractor,
    ValueCell,
    is_candidate_row,
    map_cells_by_position,
    normalize_header_cell,
    parse_header,
    parse_thread_pool_metrics,
    pool_category,
    recover_qualified_names,
    split_pool_row,
    split_value_cells,
)
from systemlog_series.tracing import NullTracer

REPORT_TIME = datetime(2023, 6, 15, 10, 15, 23, 456000, tzinfo=timezone.utc)


def tagged(timestamp: str, message: str, line: int = 51) -> str:
    return f"INFO  [ScheduledTasks:1] 2023-06-15 {timestamp} StatusLogger.java:{line} - {message}"


# ============================================================
# MULTI-LINE LAYOUT
# ============================================================


def test_multi_line_report(multi_line_report):
    result = parse_thread_pool_metrics(multi_line_report)

    assert result.metadata["layout"] == "multi_line"
    assert result.metadata["degraded"] is False
    assert result.metadata["threadPools"] == [
        "CompactionExecutor",
        "GossipStage",
        "TPC/all/READ_DISK_ASYNC",
        "MemtableFlushWriter",
    ]
    assert result.timestamps == [REPORT_TIME]
    assert result.series["CompactionExecutor: Active"] == [2.0]
    assert result.series["CompactionExecutor: Pending"] == [170.0]
    assert result.series["CompactionExecutor: Backpressure"] == [0.0]
    assert result.series["CompactionExecutor: Completed"] == [99022.0]
    assert result.series["TPC/all/READ_DISK_ASYNC: Active"] == [1869.0]
    assert result.series["TPC/all/READ_DISK_ASYNC: All Time Blocked"] == [100.0]
    assert result.series["GossipStage: Completed"] == [679400.0]


def test_not_available_values_become_zero(multi_line_report):
    result = parse_thread_pool_metrics(multi_line_report)
    assert result.series["MemtableFlushWriter: Blocked"] == [0.0]
    assert result.series["MemtableFlushWriter: Delayed"] == [0.0]
    assert result.series["MemtableFlushWriter: Completed"] == [1429.0]


def test_rows_after_report_block_are_ignored(multi_line_report):
    result = parse_thread_pool_metrics(multi_line_report)
    assert not any(name.startswith("system_schema.keyspaces") for name in result.series)


def test_multiple_reports_align_late_pools():
    content = "\n".join(
        [
            tagged("10:00:00,000", "", 174),
            "Pool Name                    Active   Pending   Completed   Blocked  All Time Blocked",
            "ReadStage                         1         0        1000         0                 0",
            "",
            tagged("10:05:00,000", "", 174),
            "Pool Name                    Active   Pending   Completed   Blocked  All Time Blocked",
            "ReadStage                         3         2        2000         0                 0",
            "MutationStage                     4         0         500         0                 0",
        ]
    )

    result = parse_thread_pool_metrics(content)

    assert len(result.timestamps) == 2
    assert result.series["ReadStage: Active"] == [1.0, 3.0]
    assert result.series["MutationStage: Active"] == [0.0, 4.0]
    assert BACKPRESSURE not in result.metadata["poolMetrics"]["ReadStage"]
    result.check_alignment()


# ============================================================
# SINGLE-LINE LAYOUT
# ============================================================


def test_single_line_report(single_line_report):
    result = parse_thread_pool_metrics(single_line_report)

    assert result.metadata["layout"] == "single_line"
    assert result.metadata["threadPools"] == ["CompactionExecutor", "ReadStage"]
    # Rows share the header line's timestamp
    assert result.timestamps == [datetime(2023, 6, 15, 10, 15, 23, 450000, tzinfo=timezone.utc)]
    assert result.series["CompactionExecutor: Active"] == [2.0]
    assert result.series["CompactionExecutor: Pending"] == [170.0]
    assert result.series["CompactionExecutor: Completed"] == [99022.0]
    assert result.series["CompactionExecutor: Blocked"] == [0.0]
    assert result.series["CompactionExecutor: All Time Blocked"] == [0.0]
    assert result.series["CompactionExecutor: Delayed"] == [0.0]
    assert "CompactionExecutor: Backpressure" not in result.series


def test_single_line_rows_without_header_use_own_timestamp():
    content = "\n".join(
        [
            tagged("10:15:23,456", "CompactionExecutor                2       170          99022         0                 0"),
            tagged("10:15:24,000", "ReadStage                         1         0        3350878         0                 0"),
        ]
    )
    result = parse_thread_pool_metrics(content)
    assert len(result.timestamps) == 2
    assert result.series["CompactionExecutor: Active"] == [2.0, 0.0]
    assert result.series["ReadStage: Completed"] == [0.0, 3350878.0]


def test_single_line_full_schema_exposes_optional_metrics():
    content = tagged(
        "10:15:23,456",
        "TPC/all/READ_LOCAL                1        10        2         0       3       4      500         0       0",
    )
    result = parse_thread_pool_metrics(content)
    assert result.series["TPC/all/READ_LOCAL: Backpressure"] == [2.0]
    assert result.series["TPC/all/READ_LOCAL: Shared"] == [3.0]
    assert result.series["TPC/all/READ_LOCAL: Stolen"] == [4.0]
    assert result.series["TPC/all/READ_LOCAL: Completed"] == [500.0]


def test_single_line_seven_values_keep_the_pool():
    content = tagged("10:15:23,456", "CompactionExecutor 2 170 0 99022 0 0 0")

    result = parse_thread_pool_metrics(content)

    assert result.metadata["layout"] == "single_line"
    assert result.metadata["threadPools"] == ["CompactionExecutor"]
    assert result.series["CompactionExecutor: Active"] == [2.0]
    assert result.series["CompactionExecutor: Pending"] == [170.0]
    assert result.series["CompactionExecutor: Completed"] == [99022.0]
    assert "CompactionExecutor: Backpressure" not in result.series


# ============================================================
# SPLIT-ROW AND UNTAGGED LAYOUTS
# ============================================================


def test_split_row_report():
    content = "\n".join(
        [
            tagged("10:15:23,456", "", 174),
            "Pool Name                                    Active   Pending   Completed   Blocked  All Time Blocked",
            "CompactionExecutor",
            "        2        170       99022         0                0",
            "GossipStage",
            "        0          0      679400         0                0",
        ]
    )

    result = parse_thread_pool_metrics(content)

    assert result.metadata["layout"] == "split_row"
    assert result.metadata["threadPools"] == ["CompactionExecutor", "GossipStage"]
    assert result.series["CompactionExecutor: Pending"] == [170.0]
    assert result.series["GossipStage: Completed"] == [679400.0]
    assert [attempt["layout"] for attempt in result.metadata["layoutAttempts"]] == [
        "multi_line",
        "single_line",
        "split_row",
    ]


def test_untagged_table():
    content = "\n".join(
        [
            "2025-02-27T13:24:23+0100",
            "Pool Name                    Active   Pending      Completed   Blocked  All time blocked",
            "ReadStage                         0         0          12345         0                 0",
            "MutationStage                     1         3          67890         0                 0",
        ]
    )

    result = parse_thread_pool_metrics(content)

    assert result.metadata["layout"] == "untagged_table"
    assert result.timestamps == [datetime(2025, 2, 27, 12, 24, 23, tzinfo=timezone.utc)]
    assert result.series["MutationStage: Pending"] == [3.0]
    assert result.series["ReadStage: Completed"] == [12345.0]


# ============================================================
# CASCADE AND FALLBACK
# ============================================================


def test_first_successful_layout_wins(multi_line_report):
    content = "\n".join(
        [
            multi_line_report,
            tagged("10:20:00,000", "ReadStage                         1         0        3350878         0                 0"),
        ]
    )

    result = parse_thread_pool_metrics(content)

    assert result.metadata["layout"] == "multi_line"
    assert "ReadStage" not in result.metadata["threadPools"]
    assert not any(name.startswith("ReadStage") for name in result.series)
    assert len(result.metadata["layoutAttempts"]) == 1


def test_custom_layout_order(multi_line_report):
    extractor = ThreadPoolMetricsExtractor(layouts=(MultiLineReportParser(),))
    result = extractor.extract(multi_line_report.splitlines())
    assert result.metadata["layout"] == "multi_line"


def test_degraded_qualified_name_fallback():
    content = "\n".join(
        [
            "INFO  [ScheduledTasks:1] 2019-01-01 10:00:00,000 StatusLogger.java:85 - ColumnFamily                Memtable ops,data",
            "INFO  [ScheduledTasks:1] 2019-01-01 10:00:00,001 StatusLogger.java:88 - system.local              0,0",
            "INFO  [ScheduledTasks:1] 2019-01-01 10:00:00,002 StatusLogger.java:88 - keyspace1.standard1       12,3456",
        ]
    )

    result = parse_thread_pool_metrics(content)

    assert result.metadata["degraded"] is True
    assert result.metadata["layout"] == "qualified_name_fallback"
    assert result.metadata["threadPools"] == ["system.local", "keyspace1.standard1"]
    assert result.timestamps == [datetime(2019, 1, 1, 10, 0, tzinfo=timezone.utc)]
    assert result.series["system.local: Active"] == [0.0]
    assert len(result.metadata["layoutAttempts"]) == 5


def test_fallback_without_timestamps_uses_epoch():
    attempt = recover_qualified_names(["StatusLogger saw TPC/all/READ and ks.tbl"])
    assert attempt.pools == ["TPC/all/READ", "ks.tbl"]
    assert attempt.samples[0].timestamp == SYNTHETIC_TIMESTAMP


def test_no_status_lines_gives_empty_result():
    result = parse_thread_pool_metrics("INFO  [main] 2023-06-15 10:00:00,000 Gossiper.java:1 - nothing")
    assert result.timestamps == []
    assert result.series == {}
    assert result.metadata["layout"] is None
    assert result.metadata["degraded"] is False
    assert result.metadata["threadPools"] == []


# ============================================================
# HELPERS
# ============================================================


def test_pool_category():
    assert pool_category("TPC/all/READ_DISK_ASYNC") == "tpc"
    assert pool_category("CompactionExecutor") == "standard"


@pytest.mark.parametrize(
    ("cell", "expected"),
    [
        ("Pool Name", POOL_NAME_COLUMN),
        ("All Time Blocked", "All Time Blocked"),
        ("Pending (w/Backpressure)", PENDING_WITH_BACKPRESSURE),
        ("Blocked", "Blocked"),
        ("Size", None),
    ],
)
def test_normalize_header_cell(cell, expected):
    assert normalize_header_cell(cell) == expected


def test_parse_header_requires_pool_name_and_active():
    assert parse_header("Pool Name   Active   Pending   Completed") is not None
    assert parse_header("Cache Type   Size   Capacity") is None
    assert parse_header("Pool Name   Size   Capacity") is None


def test_split_value_cells():
    assert split_value_cells("170 (N/A)  N/A  5") == [
        ValueCell(170.0, 0.0),
        ValueCell(0.0, None),
        ValueCell(5.0, None),
    ]
    assert split_value_cells("1  2  all") is None


def test_split_pool_row_rejects_implausible_names():
    assert split_pool_row("ReadStage   1   0   5   0   0") == (
        "ReadStage",
        [ValueCell(v, None) for v in (1.0, 0.0, 5.0, 0.0, 0.0)],
    )
    assert split_pool_row("12   1   0   5   0   0") is None
    assert split_pool_row("[x]   1   0   5   0   0") is None


def test_map_cells_by_position_schemas():
    short = map_cells_by_position([ValueCell(v, None) for v in (1, 2, 3, 4, 5)])
    assert short == {"Active": 1, "Pending": 2, "Completed": 3, "Blocked": 4, "All Time Blocked": 5}
    delayed = map_cells_by_position([ValueCell(v, None) for v in (1, 2, 3, 4, 5, 6)])
    assert delayed["Delayed"] == 3
    full = map_cells_by_position([ValueCell(v, None) for v in range(1, 12)])
    assert full["Stolen"] == 6
    assert full["All Time Blocked"] == 9
    assert map_cells_by_position([ValueCell(1.0, None)] * 3) is None
    assert map_cells_by_position([ValueCell(1.0, None)] * 4) is None


@pytest.mark.parametrize("count", [7, 8])
def test_map_cells_by_position_between_schemas(count):
    metrics = map_cells_by_position([ValueCell(float(v), None) for v in range(1, count + 1)])
    assert metrics == {
        "Active": 1.0,
        "Pending": 2.0,
        "Delayed": 3.0,
        "Completed": 4.0,
        "Blocked": 5.0,
        "All Time Blocked": 6.0,
    }


def test_row_filters_keep_cache_named_pools():
    assert is_candidate_row("CacheCleanupExecutor              0         0              0         0                 0")
    assert not is_candidate_row("KeyCache        104857        104857600        all  KeysToSave")
    assert not is_candidate_row("RowCache   0   0   Capacity")
    assert not is_candidate_row("system.local   0,0")
    assert not is_candidate_row("Pool   1, 2, 3")


def test_header_lookahead_setting(multi_line_report):
    lines = multi_line_report.splitlines()
    lines.insert(1, "   some banner")
    lines.insert(1, "   another banner")
    settings = ExtractionSettings(header_lookahead=2)
    attempt = MultiLineReportParser().parse(lines, settings, NullTracer())
    assert not attempt.succeeded
    attempt = MultiLineReportParser().parse(lines, ExtractionSettings(), NullTracer())
    assert attempt.succeeded
