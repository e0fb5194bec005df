from __future__ import annotations

import pytest

from tests.samples import (
    GC_LINES,
    MULTI_LINE_REPORT,
    SINGLE_LINE_REPORT,
    SLOW_READ_LINES,
    TOMBSTONE_LINES,
)


@pytest.fixture
def multi_line_report() -> str:
    return MULTI_LINE_REPORT


@pytest.fixture
def single_line_report() -> str:
    return SINGLE_LINE_REPORT


@pytest.fixture
def mixed_system_log() -> str:
    return "\n".join(
        [
            "INFO  [main] 2023-06-15 09:59:59,000 CassandraDaemon.java:100 - Logging initialized",
            *GC_LINES,
            MULTI_LINE_REPORT,
            *TOMBSTONE_LINES,
            *SLOW_READ_LINES,
            "INFO  [main] 2023-06-15 10:40:00,000 StorageService.java:1 - Node is healthy",
        ]
    )
