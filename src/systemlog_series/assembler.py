"""Alignment of sparse per-event observations onto one timestamp axis."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from systemlog_series.models import ParsedTimeSeries

DEFAULT_VALUE = 0.0


def normalize_series(series: dict[str, list[float]], timestamps: list[datetime]) -> None:
    """Pad (with 0) or truncate every series in place to len(timestamps)."""
    expected = len(timestamps)
    for name, values in series.items():
        if len(values) < expected:
            values.extend([DEFAULT_VALUE] * (expected - len(values)))
        elif len(values) > expected:
            series[name] = values[:expected]


class SeriesAssembler:
    """Collects (timestamp, values) observations and emits an aligned result.

    Observations sharing a timestamp are merged: later values overwrite
    earlier ones, or are summed when ``accumulate`` is set (occurrence
    counters). Declared series exist even if never observed.
    """

    def __init__(self, declared: Iterable[str] = (), *, accumulate: bool = False) -> None:
        self.accumulate = accumulate
        self._names: dict[str, None] = dict.fromkeys(declared)
        self._rows: dict[datetime, dict[str, float]] = {}

    def declare(self, name: str) -> None:
        self._names.setdefault(name, None)

    def add(self, timestamp: datetime, values: Mapping[str, float]) -> None:
        row = self._rows.setdefault(timestamp, {})
        for name, value in values.items():
            self._names.setdefault(name, None)
            if self.accumulate:
                row[name] = row.get(name, DEFAULT_VALUE) + value
            else:
                row[name] = value

    @property
    def timestamps(self) -> list[datetime]:
        return sorted(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def build(self, metadata: dict[str, Any] | None = None) -> ParsedTimeSeries:
        timestamps = self.timestamps
        series = {
            name: [float(self._rows[ts].get(name, DEFAULT_VALUE)) for ts in timestamps]
            for name in self._names
        }
        if not timestamps:
            series = {}
        return ParsedTimeSeries(timestamps=timestamps, series=series, metadata=metadata or {})
