"""Pydantic data model shared by every extractor."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ============================================================
# TYPE ALIASES
# ============================================================

GCGeneration: TypeAlias = Literal["young", "old", "unknown"]
PoolCategory: TypeAlias = Literal["standard", "tpc"]
MillisecondsValue: TypeAlias = float


class SeriesAlignmentError(ValueError):
    """Raised when a result breaks the shared-timestamp-axis invariants."""


# ============================================================
# RESULT STRUCTURE
# ============================================================


class ParsedTimeSeries(BaseModel):
    """Time-indexed result shared by all extractors.

    Every list in ``series`` has exactly ``len(timestamps)`` values; index *i*
    of any series belongs to ``timestamps[i]``. Missing observations are 0.
    """

    timestamps: list[datetime] = Field(default_factory=list)
    series: dict[str, list[float]] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.timestamps

    def check_alignment(self) -> None:
        """Raise SeriesAlignmentError unless the result is sorted, unique and aligned."""
        for previous, current in zip(self.timestamps, self.timestamps[1:]):
            if current <= previous:
                raise SeriesAlignmentError(
                    f"Timestamps not strictly ascending: {previous.isoformat()} >= "
                    f"{current.isoformat()}"
                )
        expected = len(self.timestamps)
        for name, values in self.series.items():
            if len(values) != expected:
                raise SeriesAlignmentError(
                    f"Series '{name}' has {len(values)} values for {expected} timestamps"
                )


# ============================================================
# EVENT RECORDS
# ============================================================


class GCEvent(BaseModel):
    """One garbage-collection pause recognised in the log."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    duration_ms: MillisecondsValue
    generation: GCGeneration
    rule: str
    description: str = ""


class PoolSample(BaseModel):
    """Metric values read for one thread pool from one report row."""

    timestamp: datetime
    pool: str
    metrics: dict[str, float] = Field(default_factory=dict)


class LayoutAttempt(BaseModel):
    """Outcome of running one thread-pool layout parser over the whole input."""

    layout: str
    samples: list[PoolSample] = Field(default_factory=list)
    pools: list[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return bool(self.pools)

    def record(self, sample: PoolSample) -> None:
        self.samples.append(sample)
        if sample.pool not in self.pools:
            self.pools.append(sample.pool)


class TombstoneQuery(BaseModel):
    """A single tombstone warning, as listed in the ranked query table."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    query: str
    live_rows: int
    tombstones: int
    ratio: float
    timestamp: datetime
    table_name: str


class TableTombstones(BaseModel):
    """Running tombstone total for one table."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    table_name: str
    tombstones: int


class DataQuality(BaseModel):
    """Presence flags and counts describing what a log yielded."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    has_gc: bool
    has_thread_pools: bool
    has_tombstones: bool
    has_slow_reads: bool
    gc_count: int
    thread_pool_count: int
    thread_pool_metric_count: int
    tombstone_count: int
    slow_reads_count: int
    total_timestamps: int
