"""Tunable extraction settings."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ExtractionSettings(BaseModel):
    """Configurable limits and defaults used by the extractors."""

    # Tombstones
    top_queries: int = Field(default=20, ge=1)
    query_preview_chars: int = Field(default=100, ge=10)

    # Slow reads
    top_files: int = Field(default=5, ge=0)

    # GC last-resort rule: duration recorded when a GCInspector line has no readable pause
    estimated_gc_duration_ms: float = Field(default=100.0, ge=0.0)

    # Thread pools
    header_lookahead: int = Field(default=3, ge=1)  # lines searched for "Pool Name" after a tag
    min_pool_row_length: int = Field(default=8, ge=1)  # shorter lines end a report block
