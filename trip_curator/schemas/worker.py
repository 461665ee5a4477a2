"""Enriched intent and provider fan-out records."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field

from .common import CandidateOrigin, DateRange, Record
from .session import Flexibility
from .versions import SCHEMA_VERSIONS


class EnrichedIntent(Record):
    """Structured query derived from a session before fan-out."""

    schema_version: int = SCHEMA_VERSIONS["enhancement"]
    destinations: list[str] = Field(min_length=1)
    interests: list[str] = Field(default_factory=list)
    date_range: DateRange
    flexibility: Flexibility = Field(default_factory=Flexibility)
    constraints: dict[str, Any] = Field(default_factory=dict)
    inferred_tags: list[str] = Field(default_factory=list)
    queries: list[str] = Field(default_factory=list)


class WorkerStatus(str, Enum):
    OK = "ok"
    PARTIAL = "partial"
    ERROR = "error"
    SKIPPED = "skipped"


class WorkerOutput(Record):
    schema_version: int = SCHEMA_VERSIONS["worker"]
    worker_id: str
    origin: CandidateOrigin
    query: str
    status: WorkerStatus
    results: list[dict[str, Any]] = Field(default_factory=list)
    duration_ms: int = Field(default=0, ge=0)
    error: str | None = None


__all__ = ["EnrichedIntent", "WorkerOutput", "WorkerStatus"]
