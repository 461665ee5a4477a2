"""Human triage state stored per session."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from .common import Record, TriageStatus, utc_now
from .versions import SCHEMA_VERSIONS


class TriageEntry(Record):
    candidate_id: str = Field(min_length=1)
    status: TriageStatus
    notes: str | None = None
    match_key: str | None = None
    updated_at: datetime = Field(default_factory=utc_now)


class TriageState(Record):
    schema_version: int = SCHEMA_VERSIONS["triage"]
    session_id: str
    entries: list[TriageEntry] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=utc_now)


__all__ = ["TriageEntry", "TriageState"]
