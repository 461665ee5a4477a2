"""Run manifest: state machine outcome plus integrity hashes of every checkpoint."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import Field, computed_field

from .common import Record, utc_now
from .versions import SCHEMA_VERSIONS


class RunState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    DEGRADED = "degraded"


class ManifestStage(Record):
    stage_id: str
    filename: str
    sha256: str
    size_bytes: int = Field(ge=0)
    created_at: datetime = Field(default_factory=utc_now)
    upstream_stage: str | None = None


class StageDegradation(Record):
    stage_id: str
    reason: str


class RunManifest(Record):
    schema_version: int = SCHEMA_VERSIONS["manifest"]
    session_id: str
    run_id: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    state: RunState = RunState.PENDING
    current_stage: str | None = None
    stages: list[ManifestStage] = Field(default_factory=list)
    stages_executed: list[str] = Field(default_factory=list)
    stages_skipped: list[str] = Field(default_factory=list)
    final_stage: str | None = None
    failed_stage: str | None = None
    reason: str | None = None
    degraded_stages: list[StageDegradation] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        return self.state in (RunState.COMPLETED, RunState.DEGRADED)


__all__ = ["ManifestStage", "RunManifest", "RunState", "StageDegradation"]
