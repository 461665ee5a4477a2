"""Typed payloads for each pipeline stage, keyed by stage name."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, model_validator

from .candidate import Candidate
from .common import Record, TriageStatus, ValidationStatus, utc_now
from .cost import CostBreakdown
from .versions import SCHEMA_VERSIONS
from .worker import EnrichedIntent, WorkerOutput


class ScoreDistribution(Record):
    high: int = Field(default=0, ge=0)
    medium: int = Field(default=0, ge=0)
    low: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.high + self.medium + self.low


class RankStats(Record):
    input_count: int = Field(ge=0)
    output_count: int = Field(ge=0)
    average_score: float = Field(ge=0, le=100)
    score_distribution: ScoreDistribution

    @model_validator(mode="after")
    def _distribution_matches_output(self) -> "RankStats":
        if self.score_distribution.total != self.output_count:
            raise ValueError("score distribution must account for every output candidate")
        return self


class WorkerOutputsPayload(Record):
    outputs: list[WorkerOutput] = Field(default_factory=list)
    degraded: list[str] = Field(default_factory=list)


class NormalizeStats(Record):
    input_count: int = Field(ge=0)
    output_count: int = Field(ge=0)
    skipped_outputs: int = Field(default=0, ge=0)
    dropped_results: int = Field(default=0, ge=0)
    by_origin: dict[str, int] = Field(default_factory=dict)


class NormalizedPayload(Record):
    candidates: list[Candidate] = Field(default_factory=list)
    stats: NormalizeStats


class ValidationStats(Record):
    input_count: int = Field(ge=0)
    output_count: int = Field(ge=0)
    video_count: int = Field(default=0, ge=0)
    validated_count: int = Field(default=0, ge=0)
    skipped_count: int = Field(default=0, ge=0)
    passed_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)
    unverified_count: int = Field(default=0, ge=0)


class ValidationRecord(Record):
    candidate_id: str
    status: ValidationStatus
    notes: str = ""
    duration_ms: int = Field(default=0, ge=0)


class ValidatedPayload(Record):
    candidates: list[Candidate] = Field(default_factory=list)
    results: list[ValidationRecord] = Field(default_factory=list)
    stats: ValidationStats


class RankedPayload(Record):
    candidates: list[Candidate] = Field(default_factory=list)
    stats: RankStats


class ClusterInfo(Record):
    cluster_id: str
    representative_id: str
    member_ids: list[str] = Field(min_length=1)
    alternate_ids: list[str] = Field(default_factory=list)


class DedupeStats(Record):
    original_count: int = Field(ge=0)
    cluster_count: int = Field(ge=0)
    deduped_count: int = Field(ge=0)
    duplicates_removed: int = Field(ge=0)


class DedupedPayload(Record):
    candidates: list[Candidate] = Field(default_factory=list)
    clusters: list[ClusterInfo] = Field(default_factory=list)
    dedupe: DedupeStats
    stats: RankStats


class AggregatedPayload(Record):
    candidates: list[Candidate] = Field(default_factory=list)
    by_type: dict[str, int] = Field(default_factory=dict)
    stats: RankStats
    cost: CostBreakdown


class TriagedCandidate(Record):
    candidate: Candidate
    triage: TriageStatus | None = None
    notes: str | None = None


class TriageCounts(Record):
    must: int = 0
    research: int = 0
    maybe: int = 0
    total: int = 0


class TriagePayload(Record):
    candidates: list[TriagedCandidate] = Field(default_factory=list)
    counts: TriageCounts


class DiscoveryResults(Record):
    schema_version: int = SCHEMA_VERSIONS["discoveryResults"]
    session_id: str
    run_id: str
    generated_at: datetime = Field(default_factory=utc_now)
    intent: EnrichedIntent | None = None
    candidates: list[TriagedCandidate] = Field(default_factory=list)
    stats: RankStats
    triage: TriageCounts
    cost: CostBreakdown
    degraded: list[str] = Field(default_factory=list)
    exports: list[str] = Field(default_factory=list)


STAGE_PAYLOADS: dict[str, type[Record]] = {
    "enhancement": EnrichedIntent,
    "worker_outputs": WorkerOutputsPayload,
    "candidates_normalized": NormalizedPayload,
    "candidates_validated": ValidatedPayload,
    "candidates_ranked": RankedPayload,
    "candidates_deduped": DedupedPayload,
    "aggregated": AggregatedPayload,
    "triage": TriagePayload,
    "results": DiscoveryResults,
}


__all__ = [
    "AggregatedPayload",
    "ClusterInfo",
    "DedupeStats",
    "DedupedPayload",
    "DiscoveryResults",
    "NormalizeStats",
    "NormalizedPayload",
    "RankStats",
    "RankedPayload",
    "STAGE_PAYLOADS",
    "ScoreDistribution",
    "TriageCounts",
    "TriagePayload",
    "TriagedCandidate",
    "ValidatedPayload",
    "ValidationRecord",
    "ValidationStats",
    "WorkerOutputsPayload",
]
