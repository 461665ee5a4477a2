"""Versioned record types exchanged between pipeline components."""

from .candidate import Candidate, CandidateMetadata, CandidateValidation
from .common import (
    CandidateConfidence,
    CandidateOrigin,
    CandidateType,
    Coordinates,
    DateRange,
    Record,
    SourceRef,
    TriageStatus,
    ValidationStatus,
    utc_now,
)
from .cost import CostBreakdown, ProviderCost, TokenUsage
from .manifest import ManifestStage, RunManifest, RunState, StageDegradation
from .migrations import MigrationRegistry, default_registry
from .payloads import (
    STAGE_PAYLOADS,
    AggregatedPayload,
    ClusterInfo,
    DedupeStats,
    DedupedPayload,
    DiscoveryResults,
    NormalizeStats,
    NormalizedPayload,
    RankStats,
    RankedPayload,
    ScoreDistribution,
    TriageCounts,
    TriagePayload,
    TriagedCandidate,
    ValidatedPayload,
    ValidationRecord,
    ValidationStats,
    WorkerOutputsPayload,
)
from .session import Flexibility, Session
from .stage import STAGE_ID_PATTERN, Checkpoint, StageMetadata, make_stage_id, parse_stage_id
from .triage import TriageEntry, TriageState
from .versions import SCHEMA_VERSIONS, read_version
from .worker import EnrichedIntent, WorkerOutput, WorkerStatus

__all__ = [
    "AggregatedPayload",
    "Candidate",
    "CandidateConfidence",
    "CandidateMetadata",
    "CandidateOrigin",
    "CandidateType",
    "CandidateValidation",
    "Checkpoint",
    "ClusterInfo",
    "Coordinates",
    "CostBreakdown",
    "DateRange",
    "DedupeStats",
    "DedupedPayload",
    "DiscoveryResults",
    "EnrichedIntent",
    "Flexibility",
    "ManifestStage",
    "MigrationRegistry",
    "NormalizeStats",
    "NormalizedPayload",
    "ProviderCost",
    "RankStats",
    "RankedPayload",
    "Record",
    "RunManifest",
    "RunState",
    "SCHEMA_VERSIONS",
    "STAGE_ID_PATTERN",
    "STAGE_PAYLOADS",
    "ScoreDistribution",
    "Session",
    "SourceRef",
    "StageDegradation",
    "StageMetadata",
    "TokenUsage",
    "TriageCounts",
    "TriageEntry",
    "TriagePayload",
    "TriageState",
    "TriageStatus",
    "TriagedCandidate",
    "ValidatedPayload",
    "ValidationRecord",
    "ValidationStats",
    "ValidationStatus",
    "WorkerOutput",
    "WorkerOutputsPayload",
    "WorkerStatus",
    "default_registry",
    "make_stage_id",
    "parse_stage_id",
    "read_version",
    "utc_now",
]
