"""Staged discovery pipeline."""

from .manifest import load_manifest, save_manifest, verify_manifest
from .orchestrator import PipelineOrchestrator, RunResult
from .stages import (
    AggregateStage,
    DedupeStage,
    EnhancementStage,
    ExportStage,
    FanOutStage,
    NormalizeStage,
    RankStage,
    Stage,
    StageContext,
    StageResult,
    TriageStage,
    ValidateStage,
    default_stages,
)

__all__ = [
    "AggregateStage",
    "DedupeStage",
    "EnhancementStage",
    "ExportStage",
    "FanOutStage",
    "NormalizeStage",
    "PipelineOrchestrator",
    "RankStage",
    "RunResult",
    "Stage",
    "StageContext",
    "StageResult",
    "TriageStage",
    "ValidateStage",
    "default_stages",
    "load_manifest",
    "save_manifest",
    "verify_manifest",
]
