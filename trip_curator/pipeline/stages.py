"""Pipeline stage definitions, from enhancement to export."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import structlog

from ..config.models import GlobalConfig
from ..engine.cost import CostTracker
from ..engine.dedup import cluster_candidates
from ..engine.fanout import FanOutExecutor, Provider
from ..engine.limiter import LimiterPool
from ..engine.normalize import normalize_outputs
from ..engine.ranking import rank_candidates, rank_stats, select_top_candidates, sort_by_score
from ..engine.scoring import score_candidates
from ..engine.triage import count_entries, reconcile_triage
from ..engine.validation import CandidateValidator, apply_validation, select_for_validation
from ..engine.verification_client import VerificationClient
from ..exporter import FileExporter
from ..schemas.candidate import Candidate
from ..schemas.common import CandidateOrigin, Record, ValidationStatus
from ..schemas.payloads import (
    AggregatedPayload,
    DedupedPayload,
    DiscoveryResults,
    NormalizedPayload,
    RankedPayload,
    TriagePayload,
    TriagedCandidate,
    ValidatedPayload,
    ValidationRecord,
    ValidationStats,
    WorkerOutputsPayload,
)
from ..schemas.session import Session
from ..schemas.stage import make_stage_id
from ..schemas.worker import EnrichedIntent
from ..storage.triage import TriageRepository


@dataclass(slots=True)
class StageContext:
    """Everything a stage may use while it runs. Built fresh for every run."""

    session: Session
    run_id: str
    config: GlobalConfig
    cost: CostTracker
    limiters: LimiterPool
    triage: TriageRepository
    outputs_dir: Path
    now: datetime
    logger: structlog.BoundLogger
    providers: list[Provider] = field(default_factory=list)
    verifier: VerificationClient | None = None
    payloads: dict[str, Any] = field(default_factory=dict)
    degraded: list[str] = field(default_factory=list)
    history: Callable[[], list[Candidate]] = list

    def payload(self, stage_name: str) -> Any:
        return self.payloads.get(stage_name)


@dataclass(slots=True)
class StageResult:
    payload: Record
    degraded: str | None = None


class Stage(ABC):
    """One numbered pipeline step producing one checkpoint."""

    number: int
    name: str

    @property
    def stage_id(self) -> str:
        return make_stage_id(self.number, self.name)

    @abstractmethod
    async def execute(self, context: StageContext, upstream: Any) -> StageResult:
        """Produce this stage's payload from the previous stage's payload."""

    def recover(self, context: StageContext, upstream: Any, error: Exception) -> Record | None:
        """Best-effort payload after a recoverable error, or ``None`` to fail the run."""

        return None

    def config_snapshot(self, context: StageContext) -> dict[str, Any] | None:
        return None


# ----------------------------------------------------------------------
# 00 - 02: intent, fan-out, normalisation
# ----------------------------------------------------------------------
class EnhancementStage(Stage):
    number = 0
    name = "enhancement"

    async def execute(self, context: StageContext, upstream: Any) -> StageResult:
        session = context.session
        interests = [interest.strip() for interest in session.interests if interest.strip()]
        inferred = sorted({word.lower() for interest in interests for word in interest.split() if len(word) > 2})
        queries = [
            f"{interest} in {destination}" for destination in session.destinations for interest in interests
        ] or [f"things to do in {destination}" for destination in session.destinations]
        intent = EnrichedIntent(
            destinations=session.destinations,
            interests=interests,
            date_range=session.date_range,
            flexibility=session.flexibility,
            constraints=session.constraints or {},
            inferred_tags=inferred,
            queries=queries,
        )
        return StageResult(intent)


class FanOutStage(Stage):
    number = 1
    name = "worker_outputs"

    async def execute(self, context: StageContext, upstream: EnrichedIntent) -> StageResult:
        executor = FanOutExecutor(
            context.providers, context.limiters, context.config, context.cost, logger=context.logger
        )
        payload = await executor.execute(upstream)
        return StageResult(payload, degraded="; ".join(payload.degraded) or None)

    def recover(self, context: StageContext, upstream: Any, error: Exception) -> Record | None:
        return WorkerOutputsPayload(degraded=[str(error)])

    def config_snapshot(self, context: StageContext) -> dict[str, Any] | None:
        return {"providers": sorted(provider.name for provider in context.providers)}


class NormalizeStage(Stage):
    number = 2
    name = "candidates_normalized"

    async def execute(self, context: StageContext, upstream: WorkerOutputsPayload) -> StageResult:
        return StageResult(normalize_outputs(upstream.outputs, retrieved_at=context.now))


# ----------------------------------------------------------------------
# 03 - 05: validation, ranking, clustering
# ----------------------------------------------------------------------
def _validation_stats(
    candidates: list[Candidate], validated: list[Candidate], statuses: list[ValidationStatus]
) -> ValidationStats:
    return ValidationStats(
        input_count=len(candidates),
        output_count=len(candidates),
        video_count=sum(1 for candidate in candidates if candidate.origin is CandidateOrigin.VIDEO),
        validated_count=len(validated),
        skipped_count=len(candidates) - len(validated),
        passed_count=sum(
            1
            for status in statuses
            if status in (ValidationStatus.VERIFIED, ValidationStatus.PARTIALLY_VERIFIED)
        ),
        failed_count=sum(1 for status in statuses if status is ValidationStatus.CONFLICT_DETECTED),
        unverified_count=sum(1 for status in statuses if status is ValidationStatus.UNVERIFIED),
    )


class ValidateStage(Stage):
    number = 3
    name = "candidates_validated"

    async def execute(self, context: StageContext, upstream: NormalizedPayload) -> StageResult:
        candidates = list(upstream.candidates)
        settings = context.config.validation
        if not settings.enabled or context.verifier is None:
            return StageResult(
                ValidatedPayload(candidates=candidates, stats=_validation_stats(candidates, [], []))
            )

        selected = select_for_validation(candidates, settings.max_validations)
        validator = CandidateValidator(
            context.verifier,
            context.limiters.get(context.verifier.provider, settings.concurrency),
            settings,
            cost=context.cost,
            logger=context.logger,
        )
        outcomes = await validator.validate_all(selected)
        by_id = {outcome.candidate_id: outcome for outcome in outcomes}
        updated = [
            apply_validation(candidate, by_id[candidate.candidate_id].validation)
            if candidate.candidate_id in by_id
            else candidate
            for candidate in candidates
        ]
        results = [
            ValidationRecord(
                candidate_id=outcome.candidate_id,
                status=outcome.validation.status,
                notes=outcome.validation.notes,
                duration_ms=outcome.duration_ms,
            )
            for outcome in outcomes
        ]
        timed_out = sum(1 for outcome in outcomes if outcome.timed_out)
        payload = ValidatedPayload(
            candidates=updated,
            results=results,
            stats=_validation_stats(candidates, selected, [outcome.validation.status for outcome in outcomes]),
        )
        return StageResult(payload, degraded=f"{timed_out} validation call(s) timed out" if timed_out else None)

    def recover(self, context: StageContext, upstream: Any, error: Exception) -> Record | None:
        candidates = list(upstream.candidates)
        return ValidatedPayload(candidates=candidates, stats=_validation_stats(candidates, [], []))

    def config_snapshot(self, context: StageContext) -> dict[str, Any] | None:
        settings = context.config.validation
        return {"strategy": settings.strategy, "maxValidations": settings.max_validations}


class RankStage(Stage):
    number = 4
    name = "candidates_ranked"

    async def execute(self, context: StageContext, upstream: ValidatedPayload) -> StageResult:
        candidates = list(upstream.candidates)
        intent = context.payload(EnhancementStage.name)
        if context.config.ranking.rescore and intent is not None:
            candidates = score_candidates(candidates, intent, context.now, context.config.ranking.weights)
        result = rank_candidates(candidates)
        return StageResult(RankedPayload(candidates=result.candidates, stats=result.stats))

    def config_snapshot(self, context: StageContext) -> dict[str, Any] | None:
        return {"weights": context.config.ranking.weights.model_dump()}


class DedupeStage(Stage):
    number = 5
    name = "candidates_deduped"

    async def execute(self, context: StageContext, upstream: RankedPayload) -> StageResult:
        clustered = cluster_candidates(list(upstream.candidates), context.config.ranking.similarity_threshold)
        ordered = sort_by_score(clustered.candidates)
        payload = DedupedPayload(
            candidates=ordered,
            clusters=clustered.clusters,
            dedupe=clustered.stats,
            stats=rank_stats(ordered, input_count=clustered.stats.original_count),
        )
        return StageResult(payload)


# ----------------------------------------------------------------------
# 06 - 08: aggregation, triage, export
# ----------------------------------------------------------------------
class AggregateStage(Stage):
    number = 6
    name = "aggregated"

    async def execute(self, context: StageContext, upstream: DedupedPayload) -> StageResult:
        ranking = context.config.ranking
        selected = select_top_candidates(list(upstream.candidates), ranking.top_n, ranking.max_per_type)
        by_type: dict[str, int] = {}
        for candidate in selected:
            by_type[candidate.type.value] = by_type.get(candidate.type.value, 0) + 1
        payload = AggregatedPayload(
            candidates=selected,
            by_type=by_type,
            stats=rank_stats(selected, input_count=len(upstream.candidates)),
            cost=context.cost.breakdown(),
        )
        return StageResult(payload)


class TriageStage(Stage):
    number = 7
    name = "triage"

    async def execute(self, context: StageContext, upstream: AggregatedPayload) -> StageResult:
        state = context.triage.load(context.session.session_id)
        previous = await asyncio.to_thread(context.history) if state.entries else []
        matched = reconcile_triage(state.entries, upstream.candidates, previous)
        triaged = []
        for candidate in upstream.candidates:
            entry = matched.get(candidate.candidate_id)
            triaged.append(
                TriagedCandidate(
                    candidate=candidate,
                    triage=entry.status if entry else None,
                    notes=entry.notes if entry else None,
                )
            )
        return StageResult(TriagePayload(candidates=triaged, counts=count_entries(list(matched.values()))))


def _flat_row(item: TriagedCandidate) -> dict[str, Any]:
    candidate = item.candidate
    return {
        "candidate_id": candidate.candidate_id,
        "title": candidate.title,
        "type": candidate.type.value,
        "origin": candidate.origin.value,
        "score": candidate.score,
        "confidence": candidate.confidence.value,
        "validation": candidate.validation.status.value if candidate.validation else "",
        "location": candidate.location_text or "",
        "url": candidate.source_refs[0].url,
        "cluster_id": candidate.cluster_id or "",
        "triage": item.triage.value if item.triage else "",
    }


class ExportStage(Stage):
    number = 8
    name = "results"

    async def execute(self, context: StageContext, upstream: TriagePayload) -> StageResult:
        session_id = context.session.session_id
        exports: list[str] = []
        for fmt in context.config.pipeline.export_formats:
            exporter = FileExporter(context.outputs_dir / session_id, context.run_id, fmt, run_tag="results")
            try:
                for item in upstream.candidates:
                    exporter.export(item.to_document() if fmt == "json" else _flat_row(item))
                exporter.flush()
            finally:
                exporter.close()
            exports.append(str(exporter.path))
        results = DiscoveryResults(
            session_id=session_id,
            run_id=context.run_id,
            intent=context.payload(EnhancementStage.name),
            candidates=upstream.candidates,
            stats=rank_stats([item.candidate for item in upstream.candidates]),
            triage=upstream.counts,
            cost=context.cost.breakdown(),
            degraded=list(context.degraded),
            exports=exports,
        )
        return StageResult(results)


def default_stages() -> list[Stage]:
    return [
        EnhancementStage(),
        FanOutStage(),
        NormalizeStage(),
        ValidateStage(),
        RankStage(),
        DedupeStage(),
        AggregateStage(),
        TriageStage(),
        ExportStage(),
    ]


__all__ = [
    "AggregateStage",
    "DedupeStage",
    "EnhancementStage",
    "ExportStage",
    "FanOutStage",
    "NormalizeStage",
    "RankStage",
    "Stage",
    "StageContext",
    "StageResult",
    "TriageStage",
    "ValidateStage",
    "default_stages",
]
