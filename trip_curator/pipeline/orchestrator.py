"""Pipeline orchestrator: runs stages in order with checkpoint resume."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Sequence

import structlog

from ..config import ConfigRepository, GlobalConfig
from ..engine.cost import CostTracker
from ..engine.fanout import Provider
from ..engine.limiter import LimiterPool
from ..engine.verification_client import VerificationClient
from ..errors import RECOVERABLE_ERRORS, ConflictError, InvalidConfigError, NotFoundError, SchemaError
from ..logging_conf import close_run_logger, configure_logging, run_logger
from ..schemas.candidate import Candidate
from ..schemas.common import utc_now
from ..schemas.cost import CostBreakdown
from ..schemas.manifest import RunManifest, RunState, StageDegradation
from ..schemas.payloads import DiscoveryResults
from ..schemas.session import Session
from ..schemas.stage import parse_stage_id
from ..storage.atomic import atomic_write_json, read_json
from ..storage.checkpoints import CheckpointStore
from ..storage.sessions import SessionRepository
from ..storage.triage import TriageRepository
from ..ui import StageProgressReporter
from .manifest import COST_FILENAME, collect_stages, load_manifest, save_manifest
from .stages import AggregateStage, Stage, StageContext, StageResult, default_stages


@dataclass(slots=True)
class RunResult:
    manifest: RunManifest
    results: DiscoveryResults | None = None
    progress: dict[str, int] | None = None

    @property
    def state(self) -> RunState:
        return self.manifest.state

    @property
    def success(self) -> bool:
        return self.manifest.success


class PipelineOrchestrator:
    """Central coordinator executing one session run stage by stage."""

    def __init__(
        self,
        config_repository: ConfigRepository,
        providers: Iterable[Provider] = (),
        verifier: VerificationClient | None = None,
        stages: Sequence[Stage] | None = None,
        limiters: LimiterPool | None = None,
        progress_factory: Callable[[], StageProgressReporter] | None = None,
    ) -> None:
        self.config_repository = config_repository
        self.global_config: GlobalConfig = config_repository.load_global_config()
        locator = config_repository.locator
        self.outputs_dir = locator.outputs_dir
        self.store = CheckpointStore(locator.sessions_dir)
        self.sessions = SessionRepository(locator.sessions_dir)
        self.triage = TriageRepository(locator.sessions_dir)
        concurrency = self.global_config.concurrency
        self.limiters = limiters or LimiterPool(concurrency.default_limit, concurrency.per_provider)
        self.providers = list(providers)
        self.verifier = verifier
        self.progress_factory = progress_factory
        self.logger = configure_logging().bind(component="orchestrator")
        self._stages: list[Stage] = []
        for stage in stages if stages is not None else default_stages():
            self.register_stage(stage)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    def register_stage(self, stage: Stage) -> None:
        parse_stage_id(stage.stage_id)
        for existing in self._stages:
            if existing.number == stage.number or existing.stage_id == stage.stage_id:
                raise ConflictError(f"Stage {stage.stage_id} collides with {existing.stage_id}")
        self._stages.append(stage)
        self._stages.sort(key=lambda item: item.number)

    @property
    def stages(self) -> list[Stage]:
        return list(self._stages)

    def _stage_number(self, value: int | str | None) -> int | None:
        if value is None:
            return None
        number = value if isinstance(value, int) else parse_stage_id(value)[0]
        if not any(stage.number == number for stage in self._stages):
            raise InvalidConfigError(f"Unknown stage: {value}")
        return number

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def _cost_tracker(self, session_id: str, run_id: str) -> CostTracker:
        tracker = CostTracker(self.global_config.pricing, run_id)
        path = self.store.run_dir(session_id, run_id) / COST_FILENAME
        if path.exists():
            tracker.merge(CostBreakdown.model_validate(read_json(path)))
        return tracker

    def _save_cost(self, session_id: str, run_id: str, cost: CostTracker) -> None:
        path = self.store.run_dir(session_id, run_id) / COST_FILENAME
        atomic_write_json(path, cost.breakdown().to_document())

    def _write_manifest(self, manifest: RunManifest, **changes: Any) -> RunManifest:
        updated = manifest.evolve(updated_at=utc_now(), **changes)
        save_manifest(self.store, updated)
        return updated

    def load_manifest(self, session_id: str, run_id: str) -> RunManifest:
        return load_manifest(self.store, session_id, run_id)

    def _previous_candidates(
        self, session_id: str, run_id: str, log: structlog.BoundLogger
    ) -> list[Candidate]:
        """Shortlists of the session's other runs, oldest run first."""

        stage_id = AggregateStage().stage_id
        candidates: list[Candidate] = []
        for other_run in self.sessions.list_runs(session_id):
            if other_run == run_id or not self.store.exists(session_id, other_run, stage_id):
                continue
            try:
                checkpoint = self.store.load(session_id, other_run, stage_id, typed=True)
            except SchemaError as exc:
                log.warning("previous_run_unreadable", previous_run_id=other_run, error=str(exc))
                continue
            candidates.extend(checkpoint.data.candidates)
        return candidates

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------
    async def run(
        self,
        session_id: str,
        run_id: str | None = None,
        *,
        from_stage: int | str | None = None,
        stop_after: int | str | None = None,
        mode: str | None = None,
        progress_enabled: bool | None = None,
    ) -> RunResult:
        """Execute the pipeline for ``session_id``.

        Stages whose checkpoint already exists are skipped and their payload is
        reloaded as input for the next stage. ``from_stage`` deletes checkpoints
        from that stage onward first so they are recomputed.
        """

        session = self.sessions.load(session_id)
        start_number = self._stage_number(from_stage)
        stop_number = self._stage_number(stop_after)
        if run_id is None:
            run_id = self.sessions.allocate_run_id(session_id, mode)
        else:
            self.store.run_dir(session_id, run_id).mkdir(parents=True, exist_ok=True)

        log = run_logger(session_id, run_id)
        try:
            return await self._run_stages(session, run_id, start_number, stop_number, progress_enabled, log)
        finally:
            close_run_logger(session_id, run_id)

    async def _run_stages(
        self,
        session: Session,
        run_id: str,
        start_number: int | None,
        stop_number: int | None,
        progress_enabled: bool | None,
        log: structlog.BoundLogger,
    ) -> RunResult:
        session_id = session.session_id
        if start_number is not None:
            await asyncio.to_thread(self.store.invalidate_from, session_id, run_id, start_number)

        try:
            manifest = self.load_manifest(session_id, run_id)
            manifest = manifest.evolve(
                stages_executed=[],
                stages_skipped=[],
                failed_stage=None,
                reason=None,
                degraded_stages=[],
            )
        except NotFoundError:
            manifest = RunManifest(session_id=session_id, run_id=run_id)
        manifest = self._write_manifest(manifest, state=RunState.RUNNING)

        cost = self._cost_tracker(session_id, run_id)
        context = StageContext(
            session=session,
            run_id=run_id,
            config=self.global_config,
            cost=cost,
            limiters=self.limiters,
            triage=self.triage,
            outputs_dir=self.outputs_dir,
            now=utc_now(),
            logger=log,
            providers=self.providers,
            verifier=self.verifier,
            history=lambda: self._previous_candidates(session_id, run_id, log),
        )
        progress_flag = self.global_config.enable_progress_bar if progress_enabled is None else progress_enabled
        progress = self.progress_factory() if self.progress_factory else StageProgressReporter(enabled=progress_flag)
        selected = [stage for stage in self._stages if stop_number is None or stage.number <= stop_number]
        progress.start(len(selected), label=session_id)

        executed: list[str] = []
        skipped: list[str] = []
        degraded: list[StageDegradation] = []
        failed_stage: str | None = None
        reason: str | None = None
        final_stage: str | None = None
        upstream: Any = None
        previous: str | None = None
        log.info("run_started", stages=len(selected), from_stage=start_number, stop_after=stop_number)

        current: Stage | None = None
        try:
            for current in selected:
                stage_id = current.stage_id
                progress.stage_started(stage_id)
                manifest = self._write_manifest(manifest, current_stage=stage_id)

                if self.store.exists(session_id, run_id, stage_id):
                    checkpoint = await asyncio.to_thread(
                        self.store.load, session_id, run_id, stage_id, typed=True
                    )
                    upstream = checkpoint.data
                    if checkpoint.meta.degraded:
                        degraded.append(StageDegradation(stage_id=stage_id, reason=checkpoint.meta.degraded))
                        context.degraded.append(f"{stage_id}: {checkpoint.meta.degraded}")
                    context.payloads[current.name] = upstream
                    skipped.append(stage_id)
                    final_stage = previous = stage_id
                    log.info("stage_skipped", stage_id=stage_id)
                    progress.stage_finished(stage_id, "skipped")
                    continue

                log.info("stage_started", stage_id=stage_id)
                result = await self._execute(current, context, upstream)
                if result.degraded:
                    degraded.append(StageDegradation(stage_id=stage_id, reason=result.degraded))
                    context.degraded.append(f"{stage_id}: {result.degraded}")
                    log.warning("stage_degraded", stage_id=stage_id, reason=result.degraded)

                await asyncio.to_thread(
                    self.store.save,
                    session_id,
                    run_id,
                    stage_id,
                    result.payload,
                    upstream_stage=previous,
                    config=current.config_snapshot(context),
                    degraded=result.degraded,
                )
                await asyncio.to_thread(self._save_cost, session_id, run_id, cost)
                upstream = result.payload
                context.payloads[current.name] = upstream
                executed.append(stage_id)
                final_stage = previous = stage_id
                log.info("stage_finished", stage_id=stage_id, degraded=bool(result.degraded))
                progress.stage_finished(stage_id, "degraded" if result.degraded else "executed")
        except asyncio.CancelledError:
            log.warning("run_cancelled", stage_id=current.stage_id if current else None)
            self._save_cost(session_id, run_id, cost)
            self._write_manifest(
                manifest,
                state=RunState.FAILED,
                failed_stage=current.stage_id if current else None,
                reason="cancelled",
                stages_executed=executed,
                stages_skipped=skipped,
                final_stage=final_stage,
                degraded_stages=degraded,
                stages=collect_stages(self.store, session_id, run_id),
            )
            raise
        except Exception as exc:  # noqa: BLE001
            failed_stage = current.stage_id if current else None
            reason = f"{type(exc).__name__}: {exc}"
            log.error("stage_failed", stage_id=failed_stage, error=reason, exc_info=True)
            self._save_cost(session_id, run_id, cost)
            if failed_stage:
                progress.stage_finished(failed_stage, "failed")
        finally:
            progress.close()

        if failed_stage is not None:
            state = RunState.FAILED
        elif degraded:
            state = RunState.DEGRADED
        else:
            state = RunState.COMPLETED
        manifest = self._write_manifest(
            manifest,
            state=state,
            current_stage=None,
            stages=collect_stages(self.store, session_id, run_id),
            stages_executed=executed,
            stages_skipped=skipped,
            final_stage=final_stage,
            failed_stage=failed_stage,
            reason=reason,
            degraded_stages=degraded,
        )
        self.sessions.record_run(session_id, run_id)
        log.info(
            "run_finished",
            state=state.value,
            executed=len(executed),
            skipped=len(skipped),
            degraded=len(degraded),
            cost_total=cost.breakdown().total,
        )
        results = upstream if isinstance(upstream, DiscoveryResults) and failed_stage is None else None
        return RunResult(manifest=manifest, results=results, progress=progress.summary())

    async def _execute(self, stage: Stage, context: StageContext, upstream: Any) -> StageResult:
        try:
            return await stage.execute(context, upstream)
        except RECOVERABLE_ERRORS as exc:
            if not self.global_config.pipeline.continue_on_error:
                raise
            payload = stage.recover(context, upstream, exc)
            if payload is None:
                raise
            return StageResult(payload, degraded=f"recovered after {type(exc).__name__}: {exc}")


__all__ = ["PipelineOrchestrator", "RunResult"]
