"""Provider contract and the fan-out executor that calls providers concurrently."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol, runtime_checkable

import structlog

from ..config.models import GlobalConfig
from ..errors import ConflictError, ProviderTimeoutError
from ..identifiers import content_hash
from ..schemas.common import CandidateOrigin
from ..schemas.payloads import WorkerOutputsPayload
from ..schemas.worker import EnrichedIntent, WorkerOutput, WorkerStatus
from .cost import CostTracker
from .limiter import LimiterPool


@dataclass(slots=True)
class FetchOptions:
    """Per-call context handed to a provider."""

    max_results: int
    timeout: float
    cost: CostTracker
    intent: EnrichedIntent | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class Provider(Protocol):
    """A content-discovery provider.

    ``fetch`` returns raw result mappings and reports its usage through
    ``options.cost`` in the provider's own unit. The executor holds the
    provider's limiter slot for the duration of the call.
    """

    name: str
    origin: CandidateOrigin

    async def fetch(self, query: str, options: FetchOptions) -> list[dict[str, Any]]: ...


@dataclass(frozen=True, slots=True)
class Assignment:
    provider: Provider
    query: str
    max_results: int

    @property
    def fingerprint(self) -> str:
        return content_hash(self.provider.name, " ".join(self.query.lower().split()), str(self.max_results))


class FanOutExecutor:
    """Run every (provider, query) assignment once, bounded by the limiter pool."""

    def __init__(
        self,
        providers: Iterable[Provider],
        limiters: LimiterPool,
        config: GlobalConfig,
        cost: CostTracker,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.limiters = limiters
        self.config = config
        self.cost = cost
        self.logger = logger or structlog.get_logger("trip_curator.fanout")
        self.providers: dict[str, Provider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: Provider) -> None:
        if provider.name in self.providers:
            raise ConflictError(f"Provider already registered: {provider.name}")
        self.providers[provider.name] = provider

    # ------------------------------------------------------------------
    def plan(self, intent: EnrichedIntent) -> list[Assignment]:
        """Assignments for every enabled provider, with repeated fingerprints removed."""

        queries = intent.queries or [" ".join([*intent.interests, *intent.destinations])]
        unique: dict[str, Assignment] = {}
        for provider in self.providers.values():
            settings = self.config.provider(provider.name)
            if not settings.enabled:
                continue
            for query in queries:
                assignment = Assignment(provider, query, settings.max_results)
                unique.setdefault(assignment.fingerprint, assignment)
        return list(unique.values())

    async def execute(self, intent: EnrichedIntent) -> WorkerOutputsPayload:
        outputs: list[WorkerOutput] = []
        for name, provider in self.providers.items():
            if not self.config.provider(name).enabled:
                outputs.append(
                    WorkerOutput(
                        worker_id=name,
                        origin=provider.origin,
                        query="",
                        status=WorkerStatus.SKIPPED,
                    )
                )
        assignments = self.plan(intent)
        # gather cancels the remaining calls if this task is cancelled
        results = await asyncio.gather(*(self._run_one(assignment, intent) for assignment in assignments))
        outputs.extend(results)
        degraded = [
            f"{output.worker_id}: {output.error}"
            for output in outputs
            if output.status is WorkerStatus.ERROR
        ]
        return WorkerOutputsPayload(outputs=outputs, degraded=degraded)

    async def _call(self, assignment: Assignment, options: FetchOptions) -> list[dict[str, Any]]:
        try:
            return await asyncio.wait_for(assignment.provider.fetch(assignment.query, options), options.timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderTimeoutError(assignment.provider.name, options.timeout) from exc

    async def _run_one(self, assignment: Assignment, intent: EnrichedIntent) -> WorkerOutput:
        provider = assignment.provider
        settings = self.config.provider(provider.name)
        options = FetchOptions(
            max_results=assignment.max_results,
            timeout=settings.timeout_seconds,
            cost=self.cost,
            intent=intent,
        )
        limiter = self.limiters.get(provider.name)
        started = time.perf_counter()
        status = WorkerStatus.OK
        error: str | None = None
        results: list[dict[str, Any]] = []
        try:
            raw = await limiter.run(self._call, assignment, options)
            results = [item for item in raw if isinstance(item, dict)]
            if len(results) != len(raw):
                status = WorkerStatus.PARTIAL
                error = f"{len(raw) - len(results)} malformed results dropped"
            if len(results) > assignment.max_results:
                results = results[: assignment.max_results]
        except ProviderTimeoutError as exc:
            status = WorkerStatus.ERROR
            error = str(exc)
            self.logger.warning("provider_timeout", provider=provider.name, query=assignment.query)
        except Exception as exc:  # noqa: BLE001
            status = WorkerStatus.ERROR
            error = f"{type(exc).__name__}: {exc}"
            self.logger.error("provider_failed", provider=provider.name, query=assignment.query, error=error)
        duration_ms = int((time.perf_counter() - started) * 1000)
        self.logger.info(
            "provider_finished",
            provider=provider.name,
            status=status.value,
            results=len(results),
            duration_ms=duration_ms,
        )
        return WorkerOutput(
            worker_id=provider.name,
            origin=provider.origin,
            query=assignment.query,
            status=status,
            results=results,
            duration_ms=duration_ms,
            error=error,
        )


__all__ = ["Assignment", "FanOutExecutor", "FetchOptions", "Provider"]
