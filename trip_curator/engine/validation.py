"""Cross-check candidates against an independent verification source."""

from __future__ import annotations

import asyncio
import json
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

import httpx
import structlog

from ..config.models import ValidationConfig
from ..errors import ProviderTimeoutError, SchemaError
from ..schemas.candidate import Candidate, CandidateValidation
from ..schemas.common import CandidateConfidence, CandidateOrigin, ValidationStatus
from .cost import CostTracker
from .limiter import ConcurrencyLimiter
from .ranking import sort_by_score
from .verification_client import VerificationClient, VerificationReply

SYSTEM_PROMPT = (
    "You are a fact-checking assistant for travel recommendations. Confirm whether places "
    "exist, are where they are claimed to be and are still operating. Say so explicitly when "
    "something cannot be verified, cite sources and answer only in the requested JSON format."
)

VERIFICATION_PROMPT = """Verify this travel recommendation.
Place: {name}
Claimed location: {location}

Answer with a JSON object:
{{
  "exists": true | false | null,
  "locationCorrect": true | false | null,
  "isOperational": true | false | null,
  "hasRecentMentions": true | false | null,
  "notes": "short explanation",
  "sources": ["https://..."]
}}
Use null for anything you cannot verify."""

BATCH_VERIFICATION_PROMPT = """Verify these travel recommendations:
{places}

Answer with a JSON array holding one object per place:
[
  {{
    "index": 1,
    "exists": true | false | null,
    "locationCorrect": true | false | null,
    "isOperational": true | false | null,
    "hasRecentMentions": true | false | null,
    "notes": "short explanation",
    "sources": ["https://..."]
  }}
]
Use null for anything you cannot verify."""

_FENCED = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class Check(str, Enum):
    """Tri-state answer for a single claim; unknown is never treated as false."""

    CONFIRMED = "confirmed"
    REFUTED = "refuted"
    UNKNOWN = "unknown"


def to_check(value: Any) -> Check:
    if isinstance(value, str):
        value = {"true": True, "false": False}.get(value.strip().lower())
    if value is True:
        return Check.CONFIRMED
    if value is False:
        return Check.REFUTED
    return Check.UNKNOWN


@dataclass(frozen=True, slots=True)
class VerificationFindings:
    exists: Check = Check.UNKNOWN
    location_correct: Check = Check.UNKNOWN
    is_operational: Check = Check.UNKNOWN
    has_recent_mentions: Check = Check.UNKNOWN
    notes: str = ""
    sources: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Any) -> "VerificationFindings":
        if not isinstance(data, dict):
            raise SchemaError(f"Verification result must be an object, got {type(data).__name__}")
        sources = data.get("sources") or []
        return cls(
            exists=to_check(data.get("exists")),
            location_correct=to_check(data.get("locationCorrect")),
            is_operational=to_check(data.get("isOperational")),
            has_recent_mentions=to_check(data.get("hasRecentMentions")),
            notes=str(data.get("notes") or ""),
            sources=tuple(str(url) for url in sources if isinstance(url, str) and url),
        )

    @property
    def checks(self) -> tuple[Check, Check, Check, Check]:
        return (self.exists, self.location_correct, self.is_operational, self.has_recent_mentions)


def determine_status(findings: VerificationFindings) -> ValidationStatus:
    if Check.REFUTED in findings.checks:
        return ValidationStatus.CONFLICT_DETECTED
    core = (findings.exists, findings.location_correct, findings.is_operational)
    if all(check is Check.CONFIRMED for check in core):
        return ValidationStatus.VERIFIED
    if Check.CONFIRMED in findings.checks:
        return ValidationStatus.PARTIALLY_VERIFIED
    return ValidationStatus.UNVERIFIED


def extract_json(text: str) -> Any:
    """Pull the JSON document out of a model reply (fenced block or bare object/array)."""

    text = text or ""
    match = _FENCED.search(text)
    candidates = [match.group(1)] if match else []
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = text.find(opener), text.rfind(closer)
        if start != -1 and end > start:
            candidates.append(text[start : end + 1])
    # prefer whichever bare document starts first
    if not match:
        candidates.sort(key=lambda chunk: text.find(chunk))
    for chunk in candidates:
        try:
            return json.loads(chunk.strip())
        except json.JSONDecodeError:
            continue
    raise SchemaError("No JSON document found in verification reply")


def build_prompt(candidate: Candidate) -> str:
    return VERIFICATION_PROMPT.format(
        name=candidate.title, location=candidate.location_text or "unknown location"
    )


def build_batch_prompt(candidates: list[Candidate]) -> str:
    places = "\n".join(
        f'{index}. "{candidate.title}" in {candidate.location_text or "unknown location"}'
        for index, candidate in enumerate(candidates, start=1)
    )
    return BATCH_VERIFICATION_PROMPT.format(places=places)


def select_for_validation(candidates: list[Candidate], max_validations: int) -> list[Candidate]:
    """Video-origin or provisional candidates, best score first, capped."""

    eligible = [
        candidate
        for candidate in candidates
        if candidate.origin is CandidateOrigin.VIDEO
        or candidate.confidence is CandidateConfidence.PROVISIONAL
    ]
    return sort_by_score(eligible)[:max_validations]


def apply_validation(candidate: Candidate, validation: CandidateValidation) -> Candidate:
    if validation.status in (ValidationStatus.VERIFIED, ValidationStatus.PARTIALLY_VERIFIED):
        confidence = CandidateConfidence.VERIFIED
    elif validation.status is ValidationStatus.CONFLICT_DETECTED:
        confidence = CandidateConfidence.NEEDS_VERIFICATION
    else:
        confidence = candidate.confidence
    return candidate.evolve(validation=validation, confidence=confidence)


@dataclass(slots=True)
class ValidationOutcome:
    candidate_id: str
    validation: CandidateValidation
    findings: VerificationFindings | None = None
    duration_ms: int = 0
    timed_out: bool = False


@dataclass(slots=True)
class _Attempt:
    reply: VerificationReply | None = None
    notes: str = ""
    timed_out: bool = False


class CandidateValidator:
    """Issue verification requests through a limiter and map replies to statuses."""

    def __init__(
        self,
        client: VerificationClient,
        limiter: ConcurrencyLimiter,
        settings: ValidationConfig | None = None,
        cost: CostTracker | None = None,
        logger: structlog.BoundLogger | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.limiter = limiter
        self.settings = settings or ValidationConfig()
        self.cost = cost
        self.logger = logger or structlog.get_logger("trip_curator.validation")
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    async def _call_once(self, prompt: str) -> VerificationReply:
        timeout = self.settings.timeout_seconds
        try:
            return await asyncio.wait_for(self.client.complete(SYSTEM_PROMPT, prompt, timeout), timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderTimeoutError(self.client.provider, timeout) from exc

    @staticmethod
    def _retryable(exc: httpx.HTTPError) -> bool:
        if isinstance(exc, httpx.HTTPStatusError):
            return exc.response.status_code in _RETRYABLE_STATUS
        return isinstance(exc, httpx.TransportError)

    async def _attempt(self, prompt: str) -> _Attempt:
        attempt = 0
        while True:
            try:
                reply = await self.limiter.run(self._call_once, prompt)
            except ProviderTimeoutError as exc:
                return _Attempt(notes=f"Validation timed out: {exc}", timed_out=True)
            except SchemaError as exc:
                return _Attempt(notes=f"Unexpected verification response: {exc}")
            except httpx.HTTPError as exc:
                if attempt >= self.settings.max_retries or not self._retryable(exc):
                    return _Attempt(notes=f"Validation failed: {type(exc).__name__}: {exc}")
                delay = self.settings.backoff_seconds * (2**attempt)
                attempt += 1
                self.logger.info("validation_retry", attempt=attempt, delay=delay, error=str(exc))
                await self._sleep(delay)
                continue
            if self.cost is not None:
                self.cost.record_tokens(self.client.provider, reply.input_tokens, reply.output_tokens)
            return _Attempt(reply=reply)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def validate(self, candidate: Candidate) -> ValidationOutcome:
        started = time.perf_counter()
        attempt = await self._attempt(build_prompt(candidate))
        findings: VerificationFindings | None = None
        if attempt.reply is None:
            validation = CandidateValidation(status=ValidationStatus.UNVERIFIED, notes=attempt.notes)
        else:
            try:
                findings = VerificationFindings.from_mapping(extract_json(attempt.reply.content))
            except SchemaError as exc:
                validation = CandidateValidation(
                    status=ValidationStatus.UNVERIFIED, notes=f"Unparseable verification reply: {exc}"
                )
            else:
                validation = CandidateValidation(
                    status=determine_status(findings),
                    notes=findings.notes,
                    sources=list(findings.sources),
                )
        if validation.status is ValidationStatus.UNVERIFIED and findings is None:
            self.logger.warning(
                "validation_failed", candidate_id=candidate.candidate_id, notes=validation.notes
            )
        return ValidationOutcome(
            candidate_id=candidate.candidate_id,
            validation=validation,
            findings=findings,
            duration_ms=int((time.perf_counter() - started) * 1000),
            timed_out=attempt.timed_out,
        )

    async def validate_batch(self, candidates: list[Candidate]) -> list[ValidationOutcome]:
        """Verify several candidates in one request with per-item semantics."""

        if not candidates:
            return []
        started = time.perf_counter()
        attempt = await self._attempt(build_batch_prompt(candidates))
        by_index: dict[int, VerificationFindings] = {}
        failure = attempt.notes
        if attempt.reply is not None:
            try:
                items = extract_json(attempt.reply.content)
                if isinstance(items, dict):
                    items = [items]
                if not isinstance(items, list):
                    raise SchemaError("Batch verification reply is not a list")
                for position, item in enumerate(items, start=1):
                    if not isinstance(item, dict):
                        continue
                    index = item.get("index", position)
                    if isinstance(index, int):
                        by_index[index] = VerificationFindings.from_mapping(item)
            except SchemaError as exc:
                failure = f"Unparseable verification reply: {exc}"
        duration_ms = int((time.perf_counter() - started) * 1000)
        outcomes = []
        for index, candidate in enumerate(candidates, start=1):
            findings = by_index.get(index)
            if findings is None:
                validation = CandidateValidation(
                    status=ValidationStatus.UNVERIFIED,
                    notes=failure or "No result returned for this item",
                )
            else:
                validation = CandidateValidation(
                    status=determine_status(findings), notes=findings.notes, sources=list(findings.sources)
                )
            outcomes.append(
                ValidationOutcome(
                    candidate_id=candidate.candidate_id,
                    validation=validation,
                    findings=findings,
                    duration_ms=duration_ms,
                    timed_out=attempt.timed_out,
                )
            )
        if failure:
            self.logger.warning("batch_validation_failed", size=len(candidates), notes=failure)
        return outcomes

    async def validate_all(self, candidates: list[Candidate]) -> list[ValidationOutcome]:
        """Validate using the configured strategy; results keep input order."""

        if self.settings.strategy == "batch":
            size = self.settings.batch_size
            chunks = [candidates[i : i + size] for i in range(0, len(candidates), size)]
            batches = await asyncio.gather(*(self.validate_batch(chunk) for chunk in chunks))
            return [outcome for batch in batches for outcome in batch]
        return list(await asyncio.gather(*(self.validate(candidate) for candidate in candidates)))


__all__ = [
    "BATCH_VERIFICATION_PROMPT",
    "CandidateValidator",
    "Check",
    "SYSTEM_PROMPT",
    "VERIFICATION_PROMPT",
    "ValidationOutcome",
    "VerificationFindings",
    "apply_validation",
    "build_batch_prompt",
    "build_prompt",
    "determine_status",
    "extract_json",
    "select_for_validation",
    "to_check",
]
