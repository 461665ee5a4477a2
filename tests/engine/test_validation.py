from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from trip_curator.config import ValidationConfig
from trip_curator.engine import CandidateValidator, ConcurrencyLimiter, CostTracker, HttpVerificationClient
from trip_curator.engine.validation import (
    Check,
    VerificationFindings,
    apply_validation,
    determine_status,
    extract_json,
    select_for_validation,
    to_check,
)
from trip_curator.engine.verification_client import VerificationReply
from trip_curator.errors import InvalidConfigError, SchemaError
from trip_curator.schemas import CandidateConfidence, CandidateOrigin, CandidateValidation, ValidationStatus

ALL_TRUE = json.dumps(
    {
        "exists": True,
        "locationCorrect": True,
        "isOperational": True,
        "hasRecentMentions": True,
        "notes": "Open daily",
        "sources": ["https://example.com/source"],
    }
)


def _findings(**checks: Check) -> VerificationFindings:
    return VerificationFindings(**checks)


@pytest.mark.parametrize(
    ("checks", "expected"),
    [
        (
            {"exists": Check.CONFIRMED, "location_correct": Check.CONFIRMED, "is_operational": Check.CONFIRMED},
            ValidationStatus.VERIFIED,
        ),
        ({"exists": Check.CONFIRMED}, ValidationStatus.PARTIALLY_VERIFIED),
        ({"exists": Check.CONFIRMED, "is_operational": Check.REFUTED}, ValidationStatus.CONFLICT_DETECTED),
        ({}, ValidationStatus.UNVERIFIED),
    ],
)
def test_determine_status(checks, expected) -> None:
    assert determine_status(_findings(**checks)) is expected


def test_to_check_accepts_strings() -> None:
    assert to_check("true") is Check.CONFIRMED
    assert to_check(False) is Check.REFUTED
    assert to_check(None) is Check.UNKNOWN


def test_extract_json_variants() -> None:
    assert extract_json('Sure!\n```json\n{"exists": true}\n```') == {"exists": True}
    assert extract_json('Result: {"exists": false} done') == {"exists": False}
    assert extract_json('[{"index": 1}]') == [{"index": 1}]
    with pytest.raises(SchemaError):
        extract_json("no json here")


def test_select_for_validation_prefers_video_and_provisional(make_candidate) -> None:
    places = make_candidate(origin=CandidateOrigin.PLACES, confidence=CandidateConfidence.VERIFIED, score=99)
    video = make_candidate(origin=CandidateOrigin.VIDEO, score=40)
    web = make_candidate(score=70)
    assert select_for_validation([places, video, web], 5) == [web, video]
    assert select_for_validation([places, video, web], 1) == [web]


def test_apply_validation_updates_confidence(make_candidate) -> None:
    candidate = make_candidate()
    verified = apply_validation(candidate, CandidateValidation(status=ValidationStatus.VERIFIED))
    conflict = apply_validation(candidate, CandidateValidation(status=ValidationStatus.CONFLICT_DETECTED))
    assert verified.confidence is CandidateConfidence.VERIFIED
    assert conflict.confidence is CandidateConfidence.NEEDS_VERIFICATION


def test_validate_maps_reply_and_records_tokens(make_candidate, fake_verifier) -> None:
    cost = CostTracker()
    validator = CandidateValidator(fake_verifier(ALL_TRUE), ConcurrencyLimiter(2), ValidationConfig(), cost=cost)
    outcome = asyncio.run(validator.validate(make_candidate(title="Meiji Shrine")))
    assert outcome.validation.status is ValidationStatus.VERIFIED
    assert outcome.validation.sources == ["https://example.com/source"]
    assert not outcome.timed_out
    usage = cost.breakdown().providers["perplexity"]
    assert (usage.tokens.input, usage.tokens.output) == (100, 50)


def test_validate_timeout_is_unverified_without_retry(make_candidate, fake_verifier) -> None:
    verifier = fake_verifier(ALL_TRUE, delay=1.0)
    settings = ValidationConfig(timeout_seconds=0.05, max_retries=3)
    validator = CandidateValidator(verifier, ConcurrencyLimiter(1), settings)
    outcome = asyncio.run(validator.validate(make_candidate()))
    assert outcome.validation.status is ValidationStatus.UNVERIFIED
    assert outcome.timed_out
    assert len(verifier.prompts) == 1


def test_unparseable_reply_is_unverified(make_candidate, fake_verifier) -> None:
    validator = CandidateValidator(fake_verifier("I could not find it."), ConcurrencyLimiter(1))
    outcome = asyncio.run(validator.validate(make_candidate()))
    assert outcome.validation.status is ValidationStatus.UNVERIFIED
    assert "Unparseable" in outcome.validation.notes


class FlakyClient:
    provider = "perplexity"

    def __init__(self, failures: int, status_code: int = 503) -> None:
        self.failures = failures
        self.status_code = status_code
        self.calls = 0

    async def complete(self, system: str, prompt: str, timeout: float) -> VerificationReply:
        self.calls += 1
        if self.calls <= self.failures:
            request = httpx.Request("POST", "https://api.example/chat/completions")
            response = httpx.Response(self.status_code, request=request)
            raise httpx.HTTPStatusError("upstream error", request=request, response=response)
        return VerificationReply(content=ALL_TRUE)


def test_retries_with_exponential_backoff(make_candidate) -> None:
    delays: list[float] = []

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    client = FlakyClient(failures=2)
    settings = ValidationConfig(max_retries=2, backoff_seconds=0.5)
    validator = CandidateValidator(client, ConcurrencyLimiter(1), settings, sleep=fake_sleep)
    outcome = asyncio.run(validator.validate(make_candidate()))
    assert outcome.validation.status is ValidationStatus.VERIFIED
    assert client.calls == 3
    assert delays == [0.5, 1.0]


def test_client_errors_are_not_retried(make_candidate) -> None:
    client = FlakyClient(failures=5, status_code=400)
    validator = CandidateValidator(client, ConcurrencyLimiter(1), ValidationConfig(max_retries=3))
    outcome = asyncio.run(validator.validate(make_candidate()))
    assert outcome.validation.status is ValidationStatus.UNVERIFIED
    assert client.calls == 1


def test_batch_strategy_keeps_order_and_fills_missing_items(make_candidate, fake_verifier) -> None:
    reply = json.dumps(
        [
            {"index": 2, "exists": False},
            {"index": 1, "exists": True, "locationCorrect": True, "isOperational": True},
        ]
    )
    verifier = fake_verifier(reply)
    settings = ValidationConfig(strategy="batch", batch_size=3)
    validator = CandidateValidator(verifier, ConcurrencyLimiter(1), settings)
    candidates = [make_candidate() for _ in range(3)]
    outcomes = asyncio.run(validator.validate_all(candidates))
    assert [o.candidate_id for o in outcomes] == [c.candidate_id for c in candidates]
    assert [o.validation.status for o in outcomes] == [
        ValidationStatus.VERIFIED,
        ValidationStatus.CONFLICT_DETECTED,
        ValidationStatus.UNVERIFIED,
    ]
    assert len(verifier.prompts) == 1


def test_http_client_posts_chat_completion() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "choices": [{"message": {"content": ALL_TRUE}}],
                "usage": {"prompt_tokens": 12, "completion_tokens": 34},
            },
        )

    settings = ValidationConfig()
    transport = httpx.MockTransport(handler)
    http = httpx.AsyncClient(
        base_url=settings.base_url, transport=transport, headers={"Authorization": "Bearer test-key"}
    )
    client = HttpVerificationClient(settings, client=http)

    async def scenario() -> VerificationReply:
        try:
            return await client.complete("system", "prompt", timeout=1.0)
        finally:
            await client.aclose()

    reply = asyncio.run(scenario())
    assert reply.content == ALL_TRUE
    assert (reply.input_tokens, reply.output_tokens) == (12, 34)
    assert seen["path"] == "/chat/completions"
    assert seen["auth"] == "Bearer test-key"
    assert seen["body"]["model"] == "sonar"
    assert [m["role"] for m in seen["body"]["messages"]] == ["system", "user"]


def test_http_client_requires_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PERPLEXITY_API_KEY", raising=False)
    with pytest.raises(InvalidConfigError):
        HttpVerificationClient(ValidationConfig())
