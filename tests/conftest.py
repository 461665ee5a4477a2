"""Pytest configuration providing shared fixtures and fakes."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable

import pytest

from trip_curator.config import ConfigLocator, ConfigRepository, GlobalConfig
from trip_curator.engine.fanout import FetchOptions
from trip_curator.engine.verification_client import VerificationReply
from trip_curator.schemas import Candidate, CandidateOrigin, CandidateType, DateRange, EnrichedIntent, Session
from trip_curator.storage import CheckpointStore, SessionRepository, TriageRepository

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeProvider:
    """Provider returning canned results, optionally slow or failing."""

    def __init__(
        self,
        name: str,
        origin: CandidateOrigin,
        results: list[dict[str, Any]] | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.name = name
        self.origin = origin
        self.results = results or []
        self.delay = delay
        self.error = error
        self.queries: list[str] = []

    async def fetch(self, query: str, options: FetchOptions) -> list[dict[str, Any]]:
        self.queries.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        options.cost.record_calls(self.name)
        return list(self.results)


class FakeVerifier:
    """Verification client answering from a function of the prompt."""

    provider = "perplexity"

    def __init__(self, answer: Callable[[str], str] | str, delay: float = 0.0) -> None:
        self.answer = answer
        self.delay = delay
        self.prompts: list[str] = []

    async def complete(self, system: str, prompt: str, timeout: float) -> VerificationReply:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        content = self.answer(prompt) if callable(self.answer) else self.answer
        return VerificationReply(content=content, input_tokens=100, output_tokens=50)


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterable[ConfigRepository]:
    monkeypatch.setenv("TRIP_CURATOR_HOME", str(tmp_path))
    locator = ConfigLocator(project_root=tmp_path)
    repository = ConfigRepository(locator)
    repository.save_global_config(GlobalConfig(enable_progress_bar=False))
    yield repository


@pytest.fixture
def session_repository(temp_config_repository: ConfigRepository) -> SessionRepository:
    return SessionRepository(temp_config_repository.locator.sessions_dir)


@pytest.fixture
def checkpoint_store(temp_config_repository: ConfigRepository) -> CheckpointStore:
    return CheckpointStore(temp_config_repository.locator.sessions_dir)


@pytest.fixture
def triage_repository(temp_config_repository: ConfigRepository) -> TriageRepository:
    return TriageRepository(temp_config_repository.locator.sessions_dir)


@pytest.fixture
def tokyo_session(session_repository: SessionRepository) -> Session:
    return session_repository.create(
        destinations=["Tokyo"],
        date_range={"start": date(2026, 4, 1), "end": date(2026, 4, 10)},
        interests=["food", "temples"],
        now=FIXED_NOW,
    )


@pytest.fixture
def sample_intent() -> EnrichedIntent:
    return EnrichedIntent(
        destinations=["Tokyo"],
        interests=["food"],
        date_range=DateRange(start=date(2026, 4, 1), end=date(2026, 4, 10)),
        queries=["food in Tokyo"],
    )


@pytest.fixture
def make_candidate() -> Callable[..., Candidate]:
    counter = {"value": 0}

    def _builder(**overrides: Any) -> Candidate:
        counter["value"] += 1
        index = counter["value"]
        base: dict[str, Any] = {
            "candidate_id": f"web-{index:04d}",
            "type": CandidateType.PLACE,
            "title": f"Place {index}",
            "origin": CandidateOrigin.WEB,
            "source_refs": [{"url": f"https://example.com/{index}", "retrieved_at": FIXED_NOW}],
            "score": 50,
        }
        base.update(overrides)
        return Candidate(**base)

    return _builder


@pytest.fixture
def fake_provider() -> type[FakeProvider]:
    return FakeProvider


@pytest.fixture
def fake_verifier() -> type[FakeVerifier]:
    return FakeVerifier


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW
