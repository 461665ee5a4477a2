from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from trip_curator.errors import InvalidConfigError
from trip_curator.schemas import (
    CandidateConfidence,
    CandidateValidation,
    Flexibility,
    RankStats,
    RunManifest,
    RunState,
    ScoreDistribution,
    Session,
    ValidationStatus,
    make_stage_id,
    parse_stage_id,
)


def test_candidate_requires_a_source_ref(make_candidate) -> None:
    with pytest.raises(ValidationError):
        make_candidate(source_refs=[])


@pytest.mark.parametrize("confidence", [CandidateConfidence.VERIFIED, CandidateConfidence.HIGH])
def test_conflicting_validation_cannot_be_verified(make_candidate, confidence) -> None:
    with pytest.raises(ValidationError):
        make_candidate(
            confidence=confidence,
            validation=CandidateValidation(status=ValidationStatus.CONFLICT_DETECTED),
        )


def test_candidate_bounds(make_candidate) -> None:
    with pytest.raises(ValidationError):
        make_candidate(score=101)
    with pytest.raises(ValidationError):
        make_candidate(coordinates={"lat": 91, "lng": 0})
    with pytest.raises(ValidationError):
        make_candidate(metadata={"rating": 6})


def test_candidate_document_uses_camel_case(make_candidate) -> None:
    document = make_candidate(location_text="Tokyo").to_document()
    assert "candidateId" in document
    assert "locationText" in document
    assert "clusterId" not in document
    assert document["sourceRefs"][0]["url"].startswith("https://")


def test_records_are_immutable(make_candidate) -> None:
    candidate = make_candidate()
    with pytest.raises(ValidationError):
        candidate.score = 10
    assert candidate.evolve(score=10).score == 10
    assert candidate.score == 50


def test_session_requires_destination_and_interest() -> None:
    dates = {"start": date(2026, 4, 1), "end": date(2026, 4, 2)}
    with pytest.raises(ValidationError):
        Session(session_id="x", title="x", destinations=[], date_range=dates, interests=["food"])
    with pytest.raises(ValidationError):
        Session(session_id="x", title="x", destinations=["Tokyo"], date_range=dates, interests=[])


def test_flexibility_variants() -> None:
    assert Flexibility(type="plusMinusDays", days=3).days == 3
    assert Flexibility(type="monthOnly", month="2026-04").month == "2026-04"
    with pytest.raises(ValidationError):
        Flexibility(type="plusMinusDays")
    with pytest.raises(ValidationError):
        Flexibility(type="monthOnly", month="2026-13")


def test_stage_id_helpers() -> None:
    assert parse_stage_id("04_candidates_ranked") == (4, "candidates_ranked")
    assert make_stage_id(8, "results") == "08_results"
    with pytest.raises(InvalidConfigError):
        parse_stage_id("4_ranked")


def test_rank_stats_distribution_must_match_output_count() -> None:
    with pytest.raises(ValidationError):
        RankStats(
            input_count=3,
            output_count=3,
            average_score=50,
            score_distribution=ScoreDistribution(high=1, medium=1, low=0),
        )


def test_manifest_success_follows_state() -> None:
    manifest = RunManifest(session_id="s", run_id="r", state=RunState.DEGRADED)
    assert manifest.success
    assert manifest.to_document()["success"] is True
    assert not manifest.evolve(state=RunState.FAILED).success
