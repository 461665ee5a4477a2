from __future__ import annotations

from trip_curator.engine.normalize import ensure_unique_ids, normalize_outputs, normalize_result
from trip_curator.schemas import CandidateConfidence, CandidateOrigin, CandidateType, WorkerOutput, WorkerStatus


def test_places_result_is_verified_and_rating_boosted(fixed_now) -> None:
    candidate = normalize_result(
        {
            "name": "Ichiran Shibuya",
            "location": "Shibuya, Tokyo",
            "url": "https://maps.example/ichiran",
            "placeId": "abc123",
            "rating": 4.6,
            "lat": 35.66,
            "lng": 139.70,
            "type": "food",
        },
        CandidateOrigin.PLACES,
        retrieved_at=fixed_now,
    )
    assert candidate.type is CandidateType.FOOD
    assert candidate.confidence is CandidateConfidence.VERIFIED
    assert candidate.score == 80
    assert candidate.metadata.place_id == "abc123"
    assert candidate.coordinates.lat == 35.66
    assert candidate.candidate_id.startswith("places-")


def test_video_result_builds_watch_url_and_tag(fixed_now) -> None:
    candidate = normalize_result(
        {"title": "Tokyo street food tour", "videoId": "xyz", "viewCount": 250_000, "tags": ["Food"]},
        CandidateOrigin.VIDEO,
        retrieved_at=fixed_now,
    )
    assert candidate.source_refs[0].url == "https://www.youtube.com/watch?v=xyz"
    assert candidate.tags == ["video", "food"]
    assert candidate.confidence is CandidateConfidence.PROVISIONAL
    assert candidate.score == 40


def test_candidate_ids_are_stable(fixed_now) -> None:
    raw = {"title": "Meiji Shrine", "location": "Shibuya", "url": "https://example.com/meiji"}
    first = normalize_result(raw, CandidateOrigin.WEB, fixed_now)
    second = normalize_result(dict(raw), CandidateOrigin.WEB, fixed_now)
    assert first.candidate_id == second.candidate_id


def test_unique_ids_get_suffixes(make_candidate) -> None:
    candidates = [make_candidate(candidate_id="web-aaaa") for _ in range(3)]
    assert [c.candidate_id for c in ensure_unique_ids(candidates)] == ["web-aaaa", "web-aaaa-2", "web-aaaa-3"]


def test_normalize_outputs_skips_failed_workers_and_counts_drops(fixed_now) -> None:
    outputs = [
        WorkerOutput(
            worker_id="web",
            origin=CandidateOrigin.WEB,
            query="food in Tokyo",
            status=WorkerStatus.OK,
            results=[
                {"title": "Tsukiji Outer Market", "url": "https://example.com/tsukiji"},
                {"title": "", "url": "https://example.com/blank"},
                {"title": "No source at all"},
            ],
        ),
        WorkerOutput(
            worker_id="places",
            origin=CandidateOrigin.PLACES,
            query="food in Tokyo",
            status=WorkerStatus.ERROR,
            error="timeout",
        ),
    ]
    payload = normalize_outputs(outputs, retrieved_at=fixed_now)
    assert [c.title for c in payload.candidates] == ["Tsukiji Outer Market"]
    assert payload.stats.input_count == 3
    assert payload.stats.dropped_results == 2
    assert payload.stats.skipped_outputs == 1
    assert payload.stats.by_origin == {"web": 1}


def test_malformed_fields_fall_back_instead_of_failing(fixed_now) -> None:
    outputs = [
        WorkerOutput(
            worker_id="web",
            origin=CandidateOrigin.WEB,
            query="food in Tokyo",
            status=WorkerStatus.OK,
            results=[
                {"title": "Odd type", "url": "https://example.com/a", "type": ["food"]},
                {"title": "Odd type dict", "url": "https://example.com/b", "type": {"kind": "food"}},
                {"title": "Odd location", "url": "https://example.com/c", "location": ["Tokyo"], "tags": "food"},
                {"title": "Odd metadata", "url": "https://example.com/d", "metadata": ["x"]},
            ],
        )
    ]
    payload = normalize_outputs(outputs, retrieved_at=fixed_now)
    assert payload.stats.dropped_results == 0
    assert [c.type for c in payload.candidates[:2]] == [CandidateType.PLACE, CandidateType.PLACE]
    assert payload.candidates[2].location_text is None
    assert payload.candidates[2].tags == []
    assert payload.candidates[3].metadata is None
