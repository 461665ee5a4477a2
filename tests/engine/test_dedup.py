from __future__ import annotations

from trip_curator.engine.dedup import cluster_candidates, haversine_distance, jaccard_similarity
from trip_curator.schemas import CandidateOrigin, Coordinates


def test_jaccard_similarity_ignores_case_and_punctuation() -> None:
    assert jaccard_similarity("Tsukiji Outer Market!", "tsukiji outer market") == 1.0
    assert jaccard_similarity("", "anything") == 0.0


def test_haversine_distance_is_metres() -> None:
    a = Coordinates(lat=35.6654, lng=139.7707)
    b = Coordinates(lat=35.6655, lng=139.7708)
    assert haversine_distance(a, b) < 20


def test_cluster_merges_same_place_across_providers(make_candidate) -> None:
    web = make_candidate(
        title="Tsukiji Outer Market",
        location_text="Tokyo",
        coordinates={"lat": 35.6654, "lng": 139.7707},
        tags=["Food"],
        score=70,
    )
    places = make_candidate(
        title="Tsukiji Outer Market",
        location_text="Chuo City, Tokyo",
        coordinates={"lat": 35.6655, "lng": 139.7708},
        origin=CandidateOrigin.PLACES,
        tags=["market"],
        score=85,
    )
    other = make_candidate(title="Meiji Shrine", location_text="Shibuya", score=60)

    result = cluster_candidates([web, places, other])
    assert result.stats.original_count == 3
    assert result.stats.deduped_count == 2
    assert result.stats.duplicates_removed == 1

    merged = result.candidates[0]
    assert merged.candidate_id == places.candidate_id
    assert merged.cluster_id == "cluster_000"
    assert merged.tags == ["food", "market"]
    assert {ref.url for ref in merged.source_refs} == {ref.url for ref in web.source_refs + places.source_refs}

    info = result.clusters[0]
    assert info.representative_id == places.candidate_id
    assert info.alternate_ids == [web.candidate_id]
    all_members = [member for cluster in result.clusters for member in cluster.member_ids]
    assert sorted(all_members) == sorted(c.candidate_id for c in (web, places, other))


def test_cluster_empty_input() -> None:
    result = cluster_candidates([])
    assert result.candidates == []
    assert result.stats.original_count == 0
