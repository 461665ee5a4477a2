"""Near-duplicate clustering of candidates referenced by several providers."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field

from ..identifiers import content_hash
from ..schemas.candidate import Candidate
from ..schemas.common import Coordinates, SourceRef
from ..schemas.payloads import ClusterInfo, DedupeStats

SIMILARITY_THRESHOLD = 0.85
MAX_ALTERNATES = 3
EARTH_RADIUS_M = 6_371_000
# (distance upper bound in metres, similarity)
DISTANCE_TIERS = ((50, 1.0), (200, 0.8), (500, 0.5))

_URL = re.compile(r"https?://\S+")
_PUNCT = re.compile(r"[^\w\s]")
_SPACES = re.compile(r"\s+")


def normalize_content(text: str | None) -> str:
    """Lower-case text without urls, emoji, punctuation or repeated whitespace."""

    if not text:
        return ""
    text = _URL.sub("", text.lower())
    text = _PUNCT.sub("", text)
    return _SPACES.sub(" ", text).strip()


def extract_city(location_text: str | None) -> str:
    if not location_text:
        return ""
    return normalize_content(location_text.split(",")[-1])


def candidate_hash(candidate: Candidate) -> str:
    place_id = candidate.metadata.place_id if candidate.metadata else None
    return content_hash(place_id, normalize_content(candidate.title), extract_city(candidate.location_text))


def jaccard_similarity(a: str | None, b: str | None) -> float:
    tokens_a = set(normalize_content(a).split())
    tokens_b = set(normalize_content(b).split())
    if not tokens_a and not tokens_b:
        return 1.0
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def haversine_distance(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance in metres."""

    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def location_similarity(a: Candidate, b: Candidate) -> float:
    if a.coordinates is not None and b.coordinates is not None:
        distance = haversine_distance(a.coordinates, b.coordinates)
        for bound, similarity in DISTANCE_TIERS:
            if distance < bound:
                return similarity
        return 0.0
    return jaccard_similarity(a.location_text or "", b.location_text or "")


def candidate_similarity(a: Candidate, b: Candidate) -> float:
    return jaccard_similarity(a.title, b.title) * 0.6 + location_similarity(a, b) * 0.4


@dataclass(slots=True)
class ClusterResult:
    candidates: list[Candidate] = field(default_factory=list)
    clusters: list[ClusterInfo] = field(default_factory=list)
    stats: DedupeStats = field(
        default_factory=lambda: DedupeStats(original_count=0, cluster_count=0, deduped_count=0, duplicates_removed=0)
    )


def _best(members: list[Candidate]) -> Candidate:
    # max() keeps the first of equal scores
    return max(members, key=lambda candidate: candidate.score)


def _alternates(others: list[Candidate], representative: Candidate) -> list[Candidate]:
    ranked = sorted(others, key=lambda candidate: -candidate.score)
    chosen: list[Candidate] = []
    used_origins = {representative.origin}
    for candidate in ranked:
        if len(chosen) >= MAX_ALTERNATES:
            break
        if candidate.origin not in used_origins:
            chosen.append(candidate)
            used_origins.add(candidate.origin)
    for candidate in ranked:
        if len(chosen) >= MAX_ALTERNATES:
            break
        if all(candidate is not picked for picked in chosen):
            chosen.append(candidate)
    return chosen


def _merge_refs(members: list[Candidate]) -> list[SourceRef]:
    seen: set[str] = set()
    merged: list[SourceRef] = []
    for member in members:
        for ref in member.source_refs:
            if ref.url not in seen:
                seen.add(ref.url)
                merged.append(ref)
    return merged


def cluster_candidates(
    candidates: list[Candidate], threshold: float = SIMILARITY_THRESHOLD
) -> ClusterResult:
    """Group candidates by place id / content hash, then merge similar groups.

    Each cluster collapses to its highest scoring member, carrying the union
    of source refs and tags. Every input id is listed in exactly one cluster.
    """

    if not candidates:
        return ClusterResult()

    groups: dict[str, list[Candidate]] = {}
    for candidate in candidates:
        place_id = candidate.metadata.place_id if candidate.metadata else None
        key = f"place:{place_id}" if place_id else f"hash:{candidate_hash(candidate)}"
        groups.setdefault(key, []).append(candidate)

    group_list = list(groups.values())
    merged_groups: list[list[Candidate]] = []
    processed: set[int] = set()
    for i, group in enumerate(group_list):
        if i in processed:
            continue
        current = list(group)
        processed.add(i)
        for j in range(i + 1, len(group_list)):
            if j in processed:
                continue
            if candidate_similarity(_best(current), _best(group_list[j])) >= threshold:
                current.extend(group_list[j])
                processed.add(j)
        merged_groups.append(current)

    deduped: list[Candidate] = []
    clusters: list[ClusterInfo] = []
    for index, members in enumerate(merged_groups):
        cluster_id = f"cluster_{index:03d}"
        ordered = sorted(members, key=lambda candidate: -candidate.score)
        representative, others = ordered[0], ordered[1:]
        alternates = _alternates(others, representative)
        tags = sorted({tag.lower() for member in ordered for tag in member.tags})
        deduped.append(
            representative.evolve(cluster_id=cluster_id, source_refs=_merge_refs(ordered), tags=tags)
        )
        clusters.append(
            ClusterInfo(
                cluster_id=cluster_id,
                representative_id=representative.candidate_id,
                member_ids=[member.candidate_id for member in members],
                alternate_ids=[alternate.candidate_id for alternate in alternates],
            )
        )

    stats = DedupeStats(
        original_count=len(candidates),
        cluster_count=len(clusters),
        deduped_count=len(deduped),
        duplicates_removed=len(candidates) - len(deduped),
    )
    return ClusterResult(candidates=deduped, clusters=clusters, stats=stats)


__all__ = [
    "ClusterResult",
    "SIMILARITY_THRESHOLD",
    "candidate_hash",
    "candidate_similarity",
    "cluster_candidates",
    "extract_city",
    "haversine_distance",
    "jaccard_similarity",
    "location_similarity",
    "normalize_content",
]
