"""Multi-dimension candidate scoring: relevance, credibility, recency, diversity."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from ..config.models import RankingWeights
from ..schemas.candidate import Candidate
from ..schemas.common import CandidateOrigin, CandidateType, ValidationStatus
from ..schemas.worker import EnrichedIntent

DESTINATION_MATCH = 30.0
INTEREST_MATCH_MAX = 40.0
TYPE_MATCH_BONUS = 10.0
TYPE_MATCH_MAX = 30.0
SAME_TYPE_PENALTY = 10.0

# (max age in days, score); anything older scores STALE
RECENCY_TIERS = ((30, 100.0), (90, 80.0), (180, 60.0), (365, 40.0))
RECENCY_STALE = 20.0
RECENCY_UNKNOWN = 50.0

VALIDATION_BOOST = {
    ValidationStatus.VERIFIED: 35.0,
    ValidationStatus.PARTIALLY_VERIFIED: 15.0,
}

TYPE_INTERESTS: dict[CandidateType, tuple[str, ...]] = {
    CandidateType.FOOD: (
        "food", "culinary", "restaurants", "dining", "cuisine", "gastronomy",
        "foodie", "eating", "street food", "local food", "cooking", "chef",
    ),
    CandidateType.ACTIVITY: (
        "adventure", "outdoor", "outdoors", "hiking", "trekking", "sports", "active",
        "water sports", "diving", "surfing", "climbing", "kayaking", "biking", "cycling",
    ),
    CandidateType.EXPERIENCE: (
        "culture", "cultural", "local", "authentic", "tradition", "traditional",
        "heritage", "immersive", "unique", "off the beaten path", "hidden gems",
    ),
}

_SEPARATORS = re.compile(r"[^\w\s]|_")
_SPACES = re.compile(r"\s+")


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def normalize_text(text: str) -> str:
    return _SPACES.sub(" ", _SEPARATORS.sub(" ", text.lower())).strip()


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    relevance: float
    credibility: float
    recency: float
    diversity: float
    overall: float


# ----------------------------------------------------------------------
# Dimensions
# ----------------------------------------------------------------------
def _intent_terms(intent: EnrichedIntent) -> list[str]:
    return [*intent.interests, *intent.inferred_tags]


def relevance_score(candidate: Candidate, intent: EnrichedIntent) -> float:
    score = 0.0
    if candidate.location_text and intent.destinations:
        haystack = normalize_text(" ".join([candidate.location_text, candidate.title, candidate.summary]))
        if any(normalize_text(dest) in haystack for dest in intent.destinations):
            score += DESTINATION_MATCH

    terms = _intent_terms(intent)
    if candidate.tags and terms:
        wanted = {normalize_text(term) for term in terms}
        matches = sum(1 for tag in candidate.tags if normalize_text(tag) in wanted)
        if matches:
            ratio = matches / min(len(candidate.tags), len(terms))
            score += min(ratio * INTEREST_MATCH_MAX, INTEREST_MATCH_MAX)

    keywords = [normalize_text(keyword) for keyword in TYPE_INTERESTS.get(candidate.type, ())]
    type_score = 0.0
    for term in terms:
        normalized = normalize_text(term)
        if normalized and any(normalized in keyword or keyword in normalized for keyword in keywords):
            type_score += TYPE_MATCH_BONUS
    score += min(type_score, TYPE_MATCH_MAX)
    return _clamp(score)


def credibility_score(candidate: Candidate) -> float:
    status = candidate.validation.status if candidate.validation else None
    if candidate.origin is CandidateOrigin.PLACES:
        base = 90.0
    elif candidate.origin is CandidateOrigin.WEB:
        base = 80.0 if len(candidate.source_refs) >= 2 else 60.0
    elif status in (ValidationStatus.VERIFIED, ValidationStatus.PARTIALLY_VERIFIED):
        base = 50.0
    else:
        base = 30.0
    return _clamp(base + VALIDATION_BOOST.get(status, 0.0))


def recency_score(candidate: Candidate, now: datetime) -> float:
    published = candidate.metadata.published_at if candidate.metadata else None
    if published is None:
        return RECENCY_UNKNOWN
    if published.tzinfo is None:
        published = published.replace(tzinfo=timezone.utc)
    age_days = (now - published).days
    if age_days < 0:
        return RECENCY_TIERS[0][1]
    for max_age, score in RECENCY_TIERS:
        if age_days <= max_age:
            return score
    return RECENCY_STALE


def diversity_score(candidate: Candidate, predecessors: Iterable[Candidate]) -> float:
    same_type = sum(1 for other in predecessors if other.type is candidate.type)
    return _clamp(100.0 - same_type * SAME_TYPE_PENALTY)


def score_breakdown(
    candidate: Candidate,
    intent: EnrichedIntent,
    predecessors: Iterable[Candidate],
    now: datetime,
    weights: RankingWeights | None = None,
) -> ScoreBreakdown:
    weights = weights or RankingWeights()
    relevance = relevance_score(candidate, intent)
    credibility = credibility_score(candidate)
    recency = recency_score(candidate, now)
    diversity = diversity_score(candidate, predecessors)
    overall = (
        relevance * weights.relevance
        + credibility * weights.credibility
        + recency * weights.recency
        + diversity * weights.diversity
    )
    return ScoreBreakdown(relevance, credibility, recency, diversity, round(_clamp(overall), 2))


def score_candidates(
    candidates: list[Candidate],
    intent: EnrichedIntent,
    now: datetime | None = None,
    weights: RankingWeights | None = None,
) -> list[Candidate]:
    """Assign scores greedily so each pick's diversity sees the picks before it.

    The returned list keeps the input order; only ``score`` changes.
    """

    now = now or datetime.now(timezone.utc)
    remaining = list(range(len(candidates)))
    picked: list[Candidate] = []
    scores: dict[int, float] = {}
    while remaining:
        best_index, best_score = remaining[0], -1.0
        for index in remaining:
            overall = score_breakdown(candidates[index], intent, picked, now, weights).overall
            if overall > best_score:
                best_index, best_score = index, overall
        remaining.remove(best_index)
        picked.append(candidates[best_index])
        scores[best_index] = best_score
    return [candidate.evolve(score=scores[index]) for index, candidate in enumerate(candidates)]


__all__ = [
    "ScoreBreakdown",
    "credibility_score",
    "diversity_score",
    "normalize_text",
    "recency_score",
    "relevance_score",
    "score_breakdown",
    "score_candidates",
]
