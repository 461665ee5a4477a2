"""Stable ranking, score distribution and shortlist selection."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ..schemas.candidate import Candidate
from ..schemas.payloads import RankStats, ScoreDistribution

HIGH_SCORE = 80
MEDIUM_SCORE = 50


@dataclass(slots=True)
class RankResult:
    candidates: list[Candidate]
    stats: RankStats


def sort_by_score(candidates: list[Candidate]) -> list[Candidate]:
    """Score descending; equal scores keep their input order."""

    return sorted(candidates, key=lambda candidate: -candidate.score)


def score_distribution(candidates: list[Candidate]) -> ScoreDistribution:
    high = sum(1 for candidate in candidates if candidate.score >= HIGH_SCORE)
    medium = sum(1 for candidate in candidates if MEDIUM_SCORE <= candidate.score < HIGH_SCORE)
    return ScoreDistribution(high=high, medium=medium, low=len(candidates) - high - medium)


def average_score(candidates: list[Candidate]) -> float:
    if not candidates:
        return 0.0
    mean = Decimal(str(sum(candidate.score for candidate in candidates) / len(candidates)))
    return float(mean.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def rank_stats(candidates: list[Candidate], input_count: int | None = None) -> RankStats:
    return RankStats(
        input_count=len(candidates) if input_count is None else input_count,
        output_count=len(candidates),
        average_score=average_score(candidates),
        score_distribution=score_distribution(candidates),
    )


def rank_candidates(candidates: list[Candidate]) -> RankResult:
    """Sort a candidate set and compute its statistics. Pure."""

    ranked = sort_by_score(candidates)
    return RankResult(candidates=ranked, stats=rank_stats(ranked, input_count=len(candidates)))


def select_top_candidates(candidates: list[Candidate], top_n: int, max_per_type: int) -> list[Candidate]:
    """Take the best ``top_n`` while capping any single type at ``max_per_type``.

    Capped candidates only fill remaining room once every type had its turn.
    """

    chosen: list[Candidate] = []
    deferred: list[Candidate] = []
    per_type: dict[str, int] = {}
    for candidate in sort_by_score(candidates):
        if len(chosen) >= top_n:
            break
        count = per_type.get(candidate.type.value, 0)
        if count >= max_per_type:
            deferred.append(candidate)
            continue
        chosen.append(candidate)
        per_type[candidate.type.value] = count + 1
    for candidate in deferred:
        if len(chosen) >= top_n:
            break
        chosen.append(candidate)
    return sort_by_score(chosen)


__all__ = [
    "HIGH_SCORE",
    "MEDIUM_SCORE",
    "RankResult",
    "average_score",
    "rank_candidates",
    "rank_stats",
    "score_distribution",
    "select_top_candidates",
]
