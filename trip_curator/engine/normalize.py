"""Turn raw provider results into candidates with stable ids."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

import structlog
from pydantic import ValidationError

from ..identifiers import content_hash
from ..schemas.candidate import Candidate
from ..schemas.common import CandidateConfidence, CandidateOrigin, CandidateType, utc_now
from ..schemas.payloads import NormalizedPayload, NormalizeStats
from ..schemas.worker import WorkerOutput, WorkerStatus
from .dedup import normalize_content

logger = structlog.get_logger("trip_curator.normalize")

DEFAULT_TYPES = {
    CandidateOrigin.PLACES: CandidateType.PLACE,
    CandidateOrigin.VIDEO: CandidateType.EXPERIENCE,
    CandidateOrigin.WEB: CandidateType.PLACE,
}
_METADATA_KEYS = (
    "placeId",
    "videoId",
    "channelName",
    "viewCount",
    "publishedAt",
    "rating",
    "priceLevel",
    "timestampSeconds",
)


def generate_candidate_id(origin: CandidateOrigin, title: str, location: str | None) -> str:
    return f"{origin.value}-{content_hash(normalize_content(title), normalize_content(location), length=8)}"


def ensure_unique_ids(candidates: Iterable[Candidate]) -> list[Candidate]:
    """Suffix repeated ids with ``-2``, ``-3`` … in input order."""

    seen: dict[str, int] = {}
    unique: list[Candidate] = []
    for candidate in candidates:
        base = candidate.candidate_id
        if base not in seen:
            seen[base] = 1
            unique.append(candidate)
            continue
        seen[base] += 1
        new_id = f"{base}-{seen[base]}"
        while new_id in seen:
            seen[base] += 1
            new_id = f"{base}-{seen[base]}"
        seen[new_id] = 1
        unique.append(candidate.evolve(candidate_id=new_id))
    return unique


def _source_refs(raw: dict[str, Any], retrieved_at: datetime) -> list[dict[str, Any]]:
    refs = raw.get("sourceRefs") or raw.get("source_refs")
    if isinstance(refs, list) and refs:
        normalized = []
        for ref in refs:
            if isinstance(ref, str):
                normalized.append({"url": ref, "retrievedAt": retrieved_at})
            elif isinstance(ref, dict):
                normalized.append({"retrievedAt": retrieved_at, **ref})
        return normalized
    url = raw.get("url")
    if not url and raw.get("videoId"):
        url = f"https://www.youtube.com/watch?v={raw['videoId']}"
    if not url:
        return []
    return [
        {
            "url": url,
            "publisher": raw.get("publisher"),
            "retrievedAt": retrieved_at,
            "snippet": raw.get("snippet"),
        }
    ]


def _coordinates(raw: dict[str, Any]) -> dict[str, float] | None:
    coords = raw.get("coordinates")
    if isinstance(coords, dict) and "lat" in coords and "lng" in coords:
        return {"lat": coords["lat"], "lng": coords["lng"]}
    if "lat" in raw and "lng" in raw:
        return {"lat": raw["lat"], "lng": raw["lng"]}
    return None


def _metadata(raw: dict[str, Any]) -> dict[str, Any] | None:
    supplied = raw.get("metadata")
    metadata = dict(supplied) if isinstance(supplied, dict) else {}
    for key in _METADATA_KEYS:
        if key in raw and key not in metadata:
            metadata[key] = raw[key]
    return metadata or None


def _confidence(origin: CandidateOrigin, ref_count: int) -> CandidateConfidence:
    if origin is CandidateOrigin.PLACES:
        return CandidateConfidence.VERIFIED
    if origin is CandidateOrigin.VIDEO:
        return CandidateConfidence.PROVISIONAL
    if ref_count >= 2:
        return CandidateConfidence.VERIFIED
    return CandidateConfidence.PROVISIONAL


def _default_score(origin: CandidateOrigin, metadata: dict[str, Any] | None) -> float:
    metadata = metadata or {}
    if origin is CandidateOrigin.PLACES:
        score = 60.0
        rating = metadata.get("rating")
        if isinstance(rating, (int, float)):
            if rating >= 4.5:
                score += 20
            elif rating >= 4.0:
                score += 10
            elif rating >= 3.5:
                score += 5
            elif rating < 3.0:
                score -= 10
        return score
    if origin is CandidateOrigin.VIDEO:
        score = 30.0
        views = metadata.get("viewCount")
        if isinstance(views, int):
            if views >= 1_000_000:
                score += 15
            elif views >= 100_000:
                score += 10
            elif views >= 10_000:
                score += 5
        return score
    return 50.0


def normalize_result(raw: dict[str, Any], origin: CandidateOrigin, retrieved_at: datetime | None = None) -> Candidate:
    """Build one candidate from a raw provider result. Raises ``ValueError`` when unusable."""

    retrieved_at = retrieved_at or utc_now()
    title = str(raw.get("title") or raw.get("name") or "").strip()
    if not title:
        raise ValueError("raw result has no title")
    location = raw.get("locationText") or raw.get("location")
    if not isinstance(location, str):
        location = None
    refs = _source_refs(raw, retrieved_at)
    metadata = _metadata(raw)
    raw_type = raw.get("type")
    candidate_type = (
        raw_type
        if isinstance(raw_type, str) and raw_type in {t.value for t in CandidateType}
        else DEFAULT_TYPES[origin]
    )
    raw_tags = raw.get("tags")
    if not isinstance(raw_tags, list):
        raw_tags = []
    tags = list(dict.fromkeys(str(tag).strip().lower() for tag in raw_tags if str(tag).strip()))
    if origin is CandidateOrigin.VIDEO and "video" not in tags:
        tags.insert(0, "video")
    score = raw.get("score")
    return Candidate(
        candidate_id=generate_candidate_id(origin, title, location),
        type=candidate_type,
        title=title,
        summary=str(raw.get("summary") or raw.get("description") or ""),
        location_text=location,
        coordinates=_coordinates(raw),
        tags=tags,
        origin=origin,
        source_refs=refs,
        confidence=_confidence(origin, len(refs)),
        score=score if isinstance(score, (int, float)) else _default_score(origin, metadata),
        metadata=metadata,
    )


def normalize_outputs(outputs: list[WorkerOutput], retrieved_at: datetime | None = None) -> NormalizedPayload:
    candidates: list[Candidate] = []
    skipped_outputs = 0
    dropped = 0
    raw_total = 0
    for output in outputs:
        if output.status in (WorkerStatus.ERROR, WorkerStatus.SKIPPED):
            skipped_outputs += 1
            continue
        for raw in output.results:
            raw_total += 1
            try:
                candidates.append(normalize_result(raw, output.origin, retrieved_at))
            except (ValidationError, ValueError) as exc:
                dropped += 1
                logger.warning(
                    "result_dropped",
                    worker_id=output.worker_id,
                    title=str(raw.get("title", ""))[:80],
                    error=str(exc).splitlines()[0],
                )
    unique = ensure_unique_ids(candidates)
    by_origin: dict[str, int] = {}
    for candidate in unique:
        by_origin[candidate.origin.value] = by_origin.get(candidate.origin.value, 0) + 1
    stats = NormalizeStats(
        input_count=raw_total,
        output_count=len(unique),
        skipped_outputs=skipped_outputs,
        dropped_results=dropped,
        by_origin=by_origin,
    )
    return NormalizedPayload(candidates=unique, stats=stats)


__all__ = ["ensure_unique_ids", "generate_candidate_id", "normalize_outputs", "normalize_result"]
