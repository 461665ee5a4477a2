"""Candidate records produced by providers and refined by later stages."""

from __future__ import annotations

from datetime import datetime

from pydantic import ConfigDict, Field, field_validator, model_validator

from .common import (
    CandidateConfidence,
    CandidateOrigin,
    CandidateType,
    Coordinates,
    Record,
    SourceRef,
    ValidationStatus,
    utc_now,
)


class CandidateMetadata(Record):
    """Provider specific details; unknown keys are preserved."""

    model_config = ConfigDict(extra="allow")

    place_id: str | None = None
    video_id: str | None = None
    channel_name: str | None = None
    view_count: int | None = Field(default=None, ge=0)
    published_at: datetime | None = None
    rating: float | None = Field(default=None, ge=1, le=5)
    price_level: int | None = Field(default=None, ge=0, le=4)
    timestamp_seconds: int | None = Field(default=None, ge=0)


class CandidateValidation(Record):
    """Outcome of one verification pass. Re-validation produces a new value."""

    status: ValidationStatus
    notes: str = ""
    sources: list[str] = Field(default_factory=list)
    checked_at: datetime = Field(default_factory=utc_now)


class Candidate(Record):
    candidate_id: str = Field(min_length=1)
    type: CandidateType
    title: str = Field(min_length=1)
    summary: str = ""
    location_text: str | None = None
    coordinates: Coordinates | None = None
    tags: list[str] = Field(default_factory=list)
    origin: CandidateOrigin
    source_refs: list[SourceRef] = Field(min_length=1)
    confidence: CandidateConfidence = CandidateConfidence.PROVISIONAL
    validation: CandidateValidation | None = None
    score: float = Field(default=0, ge=0, le=100)
    cluster_id: str | None = None
    metadata: CandidateMetadata | None = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("title cannot be blank")
        return stripped

    @model_validator(mode="after")
    def _confidence_matches_validation(self) -> "Candidate":
        conflicting = (
            self.validation is not None
            and self.validation.status is ValidationStatus.CONFLICT_DETECTED
        )
        if conflicting and self.confidence in (CandidateConfidence.VERIFIED, CandidateConfidence.HIGH):
            raise ValueError(
                f"confidence {self.confidence.value!r} contradicts a conflict_detected validation"
            )
        return self

    @property
    def source_urls(self) -> list[str]:
        return [ref.url for ref in self.source_refs]


__all__ = ["Candidate", "CandidateMetadata", "CandidateValidation"]
