"""Shared base model, enums and value objects for persisted documents."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Record(BaseModel):
    """Immutable value record persisted with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def evolve(self, **changes: Any) -> "Record":
        """Return a validated copy with ``changes`` applied."""

        values = {name: getattr(self, name) for name in type(self).model_fields}
        values.update(changes)
        return type(self).model_validate(values)


class CandidateType(str, Enum):
    PLACE = "place"
    ACTIVITY = "activity"
    NEIGHBORHOOD = "neighborhood"
    DAYTRIP = "daytrip"
    EXPERIENCE = "experience"
    FOOD = "food"


class CandidateOrigin(str, Enum):
    """Provider family a candidate was discovered by."""

    WEB = "web"
    PLACES = "places"
    VIDEO = "video"


class CandidateConfidence(str, Enum):
    NEEDS_VERIFICATION = "needs_verification"
    PROVISIONAL = "provisional"
    VERIFIED = "verified"
    HIGH = "high"


class ValidationStatus(str, Enum):
    VERIFIED = "verified"
    PARTIALLY_VERIFIED = "partially_verified"
    CONFLICT_DETECTED = "conflict_detected"
    UNVERIFIED = "unverified"
    NOT_APPLICABLE = "not_applicable"


class TriageStatus(str, Enum):
    MUST = "must"
    RESEARCH = "research"
    MAYBE = "maybe"


class Coordinates(Record):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class SourceRef(Record):
    """Provenance of a candidate claim."""

    url: str = Field(min_length=1)
    publisher: str | None = None
    retrieved_at: datetime = Field(default_factory=utc_now)
    snippet: str | None = None


class DateRange(Record):
    start: date
    end: date

    @field_validator("end")
    @classmethod
    def _end_after_start(cls, value: date, info) -> date:
        start = info.data.get("start")
        if start is not None and value < start:
            raise ValueError("dateRange end must not be before start")
        return value


__all__ = [
    "CandidateConfidence",
    "CandidateOrigin",
    "CandidateType",
    "Coordinates",
    "DateRange",
    "Record",
    "SourceRef",
    "TriageStatus",
    "ValidationStatus",
    "utc_now",
]
