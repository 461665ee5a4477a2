"""Session documents: long-lived travel query contexts."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import Field, model_validator

from .common import DateRange, Record, utc_now
from .versions import SCHEMA_VERSIONS


class Flexibility(Record):
    """How strictly the date range should be honoured."""

    type: Literal["none", "plusMinusDays", "monthOnly"] = "none"
    days: int | None = Field(default=None, ge=1, le=30)
    month: str | None = Field(default=None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")

    @model_validator(mode="after")
    def _validate_variant(self) -> "Flexibility":
        if self.type == "plusMinusDays" and self.days is None:
            raise ValueError("plusMinusDays flexibility requires days")
        if self.type == "monthOnly" and self.month is None:
            raise ValueError("monthOnly flexibility requires month (YYYY-MM)")
        return self


class Session(Record):
    schema_version: int = SCHEMA_VERSIONS["session"]
    session_id: str = Field(min_length=1)
    title: str
    destinations: list[str] = Field(min_length=1)
    date_range: DateRange
    flexibility: Flexibility = Field(default_factory=Flexibility)
    interests: list[str] = Field(min_length=1)
    constraints: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=utc_now)
    archived_at: datetime | None = None
    last_run_id: str | None = None

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None


__all__ = ["Flexibility", "Session"]
