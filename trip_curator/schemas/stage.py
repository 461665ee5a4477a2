"""Stage identifiers and the checkpoint envelope written for every stage."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from pydantic import Field

from ..errors import InvalidConfigError
from .common import Record, utc_now
from .versions import SCHEMA_VERSIONS

STAGE_ID_PATTERN = re.compile(r"^\d{2}_[a-z_]+$")


def parse_stage_id(stage_id: str) -> tuple[int, str]:
    """Split ``NN_name`` into ``(NN, name)``; reject anything else."""

    if not isinstance(stage_id, str) or not STAGE_ID_PATTERN.match(stage_id):
        raise InvalidConfigError(f"Invalid stage id {stage_id!r}; expected NN_name")
    number, name = stage_id.split("_", 1)
    return int(number), name


def make_stage_id(number: int, name: str) -> str:
    stage_id = f"{number:02d}_{name}"
    parse_stage_id(stage_id)
    return stage_id


def is_stage_id(value: str) -> bool:
    return bool(STAGE_ID_PATTERN.match(value))


class StageMetadata(Record):
    stage_id: str
    stage_number: int = Field(ge=0, le=99)
    stage_name: str
    schema_version: int = SCHEMA_VERSIONS["stage"]
    session_id: str
    run_id: str
    created_at: datetime = Field(default_factory=utc_now)
    upstream_stage: str | None = None
    config: dict[str, Any] | None = None
    degraded: str | None = None


class Checkpoint(Record):
    """``{"_meta": ..., "data": ...}`` document persisted per stage."""

    meta: StageMetadata = Field(alias="_meta")
    data: Any


__all__ = [
    "Checkpoint",
    "STAGE_ID_PATTERN",
    "StageMetadata",
    "is_stage_id",
    "make_stage_id",
    "parse_stage_id",
]
