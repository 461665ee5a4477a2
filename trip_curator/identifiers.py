"""Deterministic identifiers for sessions, runs and candidates."""

from __future__ import annotations

import hashlib
import re
import unicodedata
from datetime import datetime
from typing import Iterable

from .errors import InvalidConfigError

STOPWORDS = frozenset({"the", "a", "an", "trip", "plan", "to", "in", "for", "my", "our"})
MAX_SLUG_LENGTH = 50
SAFE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_PROMPT_SPLIT = re.compile(r"[,;:\-\s]+")


def _ascii_fold(text: str) -> str:
    return unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")


def generate_slug(tokens: Iterable[str]) -> str:
    """Lower-case, hyphenated slug without stop-words, cut at a word boundary."""

    words = _NON_ALNUM.split(_ascii_fold(" ".join(tokens)).lower())
    slug = "-".join(word for word in words if word and word not in STOPWORDS)
    if len(slug) > MAX_SLUG_LENGTH:
        slug = slug[:MAX_SLUG_LENGTH]
        cut = slug.rfind("-")
        if cut > 0:
            slug = slug[:cut]
        slug = slug.strip("-")
    return slug or "session"


def prompt_tokens(prompt: str | None) -> list[str]:
    if not prompt:
        return []
    return [token for token in (part.strip() for part in _PROMPT_SPLIT.split(prompt)) if len(token) > 1]


def generate_session_id(
    destinations: Iterable[str],
    interests: Iterable[str] = (),
    prompt: str | None = None,
    now: datetime | None = None,
) -> str:
    """``YYYYMMDD-<slug>`` from destinations first, then interests, then prompt words."""

    moment = now or datetime.now()
    tokens = [*destinations, *interests, *prompt_tokens(prompt)]
    return f"{moment:%Y%m%d}-{generate_slug(tokens)}"


def generate_run_id(mode: str | None = None, now: datetime | None = None) -> str:
    moment = now or datetime.now()
    run_id = f"{moment:%Y%m%d-%H%M%S}"
    if mode:
        run_id = f"{run_id}-{generate_slug([mode])}"
    return run_id


def ensure_safe_id(value: str, kind: str) -> str:
    """Reject identifiers that could escape the storage directory."""

    if not isinstance(value, str) or not SAFE_ID_PATTERN.match(value):
        raise InvalidConfigError(f"Invalid {kind} id: {value!r}")
    return value


def content_hash(*parts: str | None, length: int = 16) -> str:
    joined = "|".join(part or "" for part in parts)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:length]


__all__ = [
    "MAX_SLUG_LENGTH",
    "STOPWORDS",
    "content_hash",
    "ensure_safe_id",
    "generate_run_id",
    "generate_session_id",
    "generate_slug",
    "prompt_tokens",
]
