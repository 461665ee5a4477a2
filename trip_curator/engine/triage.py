"""Human-in-the-loop triage of ranked candidates."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime
from typing import Callable, Iterable

from ..errors import InvalidConfigError
from ..schemas.candidate import Candidate
from ..schemas.common import TriageStatus, utc_now
from ..schemas.payloads import TriageCounts
from ..schemas.triage import TriageEntry, TriageState
from ..storage.triage import TriageRepository

_WHITESPACE = re.compile(r"\s+")


def _coerce_status(status: TriageStatus | str) -> TriageStatus:
    try:
        return TriageStatus(status)
    except ValueError as exc:
        raise InvalidConfigError(f"Unknown triage status: {status!r}") from exc


def count_entries(entries: list[TriageEntry]) -> TriageCounts:
    must = sum(1 for entry in entries if entry.status is TriageStatus.MUST)
    research = sum(1 for entry in entries if entry.status is TriageStatus.RESEARCH)
    maybe = sum(1 for entry in entries if entry.status is TriageStatus.MAYBE)
    return TriageCounts(must=must, research=research, maybe=maybe, total=len(entries))


# ----------------------------------------------------------------------
# Matching across runs
# ----------------------------------------------------------------------
def title_location_hash(title: str, location_text: str | None = None) -> str:
    """Key that survives candidate id changes: lower-cased, whitespace-collapsed title and location."""

    normalized_title = _WHITESPACE.sub(" ", title.lower().strip())
    normalized_location = _WHITESPACE.sub(" ", (location_text or "").lower().strip())
    return hashlib.sha256(f"{normalized_title}|{normalized_location}".encode("utf-8")).hexdigest()[:16]


def hash_candidate(candidate: Candidate) -> str:
    return title_location_hash(candidate.title, candidate.location_text)


def reconcile_triage(
    entries: Iterable[TriageEntry],
    candidates: Iterable[Candidate],
    previous: Iterable[Candidate] = (),
) -> dict[str, TriageEntry]:
    """Map current candidate ids to their triage entry.

    An exact id match wins. Otherwise an entry matches by title+location hash,
    taken from the entry's ``match_key`` or from the candidate that carried the
    entry's id in an earlier run. Each entry is claimed at most once.
    """

    entries = list(entries)
    by_id = {entry.candidate_id: entry for entry in entries}
    previous_hashes = {candidate.candidate_id: hash_candidate(candidate) for candidate in previous}
    by_hash: dict[str, TriageEntry] = {}
    for entry in entries:
        key = entry.match_key or previous_hashes.get(entry.candidate_id)
        if key is not None:
            by_hash.setdefault(key, entry)

    candidates = list(candidates)
    matched: dict[str, TriageEntry] = {}
    claimed: set[str] = set()
    for candidate in candidates:
        entry = by_id.get(candidate.candidate_id)
        if entry is not None:
            matched[candidate.candidate_id] = entry
            claimed.add(entry.candidate_id)
    for candidate in candidates:
        if candidate.candidate_id in matched:
            continue
        entry = by_hash.get(hash_candidate(candidate))
        if entry is not None and entry.candidate_id not in claimed:
            matched[candidate.candidate_id] = entry
            claimed.add(entry.candidate_id)
    return matched


class TriageManager:
    """One entry per candidate per session; every write is persisted atomically."""

    def __init__(
        self,
        repository: TriageRepository,
        session_id: str,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.session_id = session_id
        self._clock = clock

    def _load(self) -> TriageState:
        return self.repository.load(self.session_id)

    def _state(self, entries: list[TriageEntry]) -> TriageState:
        return TriageState(session_id=self.session_id, entries=entries, updated_at=self._clock())

    # ------------------------------------------------------------------
    def set_status(
        self,
        candidate_id: str,
        status: TriageStatus | str,
        notes: str | None = None,
        candidate: Candidate | None = None,
    ) -> TriageEntry:
        """Create or overwrite the entry for ``candidate_id`` (last write wins).

        Passing the ``candidate`` stores its title+location key so the choice
        follows the place into later runs even if its id changes.
        """

        entry = TriageEntry(
            candidate_id=candidate_id,
            status=_coerce_status(status),
            notes=notes,
            match_key=hash_candidate(candidate) if candidate is not None else None,
            updated_at=self._clock(),
        )

        def _apply(state: TriageState) -> TriageState:
            entries = [existing for existing in state.entries if existing.candidate_id != candidate_id]
            entries.append(entry)
            return self._state(entries)

        self.repository.update(self.session_id, _apply)
        return entry

    def get(self, candidate_id: str) -> TriageEntry | None:
        for entry in self._load().entries:
            if entry.candidate_id == candidate_id:
                return entry
        return None

    def remove(self, candidate_id: str) -> bool:
        removed = False

        def _apply(state: TriageState) -> TriageState:
            nonlocal removed
            remaining = [entry for entry in state.entries if entry.candidate_id != candidate_id]
            if len(remaining) == len(state.entries):
                return state
            removed = True
            return self._state(remaining)

        self.repository.update(self.session_id, _apply)
        return removed

    def entries(self) -> list[TriageEntry]:
        return list(self._load().entries)

    def list_by_status(self, status: TriageStatus | str) -> list[TriageEntry]:
        wanted = _coerce_status(status)
        return [entry for entry in self._load().entries if entry.status is wanted]

    def counts(self) -> TriageCounts:
        return count_entries(self._load().entries)

    def clear(self) -> TriageState:
        return self.repository.update(self.session_id, lambda state: self._state([]))


__all__ = [
    "TriageManager",
    "count_entries",
    "hash_candidate",
    "reconcile_triage",
    "title_location_hash",
]
