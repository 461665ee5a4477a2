"""Triage state persistence, one document per session."""

from __future__ import annotations

from pathlib import Path
from threading import Lock
from typing import Callable

from pydantic import ValidationError

from ..errors import SchemaError
from ..identifiers import ensure_safe_id
from ..schemas.migrations import MigrationRegistry, default_registry
from ..schemas.triage import TriageState
from .atomic import atomic_write_json, read_json

TRIAGE_FILENAME = "triage.json"


class TriageRepository:
    def __init__(self, sessions_dir: Path, migrations: MigrationRegistry | None = None) -> None:
        self.sessions_dir = Path(sessions_dir)
        self.migrations = migrations or default_registry
        self._lock = Lock()

    def path_for(self, session_id: str) -> Path:
        return self.sessions_dir / ensure_safe_id(session_id, "session") / TRIAGE_FILENAME

    def load(self, session_id: str) -> TriageState:
        """Return the stored state, or an empty one when nothing was triaged yet."""

        path = self.path_for(session_id)
        if not path.exists():
            return TriageState(session_id=session_id)
        document = read_json(path)
        if not isinstance(document, dict):
            raise SchemaError(f"Triage document must be a mapping: {path}")
        document = self.migrations.migrate("triage", document)
        try:
            state = TriageState.model_validate(document)
        except ValidationError as exc:
            raise SchemaError(f"Invalid triage document {path}: {exc}") from exc
        if state.session_id != session_id:
            raise SchemaError(f"Triage document {path} belongs to session {state.session_id}")
        return state

    def save(self, state: TriageState) -> Path:
        with self._lock:
            return atomic_write_json(self.path_for(state.session_id), state.to_document())

    def update(self, session_id: str, mutate: Callable[[TriageState], TriageState]) -> TriageState:
        """Load, apply ``mutate`` and save while holding the repository lock."""

        with self._lock:
            state = mutate(self.load(session_id))
            atomic_write_json(self.path_for(session_id), state.to_document())
        return state


__all__ = ["TRIAGE_FILENAME", "TriageRepository"]
