"""Session persistence with collision-safe id reservation."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from ..errors import ConflictError, NotFoundError, SchemaError
from ..identifiers import ensure_safe_id, generate_run_id, generate_session_id
from ..schemas.common import DateRange, utc_now
from ..schemas.migrations import MigrationRegistry, default_registry
from ..schemas.session import Flexibility, Session
from .atomic import atomic_write_json, read_json
from .checkpoints import RUNS_DIRNAME

SESSION_FILENAME = "session.json"


class SessionRepository:
    """Create, load and archive sessions stored as ``<sessions>/<id>/session.json``."""

    def __init__(
        self,
        sessions_dir: Path,
        migrations: MigrationRegistry | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.sessions_dir = Path(sessions_dir)
        self.migrations = migrations or default_registry
        self.logger = logger or structlog.get_logger("trip_curator.sessions")

    def session_dir(self, session_id: str) -> Path:
        return self.sessions_dir / ensure_safe_id(session_id, "session")

    def session_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / SESSION_FILENAME

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    def create(
        self,
        *,
        destinations: list[str],
        date_range: DateRange | dict[str, Any],
        interests: list[str],
        flexibility: Flexibility | dict[str, Any] | None = None,
        constraints: dict[str, Any] | None = None,
        title: str | None = None,
        prompt: str | None = None,
        session_id: str | None = None,
        now: datetime | None = None,
    ) -> Session:
        """Persist a new session.

        Generated ids get ``-2``, ``-3`` … on collision. An explicit
        ``session_id`` that already exists raises ``ConflictError``.
        """

        if session_id is not None:
            reserved = self._reserve_exact(session_id)
        else:
            reserved = self._reserve(generate_session_id(destinations, interests, prompt, now=now))
        try:
            session = Session(
                session_id=reserved,
                title=title or ", ".join(destinations),
                destinations=destinations,
                date_range=date_range,
                flexibility=flexibility or Flexibility(),
                interests=interests,
                constraints=constraints,
            )
        except ValidationError:
            self.session_dir(reserved).rmdir()
            raise
        self.save(session)
        self.logger.info("session_created", session_id=reserved)
        return session

    def _reserve_exact(self, session_id: str) -> str:
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        try:
            self.session_dir(session_id).mkdir()
        except FileExistsError as exc:
            raise ConflictError(f"Session already exists: {session_id}") from exc
        return session_id

    def _reserve(self, base_id: str) -> str:
        # mkdir is atomic, so two creators can never claim the same id
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        suffix = 1
        candidate = base_id
        while True:
            try:
                self.session_dir(candidate).mkdir()
                return candidate
            except FileExistsError:
                suffix += 1
                candidate = f"{base_id}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def save(self, session: Session) -> Path:
        return atomic_write_json(self.session_path(session.session_id), session.to_document())

    def load(self, session_id: str) -> Session:
        path = self.session_path(session_id)
        if not path.exists():
            raise NotFoundError(f"Session not found: {session_id}")
        document = read_json(path)
        if not isinstance(document, dict):
            raise SchemaError(f"Session document must be a mapping: {path}")
        document = self.migrations.migrate("session", document)
        try:
            return Session.model_validate(document)
        except ValidationError as exc:
            raise SchemaError(f"Invalid session document {path}: {exc}") from exc

    def exists(self, session_id: str) -> bool:
        return self.session_path(session_id).exists()

    def list_ids(self) -> list[str]:
        if not self.sessions_dir.exists():
            return []
        return sorted(p.name for p in self.sessions_dir.iterdir() if (p / SESSION_FILENAME).exists())

    def list(self, include_archived: bool = False) -> list[Session]:
        sessions = [self.load(session_id) for session_id in self.list_ids()]
        if not include_archived:
            sessions = [session for session in sessions if not session.is_archived]
        return sorted(sessions, key=lambda session: session.created_at, reverse=True)

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------
    def archive(self, session_id: str, now: datetime | None = None) -> Session:
        session = self.load(session_id)
        if session.is_archived:
            return session
        updated = session.evolve(archived_at=now or utc_now())
        self.save(updated)
        return updated

    def unarchive(self, session_id: str) -> Session:
        session = self.load(session_id)
        if not session.is_archived:
            return session
        updated = session.evolve(archived_at=None)
        self.save(updated)
        return updated

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------
    def runs_dir(self, session_id: str) -> Path:
        return self.session_dir(session_id) / RUNS_DIRNAME

    def list_runs(self, session_id: str) -> list[str]:
        runs_dir = self.runs_dir(session_id)
        if not runs_dir.exists():
            return []
        return sorted(p.name for p in runs_dir.iterdir() if p.is_dir())

    def allocate_run_id(self, session_id: str, mode: str | None = None, now: datetime | None = None) -> str:
        """Reserve a timestamp run id that is unique within the session."""

        base_id = generate_run_id(mode, now=now)
        runs_dir = self.runs_dir(session_id)
        runs_dir.mkdir(parents=True, exist_ok=True)
        suffix = 1
        candidate = base_id
        while True:
            try:
                (runs_dir / candidate).mkdir()
                return candidate
            except FileExistsError:
                suffix += 1
                candidate = f"{base_id}-{suffix}"

    def record_run(self, session_id: str, run_id: str) -> Session:
        session = self.load(session_id)
        updated = session.evolve(last_run_id=run_id)
        self.save(updated)
        return updated


__all__ = ["SESSION_FILENAME", "SessionRepository"]
