"""Checkpoint store: one atomic JSON document per pipeline stage."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from ..errors import NotFoundError, SchemaError
from ..identifiers import ensure_safe_id
from ..schemas.migrations import MigrationRegistry, default_registry
from ..schemas.payloads import STAGE_PAYLOADS
from ..schemas.stage import Checkpoint, StageMetadata, is_stage_id, parse_stage_id
from ..schemas.versions import SCHEMA_VERSIONS, read_version
from .atomic import atomic_write_json, read_json

RUNS_DIRNAME = "runs"


def _to_payload(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True, exclude_none=True)
    return data


class CheckpointStore:
    """Persist and reload stage outputs under ``<sessions>/<session>/runs/<run>/``."""

    def __init__(
        self,
        sessions_dir: Path,
        migrations: MigrationRegistry | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.sessions_dir = Path(sessions_dir)
        self.migrations = migrations or default_registry
        self.logger = logger or structlog.get_logger("trip_curator.checkpoints")

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------
    def run_dir(self, session_id: str, run_id: str) -> Path:
        ensure_safe_id(session_id, "session")
        ensure_safe_id(run_id, "run")
        return self.sessions_dir / session_id / RUNS_DIRNAME / run_id

    def path_for(self, session_id: str, run_id: str, stage_id: str) -> Path:
        parse_stage_id(stage_id)
        return self.run_dir(session_id, run_id) / f"{stage_id}.json"

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------
    def save(
        self,
        session_id: str,
        run_id: str,
        stage_id: str,
        data: Any,
        *,
        upstream_stage: str | None = None,
        config: dict[str, Any] | None = None,
        degraded: str | None = None,
    ) -> Path:
        number, name = parse_stage_id(stage_id)
        path = self.path_for(session_id, run_id, stage_id)
        meta = StageMetadata(
            stage_id=stage_id,
            stage_number=number,
            stage_name=name,
            session_id=session_id,
            run_id=run_id,
            upstream_stage=upstream_stage,
            config=config,
            degraded=degraded,
        )
        document = {"_meta": meta.to_document(), "data": _to_payload(data)}
        atomic_write_json(path, document)
        self.logger.debug("checkpoint_saved", session_id=session_id, run_id=run_id, stage_id=stage_id)
        return path

    def load(self, session_id: str, run_id: str, stage_id: str, *, typed: bool = False) -> Checkpoint:
        """Load a checkpoint, migrating old envelopes and optionally validating the payload."""

        _, name = parse_stage_id(stage_id)
        path = self.path_for(session_id, run_id, stage_id)
        if not path.exists():
            raise NotFoundError(f"Checkpoint {stage_id} not found for run {session_id}/{run_id}")
        document = read_json(path)
        if not isinstance(document, dict) or not isinstance(document.get("_meta"), dict) or "data" not in document:
            raise SchemaError(f"Checkpoint {path} is missing its _meta/data envelope")

        meta_doc = document["_meta"]
        data = document["data"]
        version = read_version(meta_doc)
        if version != SCHEMA_VERSIONS["stage"]:
            migrated = self.migrations.migrate(
                "stage", {"schemaVersion": version, "_meta": meta_doc, "data": data}
            )
            meta_doc = {**migrated["_meta"], "schemaVersion": migrated["schemaVersion"]}
            data = migrated["data"]

        try:
            meta = StageMetadata.model_validate(meta_doc)
        except ValidationError as exc:
            raise SchemaError(f"Invalid checkpoint metadata in {path}: {exc}") from exc
        if meta.stage_id != stage_id:
            raise SchemaError(f"Checkpoint {path} declares stage {meta.stage_id}, expected {stage_id}")

        if typed:
            model = STAGE_PAYLOADS.get(name)
            if model is None:
                raise SchemaError(f"No payload schema registered for stage {name!r}")
            try:
                data = model.model_validate(data)
            except ValidationError as exc:
                raise SchemaError(f"Checkpoint {stage_id} failed validation: {exc}") from exc
        return Checkpoint(meta=meta, data=data)

    def exists(self, session_id: str, run_id: str, stage_id: str) -> bool:
        return self.path_for(session_id, run_id, stage_id).exists()

    def list(self, session_id: str, run_id: str) -> list[str]:
        """Stage ids present for the run, ordered by numeric stage prefix."""

        run_dir = self.run_dir(session_id, run_id)
        if not run_dir.exists():
            return []
        stage_ids = [
            path.stem for path in run_dir.glob("*.json") if path.is_file() and is_stage_id(path.stem)
        ]
        return sorted(stage_ids, key=lambda stage_id: (parse_stage_id(stage_id)[0], stage_id))

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------
    def delete(self, session_id: str, run_id: str, stage_id: str) -> bool:
        path = self.path_for(session_id, run_id, stage_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def invalidate_from(self, session_id: str, run_id: str, stage_number: int) -> list[str]:
        """Delete every checkpoint numbered ``stage_number`` or later."""

        removed = [
            stage_id
            for stage_id in self.list(session_id, run_id)
            if parse_stage_id(stage_id)[0] >= stage_number
        ]
        for stage_id in removed:
            self.delete(session_id, run_id, stage_id)
        if removed:
            self.logger.info(
                "checkpoints_invalidated",
                session_id=session_id,
                run_id=run_id,
                from_stage=stage_number,
                stages=removed,
            )
        return removed


__all__ = ["CheckpointStore", "RUNS_DIRNAME"]
