"""Manifest persistence and checkpoint integrity checks."""

from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError

from ..errors import NotFoundError, SchemaError
from ..schemas.manifest import ManifestStage, RunManifest
from ..schemas.migrations import MigrationRegistry, default_registry
from ..schemas.versions import SCHEMA_VERSIONS, read_version
from ..storage.atomic import atomic_write_json, file_digest, read_json
from ..storage.checkpoints import CheckpointStore

MANIFEST_FILENAME = "manifest.json"
COST_FILENAME = "cost.json"


def manifest_path(store: CheckpointStore, session_id: str, run_id: str) -> Path:
    return store.run_dir(session_id, run_id) / MANIFEST_FILENAME


def build_manifest_stage(path: Path, upstream_stage: str | None = None) -> ManifestStage:
    digest, size = file_digest(path)
    return ManifestStage(
        stage_id=path.stem,
        filename=path.name,
        sha256=digest,
        size_bytes=size,
        upstream_stage=upstream_stage,
    )


def collect_stages(store: CheckpointStore, session_id: str, run_id: str) -> list[ManifestStage]:
    """Hash every checkpoint currently on disk for the run, in stage order."""

    stages: list[ManifestStage] = []
    previous: str | None = None
    for stage_id in store.list(session_id, run_id):
        stages.append(build_manifest_stage(store.path_for(session_id, run_id, stage_id), previous))
        previous = stage_id
    return stages


def save_manifest(store: CheckpointStore, manifest: RunManifest) -> Path:
    return atomic_write_json(manifest_path(store, manifest.session_id, manifest.run_id), manifest.to_document())


def load_manifest(
    store: CheckpointStore,
    session_id: str,
    run_id: str,
    migrations: MigrationRegistry | None = None,
) -> RunManifest:
    path = manifest_path(store, session_id, run_id)
    if not path.exists():
        raise NotFoundError(f"No manifest for run {session_id}/{run_id}")
    document = read_json(path)
    if not isinstance(document, dict):
        raise SchemaError(f"Manifest {path} is not a JSON object")
    if read_version(document) != SCHEMA_VERSIONS["manifest"]:
        document = (migrations or default_registry).migrate("manifest", document)
    try:
        return RunManifest.model_validate(document)
    except ValidationError as exc:
        raise SchemaError(f"Invalid manifest {path}: {exc}") from exc


def verify_manifest(store: CheckpointStore, manifest: RunManifest) -> list[str]:
    """Stage ids whose checkpoint is missing or no longer matches its recorded digest."""

    mismatches: list[str] = []
    for entry in manifest.stages:
        path = store.path_for(manifest.session_id, manifest.run_id, entry.stage_id)
        if not path.exists():
            mismatches.append(entry.stage_id)
            continue
        digest, size = file_digest(path)
        if digest != entry.sha256 or size != entry.size_bytes:
            mismatches.append(entry.stage_id)
    return mismatches


__all__ = [
    "COST_FILENAME",
    "MANIFEST_FILENAME",
    "build_manifest_stage",
    "collect_stages",
    "load_manifest",
    "manifest_path",
    "save_manifest",
    "verify_manifest",
]
