"""Crash-safe JSON file helpers."""

from __future__ import annotations

import hashlib
import json
import os
import time
from pathlib import Path
from typing import Any

from ..errors import NotFoundError, SchemaError


def atomic_write_json(path: Path, payload: Any) -> Path:
    """Write ``payload`` to a temp file, fsync it, then rename over ``path``.

    Readers either see the previous file or the complete new one, never a
    truncated document.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.tmp.{time.time_ns()}")
    try:
        with tmp_path.open("w", encoding="utf-8") as stream:
            json.dump(payload, stream, indent=2, ensure_ascii=False)
            stream.write("\n")
            stream.flush()
            os.fsync(stream.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return path


def read_json(path: Path) -> Any:
    if not path.exists():
        raise NotFoundError(f"File not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise SchemaError(f"Invalid JSON in {path}: {exc}") from exc


def file_digest(path: Path) -> tuple[str, int]:
    """Return ``(sha256 hex digest, size in bytes)``."""

    digest = hashlib.sha256()
    size = 0
    with path.open("rb") as stream:
        for chunk in iter(lambda: stream.read(65536), b""):
            digest.update(chunk)
            size += len(chunk)
    return digest.hexdigest(), size


__all__ = ["atomic_write_json", "file_digest", "read_json"]
