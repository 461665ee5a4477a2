"""Schema version registry for every persisted document type."""

from __future__ import annotations

from typing import Any, Literal

DocumentType = Literal[
    "enhancement",
    "session",
    "triage",
    "discoveryResults",
    "cost",
    "stage",
    "runConfig",
    "manifest",
    "candidate",
    "worker",
]

# Bump a version only on a breaking change and register a migration for it.
SCHEMA_VERSIONS: dict[str, int] = {
    "enhancement": 1,
    "session": 1,
    "triage": 1,
    "discoveryResults": 1,
    "cost": 1,
    "stage": 1,
    "runConfig": 1,
    "manifest": 1,
    "candidate": 1,
    "worker": 1,
}


def current_version(document_type: str) -> int:
    try:
        return SCHEMA_VERSIONS[document_type]
    except KeyError as exc:
        raise KeyError(f"Unknown document type: {document_type}") from exc


def read_version(document: dict[str, Any], key: str = "schemaVersion") -> int:
    """Return the persisted version, treating missing or invalid values as 1."""

    value = document.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        return 1
    return value


__all__ = ["DocumentType", "SCHEMA_VERSIONS", "current_version", "read_version"]
