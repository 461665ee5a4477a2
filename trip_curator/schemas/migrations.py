"""Lazy, single-step schema migrations applied when documents are loaded."""

from __future__ import annotations

from threading import Lock
from typing import Any, Callable

from ..errors import ConflictError, InvalidConfigError, SchemaError
from .versions import SCHEMA_VERSIONS, read_version

Migration = Callable[[dict[str, Any]], dict[str, Any]]


class MigrationRegistry:
    """Hold migrations keyed by (document type, from version, to version)."""

    def __init__(self) -> None:
        self._migrations: dict[tuple[str, int, int], Migration] = {}
        self._lock = Lock()

    def register(self, document_type: str, from_version: int, to_version: int, fn: Migration) -> None:
        if document_type not in SCHEMA_VERSIONS:
            raise InvalidConfigError(f"Unknown document type: {document_type}")
        if from_version < 1 or to_version != from_version + 1:
            raise InvalidConfigError(
                f"Migrations must step exactly one version (got {from_version} -> {to_version})"
            )
        key = (document_type, from_version, to_version)
        with self._lock:
            if key in self._migrations:
                raise ConflictError(f"Migration already registered: {key}")
            self._migrations[key] = fn

    def has(self, document_type: str, from_version: int, to_version: int) -> bool:
        return (document_type, from_version, to_version) in self._migrations

    def needs_migration(self, document_type: str, document: dict[str, Any], key: str = "schemaVersion") -> bool:
        return read_version(document, key) < SCHEMA_VERSIONS[document_type]

    def migrate(
        self,
        document_type: str,
        document: dict[str, Any],
        key: str = "schemaVersion",
    ) -> dict[str, Any]:
        """Upgrade ``document`` step by step to the current version.

        Raises ``SchemaError`` when the document is newer than this code
        understands or when a step in the chain has no registered migration.
        """

        target = SCHEMA_VERSIONS[document_type]
        version = read_version(document, key)
        if version > target:
            raise SchemaError(
                f"{document_type} document has version {version}, newest supported is {target}"
            )
        migrated = dict(document)
        while version < target:
            fn = self._migrations.get((document_type, version, version + 1))
            if fn is None:
                raise SchemaError(
                    f"No migration registered for {document_type} v{version} -> v{version + 1}"
                )
            migrated = fn(dict(migrated))
            version += 1
            migrated[key] = version
        return migrated


default_registry = MigrationRegistry()


__all__ = ["Migration", "MigrationRegistry", "default_registry"]
