"""Durable storage for checkpoints, sessions and triage state."""

from .atomic import atomic_write_json, file_digest, read_json
from .checkpoints import CheckpointStore
from .sessions import SessionRepository
from .triage import TriageRepository

__all__ = [
    "CheckpointStore",
    "SessionRepository",
    "TriageRepository",
    "atomic_write_json",
    "file_digest",
    "read_json",
]
