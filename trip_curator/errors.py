"""Error taxonomy shared by storage, engine and pipeline layers."""

from __future__ import annotations


class TripCuratorError(Exception):
    """Base class for all errors raised by trip_curator."""


class NotFoundError(TripCuratorError, LookupError):
    """A checkpoint, session or candidate does not exist."""


class SchemaError(TripCuratorError, ValueError):
    """A persisted document has the wrong shape or an unsupported version."""


class InvalidConfigError(TripCuratorError, ValueError):
    """Constructor arguments or configuration values are invalid."""


class ProviderTimeoutError(TripCuratorError, TimeoutError):
    """An external provider or verification call exceeded its deadline."""

    def __init__(self, provider: str, timeout: float) -> None:
        super().__init__(f"{provider} did not respond within {timeout:g}s")
        self.provider = provider
        self.timeout = timeout


class ConflictError(TripCuratorError):
    """A uniqueness constraint was violated."""


RECOVERABLE_ERRORS: tuple[type[BaseException], ...] = (ProviderTimeoutError,)


__all__ = [
    "ConflictError",
    "InvalidConfigError",
    "NotFoundError",
    "ProviderTimeoutError",
    "RECOVERABLE_ERRORS",
    "SchemaError",
    "TripCuratorError",
]
