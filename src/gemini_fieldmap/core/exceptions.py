"""Exception hierarchy for the field-mapping engine.

Per-field problems are normally reported as data on a
``ClassificationResult``; these exceptions cross module boundaries before
the engine converts them.
"""

from __future__ import annotations


class FieldMapError(Exception):
    """Base exception for all field-mapping errors."""


class ConfigurationError(FieldMapError):
    """Raised when configuration values are missing or inconsistent."""


class ValidationError(FieldMapError):
    """Raised when a single field descriptor is malformed."""

    def __init__(self, message: str, *, index: int | None = None) -> None:
        self.index = index
        super().__init__(message)


class BatchRejected(FieldMapError):
    """Raised when a whole batch cannot be processed (e.g. not iterable)."""


class CacheUnavailable(FieldMapError):
    """Raised when the persistence collaborator fails on read or write."""


class RateLimitTimeout(FieldMapError):
    """Raised when acquiring a rate-limiter permit exceeds its deadline."""


class RemoteClassificationError(FieldMapError):
    """Base class for failures of the remote classification call."""


class TransientRemoteFailure(RemoteClassificationError):
    """Timeout, 5xx, 429 or network failure; eligible for retry."""


class NonTransientRemoteFailure(RemoteClassificationError):
    """Malformed response or explicit rejection; never retried."""
