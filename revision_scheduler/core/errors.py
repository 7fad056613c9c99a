"""
Domain errors for the revision scheduler.

Callers catch these instead of library exceptions:
- ReviewValidationError: malformed review input, rejected before any mutation
- NotFoundError: unknown learner or item
- ConfigurationError: exam configuration that cannot be honoured
- StorageError: raised by storage collaborators, propagated unchanged
"""

from __future__ import annotations


class RevisionError(Exception):
    """Base class for all revision scheduler errors."""


class ReviewValidationError(RevisionError, ValueError):
    """Raised when a review event or rating is malformed."""

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.errors = errors or []


class NotFoundError(RevisionError, LookupError):
    """Raised when a learner or revision item does not exist."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class ConfigurationError(RevisionError):
    """Raised when configuration makes a computation impossible (e.g. exam already past)."""


class StorageError(RevisionError):
    """Raised by storage collaborators when a read or write fails."""
