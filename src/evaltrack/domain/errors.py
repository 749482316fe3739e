"""Error taxonomy shared by stores, lifecycle and the HTTP surface."""

from __future__ import annotations


class EvalTrackError(Exception):
    """Base class for every error raised by evaltrack."""


class NotFoundError(EvalTrackError):
    """Referenced entity does not exist."""


class InvalidStateError(EvalTrackError):
    """Lifecycle operation attempted from the wrong run state."""


class ValidationError(EvalTrackError, ValueError):
    """Missing or malformed required input."""


class BackendError(EvalTrackError):
    """Underlying storage operation failed (driver error, bad file, timeout)."""
