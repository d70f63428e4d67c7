"""Domain exceptions for the build trigger."""

from __future__ import annotations

__all__ = [
    "UsageError",
    "PipelineError",
    "PipelineUnavailableError",
    "BuildConflictError",
    "StoreUnavailableError",
]


class UsageError(ValueError):
    """Raised when invocation arguments conflict or are incomplete."""


class PipelineError(RuntimeError):
    """Raised when the CI pipeline rejects or fails a request."""


class PipelineUnavailableError(PipelineError):
    """Raised when pipeline load cannot be determined before dispatching."""


class BuildConflictError(RuntimeError):
    """Raised when a build row already occupies the (version, platform, compiler) cell."""


class StoreUnavailableError(RuntimeError):
    """Raised when the package index database cannot be reached."""
