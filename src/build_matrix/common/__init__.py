"""Common utilities shared across build-matrix modules."""

__all__ = [
    "logging",
    "time",
]
