"""ORM models for the package index tables the build trigger reads and writes."""

from .build import Build, BuildStatus
from .package import Package
from .version import LatestKind, Version

REQUIRED_TABLES = [
    Package.__tablename__,
    Version.__tablename__,
    Build.__tablename__,
]

__all__ = [
    "Build",
    "BuildStatus",
    "LatestKind",
    "Package",
    "Version",
    "REQUIRED_TABLES",
]
