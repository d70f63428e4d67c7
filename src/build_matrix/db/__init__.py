"""Database layer: declarative base, column types, engine setup."""

from .base import Base, TimestampMixin, metadata
from .database import Database, DatabaseConfig, assert_tables_exist, build_async_url
from .types import GUID, UTCDateTime, enum_values

__all__ = [
    "Base",
    "metadata",
    "TimestampMixin",
    "GUID",
    "UTCDateTime",
    "enum_values",
    "Database",
    "DatabaseConfig",
    "build_async_url",
    "assert_tables_exist",
]
