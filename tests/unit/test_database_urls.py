from __future__ import annotations

import pytest

from build_matrix.db import DatabaseConfig, build_async_url, enum_values
from build_matrix.models import Build, BuildStatus, LatestKind, Version


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("sqlite:///./data/db/build-matrix.sqlite", "sqlite+aiosqlite:///./data/db/build-matrix.sqlite"),
        ("postgresql://spi:secret@db:5432/spi", "postgresql+psycopg://spi:secret@db:5432/spi"),
        ("postgresql+psycopg://spi@db/spi", "postgresql+psycopg://spi@db/spi"),
    ],
)
def test_async_url(url: str, expected: str) -> None:
    assert build_async_url(DatabaseConfig(url=url)) == expected


@pytest.mark.parametrize("url", ["mysql://root@db/spi", "postgresql+asyncpg://spi@db/spi"])
def test_unsupported_drivers_are_rejected(url: str) -> None:
    with pytest.raises(ValueError):
        build_async_url(DatabaseConfig(url=url))


def test_config_from_settings(settings) -> None:
    cfg = DatabaseConfig.from_settings(settings)

    assert cfg.url == settings.database_url
    assert cfg.sqlite_journal_mode == "WAL"
    assert cfg.sqlite_busy_timeout_ms == 30_000


def test_enum_columns_store_member_values() -> None:
    assert enum_values(LatestKind) == ["release", "pre_release", "default_branch"]
    assert Build.__table__.c.status.type.enums == enum_values(BuildStatus)
    assert Version.__table__.c.latest.type.enums == enum_values(LatestKind)
