"""Shared pytest configuration for build-matrix."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from build_matrix.settings import Settings, get_settings


def pytest_collection_modifyitems(config, items) -> None:
    for item in items:
        path_str = str(Path(str(item.fspath)))
        if "/tests/integration/" in path_str:
            item.add_marker(pytest.mark.integration)
        elif "/tests/unit/" in path_str:
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep BM_* variables from the host out of every test."""

    for key in list(os.environ):
        if key.startswith("BM_"):
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def reset_logging() -> Iterator[None]:
    """Undo the root handler installed by the CLI's logging setup."""

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    if hasattr(root, "_build_matrix_configured"):
        delattr(root, "_build_matrix_configured")


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{(tmp_path / 'build-matrix.sqlite').as_posix()}"


@pytest.fixture
def settings_factory(sqlite_url: str) -> Callable[..., Settings]:
    """Build ``Settings`` for a two-platform, two-compiler matrix on a temp database."""

    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "database_url": sqlite_url,
            "allow_build_triggers": True,
            "pipeline_limit": 10,
            "downscaling": 1.0,
            "active_platforms": ["ios", "linux"],
            "active_compiler_versions": ["5.9", "5.10"],
            "gitlab_project_id": 1,
            "gitlab_trigger_token": "trigger-token",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(settings_factory: Callable[..., Settings]) -> Settings:
    return settings_factory()
