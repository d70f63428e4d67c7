from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import datetime
from typing import Any

import pytest
import pytest_asyncio

from build_matrix.db import Database, DatabaseConfig, metadata
from build_matrix.metrics import TriggerMetrics
from build_matrix.settings import Settings
from build_matrix.store import SqlBuildStore
from build_matrix.triggers import TriggerContext
from tests.integration.helpers import NOW, FakePipeline, ScriptedRandom, Seeder


@pytest_asyncio.fixture()
async def database(settings: Settings) -> AsyncIterator[Database]:
    db = Database()
    db.init(DatabaseConfig.from_settings(settings))
    async with db.engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    try:
        yield db
    finally:
        await db.dispose()


@pytest.fixture
def store(database: Database) -> SqlBuildStore:
    return SqlBuildStore(database.sessionmaker)


@pytest.fixture
def seed(database: Database) -> Seeder:
    return Seeder(database.sessionmaker)


@pytest.fixture
def pipeline() -> FakePipeline:
    return FakePipeline()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def make_context(
    store: SqlBuildStore,
    pipeline: FakePipeline,
    clock: Callable[[], datetime],
) -> Callable[..., TriggerContext]:
    def _make(
        settings: Settings,
        *,
        rng: Callable[[], float] | None = None,
        store_override: Any = None,
    ) -> TriggerContext:
        return TriggerContext(
            settings=settings,
            store=store_override or store,
            pipeline=pipeline,
            metrics=TriggerMetrics(),
            rng=rng or ScriptedRandom([0.0]),
            clock=clock,
        )

    return _make
