"""SqlBuildStore writes: unique cells, replacement, connectivity."""

from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from build_matrix.db import Database, DatabaseConfig, assert_tables_exist
from build_matrix.exceptions import BuildConflictError
from build_matrix.models import REQUIRED_TABLES, Build, BuildStatus
from build_matrix.store import SqlBuildStore
from tests.integration.helpers import pair

pytestmark = pytest.mark.asyncio


def _build(version_id, cell, *, job_url: str) -> Build:
    return Build.for_pair(
        id=uuid4(),
        version_id=version_id,
        pair=cell,
        status=BuildStatus.TRIGGERED,
        job_url=job_url,
    )


async def test_ping_succeeds(store) -> None:
    await store.ping()


async def test_create_build_rejects_a_taken_cell(store, seed) -> None:
    package_id = await seed.package()
    version_id = await seed.version(package_id)
    await store.create_build(_build(version_id, pair("ios", "5.9"), job_url="https://ci/1"))

    with pytest.raises(BuildConflictError):
        await store.create_build(
            _build(version_id, pair("ios", "5.9.1"), job_url="https://ci/2")
        )

    builds = await seed.builds()
    assert [b.job_url for b in builds] == ["https://ci/1"]


async def test_replace_build_swaps_the_row_and_keeps_the_command(store, seed) -> None:
    package_id = await seed.package()
    version_id = await seed.version(package_id)
    old_id = await seed.build(
        version_id,
        pair("linux", "5.10"),
        status=BuildStatus.FAILED,
        build_command="swift build --triple x86_64-unknown-linux-gnu",
    )
    replacement = _build(version_id, pair("linux", "5.10"), job_url="https://ci/3")

    assert await store.replace_build(replacement) is True

    builds = await seed.builds()
    assert len(builds) == 1
    (build,) = builds
    assert build.id == replacement.id != old_id
    assert build.status is BuildStatus.TRIGGERED
    assert build.job_url == "https://ci/3"
    assert build.build_command == "swift build --triple x86_64-unknown-linux-gnu"


async def test_replace_build_on_an_empty_cell_just_inserts(store, seed) -> None:
    package_id = await seed.package()
    version_id = await seed.version(package_id)

    assert await store.replace_build(
        _build(version_id, pair("ios", "5.9"), job_url="https://ci/4")
    ) is False
    assert len(await seed.builds()) == 1


async def test_load_versions_with_builds_skips_untracked(store, seed) -> None:
    package_id = await seed.package()
    tracked = await seed.version(package_id)
    untracked = await seed.version(package_id, latest=None)
    await seed.build(tracked, pair("ios", "5.9"))
    await seed.build(untracked, pair("ios", "5.10"))

    versions = await store.load_versions_with_builds(package_id)

    assert [v.version_id for v in versions] == [tracked]
    assert versions[0].existing == frozenset({pair("ios", "5.9")})


async def test_assert_tables_exist_reports_missing_tables(tmp_path) -> None:
    db = Database()
    db.init(DatabaseConfig(url=f"sqlite:///{(tmp_path / 'empty.sqlite').as_posix()}"))
    try:
        await SqlBuildStore(db.sessionmaker).ping()
        with pytest.raises(RuntimeError, match="build-matrix init-db"):
            await assert_tables_exist(db.engine, REQUIRED_TABLES)
    finally:
        await db.dispose()


class _RacedStore(SqlBuildStore):
    """Loses its first replacement to a rival that fills the cell mid-transaction."""

    def __init__(self, sessionmaker, rival) -> None:
        super().__init__(sessionmaker)
        self._rival = rival
        self.attempts = 0

    async def _replace_once(self, build: Build) -> bool:
        self.attempts += 1
        if self.attempts == 1:
            await self._rival()
            raise IntegrityError(
                "INSERT INTO builds ...",
                {},
                Exception("UNIQUE constraint failed: builds.version_id, builds.platform"),
            )
        return await super()._replace_once(build)


async def test_replace_build_retries_when_a_rival_takes_the_cell(database, seed) -> None:
    package_id = await seed.package()
    version_id = await seed.version(package_id)
    cell = pair("macos-spm", "6.0")

    async def rival() -> None:
        await seed.build(
            version_id,
            cell,
            status=BuildStatus.TRIGGERED,
            build_command="swift build -c release",
        )

    store = _RacedStore(database.sessionmaker, rival)
    replacement = _build(version_id, cell, job_url="https://ci/5")

    assert await store.replace_build(replacement) is True

    assert store.attempts == 2
    (build,) = await seed.builds()
    assert build.id == replacement.id
    assert build.job_url == "https://ci/5"
    assert build.build_command == "swift build -c release"
