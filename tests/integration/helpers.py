"""Fakes and seeding helpers for integration tests."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from build_matrix.matrix import BuildPair, CompilerVersion, Platform
from build_matrix.models import Build, BuildStatus, LatestKind, Package, Version
from build_matrix.pipeline import PipelineStatus, TriggerResponse

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


class FakePipeline:
    """In-memory pipeline: accepts everything unless told otherwise."""

    def __init__(self, *, pending: int = 0, running: int = 0) -> None:
        self.pending = pending
        self.running = running
        self.status_error: Exception | None = None
        self.responses: dict[BuildPair, TriggerResponse | Exception] = {}
        self.calls: list[dict[str, Any]] = []
        self.status_calls: list[PipelineStatus] = []

    async def trigger(
        self,
        *,
        build_id: UUID,
        version_id: UUID,
        platform: Platform,
        compiler_version: CompilerVersion,
    ) -> TriggerResponse:
        pair = BuildPair(platform, compiler_version)
        call: dict[str, Any] = {
            "build_id": build_id,
            "version_id": version_id,
            "pair": pair,
            "web_url": None,
        }
        self.calls.append(call)
        outcome = self.responses.get(pair)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            outcome = TriggerResponse(
                status_code=201,
                web_url=f"https://ci.example.test/jobs/{len(self.calls)}",
            )
        call["web_url"] = outcome.web_url
        return outcome

    async def status_count(self, status: PipelineStatus) -> int:
        self.status_calls.append(status)
        if self.status_error is not None:
            raise self.status_error
        return self.pending if status is PipelineStatus.PENDING else self.running


class ScriptedRandom:
    """Returns the scripted draws in order, repeating the last one."""

    def __init__(self, values: Iterable[float]) -> None:
        self._values = list(values)
        self.draws = 0

    def __call__(self) -> float:
        value = self._values[min(self.draws, len(self._values) - 1)]
        self.draws += 1
        return value


class Seeder:
    """Writes packages, versions and builds straight through the ORM."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def package(self) -> UUID:
        package = Package(id=uuid4(), url=f"https://git.example.test/{uuid4().hex}.git")
        async with self._sessionmaker.begin() as session:
            session.add(package)
        return package.id

    async def version(
        self,
        package_id: UUID,
        *,
        latest: LatestKind | None = LatestKind.RELEASE,
        created_at: datetime | None = None,
    ) -> UUID:
        version = Version(
            id=uuid4(),
            package_id=package_id,
            latest=latest,
            package_name="Example",
            reference="1.0.0",
        )
        if created_at is not None:
            version.created_at = created_at
        async with self._sessionmaker.begin() as session:
            session.add(version)
        return version.id

    async def build(
        self,
        version_id: UUID,
        pair: BuildPair,
        *,
        status: BuildStatus = BuildStatus.OK,
        created_at: datetime | None = None,
        job_url: str | None = None,
        build_command: str | None = None,
    ) -> UUID:
        build = Build.for_pair(
            id=uuid4(),
            version_id=version_id,
            pair=pair,
            status=status,
            job_url=job_url,
            build_command=build_command,
        )
        if created_at is not None:
            build.created_at = created_at
        async with self._sessionmaker.begin() as session:
            session.add(build)
        return build.id

    async def builds(self) -> list[Build]:
        async with self._sessionmaker() as session:
            return list((await session.execute(select(Build))).scalars().all())


def pair(platform: str, compiler_version: str) -> BuildPair:
    return BuildPair.of(platform, compiler_version)


def hours_ago(hours: float) -> datetime:
    return NOW - timedelta(hours=hours)
