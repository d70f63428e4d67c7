"""Persistence capability used by the build trigger, and its SQL implementation."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import and_, case, delete, false, func, or_, select, text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload
from sqlalchemy.sql.elements import ColumnElement

from .common.logging import log_context
from .exceptions import BuildConflictError, StoreUnavailableError
from .matrix import BuildPair
from .models import Build, BuildStatus, Version

__all__ = [
    "VersionBuilds",
    "BuildStore",
    "SqlBuildStore",
    "STALE_BUILD_STATUSES",
]

logger = logging.getLogger(__name__)

STALE_BUILD_STATUSES = (BuildStatus.TRIGGERED, BuildStatus.INFRASTRUCTURE_ERROR)

_PG_UNIQUE_VIOLATION = "23505"


@dataclass(frozen=True, slots=True)
class VersionBuilds:
    """A latest version of a package and the matrix cells it already has builds for."""

    version_id: UUID
    existing: frozenset[BuildPair]
    package_name: str | None = None
    reference: str | None = None


class BuildStore(Protocol):
    """The store operations the build trigger depends on."""

    async def fetch_candidate_package_ids(
        self,
        matrix: frozenset[BuildPair],
        allow_list: frozenset[UUID],
    ) -> list[UUID]: ...

    async def load_versions_with_builds(self, package_id: UUID) -> list[VersionBuilds]: ...

    async def create_build(self, build: Build) -> None: ...

    async def replace_build(self, build: Build) -> bool: ...

    async def trim_builds(self, cutoff: datetime) -> int: ...

    async def ping(self) -> None: ...


def _cell_clause(pairs: Iterable[BuildPair]) -> ColumnElement[bool]:
    clauses = [
        and_(
            Build.platform == pair.platform,
            Build.compiler_major == pair.compiler_version.major,
            Build.compiler_minor == pair.compiler_version.minor,
        )
        for pair in pairs
    ]
    if not clauses:
        return false()
    return or_(*clauses)


def _same_cell(build: Build) -> ColumnElement[bool]:
    return and_(
        Build.version_id == build.version_id,
        Build.platform == build.platform,
        Build.compiler_major == build.compiler_major,
        Build.compiler_minor == build.compiler_minor,
    )


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "sqlstate", None) == _PG_UNIQUE_VIOLATION:
        return True
    if getattr(orig, "pgcode", None) == _PG_UNIQUE_VIOLATION:
        return True
    return "unique constraint" in str(orig).lower()


class SqlBuildStore:
    """``BuildStore`` over the package index database (SQLite or Postgres)."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def ping(self) -> None:
        try:
            async with self._sessionmaker() as session:
                await session.execute(text("SELECT 1"))
        except (OperationalError, OSError) as exc:
            raise StoreUnavailableError(f"database unreachable: {exc}") from exc

    async def fetch_candidate_package_ids(
        self,
        matrix: frozenset[BuildPair],
        allow_list: frozenset[UUID],
    ) -> list[UUID]:
        """Return packages with at least one latest version missing a matrix cell.

        Ordered allow-listed first, then by the oldest deficient version.
        """

        if not matrix:
            return []

        deficient = (
            select(
                Version.package_id.label("package_id"),
                Version.created_at.label("created_at"),
            )
            .select_from(Version)
            .outerjoin(Build, and_(Build.version_id == Version.id, _cell_clause(matrix)))
            .where(Version.latest.is_not(None))
            .group_by(Version.id, Version.package_id, Version.created_at)
            .having(func.count(Build.id) < len(matrix))
            .subquery("deficient")
        )

        is_prio = case(
            (deficient.c.package_id.in_(list(allow_list)), 1),
            else_=0,
        ).label("is_prio")
        first_seen = func.min(deficient.c.created_at).label("first_seen")

        stmt = (
            select(deficient.c.package_id, is_prio, first_seen)
            .group_by(deficient.c.package_id)
            .order_by(is_prio.desc(), first_seen.asc(), deficient.c.package_id.asc())
        )
        async with self._sessionmaker() as session:
            rows = (await session.execute(stmt)).all()
        return [row.package_id for row in rows]

    async def load_versions_with_builds(self, package_id: UUID) -> list[VersionBuilds]:
        stmt = (
            select(Version)
            .options(selectinload(Version.builds))
            .where(Version.package_id == package_id, Version.latest.is_not(None))
            .order_by(Version.created_at.asc())
        )
        async with self._sessionmaker() as session:
            versions: Sequence[Version] = (await session.execute(stmt)).scalars().all()
        return [
            VersionBuilds(
                version_id=version.id,
                existing=frozenset(build.pair for build in version.builds),
                package_name=version.package_name,
                reference=version.reference,
            )
            for version in versions
        ]

    async def create_build(self, build: Build) -> None:
        """Insert ``build``; raise ``BuildConflictError`` if its cell is taken."""

        try:
            async with self._sessionmaker.begin() as session:
                session.add(build)
        except IntegrityError as exc:
            if is_unique_violation(exc):
                raise BuildConflictError(
                    f"build exists for version {build.version_id} "
                    f"{build.platform.value} {build.compiler_major}.{build.compiler_minor}"
                ) from exc
            raise

    async def replace_build(self, build: Build) -> bool:
        """Delete whatever occupies ``build``'s cell and insert ``build``, atomically.

        Build ids are immutable, so a re-triggered cell is a delete + create.
        A concurrent replacement can take the cell between our delete and
        insert; that case is retried once. Returns ``True`` when an existing
        row was replaced.
        """

        try:
            return await self._replace_once(build)
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            logger.info(
                "store.build.replace_retried",
                extra=log_context(version_id=build.version_id, build_id=build.id),
            )
        return await self._replace_once(build)

    async def _replace_once(self, build: Build) -> bool:
        async with self._sessionmaker.begin() as session:
            old = (
                await session.execute(
                    select(Build.id, Build.build_command).where(_same_cell(build))
                )
            ).first()
            if old is not None:
                if build.build_command is None:
                    build.build_command = old.build_command
                await session.execute(
                    delete(Build)
                    .where(Build.id == old.id)
                    .execution_options(synchronize_session=False)
                )
            session.add(build)
        return old is not None

    async def trim_builds(self, cutoff: datetime) -> int:
        """Delete builds of untracked versions and stuck builds created before ``cutoff``."""

        untracked_versions = select(Version.id).where(Version.latest.is_(None))
        stmt = (
            delete(Build)
            .where(
                or_(
                    Build.version_id.in_(untracked_versions),
                    and_(
                        Build.status.in_(STALE_BUILD_STATUSES),
                        Build.created_at < cutoff,
                    ),
                )
            )
            .execution_options(synchronize_session=False)
        )
        async with self._sessionmaker.begin() as session:
            result = await session.execute(stmt)
        return int(result.rowcount or 0)
