"""Missing-build resolution for a single package."""

from __future__ import annotations

from uuid import UUID

from ..matrix import BuildPair
from ..store import BuildStore
from .schemas import BuildTriggerInfo

__all__ = ["find_missing_builds", "missing_pairs"]


def missing_pairs(
    matrix: frozenset[BuildPair],
    existing: frozenset[BuildPair],
) -> frozenset[BuildPair]:
    return matrix - existing


async def find_missing_builds(
    store: BuildStore,
    matrix: frozenset[BuildPair],
    package_id: UUID,
) -> list[BuildTriggerInfo]:
    """One ``BuildTriggerInfo`` per tracked version that lacks any cell of ``matrix``."""

    triggers: list[BuildTriggerInfo] = []
    for version in await store.load_versions_with_builds(package_id):
        info = BuildTriggerInfo.create(
            version.version_id,
            missing_pairs(matrix, version.existing),
            package_name=version.package_name,
            reference=version.reference,
        )
        if info is not None:
            triggers.append(info)
    return triggers
