"""Candidate selection: packages whose latest versions miss matrix cells."""

from __future__ import annotations

import logging
from uuid import UUID

from ..settings import Settings
from ..store import BuildStore

__all__ = ["fetch_candidates"]

logger = logging.getLogger(__name__)


async def fetch_candidates(
    store: BuildStore,
    settings: Settings,
    with_latest_compiler_version: bool,
) -> list[UUID]:
    """Return ranked package ids: allow-listed first, then oldest deficient version.

    With ``with_latest_compiler_version`` false the newest active compiler is
    left out of the expected matrix, so packages only missing that column are
    not selected yet.
    """

    matrix = settings.build_matrix(
        exclude_latest_compiler_version=not with_latest_compiler_version
    )
    candidates = await store.fetch_candidate_package_ids(matrix, settings.allow_list_ids)
    logger.debug(
        "trigger.candidates.fetched",
        extra={
            "count": len(candidates),
            "matrix_size": len(matrix),
            "with_latest_compiler_version": with_latest_compiler_version,
        },
    )
    return candidates
