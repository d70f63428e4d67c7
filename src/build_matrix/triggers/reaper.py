"""Stale build cleanup."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..store import BuildStore

__all__ = ["trim_builds"]

logger = logging.getLogger(__name__)


async def trim_builds(store: BuildStore, now: datetime, grace_period: timedelta) -> int:
    """Delete builds of untracked versions and builds stuck past ``grace_period``.

    Stuck means still ``triggered`` or ``infrastructure_error``. Finished
    builds of tracked versions are never touched.
    """

    cutoff = now - grace_period
    deleted = await store.trim_builds(cutoff)
    logger.info(
        "trigger.trim.completed",
        extra={"deleted": deleted, "cutoff": cutoff.isoformat()},
    )
    return deleted
