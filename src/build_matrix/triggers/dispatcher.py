"""Capacity-aware dispatch of build triggers across candidate packages.

One cycle looks like this:

1. Pick packages (ranked candidates, one named package, or a single cell).
2. Read pipeline load once (pending + running) unless the run is forced.
3. Drop non-priority packages at random according to ``downscaling``.
4. Resolve and submit each remaining package concurrently while the shared
   ``PipelineCapacity`` has headroom.
5. Trim stale builds.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from uuid import UUID

from ..common.logging import log_context
from ..exceptions import PipelineError, PipelineUnavailableError
from ..matrix import BuildPair
from ..pipeline import PipelineStatus
from .candidates import fetch_candidates
from .capacity import PipelineCapacity
from .context import TriggerContext
from .executor import trigger_builds_unchecked
from .reaper import trim_builds
from .resolver import find_missing_builds
from .schemas import BuildTriggerInfo, LimitMode, PackageMode, TargetMode, TriggerMode

__all__ = ["trigger_builds", "trigger_packages"]

logger = logging.getLogger(__name__)


async def trigger_builds(ctx: TriggerContext, mode: TriggerMode) -> int:
    """Run one trigger cycle for ``mode``; return the number of builds recorded."""

    started = ctx.metrics.start_timer()
    try:
        if isinstance(mode, LimitMode):
            candidates = await fetch_candidates(
                ctx.store,
                ctx.settings,
                ctx.settings.candidates_with_latest_compiler_version,
            )
            ctx.metrics.candidates.set(len(candidates))
            logger.info(
                "trigger.candidates.selected",
                extra={"candidates": len(candidates), "limit": mode.limit},
            )
            return await trigger_packages(ctx, candidates[: mode.limit], force=False)

        if isinstance(mode, PackageMode):
            return await trigger_packages(ctx, [mode.package_id], force=mode.force)

        if isinstance(mode, TargetMode):
            # A single explicit cell is submitted as asked.
            trigger = BuildTriggerInfo.create(mode.version_id, [mode.pair])
            return await trigger_builds_unchecked(ctx, [trigger])

        raise TypeError(f"unsupported trigger mode: {mode!r}")
    finally:
        ctx.metrics.observe_duration(started)


async def trigger_packages(
    ctx: TriggerContext,
    package_ids: Sequence[UUID],
    *,
    force: bool = False,
) -> int:
    settings = ctx.settings
    if not settings.allow_build_triggers:
        logger.info("trigger.disabled", extra={"packages": len(package_ids)})
        return 0

    matrix = settings.build_matrix()

    if force:
        results = await asyncio.gather(
            *(_force_package(ctx, matrix, package_id) for package_id in package_ids)
        )
        return sum(results)

    pending, running = await _pipeline_load(ctx)
    capacity = PipelineCapacity(limit=settings.pipeline_limit, pending=pending)
    logger.info(
        "trigger.capacity",
        extra={
            "pending": pending,
            "running": running,
            "limit": capacity.limit,
            "headroom": capacity.headroom,
        },
    )

    selected = _downscale(ctx, package_ids)
    results = await asyncio.gather(
        *(_dispatch_package(ctx, capacity, matrix, package_id) for package_id in selected)
    )
    triggered = sum(results)
    logger.info(
        "trigger.cycle.dispatched",
        extra={
            "packages": len(package_ids),
            "selected": len(selected),
            "scheduled": capacity.scheduled,
            "triggered": triggered,
        },
    )

    trimmed = await trim_builds(ctx.store, ctx.now(), settings.trim_grace_period)
    ctx.metrics.record_trimmed(trimmed)
    return triggered


async def _pipeline_load(ctx: TriggerContext) -> tuple[int, int]:
    try:
        pending, running = await asyncio.gather(
            ctx.pipeline.status_count(PipelineStatus.PENDING),
            ctx.pipeline.status_count(PipelineStatus.RUNNING),
        )
    except PipelineError as exc:
        raise PipelineUnavailableError(f"could not read pipeline load: {exc}") from exc
    ctx.metrics.pending_jobs.set(pending)
    ctx.metrics.running_jobs.set(running)
    return pending, running


def _downscale(ctx: TriggerContext, package_ids: Sequence[UUID]) -> list[UUID]:
    """Keep allow-listed packages and a random ``downscaling`` share of the rest.

    Draws happen in ranking order, one per package.
    """

    allow_list = ctx.settings.allow_list_ids
    factor = ctx.settings.downscaling
    selected: list[UUID] = []
    for package_id in package_ids:
        draw = ctx.rng()
        if package_id in allow_list or draw < factor:
            selected.append(package_id)
            continue
        logger.info(
            "trigger.package.skipped",
            extra=log_context(package_id=package_id, reason="downscaling"),
        )
    return selected


async def _dispatch_package(
    ctx: TriggerContext,
    capacity: PipelineCapacity,
    matrix: frozenset[BuildPair],
    package_id: UUID,
) -> int:
    try:
        if not await capacity.has_headroom():
            logger.info(
                "trigger.package.skipped",
                extra=log_context(package_id=package_id, reason="no_headroom"),
            )
            return 0

        triggers = await find_missing_builds(ctx.store, matrix, package_id)
        needed = sum(len(trigger.pairs) for trigger in triggers)
        if needed == 0:
            logger.debug(
                "trigger.package.complete",
                extra=log_context(package_id=package_id),
            )
            return 0

        if not await capacity.reserve(needed):
            logger.info(
                "trigger.package.skipped",
                extra=log_context(package_id=package_id, reason="no_headroom", needed=needed),
            )
            return 0

        return await trigger_builds_unchecked(ctx, triggers)
    except Exception:
        logger.exception("trigger.package.failed", extra=log_context(package_id=package_id))
        return 0


async def _force_package(
    ctx: TriggerContext,
    matrix: frozenset[BuildPair],
    package_id: UUID,
) -> int:
    try:
        triggers = await find_missing_builds(ctx.store, matrix, package_id)
        logger.info(
            "trigger.package.forced",
            extra=log_context(
                package_id=package_id,
                versions=len(triggers),
                needed=sum(len(trigger.pairs) for trigger in triggers),
            ),
        )
        return await trigger_builds_unchecked(ctx, triggers)
    except Exception:
        logger.exception("trigger.package.failed", extra=log_context(package_id=package_id))
        return 0
