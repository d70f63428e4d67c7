"""Submit builds to the pipeline and record the accepted ones."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from uuid import UUID, uuid4

from ..common.logging import log_context
from ..exceptions import BuildConflictError, PipelineError
from ..matrix import BuildPair
from ..models import Build, BuildStatus
from .context import TriggerContext
from .schemas import BuildTriggerInfo

__all__ = ["trigger_builds_unchecked"]

logger = logging.getLogger(__name__)


async def trigger_builds_unchecked(
    ctx: TriggerContext,
    triggers: Iterable[BuildTriggerInfo],
) -> int:
    """Submit every (version, pair) in ``triggers`` concurrently.

    No headroom or switch checks happen here. Returns the number of build
    rows written; a pair that fails is logged and does not affect the others.
    """

    jobs = [
        _trigger_one(ctx, trigger.version_id, pair)
        for trigger in triggers
        for pair in trigger.sorted_pairs()
    ]
    if not jobs:
        return 0
    results = await asyncio.gather(*jobs)
    return sum(1 for created in results if created)


async def _trigger_one(ctx: TriggerContext, version_id: UUID, pair: BuildPair) -> bool:
    build_id = uuid4()
    ctx.metrics.record_trigger(pair)
    try:
        response = await ctx.pipeline.trigger(
            build_id=build_id,
            version_id=version_id,
            platform=pair.platform,
            compiler_version=pair.compiler_version,
        )
        if not response.accepted or not response.web_url:
            logger.warning(
                "trigger.build.not_accepted",
                extra=log_context(
                    version_id=version_id,
                    build_id=build_id,
                    pair=str(pair),
                    status_code=response.status_code,
                ),
            )
            return False

        try:
            await ctx.store.create_build(
                _new_build(ctx, build_id, version_id, pair, response.web_url)
            )
        except BuildConflictError:
            # Another submission already holds the cell; the newest one wins.
            await ctx.store.replace_build(
                _new_build(ctx, build_id, version_id, pair, response.web_url)
            )
            logger.info(
                "trigger.build.replaced",
                extra=log_context(version_id=version_id, build_id=build_id, pair=str(pair)),
            )
            return True
    except PipelineError as exc:
        logger.warning(
            "trigger.build.submit_failed",
            extra=log_context(
                version_id=version_id,
                build_id=build_id,
                pair=str(pair),
                error=str(exc),
            ),
        )
        return False
    except Exception:
        logger.exception(
            "trigger.build.failed",
            extra=log_context(version_id=version_id, build_id=build_id, pair=str(pair)),
        )
        return False

    logger.info(
        "trigger.build.created",
        extra=log_context(version_id=version_id, build_id=build_id, pair=str(pair)),
    )
    return True


def _new_build(
    ctx: TriggerContext,
    build_id: UUID,
    version_id: UUID,
    pair: BuildPair,
    job_url: str,
) -> Build:
    build = Build.for_pair(
        id=build_id,
        version_id=version_id,
        pair=pair,
        status=BuildStatus.TRIGGERED,
        job_url=job_url,
    )
    now = ctx.now()
    build.created_at = now
    build.updated_at = now
    return build
