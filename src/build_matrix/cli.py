"""build-matrix: CLI for the build trigger."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import uuid4

import typer

from .common.logging import bind_cycle_context, clear_cycle_context, setup_logging
from .common.time import utc_now
from .db import Database, DatabaseConfig, assert_tables_exist, metadata
from .exceptions import UsageError
from .metrics import TriggerMetrics
from .models import REQUIRED_TABLES
from .pipeline import GitlabPipelineClient
from .settings import Settings, get_settings
from .store import SqlBuildStore
from .triggers import (
    TriggerContext,
    TriggerMode,
    fetch_candidates,
    resolve_mode,
    trigger_builds,
    trim_builds,
)

logger = logging.getLogger("build_matrix.cli")

USAGE_EXIT_CODE = 2
FATAL_EXIT_CODE = 1

app = typer.Typer(
    add_completion=False,
    invoke_without_command=True,
    help="Build matrix CLI (trigger, trim, candidates, init-db).",
)


@asynccontextmanager
async def open_store(settings: Settings) -> AsyncIterator[SqlBuildStore]:
    db = Database()
    db.init(DatabaseConfig.from_settings(settings))
    try:
        store = SqlBuildStore(db.sessionmaker)
        await store.ping()
        await assert_tables_exist(db.engine, REQUIRED_TABLES)
        yield store
    finally:
        await db.dispose()


@asynccontextmanager
async def open_pipeline(settings: Settings) -> AsyncIterator[GitlabPipelineClient]:
    client = GitlabPipelineClient.create_http_client(settings)
    try:
        yield GitlabPipelineClient(settings, client=client)
    finally:
        await client.aclose()


async def run_trigger(settings: Settings, mode: TriggerMode, metrics: TriggerMetrics) -> int:
    async with open_store(settings) as store, open_pipeline(settings) as pipeline:
        ctx = TriggerContext(
            settings=settings,
            store=store,
            pipeline=pipeline,
            metrics=metrics,
        )
        return await trigger_builds(ctx, mode)


async def run_trim(settings: Settings, metrics: TriggerMetrics) -> int:
    async with open_store(settings) as store:
        deleted = await trim_builds(store, utc_now(), settings.trim_grace_period)
    metrics.record_trimmed(deleted)
    return deleted


async def run_candidates(settings: Settings, with_latest: bool) -> list[str]:
    async with open_store(settings) as store:
        ids = await fetch_candidates(store, settings, with_latest)
    return [str(package_id) for package_id in ids]


async def run_init_db(settings: Settings) -> None:
    db = Database()
    db.init(DatabaseConfig.from_settings(settings))
    try:
        async with db.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
    finally:
        await db.dispose()


def _start(settings: Settings) -> str:
    setup_logging(settings)
    cycle_id = uuid4().hex[:8]
    bind_cycle_context(cycle_id)
    return cycle_id


def _finish(settings: Settings, metrics: TriggerMetrics) -> None:
    metrics.push(settings.metrics_pushgateway_url)
    clear_cycle_context()


@app.callback()
def _main(ctx: typer.Context) -> None:
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


@app.command(name="trigger", help="Trigger missing builds (top candidates by default).")
def trigger(
    limit: int | None = typer.Option(
        None,
        "--limit",
        "-l",
        help="Number of ranked candidate packages to process (default: 1).",
    ),
    package_id: str | None = typer.Option(
        None,
        "--package-id",
        "-i",
        help="Trigger the missing builds of a single package.",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="With --package-id: ignore pipeline headroom and downscaling.",
    ),
    version_id: str | None = typer.Option(
        None,
        "--version-id",
        "-v",
        help="Trigger one cell of this version (needs --platform and --compiler-version).",
    ),
    platform: str | None = typer.Option(None, "--platform", "-p", help="Build platform."),
    compiler_version: str | None = typer.Option(
        None,
        "--compiler-version",
        "-s",
        help="Compiler version, e.g. 5.10.",
    ),
) -> None:
    try:
        mode = resolve_mode(
            limit=limit,
            package_id=package_id,
            version_id=version_id,
            platform=platform,
            compiler_version=compiler_version,
            force=force,
        )
    except UsageError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=USAGE_EXIT_CODE) from exc

    settings = get_settings()
    _start(settings)
    metrics = TriggerMetrics()
    logger.info("trigger.started", extra={"mode": type(mode).__name__})
    try:
        triggered = asyncio.run(run_trigger(settings, mode, metrics))
    except Exception as exc:
        logger.critical("trigger.fatal", exc_info=exc)
        raise typer.Exit(code=FATAL_EXIT_CODE) from exc
    finally:
        _finish(settings, metrics)
    logger.info("trigger.completed", extra={"triggered": triggered})


@app.command(name="trim", help="Delete stale builds once.")
def trim() -> None:
    settings = get_settings()
    _start(settings)
    metrics = TriggerMetrics()
    try:
        deleted = asyncio.run(run_trim(settings, metrics))
    except Exception as exc:
        logger.critical("trim.fatal", exc_info=exc)
        raise typer.Exit(code=FATAL_EXIT_CODE) from exc
    finally:
        _finish(settings, metrics)
    typer.echo(f"trimmed {deleted} build(s)")


@app.command(name="candidates", help="Print ranked candidate package ids.")
def candidates(
    with_latest: bool | None = typer.Option(
        None,
        "--with-latest/--without-latest",
        help="Include the newest compiler version in the expected matrix.",
    ),
) -> None:
    settings = get_settings()
    _start(settings)
    if with_latest is None:
        with_latest = settings.candidates_with_latest_compiler_version
    try:
        ids = asyncio.run(run_candidates(settings, with_latest))
    except Exception as exc:
        logger.critical("candidates.fatal", exc_info=exc)
        raise typer.Exit(code=FATAL_EXIT_CODE) from exc
    finally:
        clear_cycle_context()
    for package_id in ids:
        typer.echo(package_id)


@app.command(name="init-db", help="Create the package index tables if they are missing.")
def init_db() -> None:
    settings = get_settings()
    setup_logging(settings)
    asyncio.run(run_init_db(settings))
    typer.echo("✅ database ready")


if __name__ == "__main__":
    app()
