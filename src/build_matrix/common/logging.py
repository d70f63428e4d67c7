"""Console logging for build-matrix runs.

Every record becomes one line::

    2026-10-19T02:57:00.302Z INFO  build_matrix.triggers.dispatcher [cycle=1234abcd] trigger.package.skipped package_id=... reason=downscaling

Messages are dotted event names; context travels in ``extra`` and is
rendered as ``key=value`` pairs. The cycle id is bound once per CLI
invocation and picked up by every record, including those emitted inside
asyncio tasks spawned afterwards.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from ..settings import Settings

__all__ = [
    "ConsoleLogFormatter",
    "bind_cycle_context",
    "clear_cycle_context",
    "log_context",
    "setup_logging",
]

_CYCLE_ID: ContextVar[str | None] = ContextVar("build_matrix_cycle_id", default=None)

# Everything a bare LogRecord carries, plus what Formatter.format adds.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "cycle_id", "taskName"}

_CONFIGURED_FLAG = "_build_matrix_configured"

# Chatty third-party loggers capped at WARNING unless the run asks for less.
_QUIET_LOGGERS = ("httpx", "httpcore")


class ConsoleLogFormatter(logging.Formatter):
    """One line per record: UTC time, level, logger, cycle, event, extras."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-5s %(name)s [cycle=%(cycle_id)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=UTC).strftime(datefmt or self.datefmt)
        return f"{stamp}.{int(record.msecs):03d}Z"

    def format(self, record: logging.LogRecord) -> str:
        record.cycle_id = getattr(record, "cycle_id", None) or _CYCLE_ID.get() or "-"
        line = super().format(record)
        pairs = [
            f"{key}={_render(value)}"
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        ]
        return f"{line} {' '.join(pairs)}" if pairs else line


def setup_logging(settings: Settings) -> None:
    """Install the console handler on the root logger (once per process).

    The level comes from ``BM_LOGGING_LEVEL``. Calling again only updates
    the level.
    """

    root = logging.getLogger()
    level = logging.getLevelName(settings.logging_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if not getattr(root, _CONFIGURED_FLAG, False):
        handler = logging.StreamHandler()
        handler.setFormatter(ConsoleLogFormatter())
        root.handlers = [handler]
        for name in ("sqlalchemy", *_QUIET_LOGGERS):
            child = logging.getLogger(name)
            child.handlers.clear()
            child.propagate = True
        setattr(root, _CONFIGURED_FLAG, True)

    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def bind_cycle_context(cycle_id: str | None) -> None:
    _CYCLE_ID.set(cycle_id)


def clear_cycle_context() -> None:
    _CYCLE_ID.set(None)


def log_context(
    *,
    package_id: UUID | str | None = None,
    version_id: UUID | str | None = None,
    build_id: UUID | str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """``extra`` payload with the usual ids stringified and ``None`` ids dropped.

    Avoid keys that clash with LogRecord attributes (``name``, ``module``, ...).
    """

    ctx: dict[str, Any] = {}
    for key, value in (
        ("package_id", package_id),
        ("version_id", version_id),
        ("build_id", build_id),
    ):
        if value is not None:
            ctx[key] = str(value)
    ctx.update(extra)
    return ctx


def _render(value: Any) -> str:
    return "null" if value is None else str(value)
