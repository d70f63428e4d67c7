from __future__ import annotations

import logging
from uuid import UUID

from build_matrix.common.logging import (
    ConsoleLogFormatter,
    bind_cycle_context,
    clear_cycle_context,
    log_context,
)


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="build_matrix.triggers.dispatcher",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_renders_cycle_and_extras() -> None:
    package_id = UUID(int=7)
    bind_cycle_context("c0ffee00")
    try:
        line = ConsoleLogFormatter().format(
            _record(
                "trigger.package.skipped",
                **log_context(package_id=package_id, reason="downscaling"),
            )
        )
    finally:
        clear_cycle_context()

    assert "INFO " in line
    assert "build_matrix.triggers.dispatcher [cycle=c0ffee00] trigger.package.skipped" in line
    assert f"package_id={package_id}" in line
    assert line.endswith("reason=downscaling")


def test_formatter_without_cycle_uses_placeholder() -> None:
    line = ConsoleLogFormatter().format(_record("trigger.disabled", packages=0, note=None))

    assert "[cycle=-]" in line
    assert "packages=0" in line
    assert "note=null" in line


def test_log_context_skips_missing_ids() -> None:
    assert log_context(build_id="b", attempt=2) == {"build_id": "b", "attempt": 2}
