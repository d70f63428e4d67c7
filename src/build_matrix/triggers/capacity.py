"""Shared pipeline headroom accounting for one dispatch cycle."""

from __future__ import annotations

import asyncio

__all__ = ["PipelineCapacity"]


class PipelineCapacity:
    """Tracks builds scheduled this cycle against the pipeline limit.

    Package tasks check headroom before resolving their missing builds and
    reserve the resolved count afterwards. Both steps take the lock, but a
    package that passed ``has_headroom`` may still see its reservation fail,
    and a reservation can overshoot the limit by its own size. The bound is
    soft: ``pending + scheduled`` may exceed ``limit`` by at most one
    package's worth of builds per concurrent package.
    """

    __slots__ = ("_limit", "_pending", "_scheduled", "_lock")

    def __init__(self, *, limit: int, pending: int) -> None:
        self._limit = limit
        self._pending = pending
        self._scheduled = 0
        self._lock = asyncio.Lock()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def pending(self) -> int:
        return self._pending

    @property
    def scheduled(self) -> int:
        return self._scheduled

    @property
    def headroom(self) -> int:
        return max(0, self._limit - self._pending)

    def _available(self) -> bool:
        return self._pending + self._scheduled < self._limit

    async def has_headroom(self) -> bool:
        async with self._lock:
            return self._available()

    async def reserve(self, count: int) -> bool:
        """Add ``count`` to the scheduled total if there is still room."""

        if count <= 0:
            return False
        async with self._lock:
            if not self._available():
                return False
            self._scheduled += count
            return True
