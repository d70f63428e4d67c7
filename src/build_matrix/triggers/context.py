"""Collaborators threaded through one trigger invocation."""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from ..common.time import utc_now
from ..metrics import TriggerMetrics
from ..pipeline import PipelineClient
from ..settings import Settings
from ..store import BuildStore

__all__ = ["TriggerContext"]


@dataclass(frozen=True, slots=True)
class TriggerContext:
    """Settings, store, pipeline, telemetry, clock and random source for one cycle.

    ``rng`` returns floats in ``[0, 1)`` and drives downscaling; ``clock``
    returns aware UTC datetimes and stamps new builds and the trim cutoff.
    """

    settings: Settings
    store: BuildStore
    pipeline: PipelineClient
    metrics: TriggerMetrics = field(default_factory=TriggerMetrics)
    rng: Callable[[], float] = random.random
    clock: Callable[[], datetime] = utc_now

    def now(self) -> datetime:
        return self.clock()
