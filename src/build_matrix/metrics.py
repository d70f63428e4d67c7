"""Per-invocation Prometheus metrics for the build trigger."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from prometheus_client import CollectorRegistry, Counter, Gauge, push_to_gateway

from .matrix import BuildPair

__all__ = ["TriggerMetrics"]

logger = logging.getLogger(__name__)

JOB_NAME = "trigger-builds"


class TriggerMetrics:
    """Gauges and counters for one trigger invocation.

    Every invocation gets its own registry, so counters start at zero.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.registry = CollectorRegistry()
        self.candidates = Gauge(
            "build_candidates_count",
            "Packages with an incomplete build matrix.",
            registry=self.registry,
        )
        self.pending_jobs = Gauge(
            "build_pending_jobs_count",
            "Pipelines pending when the cycle started.",
            registry=self.registry,
        )
        self.running_jobs = Gauge(
            "build_running_jobs_count",
            "Pipelines running when the cycle started.",
            registry=self.registry,
        )
        self.duration = Gauge(
            "build_trigger_duration_seconds",
            "Wall time of the dispatch.",
            registry=self.registry,
        )
        self.triggered = Counter(
            "build_trigger_count",
            "Builds submitted to the pipeline.",
            labelnames=("platform", "compiler_version"),
            registry=self.registry,
        )
        self.trimmed = Counter(
            "build_trim_count",
            "Stale build rows deleted.",
            registry=self.registry,
        )

    def start_timer(self) -> float:
        return self._clock()

    def observe_duration(self, started: float) -> None:
        self.duration.set(max(0.0, self._clock() - started))

    def record_trigger(self, pair: BuildPair) -> None:
        self.triggered.labels(
            platform=pair.platform.value,
            compiler_version=pair.compiler_version.cell,
        ).inc()

    def record_trimmed(self, count: int) -> None:
        if count > 0:
            self.trimmed.inc(count)

    def push(self, gateway_url: str | None, *, job: str = JOB_NAME) -> bool:
        """Push to the Pushgateway; failures are logged, never raised."""

        if not gateway_url:
            return False
        try:
            push_to_gateway(gateway_url, job=job, registry=self.registry)
        except Exception as exc:
            logger.warning("metrics.push.failed", extra={"gateway": gateway_url, "error": str(exc)})
            return False
        return True
