"""Build trigger: candidate selection, capacity-aware dispatch and cleanup."""

from .candidates import fetch_candidates
from .capacity import PipelineCapacity
from .context import TriggerContext
from .dispatcher import trigger_builds, trigger_packages
from .executor import trigger_builds_unchecked
from .reaper import trim_builds
from .resolver import find_missing_builds, missing_pairs
from .schemas import (
    BuildTriggerInfo,
    LimitMode,
    PackageMode,
    TargetMode,
    TriggerMode,
    resolve_mode,
)

__all__ = [
    "BuildTriggerInfo",
    "LimitMode",
    "PackageMode",
    "PipelineCapacity",
    "TargetMode",
    "TriggerContext",
    "TriggerMode",
    "fetch_candidates",
    "find_missing_builds",
    "missing_pairs",
    "resolve_mode",
    "trigger_builds",
    "trigger_builds_unchecked",
    "trigger_packages",
    "trim_builds",
]
