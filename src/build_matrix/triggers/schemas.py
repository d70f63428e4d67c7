"""Value types for build trigger requests and invocation modes."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from ..exceptions import UsageError
from ..matrix import BuildPair, CompilerVersion, Platform

__all__ = [
    "BuildTriggerInfo",
    "LimitMode",
    "PackageMode",
    "TargetMode",
    "TriggerMode",
    "resolve_mode",
]

DEFAULT_LIMIT = 1


@dataclass(frozen=True, slots=True)
class BuildTriggerInfo:
    """The matrix cells one version still needs builds for."""

    version_id: UUID
    pairs: frozenset[BuildPair]
    package_name: str | None = None
    reference: str | None = None

    @classmethod
    def create(
        cls,
        version_id: UUID,
        pairs: Iterable[BuildPair],
        *,
        package_name: str | None = None,
        reference: str | None = None,
    ) -> BuildTriggerInfo | None:
        """Return ``None`` when there is nothing to trigger."""

        pair_set = frozenset(pairs)
        if not pair_set:
            return None
        return cls(
            version_id=version_id,
            pairs=pair_set,
            package_name=package_name,
            reference=reference,
        )

    def sorted_pairs(self) -> list[BuildPair]:
        return sorted(self.pairs, key=lambda pair: pair.key)


@dataclass(frozen=True, slots=True)
class LimitMode:
    """Trigger the top ``limit`` ranked candidate packages."""

    limit: int = DEFAULT_LIMIT


@dataclass(frozen=True, slots=True)
class PackageMode:
    """Trigger one package; ``force`` skips headroom and downscaling."""

    package_id: UUID
    force: bool = False


@dataclass(frozen=True, slots=True)
class TargetMode:
    """Trigger exactly one (version, platform, compiler version) cell."""

    version_id: UUID
    pair: BuildPair


TriggerMode = LimitMode | PackageMode | TargetMode


def resolve_mode(
    *,
    limit: int | None = None,
    package_id: UUID | str | None = None,
    version_id: UUID | str | None = None,
    platform: Platform | str | None = None,
    compiler_version: CompilerVersion | str | None = None,
    force: bool = False,
) -> TriggerMode:
    """Turn raw invocation arguments into exactly one trigger mode.

    With no arguments at all this is ``LimitMode(1)``. Conflicting or
    incomplete combinations raise ``UsageError``.
    """

    wants_target = any(v is not None for v in (version_id, platform, compiler_version))
    chosen = sum(
        [
            limit is not None,
            package_id is not None,
            wants_target,
        ]
    )
    if chosen > 1:
        raise UsageError(
            "choose one of --limit, --package-id, or --version-id with "
            "--platform and --compiler-version"
        )
    if force and package_id is None:
        raise UsageError("--force requires --package-id")

    if package_id is not None:
        return PackageMode(package_id=_as_uuid(package_id, "--package-id"), force=force)

    if wants_target:
        if version_id is None or platform is None or compiler_version is None:
            raise UsageError(
                "--version-id, --platform and --compiler-version must be given together"
            )
        try:
            pair = BuildPair.of(platform, compiler_version)
        except ValueError as exc:
            raise UsageError(str(exc)) from exc
        return TargetMode(version_id=_as_uuid(version_id, "--version-id"), pair=pair)

    if limit is None:
        return LimitMode()
    if limit < 0:
        raise UsageError("--limit must not be negative")
    return LimitMode(limit=limit)


def _as_uuid(value: UUID | str, option: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value).strip())
    except ValueError as exc:
        raise UsageError(f"{option} must be a UUID, got {value!r}") from exc
