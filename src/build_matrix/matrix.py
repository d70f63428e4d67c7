"""Build matrix value types: platforms, compiler versions, and matrix cells."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

__all__ = [
    "Platform",
    "CompilerVersion",
    "BuildPair",
    "full_matrix",
    "latest_compiler_version",
]

_VERSION_PATTERN = re.compile(r"^\s*v?(\d+)\.(\d+)(?:\.(\d+))?\s*$")


class Platform(str, Enum):
    """Build targets a version can be checked against."""

    IOS = "ios"
    LINUX = "linux"
    MACOS_SPM = "macos-spm"
    MACOS_XCODEBUILD = "macos-xcodebuild"
    TVOS = "tvos"
    VISIONOS = "visionos"
    WATCHOS = "watchos"
    ANDROID = "android"
    WASM = "wasm"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, order=True)
class CompilerVersion:
    """A compiler version whose matrix identity is ``major.minor``.

    ``patch`` is kept for display only: ``5.10.1`` and ``5.10.0`` occupy the
    same matrix cell and compare (and hash) equal.
    """

    major: int
    minor: int
    patch: int = field(default=0, compare=False)

    @classmethod
    def parse(cls, value: str | CompilerVersion) -> CompilerVersion:
        if isinstance(value, CompilerVersion):
            return value
        match = _VERSION_PATTERN.match(str(value))
        if match is None:
            raise ValueError(f"invalid compiler version: {value!r}")
        major, minor, patch = match.groups()
        return cls(int(major), int(minor), int(patch or 0))

    @property
    def cell(self) -> str:
        """The ``major.minor`` form used for matrix identity and metric labels."""

        return f"{self.major}.{self.minor}"

    def is_compatible(self, other: CompilerVersion) -> bool:
        return self.major == other.major and self.minor == other.minor

    def __str__(self) -> str:
        if self.patch:
            return f"{self.major}.{self.minor}.{self.patch}"
        return self.cell


@dataclass(frozen=True)
class BuildPair:
    """One matrix cell: a platform plus a compiler version."""

    platform: Platform
    compiler_version: CompilerVersion

    @classmethod
    def of(cls, platform: Platform | str, compiler_version: CompilerVersion | str) -> BuildPair:
        return cls(Platform(platform), CompilerVersion.parse(compiler_version))

    @property
    def key(self) -> tuple[str, int, int]:
        return (
            self.platform.value,
            self.compiler_version.major,
            self.compiler_version.minor,
        )

    def __str__(self) -> str:
        return f"{self.platform} / {self.compiler_version}"


def latest_compiler_version(versions: Iterable[CompilerVersion]) -> CompilerVersion | None:
    return max(versions, default=None)


def full_matrix(
    platforms: Iterable[Platform],
    compiler_versions: Iterable[CompilerVersion],
    *,
    exclude_latest_compiler_version: bool = False,
) -> frozenset[BuildPair]:
    """Return every expected cell for the given active platforms and compilers."""

    versions = list(compiler_versions)
    if exclude_latest_compiler_version:
        latest = latest_compiler_version(versions)
        versions = [v for v in versions if v != latest]
    return frozenset(BuildPair(p, v) for p in platforms for v in versions)
