from __future__ import annotations

from uuid import UUID, uuid4

import pytest

from build_matrix.exceptions import UsageError
from build_matrix.matrix import BuildPair
from build_matrix.triggers import (
    BuildTriggerInfo,
    LimitMode,
    PackageMode,
    TargetMode,
    missing_pairs,
    resolve_mode,
)


def test_no_arguments_means_top_candidate() -> None:
    assert resolve_mode() == LimitMode(limit=1)


def test_limit_mode() -> None:
    assert resolve_mode(limit=25) == LimitMode(limit=25)


def test_package_mode_parses_the_id() -> None:
    package_id = uuid4()

    mode = resolve_mode(package_id=str(package_id), force=True)

    assert mode == PackageMode(package_id=package_id, force=True)


def test_target_mode_builds_the_pair() -> None:
    version_id = uuid4()

    mode = resolve_mode(version_id=str(version_id), platform="linux", compiler_version="5.10.1")

    assert isinstance(mode, TargetMode)
    assert mode.version_id == version_id
    assert mode.pair == BuildPair.of("linux", "5.10")
    assert str(mode.pair.compiler_version) == "5.10.1"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"limit": 2, "package_id": "7c5f3c1e-93a1-4a58-9d0f-6f7e2c1c1a11"},
        {"limit": 2, "version_id": "7c5f3c1e-93a1-4a58-9d0f-6f7e2c1c1a11"},
        {
            "package_id": "7c5f3c1e-93a1-4a58-9d0f-6f7e2c1c1a11",
            "platform": "ios",
        },
        {"force": True},
        {"limit": 3, "force": True},
        {"version_id": "7c5f3c1e-93a1-4a58-9d0f-6f7e2c1c1a11", "platform": "ios"},
        {"platform": "ios", "compiler_version": "5.10"},
        {
            "version_id": "7c5f3c1e-93a1-4a58-9d0f-6f7e2c1c1a11",
            "platform": "amiga",
            "compiler_version": "5.10",
        },
        {
            "version_id": "7c5f3c1e-93a1-4a58-9d0f-6f7e2c1c1a11",
            "platform": "ios",
            "compiler_version": "five",
        },
        {"package_id": "not-a-uuid"},
        {"limit": -1},
    ],
)
def test_conflicting_or_incomplete_arguments(kwargs: dict) -> None:
    with pytest.raises(UsageError):
        resolve_mode(**kwargs)


def test_trigger_info_is_none_without_pairs() -> None:
    assert BuildTriggerInfo.create(uuid4(), []) is None


def test_trigger_info_sorts_pairs_for_submission() -> None:
    info = BuildTriggerInfo.create(
        UUID(int=1),
        [BuildPair.of("linux", "5.9"), BuildPair.of("ios", "5.10"), BuildPair.of("ios", "5.9")],
    )

    assert info is not None
    assert [str(p) for p in info.sorted_pairs()] == [
        "ios / 5.9",
        "ios / 5.10",
        "linux / 5.9",
    ]


def test_missing_pairs_is_the_set_difference() -> None:
    a1, a2, b1, b2 = (
        BuildPair.of("ios", "5.9"),
        BuildPair.of("ios", "5.10"),
        BuildPair.of("linux", "5.9"),
        BuildPair.of("linux", "5.10"),
    )
    matrix = frozenset({a1, a2, b1, b2})

    assert missing_pairs(matrix, frozenset({a1})) == {a2, b1, b2}
    assert missing_pairs(matrix, matrix) == frozenset()
    assert missing_pairs(matrix, frozenset({BuildPair.of("wasm", "5.9")})) == matrix
