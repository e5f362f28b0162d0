"""Unit tests for directory planning helpers."""
from __future__ import annotations

import os
from pathlib import Path

import pytest

from parrctl.bootstrap.filesystem import (
    DirectorySpec,
    apply_directory_plan,
    plan_directories,
)


def test_plan_creates_missing_directory(tmp_path: Path) -> None:
    """Plan should create directories that are absent on disk."""
    target = tmp_path / "appdata" / "sonarr"
    spec = DirectorySpec(path=target, mode=0o750)

    plan = plan_directories([spec])
    assert [action.kind for action in plan.actions] == ["mkdir"]

    result = apply_directory_plan(plan)
    assert result.ok
    assert result.created == [target]
    assert target.is_dir()
    assert target.stat().st_mode & 0o777 == 0o750


def test_plan_adjusts_permissions(tmp_path: Path) -> None:
    """Plan should adjust permissions when they differ from expectations."""
    target = tmp_path / "data" / "media"
    target.mkdir(parents=True)
    os.chmod(target, 0o700)

    plan = plan_directories([DirectorySpec(path=target, mode=0o755)])

    assert [action.kind for action in plan.actions] == ["chmod"]
    assert plan.existing == [target]

    result = apply_directory_plan(plan)
    assert result.updated == [target]
    assert target.stat().st_mode & 0o777 == 0o755


def test_plan_warns_on_non_directory(tmp_path: Path) -> None:
    """Plan should warn when the target path is not a directory."""
    target = tmp_path / "data"
    target.write_text("not a directory", encoding="utf-8")

    plan = plan_directories([DirectorySpec(path=target)])

    assert plan.actions == []
    assert plan.warnings
    assert apply_directory_plan(plan).warnings == plan.warnings


def test_plan_is_idempotent_for_current_owner(tmp_path: Path) -> None:
    """A second run against the same tree plans no changes."""
    specs = [
        DirectorySpec(path=tmp_path / name, mode=0o755, uid=os.getuid(), gid=os.getgid())
        for name in ("torrents", "torrents/tv", "media")
    ]

    first = apply_directory_plan(plan_directories(specs))
    assert first.ok
    assert len(first.created) == 3

    second = plan_directories(specs)
    assert second.actions == []
    assert len(second.existing) == 3


def test_chown_failure_is_a_warning(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Ownership changes the user may not make never fail the run."""
    target = tmp_path / "qbittorrent"

    def deny_chown(path: object, uid: int, gid: int) -> None:
        raise PermissionError("operation not permitted")

    monkeypatch.setattr(os, "chown", deny_chown)

    result = apply_directory_plan(
        plan_directories([DirectorySpec(path=target, uid=1000, gid=1000)])
    )

    assert result.ok
    assert target.is_dir()
    assert any("ownership" in warning for warning in result.warnings)


def test_mkdir_failure_is_reported_per_path(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A failing mkdir records an error and the remaining paths still run."""
    blocked = tmp_path / "blocked"
    allowed = tmp_path / "allowed"
    original_mkdir = Path.mkdir

    def fake_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == blocked:
            raise PermissionError("denied")
        original_mkdir(self, *args, **kwargs)  # type: ignore[arg-type]

    monkeypatch.setattr(Path, "mkdir", fake_mkdir)

    result = apply_directory_plan(
        plan_directories([DirectorySpec(path=blocked), DirectorySpec(path=allowed)])
    )

    assert not result.ok
    assert len(result.errors) == 1
    assert str(blocked) in result.errors[0]
    assert result.created == [allowed]
