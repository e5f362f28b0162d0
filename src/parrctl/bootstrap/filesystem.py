"""Plan and apply directory creation with ownership and permissions."""
from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal


@dataclass(slots=True, frozen=True)
class DirectorySpec:
    """Desired state for a single directory."""

    path: Path
    mode: int = 0o755
    uid: int | None = None
    gid: int | None = None
    description: str = ""


@dataclass(slots=True)
class DirectoryAction:
    """Single filesystem change required to satisfy a :class:`DirectorySpec`."""

    kind: Literal["mkdir", "chmod", "chown"]
    spec: DirectorySpec
    description: str


@dataclass(slots=True)
class DirectoryPlan:
    """Actions and warnings derived from comparing specs with the filesystem."""

    specs: list[DirectorySpec] = field(default_factory=list)
    actions: list[DirectoryAction] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    existing: list[Path] = field(default_factory=list)


@dataclass(slots=True)
class DirectoryApplyResult:
    """Outcome of :func:`apply_directory_plan`."""

    created: list[Path] = field(default_factory=list)
    updated: list[Path] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Return ``True`` when no directory failed to be created."""
        return not self.errors


def _ownership_differs(spec: DirectorySpec, stat_result: os.stat_result) -> bool:
    if spec.uid is not None and stat_result.st_uid != spec.uid:
        return True
    return spec.gid is not None and stat_result.st_gid != spec.gid


def plan_directories(specs: Iterable[DirectorySpec]) -> DirectoryPlan:
    """Return the actions needed to bring every spec in *specs* into place."""
    plan = DirectoryPlan()
    for spec in specs:
        plan.specs.append(spec)
        path = spec.path
        wants_owner = spec.uid is not None or spec.gid is not None
        if not path.exists():
            plan.actions.append(
                DirectoryAction("mkdir", spec, f"Create directory {path} ({spec.mode:04o}).")
            )
            if wants_owner:
                plan.actions.append(
                    DirectoryAction(
                        "chown", spec, f"Set ownership ({spec.uid}:{spec.gid}) for {path}."
                    )
                )
            continue

        if not path.is_dir():
            plan.warnings.append(f"{path} exists but is not a directory; skipping.")
            continue

        plan.existing.append(path)
        stat_result = path.stat()
        if (stat_result.st_mode & 0o777) != spec.mode:
            plan.actions.append(
                DirectoryAction("chmod", spec, f"Set permissions ({spec.mode:04o}) for {path}.")
            )
        if wants_owner and _ownership_differs(spec, stat_result):
            plan.actions.append(
                DirectoryAction(
                    "chown", spec, f"Set ownership ({spec.uid}:{spec.gid}) for {path}."
                )
            )
    return plan


def apply_directory_plan(plan: DirectoryPlan) -> DirectoryApplyResult:
    """Execute *plan*.

    Failing to create a directory is an error for that path only; the
    remaining actions still run. Ownership and permission changes that the
    current user is not allowed to make are downgraded to warnings.
    """
    result = DirectoryApplyResult()
    result.warnings.extend(plan.warnings)
    failed: set[Path] = set()

    for action in plan.actions:
        spec = action.spec
        path = spec.path
        if path in failed:
            continue
        if action.kind == "mkdir":
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                failed.add(path)
                result.errors.append(f"Could not create directory {path}: {exc}")
                continue
            result.created.append(path)
            try:
                os.chmod(path, spec.mode)
            except OSError as exc:
                result.warnings.append(f"Could not set permissions for {path}: {exc}")
        elif action.kind == "chmod":
            try:
                os.chmod(path, spec.mode)
            except OSError as exc:
                result.warnings.append(f"Could not set permissions for {path}: {exc}")
                continue
            if path not in result.created and path not in result.updated:
                result.updated.append(path)
        elif action.kind == "chown":
            uid = -1 if spec.uid is None else spec.uid
            gid = -1 if spec.gid is None else spec.gid
            try:
                os.chown(path, uid, gid)
            except OSError as exc:
                result.warnings.append(f"Could not set ownership for {path}: {exc}")
                continue
            if path not in result.created and path not in result.updated:
                result.updated.append(path)
    return result


__all__ = [
    "DirectoryAction",
    "DirectoryApplyResult",
    "DirectoryPlan",
    "DirectorySpec",
    "apply_directory_plan",
    "plan_directories",
]
