"""Helper utilities used to lay out the stack's directory tree."""
from __future__ import annotations

from .filesystem import (
    DirectoryAction,
    DirectoryApplyResult,
    DirectoryPlan,
    DirectorySpec,
    apply_directory_plan,
    plan_directories,
)
from .volumes import VolumeLayout, build_volume_layout

__all__ = [
    # filesystem helpers
    "DirectoryAction",
    "DirectoryApplyResult",
    "DirectoryPlan",
    "DirectorySpec",
    "apply_directory_plan",
    "plan_directories",
    # stack layout
    "VolumeLayout",
    "build_volume_layout",
]
