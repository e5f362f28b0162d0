"""Tar archive helpers used by the backup workflow."""
from __future__ import annotations

import hashlib
import os
import shutil
import subprocess
from collections.abc import Iterable, Sequence
from pathlib import Path

from .backups import BackupError

_SKIPPED_DIRS: tuple[str, ...] = (
    "cache",
    "Cache",
    "logs",
    "log",
    "Logs",
    "Log",
    "tmp",
    "temp",
    "Temp",
    "transcodes",
    "metadata/library",
)

TAR_EXCLUDES: tuple[str, ...] = (
    *(pattern for name in _SKIPPED_DIRS for pattern in (f"*/{name}", f"*/{name}/*")),
    "*.log",
    "*.tmp",
)


def build_tar_command(
    tar_bin: str,
    archive_path: Path,
    source_dir: Path,
    members: Sequence[str],
    *,
    excludes: Iterable[str] = TAR_EXCLUDES,
) -> list[str]:
    """Return the ``tar`` invocation archiving *members* of *source_dir*."""
    cmd: list[str] = [tar_bin, "-czf", str(archive_path)]
    cmd.extend(f"--exclude={pattern}" for pattern in excludes)
    cmd.extend(["-C", str(source_dir), *members])
    return cmd


def create_archive(
    source_dir: Path,
    archive_path: Path,
    members: Sequence[str],
    *,
    excludes: Iterable[str] = TAR_EXCLUDES,
) -> None:
    """Create a gzip tarball of *members* (relative to *source_dir*)."""
    if not members:
        raise BackupError("Nothing to archive.")
    tar_bin = shutil.which("tar")
    if tar_bin is None:
        raise BackupError("The 'tar' command is required to create archives.")

    cmd = build_tar_command(tar_bin, archive_path, source_dir, members, excludes=excludes)
    result = subprocess.run(  # noqa: S603 - controlled command execution
        cmd,
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        archive_path.unlink(missing_ok=True)
        message = result.stderr or result.stdout or "tar command failed"
        raise BackupError(message.strip())

    try:
        os.chmod(archive_path, 0o640)
    except OSError:
        pass


def compute_checksum(path: Path) -> str:
    """Return the SHA-256 checksum for *path*."""
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def write_checksum_file(archive_path: Path, checksum: str) -> Path:
    """Write ``<archive>.sha256`` and return the checksum path."""
    checksum_path = archive_path.with_name(f"{archive_path.name}.sha256")
    checksum_path.write_text(f"{checksum}  {archive_path.name}\n", encoding="utf-8")
    return checksum_path


__all__ = [
    "TAR_EXCLUDES",
    "build_tar_command",
    "compute_checksum",
    "create_archive",
    "write_checksum_file",
]
