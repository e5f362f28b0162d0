"""Stop the stack, archive its config folders and bring it back up."""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from .archive import compute_checksum, create_archive, write_checksum_file
from .backups import (
    BackupEntryBuilder,
    BackupError,
    BackupsRegistry,
    backup_identifier,
    directory_size,
    human_size,
    parse_config_folders,
    split_existing_folders,
)
from .bootstrap.filesystem import DirectorySpec, apply_directory_plan, plan_directories
from .stack import StackController, StackError

Reporter = Callable[[str, str], None]


def _silent(level: str, message: str) -> None:
    return None


@dataclass(slots=True, frozen=True)
class BackupResult:
    """Outcome of a successful backup run."""

    backup_id: str
    archive_path: Path
    checksum_path: Path
    size_bytes: int
    folders: tuple[str, ...]
    skipped: tuple[str, ...]
    folder_sizes: dict[str, int] = field(default_factory=dict)
    restarted: bool = False

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "id": self.backup_id,
            "path": str(self.archive_path),
            "checksum_path": str(self.checksum_path),
            "size_bytes": self.size_bytes,
            "folders": list(self.folders),
            "skipped": list(self.skipped),
        }


@dataclass(slots=True)
class BackupJob:
    """Back up every config folder the compose file mounts."""

    config_dir: Path
    backup_dir: Path
    compose_path: Path
    stack: StackController
    registry: BackupsRegistry
    prefix: str = "parr"
    uid: int | None = 1000
    gid: int | None = 1000
    mode: int = 0o755
    report: Reporter = _silent
    now: Callable[[], datetime] = datetime.now

    def run(self) -> BackupResult:
        """Perform the backup; the stack is restarted on every exit path."""
        if not self.config_dir.is_dir():
            raise BackupError(f"DOCKER_CONFIG_DIR ({self.config_dir}) does not exist")
        self.prepare_backup_dir()

        backup_id = backup_identifier(self.prefix, self.now())
        archive_path = self.backup_dir / f"{backup_id}.tar.gz"
        self.report("info", "Starting backup process...")
        self.report("info", f"Config directory: {self.config_dir}")
        self.report("info", f"Backup directory: {self.backup_dir}")
        self.report("info", f"Backup filename: {archive_path.name}")

        try:
            self.stack.stop()
        except StackError as exc:
            raise BackupError(f"Failed to stop stack before backup: {exc}") from exc

        try:
            result = self._archive(backup_id, archive_path)
        except BaseException:
            self._restart_after_failure()
            raise

        restarted = self._restart()
        return BackupResult(
            backup_id=result.backup_id,
            archive_path=result.archive_path,
            checksum_path=result.checksum_path,
            size_bytes=result.size_bytes,
            folders=result.folders,
            skipped=result.skipped,
            folder_sizes=result.folder_sizes,
            restarted=restarted,
        )

    def prepare_backup_dir(self) -> None:
        """Create the backup directory when it is missing."""
        if self.backup_dir.is_dir():
            return
        self.report("info", f"Creating backup directory: {self.backup_dir}")
        spec = DirectorySpec(
            path=self.backup_dir,
            mode=self.mode,
            uid=self.uid,
            gid=self.gid,
            description="backup directory",
        )
        outcome = apply_directory_plan(plan_directories([spec]))
        for warning in outcome.warnings:
            self.report("warning", warning)
        if not outcome.ok:
            raise BackupError(
                f"Failed to create backup directory {self.backup_dir}: {'; '.join(outcome.errors)}"
            )

    def discover_folders(self) -> tuple[list[str], list[str]]:
        """Return ``(present, missing)`` config folders referenced by the compose file."""
        try:
            compose_text = self.compose_path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            name, parent = self.compose_path.name, self.compose_path.parent
            raise BackupError(f"{name} not found in {parent}") from exc
        except OSError as exc:
            raise BackupError(f"Failed to read {self.compose_path}: {exc}") from exc
        return split_existing_folders(self.config_dir, parse_config_folders(compose_text))

    # ------------------------------------------------------------------
    def _archive(self, backup_id: str, archive_path: Path) -> BackupResult:
        self.report("info", "Analyzing docker-compose.yml for DOCKER_CONFIG_DIR volume mounts...")
        present, missing = self.discover_folders()
        for folder in present:
            self.report("info", f"Found config folder: {folder}")
        for folder in missing:
            self.report("warning", f"Config folder not found: {folder} (skipping)")
        if not present:
            raise BackupError("No service config folders found to backup")
        self.report("info", f"Will backup {len(present)} config folders: {' '.join(present)}")

        create_archive(self.config_dir, archive_path, present)
        size = archive_path.stat().st_size
        self.report("info", f"Backup created successfully: {archive_path}")
        self.report("info", f"Backup size: {human_size(size)}")

        folder_sizes = {folder: directory_size(self.config_dir / folder) for folder in present}
        self.report("info", "Backed up config folders:")
        for folder, folder_size in folder_sizes.items():
            self.report("info", f"  - {folder} ({human_size(folder_size)})")

        checksum = compute_checksum(archive_path)
        checksum_path = write_checksum_file(archive_path, checksum)
        entry = BackupEntryBuilder(
            archive_path=archive_path,
            checksum=checksum,
            size_bytes=size,
            folders=present,
            skipped=missing,
        ).build(backup_id=backup_id)
        self.registry.append(entry)

        return BackupResult(
            backup_id=backup_id,
            archive_path=archive_path,
            checksum_path=checksum_path,
            size_bytes=size,
            folders=tuple(present),
            skipped=tuple(missing),
            folder_sizes=folder_sizes,
        )

    def _restart(self) -> bool:
        try:
            return self.stack.start()
        except StackError as exc:
            raise BackupError(f"Backup completed but the stack failed to start: {exc}") from exc

    def _restart_after_failure(self) -> None:
        try:
            self.stack.start()
        except StackError as exc:
            self.report("error", f"Failed to restart stack after backup failure: {exc}")


__all__ = ["BackupJob", "BackupResult"]
