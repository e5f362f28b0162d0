"""Helpers for managing stack backup archives and their index."""
from __future__ import annotations

import json
import os
import re
import tempfile
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

_CONFIG_VOLUME = re.compile(r"-[ \t]*\$\{DOCKER_CONFIG_DIR\}/([^:\n]+):")


class BackupError(RuntimeError):
    """Raised when backup operations fail."""


class BackupRegistryError(BackupError):
    """Raised when backup index interactions fail."""


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def parse_config_folders(compose_text: str) -> list[str]:
    """Return the config folders mounted from ``${DOCKER_CONFIG_DIR}``.

    Matches volume list items such as ``- ${DOCKER_CONFIG_DIR}/sonarr:/config``
    and returns the sorted, de-duplicated folder names.
    """
    folders = {match.strip() for match in _CONFIG_VOLUME.findall(compose_text)}
    return sorted(folder for folder in folders if folder)


def split_existing_folders(config_dir: Path, folders: Iterable[str]) -> tuple[list[str], list[str]]:
    """Split *folders* into those present under *config_dir* and those missing."""
    present: list[str] = []
    missing: list[str] = []
    for folder in folders:
        if (config_dir / folder).is_dir():
            present.append(folder)
        else:
            missing.append(folder)
    return present, missing


def backup_identifier(prefix: str, now: datetime | None = None) -> str:
    """Return ``<prefix>_<YYYYmmdd_HHMMSS>`` for *now* (local time)."""
    moment = now or datetime.now()
    return f"{prefix}_{moment.strftime('%Y%m%d_%H%M%S')}"


def directory_size(path: Path) -> int:
    """Return the apparent size in bytes of every file below *path*."""
    if path.is_file():
        return path.stat().st_size
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += (Path(root) / name).lstat().st_size
            except OSError:
                continue
    return total


def human_size(size: int) -> str:
    """Format *size* bytes the way ``du -h`` does (``4.0K``, ``12M``)."""
    value = float(size)
    for unit in ("B", "K", "M", "G", "T"):
        if value < 1024 or unit == "T":
            if unit == "B":
                return f"{int(value)}B"
            return f"{value:.1f}{unit}" if value < 10 else f"{value:.0f}{unit}"
        value /= 1024
    return f"{size}B"


@dataclass(slots=True)
class BackupsRegistry:
    """Manage the JSON backup index stored next to the archives."""

    root: Path
    index: Path

    def __post_init__(self) -> None:
        """Normalise root/index paths after initialisation."""
        self.root = self.root.expanduser()
        self.index = self.index.expanduser()

    def read(self) -> dict[str, object]:
        """Return the parsed backups index (empty structure when missing)."""
        if not self.index.exists():
            return {"backups": []}
        try:
            data = json.loads(self.index.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {"backups": []}
        except json.JSONDecodeError as exc:
            raise BackupRegistryError(f"Backup index corrupted ({self.index}): {exc}") from exc
        if not isinstance(data, Mapping):
            raise BackupRegistryError(f"Backup index must be a JSON object ({self.index}).")
        return dict(data)

    def write(self, payload: Mapping[str, object]) -> None:
        """Atomically persist *payload* to the backups index."""
        try:
            self.index.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BackupRegistryError(f"Failed to prepare {self.index.parent}: {exc}") from exc
        tmp_fd, tmp_name = tempfile.mkstemp(
            dir=str(self.index.parent),
            prefix=f".{self.index.name}.",
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=False)
                handle.write("\n")
            os.replace(tmp_path, self.index)
        except OSError as exc:
            raise BackupRegistryError(f"Failed to write backup index: {exc}") from exc
        finally:
            tmp_path.unlink(missing_ok=True)

    def append(self, entry: Mapping[str, object]) -> None:
        """Append *entry* to the backups index."""
        backups = self.read().get("backups")
        updated: list[object] = list(backups) if isinstance(backups, list) else []
        updated.append(dict(entry))
        self.write({"backups": updated})

    def list_entries(self) -> list[dict[str, object]]:
        """Return the recorded backup entries, oldest first."""
        backups = self.read().get("backups", [])
        if not isinstance(backups, list):
            return []
        return [dict(item) for item in backups if isinstance(item, Mapping)]


@dataclass(slots=True)
class BackupEntryBuilder:
    """Helper for constructing backup index entries."""

    archive_path: Path
    checksum: str
    size_bytes: int
    folders: Iterable[str]
    skipped: Iterable[str] = ()

    def build(self, *, backup_id: str) -> dict[str, object]:
        """Return the JSON-serialisable entry for the backup index."""
        entry: dict[str, object] = {
            "id": backup_id,
            "created_at": _now_iso(),
            "path": str(self.archive_path),
            "size_bytes": self.size_bytes,
            "checksum": {"algorithm": "sha256", "value": self.checksum},
            "folders": list(self.folders),
        }
        skipped = list(self.skipped)
        if skipped:
            entry["skipped"] = skipped
        return entry


__all__ = [
    "BackupEntryBuilder",
    "BackupError",
    "BackupRegistryError",
    "BackupsRegistry",
    "backup_identifier",
    "directory_size",
    "human_size",
    "parse_config_folders",
    "split_existing_folders",
]
