"""Static directory layout for the stack's config and data volumes."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .filesystem import DirectorySpec

SERVICE_CONFIG_DIRS: tuple[tuple[str, str], ...] = (
    ("prowlarr/data", "Prowlarr"),
    ("radarr", "Radarr"),
    ("sonarr", "Sonarr"),
    ("bazarr", "Bazarr"),
    ("lidarr", "Lidarr"),
    ("jellyfin", "Jellyfin"),
    ("jellyseer", "Jellyseer"),
    ("homarr", "Homarr"),
    ("gluetun", "Gluetun"),
    ("qbittorrent", "qBittorrent"),
)

MEDIA_CATEGORIES: tuple[str, ...] = ("books", "movies", "music", "tv")

TORRENT_DIRS: tuple[str, ...] = ("torrents", *(f"torrents/{c}" for c in MEDIA_CATEGORIES))
USENET_DIRS: tuple[str, ...] = (
    "usenet",
    "usenet/incomplete",
    "usenet/complete",
    *(f"usenet/complete/{c}" for c in MEDIA_CATEGORIES),
)
MEDIA_DIRS: tuple[str, ...] = ("media", *(f"media/{c}" for c in MEDIA_CATEGORIES))


@dataclass(slots=True, frozen=True)
class VolumeLayout:
    """Directory specs grouped the way ``create-volumes`` reports them."""

    services: tuple[DirectorySpec, ...]
    data: tuple[DirectorySpec, ...]
    backup: DirectorySpec

    @property
    def all_specs(self) -> list[DirectorySpec]:
        """Return every spec in creation order."""
        return [*self.services, *self.data, self.backup]


def build_volume_layout(
    config_dir: Path,
    data_dir: Path,
    *,
    backup_dir_name: str = "parr_backup",
    mode: int = 0o755,
    uid: int | None = 1000,
    gid: int | None = 1000,
) -> VolumeLayout:
    """Return the directory specs for *config_dir* and *data_dir*."""

    def spec(path: Path, description: str) -> DirectorySpec:
        return DirectorySpec(path=path, mode=mode, uid=uid, gid=gid, description=description)

    services = tuple(spec(config_dir / rel, label) for rel, label in SERVICE_CONFIG_DIRS)
    data = (
        spec(data_dir, "Main data directory"),
        *(spec(data_dir / rel, Path(rel).name) for rel in TORRENT_DIRS),
        *(spec(data_dir / rel, Path(rel).name) for rel in USENET_DIRS),
        *(spec(data_dir / rel, Path(rel).name) for rel in MEDIA_DIRS),
    )
    backup = spec(data_dir / backup_dir_name, "Configuration backups")
    return VolumeLayout(services=services, data=data, backup=backup)


__all__ = [
    "MEDIA_CATEGORIES",
    "MEDIA_DIRS",
    "SERVICE_CONFIG_DIRS",
    "TORRENT_DIRS",
    "USENET_DIRS",
    "VolumeLayout",
    "build_volume_layout",
]
