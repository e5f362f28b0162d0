"""Tests for backup discovery, archiving and the backup index."""
from __future__ import annotations

import shutil
import subprocess
import tarfile
from datetime import datetime
from pathlib import Path

import pytest

from parrctl.archive import (
    TAR_EXCLUDES,
    build_tar_command,
    compute_checksum,
    create_archive,
    write_checksum_file,
)
from parrctl.backups import (
    BackupEntryBuilder,
    BackupError,
    BackupRegistryError,
    BackupsRegistry,
    backup_identifier,
    directory_size,
    human_size,
    parse_config_folders,
    split_existing_folders,
)

COMPOSE = """\
services:
  sonarr:
    volumes:
      - ${DOCKER_CONFIG_DIR}/sonarr:/config
      - ${DATA_DIR}:/data
  prowlarr:
    volumes:
      -   ${DOCKER_CONFIG_DIR}/prowlarr/data:/config
  radarr:
    volumes:
      - ${DOCKER_CONFIG_DIR}/radarr:/config
  radarr-4k:
    volumes:
      - ${DOCKER_CONFIG_DIR}/radarr:/config:ro
  jellyfin:
    environment:
      - CONFIG=${DOCKER_CONFIG_DIR}/jellyfin:/config
"""


def test_parse_config_folders_is_sorted_and_unique() -> None:
    """Only ``- ${DOCKER_CONFIG_DIR}/<folder>:`` list items are picked up."""
    assert parse_config_folders(COMPOSE) == ["prowlarr/data", "radarr", "sonarr"]


def test_parse_config_folders_stays_on_one_line() -> None:
    """A colon-less item does not swallow the following line."""
    compose = (
        "services:\n"
        "  sonarr:\n"
        "    env_file:\n"
        "      - ${DOCKER_CONFIG_DIR}/secrets.env\n"
        "    volumes:\n"
        "      - ${DOCKER_CONFIG_DIR}/sonarr:/config\n"
    )

    assert parse_config_folders(compose) == ["sonarr"]


def test_split_existing_folders(tmp_path: Path) -> None:
    """Folders missing on disk are separated out."""
    (tmp_path / "sonarr").mkdir()

    present, missing = split_existing_folders(tmp_path, ["radarr", "sonarr"])

    assert present == ["sonarr"]
    assert missing == ["radarr"]


def test_backup_identifier_format() -> None:
    """Identifiers embed a sortable local timestamp."""
    assert backup_identifier("parr", datetime(2024, 1, 2, 3, 4, 5)) == "parr_20240102_030405"


def test_human_size() -> None:
    """Sizes are rendered like ``du -h``."""
    assert human_size(512) == "512B"
    assert human_size(4096) == "4.0K"
    assert human_size(50 * 1024 * 1024) == "50M"


def test_directory_size_sums_files(tmp_path: Path) -> None:
    """Directory size is the sum of file sizes below it."""
    (tmp_path / "a").write_bytes(b"x" * 10)
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "b").write_bytes(b"y" * 5)

    assert directory_size(tmp_path) == 15
    assert directory_size(tmp_path / "a") == 10


def test_tar_command_places_excludes_before_members() -> None:
    """Excludes precede ``-C`` and the member list."""
    cmd = build_tar_command("tar", Path("/b/x.tar.gz"), Path("/cfg"), ["sonarr"])

    assert cmd[:3] == ["tar", "-czf", "/b/x.tar.gz"]
    assert cmd[-3:] == ["-C", "/cfg", "sonarr"]
    assert "--exclude=*/cache" in cmd
    assert "--exclude=*/metadata/library/*" in cmd
    assert "--exclude=*.log" in cmd
    assert len(TAR_EXCLUDES) == 24


@pytest.mark.skipif(shutil.which("tar") is None, reason="tar binary not available")
def test_create_archive_skips_caches_and_logs(tmp_path: Path) -> None:
    """Cache, log and temp content never lands in the archive."""
    config_dir = tmp_path / "appdata"
    sonarr = config_dir / "sonarr"
    (sonarr / "cache").mkdir(parents=True)
    (sonarr / "logs").mkdir()
    (sonarr / "MediaCover").mkdir()
    (sonarr / "config.xml").write_text("<Config/>", encoding="utf-8")
    (sonarr / "cache" / "blob").write_text("cached", encoding="utf-8")
    (sonarr / "logs" / "sonarr.txt").write_text("log", encoding="utf-8")
    (sonarr / "sonarr.log").write_text("log", encoding="utf-8")
    (sonarr / "MediaCover" / "poster.jpg").write_bytes(b"jpg")
    (config_dir / "unrelated").mkdir()
    (config_dir / "unrelated" / "file").write_text("nope", encoding="utf-8")
    archive = tmp_path / "backup.tar.gz"

    create_archive(config_dir, archive, ["sonarr"])

    with tarfile.open(archive, "r:gz") as handle:
        names = set(handle.getnames())
    assert "sonarr/config.xml" in names
    assert "sonarr/MediaCover/poster.jpg" in names
    assert not any("cache" in name for name in names)
    assert not any(name.startswith("sonarr/logs") for name in names)
    assert "sonarr/sonarr.log" not in names
    assert not any(name.startswith("unrelated") for name in names)


def test_create_archive_requires_members(tmp_path: Path) -> None:
    """An empty member list is rejected before tar runs."""
    with pytest.raises(BackupError):
        create_archive(tmp_path, tmp_path / "x.tar.gz", [])


def test_create_archive_failure_removes_partial_file(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A failing tar run raises and leaves no archive behind."""
    archive = tmp_path / "x.tar.gz"

    def fake_run(cmd: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        archive.write_bytes(b"partial")
        return subprocess.CompletedProcess(cmd, 2, "", "tar: sonarr: Cannot stat")

    monkeypatch.setattr("parrctl.archive.shutil.which", lambda name: "/bin/tar")
    monkeypatch.setattr("parrctl.archive.subprocess.run", fake_run)

    with pytest.raises(BackupError, match="Cannot stat"):
        create_archive(tmp_path, archive, ["sonarr"])
    assert not archive.exists()


def test_checksum_sidecar(tmp_path: Path) -> None:
    """The sidecar uses the ``sha256sum`` format."""
    archive = tmp_path / "parr_1.tar.gz"
    archive.write_bytes(b"payload")

    checksum = compute_checksum(archive)
    sidecar = write_checksum_file(archive, checksum)

    assert sidecar.name == "parr_1.tar.gz.sha256"
    assert sidecar.read_text(encoding="utf-8") == f"{checksum}  parr_1.tar.gz\n"
    assert len(checksum) == 64


def test_registry_append_and_list(tmp_path: Path) -> None:
    """Entries appended to the index are listed back in order."""
    registry = BackupsRegistry(tmp_path, tmp_path / "backups.json")
    assert registry.list_entries() == []

    entry = BackupEntryBuilder(
        archive_path=tmp_path / "parr_20240101_000000.tar.gz",
        checksum="abc",
        size_bytes=42,
        folders=["sonarr"],
        skipped=["radarr"],
    ).build(backup_id="parr_20240101_000000")
    registry.append(entry)

    entries = registry.list_entries()
    assert len(entries) == 1
    assert entries[0]["folders"] == ["sonarr"]
    assert entries[0]["skipped"] == ["radarr"]
    assert entries[0]["checksum"] == {"algorithm": "sha256", "value": "abc"}


def test_registry_rejects_corrupt_index(tmp_path: Path) -> None:
    """A corrupt index raises BackupRegistryError."""
    index = tmp_path / "backups.json"
    index.write_text("{not json", encoding="utf-8")

    with pytest.raises(BackupRegistryError):
        BackupsRegistry(tmp_path, index).list_entries()
