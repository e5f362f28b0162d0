"""Tests for the Docker Compose provider."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence
from pathlib import Path

import pytest

from parrctl.providers import compose as compose_module
from parrctl.providers.compose import ComposeError, ComposeProvider, parse_ps_json


class DummyResult:
    """Simple stand-in for ``subprocess.CompletedProcess``."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the dummy result."""
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def test_parse_ps_json_accepts_array() -> None:
    """Older Compose releases print one JSON array."""
    output = '[{"Name": "sonarr", "Health": ""}, {"Name": "radarr", "Health": "healthy"}]'

    assert [item["Name"] for item in parse_ps_json(output)] == ["sonarr", "radarr"]


def test_parse_ps_json_accepts_ndjson() -> None:
    """Newer Compose releases print one object per line."""
    output = '{"Name": "sonarr"}\n\n{"Name": "radarr"}\n'

    assert [item["Name"] for item in parse_ps_json(output)] == ["sonarr", "radarr"]


def test_parse_ps_json_accepts_single_object_and_empty() -> None:
    """A lone object and empty output are both fine."""
    assert parse_ps_json('{"Name": "homarr"}') == [{"Name": "homarr"}]
    assert parse_ps_json("  \n") == []


def test_parse_ps_json_rejects_garbage() -> None:
    """Non-JSON output raises ComposeError."""
    with pytest.raises(ComposeError):
        parse_ps_json('{"Name": "ok"}\nnot json\n')


def _provider(tmp_path: Path, calls: list[list[str]], responses: dict[str, DummyResult]):
    def fake_run(args: Sequence[str], **kwargs: object) -> DummyResult:
        command = list(args)
        calls.append(command)
        assert kwargs.get("cwd") == str(tmp_path)
        return responses.get(" ".join(command[2:]), DummyResult())

    return ComposeProvider(project_dir=tmp_path, command="docker compose"), fake_run


def test_running_and_configured_services(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Service lists are parsed line by line."""
    calls: list[list[str]] = []
    provider, fake_run = _provider(
        tmp_path,
        calls,
        {
            "ps --services --filter status=running": DummyResult(stdout="sonarr\nradarr\n"),
            "config --services": DummyResult(stdout="sonarr\nradarr\nlidarr\n"),
        },
    )
    monkeypatch.setattr(compose_module.subprocess, "run", fake_run)

    assert provider.running_services() == ["sonarr", "radarr"]
    assert provider.is_running() is True
    assert provider.configured_services() == ["sonarr", "radarr", "lidarr"]
    assert calls[0][:2] == ["docker", "compose"]


def test_failed_query_means_not_running(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A failing ``ps`` is treated as nothing running."""
    provider, fake_run = _provider(
        tmp_path,
        [],
        {"ps --services --filter status=running": DummyResult(returncode=1, stderr="boom")},
    )
    monkeypatch.setattr(compose_module.subprocess, "run", fake_run)

    assert provider.running_services() == []
    assert provider.is_running() is False


def test_unhealthy_containers_reports_names(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Only containers whose health is ``unhealthy`` are returned."""
    provider, fake_run = _provider(
        tmp_path,
        [],
        {
            "ps --format json": DummyResult(
                stdout='{"Name": "sonarr", "Health": "unhealthy"}\n'
                '{"Name": "radarr", "Health": "healthy"}\n'
                '{"Name": "gluetun", "Health": ""}\n'
            )
        },
    )
    monkeypatch.setattr(compose_module.subprocess, "run", fake_run)

    assert provider.unhealthy_containers() == ["sonarr"]


def test_mutations_raise_on_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """``pull``/``up``/``down`` raise ComposeError on non-zero exit."""
    calls: list[list[str]] = []
    provider, fake_run = _provider(
        tmp_path,
        calls,
        {"pull": DummyResult(returncode=18, stderr="registry unreachable")},
    )
    monkeypatch.setattr(compose_module.subprocess, "run", fake_run)

    provider.up()
    provider.down()
    with pytest.raises(ComposeError) as excinfo:
        provider.pull()

    assert "registry unreachable" in str(excinfo.value)
    assert calls == [
        ["docker", "compose", "up", "-d"],
        ["docker", "compose", "down"],
        ["docker", "compose", "pull"],
    ]


def test_auto_detects_plugin(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """``auto`` prefers the ``docker compose`` plugin when it answers."""
    monkeypatch.setattr(compose_module.shutil, "which", lambda name: f"/usr/bin/{name}")
    monkeypatch.setattr(
        compose_module.subprocess,
        "run",
        lambda *args, **kwargs: subprocess.CompletedProcess(args, 0, "v2", ""),
    )

    provider = ComposeProvider(project_dir=tmp_path)

    assert provider.resolve_command() == ["docker", "compose"]
    assert provider.exec_command() == "/usr/bin/docker compose"


def test_auto_falls_back_to_standalone_binary(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Without the plugin the legacy ``docker-compose`` binary is used."""
    monkeypatch.setattr(
        compose_module.shutil,
        "which",
        lambda name: "/usr/local/bin/docker-compose" if name == "docker-compose" else None,
    )

    provider = ComposeProvider(project_dir=tmp_path)

    assert provider.resolve_command() == ["docker-compose"]
    assert provider.display_command() == "docker-compose"


def test_auto_without_any_compose_raises(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """No compose implementation at all is an error."""
    monkeypatch.setattr(compose_module.shutil, "which", lambda name: None)

    provider = ComposeProvider(project_dir=tmp_path)

    with pytest.raises(ComposeError):
        provider.resolve_command()
    assert provider.display_command() == "docker compose"
