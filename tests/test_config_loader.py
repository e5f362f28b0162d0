"""Configuration loader tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from parrctl.config import AppConfig, ConfigError, load_config


def test_load_config_defaults_when_file_missing(tmp_path: Path) -> None:
    """Defaults apply when no config file is present."""
    config = load_config(config_file=tmp_path / "missing.yml", env={})

    assert isinstance(config, AppConfig)
    assert config.project_dir == Path(".")
    assert config.env_file == ".env"
    assert config.compose_file == "docker-compose.yml"
    assert config.compose.command == "auto"
    assert config.systemd.unit_dir == Path("/etc/systemd/system")
    assert config.systemd.use_sudo is True
    assert config.health.max_attempts == 30
    assert config.health.interval == 10.0
    assert config.timing.service_stop_wait == 10.0
    assert config.timing.compose_stop_wait == 5.0
    assert config.timing.restart_pause == 2.0
    assert config.ownership.uid == 1000
    assert config.ownership.mode == 0o755
    assert config.backups.dir_name == "parr_backup"
    assert config.backups.prefix == "parr"


def test_load_config_reads_yaml_file(tmp_path: Path) -> None:
    """Values are loaded from the YAML config file."""
    cfg = tmp_path / "config.yml"
    cfg.write_text(
        "project_dir: {project}\n"
        "compose:\n"
        "  command: docker-compose\n"
        "health:\n"
        "  max_attempts: 5\n"
        "  interval: 1.5\n"
        "ownership:\n"
        "  mode: '0750'\n".format(project=tmp_path / "stack")
    )

    config = load_config(config_file=cfg, env={})

    assert config.config_file == cfg
    assert config.project_dir == tmp_path / "stack"
    assert config.compose.command == "docker-compose"
    assert config.health.max_attempts == 5
    assert config.health.interval == 1.5
    assert config.ownership.mode == 0o750
    assert config.env_path == tmp_path / "stack" / ".env"
    assert config.compose_path == tmp_path / "stack" / "docker-compose.yml"


def test_env_overrides_take_precedence(tmp_path: Path) -> None:
    """Environment variables override defaults and file settings."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("health:\n  max_attempts: 5\n")
    env = {
        "PARRCTL_CONFIG_FILE": str(cfg),
        "PARRCTL_HEALTH__MAX_ATTEMPTS": "60",
        "PARRCTL_SYSTEMD__USE_SUDO": "false",
        "PARRCTL_TIMING__SETTLE": "0",
        "PARRCTL_LOGS_DIR": str(tmp_path / "logs"),
    }

    config = load_config(env=env)

    assert config.config_file == cfg
    assert config.health.max_attempts == 60
    assert config.systemd.use_sudo is False
    assert config.timing.settle == 0.0
    assert config.logs_dir == tmp_path / "logs"


def test_overrides_win_over_environment(tmp_path: Path) -> None:
    """Programmatic overrides (CLI flags) beat environment variables."""
    env = {"PARRCTL_PROJECT_DIR": str(tmp_path / "from-env")}

    config = load_config(
        config_file=tmp_path / "missing.yml",
        env=env,
        overrides={"project_dir": str(tmp_path / "from-cli")},
    )

    assert config.project_dir == tmp_path / "from-cli"


def test_unit_name_uses_project_directory_basename(tmp_path: Path) -> None:
    """The systemd unit instance is derived from the project directory name."""
    project = tmp_path / "media-stack"
    project.mkdir()

    config = load_config(
        config_file=tmp_path / "missing.yml",
        env={},
        overrides={"project_dir": str(project)},
    )

    assert config.unit_name == "arr@media-stack.service"


def test_unknown_keys_raise(tmp_path: Path) -> None:
    """Unknown top-level keys are rejected."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("surprise: true\n")

    with pytest.raises(ConfigError):
        load_config(config_file=cfg, env={})


def test_unknown_section_keys_raise(tmp_path: Path) -> None:
    """Unknown keys inside a section are rejected."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("health:\n  retries: 3\n")

    with pytest.raises(ConfigError):
        load_config(config_file=cfg, env={})


def test_invalid_compose_command_raises(tmp_path: Path) -> None:
    """Only the supported compose invocations are accepted."""
    with pytest.raises(ConfigError):
        load_config(
            config_file=tmp_path / "missing.yml",
            env={"PARRCTL_COMPOSE__COMMAND": "podman-compose"},
        )


def test_non_positive_attempts_raise(tmp_path: Path) -> None:
    """Health polling needs at least one attempt."""
    with pytest.raises(ConfigError):
        load_config(
            config_file=tmp_path / "missing.yml",
            env={"PARRCTL_HEALTH__MAX_ATTEMPTS": "0"},
        )


def test_negative_timing_raises(tmp_path: Path) -> None:
    """Delays must not be negative."""
    with pytest.raises(ConfigError):
        load_config(
            config_file=tmp_path / "missing.yml",
            env={"PARRCTL_TIMING__RESTART_PAUSE": "-1"},
        )


def test_top_level_must_be_mapping(tmp_path: Path) -> None:
    """A YAML list at the top level is rejected."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("- one\n- two\n")

    with pytest.raises(ConfigError):
        load_config(config_file=cfg, env={})


def test_to_dict_round_trips_mode_as_octal_string(tmp_path: Path) -> None:
    """The serialised view renders permission modes in octal."""
    config = load_config(config_file=tmp_path / "missing.yml", env={})

    data = config.to_dict()

    ownership = data["ownership"]
    assert isinstance(ownership, dict)
    assert ownership["mode"] == "0755"
    assert data["project_dir"] == "."


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("mode: 0500", 0o500),
        ("mode: '0500'", 0o500),
        ("mode: '500'", 0o500),
        ("mode: 0o640", 0o640),
    ],
)
def test_permission_mode_is_read_as_octal(tmp_path: Path, line: str, expected: int) -> None:
    """Leading-zero integers and quoted strings both resolve to octal modes."""
    cfg = tmp_path / "config.yml"
    cfg.write_text(f"ownership:\n  {line}\n")

    config = load_config(config_file=cfg, env={})

    assert config.ownership.mode == expected


def test_permission_mode_rejects_unquoted_decimal(tmp_path: Path) -> None:
    """An unquoted ``755`` is decimal, which is outside the mode range."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("ownership:\n  mode: 755\n")

    with pytest.raises(ConfigError):
        load_config(config_file=cfg, env={})
