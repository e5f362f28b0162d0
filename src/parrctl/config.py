"""Configuration loader for parrctl.

This module centralises the logic for reading parrctl's own settings from
multiple sources, in increasing order of precedence:

1. Built-in defaults.
2. ``~/.config/parrctl/config.yml`` (or an override path).
3. Environment variables prefixed with ``PARRCTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export PARRCTL_HEALTH__MAX_ATTEMPTS=60
    export PARRCTL_SYSTEMD__USE_SUDO=false

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses``.

These settings describe *how parrctl drives the stack*. The stack's own
settings (``TZ``, ``DATA_DIR`` ...) live in the project's ``.env`` file and are
handled by :mod:`parrctl.envfile`.
"""
from __future__ import annotations

import copy
import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in packaging
    raise RuntimeError(
        "PyYAML is required to load parrctl configuration. Install with "
        "`pip install parrctl` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "PARRCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class ComposeConfig:
    """How Docker Compose is invoked."""

    command: str = "auto"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"command": self.command}


@dataclass(frozen=True)
class SystemdConfig:
    """Systemd integration configuration values."""

    unit_dir: Path = Path("/etc/systemd/system")
    unit_prefix: str = "arr"
    systemctl_bin: str = "systemctl"
    journalctl_bin: str = "journalctl"
    use_sudo: bool = True

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "unit_dir": str(self.unit_dir),
            "unit_prefix": self.unit_prefix,
            "systemctl_bin": self.systemctl_bin,
            "journalctl_bin": self.journalctl_bin,
            "use_sudo": self.use_sudo,
        }


@dataclass(frozen=True)
class HealthConfig:
    """Bounded polling used when waiting for the stack to become healthy."""

    max_attempts: int = 30
    interval: float = 10.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"max_attempts": self.max_attempts, "interval": self.interval}


@dataclass(frozen=True)
class StackTimingConfig:
    """Fixed delays used between lifecycle steps."""

    service_stop_wait: float = 10.0
    compose_stop_wait: float = 5.0
    restart_pause: float = 2.0
    settle: float = 5.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "service_stop_wait": self.service_stop_wait,
            "compose_stop_wait": self.compose_stop_wait,
            "restart_pause": self.restart_pause,
            "settle": self.settle,
        }


@dataclass(frozen=True)
class OwnershipConfig:
    """Ownership and mode applied to created directories (PUID/PGID)."""

    uid: int = 1000
    gid: int = 1000
    mode: int = 0o755

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"uid": self.uid, "gid": self.gid, "mode": f"{self.mode:04o}"}


@dataclass(frozen=True)
class BackupConfig:
    """Backup naming defaults."""

    dir_name: str = "parr_backup"
    prefix: str = "parr"
    index: str = "backups.json"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"dir_name": self.dir_name, "prefix": self.prefix, "index": self.index}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for parrctl."""

    config_file: Path
    project_dir: Path
    env_file: str
    env_sample: str
    compose_file: str
    logs_dir: Path
    templates_dir: Path
    compose: ComposeConfig
    systemd: SystemdConfig
    health: HealthConfig
    timing: StackTimingConfig
    ownership: OwnershipConfig
    backups: BackupConfig

    @property
    def env_path(self) -> Path:
        """Return the project's ``.env`` path."""
        return self.project_dir / self.env_file

    @property
    def env_sample_path(self) -> Path:
        """Return the project's ``.env.sample`` path."""
        return self.project_dir / self.env_sample

    @property
    def compose_path(self) -> Path:
        """Return the project's compose file path."""
        return self.project_dir / self.compose_file

    @property
    def unit_name(self) -> str:
        """Return the systemd template unit instance for this project."""
        return f"{self.systemd.unit_prefix}@{self.project_dir.resolve().name}.service"

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "project_dir": str(self.project_dir),
            "env_file": self.env_file,
            "env_sample": self.env_sample,
            "compose_file": self.compose_file,
            "logs_dir": str(self.logs_dir),
            "templates_dir": str(self.templates_dir),
            "compose": self.compose.to_dict(),
            "systemd": self.systemd.to_dict(),
            "health": self.health.to_dict(),
            "timing": self.timing.to_dict(),
            "ownership": self.ownership.to_dict(),
            "backups": self.backups.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "~/.config/parrctl/config.yml",
    "project_dir": ".",
    "env_file": ".env",
    "env_sample": ".env.sample",
    "compose_file": "docker-compose.yml",
    "logs_dir": "~/.local/state/parrctl/logs",
    "templates_dir": "~/.config/parrctl/templates",
    "compose": {
        "command": "auto",
    },
    "systemd": {
        "unit_dir": "/etc/systemd/system",
        "unit_prefix": "arr",
        "systemctl_bin": "systemctl",
        "journalctl_bin": "journalctl",
        "use_sudo": True,
    },
    "health": {
        "max_attempts": 30,
        "interval": 10.0,
    },
    "timing": {
        "service_stop_wait": 10.0,
        "compose_stop_wait": 5.0,
        "restart_pause": 2.0,
        "settle": 5.0,
    },
    "ownership": {
        "uid": 1000,
        "gid": 1000,
        "mode": "0755",
    },
    "backups": {
        "dir_name": "parr_backup",
        "prefix": "parr",
        "index": "backups.json",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_COMPOSE_COMMANDS = {"auto", "docker compose", "docker-compose"}
_SECTION_KEYS: dict[str, set[str]] = {
    section: set(cast(Mapping[str, object], value).keys())
    for section, value in DEFAULTS.items()
    if isinstance(value, Mapping)
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = copy.deepcopy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override).expanduser()
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR]).expanduser()
    return Path(default_path).expanduser()


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, allowed in _SECTION_KEYS.items():
        value = raw.get(section)
        if value is None:
            continue
        mapping = _as_dict(value, section)
        unknown = set(mapping.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    compose_map = _as_dict(raw.get("compose"), "compose")
    command = str(compose_map.get("command", "auto"))
    if command not in ALLOWED_COMPOSE_COMMANDS:
        allowed_commands = ", ".join(sorted(ALLOWED_COMPOSE_COMMANDS))
        raise ConfigError(
            f"Unsupported compose command '{command}'. Allowed: {allowed_commands}."
        )


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    compose_mapping = _as_dict(raw.get("compose"), "compose")
    compose = ComposeConfig(command=str(compose_mapping.get("command", "auto")))

    systemd_mapping = _as_dict(raw.get("systemd"), "systemd")
    systemd = SystemdConfig(
        unit_dir=_to_path(systemd_mapping.get("unit_dir", "/etc/systemd/system")),
        unit_prefix=str(systemd_mapping.get("unit_prefix", "arr")),
        systemctl_bin=str(systemd_mapping.get("systemctl_bin", "systemctl")),
        journalctl_bin=str(systemd_mapping.get("journalctl_bin", "journalctl")),
        use_sudo=_expect_bool(systemd_mapping.get("use_sudo"), "systemd.use_sudo", default=True),
    )

    health_mapping = _as_dict(raw.get("health"), "health")
    max_attempts = _expect_int(
        health_mapping.get("max_attempts"), "health.max_attempts", default=30
    )
    if max_attempts <= 0:
        raise ConfigError("health.max_attempts must be greater than zero.")
    health = HealthConfig(
        max_attempts=max_attempts,
        interval=_expect_non_negative_float(
            health_mapping.get("interval"), "health.interval", default=10.0
        ),
    )

    timing_mapping = _as_dict(raw.get("timing"), "timing")
    timing = StackTimingConfig(
        service_stop_wait=_expect_non_negative_float(
            timing_mapping.get("service_stop_wait"), "timing.service_stop_wait", default=10.0
        ),
        compose_stop_wait=_expect_non_negative_float(
            timing_mapping.get("compose_stop_wait"), "timing.compose_stop_wait", default=5.0
        ),
        restart_pause=_expect_non_negative_float(
            timing_mapping.get("restart_pause"), "timing.restart_pause", default=2.0
        ),
        settle=_expect_non_negative_float(
            timing_mapping.get("settle"), "timing.settle", default=5.0
        ),
    )

    ownership_mapping = _as_dict(raw.get("ownership"), "ownership")
    ownership = OwnershipConfig(
        uid=_expect_int(ownership_mapping.get("uid"), "ownership.uid", default=1000),
        gid=_expect_int(ownership_mapping.get("gid"), "ownership.gid", default=1000),
        mode=_parse_permission_mode(ownership_mapping.get("mode", "0755"), "ownership.mode"),
    )

    backups_mapping = _as_dict(raw.get("backups"), "backups")
    backups = BackupConfig(
        dir_name=_expect_non_empty(
            backups_mapping.get("dir_name", "parr_backup"), "backups.dir_name"
        ),
        prefix=_expect_non_empty(backups_mapping.get("prefix", "parr"), "backups.prefix"),
        index=_expect_non_empty(backups_mapping.get("index", "backups.json"), "backups.index"),
    )

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        project_dir=_to_path(raw.get("project_dir", ".")),
        env_file=_expect_non_empty(raw.get("env_file", ".env"), "env_file"),
        env_sample=_expect_non_empty(raw.get("env_sample", ".env.sample"), "env_sample"),
        compose_file=_expect_non_empty(
            raw.get("compose_file", "docker-compose.yml"), "compose_file"
        ),
        logs_dir=_to_path(raw.get("logs_dir")),
        templates_dir=_to_path(raw.get("templates_dir")),
        compose=compose,
        systemd=systemd,
        health=health,
        timing=timing,
        ownership=ownership,
        backups=backups,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    node = tree
    for depth, segment in enumerate(path[:-1], start=1):
        child = node.setdefault(segment, {})
        if not isinstance(child, MutableMapping):
            prefix = "__".join(path[:depth]).upper()
            raise ConfigError(f"{ENV_PREFIX}{prefix} is a value, not a section.")
        node = cast(MutableMapping[str, object], child)
    node[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _parse_permission_mode(value: object, label: str) -> int:
    if value is None:
        raise ConfigError(f"{label} must be specified.")
    if isinstance(value, bool):
        raise ConfigError(f"{label} must be an octal integer string. Got boolean {value!r}.")
    if isinstance(value, int):
        mode = value
    elif isinstance(value, str):
        text = value.strip().lower()
        if not text:
            raise ConfigError(f"{label} must be an octal integer string.")
        if text.startswith("0o"):
            text = text[2:]
        try:
            mode = int(text, 8)
        except ValueError as exc:
            raise ConfigError(f"{label} must be an octal integer string.") from exc
    else:
        raise ConfigError(f"{label} must be an octal integer or string.")
    if mode < 0 or mode > 0o777:
        raise ConfigError(f"{label} must be between 0000 and 0777 inclusive.")
    return mode


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_non_empty(value: object, key: str) -> str:
    text = _expect_str(value, key).strip()
    if not text:
        raise ConfigError(f"{key} must be a non-empty string.")
    return text


def _expect_non_negative_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric < 0:
        raise ConfigError(f"{label} must not be negative. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "BackupConfig",
    "ComposeConfig",
    "ConfigError",
    "HealthConfig",
    "OwnershipConfig",
    "StackTimingConfig",
    "SystemdConfig",
    "load_config",
]
