"""Reader, writer and validator for the stack's ``.env`` file.

The file is a flat ``KEY=VALUE`` list consumed by Docker Compose. Parsing is
deliberately forgiving (comments, blank lines and quoted values are accepted)
while :func:`validate_env_text` reports anything Compose or the stack would
trip over.
"""
from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Literal

from .templates import TemplateEngine, TemplateError, write_text_if_changed

QUOTE_CHARS = "\"'"

REQUIRED_VARIABLES: tuple[str, ...] = (
    "TZ",
    "DATA_DIR",
    "DOCKER_CONFIG_DIR",
    "HOSTNAME",
    "VPN_TYPE",
    "SERVER_COUNTRIES",
    "OPENVPN_USER",
    "OPENVPN_PASSWORD",
    "WIREGUARD_PRIVATE_KEY",
    "HOMARR_SECRET_KEY",
)

PLACEHOLDER_VALUES: tuple[str, ...] = (
    "your_username+pmp",
    "your_password",
    "your_wireguard_private_key_here",
    "your_hostname.local",
)

VPN_TYPES = ("wireguard", "openvpn")

ENV_SECTIONS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Base config", ("TZ", "DATA_DIR", "MEDIA_DIR", "DOCKER_CONFIG_DIR", "INSTALL_TYPE")),
    ("Traefik config", ("HOSTNAME",)),
    ("Homarr config", ("HOMARR_SECRET_KEY",)),
    ("Gluetun config", ("VPN_TYPE", "SERVER_COUNTRIES")),
    ("OpenVPN config", ("OPENVPN_USER", "OPENVPN_PASSWORD")),
    ("Wireguard config", ("WIREGUARD_PRIVATE_KEY",)),
)
EXTRA_SECTION_TITLE = "Additional settings"

_KEY_LINE = re.compile(r"^[A-Z_][A-Z0-9_]*=")
_TIMEZONE = re.compile(r"^[A-Z][A-Za-z]+/[A-Z][A-Za-z_]+(?:/[A-Z][A-Za-z_]+)?$")


class EnvFileError(RuntimeError):
    """Raised when the ``.env`` file is missing or incomplete."""


def _clean_value(raw: str) -> str:
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in QUOTE_CHARS:
        return value[1:-1]
    return value


def parse_env_text(text: str) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines into a mapping.

    Comments, blank lines and lines without ``=`` are ignored. Values lose
    surrounding whitespace and quotes; entries with an empty key or value are
    dropped. Later duplicates win.
    """
    values: dict[str, str] = {}
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, raw_value = stripped.partition("=")
        if not sep:
            continue
        key = key.strip()
        value = _clean_value(raw_value)
        if key and value:
            values[key] = value
    return values


def load_env_file(path: Path) -> dict[str, str]:
    """Return the parsed contents of *path*, or an empty mapping when absent."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        raise EnvFileError(f"Failed to read {path}: {exc}") from exc
    return parse_env_text(text)


def build_sections(values: Mapping[str, str]) -> list[dict[str, object]]:
    """Group *values* into the sections written by the setup wizard."""
    sections: list[dict[str, object]] = []
    known: set[str] = set()
    for title, keys in ENV_SECTIONS:
        known.update(keys)
        items = [(key, values[key]) for key in keys if key in values]
        if items:
            sections.append({"title": title, "items": items})
    extras = [(key, value) for key, value in values.items() if key not in known]
    if extras:
        sections.append({"title": EXTRA_SECTION_TITLE, "items": extras})
    return sections


def render_env_file(
    values: Mapping[str, str],
    *,
    generated_at: datetime | None = None,
    templates: TemplateEngine | None = None,
) -> str:
    """Render *values* using the sectioned ``.env`` layout."""
    engine = templates or TemplateEngine.with_overrides(None)
    timestamp = (generated_at or datetime.now()).strftime("%a %b %d %H:%M:%S %Y")
    return engine.render_to_string(
        "env/dotenv.j2",
        {"generated_at": timestamp, "sections": build_sections(values)},
    )


@dataclass(slots=True)
class EnvFile:
    """In-memory view of a project's ``.env`` file."""

    path: Path
    values: dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> EnvFile:
        """Load *path*; a missing file yields an empty view."""
        return cls(path=path, values=load_env_file(path))

    @property
    def exists(self) -> bool:
        """Return ``True`` when the file is present on disk."""
        return self.path.is_file()

    def get(self, key: str, default: str | None = None) -> str | None:
        """Return the value for *key* or *default*."""
        return self.values.get(key, default)

    def require(self, *keys: str) -> dict[str, str]:
        """Return the values for *keys*, raising when any is missing."""
        missing = [key for key in keys if not self.values.get(key)]
        if missing:
            joined = ", ".join(missing)
            raise EnvFileError(f"{joined} not set in {self.path.name} file")
        return {key: self.values[key] for key in keys}

    def update(self, updates: Mapping[str, str]) -> None:
        """Merge *updates* into the view (not persisted until :meth:`write`)."""
        for key, value in updates.items():
            self.values[key] = value

    def write(
        self,
        *,
        generated_at: datetime | None = None,
        templates: TemplateEngine | None = None,
        mode: int = 0o600,
    ) -> bool:
        """Persist the values to :attr:`path`; return ``True`` when changed."""
        content = render_env_file(self.values, generated_at=generated_at, templates=templates)
        try:
            return write_text_if_changed(self.path, content, mode=mode)
        except TemplateError as exc:
            raise EnvFileError(str(exc)) from exc


@dataclass(slots=True, frozen=True)
class EnvFinding:
    """Single validation finding for an ``.env`` file."""

    severity: Literal["error", "warning"]
    message: str
    key: str | None = None
    line: int | None = None

    @property
    def is_error(self) -> bool:
        """Return ``True`` for findings that should fail validation."""
        return self.severity == "error"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "severity": self.severity,
            "message": self.message,
            "key": self.key,
            "line": self.line,
        }


def validate_env_text(
    text: str,
    *,
    required: Iterable[str] = REQUIRED_VARIABLES,
) -> list[EnvFinding]:
    """Return validation findings for the ``.env`` contents in *text*."""
    findings: list[EnvFinding] = []
    declared: set[str] = set()

    if "\t" in text:
        findings.append(EnvFinding("warning", "Found tabs in file, should use spaces"))

    for number, line in enumerate(text.splitlines(), start=1):
        if not line.strip() or line.startswith("#"):
            continue
        declared.add(line.partition("=")[0].strip())
        if not _KEY_LINE.match(line):
            findings.append(
                EnvFinding("error", f"Invalid line format: {line.strip()!r}", line=number)
            )

    values = parse_env_text(text)
    missing = [key for key in required if key not in declared]
    if missing:
        findings.append(
            EnvFinding("error", f"Missing required variables: {' '.join(missing)}")
        )

    tz_value = values.get("TZ")
    if tz_value is not None and not _TIMEZONE.match(tz_value):
        findings.append(
            EnvFinding("warning", f"Timezone format may be invalid: {tz_value}", key="TZ")
        )

    vpn_type = values.get("VPN_TYPE")
    if vpn_type is not None and vpn_type not in VPN_TYPES:
        findings.append(
            EnvFinding(
                "error",
                f"Invalid VPN type: {vpn_type} (should be 'wireguard' or 'openvpn')",
                key="VPN_TYPE",
            )
        )

    install_type = values.get("INSTALL_TYPE")
    if install_type is not None and install_type not in ("service", "docker"):
        findings.append(
            EnvFinding(
                "error",
                f"Invalid install type: {install_type} (should be 'service' or 'docker')",
                key="INSTALL_TYPE",
            )
        )

    for key, value in values.items():
        if value in PLACEHOLDER_VALUES:
            findings.append(
                EnvFinding("warning", f"{key} still holds the placeholder '{value}'", key=key)
            )

    return findings


def validate_env_file(path: Path) -> list[EnvFinding]:
    """Validate the ``.env`` file at *path*."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise EnvFileError(f"{path.name} file not found") from exc
    return validate_env_text(text)


__all__ = [
    "ENV_SECTIONS",
    "EnvFile",
    "EnvFileError",
    "EnvFinding",
    "PLACEHOLDER_VALUES",
    "REQUIRED_VARIABLES",
    "VPN_TYPES",
    "build_sections",
    "load_env_file",
    "parse_env_text",
    "render_env_file",
    "validate_env_file",
    "validate_env_text",
]
