"""Interactive setup: collect answers and turn them into ``.env`` values.

Prompting is injected as a callable so the same flow serves the CLI (backed by
``typer.prompt``) and tests (backed by a scripted list of replies).
"""
from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from .arr_configs import generate_secret
from .envfile import load_env_file
from .stack import InstallType

Prompt = Callable[[str, str], str]
Reporter = Callable[[str, str], None]

DEFAULT_TZ = "Europe/Paris"
DEFAULT_CONFIG_DIR = "/docker/appdata"
DEFAULT_HOSTNAME = "media.local"
DEFAULT_DATA_DIR = "/data"
DEFAULT_VPN_TYPE = "wireguard"
DEFAULT_SERVER_COUNTRIES = "United States,Canada,United Kingdom"
DEFAULT_OPENVPN_USER = "your_username+pmp"
DEFAULT_OPENVPN_PASSWORD = "your_password"  # noqa: S105 - placeholder value
DEFAULT_WIREGUARD_KEY = "your_wireguard_private_key_here"

INSTALL_CHOICES: tuple[tuple[str, InstallType, str], ...] = (
    (
        "1",
        InstallType.SERVICE,
        "Service (systemctl) - Recommended for always-on setup (linux only)",
    ),
    ("2", InstallType.DOCKER, "Regular Docker Stack - Manual docker-compose management"),
)


def _silent(level: str, message: str) -> None:
    return None


@dataclass(slots=True, frozen=True)
class SetupAnswers:
    """Everything the wizard asks for, plus the generated Homarr secret."""

    tz: str
    docker_config_dir: str
    hostname: str
    install_type: InstallType
    homarr_secret_key: str
    data_dir: str
    media_dir: str
    vpn_type: str
    server_countries: str
    openvpn_user: str
    openvpn_password: str
    wireguard_private_key: str

    def to_env(self) -> dict[str, str]:
        """Return the ``.env`` values for these answers."""
        return {
            "TZ": self.tz,
            "DATA_DIR": self.data_dir,
            "MEDIA_DIR": self.media_dir,
            "DOCKER_CONFIG_DIR": self.docker_config_dir,
            "INSTALL_TYPE": self.install_type.value,
            "HOSTNAME": self.hostname,
            "HOMARR_SECRET_KEY": self.homarr_secret_key,
            "VPN_TYPE": self.vpn_type,
            "SERVER_COUNTRIES": self.server_countries,
            "OPENVPN_USER": self.openvpn_user,
            "OPENVPN_PASSWORD": self.openvpn_password,
            "WIREGUARD_PRIVATE_KEY": self.wireguard_private_key,
        }

    def summary(self) -> list[tuple[str, str]]:
        """Return the labelled values shown once setup completes."""
        return [
            ("Timezone", self.tz),
            ("Config Directory", self.docker_config_dir),
            ("Hostname", self.hostname),
            ("Data Directory", self.data_dir),
            ("Media Directory", self.media_dir),
            ("VPN Type", self.vpn_type),
            ("Installation Type", self.install_type.value),
        ]


def load_defaults(env_path: Path, sample_path: Path) -> tuple[dict[str, str], str | None]:
    """Return default answers and the file they came from.

    The existing ``.env`` wins; otherwise ``.env.sample`` is used; otherwise
    the built-in defaults apply and the source is ``None``.
    """
    for candidate in (env_path, sample_path):
        if candidate.is_file():
            return load_env_file(candidate), candidate.name
    return {}, None


def parse_install_choice(choice: str) -> tuple[InstallType, bool]:
    """Map a menu reply to an install type; the flag is ``False`` for invalid input."""
    reply = choice.strip()
    if not reply:
        return InstallType.SERVICE, True
    for key, install_type, _label in INSTALL_CHOICES:
        if reply == key:
            return install_type, True
    return InstallType.SERVICE, False


def collect_answers(
    defaults: Mapping[str, str],
    prompt: Prompt,
    *,
    report: Reporter = _silent,
    secret_factory: Callable[[], str] = generate_secret,
) -> SetupAnswers:
    """Ask every setup question in order and return the answers."""

    def ask(question: str, key: str, fallback: str) -> str:
        reply = prompt(question, defaults.get(key) or fallback).strip()
        return reply or defaults.get(key) or fallback

    tz = ask("Timezone (e.g., America/New_York, Europe/Paris)", "TZ", DEFAULT_TZ)
    config_dir = ask(
        "Docker config directory (where app configs will be stored)",
        "DOCKER_CONFIG_DIR",
        DEFAULT_CONFIG_DIR,
    )
    hostname = ask("Hostname for Traefik (your local domain)", "HOSTNAME", DEFAULT_HOSTNAME)

    for key, _install_type, label in INSTALL_CHOICES:
        report("info", f"{key}. {label}")
    install_type, valid = parse_install_choice(prompt("Choose installation type (1 or 2)", "1"))
    if valid:
        report("success", f"Selected: {install_type.value} installation")
    else:
        report("warning", "Invalid choice. Defaulting to service installation.")

    report("info", "Generating secure encryption key for Homarr...")
    homarr_secret = secret_factory()
    report("success", f"Generated {len(homarr_secret)}-character encryption key")

    data_dir = ask(
        "Data directory (downloads, media and backups live here)",
        "DATA_DIR",
        DEFAULT_DATA_DIR,
    )
    media_dir = ask(
        "Media directory (movies, TV shows, etc.)",
        "MEDIA_DIR",
        f"{data_dir.rstrip('/')}/media",
    )

    vpn_type = ask("VPN Type (wireguard or openvpn)", "VPN_TYPE", DEFAULT_VPN_TYPE)
    countries = ask(
        "VPN Server Countries (comma-separated)",
        "SERVER_COUNTRIES",
        DEFAULT_SERVER_COUNTRIES,
    )
    openvpn_user = defaults.get("OPENVPN_USER") or DEFAULT_OPENVPN_USER
    openvpn_password = defaults.get("OPENVPN_PASSWORD") or DEFAULT_OPENVPN_PASSWORD
    wireguard_key = defaults.get("WIREGUARD_PRIVATE_KEY") or DEFAULT_WIREGUARD_KEY
    if vpn_type == "openvpn":
        openvpn_user = ask("OpenVPN Username", "OPENVPN_USER", DEFAULT_OPENVPN_USER)
        openvpn_password = ask("OpenVPN Password", "OPENVPN_PASSWORD", DEFAULT_OPENVPN_PASSWORD)
    else:
        wireguard_key = ask("WireGuard Private Key", "WIREGUARD_PRIVATE_KEY", DEFAULT_WIREGUARD_KEY)

    return SetupAnswers(
        tz=tz,
        docker_config_dir=config_dir,
        hostname=hostname,
        install_type=install_type,
        homarr_secret_key=homarr_secret,
        data_dir=data_dir,
        media_dir=media_dir,
        vpn_type=vpn_type,
        server_countries=countries,
        openvpn_user=openvpn_user,
        openvpn_password=openvpn_password,
        wireguard_private_key=wireguard_key,
    )


def merge_env_values(existing: Mapping[str, str], answers: SetupAnswers) -> dict[str, str]:
    """Overlay *answers* on *existing* values, keeping unrelated keys."""
    merged = dict(existing)
    merged.update(answers.to_env())
    return merged


def next_steps(answers: SetupAnswers, unit: str, compose_command: str) -> list[str]:
    """Return the follow-up instructions printed after setup."""
    if answers.install_type is InstallType.SERVICE:
        start = f"Start the service: sudo systemctl start {unit}"
    else:
        start = f"Run: {compose_command} up -d"
    return [
        "Review the generated .env file if needed",
        "Update your VPN credentials in .env if needed",
        start,
        f"Configure your local DNS to point {answers.hostname} to this machine's IP",
    ]


__all__ = [
    "INSTALL_CHOICES",
    "SetupAnswers",
    "collect_answers",
    "load_defaults",
    "merge_env_values",
    "next_steps",
    "parse_install_choice",
]
