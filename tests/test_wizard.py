"""Tests for the interactive setup flow."""
from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from parrctl.stack import InstallType
from parrctl.wizard import (
    SetupAnswers,
    collect_answers,
    load_defaults,
    merge_env_values,
    next_steps,
    parse_install_choice,
)


class ScriptedPrompt:
    """Return canned replies and remember the questions asked."""

    def __init__(self, replies: Iterable[str]) -> None:
        self.replies = list(replies)
        self.questions: list[tuple[str, str]] = []

    def __call__(self, question: str, default: str) -> str:
        self.questions.append((question, default))
        return self.replies.pop(0)


def _secret() -> str:
    return "f" * 64


def test_defaults_are_used_for_empty_replies() -> None:
    """Blank replies fall back to defaults; WireGuard asks for the key only."""
    prompt = ScriptedPrompt([""] * 9)

    answers = collect_answers({}, prompt, secret_factory=_secret)

    assert len(prompt.questions) == 9
    assert answers.tz == "Europe/Paris"
    assert answers.docker_config_dir == "/docker/appdata"
    assert answers.hostname == "media.local"
    assert answers.install_type is InstallType.SERVICE
    assert answers.data_dir == "/data"
    assert answers.media_dir == "/data/media"
    assert answers.vpn_type == "wireguard"
    assert answers.wireguard_private_key == "your_wireguard_private_key_here"
    assert answers.openvpn_user == "your_username+pmp"
    assert answers.homarr_secret_key == "f" * 64


def test_openvpn_prompts_for_credentials() -> None:
    """OpenVPN mode asks for user and password instead of the key."""
    prompt = ScriptedPrompt(
        [
            "America/New_York",
            "/srv/appdata",
            "media.home",
            "2",
            "/mnt/data",
            "",
            "openvpn",
            "Netherlands",
            "alice",
            "s3cret",
        ]
    )

    answers = collect_answers({"WIREGUARD_PRIVATE_KEY": "keep-me"}, prompt, secret_factory=_secret)

    assert answers.install_type is InstallType.DOCKER
    assert answers.media_dir == "/mnt/data/media"
    assert answers.openvpn_user == "alice"
    assert answers.openvpn_password == "s3cret"
    assert answers.wireguard_private_key == "keep-me"
    assert answers.server_countries == "Netherlands"


def test_existing_values_become_prompt_defaults() -> None:
    """Values loaded from .env are offered as defaults."""
    prompt = ScriptedPrompt([""] * 9)

    answers = collect_answers(
        {"TZ": "Europe/Berlin", "MEDIA_DIR": "/media"},
        prompt,
        secret_factory=_secret,
    )

    assert prompt.questions[0][1] == "Europe/Berlin"
    assert answers.tz == "Europe/Berlin"
    assert answers.media_dir == "/media"


def test_invalid_install_choice_warns_and_defaults_to_service() -> None:
    """Unknown menu replies fall back to the service install."""
    replies = ["", "", "", "7", "", "", "", "", ""]
    messages: list[tuple[str, str]] = []

    answers = collect_answers(
        {},
        ScriptedPrompt(replies),
        report=lambda level, message: messages.append((level, message)),
        secret_factory=_secret,
    )

    assert answers.install_type is InstallType.SERVICE
    assert ("warning", "Invalid choice. Defaulting to service installation.") in messages


def test_parse_install_choice() -> None:
    """Menu replies map onto install types."""
    assert parse_install_choice("") == (InstallType.SERVICE, True)
    assert parse_install_choice(" 2 ") == (InstallType.DOCKER, True)
    assert parse_install_choice("docker") == (InstallType.SERVICE, False)


def test_load_defaults_prefers_env_over_sample(tmp_path: Path) -> None:
    """.env wins over .env.sample; neither means built-in defaults."""
    env_path = tmp_path / ".env"
    sample_path = tmp_path / ".env.sample"

    assert load_defaults(env_path, sample_path) == ({}, None)

    sample_path.write_text("TZ=UTC\n", encoding="utf-8")
    assert load_defaults(env_path, sample_path) == ({"TZ": "UTC"}, ".env.sample")

    env_path.write_text("TZ=Europe/Rome\n", encoding="utf-8")
    assert load_defaults(env_path, sample_path) == ({"TZ": "Europe/Rome"}, ".env")


def _answers(install_type: InstallType = InstallType.SERVICE) -> SetupAnswers:
    return SetupAnswers(
        tz="UTC",
        docker_config_dir="/cfg",
        hostname="media.local",
        install_type=install_type,
        homarr_secret_key="k" * 64,
        data_dir="/data",
        media_dir="/data/media",
        vpn_type="wireguard",
        server_countries="Canada",
        openvpn_user="u",
        openvpn_password="p",
        wireguard_private_key="w",
    )


def test_merge_env_values_keeps_unrelated_keys() -> None:
    """Keys the wizard does not manage survive a re-run."""
    merged = merge_env_values({"TZ": "old", "PUID": "1001"}, _answers())

    assert merged["TZ"] == "UTC"
    assert merged["PUID"] == "1001"
    assert merged["INSTALL_TYPE"] == "service"


def test_next_steps_depend_on_install_type() -> None:
    """Service installs point at systemctl, docker installs at compose."""
    service_steps = next_steps(_answers(), "arr@parr.service", "docker compose")
    docker_steps = next_steps(_answers(InstallType.DOCKER), "arr@parr.service", "docker compose")

    assert "Start the service: sudo systemctl start arr@parr.service" in service_steps
    assert "Run: docker compose up -d" in docker_steps
    assert service_steps[-1] == "Configure your local DNS to point media.local to this machine's IP"
