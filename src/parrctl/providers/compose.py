"""Docker Compose provider for the stack's containers."""
from __future__ import annotations

import json
import shutil
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

AUTO = "auto"


class ComposeError(RuntimeError):
    """Raised when a Docker Compose invocation fails."""


def parse_ps_json(output: str) -> list[dict[str, object]]:
    """Parse ``docker compose ps --format json`` output.

    Older Compose releases print a single JSON array; newer ones print one
    JSON object per line. Both shapes are accepted.
    """
    text = output.strip()
    if not text:
        return []
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, list):
        return [item for item in parsed if isinstance(item, dict)]
    if isinstance(parsed, dict):
        return [parsed]

    entries: list[dict[str, object]] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            item = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ComposeError(f"Unexpected docker compose ps output: {line!r}") from exc
        if isinstance(item, dict):
            entries.append(item)
    return entries


def _lines(output: str | None) -> list[str]:
    return [line.strip() for line in (output or "").splitlines() if line.strip()]


@dataclass(slots=True)
class ComposeProvider:
    """Run ``docker compose`` subcommands inside the project directory."""

    project_dir: Path
    command: str = AUTO
    _resolved: list[str] | None = field(default=None, init=False, repr=False)

    def resolve_command(self) -> list[str]:
        """Return the compose invocation prefix, detecting it when set to ``auto``."""
        if self._resolved is not None:
            return list(self._resolved)
        if self.command != AUTO:
            resolved = self.command.split()
        elif self._docker_compose_plugin_available():
            resolved = ["docker", "compose"]
        elif shutil.which("docker-compose") is not None:
            resolved = ["docker-compose"]
        else:
            raise ComposeError("Neither 'docker compose' nor 'docker-compose' is available")
        self._resolved = resolved
        return list(resolved)

    def display_command(self) -> str:
        """Return the compose command as users would type it."""
        try:
            return " ".join(self.resolve_command())
        except ComposeError:
            return "docker compose"

    def exec_command(self) -> str:
        """Return the compose command with an absolute executable path."""
        parts = self.resolve_command()
        executable = shutil.which(parts[0]) or parts[0]
        return " ".join([executable, *parts[1:]])

    # Queries -------------------------------------------------------
    def running_services(self) -> list[str]:
        """Return services whose containers are running."""
        result = self._run(
            ["ps", "--services", "--filter", "status=running"],
            check=False,
        )
        if result.returncode != 0:
            return []
        return _lines(result.stdout)

    def is_running(self) -> bool:
        """Return ``True`` when at least one service is running."""
        return bool(self.running_services())

    def configured_services(self) -> list[str]:
        """Return every service defined in the compose file."""
        result = self._run(["config", "--services"], check=False)
        if result.returncode != 0:
            return []
        return _lines(result.stdout)

    def containers(self) -> list[dict[str, object]]:
        """Return the container records reported by ``ps --format json``."""
        result = self._run(["ps", "--format", "json"], check=False)
        if result.returncode != 0:
            return []
        return parse_ps_json(result.stdout or "")

    def unhealthy_containers(self) -> list[str]:
        """Return names of containers whose health check reports ``unhealthy``."""
        return [
            str(item.get("Name") or item.get("Service") or "?")
            for item in self.containers()
            if str(item.get("Health", "")).lower() == "unhealthy"
        ]

    # Mutations -----------------------------------------------------
    def pull(self) -> subprocess.CompletedProcess[str]:
        """Pull the latest images for every service."""
        return self._run(["pull"], capture_output=False)

    def up(self, *, detach: bool = True) -> subprocess.CompletedProcess[str]:
        """Create and start the stack."""
        args = ["up", "-d"] if detach else ["up"]
        return self._run(args, capture_output=False)

    def down(self) -> subprocess.CompletedProcess[str]:
        """Stop and remove the stack's containers."""
        return self._run(["down"], capture_output=False)

    def usage_hints(self) -> list[tuple[str, str]]:
        """Return follow-up commands for managing the stack by hand."""
        base = self.display_command()
        return [
            ("Check stack status", f"{base} ps"),
            ("View logs", f"{base} logs -f"),
            ("Stop stack", f"{base} down"),
            ("Start stack", f"{base} up -d"),
        ]

    # ------------------------------------------------------------------
    def _docker_compose_plugin_available(self) -> bool:
        if shutil.which("docker") is None:
            return False
        try:
            result = subprocess.run(  # noqa: S603, S607 - fixed command
                ["docker", "compose", "version"],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError:
            return False
        return result.returncode == 0

    def _run(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        capture_output: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        command = [*self.resolve_command(), *args]
        try:
            result = subprocess.run(  # noqa: S603 - controlled command execution
                command,
                cwd=str(self.project_dir),
                capture_output=capture_output,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ComposeError(f"{command[0]} not found: {exc}") from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            joined = " ".join(command)
            raise ComposeError(f"{joined} failed (exit {result.returncode}): {message}")
        return result


__all__ = ["ComposeError", "ComposeProvider", "parse_ps_json"]
