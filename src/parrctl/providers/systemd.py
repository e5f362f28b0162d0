"""Systemd provider for the stack's service unit."""
from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from ..templates import TemplateEngine, TemplateError, write_text_if_changed

UNIT_TEMPLATE = "systemd/arr.service.j2"


class SystemdError(RuntimeError):
    """Raised when systemd operations fail."""


@dataclass(slots=True)
class SystemdProvider:
    """Render, install and drive the systemd unit that runs the stack."""

    templates: TemplateEngine
    unit_dir: Path = Path("/etc/systemd/system")
    systemctl_bin: str = "systemctl"
    journalctl_bin: str = "journalctl"
    use_sudo: bool = True

    def unit_path(self, unit: str) -> Path:
        """Return the full path for *unit* inside the unit directory."""
        return self.unit_dir / unit

    def render_unit(self, context: Mapping[str, object]) -> str:
        """Return the unit file text for *context*."""
        return self.templates.render_to_string(UNIT_TEMPLATE, context)

    def install_unit(self, unit: str, context: Mapping[str, object]) -> bool:
        """Write the unit file for *unit*; reload systemd when it changed."""
        path = self.unit_path(unit)
        content = self.render_unit(context)
        try:
            changed = write_text_if_changed(path, content, mode=0o644)
        except TemplateError:
            if not self._needs_sudo():
                raise
            changed = self._install_with_sudo(path, content)
        if changed:
            self.daemon_reload()
        return changed

    def daemon_reload(self) -> subprocess.CompletedProcess[str]:
        """Ask systemd to reload unit files."""
        return self._systemctl("daemon-reload", privileged=True)

    def enable(self, unit: str) -> subprocess.CompletedProcess[str]:
        """Enable *unit* at boot."""
        return self._systemctl("enable", unit, privileged=True)

    def start(self, unit: str) -> subprocess.CompletedProcess[str]:
        """Start *unit*."""
        return self._systemctl("start", unit, privileged=True)

    def stop(self, unit: str) -> subprocess.CompletedProcess[str]:
        """Stop *unit*."""
        return self._systemctl("stop", unit, privileged=True)

    def is_active(self, unit: str) -> bool:
        """Return ``True`` when ``systemctl is-active --quiet`` succeeds for *unit*."""
        try:
            result = self._run_command(
                [self.systemctl_bin, "is-active", "--quiet", unit],
                check=False,
                error_prefix=f"{self.systemctl_bin} is-active",
                capture_output=True,
            )
        except SystemdError:
            return False
        return result.returncode == 0

    def unit_exists(self, unit: str) -> bool:
        """Return ``True`` when systemd knows a unit file named *unit*."""
        try:
            result = self._run_command(
                [self.systemctl_bin, "list-unit-files", "--no-legend", "--no-pager", unit],
                check=False,
                error_prefix=f"{self.systemctl_bin} list-unit-files",
                capture_output=True,
            )
        except SystemdError:
            return False
        stdout = getattr(result, "stdout", "") or ""
        return any(line.split()[0] == unit for line in stdout.splitlines() if line.strip())

    def logs_command(self, unit: str) -> str:
        """Return the journalctl invocation users can run to follow *unit*."""
        prefix = "sudo " if self.use_sudo else ""
        return f"{prefix}{self.journalctl_bin} -u {unit} -f"

    def usage_hints(self, unit: str) -> list[tuple[str, str]]:
        """Return follow-up commands for managing *unit* by hand."""
        prefix = "sudo " if self.use_sudo else ""
        return [
            ("Check service status", f"{prefix}{self.systemctl_bin} status {unit}"),
            ("View logs", self.logs_command(unit)),
            ("Stop service", f"{prefix}{self.systemctl_bin} stop {unit}"),
            ("Start service", f"{prefix}{self.systemctl_bin} start {unit}"),
        ]

    # ------------------------------------------------------------------
    def _needs_sudo(self) -> bool:
        return self.use_sudo and os.geteuid() != 0 and shutil.which("sudo") is not None

    def _install_with_sudo(self, path: Path, content: str) -> bool:
        try:
            if path.read_text(encoding="utf-8") == content:
                return False
        except OSError:
            pass
        tmp_fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            self._run_command(
                ["sudo", "install", "-m", "0644", str(tmp_path), str(path)],
                check=True,
                error_prefix=f"install {path}",
                capture_output=True,
            )
        finally:
            tmp_path.unlink(missing_ok=True)
        return True

    def _systemctl(
        self,
        command: str,
        unit: str | None = None,
        *,
        privileged: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        args: list[str] = [self.systemctl_bin, command]
        if unit is not None:
            args.append(unit)
        if privileged and self._needs_sudo():
            args.insert(0, "sudo")
        return self._run_command(
            args,
            check=True,
            error_prefix=f"{self.systemctl_bin} {command}",
            capture_output=True,
        )

    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool,
        error_prefix: str,
        capture_output: bool,
    ) -> subprocess.CompletedProcess[str]:
        try:
            result = subprocess.run(  # noqa: S603 - controlled command execution
                list(args),
                capture_output=capture_output,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise SystemdError(f"{args[0]} not found: {exc}") from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise SystemdError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


__all__ = ["SystemdError", "SystemdProvider", "UNIT_TEMPLATE"]
