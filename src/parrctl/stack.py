"""Lifecycle control for the stack under systemd or plain Docker Compose.

The stack either runs as a systemd unit wrapping ``docker compose`` (install
type ``service``) or is driven by ``docker compose`` directly (install type
``docker``). :class:`StackController` hides that difference: ``stop`` records
what was running so that ``start`` restores exactly that state afterwards,
which is what backups and updates rely on.
"""
from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .config import HealthConfig, StackTimingConfig
from .providers.compose import ComposeError, ComposeProvider
from .providers.systemd import SystemdError, SystemdProvider

Reporter = Callable[[str, str], None]


def _silent(level: str, message: str) -> None:
    return None


class StackError(RuntimeError):
    """Raised when a lifecycle step fails."""


class InstallType(str, Enum):
    """How the stack is installed on this host."""

    SERVICE = "service"
    DOCKER = "docker"


class StackStatus(str, Enum):
    """Combined install type and running state."""

    SERVICE_RUNNING = "service_running"
    SERVICE_STOPPED = "service_stopped"
    COMPOSE_RUNNING = "compose_running"
    COMPOSE_STOPPED = "compose_stopped"

    @property
    def running(self) -> bool:
        """Return ``True`` for the running states."""
        return self in (StackStatus.SERVICE_RUNNING, StackStatus.COMPOSE_RUNNING)


def parse_install_type(value: str | None) -> InstallType | None:
    """Return the :class:`InstallType` named by *value*, if any."""
    if value is None:
        return None
    try:
        return InstallType(value.strip().lower())
    except ValueError:
        return None


@dataclass(slots=True, frozen=True)
class HealthCheck:
    """Result of a single health check."""

    healthy: bool
    detail: str


@dataclass(slots=True, frozen=True)
class StackInfo:
    """Summary shown by ``parrctl status``."""

    install_type: InstallType
    status: StackStatus
    unit: str
    hints: tuple[tuple[str, str], ...]

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "install_type": self.install_type.value,
            "status": self.status.value,
            "running": self.status.running,
            "unit": self.unit,
            "hints": [{"label": label, "command": command} for label, command in self.hints],
        }


@dataclass(slots=True)
class StackController:
    """Stop, start, restart and health-check the stack."""

    compose: ComposeProvider
    systemd: SystemdProvider
    unit: str
    install_type_hint: str | None = None
    timing: StackTimingConfig = StackTimingConfig()
    health: HealthConfig = HealthConfig()
    report: Reporter = _silent
    sleep: Callable[[float], None] = time.sleep
    service_was_running: bool = field(default=False, init=False)
    compose_was_running: bool = field(default=False, init=False)

    # Detection -----------------------------------------------------
    def detect_install_type(self) -> InstallType:
        """Return the configured install type, auto-detecting when unset."""
        configured = parse_install_type(self.install_type_hint)
        if configured is not None:
            return configured
        if self.systemd.is_active(self.unit):
            return InstallType.SERVICE
        if self._compose_running():
            return InstallType.DOCKER
        return InstallType.DOCKER

    def status(self) -> StackStatus:
        """Return the current :class:`StackStatus`."""
        if self.detect_install_type() is InstallType.SERVICE:
            if self.systemd.is_active(self.unit):
                return StackStatus.SERVICE_RUNNING
            return StackStatus.SERVICE_STOPPED
        if self._compose_running():
            return StackStatus.COMPOSE_RUNNING
        return StackStatus.COMPOSE_STOPPED

    def info(self) -> StackInfo:
        """Return install type, state and follow-up commands."""
        install_type = self.detect_install_type()
        if install_type is InstallType.SERVICE:
            hints = self.systemd.usage_hints(self.unit)
        else:
            hints = self.compose.usage_hints()
        hints.append(("View container status", f"{self.compose.display_command()} ps"))
        return StackInfo(
            install_type=install_type,
            status=self.status(),
            unit=self.unit,
            hints=tuple(hints),
        )

    # Lifecycle -----------------------------------------------------
    def stop(self) -> bool:
        """Stop the stack if it is running and remember that it was.

        Returns ``True`` when something was stopped.
        """
        install_type = self.detect_install_type()
        if install_type is InstallType.SERVICE and self.systemd.is_active(self.unit):
            self.report("info", f"Stopping {self.unit}...")
            try:
                self.systemd.stop(self.unit)
            except SystemdError as exc:
                raise StackError(f"Failed to stop service: {exc}") from exc
            self.report("success", "Service stopped successfully")
            self.service_was_running = True
            self.report("info", "Waiting for services to stop...")
            self.sleep(self.timing.service_stop_wait)
            return True

        if install_type is InstallType.DOCKER and self._compose_running():
            self.report("info", "Stopping docker-compose stack...")
            try:
                self.compose.down()
            except ComposeError as exc:
                raise StackError(f"Failed to stop stack: {exc}") from exc
            self.report("success", "Stack stopped successfully")
            self.compose_was_running = True
            self.report("info", "Waiting for containers to stop...")
            self.sleep(self.timing.compose_stop_wait)
            return True

        self.report("warning", "Stack doesn't appear to be running")
        return False

    def start(self) -> bool:
        """Start whatever :meth:`stop` stopped; returns ``True`` if started."""
        if self.service_was_running:
            self.report("info", f"Starting {self.unit}...")
            try:
                self.systemd.start(self.unit)
            except SystemdError as exc:
                raise StackError(f"Failed to start service: {exc}") from exc
            self.report("success", "Service started successfully")
            self.service_was_running = False
            return True

        if self.compose_was_running:
            self.report("info", "Starting docker-compose stack...")
            try:
                self.compose.up(detach=True)
            except ComposeError as exc:
                raise StackError(f"Failed to start stack: {exc}") from exc
            self.report("success", "Stack started successfully")
            self.compose_was_running = False
            return True

        self.report("warning", "Stack was not running before operation, leaving it stopped")
        return False

    def bring_up(self) -> bool:
        """Start the stack for the detected install type unless it already runs."""
        if self.status().running:
            self.report("warning", "Stack is already running")
            return False
        if self.detect_install_type() is InstallType.SERVICE:
            self.service_was_running = True
        else:
            self.compose_was_running = True
        return self.start()

    def restart(self) -> bool:
        """Stop then start the stack; returns ``True`` if it was started again."""
        self.report("info", "Restarting stack...")
        try:
            self.stop()
        except StackError as exc:
            raise StackError(f"Failed to stop stack for restart: {exc}") from exc
        self.sleep(self.timing.restart_pause)
        return self.start()

    # Health --------------------------------------------------------
    def check_health(self, install_type: InstallType | None = None) -> HealthCheck:
        """Check the stack health once."""
        mode = install_type or self.detect_install_type()
        if mode is InstallType.SERVICE:
            if self.systemd.is_active(self.unit):
                return HealthCheck(True, "Service is running and healthy!")
            return HealthCheck(False, "Service not yet ready")

        try:
            unhealthy = self.compose.unhealthy_containers()
        except ComposeError as exc:
            return HealthCheck(False, str(exc))
        if unhealthy:
            return HealthCheck(False, f"Some containers are unhealthy: {' '.join(unhealthy)}")

        running = len(self.compose.running_services())
        total = len(self.compose.configured_services())
        if running == total and running > 0:
            return HealthCheck(True, "All services are running and healthy!")
        return HealthCheck(False, f"{running}/{total} services running")

    def wait_for_health(
        self,
        max_attempts: int | None = None,
        interval: float | None = None,
        *,
        install_type: InstallType | None = None,
    ) -> bool:
        """Poll :meth:`check_health` up to *max_attempts* times."""
        attempts = max_attempts if max_attempts is not None else self.health.max_attempts
        delay = interval if interval is not None else self.health.interval
        self.report("info", "Checking stack health...")
        for attempt in range(1, attempts + 1):
            check = self.check_health(install_type)
            level = "success" if check.healthy else "warning"
            self.report(level, f"Attempt {attempt}/{attempts}: {check.detail}")
            if check.healthy:
                return True
            if attempt < attempts:
                self.sleep(delay)
        self.report("error", "Health check timeout. Some services may not be fully ready.")
        return False

    # Update --------------------------------------------------------
    def update(self, install_type: InstallType | None = None) -> bool:
        """Pull fresh images and bring the stack back up.

        Returns the outcome of the final health wait. Failing lifecycle steps
        raise :class:`StackError`.
        """
        mode = install_type or parse_install_type(self.install_type_hint) or InstallType.DOCKER
        if mode is InstallType.SERVICE:
            self._update_service()
        else:
            self._update_compose()
        return self.wait_for_health(install_type=InstallType.DOCKER)

    def _update_service(self) -> None:
        if not self.systemd.unit_exists(self.unit):
            raise StackError(
                f"Service {self.unit} not found! Please run setup to install the service first."
            )
        if self.systemd.is_active(self.unit):
            self.report("info", f"Stopping service {self.unit}...")
            try:
                self.systemd.stop(self.unit)
            except SystemdError as exc:
                raise StackError(f"Failed to stop service: {exc}") from exc
            self.report("success", "Service stopped successfully")
        else:
            self.report("warning", f"Service {self.unit} is not running")

        self._pull()

        self.report("info", f"Starting service {self.unit}...")
        try:
            self.systemd.start(self.unit)
        except SystemdError as exc:
            raise StackError(f"Failed to start service: {exc}") from exc
        self.report("success", "Service started successfully")

        self.sleep(self.timing.settle)
        self.report("info", "Checking service status...")
        if not self.systemd.is_active(self.unit):
            raise StackError(
                "Service failed to start properly. "
                f"Check logs with: {self.systemd.logs_command(self.unit)}"
            )
        self.report("success", "Service is running")

    def _update_compose(self) -> None:
        if self._compose_running():
            self.report("info", "Stopping Docker stack...")
            try:
                self.compose.down()
            except ComposeError as exc:
                raise StackError(f"Failed to stop stack: {exc}") from exc
            self.report("success", "Stack stopped successfully")
        else:
            self.report("warning", "Docker stack is not running")

        self._pull()

        self.report("info", "Starting Docker stack...")
        try:
            self.compose.up(detach=True)
        except ComposeError as exc:
            raise StackError(f"Failed to start stack: {exc}") from exc
        self.report("success", "Stack started successfully")
        self.sleep(self.timing.settle)

    def _pull(self) -> None:
        self.report("info", "Pulling latest Docker images...")
        try:
            self.compose.pull()
        except ComposeError as exc:
            raise StackError(f"Failed to pull images: {exc}") from exc
        self.report("success", "Images updated successfully")

    def _compose_running(self) -> bool:
        try:
            return self.compose.is_running()
        except ComposeError:
            return False


__all__ = [
    "HealthCheck",
    "InstallType",
    "StackController",
    "StackError",
    "StackInfo",
    "StackStatus",
    "parse_install_type",
]
