"""Typer-powered command line for ``parrctl``.

Every command builds its collaborators from the layered configuration, records
one structured operation in ``operations.jsonl`` and reports progress on the
console with ``[INFO]``/``[WARN]``/``[ERROR]`` prefixes.
"""
from __future__ import annotations

import os
import textwrap
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .arr_configs import ARR_APPS, generate_all
from .backup_job import BackupJob
from .backups import BackupError, BackupRegistryError, BackupsRegistry, human_size
from .bootstrap import (
    DirectoryApplyResult,
    apply_directory_plan,
    build_volume_layout,
    plan_directories,
)
from .config import AppConfig, ConfigError, load_config
from .envfile import EnvFile, EnvFileError, validate_env_file
from .exit_codes import ExitCode
from .logging import OperationScope, StructuredLogger
from .providers import ComposeError, ComposeProvider, SystemdError, SystemdProvider
from .stack import InstallType, StackController, StackError, parse_install_type
from .templates import TemplateEngine, TemplateError
from .wizard import (
    collect_answers,
    load_defaults,
    merge_env_values,
    next_steps,
)

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    "-c",
    help="Path to an alternate parrctl config file.",
    envvar="PARRCTL_CONFIG_FILE",
)
PROJECT_DIR_OPTION = typer.Option(
    None,
    "--project-dir",
    "-C",
    help="Directory holding docker-compose.yml and .env (defaults to the current directory).",
)
JSON_OPTION = typer.Option(False, "--json", help="Emit machine-readable JSON.")

SECRET_MARKERS = ("KEY", "PASSWORD", "SECRET", "TOKEN")
TRUTHY = ("1", "true", "yes")

_LEVELS: dict[str, tuple[str, str]] = {
    "info": ("blue", "INFO"),
    "success": ("green", "INFO"),
    "warning": ("yellow", "WARN"),
    "error": ("red", "ERROR"),
}

app = typer.Typer(
    add_completion=False,
    no_args_is_help=False,
    help=textwrap.dedent(
        """
        Set up, update and back up the parr media stack.

        Run the commands from the directory that holds docker-compose.yml and
        .env, or point --project-dir at it.
        """
    ).strip(),
)
env_app = typer.Typer(help="Inspect and validate the stack's .env file.")
backups_app = typer.Typer(help="Create and list configuration backups.")

app.add_typer(env_app, name="env")
app.add_typer(backups_app, name="backup")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    logger: StructuredLogger
    templates: TemplateEngine
    systemd: SystemdProvider
    compose: ComposeProvider


def _ensure_runtime(
    ctx: typer.Context,
    config_file: Path | None,
    project_dir: Path | None = None,
) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    overrides: dict[str, object] = {}
    if project_dir is not None:
        overrides["project_dir"] = str(project_dir)

    try:
        config = load_config(config_file=config_file, overrides=overrides)
    except ConfigError as exc:
        console.print(f"[red]Invalid configuration: {escape(str(exc))}[/red]")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc

    templates = TemplateEngine.with_overrides(config.templates_dir)
    runtime = RuntimeContext(
        config=config,
        logger=StructuredLogger(config.logs_dir),
        templates=templates,
        systemd=SystemdProvider(
            templates=templates,
            unit_dir=config.systemd.unit_dir,
            systemctl_bin=config.systemd.systemctl_bin,
            journalctl_bin=config.systemd.journalctl_bin,
            use_sudo=config.systemd.use_sudo,
        ),
        compose=ComposeProvider(
            project_dir=config.project_dir,
            command=config.compose.command,
        ),
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    parent = ctx.find_root()
    if isinstance(parent.obj, RuntimeContext):
        return parent.obj
    return _ensure_runtime(ctx, None, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the parrctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    project_dir: Path | None = PROJECT_DIR_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    runtime = _ensure_runtime(ctx, config_file, project_dir)
    if version:
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"parrctl {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=ExitCode.OK)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------
def _say(level: str, message: str) -> None:
    style, label = _LEVELS.get(level, _LEVELS["info"])
    console.print(f"[{style}]{escape(f'[{label}]')}[/{style}] {escape(message)}")


def _banner(title: str) -> None:
    console.rule(f"[bold]{escape(title)}[/bold]")


class _OperationReporter:
    """Print progress and mirror warnings and errors into the operation record."""

    def __init__(self, op: OperationScope) -> None:
        self.op = op

    def __call__(self, level: str, message: str) -> None:
        _say(level, message)
        if level in ("warning", "error"):
            self.op.add_step("report", status=level, detail=message)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.FAILURE,
    errors: Sequence[str] | None = None,
    context: Mapping[str, object] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    _say("error", message)
    op.error(message, errors=list(errors or [message]), rc=int(rc), context=dict(context or {}))
    raise typer.Exit(code=int(rc))


def _load_env(runtime: RuntimeContext, op: OperationScope, *, hint: str) -> EnvFile:
    env_file = EnvFile.load(runtime.config.env_path)
    if not env_file.exists:
        _command_error(op, f"{runtime.config.env_file} file not found! {hint}")
    op.add_step("env.load", detail=str(env_file.path))
    return env_file


def _env_dir(runtime: RuntimeContext, value: str) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = runtime.config.project_dir / path
    return path


def _build_stack(
    runtime: RuntimeContext,
    op: OperationScope,
    install_type_hint: str | None,
) -> StackController:
    config = runtime.config
    return StackController(
        compose=runtime.compose,
        systemd=runtime.systemd,
        unit=config.unit_name,
        install_type_hint=install_type_hint,
        timing=config.timing,
        health=config.health,
        report=_OperationReporter(op),
    )


def _install_type_hint(env_file: EnvFile) -> str | None:
    return env_file.get("INSTALL_TYPE") or os.environ.get("INSTALL_TYPE")


def _print_hints(hints: Sequence[tuple[str, str]]) -> None:
    console.print("[bold blue]Useful commands:[/bold blue]")
    for label, command in hints:
        console.print(f"  {escape(command):<48} [dim]# {escape(label)}[/dim]")


def _mask(key: str, value: str) -> str:
    if any(marker in key.upper() for marker in SECRET_MARKERS) and len(value) > 4:
        return f"{value[:4]}{'*' * 8}"
    return value


def _create_volumes(
    runtime: RuntimeContext,
    config_dir: Path,
    data_dir: Path,
    op: OperationScope,
) -> DirectoryApplyResult:
    ownership = runtime.config.ownership
    layout = build_volume_layout(
        config_dir,
        data_dir,
        backup_dir_name=runtime.config.backups.dir_name,
        mode=ownership.mode,
        uid=ownership.uid,
        gid=ownership.gid,
    )
    plan = plan_directories(layout.all_specs)
    for warning in plan.warnings:
        _say("warning", warning)
    result = apply_directory_plan(plan)
    for path in result.created:
        _say("info", f"Created directory: {path}")
    for path in plan.existing:
        _say("warning", f"Directory already exists: {path}")
    for warning in result.warnings:
        _say("warning", warning)
    for error in result.errors:
        _say("error", error)
    op.add_step(
        "volumes.apply",
        status="success" if result.ok else "error",
        detail=f"created={len(result.created)} existing={len(plan.existing)}",
    )

    table = Table(show_header=True, header_style="bold magenta", title="Volume directories")
    table.add_column("Service", style="bold")
    table.add_column("Path")
    for spec in layout.services:
        table.add_row(spec.description, str(spec.path))
    table.add_row("Data", str(data_dir))
    table.add_row("Backups", str(layout.backup.path))
    console.print(table)
    return result


def _install_service(runtime: RuntimeContext, op: OperationScope) -> bool:
    unit = runtime.config.unit_name
    _say("info", "Installing as systemd service...")
    try:
        context = {
            "working_directory": str(runtime.config.project_dir.resolve()),
            "compose_exec": runtime.compose.exec_command(),
            "service_user": None,
        }
        changed = runtime.systemd.install_unit(unit, context)
        runtime.systemd.enable(unit)
    except (ComposeError, SystemdError, TemplateError) as exc:
        _say("error", f"Service installation failed: {exc}")
        _say("warning", "Continuing with setup, but service installation failed.")
        op.add_step("systemd.install", status="error", detail=str(exc))
        return False
    path = runtime.systemd.unit_path(unit)
    _say("success", f"Service file {'written to' if changed else 'already current at'} {path}")
    _say("success", "Service enabled successfully!")
    op.add_step("systemd.install", detail=str(path))
    return True


# ---------------------------------------------------------------------------
# setup / create-volumes / generate-configs
# ---------------------------------------------------------------------------
def _typer_prompt(question: str, default: str) -> str:
    return str(typer.prompt(question, default=default))


@app.command()
def setup(ctx: typer.Context) -> None:
    """Interactively configure .env, create volumes and install the service."""
    runtime = _get_runtime(ctx)
    config = runtime.config
    with runtime.logger.operation(
        "setup",
        target={"kind": "project", "path": str(config.project_dir)},
    ) as op:
        _banner("Docker Compose Media Server Setup")
        defaults, source = load_defaults(config.env_path, config.env_sample_path)
        if source == config.env_file:
            _say("success", f"Found existing {source} file. Loading current values...")
        elif source is not None:
            _say(
                "warning",
                f"No existing {config.env_file} file found. Using defaults from {source}...",
            )
        else:
            _say("warning", "No existing .env or .env.sample found. Using built-in defaults...")

        reporter = _OperationReporter(op)
        answers = collect_answers(defaults, _typer_prompt, report=reporter)
        op.add_step("setup.answers", detail=answers.install_type.value)

        _banner("Writing Configuration")
        existing = EnvFile.load(config.env_path)
        env_file = EnvFile(path=config.env_path, values=merge_env_values(existing.values, answers))
        try:
            env_file.write(templates=runtime.templates)
        except (EnvFileError, TemplateError) as exc:
            _command_error(op, f"Failed to write {config.env_file}: {exc}")
        _say("success", f"Configuration written to {config.env_path}")
        op.add_step("env.write", detail=str(config.env_path))

        _banner("Creating Directories")
        volumes = _create_volumes(
            runtime,
            _env_dir(runtime, answers.docker_config_dir),
            _env_dir(runtime, answers.data_dir),
            op,
        )

        _banner("Service Installation")
        service_installed: bool | None = None
        if answers.install_type is InstallType.SERVICE:
            service_installed = _install_service(runtime, op)
        else:
            _say("info", "Skipping service installation (Docker stack mode selected)")

        _banner("Setup Complete!")
        console.print("[green]Your media server is now configured with:[/green]")
        for label, value in answers.summary():
            console.print(f"  • {label}: {escape(value)}")
        console.print()
        console.print("[bold blue]Next steps:[/bold blue]")
        steps = next_steps(answers, config.unit_name, runtime.compose.display_command())
        for number, step in enumerate(steps, start=1):
            console.print(f"  {number}. {escape(step)}")

        warnings = list(volumes.warnings)
        if service_installed is False:
            warnings.append("Service installation failed.")
        context = {
            "install_type": answers.install_type.value,
            "env_file": str(config.env_path),
            "directories_created": len(volumes.created),
        }
        if warnings or volumes.errors:
            op.warning(
                "Setup completed with warnings.",
                warnings=warnings,
                errors=list(volumes.errors),
                changed=1 + len(volumes.created),
                context=context,
            )
        else:
            op.success("Setup completed.", changed=1 + len(volumes.created), context=context)


@app.command("create-volumes")
def create_volumes(ctx: typer.Context) -> None:
    """Create every config and data directory the stack mounts."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "create-volumes",
        target={"kind": "volumes"},
    ) as op:
        env_file = _load_env(runtime, op, hint="Please create it from .env.sample")
        _say("info", f"Loading environment variables from {runtime.config.env_file} file...")
        try:
            values = env_file.require("DOCKER_CONFIG_DIR", "DATA_DIR")
        except EnvFileError as exc:
            _command_error(op, str(exc))
        config_dir = _env_dir(runtime, values["DOCKER_CONFIG_DIR"])
        data_dir = _env_dir(runtime, values["DATA_DIR"])
        _say("info", f"Using DOCKER_CONFIG_DIR: {config_dir}")
        _say("info", f"Using DATA_DIR: {data_dir}")

        result = _create_volumes(runtime, config_dir, data_dir, op)
        context = {
            "config_dir": str(config_dir),
            "data_dir": str(data_dir),
            "created": [str(path) for path in result.created],
        }
        if not result.ok:
            _say(
                "warning",
                "You may need to create these directories manually with appropriate permissions",
            )
            op.warning(
                "Some directories could not be created.",
                warnings=list(result.warnings),
                errors=list(result.errors),
                changed=len(result.created),
                context=context,
            )
            raise typer.Exit(code=ExitCode.FAILURE)

        _say("success", "All directories created successfully!")
        if result.warnings:
            op.warning(
                "Directories created with warnings.",
                warnings=list(result.warnings),
                changed=len(result.created),
                context=context,
            )
        else:
            op.success("Directories created.", changed=len(result.created), context=context)


@app.command("generate-configs")
def generate_configs(
    ctx: typer.Context,
    force: bool = typer.Option(
        False,
        "--force",
        help="Overwrite existing config.xml files (rotates their API keys).",
    ),
    apps: list[str] | None = typer.Option(
        None,
        "--app",
        help="Limit generation to the named application (repeatable).",
    ),
    json_output: bool = JSON_OPTION,
) -> None:
    """Pre-seed the *arr applications with ports, URL bases and API keys."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "generate-configs",
        args={"force": force, "apps": list(apps or []), "json": json_output},
        target={"kind": "arr-configs"},
    ) as op:
        env_file = _load_env(runtime, op, hint="Please run setup first.")
        try:
            values = env_file.require("DOCKER_CONFIG_DIR")
        except EnvFileError as exc:
            _command_error(op, str(exc))
        config_dir = _env_dir(runtime, values["DOCKER_CONFIG_DIR"])
        media_value = env_file.get("MEDIA_DIR")
        if media_value:
            media_dir = _env_dir(runtime, media_value)
        else:
            media_dir = _env_dir(runtime, env_file.get("DATA_DIR") or "/data") / "media"
        delete_after_seed = (env_file.get("DELETE_AFTER_SEED") or "").lower() in TRUTHY

        selected = ARR_APPS
        if apps:
            known = {app.name: app for app in ARR_APPS}
            unknown = sorted(set(apps) - set(known))
            if unknown:
                _command_error(
                    op,
                    f"Unknown application(s): {', '.join(unknown)}. "
                    f"Choose from: {', '.join(sorted(known))}.",
                    rc=ExitCode.VALIDATION,
                )
            selected = tuple(known[name] for name in apps)

        try:
            keys = generate_all(
                config_dir,
                media_dir,
                delete_after_seed=delete_after_seed,
                force=force,
                apps=selected,
                templates=runtime.templates,
            )
        except TemplateError as exc:
            _command_error(op, str(exc))

        payload = [
            {
                "name": app.name,
                "port": app.port,
                "config": str(config_dir / app.name / "config.xml"),
                "api_key": keys[app.name],
            }
            for app in selected
        ]
        if json_output:
            console.print_json(data={"apps": payload})
        else:
            table = Table(show_header=True, header_style="bold magenta")
            table.add_column("App", style="bold")
            table.add_column("Port")
            table.add_column("Config")
            table.add_column("API key")
            for item in payload:
                table.add_row(
                    str(item["name"]),
                    str(item["port"]),
                    str(item["config"]),
                    _mask("API_KEY", str(item["api_key"])),
                )
            console.print(table)
        op.success(
            "Generated application configs.",
            changed=len(payload),
            context={"apps": [item["name"] for item in payload]},
        )


# ---------------------------------------------------------------------------
# update / lifecycle commands
# ---------------------------------------------------------------------------
@app.command()
def update(ctx: typer.Context) -> None:
    """Pull the latest images and restart the stack."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("update", target={"kind": "stack"}) as op:
        _banner("Docker Compose Media Server Update")
        env_file = _load_env(
            runtime, op, hint="Please run setup first to configure your installation."
        )
        install_type = parse_install_type(_install_type_hint(env_file))
        if install_type is None:
            _say("warning", f"INSTALL_TYPE not found in {runtime.config.env_file} file.")
            _say("info", "Assuming docker stack installation...")
            install_type = InstallType.DOCKER
        _say("info", f"Installation type: {install_type.value}")

        stack = _build_stack(runtime, op, install_type.value)
        try:
            healthy = stack.update(install_type)
        except StackError as exc:
            _command_error(op, str(exc), context={"install_type": install_type.value})

        _banner("Update Complete!")
        info = stack.info()
        _print_hints(info.hints)
        context = {"install_type": install_type.value, "healthy": healthy}
        if healthy:
            op.success("Stack updated.", changed=1, context=context)
        else:
            op.warning(
                "Stack updated but health check timed out.",
                warnings=["Some services may not be fully ready."],
                changed=1,
                context=context,
            )


@app.command()
def status(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """Show the install type, running state and management commands."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "status",
        args={"json": json_output},
        target={"kind": "stack"},
    ) as op:
        env_file = EnvFile.load(runtime.config.env_path)
        stack = _build_stack(runtime, op, _install_type_hint(env_file))
        info = stack.info()
        if json_output:
            console.print_json(data=info.to_dict())
        else:
            table = Table(show_header=False)
            table.add_column("Key", style="bold")
            table.add_column("Value")
            table.add_row("Install type", info.install_type.value)
            table.add_row("Unit", info.unit)
            state = "[green]running[/green]" if info.status.running else "[yellow]stopped[/yellow]"
            table.add_row("State", state)
            table.add_row("Status", info.status.value)
            console.print(table)
            _print_hints(info.hints)
        op.success("Reported stack status.", changed=0, context=info.to_dict())


@app.command()
def start(ctx: typer.Context) -> None:
    """Start the stack for the detected install type."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("start", target={"kind": "stack"}) as op:
        env_file = EnvFile.load(runtime.config.env_path)
        stack = _build_stack(runtime, op, _install_type_hint(env_file))
        try:
            started = stack.bring_up()
        except StackError as exc:
            _command_error(op, str(exc))
        op.success("Stack started." if started else "Stack already running.", changed=int(started))


@app.command()
def stop(ctx: typer.Context) -> None:
    """Stop the stack if it is running."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("stop", target={"kind": "stack"}) as op:
        env_file = EnvFile.load(runtime.config.env_path)
        stack = _build_stack(runtime, op, _install_type_hint(env_file))
        try:
            stopped = stack.stop()
        except StackError as exc:
            _command_error(op, str(exc))
        op.success("Stack stopped." if stopped else "Stack was not running.", changed=int(stopped))


@app.command()
def restart(ctx: typer.Context) -> None:
    """Stop the stack, pause briefly and start it again."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("restart", target={"kind": "stack"}) as op:
        env_file = EnvFile.load(runtime.config.env_path)
        stack = _build_stack(runtime, op, _install_type_hint(env_file))
        try:
            started = stack.restart()
        except StackError as exc:
            _command_error(op, str(exc))
        op.success("Stack restarted." if started else "Stack left stopped.", changed=int(started))


@app.command()
def health(
    ctx: typer.Context,
    attempts: int | None = typer.Option(
        None,
        "--attempts",
        min=1,
        help="Number of polls before giving up (defaults to health.max_attempts).",
    ),
    interval: float | None = typer.Option(
        None,
        "--interval",
        min=0.0,
        help="Seconds between polls (defaults to health.interval).",
    ),
) -> None:
    """Wait until the stack reports healthy."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "health",
        args={"attempts": attempts, "interval": interval},
        target={"kind": "stack"},
    ) as op:
        env_file = EnvFile.load(runtime.config.env_path)
        stack = _build_stack(runtime, op, _install_type_hint(env_file))
        if stack.wait_for_health(attempts, interval):
            op.success("Stack healthy.", changed=0)
            return
        op.error("Health check timed out.", rc=int(ExitCode.FAILURE))
        raise typer.Exit(code=ExitCode.FAILURE)


# ---------------------------------------------------------------------------
# backup
# ---------------------------------------------------------------------------
def _backups_registry(runtime: RuntimeContext, backup_dir: Path) -> BackupsRegistry:
    return BackupsRegistry(backup_dir, backup_dir / runtime.config.backups.index)


def _run_backup(ctx: typer.Context) -> None:
    runtime = _get_runtime(ctx)
    config = runtime.config
    with runtime.logger.operation("backup create", target={"kind": "backup"}) as op:
        _banner("Docker Compose Media Server Backup")
        env_file = _load_env(runtime, op, hint="Please run setup first.")
        try:
            values = env_file.require("DOCKER_CONFIG_DIR", "DATA_DIR")
        except EnvFileError as exc:
            _command_error(op, str(exc))
        config_dir = _env_dir(runtime, values["DOCKER_CONFIG_DIR"])
        backup_dir = _env_dir(runtime, values["DATA_DIR"]) / config.backups.dir_name

        stack = _build_stack(runtime, op, _install_type_hint(env_file))
        job = BackupJob(
            config_dir=config_dir,
            backup_dir=backup_dir,
            compose_path=config.compose_path,
            stack=stack,
            registry=_backups_registry(runtime, backup_dir),
            prefix=config.backups.prefix,
            uid=config.ownership.uid,
            gid=config.ownership.gid,
            mode=config.ownership.mode,
            report=_OperationReporter(op),
        )
        try:
            result = job.run()
        except BackupError as exc:
            _command_error(op, str(exc), context={"config_dir": str(config_dir)})

        _banner("Backup Complete!")
        console.print(
            "[green]Your media server configuration has been backed up successfully![/green]"
        )
        _say("info", f"Backup location: {result.archive_path}")
        _say("info", f"Checksum: {result.checksum_path}")
        console.print(
            "[yellow]Note: This backup contains only configuration data, not media files.[/yellow]"
        )
        op.success(
            "Backup created.",
            changed=1,
            backups=[result.backup_id],
            context=result.to_dict(),
        )


@backups_app.callback(invoke_without_command=True)
def backup_root(ctx: typer.Context) -> None:
    """Back up the stack's configuration (runs ``backup create`` by default)."""
    if ctx.invoked_subcommand is None:
        _run_backup(ctx)


@backups_app.command("create")
def backup_create(ctx: typer.Context) -> None:
    """Stop the stack, archive its config folders and start it again."""
    _run_backup(ctx)


@backups_app.command("list")
def backup_list(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """List the backups recorded in the backup index."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "backup list",
        args={"json": json_output},
        target={"kind": "backup", "scope": "registry"},
    ) as op:
        env_file = _load_env(runtime, op, hint="Please run setup first.")
        try:
            values = env_file.require("DATA_DIR")
        except EnvFileError as exc:
            _command_error(op, str(exc))
        backup_dir = _env_dir(runtime, values["DATA_DIR"]) / runtime.config.backups.dir_name
        try:
            entries = _backups_registry(runtime, backup_dir).list_entries()
        except BackupRegistryError as exc:
            _command_error(op, f"Failed to read backup index: {exc}", rc=ExitCode.VALIDATION)

        entries.sort(key=lambda item: str(item.get("created_at", "")), reverse=True)
        if json_output:
            console.print_json(data={"backups": entries})
            op.success("Reported backup list (JSON).", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("ID", style="bold")
        table.add_column("Created At")
        table.add_column("Size")
        table.add_column("Folders")
        table.add_column("Path")
        if not entries:
            table.add_row("(none)", "", "", "", "")
        for entry in entries:
            size = entry.get("size_bytes")
            folders = entry.get("folders")
            table.add_row(
                str(entry.get("id", "")),
                str(entry.get("created_at", "")),
                human_size(size) if isinstance(size, int) else "",
                ", ".join(str(item) for item in folders) if isinstance(folders, list) else "",
                str(entry.get("path", "")),
            )
        console.print(table)
        op.success("Reported backup list.", changed=0)


# ---------------------------------------------------------------------------
# env
# ---------------------------------------------------------------------------
@env_app.command("show")
def env_show(
    ctx: typer.Context,
    reveal: bool = typer.Option(False, "--reveal", help="Print secrets in clear text."),
    json_output: bool = JSON_OPTION,
) -> None:
    """Print the values parsed from .env (secrets masked)."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "env show",
        args={"reveal": reveal, "json": json_output},
        target={"kind": "env", "path": str(runtime.config.env_path)},
    ) as op:
        env_file = _load_env(runtime, op, hint="Please run setup first.")
        values = {
            key: value if reveal else _mask(key, value)
            for key, value in env_file.values.items()
        }
        if json_output:
            console.print_json(data=values)
        else:
            table = Table(show_header=True, header_style="bold magenta")
            table.add_column("Key", style="bold")
            table.add_column("Value")
            for key, value in values.items():
                table.add_row(key, escape(value))
            console.print(table)
        op.success("Rendered .env values.", changed=0)


@env_app.command("validate")
def env_validate(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """Check .env for missing variables, bad lines and leftover placeholders."""
    runtime = _get_runtime(ctx)
    path = runtime.config.env_path
    with runtime.logger.operation(
        "env validate",
        args={"json": json_output},
        target={"kind": "env", "path": str(path)},
    ) as op:
        try:
            findings = validate_env_file(path)
        except EnvFileError as exc:
            _command_error(op, str(exc))

        errors = [finding.message for finding in findings if finding.is_error]
        warnings = [finding.message for finding in findings if not finding.is_error]
        if json_output:
            console.print_json(
                data={"path": str(path), "findings": [finding.to_dict() for finding in findings]}
            )
        else:
            for finding in findings:
                location = f" (line {finding.line})" if finding.line is not None else ""
                _say("error" if finding.is_error else "warning", f"{finding.message}{location}")
            if not errors:
                _say("success", f"{path.name} is valid")

        if errors:
            op.error("Environment file is invalid.", errors=errors, rc=int(ExitCode.VALIDATION))
            raise typer.Exit(code=ExitCode.VALIDATION)
        if warnings:
            op.warning("Environment file has warnings.", warnings=warnings)
        else:
            op.success("Environment file is valid.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["RuntimeContext", "app", "main"]
