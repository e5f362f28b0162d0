"""Generate first-run configuration for the *arr applications."""
from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from pathlib import Path

from .templates import TemplateEngine, TemplateError

BASE_TEMPLATE = "arr/config.xml.j2"
MEDIA_MANAGEMENT_TEMPLATE = "arr/mediamanagement.json.j2"
DOWNLOAD_CLIENT_TEMPLATE = "arr/downloadclient.json.j2"

DEFAULT_AUTHENTICATION = "Forms"
DOWNLOAD_CLIENT_HOST = "gluetun"
DOWNLOAD_CLIENT_PORT = 8080

_API_KEY = re.compile(r"<ApiKey>([^<]*)</ApiKey>")


@dataclass(slots=True, frozen=True)
class ArrApp:
    """An *arr application parrctl knows how to pre-configure."""

    name: str
    port: int
    category: str | None = None

    @property
    def manages_media(self) -> bool:
        """Return ``True`` when the app imports downloads into a media folder."""
        return self.category is not None


ARR_APPS: tuple[ArrApp, ...] = (
    ArrApp("sonarr", 8989, "tv"),
    ArrApp("radarr", 7878, "movies"),
    ArrApp("lidarr", 8686, "music"),
    ArrApp("prowlarr", 9696),
)


def generate_secret(nbytes: int = 32) -> str:
    """Return a random hex secret of ``2 * nbytes`` characters."""
    return secrets.token_hex(nbytes)


def read_api_key(config_path: Path) -> str | None:
    """Return the ``<ApiKey>`` value stored in *config_path*, if any."""
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError:
        return None
    match = _API_KEY.search(text)
    if match is None or not match.group(1).strip():
        return None
    return match.group(1).strip()


def generate_arr_base_config(
    config_dir: Path,
    name: str,
    port: int,
    *,
    force: bool = False,
    templates: TemplateEngine | None = None,
) -> str:
    """Write ``<config_dir>/<name>/config.xml`` and return its API key.

    An existing file is kept as-is (and its key returned) unless *force* is
    set, so the key other services were configured with stays valid.
    """
    engine = templates or TemplateEngine.with_overrides(None)
    config_path = config_dir / name / "config.xml"
    if config_path.exists() and not force:
        existing = read_api_key(config_path)
        if existing is not None:
            return existing

    api_key = generate_secret(32)
    engine.render_to_path(
        BASE_TEMPLATE,
        config_path,
        {
            "name": name,
            "port": port,
            "api_key": api_key,
            "authentication_method": DEFAULT_AUTHENTICATION,
            "instance_name": name.capitalize(),
        },
    )
    return api_key


def generate_arr_configs(
    config_dir: Path,
    name: str,
    port: int,
    category: str,
    root_folder: Path | str,
    *,
    delete_after_seed: bool = False,
    save_path: Path | str | None = None,
    force: bool = False,
    templates: TemplateEngine | None = None,
) -> str:
    """Write the base config plus media-management and download-client JSON.

    Returns the API key of the application.
    """
    engine = templates or TemplateEngine.with_overrides(None)
    api_key = generate_arr_base_config(
        config_dir, name, port, force=force, templates=engine
    )
    app_config = config_dir / name / "config"
    engine.render_to_path(
        MEDIA_MANAGEMENT_TEMPLATE,
        app_config / "mediamanagement.json",
        {"root_folder": str(root_folder)},
    )
    engine.render_to_path(
        DOWNLOAD_CLIENT_TEMPLATE,
        app_config / "downloadclient.json",
        {
            "delete_after_seed": delete_after_seed,
            "host": DOWNLOAD_CLIENT_HOST,
            "port": DOWNLOAD_CLIENT_PORT,
            "category": category,
            "save_path": str(save_path) if save_path is not None else f"/data/torrents/{category}",
        },
    )
    return api_key


def generate_all(
    config_dir: Path,
    media_dir: Path,
    *,
    delete_after_seed: bool = False,
    force: bool = False,
    apps: tuple[ArrApp, ...] = ARR_APPS,
    templates: TemplateEngine | None = None,
) -> dict[str, str]:
    """Generate configs for every app in *apps*; returns ``name -> api_key``."""
    engine = templates or TemplateEngine.with_overrides(None)
    keys: dict[str, str] = {}
    for app in apps:
        try:
            if app.manages_media and app.category is not None:
                keys[app.name] = generate_arr_configs(
                    config_dir,
                    app.name,
                    app.port,
                    app.category,
                    media_dir / app.category,
                    delete_after_seed=delete_after_seed,
                    force=force,
                    templates=engine,
                )
            else:
                keys[app.name] = generate_arr_base_config(
                    config_dir, app.name, app.port, force=force, templates=engine
                )
        except TemplateError as exc:
            raise TemplateError(f"Failed to generate {app.name} configuration: {exc}") from exc
    return keys


__all__ = [
    "ARR_APPS",
    "ArrApp",
    "generate_all",
    "generate_arr_base_config",
    "generate_arr_configs",
    "generate_secret",
    "read_api_key",
]
