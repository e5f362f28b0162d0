"""Providers wrapping the external commands parrctl drives."""
from __future__ import annotations

from .compose import ComposeError, ComposeProvider, parse_ps_json
from .systemd import SystemdError, SystemdProvider

__all__ = [
    "ComposeError",
    "ComposeProvider",
    "SystemdError",
    "SystemdProvider",
    "parse_ps_json",
]
