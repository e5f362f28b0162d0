"""Shared fixtures for the parrctl test suite."""
from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def _isolate_parrctl_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop parrctl variables inherited from the developer's shell."""
    for key in list(os.environ):
        if key.startswith("PARRCTL_") or key == "INSTALL_TYPE":
            monkeypatch.delenv(key, raising=False)
