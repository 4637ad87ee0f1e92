"""Shared fixtures for unit tests."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest

from gcp_env_provisioner.config import load
from gcp_env_provisioner.core import GCPProvider
from gcp_env_provisioner.engine.handlers import EngineContext

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from gcp_env_provisioner.config.schema import EnvironmentSpec


@pytest.fixture(autouse=True)
def _clean_gcp_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove GCP_* env vars so unit tests don't leak real credentials or settings."""
    for var in list(os.environ):
        if var.startswith("GCP_"):
            monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., EnvironmentSpec]:
    """Factory fixture: write YAML + optional .env, return loaded EnvironmentSpec."""

    def _make(
        yaml_str: str, *, dotenv: str | None = None, environment: str | None = None
    ) -> EnvironmentSpec:
        (tmp_path / "config.yaml").write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load(tmp_path / "config.yaml", environment=environment)

    return _make


@pytest.fixture
def apis() -> dict[str, MagicMock]:
    """One mock discovery resource per Google API name, created on first use."""
    return {}


@pytest.fixture
def ctx(apis: dict[str, MagicMock]) -> EngineContext:
    client = MagicMock()
    client.service.side_effect = lambda name: apis.setdefault(name, MagicMock())
    provider = GCPProvider.from_client(client, poll_interval=0.001)
    return EngineContext(provider=provider, environment="dev")
