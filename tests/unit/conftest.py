"""Shared fixtures for unit tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from factories import CTX, FAST_RETRY

from gcp_provisioner.config import load
from gcp_provisioner.config.registry import default_registry
from gcp_provisioner.engine import MemoryStateStore, ProvisionEngine
from gcp_provisioner.simulation import SimulatedCloud

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from gcp_provisioner.config.schema import Config
    from gcp_provisioner.engine.registry import ResourceTypeRegistry

_GCP_ENV_VARS = ("GCP_PROJECT", "GCP_REGION", "GCP_SIMULATION_PATH", "GCP_PROVISIONER_LOG")


@pytest.fixture(autouse=True)
def _clean_gcp_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove GCP_* env vars so unit tests don't leak host config."""
    for var in _GCP_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """Factory fixture: write YAML + optional .env, return loaded Config."""

    def _make(yaml_str: str, *, dotenv: str | None = None) -> Config:
        (tmp_path / "config.yaml").write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load(tmp_path / "config.yaml")

    return _make


@pytest.fixture
def cloud() -> SimulatedCloud:
    return SimulatedCloud()


@pytest.fixture
def registry(cloud: SimulatedCloud) -> ResourceTypeRegistry:
    return default_registry(cloud)


@pytest.fixture
def store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def engine(registry: ResourceTypeRegistry, store: MemoryStateStore) -> ProvisionEngine:
    return ProvisionEngine(registry=registry, store=store, ctx=CTX, retry=FAST_RETRY)
