"""YAML configuration loading and convenience plan/apply API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from gcp_provisioner.config.loader import ConfigError, load_config
from gcp_provisioner.config.registry import default_registry
from gcp_provisioner.config.schema import Config, EngineSettings, ProviderConfig
from gcp_provisioner.engine.engine import ProvisionEngine
from gcp_provisioner.engine.provider import EngineContext
from gcp_provisioner.engine.retry import RetryPolicy
from gcp_provisioner.engine.state_store import FileStateStore
from gcp_provisioner.simulation import SimulatedCloud

if TYPE_CHECKING:
    import threading
    from pathlib import Path
    from typing import Any

    from gcp_provisioner.core.state import State
    from gcp_provisioner.engine.builder import ResourceGraph
    from gcp_provisioner.engine.executor import ProgressCallback
    from gcp_provisioner.engine.types import ApplyResult, DriftReport, Plan

__all__ = [
    "Config",
    "ConfigError",
    "EngineSettings",
    "ProviderConfig",
    "apply",
    "drift",
    "engine_from_config",
    "force_unlock",
    "load",
    "load_config",
    "outputs",
    "plan",
    "plan_and_apply",
    "refresh",
    "validate",
]


def load(path: Path | str) -> Config:
    """Load a YAML configuration file."""
    return load_config(path)


def engine_from_config(
    config: Config,
    *,
    cloud: SimulatedCloud | None = None,
    parallelism: int | None = None,
) -> ProvisionEngine:
    """Build a ``ProvisionEngine`` from a ``Config`` instance.

    Without an explicit *cloud*, the simulated cloud persisted at
    ``config.simulation_path`` is used.
    """
    if cloud is None:
        cloud = SimulatedCloud(config.simulation_path)
    settings = config.settings
    return ProvisionEngine(
        registry=default_registry(cloud),
        store=FileStateStore(config.state_path, lock_timeout=settings.lock_timeout),
        ctx=EngineContext(project=config.provider.project, region=config.provider.region),
        parallelism=parallelism or settings.parallelism,
        retry=RetryPolicy(
            attempts=settings.retry_attempts,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
        ),
    )


def validate(config: Config, *, cloud: SimulatedCloud | None = None) -> ResourceGraph:
    """Build the resource graph without touching state or providers."""
    return engine_from_config(config, cloud=cloud).build(config.resources)


def plan(
    config: Config,
    *,
    destroy: bool = False,
    refresh: bool = True,
    cloud: SimulatedCloud | None = None,
) -> Plan:
    """Plan changes for the given configuration."""
    engine = engine_from_config(config, cloud=cloud)
    return engine.plan(config.resources, destroy=destroy, refresh=refresh)


def apply(
    plan_obj: Plan,
    config: Config,
    *,
    progress: ProgressCallback | None = None,
    cancel: threading.Event | None = None,
    parallelism: int | None = None,
    cloud: SimulatedCloud | None = None,
) -> ApplyResult:
    """Apply a previously computed plan and record the configured outputs."""
    engine = engine_from_config(config, cloud=cloud, parallelism=parallelism)
    return engine.apply(
        plan_obj,
        declarations=config.resources,
        outputs=config.outputs,
        progress=progress,
        cancel=cancel,
    )


def plan_and_apply(
    config: Config,
    *,
    destroy: bool = False,
    refresh: bool = True,
    cloud: SimulatedCloud | None = None,
) -> ApplyResult:
    """Plan and apply in one step."""
    if cloud is None:
        cloud = SimulatedCloud(config.simulation_path)
    plan_obj = plan(config, destroy=destroy, refresh=refresh, cloud=cloud)
    return apply(plan_obj, config, cloud=cloud)


def refresh(
    config: Config, *, persist: bool = False, cloud: SimulatedCloud | None = None
) -> tuple[State, State]:
    """Refresh state from live resources.

    Returns ``(before, after)``. The refreshed state is only written back
    when *persist* is set.
    """
    return engine_from_config(config, cloud=cloud).refresh(persist=persist)


def drift(config: Config, *, cloud: SimulatedCloud | None = None) -> DriftReport:
    """Detect drift between the state file and live resources."""
    return engine_from_config(config, cloud=cloud).drift()


def outputs(config: Config, *, cloud: SimulatedCloud | None = None) -> dict[str, Any]:
    """Output values as stored by the last apply."""
    return engine_from_config(config, cloud=cloud).outputs()


def force_unlock(config: Config, lock_id: str) -> None:
    """Release a state lock left behind by a crashed session."""
    FileStateStore(config.state_path).force_unlock(lock_id)
