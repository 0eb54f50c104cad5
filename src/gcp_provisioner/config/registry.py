"""Default resource type registry factory."""

from __future__ import annotations

from gcp_provisioner.engine.registry import ResourceTypeRegistry
from gcp_provisioner.resources import BUILTIN_RESOURCES
from gcp_provisioner.simulation import SimulatedCloud, SimulatedProvider


def default_registry(cloud: SimulatedCloud | None = None) -> ResourceTypeRegistry:
    """Create a fresh registry with all built-in resource types.

    Every type is served by a ``SimulatedProvider`` over *cloud* (a new
    in-memory cloud when omitted).
    """
    cloud = cloud if cloud is not None else SimulatedCloud()
    registry = ResourceTypeRegistry()
    for model in BUILTIN_RESOURCES:
        registry.register(model, SimulatedProvider(cloud, model))
    return registry
