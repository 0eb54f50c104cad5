"""Memorystore (Redis) cache instance resource model."""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal

from pydantic import Field

from gcp_provisioner.resources.base import LabeledResource
from gcp_provisioner.resources.markers import Compare, Computed, ForceNew


class CacheInstanceResource(LabeledResource):
    resource_type: ClassVar[str] = "cache_instance"

    name: Annotated[str, ForceNew()]
    region: Annotated[str, ForceNew()]
    tier: Annotated[Literal["BASIC", "STANDARD_HA"], ForceNew()] = "BASIC"
    memory_size_gb: int = Field(default=1, ge=1, le=300)
    redis_version: str = "REDIS_7_0"
    authorized_network: Annotated[str, ForceNew()]
    connect_mode: Annotated[
        Literal["DIRECT_PEERING", "PRIVATE_SERVICE_ACCESS"], ForceNew()
    ] = "PRIVATE_SERVICE_ACCESS"
    auth_enabled: bool = False
    redis_configs: Annotated[dict[str, str], Compare("partial")] = Field(default_factory=dict)

    host: Annotated[str | None, Computed()] = None
    port: Annotated[int | None, Computed()] = None
    current_location_id: Annotated[str | None, Computed()] = None
