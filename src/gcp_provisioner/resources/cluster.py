"""GKE cluster and node pool resource models."""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal

from pydantic import Field

from gcp_provisioner.resources.base import Block, LabeledResource, Resource
from gcp_provisioner.resources.markers import Compare, Computed, ForceNew


class IpAllocationPolicy(Block):
    cluster_secondary_range_name: str
    services_secondary_range_name: str


class PrivateClusterConfig(Block):
    enable_private_nodes: bool = True
    enable_private_endpoint: bool = False
    master_ipv4_cidr_block: str


class AuthorizedNetwork(Block):
    cidr_block: str
    display_name: str = ""


class ClusterResource(LabeledResource):
    """A VPC-native GKE cluster whose nodes live in separately managed pools."""

    resource_type: ClassVar[str] = "cluster"

    name: Annotated[str, ForceNew()]
    location: Annotated[str, ForceNew()]
    network: Annotated[str, ForceNew()]
    subnetwork: Annotated[str, ForceNew()]
    remove_default_node_pool: Annotated[bool, ForceNew()] = True
    initial_node_count: Annotated[int, ForceNew()] = Field(default=1, ge=1)
    release_channel: Literal["RAPID", "REGULAR", "STABLE"] = "REGULAR"
    ip_allocation_policy: Annotated[IpAllocationPolicy | None, ForceNew()] = None
    private_cluster_config: Annotated[PrivateClusterConfig | None, ForceNew()] = None
    master_authorized_networks: list[AuthorizedNetwork] = Field(default_factory=list)
    workload_pool: str | None = None

    endpoint: Annotated[str | None, Computed()] = None
    master_version: Annotated[str | None, Computed()] = None
    self_link: Annotated[str | None, Computed()] = None


class NodeConfig(Block):
    machine_type: str = "e2-medium"
    disk_size_gb: int = Field(default=100, ge=10)
    disk_type: Literal["pd-standard", "pd-balanced", "pd-ssd"] = "pd-standard"
    spot: bool = False
    service_account: str | None = None
    oauth_scopes: Annotated[list[str], Compare("set")] = Field(
        default_factory=lambda: ["https://www.googleapis.com/auth/cloud-platform"]
    )
    labels: dict[str, str] = Field(default_factory=dict)
    tags: Annotated[list[str], Compare("set")] = Field(default_factory=list)


class Autoscaling(Block):
    min_node_count: int = Field(ge=0)
    max_node_count: int = Field(ge=1)


class NodeManagement(Block):
    auto_repair: bool = True
    auto_upgrade: bool = True


class NodePoolResource(Resource):
    """A node pool attached to a cluster. Node shape changes recreate the pool."""

    resource_type: ClassVar[str] = "node_pool"

    name: Annotated[str, ForceNew()]
    cluster: Annotated[str, ForceNew()]
    location: Annotated[str, ForceNew()]
    node_count: int | None = Field(default=None, ge=0)
    autoscaling: Autoscaling | None = None
    management: NodeManagement = Field(default_factory=NodeManagement)
    node_config: Annotated[NodeConfig, ForceNew()] = Field(default_factory=NodeConfig)

    instance_group_urls: Annotated[list[str] | None, Computed()] = None
