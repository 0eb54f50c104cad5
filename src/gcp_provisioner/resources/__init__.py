"""Built-in resource schemas."""

from gcp_provisioner.resources.base import Block, LabeledResource, ReplaceStrategy, Resource
from gcp_provisioner.resources.cache import CacheInstanceResource
from gcp_provisioner.resources.cluster import ClusterResource, NodeConfig, NodePoolResource
from gcp_provisioner.resources.database import (
    DatabaseInstanceResource,
    DatabaseResource,
    DatabaseSettings,
    DatabaseUserResource,
)
from gcp_provisioner.resources.iam import ProjectIamMemberResource, ServiceAccountResource
from gcp_provisioner.resources.network import (
    GlobalAddressResource,
    NetworkResource,
    RouterNatResource,
    RouterResource,
    ServiceNetworkingConnectionResource,
    SubnetworkResource,
)

BUILTIN_RESOURCES: tuple[type[Resource], ...] = (
    NetworkResource,
    SubnetworkResource,
    RouterResource,
    RouterNatResource,
    GlobalAddressResource,
    ServiceNetworkingConnectionResource,
    ClusterResource,
    NodePoolResource,
    ServiceAccountResource,
    ProjectIamMemberResource,
    DatabaseInstanceResource,
    DatabaseResource,
    DatabaseUserResource,
    CacheInstanceResource,
)

__all__ = [
    "BUILTIN_RESOURCES",
    "Block",
    "CacheInstanceResource",
    "ClusterResource",
    "DatabaseInstanceResource",
    "DatabaseResource",
    "DatabaseSettings",
    "DatabaseUserResource",
    "GlobalAddressResource",
    "LabeledResource",
    "NetworkResource",
    "NodeConfig",
    "NodePoolResource",
    "ProjectIamMemberResource",
    "ReplaceStrategy",
    "Resource",
    "RouterNatResource",
    "RouterResource",
    "ServiceAccountResource",
    "ServiceNetworkingConnectionResource",
    "SubnetworkResource",
]
