"""VPC network resource models."""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal

from pydantic import Field

from gcp_provisioner.resources.base import Block, Resource
from gcp_provisioner.resources.markers import Compare, Computed, ForceNew


class NetworkResource(Resource):
    """A VPC network. Custom-mode by default; subnets are declared explicitly."""

    resource_type: ClassVar[str] = "network"

    name: Annotated[str, ForceNew()] = Field(pattern=r"^[a-z]([-a-z0-9]*[a-z0-9])?$")
    description: Annotated[str, ForceNew()] = ""
    auto_create_subnetworks: Annotated[bool, ForceNew()] = False
    routing_mode: Literal["REGIONAL", "GLOBAL"] = "REGIONAL"
    mtu: Annotated[int, ForceNew()] = Field(default=1460, ge=1300, le=8896)

    self_link: Annotated[str | None, Computed()] = None
    gateway_ipv4: Annotated[str | None, Computed()] = None


class SecondaryRange(Block):
    range_name: str = Field(min_length=1)
    ip_cidr_range: str


class SubnetworkResource(Resource):
    """A regional subnetwork, optionally with secondary ranges for pods/services."""

    resource_type: ClassVar[str] = "subnetwork"

    name: Annotated[str, ForceNew()]
    network: Annotated[str, ForceNew()]
    region: Annotated[str, ForceNew()]
    # GCP can expand a primary range in place.
    ip_cidr_range: str
    secondary_ip_ranges: list[SecondaryRange] = Field(default_factory=list)
    private_ip_google_access: bool = True

    self_link: Annotated[str | None, Computed()] = None
    gateway_address: Annotated[str | None, Computed()] = None


class RouterResource(Resource):
    """A Cloud Router, needed by Cloud NAT."""

    resource_type: ClassVar[str] = "router"

    name: Annotated[str, ForceNew()]
    network: Annotated[str, ForceNew()]
    region: Annotated[str, ForceNew()]
    bgp_asn: int | None = None

    self_link: Annotated[str | None, Computed()] = None


class NatLogConfig(Block):
    enable: bool = True
    filter: Literal["ERRORS_ONLY", "TRANSLATIONS_ONLY", "ALL"] = "ERRORS_ONLY"


class RouterNatResource(Resource):
    """Cloud NAT for outbound traffic from private nodes."""

    resource_type: ClassVar[str] = "router_nat"

    name: Annotated[str, ForceNew()]
    router: Annotated[str, ForceNew()]
    region: Annotated[str, ForceNew()]
    nat_ip_allocate_option: Literal["AUTO_ONLY", "MANUAL_ONLY"] = "AUTO_ONLY"
    source_subnetwork_ip_ranges_to_nat: Literal[
        "ALL_SUBNETWORKS_ALL_IP_RANGES",
        "ALL_SUBNETWORKS_ALL_PRIMARY_IP_RANGES",
        "LIST_OF_SUBNETWORKS",
    ] = "ALL_SUBNETWORKS_ALL_IP_RANGES"
    log_config: NatLogConfig | None = None


class GlobalAddressResource(Resource):
    """A reserved internal range used for private service peering."""

    resource_type: ClassVar[str] = "global_address"

    name: Annotated[str, ForceNew()]
    network: Annotated[str, ForceNew()]
    purpose: Annotated[Literal["VPC_PEERING", "PRIVATE_SERVICE_CONNECT"], ForceNew()] = (
        "VPC_PEERING"
    )
    address_type: Annotated[Literal["INTERNAL", "EXTERNAL"], ForceNew()] = "INTERNAL"
    prefix_length: Annotated[int, ForceNew()] = Field(default=16, ge=8, le=29)

    address: Annotated[str | None, Computed()] = None
    self_link: Annotated[str | None, Computed()] = None


class ServiceNetworkingConnectionResource(Resource):
    """Private service peering between a VPC and Google-managed services.

    The connection is an effect, not a value: database and cache instances on
    the network declare it in ``depends_on``.
    """

    resource_type: ClassVar[str] = "service_networking_connection"

    network: Annotated[str, ForceNew()]
    service: Annotated[str, ForceNew()] = "servicenetworking.googleapis.com"
    reserved_peering_ranges: Annotated[list[str], Compare("set")] = Field(min_length=1)

    peering: Annotated[str | None, Computed()] = None
