"""Cloud SQL resource models."""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal

from pydantic import Field

from gcp_provisioner.resources.base import Block, Resource
from gcp_provisioner.resources.markers import Compare, Computed, ForceNew, Sensitive


class IpConfiguration(Block):
    ipv4_enabled: bool = False
    private_network: str | None = None
    require_ssl: bool = False


class BackupConfiguration(Block):
    enabled: bool = True
    start_time: str | None = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    binary_log_enabled: bool = False


class DatabaseFlag(Block):
    name: str
    value: str


class DatabaseSettings(Block):
    tier: str = "db-f1-micro"
    availability_type: Literal["ZONAL", "REGIONAL"] = "ZONAL"
    disk_size: int = Field(default=10, ge=10)
    disk_type: Literal["PD_SSD", "PD_HDD"] = "PD_SSD"
    disk_autoresize: bool = True
    ip_configuration: IpConfiguration = Field(default_factory=IpConfiguration)
    backup_configuration: BackupConfiguration = Field(default_factory=BackupConfiguration)
    database_flags: list[DatabaseFlag] = Field(default_factory=list)
    user_labels: Annotated[dict[str, str], Compare("partial")] = Field(default_factory=dict)


class DatabaseInstanceResource(Resource):
    """A Cloud SQL instance.

    Instances on a private network need the service networking connection in
    place first; declare it in ``depends_on``. Instance names stay reserved
    for a week after deletion, hence destroy-first replacement.
    """

    resource_type: ClassVar[str] = "database_instance"

    name: Annotated[str, ForceNew()]
    database_version: Annotated[str, ForceNew()] = Field(pattern=r"^(MYSQL|POSTGRES|SQLSERVER)_")
    region: Annotated[str, ForceNew()]
    settings: DatabaseSettings = Field(default_factory=DatabaseSettings)
    root_password: Annotated[str | None, Sensitive()] = None

    connection_name: Annotated[str | None, Computed()] = None
    private_ip_address: Annotated[str | None, Computed()] = None
    public_ip_address: Annotated[str | None, Computed()] = None
    self_link: Annotated[str | None, Computed()] = None


class DatabaseResource(Resource):
    resource_type: ClassVar[str] = "database"

    name: Annotated[str, ForceNew()]
    instance: Annotated[str, ForceNew()]
    charset: Annotated[str, ForceNew()] = "utf8mb4"
    collation: Annotated[str | None, ForceNew()] = None

    self_link: Annotated[str | None, Computed()] = None


class DatabaseUserResource(Resource):
    resource_type: ClassVar[str] = "database_user"

    name: Annotated[str, ForceNew()]
    instance: Annotated[str, ForceNew()]
    host: Annotated[str | None, ForceNew()] = None
    password: Annotated[str, Sensitive()] = Field(min_length=8)
