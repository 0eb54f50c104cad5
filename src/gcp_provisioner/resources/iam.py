"""Service account and IAM binding resource models."""

from __future__ import annotations

from typing import Annotated, ClassVar

from pydantic import Field

from gcp_provisioner.resources.base import ReplaceStrategy, Resource
from gcp_provisioner.resources.markers import Computed, ForceNew


class ServiceAccountResource(Resource):
    resource_type: ClassVar[str] = "service_account"

    account_id: Annotated[str, ForceNew()] = Field(pattern=r"^[a-z]([-a-z0-9]{4,28}[a-z0-9])$")
    display_name: str = ""
    description: str = ""

    email: Annotated[str | None, Computed()] = None
    unique_id: Annotated[str | None, Computed()] = None


class ProjectIamMemberResource(Resource):
    """A single (role, member) grant on the project.

    Grants are additive and carry no name, so a replacement can be created
    before the old grant is removed.
    """

    resource_type: ClassVar[str] = "project_iam_member"
    replace_strategy: ClassVar[ReplaceStrategy] = "create-first"

    project: Annotated[str, ForceNew()]
    role: Annotated[str, ForceNew()] = Field(pattern=r"^(roles|projects/[^/]+/roles)/")
    member: Annotated[str, ForceNew()]

    etag: Annotated[str | None, Computed()] = None
