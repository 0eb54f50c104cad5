"""Base resource class for declared cloud resources."""

from typing import Annotated, ClassVar, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

from gcp_provisioner.resources.markers import Compare, Computed

ReplaceStrategy: TypeAlias = Literal["destroy-first", "create-first"]


class Block(BaseModel):
    """A nested attribute block (e.g. ``settings`` on a database instance)."""

    model_config = ConfigDict(extra="forbid")


class Resource(BaseModel):
    """Base class for all resource schemas.

    Resources are pure data - the fields are the attribute schema of a type.
    Providers know how to CRUD resources. Instance identity (``type.name``)
    and lifecycle flags live on the declaration, not on the model.
    """

    model_config = ConfigDict(extra="forbid")

    resource_type: ClassVar[str]
    # Types whose cloud name must be unique replace destroy-first; stateless
    # bindings can overlap old and new objects.
    replace_strategy: ClassVar[ReplaceStrategy] = "destroy-first"

    id: Annotated[str | None, Computed()] = None


class LabeledResource(Resource):
    """Resource carrying user labels, compared key-by-key."""

    labels: Annotated[dict[str, str], Compare("partial")] = Field(default_factory=dict)
