"""Resource type registry: schema lookup and provider dispatch."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from gcp_provisioner.engine.errors import UnknownResourceTypeError
from gcp_provisioner.engine.schema import ResourceType, describe_model

if TYPE_CHECKING:
    from gcp_provisioner.engine.provider import ResourceProvider
    from gcp_provisioner.resources.base import Resource


@dataclass(frozen=True)
class ResourceTypeRegistration:
    resource_type: str
    model: type[Resource]
    schema: ResourceType
    provider: ResourceProvider[Any]


class ResourceTypeRegistry:
    """Registry mapping resource_type -> (model, schema, provider).

    New resource types are added by registering a model and a provider; the
    engine's control flow never changes.
    """

    def __init__(self) -> None:
        self._registrations: dict[str, ResourceTypeRegistration] = {}

    def register(self, model: type[Resource], provider: ResourceProvider[Any]) -> None:
        schema = describe_model(model)
        if schema.name in self._registrations:
            raise ValueError(f"Resource type already registered: {schema.name}")

        self._registrations[schema.name] = ResourceTypeRegistration(
            resource_type=schema.name,
            model=model,
            schema=schema,
            provider=provider,
        )

    def get(self, resource_type: str) -> ResourceTypeRegistration:
        try:
            return self._registrations[resource_type]
        except KeyError as e:
            raise UnknownResourceTypeError(resource_type) from e

    def describe(self, resource_type: str) -> ResourceType:
        return self.get(resource_type).schema

    def __contains__(self, resource_type: object) -> bool:
        return resource_type in self._registrations

    def types(self) -> list[str]:
        return list(self._registrations)
