"""Engine-facing provider interface."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from gcp_provisioner.resources.base import Resource

if TYPE_CHECKING:
    from gcp_provisioner.core.state import LiveRecord

R = TypeVar("R", bound=Resource)


@dataclass(frozen=True)
class EngineContext:
    """Context passed to providers."""

    project: str
    region: str | None = None


class ResourceProvider(Generic[R]):
    """Base class for resource providers.

    Providers translate resources into cloud API calls, one provider per
    resource type. Subclass and override the CRUD methods.

    Errors must be raised as ``ProviderError`` subclasses so the executor can
    tell transient failures (retried with backoff) from permanent ones. Any
    other exception fails the step without retry.
    """

    def create(self, ctx: EngineContext, desired: R) -> tuple[str, dict[str, Any]]:
        """Create the resource. Return ``(provider_id, live_attributes)``."""
        raise NotImplementedError

    def read(self, ctx: EngineContext, record: LiveRecord) -> dict[str, Any]:
        """Read live attributes. Raise ``ResourceNotFoundError`` if it is gone."""
        raise NotImplementedError

    def update(self, ctx: EngineContext, desired: R, record: LiveRecord) -> dict[str, Any]:
        """Update the resource in place. Return live attributes."""
        raise NotImplementedError

    def delete(self, ctx: EngineContext, record: LiveRecord) -> None:
        """Delete the resource."""
        raise NotImplementedError
