"""Configuration models for YAML-based provisioning."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gcp_provisioner.engine.builder import (
    ResourceDeclaration,  # noqa: TC001 - Pydantic needs this at runtime
)
from gcp_provisioner.engine.executor import DEFAULT_PARALLELISM
from gcp_provisioner.engine.state_store import DEFAULT_LOCK_TIMEOUT


class ProviderConfig(BaseSettings):
    """GCP provider settings.

    Fields can be set via YAML (constructor kwargs) or environment variables
    with the ``GCP_`` prefix.  Constructor kwargs take precedence.

    ``simulation_path`` is where the simulated cloud keeps its objects between
    runs; it defaults to a file next to the state file.
    """

    model_config = SettingsConfigDict(env_prefix="GCP_")

    project: str
    region: str | None = None
    simulation_path: Path | None = None


class EngineSettings(BaseModel):
    """Executor and state-store tuning."""

    parallelism: int = Field(default=DEFAULT_PARALLELISM, ge=1)
    retry_attempts: int = Field(default=5, ge=1)
    retry_initial_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=30.0, ge=0)
    lock_timeout: float | None = DEFAULT_LOCK_TIMEOUT

    @model_validator(mode="after")
    def _delays_ordered(self) -> EngineSettings:
        if self.retry_max_delay < self.retry_initial_delay:
            raise ValueError("retry_max_delay must be >= retry_initial_delay")
        return self


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


def _none_to_dict(v: Any) -> Any:
    return v if v is not None else {}


class Config(BaseModel):
    """Provisioning configuration, validated directly from YAML."""

    provider: ProviderConfig
    state_path: Path = Path(".gcp-state.json")
    settings: Annotated[EngineSettings, BeforeValidator(_none_to_dict)] = EngineSettings()
    variables: Annotated[dict[str, Any], BeforeValidator(_none_to_dict)] = {}
    resources: Annotated[list[ResourceDeclaration], BeforeValidator(_none_to_list)] = []
    outputs: Annotated[dict[str, Any], BeforeValidator(_none_to_dict)] = {}
    config_dir: Path = Path()

    @property
    def simulation_path(self) -> Path:
        if self.provider.simulation_path is not None:
            return self.provider.simulation_path
        return self.state_path.with_name(f"{self.state_path.stem}.cloud.json")
