"""Configuration models for YAML stack files."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cluster_provisioner.engine.registry import ResourceSpec
from cluster_provisioner.engine.values import interpolate_all


class EngineSettings(BaseSettings):
    """Engine settings.

    Fields can be set via the stack file's ``settings`` section (constructor
    kwargs) or environment variables with the ``PROVISIONER_`` prefix.
    Constructor kwargs take precedence.
    """

    model_config = SettingsConfigDict(env_prefix="PROVISIONER_")

    parallelism: int = Field(default=10, ge=1)
    call_timeout: float | None = Field(default=None, gt=0)
    state_dir: Path = Path(".provisioner")
    stack: str = Field(default="default", pattern=r"^[A-Za-z0-9_.-]+$")


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


def _none_to_dict(v: Any) -> Any:
    return v if v is not None else {}


class ProviderEntry(BaseModel):
    """A provider plugin to load and the kinds it serves."""

    model_config = ConfigDict(extra="forbid")

    plugin: str = Field(pattern=r"^[A-Za-z_][\w.]*:[A-Za-z_]\w*$")
    kinds: list[str] = Field(min_length=1)
    options: Annotated[dict[str, Any], BeforeValidator(_none_to_dict)] = {}


class ResourceEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: str
    name: str
    inputs: Annotated[dict[str, Any], BeforeValidator(_none_to_dict)] = {}
    depends_on: Annotated[list[str], BeforeValidator(_none_to_list)] = []

    def to_spec(self) -> ResourceSpec:
        """Build a spec; ``${name.field}`` strings become output references."""
        return ResourceSpec(
            kind=self.kind,
            name=self.name,
            inputs=interpolate_all(self.inputs),
            depends_on=tuple(self.depends_on),
        )


class StackConfig(BaseModel):
    """Stack file contents, validated straight from the YAML."""

    settings: EngineSettings
    providers: Annotated[list[ProviderEntry], BeforeValidator(_none_to_list)] = []
    resources: Annotated[list[ResourceEntry], BeforeValidator(_none_to_list)] = []
    outputs: Annotated[dict[str, Any], BeforeValidator(_none_to_dict)] = {}
    # Values read by resources and outputs as ``${config.<key>}``.
    config: Annotated[dict[str, Any], BeforeValidator(_none_to_dict)] = {}
    config_dir: Path = Path()

    def specs(self) -> list[ResourceSpec]:
        return [r.to_spec() for r in self.resources]

    def exported(self) -> dict[str, Any]:
        return {name: interpolate_all(value) for name, value in self.outputs.items()}
