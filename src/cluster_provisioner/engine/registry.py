"""Declared resources for one engine."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cluster_provisioner.engine.errors import DuplicateNameError, EngineError
from cluster_provisioner.engine.values import ResourceHandle, Unresolved, collect_references

if TYPE_CHECKING:
    from collections.abc import Iterator


class ResourceSpec(BaseModel):
    """Desired state of one resource.

    ``kind`` selects the provider plugin, ``name`` is unique within the
    engine.  ``inputs`` is plain data whose leaves may reference other
    resources' outputs; ``depends_on`` adds ordering without a value reference.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    kind: str = Field(min_length=1)
    name: str = Field(pattern=r"^[a-zA-Z0-9_-]+$")
    inputs: dict[str, Any] = Field(default_factory=dict)
    depends_on: tuple[str, ...] = ()

    @field_validator("depends_on", mode="before")
    @classmethod
    def _handles_to_names(cls, v: Any) -> Any:
        if isinstance(v, str | ResourceHandle):
            v = [v]
        return tuple(item.name if isinstance(item, ResourceHandle) else item for item in v)

    def references(self) -> list[Unresolved]:
        """Output references found anywhere in ``inputs``."""
        return collect_references(self.inputs)

    def dependency_names(self) -> list[str]:
        """Referenced resources followed by explicit ``depends_on`` entries."""
        names = [r.resource for r in self.references()]
        names.extend(self.depends_on)
        return list(dict.fromkeys(names))


class SpecView:
    """Restartable view over registered specs, in declaration order."""

    def __init__(self, specs: dict[str, ResourceSpec]) -> None:
        self._specs = specs

    def __iter__(self) -> Iterator[ResourceSpec]:
        yield from list(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)


class ResourceRegistry:
    """Every resource declared for a run, keyed by name."""

    def __init__(self) -> None:
        self._specs: dict[str, ResourceSpec] = {}
        self._index: dict[str, int] = {}

    def register(self, spec: ResourceSpec) -> None:
        if spec.name in self._specs:
            raise DuplicateNameError(spec.name)
        # Callers keep their own dicts; later mutation must not leak in.
        frozen = spec.model_copy(update={"inputs": copy.deepcopy(spec.inputs)})
        self._index[spec.name] = len(self._specs)
        self._specs[spec.name] = frozen

    def get(self, name: str) -> ResourceSpec:
        try:
            return self._specs[name]
        except KeyError as e:
            raise EngineError(f"Unknown resource: {name}") from e

    def index(self, name: str) -> int:
        """Declaration position; undeclared names sort last."""
        return self._index.get(name, len(self._index))

    def all(self) -> SpecView:
        return SpecView(self._specs)

    def names(self) -> list[str]:
        return list(self._specs)

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)
