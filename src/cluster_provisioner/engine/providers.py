"""Provider plugin interface.

A plugin implements the remote calls for one or more resource kinds.  The
engine never embeds kind-specific logic: it hands each plugin fully resolved
inputs and stores whatever outputs come back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Literal, NamedTuple, TypeAlias

CompareStrategy: TypeAlias = Literal["partial", "exact", "set"]


class Created(NamedTuple):
    """Result of a successful create: external id plus outputs."""

    id: str
    outputs: dict[str, Any]


@dataclass(frozen=True, slots=True)
class RequiresReplacement:
    """Returned by ``update`` when the change cannot be made in place.

    Not an error: the engine deletes the resource and creates it again.
    """

    reason: str = ""


class ProviderPlugin:
    """Base class for provider plugins.

    Subclass and override the async CRUD methods.  Raise
    :class:`~cluster_provisioner.engine.errors.ProviderError` for remote
    failures; any other exception is reported as an unknown provider error.

    ``compare`` maps input names to a comparison strategy used when diffing
    desired inputs against the last applied ones (default ``"exact"``):

    - ``"partial"``: for dict values, only keys present in desired are compared
    - ``"exact"``: strict equality
    - ``"set"``: order-insensitive list comparison
    """

    compare: ClassVar[dict[str, CompareStrategy]] = {}

    def validate(self, kind: str, inputs: dict[str, Any]) -> list[str]:
        """Plan-time validation.

        Inputs that depend on resources not created yet are the ``UNKNOWN``
        marker at this point.  Return a list of error messages (empty = valid).
        """
        _ = kind, inputs
        return []

    def requires_replacement(
        self, kind: str, old_inputs: dict[str, Any], new_inputs: dict[str, Any]
    ) -> bool:
        """Plan-time prediction that an update will need a replacement."""
        _ = kind, old_inputs, new_inputs
        return False

    async def create(self, kind: str, inputs: dict[str, Any]) -> Created:
        """Create the resource. Return its id and outputs."""
        raise NotImplementedError

    async def update(
        self,
        kind: str,
        resource_id: str,
        old_inputs: dict[str, Any],
        new_inputs: dict[str, Any],
    ) -> dict[str, Any] | RequiresReplacement:
        """Update the resource in place. Return the new outputs."""
        raise NotImplementedError

    async def delete(self, kind: str, resource_id: str, outputs: dict[str, Any]) -> None:
        """Delete the resource."""
        raise NotImplementedError
