"""In-memory provider plugin.

Keeps every resource in a dict instead of calling a remote API.  Outputs echo
the inputs, plus whatever a per-kind ``computed`` callable adds (addresses,
generated secrets, ...).  Useful for tests, demos and dry runs of a stack.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from cluster_provisioner.engine.errors import ProviderError, ProviderErrorKind
from cluster_provisioner.engine.providers import Created, ProviderPlugin, RequiresReplacement

logger = logging.getLogger(__name__)

ComputeOutputs = Callable[[str, dict[str, Any]], dict[str, Any]]


class InMemoryProvider(ProviderPlugin):
    """Provider plugin backed by a dict.

    Args:
        computed: kind -> ``f(resource_id, inputs)`` returning extra outputs.
        replace_on: kind -> input names whose change forces a replacement.
        delay: Seconds each call sleeps, to simulate remote latency.
    """

    def __init__(
        self,
        *,
        computed: Mapping[str, ComputeOutputs] | None = None,
        replace_on: Mapping[str, Iterable[str]] | None = None,
        delay: float = 0.0,
    ) -> None:
        self._computed = dict(computed or {})
        self._replace_on = {k: frozenset(v) for k, v in (replace_on or {}).items()}
        self._delay = delay
        self._ids = itertools.count(1)
        self.resources: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []

    def _outputs(self, kind: str, resource_id: str, inputs: dict[str, Any]) -> dict[str, Any]:
        outputs = dict(inputs)
        compute = self._computed.get(kind)
        if compute is not None:
            outputs.update(compute(resource_id, inputs))
        return outputs

    def requires_replacement(
        self, kind: str, old_inputs: dict[str, Any], new_inputs: dict[str, Any]
    ) -> bool:
        fields = self._replace_on.get(kind, frozenset())
        return any(old_inputs.get(f) != new_inputs.get(f) for f in fields)

    async def create(self, kind: str, inputs: dict[str, Any]) -> Created:
        await asyncio.sleep(self._delay)
        resource_id = f"{kind}/{next(self._ids)}"
        outputs = self._outputs(kind, resource_id, inputs)
        self.resources[resource_id] = {"kind": kind, "inputs": dict(inputs), "outputs": outputs}
        self.calls.append(("create", resource_id))
        logger.debug("Created %s", resource_id)
        return Created(resource_id, outputs)

    async def update(
        self,
        kind: str,
        resource_id: str,
        old_inputs: dict[str, Any],
        new_inputs: dict[str, Any],
    ) -> dict[str, Any] | RequiresReplacement:
        await asyncio.sleep(self._delay)
        if resource_id not in self.resources:
            raise ProviderError(ProviderErrorKind.REJECTED, f"{resource_id} does not exist")
        if self.requires_replacement(kind, old_inputs, new_inputs):
            changed = sorted(
                f
                for f in self._replace_on.get(kind, frozenset())
                if old_inputs.get(f) != new_inputs.get(f)
            )
            return RequiresReplacement(f"changed: {', '.join(changed)}")
        outputs = self._outputs(kind, resource_id, new_inputs)
        self.resources[resource_id] = {"kind": kind, "inputs": dict(new_inputs), "outputs": outputs}
        self.calls.append(("update", resource_id))
        return outputs

    async def delete(self, kind: str, resource_id: str, outputs: dict[str, Any]) -> None:
        _ = kind, outputs
        await asyncio.sleep(self._delay)
        self.resources.pop(resource_id, None)
        self.calls.append(("delete", resource_id))
        logger.debug("Deleted %s", resource_id)
