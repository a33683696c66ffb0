"""Route provider calls to the plugin registered for a resource kind."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from cluster_provisioner.engine.errors import ProviderError, ProviderErrorKind, UnknownKindError
from cluster_provisioner.engine.providers import Created, RequiresReplacement
from cluster_provisioner.engine.types import Action

if TYPE_CHECKING:
    from collections.abc import Awaitable, Mapping

    from cluster_provisioner.core.state import ResourceState
    from cluster_provisioner.engine.providers import ProviderPlugin
    from cluster_provisioner.engine.values import ValueGraph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderCall:
    """One create, update or delete to send to a plugin."""

    action: Action
    name: str
    kind: str
    inputs: dict[str, Any] | None = None
    prior: ResourceState | None = None


@dataclass(frozen=True)
class DispatchOutcome:
    action: Action
    resource_id: str | None = None
    outputs: dict[str, Any] = field(default_factory=dict)
    replacement: RequiresReplacement | None = None


class ProviderDispatcher:
    """Kind-name -> plugin mapping, passed in at construction.

    Calls are never retried here; a timeout or plugin failure surfaces as a
    ``ProviderError`` for the engine to attach to the resource.
    """

    def __init__(
        self,
        plugins: Mapping[str, ProviderPlugin],
        *,
        timeout: float | None = None,
    ) -> None:
        self._plugins = dict(plugins)
        self._timeout = timeout

    @property
    def timeout(self) -> float | None:
        return self._timeout

    def kinds(self) -> list[str]:
        return sorted(self._plugins)

    def get(self, kind: str) -> ProviderPlugin:
        try:
            return self._plugins[kind]
        except KeyError as e:
            raise UnknownKindError(kind) from e

    async def _call(self, call: ProviderCall, coro: Awaitable[Any]) -> Any:
        verb = call.action.value
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except ProviderError:
            raise
        except TimeoutError as e:
            raise ProviderError(
                ProviderErrorKind.TIMEOUT,
                f"{verb} {call.name} timed out after {self._timeout}s",
            ) from e
        except Exception as e:
            raise ProviderError(ProviderErrorKind.UNKNOWN, f"{verb} {call.name}: {e}") from e

    async def apply(self, call: ProviderCall, graph: ValueGraph | None = None) -> DispatchOutcome:
        """Run *call* against its plugin.

        Successful creates and updates resolve the resource's outputs in
        *graph* so dependents can proceed.  Outputs always carry ``id``.
        """
        plugin = self.get(call.kind)
        logger.debug("Dispatching %s %s (%s)", call.action.value, call.name, call.kind)

        match call.action:
            case Action.CREATE:
                if call.inputs is None:
                    raise ValueError(f"Missing inputs for create: {call.name}")
                created = await self._call(call, plugin.create(call.kind, dict(call.inputs)))
                resource_id, outputs = _unpack_created(call, created)
                return self._resolved(call, graph, resource_id, outputs)

            case Action.UPDATE:
                if call.inputs is None or call.prior is None:
                    raise ValueError(f"Missing inputs or prior state for update: {call.name}")
                result = await self._call(
                    call,
                    plugin.update(
                        call.kind,
                        call.prior.id,
                        dict(call.prior.inputs),
                        dict(call.inputs),
                    ),
                )
                if isinstance(result, RequiresReplacement):
                    logger.debug("%s requires replacement: %s", call.name, result.reason)
                    return DispatchOutcome(action=Action.REPLACE, replacement=result)
                if not isinstance(result, dict):
                    raise ProviderError(
                        ProviderErrorKind.UNKNOWN,
                        f"update {call.name}: expected outputs dict, got {type(result).__name__}",
                    )
                return self._resolved(call, graph, call.prior.id, result)

            case Action.DELETE:
                if call.prior is None:
                    raise ValueError(f"Missing prior state for delete: {call.name}")
                await self._call(
                    call,
                    plugin.delete(call.kind, call.prior.id, dict(call.prior.outputs)),
                )
                return DispatchOutcome(action=Action.DELETE, resource_id=call.prior.id)

            case _:
                raise ValueError(f"Unsupported provider action: {call.action}")

    @staticmethod
    def _resolved(
        call: ProviderCall,
        graph: ValueGraph | None,
        resource_id: str,
        outputs: dict[str, Any],
    ) -> DispatchOutcome:
        outputs = {**outputs, "id": resource_id}
        if graph is not None:
            graph.resolve(call.name, outputs)
        return DispatchOutcome(
            action=call.action,
            resource_id=resource_id,
            outputs=outputs,
        )


def _unpack_created(call: ProviderCall, created: Any) -> tuple[str, dict[str, Any]]:
    if isinstance(created, Created | tuple) and len(created) == 2:
        resource_id, outputs = created
        if isinstance(resource_id, str) and resource_id and isinstance(outputs, dict):
            return resource_id, outputs
    raise ProviderError(
        ProviderErrorKind.UNKNOWN,
        f"create {call.name}: expected (id, outputs), got {created!r}",
    )
