"""Apply operations.

Apply executes a graph of operations, one per resource.  Each operation knows
how to converge its resource, lists the operations it depends on, and records
every provider call and state change through the shared ``ApplyContext``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from cluster_provisioner.core.state import ResourceState, ResourceStatus, compute_inputs_hash
from cluster_provisioner.engine.diff import diff_inputs
from cluster_provisioner.engine.dispatch import ProviderCall
from cluster_provisioner.engine.errors import EngineError
from cluster_provisioner.engine.types import Action

if TYPE_CHECKING:
    from collections.abc import Callable

    from cluster_provisioner.core.state import State
    from cluster_provisioner.engine.dispatch import DispatchOutcome, ProviderDispatcher
    from cluster_provisioner.engine.types import ResourceChange
    from cluster_provisioner.engine.values import ValueGraph


@dataclass
class ApplyContext:
    """Everything operations share during one apply."""

    dispatcher: ProviderDispatcher
    graph: ValueGraph
    state: State
    commit: Callable[[], None]
    set_status: Callable[[str, ResourceStatus], None]
    record: Callable[[str, str], None]


class Operation(Protocol):
    key: str
    deps: list[str]
    change: ResourceChange

    async def run(self, ctx: ApplyContext) -> Action:
        """Execute this operation and return the action actually taken."""


async def _dispatch(ctx: ApplyContext, call: ProviderCall) -> DispatchOutcome:
    ctx.record(call.action.value, call.name)
    return await ctx.dispatcher.apply(call, ctx.graph)


async def _create(
    ctx: ApplyContext, name: str, kind: str, inputs: dict[str, Any], deps: list[str]
) -> None:
    ctx.set_status(name, ResourceStatus.CREATING)
    outcome = await _dispatch(ctx, ProviderCall(Action.CREATE, name, kind, inputs=inputs))
    if not outcome.resource_id:
        raise EngineError(f"create {name}: provider returned no resource id")
    now = datetime.now(UTC)
    ctx.state.resources[name] = ResourceState(
        name=name,
        kind=kind,
        id=outcome.resource_id,
        inputs=inputs,
        outputs=outcome.outputs,
        dependencies=deps,
        inputs_hash=compute_inputs_hash(inputs),
        created_at=now,
        updated_at=now,
    )
    ctx.commit()


async def _delete(ctx: ApplyContext, prior: ResourceState) -> None:
    ctx.set_status(prior.name, ResourceStatus.DELETING)
    await _dispatch(ctx, ProviderCall(Action.DELETE, prior.name, prior.kind, prior=prior))
    del ctx.state.resources[prior.name]
    ctx.commit()


async def _replace(
    ctx: ApplyContext,
    name: str,
    kind: str,
    inputs: dict[str, Any],
    deps: list[str],
    prior: ResourceState,
) -> Action:
    # Delete strictly before create; a kind change goes through the old plugin.
    await _delete(ctx, prior)
    await _create(ctx, name, kind, inputs, deps)
    return Action.REPLACE


@dataclass
class CreateOperation:
    key: str
    change: ResourceChange
    deps: list[str] = field(default_factory=list)

    async def run(self, ctx: ApplyContext) -> Action:
        name = self.change.name
        inputs = ctx.graph.resolve_inputs(name)
        await _create(ctx, name, self.change.kind, inputs, ctx.graph.dependencies(name))
        return Action.CREATE


@dataclass
class ConvergeOperation:
    """Bring an existing resource in line with its declaration.

    The plan's action is a prediction made with partly unknown inputs; the
    decision here uses the inputs actually resolved during this apply.
    """

    key: str
    change: ResourceChange
    deps: list[str] = field(default_factory=list)

    async def run(self, ctx: ApplyContext) -> Action:
        name = self.change.name
        kind = self.change.kind
        inputs = ctx.graph.resolve_inputs(name)
        deps = ctx.graph.dependencies(name)
        prior = ctx.state.resources[name]

        if prior.kind != kind:
            return await _replace(ctx, name, kind, inputs, deps, prior)

        plugin = ctx.dispatcher.get(kind)
        changed = diff_inputs(inputs, prior.inputs, plugin.compare)
        if prior.status == ResourceStatus.READY and not changed:
            ctx.graph.resolve(name, {**prior.outputs, "id": prior.id})
            if prior.dependencies != deps:
                prior.dependencies = deps
                ctx.commit()
            return Action.NOOP

        if plugin.requires_replacement(kind, dict(prior.inputs), dict(inputs)):
            return await _replace(ctx, name, kind, inputs, deps, prior)

        ctx.set_status(name, ResourceStatus.UPDATING)
        outcome = await _dispatch(
            ctx, ProviderCall(Action.UPDATE, name, kind, inputs=inputs, prior=prior)
        )
        if outcome.replacement is not None:
            return await _replace(ctx, name, kind, inputs, deps, prior)

        prior.inputs = inputs
        prior.outputs = outcome.outputs
        prior.status = ResourceStatus.READY
        prior.inputs_hash = compute_inputs_hash(inputs)
        prior.dependencies = deps
        prior.updated_at = datetime.now(UTC)
        ctx.commit()
        return Action.UPDATE


@dataclass
class DeleteOperation:
    key: str
    change: ResourceChange
    deps: list[str] = field(default_factory=list)

    async def run(self, ctx: ApplyContext) -> Action:
        await _delete(ctx, ctx.state.resources[self.change.name])
        return Action.DELETE
