"""Tiered execution of apply operations on a bounded worker pool."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from cluster_provisioner.core.state import ResourceStatus
from cluster_provisioner.engine.errors import EngineError, ProviderError
from cluster_provisioner.engine.types import Action, ResourceOutcome

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable, Mapping

    from cluster_provisioner.engine.graph import DependencyGraph
    from cluster_provisioner.engine.operations import ApplyContext, Operation

logger = logging.getLogger(__name__)

_UNSUCCESSFUL = frozenset({ResourceStatus.FAILED, ResourceStatus.BLOCKED})
_DONE = frozenset({ResourceStatus.READY, ResourceStatus.DELETED})


class Scheduler:
    """Runs operations tier by tier, at most ``parallelism`` at a time.

    An operation starts only after every operation it depends on finished
    successfully.  A failure marks all transitive dependents ``blocked``
    without touching independent branches.  Once *cancel* is set no new
    operation starts; those already running finish normally.
    """

    def __init__(
        self,
        *,
        parallelism: int,
        cancel: threading.Event,
        on_status: Callable[[str, ResourceStatus], None] | None = None,
    ) -> None:
        if parallelism < 1:
            raise ValueError("parallelism must be >= 1")
        self._parallelism = parallelism
        self._cancel = cancel
        self._on_status = on_status
        self._status: dict[str, ResourceStatus] = {}

    def set_status(self, key: str, status: ResourceStatus) -> None:
        self._status[key] = status
        if self._on_status is not None:
            self._on_status(key, status)

    def status(self, key: str) -> ResourceStatus:
        return self._status.get(key, ResourceStatus.PENDING)

    async def run(
        self,
        ops: Mapping[str, Operation],
        graph: DependencyGraph,
        ctx: ApplyContext,
    ) -> dict[str, ResourceOutcome]:
        outcomes: dict[str, ResourceOutcome] = {}
        semaphore = asyncio.Semaphore(self._parallelism)

        for key in ops:
            self.set_status(key, ResourceStatus.PENDING)

        for depth, tier in enumerate(graph.tiers()):
            logger.debug("Tier %d: %s", depth, ", ".join(tier))
            await asyncio.gather(
                *(self._run_one(ops[key], graph, ctx, semaphore, outcomes) for key in tier)
            )
        return outcomes

    async def _run_one(
        self,
        op: Operation,
        graph: DependencyGraph,
        ctx: ApplyContext,
        semaphore: asyncio.Semaphore,
        outcomes: dict[str, ResourceOutcome],
    ) -> None:
        change = op.change
        outcome = ResourceOutcome(
            name=change.name,
            kind=change.kind,
            status=ResourceStatus.PENDING,
            planned=change.action,
        )
        outcomes[op.key] = outcome

        deps = graph.dependencies(op.key)
        blockers = [d for d in deps if outcomes[d].status in _UNSUCCESSFUL]
        if blockers:
            outcome.status = ResourceStatus.BLOCKED
            outcome.blocked_by = blockers
            self.set_status(op.key, ResourceStatus.BLOCKED)
            logger.info("Skipping %s: blocked by %s", op.key, ", ".join(blockers))
            return
        if any(outcomes[d].status not in _DONE for d in deps):
            # An upstream never started because the run was canceled.
            return

        async with semaphore:
            if self._cancel.is_set():
                logger.debug("Not starting %s: run canceled", op.key)
                return
            try:
                action = await op.run(ctx)
            except EngineError as e:
                outcome.status = ResourceStatus.FAILED
                outcome.error = str(e)
                outcome.error_kind = e.kind.value if isinstance(e, ProviderError) else "engine"
                self.set_status(op.key, ResourceStatus.FAILED)
                self._mark_failed_in_state(ctx, change.name)
                logger.warning("%s %s failed: %s", change.action.value, op.key, e)
                return

        outcome.action = action
        outcome.status = ResourceStatus.DELETED if action == Action.DELETE else ResourceStatus.READY
        self.set_status(op.key, outcome.status)
        logger.debug("%s finished: %s", op.key, action.value)

    @staticmethod
    def _mark_failed_in_state(ctx: ApplyContext, name: str) -> None:
        inst = ctx.state.resources.get(name)
        if inst is not None and inst.status != ResourceStatus.FAILED:
            inst.status = ResourceStatus.FAILED
            ctx.commit()
