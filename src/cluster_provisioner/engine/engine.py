"""Plan/apply engine."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from cluster_provisioner import __version__
from cluster_provisioner.core.state import ResourceStatus, compute_state_digest
from cluster_provisioner.engine.diff import diff_inputs
from cluster_provisioner.engine.dispatch import ProviderDispatcher
from cluster_provisioner.engine.errors import (
    UnknownOutputError,
    UnresolvedValueError,
    ValidationError,
)
from cluster_provisioner.engine.graph import DependencyGraph
from cluster_provisioner.engine.operations import (
    ApplyContext,
    ConvergeOperation,
    CreateOperation,
    DeleteOperation,
)
from cluster_provisioner.engine.registry import ResourceRegistry, ResourceSpec
from cluster_provisioner.engine.scheduler import Scheduler
from cluster_provisioner.engine.types import (
    Action,
    ExecutedCall,
    Plan,
    PlanMetadata,
    ResourceChange,
    ResourceOutcome,
    RunMode,
    RunResult,
    RunStatus,
)
from cluster_provisioner.engine.values import ValueGraph, collect_references

logger = logging.getLogger(__name__)

_UNSUCCESSFUL = frozenset({ResourceStatus.FAILED, ResourceStatus.BLOCKED})

StatusCallback = Callable[[str, ResourceStatus], None]

if TYPE_CHECKING:
    from collections.abc import Mapping

    from cluster_provisioner.config.schema import EngineSettings
    from cluster_provisioner.core.state import State
    from cluster_provisioner.engine.operations import Operation
    from cluster_provisioner.engine.providers import ProviderPlugin
    from cluster_provisioner.engine.registry import SpecView
    from cluster_provisioner.engine.store import StateStore
    from cluster_provisioner.engine.values import ResourceHandle


class Engine:
    """Terraform-like plan/apply engine over a declared resource graph.

    Resources are declared up front; every ``run`` derives a fresh plan from
    the declarations and the stack's persisted state, then executes it.
    """

    def __init__(
        self,
        *,
        providers: Mapping[str, ProviderPlugin],
        store: StateStore,
        stack: str = "default",
        parallelism: int = 10,
        call_timeout: float | None = None,
        on_status: StatusCallback | None = None,
    ) -> None:
        if parallelism < 1:
            raise ValueError("parallelism must be >= 1")
        self._registry = ResourceRegistry()
        self._graph = ValueGraph(self._registry)
        self._dispatcher = ProviderDispatcher(providers, timeout=call_timeout)
        self._store = store
        self._stack = stack
        self._parallelism = parallelism
        self._on_status = on_status
        self._exports: dict[str, Any] = {}
        self._cancel = threading.Event()

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        providers: Mapping[str, ProviderPlugin],
        *,
        on_status: StatusCallback | None = None,
    ) -> Engine:
        from cluster_provisioner.engine.store import StateStore

        return cls(
            providers=providers,
            store=StateStore(settings.state_dir),
            stack=settings.stack,
            parallelism=settings.parallelism,
            call_timeout=settings.call_timeout,
            on_status=on_status,
        )

    @property
    def stack(self) -> str:
        return self._stack

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def on_status(self) -> StatusCallback | None:
        return self._on_status

    @on_status.setter
    def on_status(self, callback: StatusCallback | None) -> None:
        self._on_status = callback

    @property
    def exports(self) -> dict[str, Any]:
        return dict(self._exports)

    # -- declaration -------------------------------------------------------

    def declare(self, spec: ResourceSpec) -> ResourceHandle:
        """Register a resource; its handle yields unresolved outputs immediately."""
        return self._graph.declare(spec)

    def resource(
        self,
        kind: str,
        name: str,
        inputs: dict[str, Any] | None = None,
        *,
        depends_on: Any = (),
    ) -> ResourceHandle:
        """Shorthand for ``declare(ResourceSpec(...))``."""
        return self.declare(
            ResourceSpec(kind=kind, name=name, inputs=inputs or {}, depends_on=depends_on)
        )

    def export(self, name: str, value: Any) -> None:
        """Expose *value* (usually a resource output) in ``RunResult.outputs``."""
        self._exports[name] = value

    def resources(self) -> SpecView:
        return self._registry.all()

    def cancel(self) -> None:
        """Stop starting new operations; running provider calls finish. Thread safe."""
        self._cancel.set()

    # -- planning ----------------------------------------------------------

    def _validate(self) -> None:
        errors: list[str] = []
        for spec in self._registry.all():
            self._dispatcher.get(spec.kind)
            for ref in spec.references():
                if ref.resource not in self._registry:
                    errors.append(
                        f"Resource '{spec.name}' references unknown resource '{ref.resource}'"
                    )
            for dep in spec.depends_on:
                if dep not in self._registry:
                    errors.append(f"Resource '{spec.name}' depends on unknown resource '{dep}'")
        for name, value in self._exports.items():
            for ref in collect_references(value):
                if ref.resource not in self._registry:
                    errors.append(f"Output '{name}' references unknown resource '{ref.resource}'")
        if errors:
            raise ValidationError(errors)

    def _declared_order(self) -> list[str]:
        names = self._registry.names()
        return DependencyGraph(names, self._graph.dependency_map()).topological_order()

    def _classify_change(
        self, name: str, state: State, known: dict[str, dict[str, Any]]
    ) -> ResourceChange:
        """Classify a declared resource as CREATE, UPDATE, REPLACE or NOOP."""
        spec = self._registry.get(name)
        plugin = self._dispatcher.get(spec.kind)
        planned = self._graph.preview_inputs(name, known)
        deps = self._graph.dependencies(name)

        errors = plugin.validate(spec.kind, planned)
        if errors:
            raise ValidationError([f"{name}: {e}" for e in errors])

        prior = state.resources.get(name)
        if prior is None:
            logger.debug("Classified %s as create", name)
            return ResourceChange(
                name=name,
                kind=spec.kind,
                action=Action.CREATE,
                planned=planned,
                depends_on=deps,
            )

        diff = diff_inputs(planned, prior.inputs, plugin.compare)
        reason: str | None = None
        if prior.kind != spec.kind:
            action, reason = Action.REPLACE, f"kind changed from {prior.kind}"
        elif diff and plugin.requires_replacement(spec.kind, dict(prior.inputs), planned):
            action, reason = Action.REPLACE, "provider requires replacement"
        elif diff:
            action = Action.UPDATE
        elif prior.status != ResourceStatus.READY:
            action, reason = Action.UPDATE, f"last apply left it {prior.status.value}"
        else:
            action = Action.NOOP

        if action in (Action.UPDATE, Action.NOOP):
            # Outputs are expected to survive an in-place update.
            known[name] = {**prior.outputs, "id": prior.id}

        logger.debug("Classified %s as %s", name, action.value)
        return ResourceChange(
            name=name,
            kind=spec.kind,
            action=action,
            planned=planned,
            prior=dict(prior.inputs),
            diff=diff or None,
            depends_on=deps,
            reason=reason,
        )

    def _delete_order(self, state: State, delete_set: set[str]) -> list[str]:
        names = [n for n in state.resources if n in delete_set]
        dep_map = {n: list(state.resources[n].dependencies) for n in names}
        return DependencyGraph(names, dep_map).reverse_topological_order()

    def _plan_deletes(self, state: State, names: set[str]) -> list[ResourceChange]:
        changes: list[ResourceChange] = []
        for name in self._delete_order(state, names):
            inst = state.resources[name]
            self._dispatcher.get(inst.kind)  # fail early if unknown
            changes.append(
                ResourceChange(
                    name=name,
                    kind=inst.kind,
                    action=Action.DELETE,
                    prior=dict(inst.inputs),
                    depends_on=list(inst.dependencies),
                )
            )
        return changes

    def _plan_from_state(self, state: State, *, destroy: bool) -> Plan:
        if destroy:
            changes = self._plan_deletes(state, set(state.resources))
        else:
            self._validate()
            order = self._declared_order()
            known: dict[str, dict[str, Any]] = {}
            changes = [self._classify_change(name, state, known) for name in order]
            changes.extend(self._plan_deletes(state, set(state.resources) - set(order)))

        metadata = PlanMetadata(
            stack=self._stack,
            created_at=datetime.now(UTC),
            destroy=destroy,
            state_lineage=state.lineage,
            state_serial=state.serial,
            state_digest=compute_state_digest(state),
            engine_version=__version__,
        )
        return Plan(metadata=metadata, changes=changes)

    def plan(self, *, destroy: bool = False) -> Plan:
        """Compute the plan for the current declarations without applying it.

        Raises:
            CyclicDependencyError: If declarations contain a cycle.
            ValidationError: On unknown references or plugin validation errors.
            UnknownKindError: If a kind has no plugin.
        """
        logger.info("Planning %d resources (destroy=%s)", len(self._registry), destroy)
        state = self._store.load(self._stack)
        return self._plan_from_state(state, destroy=destroy)

    # -- apply -------------------------------------------------------------

    def _build_operations(self, plan: Plan, state: State) -> dict[str, Operation]:
        ops: dict[str, Operation] = {}
        converge_set: set[str] = set()
        delete_set: set[str] = set()

        for c in plan.changes:
            op: Operation
            match c.action:
                case Action.CREATE:
                    op = CreateOperation(key=c.name, change=c)
                    converge_set.add(c.name)
                case Action.UPDATE | Action.REPLACE | Action.NOOP:
                    op = ConvergeOperation(key=c.name, change=c)
                    converge_set.add(c.name)
                case Action.DELETE:
                    op = DeleteOperation(key=c.name, change=c)
                    delete_set.add(c.name)
                case _:
                    raise ValueError(f"Unknown action: {c.action}")

            if op.key in ops:
                raise ValueError(f"Duplicate operation key in plan: {op.key}")
            ops[op.key] = op

        # declared resources: dependencies run before dependents
        for name in converge_set:
            ops[name].deps.extend(d for d in self._graph.dependencies(name) if d in converge_set)

        # deletes: dependents go first (inverted edges), and anything that
        # used a deleted resource must be converged before it disappears
        for name in delete_set:
            for dep in state.resources[name].dependencies:
                if dep in delete_set:
                    ops[dep].deps.append(name)
        for name in converge_set:
            inst = state.resources.get(name)
            if inst is None:
                continue
            for dep in inst.dependencies:
                if dep in delete_set:
                    ops[dep].deps.append(name)

        return ops

    def _operation_graph(self, ops: Mapping[str, Operation]) -> DependencyGraph:
        priorities = {k: 1 if op.change.action == Action.DELETE else 0 for k, op in ops.items()}
        # declared resources in declaration order, then deletes in plan order
        nodes = sorted(ops, key=lambda k: (priorities[k], self._registry.index(k)))
        return DependencyGraph(nodes, {k: op.deps for k, op in ops.items()}, priorities=priorities)

    def _resolve_exports(self) -> dict[str, Any]:
        resolved: dict[str, Any] = {}
        for name, value in self._exports.items():
            try:
                resolved[name] = self._graph.value(value)
            except (UnresolvedValueError, UnknownOutputError) as e:
                logger.warning("Output '%s' not exported: %s", name, e)
        return resolved

    def _plan_result(self, plan: Plan, state: State) -> RunResult:
        resources = {}
        for c in plan.changes:
            inst = state.resources.get(c.name)
            resources[c.name] = ResourceOutcome(
                name=c.name,
                kind=c.kind,
                status=inst.status if inst is not None else ResourceStatus.PENDING,
                planned=c.action,
            )
        return RunResult(
            status=RunStatus.SUCCEEDED,
            mode=RunMode.PLAN,
            plan=plan,
            resources=resources,
            outputs=dict(state.outputs),
        )

    async def arun(self, mode: RunMode | str = RunMode.APPLY) -> RunResult:
        """Plan, apply or destroy.

        Pre-execution errors (cycles, duplicate names, validation) raise before
        any provider call or state write.  Provider failures do not raise: they
        are recorded per resource and the run ends ``partial_failure``.
        """
        try:
            return await self._execute(RunMode(mode))
        finally:
            # A cancel only applies to the run it interrupted.
            self._cancel.clear()

    async def _execute(self, mode: RunMode) -> RunResult:
        destroy = mode == RunMode.DESTROY

        if mode == RunMode.PLAN:
            state = self._store.load(self._stack)
            return self._plan_result(self._plan_from_state(state, destroy=False), state)

        with self._store.lock(self._stack):
            state = self._store.load(self._stack)
            plan = self._plan_from_state(state, destroy=destroy)
            ops = self._build_operations(plan, state)
            op_graph = self._operation_graph(ops)
            op_graph.topological_order()  # a cycle here is a bug; fail before any call

            self._graph.reset()
            executed: list[ExecutedCall] = []

            def commit() -> None:
                state.serial += 1
                self._store.save(self._stack, state)

            scheduler = Scheduler(
                parallelism=self._parallelism,
                cancel=self._cancel,
                on_status=self._on_status,
            )
            ctx = ApplyContext(
                dispatcher=self._dispatcher,
                graph=self._graph,
                state=state,
                commit=commit,
                set_status=scheduler.set_status,
                record=lambda verb, name: executed.append(ExecutedCall(action=verb, name=name)),
            )

            logger.info(
                "Applying %d operations (stack=%s, mode=%s)", len(ops), self._stack, mode.value
            )
            outcomes = await scheduler.run(ops, op_graph, ctx)

            outputs = {} if destroy else self._resolve_exports()
            # Keep the last known value of outputs whose source did not resolve.
            persisted = {
                **{k: v for k, v in state.outputs.items() if k in self._exports and not destroy},
                **outputs,
            }
            if persisted != state.outputs:
                state.outputs = persisted
                commit()

            # Operations left pending were never started because of a cancel.
            if any(o.status == ResourceStatus.PENDING for o in outcomes.values()):
                status = RunStatus.ABORTED
            elif any(o.status in _UNSUCCESSFUL for o in outcomes.values()):
                status = RunStatus.PARTIAL_FAILURE
            else:
                status = RunStatus.SUCCEEDED

            logger.info("Run finished: %s", status.value)
            return RunResult(
                status=status,
                mode=mode,
                plan=plan,
                resources={o.name: o for o in outcomes.values()},
                outputs=outputs,
                executed=executed,
            )

    def run(self, mode: RunMode | str = RunMode.APPLY) -> RunResult:
        """Synchronous wrapper around :meth:`arun`."""
        return asyncio.run(self.arun(mode))
