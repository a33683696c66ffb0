"""Engine types (plan, changes, run results)."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from cluster_provisioner.core.state import ResourceStatus


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NOOP = "no-op"


class RunMode(str, Enum):
    PLAN = "plan"
    APPLY = "apply"
    DESTROY = "destroy"


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    PARTIAL_FAILURE = "partial_failure"
    ABORTED = "aborted"


class PlanMetadata(BaseModel):
    stack: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    destroy: bool
    state_lineage: str
    state_serial: int
    state_digest: str
    engine_version: str


class ResourceChange(BaseModel):
    name: str
    kind: str
    action: Action
    planned: dict[str, Any] | None = None
    prior: dict[str, Any] | None = None
    diff: dict[str, Any] | None = None
    depends_on: list[str] = Field(default_factory=list)
    reason: str | None = None


class Plan(BaseModel):
    """Ordered operations for one run; derived fresh every run."""

    metadata: PlanMetadata
    changes: list[ResourceChange]

    def summary(self) -> dict[str, int]:
        counts = {a.value: 0 for a in Action}
        for c in self.changes:
            counts[c.action.value] += 1
        return counts

    def get(self, name: str) -> ResourceChange | None:
        return next((c for c in self.changes if c.name == name), None)

    @property
    def is_noop(self) -> bool:
        return all(c.action == Action.NOOP for c in self.changes)


class ResourceOutcome(BaseModel):
    """What happened to one resource during a run."""

    name: str
    kind: str
    status: ResourceStatus
    planned: Action
    action: Action | None = None
    error: str | None = None
    error_kind: str | None = None
    blocked_by: list[str] = Field(default_factory=list)


class ExecutedCall(BaseModel):
    """One provider call, in the order calls were started."""

    action: Literal["create", "update", "delete"]
    name: str


class RunResult(BaseModel):
    status: RunStatus
    mode: RunMode
    plan: Plan
    resources: dict[str, ResourceOutcome] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)
    executed: list[ExecutedCall] = Field(default_factory=list)

    @property
    def failed(self) -> dict[str, ResourceOutcome]:
        return {
            n: o
            for n, o in self.resources.items()
            if o.status in (ResourceStatus.FAILED, ResourceStatus.BLOCKED)
        }

    def summary(self) -> dict[str, int]:
        counts = {a.value: 0 for a in Action}
        for o in self.resources.values():
            if o.action is not None:
                counts[o.action.value] += 1
        return counts
