"""State tracking for provisioned resources."""

import hashlib
import json
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


def _canonical_json(obj: Any) -> str:
    # Stable encoding for hashes/digests. `default=str` keeps it robust for
    # datetimes/paths/etc while staying deterministic enough for our use.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def compute_inputs_hash(inputs: Mapping[str, Any]) -> str:
    """Compute a stable hash for a resource's resolved inputs."""
    payload = _canonical_json(inputs)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _now() -> datetime:
    return datetime.now(UTC)


class ResourceStatus(str, Enum):
    PENDING = "pending"
    CREATING = "creating"
    UPDATING = "updating"
    READY = "ready"
    DELETING = "deleting"
    DELETED = "deleted"
    FAILED = "failed"
    BLOCKED = "blocked"


class ResourceState(BaseModel):
    """A tracked resource in the state file.

    Attributes:
        name: Resource name, unique within the stack (e.g. "talos-vnet")
        kind: Provider kind (e.g. "azure:network/virtualNetwork")
        id: External identifier returned by the provider
        inputs: Fully resolved inputs the resource was last applied with
        outputs: Outputs returned by the provider, always including ``id``
        status: Last known status (``ready`` or ``failed``)
        dependencies: Names of resources this one depended on
        inputs_hash: SHA256 of ``inputs`` for change detection
        created_at: When the resource was created
        updated_at: When the resource was last updated
    """

    name: str
    kind: str
    id: str
    inputs: dict[str, Any] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)
    status: ResourceStatus = ResourceStatus.READY
    dependencies: list[str] = Field(default_factory=list)
    inputs_hash: str = ""
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class State(BaseModel):
    """Persisted resource table for one stack.

    Attributes:
        version: State file format version
        stack: Stack (run identifier) the state belongs to
        serial: Incremented on every write
        lineage: Random id fixed when the state is first created
        resources: Mapping of resource names to their state
        outputs: Exported outputs from the last apply
    """

    version: int = 1
    stack: str
    serial: int = 0
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    resources: dict[str, ResourceState] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)


def compute_state_digest(state: State) -> str:
    """Compute a stable digest of state content (excluding timestamps)."""
    resources = []
    for name, inst in sorted(state.resources.items(), key=lambda kv: kv[0]):
        resources.append(
            {
                "name": name,
                "kind": inst.kind,
                "id": inst.id,
                "status": inst.status.value,
                "inputs_hash": inst.inputs_hash,
                "outputs": inst.outputs,
                "dependencies": sorted(inst.dependencies),
            }
        )

    digestable = {
        "version": state.version,
        "stack": state.stack,
        "lineage": state.lineage,
        "serial": state.serial,
        "resources": resources,
        "outputs": state.outputs,
    }
    payload = _canonical_json(digestable)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
