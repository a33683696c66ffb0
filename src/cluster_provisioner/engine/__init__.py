"""Plan and apply engine for declared resource graphs."""

from cluster_provisioner.engine.dispatch import DispatchOutcome, ProviderCall, ProviderDispatcher
from cluster_provisioner.engine.engine import Engine, StatusCallback
from cluster_provisioner.engine.errors import (
    CyclicDependencyError,
    DuplicateNameError,
    EngineError,
    ProviderError,
    ProviderErrorKind,
    StateLockError,
    UnknownKindError,
    UnknownOutputError,
    UnresolvedValueError,
    ValidationError,
)
from cluster_provisioner.engine.providers import (
    CompareStrategy,
    Created,
    ProviderPlugin,
    RequiresReplacement,
)
from cluster_provisioner.engine.registry import ResourceRegistry, ResourceSpec
from cluster_provisioner.engine.store import StateStore
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
from cluster_provisioner.engine.values import (
    UNKNOWN,
    LiteralValue,
    Resolved,
    ResourceHandle,
    Template,
    Unresolved,
    Value,
    ValueGraph,
    interpolate,
    ref,
)

__all__ = [
    "UNKNOWN",
    "Action",
    "CompareStrategy",
    "Created",
    "CyclicDependencyError",
    "DispatchOutcome",
    "DuplicateNameError",
    "Engine",
    "EngineError",
    "ExecutedCall",
    "LiteralValue",
    "Plan",
    "PlanMetadata",
    "ProviderCall",
    "ProviderDispatcher",
    "ProviderError",
    "ProviderErrorKind",
    "ProviderPlugin",
    "RequiresReplacement",
    "Resolved",
    "ResourceChange",
    "ResourceHandle",
    "ResourceOutcome",
    "ResourceRegistry",
    "ResourceSpec",
    "RunMode",
    "RunResult",
    "RunStatus",
    "StateLockError",
    "StateStore",
    "StatusCallback",
    "Template",
    "UnknownKindError",
    "UnknownOutputError",
    "UnresolvedValueError",
    "ValidationError",
    "Value",
    "ValueGraph",
    "interpolate",
    "ref",
]
