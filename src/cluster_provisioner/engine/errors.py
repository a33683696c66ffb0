"""Engine error types."""

from __future__ import annotations

from enum import Enum


class EngineError(Exception):
    """Base exception for engine errors."""


class UnknownKindError(EngineError):
    """Raised when a resource kind has no provider plugin."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Unknown resource kind: {kind}")
        self.kind = kind


class DuplicateNameError(EngineError):
    """Raised when two declared resources share the same name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Duplicate resource name: {name}")
        self.name = name


class CyclicDependencyError(EngineError):
    """Raised when dependencies contain a cycle."""

    def __init__(self, members: list[str]) -> None:
        msg = "Dependency cycle detected"
        if members:
            msg += f": {' -> '.join(members)}"
        super().__init__(msg)
        self.members = members


class ValidationError(EngineError):
    """One or more resources failed plan validation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        msg = "Validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(msg)


class StateLockError(EngineError):
    """Raised when the state lock cannot be acquired or released."""


class UnresolvedValueError(EngineError):
    """Raised when a value is read before its source resource completed."""

    def __init__(self, resource: str, field: str) -> None:
        super().__init__(f"Value {resource}.{field} is not resolved yet")
        self.resource = resource
        self.field = field


class UnknownOutputError(EngineError):
    """Raised when a reference names an output its source never produced."""

    def __init__(self, resource: str, field: str) -> None:
        super().__init__(f"Resource '{resource}' has no output '{field}'")
        self.resource = resource
        self.field = field


class ProviderErrorKind(str, Enum):
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


class ProviderError(EngineError):
    """A provider call failed.

    Resource-local: the engine marks the resource failed and blocks its
    dependents, but independent resources keep going. Never retried by the
    engine; re-running the same declarations resubmits the operation.
    """

    def __init__(self, kind: ProviderErrorKind | str, message: str) -> None:
        self.kind = ProviderErrorKind(kind)
        self.message = message
        super().__init__(f"{self.kind.value}: {message}")
