"""Value graph: declared inputs, output references and their resolution.

Inputs are plain data in which any leaf may be a reference to another
resource's output.  Four value kinds exist:

- ``LiteralValue``: known at declaration time (plain Python values count too)
- ``Unresolved``: ``resource.field``, known once that resource completes
- ``Resolved``: a value whose source already completed
- ``Template``: a string embedding ``${resource.field}`` references

Strings written as ``${name.field}`` are turned into references by
:func:`interpolate`, which is what the YAML loader uses.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeAlias

from cluster_provisioner.engine.errors import (
    CyclicDependencyError,
    DuplicateNameError,
    EngineError,
    UnknownOutputError,
    UnresolvedValueError,
)
from cluster_provisioner.engine.graph import find_cycle

if TYPE_CHECKING:
    from cluster_provisioner.engine.registry import ResourceRegistry, ResourceSpec

logger = logging.getLogger(__name__)

UNKNOWN = "(known after apply)"

_REF_PATTERN = re.compile(r"\$\{([A-Za-z0-9_-]+)\.([A-Za-z0-9_]+)\}")


@dataclass(frozen=True, slots=True)
class LiteralValue:
    value: Any


@dataclass(frozen=True, slots=True)
class Unresolved:
    """Output ``field`` of resource ``resource``."""

    resource: str
    field: str

    def __str__(self) -> str:
        return f"${{{self.resource}.{self.field}}}"


@dataclass(frozen=True, slots=True)
class Resolved:
    value: Any


@dataclass(frozen=True, slots=True)
class Template:
    """A string with embedded references, e.g. ``"${rg.name}-nic-1"``."""

    template: str
    refs: tuple[Unresolved, ...]


Value: TypeAlias = LiteralValue | Unresolved | Resolved | Template


@dataclass(frozen=True, slots=True)
class ResourceHandle:
    """Returned by ``declare``; hands out references to the resource's outputs."""

    name: str
    kind: str

    def output(self, field: str) -> Unresolved:
        return Unresolved(self.name, field)

    def __getitem__(self, field: str) -> Unresolved:
        return self.output(field)

    @property
    def id(self) -> Unresolved:
        return self.output("id")


def ref(resource: str, field: str) -> Unresolved:
    """Reference an output by resource name, e.g. before it is declared."""
    return Unresolved(resource, field)


def interpolate(text: str) -> str | Unresolved | Template:
    """Parse ``${name.field}`` references in *text*.

    A string that is exactly one reference becomes an ``Unresolved`` (the
    resolved value keeps its type); embedded references become a ``Template``.
    Works with f-strings since ``str(Unresolved)`` renders the same syntax.
    """
    matches = list(_REF_PATTERN.finditer(text))
    if not matches:
        return text
    if len(matches) == 1 and matches[0].group(0) == text:
        return Unresolved(matches[0].group(1), matches[0].group(2))
    refs = tuple(dict.fromkeys(Unresolved(m.group(1), m.group(2)) for m in matches))
    return Template(text, refs)


def interpolate_all(value: Any) -> Any:
    """Apply :func:`interpolate` to every string in a nested structure."""
    if isinstance(value, str):
        return interpolate(value)
    if isinstance(value, dict):
        return {k: interpolate_all(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [interpolate_all(v) for v in value]
    return value


def collect_references(value: Any) -> list[Unresolved]:
    """All references in a nested value, in first-seen order."""
    refs: list[Unresolved] = []

    def _walk(v: Any) -> None:
        if isinstance(v, Unresolved):
            refs.append(v)
        elif isinstance(v, Template):
            refs.extend(v.refs)
        elif isinstance(v, dict):
            for item in v.values():
                _walk(item)
        elif isinstance(v, list | tuple):
            for item in v:
                _walk(item)

    _walk(value)
    return list(dict.fromkeys(refs))


def is_unknown(value: Any) -> bool:
    """True if *value* contains the plan-time ``UNKNOWN`` marker anywhere."""
    if isinstance(value, str):
        return value == UNKNOWN
    if isinstance(value, dict):
        return any(is_unknown(v) for v in value.values())
    if isinstance(value, list):
        return any(is_unknown(v) for v in value)
    return False


def _stringify(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


def materialize(value: Any, lookup: Callable[[Unresolved], Any]) -> Any:
    """Turn a nested value into plain data, using *lookup* for references."""
    if isinstance(value, LiteralValue | Resolved):
        return materialize(value.value, lookup)
    if isinstance(value, Unresolved):
        return lookup(value)
    if isinstance(value, Template):
        text = value.template
        for r in value.refs:
            resolved = lookup(r)
            if is_unknown(resolved):
                return UNKNOWN
            text = text.replace(str(r), _stringify(resolved))
        return text
    if isinstance(value, dict):
        return {k: materialize(v, lookup) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [materialize(v, lookup) for v in value]
    return value


class ValueGraph:
    """Declared resources plus the per-run resolution of their outputs.

    Each resource's outputs are resolved at most once per run; ``reset`` starts
    a new run.  Only the task owning a resource calls ``resolve`` for it, and
    dependents read its outputs only after that, so no locking is needed.
    """

    def __init__(self, registry: ResourceRegistry) -> None:
        self._registry = registry
        # name -> names it depends on (references + depends_on)
        self._edges: dict[str, list[str]] = {}
        self._resolved: dict[str, dict[str, Any]] = {}

    @property
    def registry(self) -> ResourceRegistry:
        return self._registry

    def declare(self, spec: ResourceSpec) -> ResourceHandle:
        if spec.name in self._registry:
            raise DuplicateNameError(spec.name)

        deps = spec.dependency_names()
        edges = {**self._edges, spec.name: deps}
        cycle = find_cycle(edges, spec.name)
        if cycle:
            raise CyclicDependencyError(cycle)

        self._registry.register(spec)
        self._edges[spec.name] = deps
        logger.debug("Declared %s (%s), depends on %s", spec.name, spec.kind, deps)
        return ResourceHandle(name=spec.name, kind=spec.kind)

    def dependencies(self, name: str) -> list[str]:
        return list(self._edges.get(name, []))

    def dependency_map(self) -> dict[str, list[str]]:
        return {name: list(deps) for name, deps in self._edges.items()}

    def reset(self) -> None:
        self._resolved.clear()

    def is_resolved(self, name: str) -> bool:
        return name in self._resolved

    def outputs(self, name: str) -> Mapping[str, Any]:
        try:
            return self._resolved[name]
        except KeyError as e:
            raise UnresolvedValueError(name, "*") from e

    def resolve(self, name: str, outputs: Mapping[str, Any]) -> list[str]:
        """Resolve every reference sourced from *name*.

        Returns the declared resources that just became eligible, i.e. all of
        their dependencies are now resolved.
        """
        if name in self._resolved:
            raise EngineError(f"Outputs of '{name}' were already resolved in this run")
        self._resolved[name] = dict(outputs)

        eligible = [
            other
            for other, deps in self._edges.items()
            if name in deps
            and other not in self._resolved
            and all(d in self._resolved for d in deps)
        ]
        eligible.sort(key=self._registry.index)
        if eligible:
            logger.debug("Resolved %s; now eligible: %s", name, ", ".join(eligible))
        return eligible

    def _lookup(self, r: Unresolved) -> Any:
        outputs = self._resolved.get(r.resource)
        if outputs is None:
            raise UnresolvedValueError(r.resource, r.field)
        if r.field not in outputs:
            raise UnknownOutputError(r.resource, r.field)
        return outputs[r.field]

    def value(self, value: Any) -> Any:
        """Materialise any value against the current resolutions."""
        return materialize(value, self._lookup)

    def resolve_inputs(self, name: str) -> dict[str, Any]:
        """Fully resolved inputs of a declared resource."""
        return self.value(self._registry.get(name).inputs)

    def preview_inputs(self, name: str, known: Mapping[str, Mapping[str, Any]]) -> dict[str, Any]:
        """Plan-time inputs: references resolve from *known* outputs or to ``UNKNOWN``."""

        def _lookup(r: Unresolved) -> Any:
            outputs = known.get(r.resource)
            if outputs is None:
                return UNKNOWN
            return outputs.get(r.field, UNKNOWN)

        return materialize(self._registry.get(name).inputs, _lookup)
