"""Dependency graph utilities."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cluster_provisioner.engine.errors import CyclicDependencyError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

_VISITING = 1
_DONE = 2


def find_cycle(edges: Mapping[str, Iterable[str]], start: str) -> list[str]:
    """Return a cycle through *start* as ``[start, ..., start]``, or ``[]``.

    Edges pointing at nodes missing from *edges* are ignored.
    """
    path = [start]
    visited = {start}
    stack = [iter(edges.get(start, ()))]
    while stack:
        for nxt in stack[-1]:
            if nxt == start:
                return [*path, start]
            if nxt in edges and nxt not in visited:
                visited.add(nxt)
                path.append(nxt)
                stack.append(iter(edges[nxt]))
                break
        else:
            stack.pop()
            path.pop()
    return []


class DependencyGraph:
    """A directed graph where nodes depend on other nodes.

    Ordering ties are broken by priority, then by the position of the node in
    *nodes* (declaration order), so results are reproducible.
    """

    def __init__(
        self,
        nodes: Iterable[str],
        dependencies: Mapping[str, Iterable[str]],
        priorities: Mapping[str, int] | None = None,
    ) -> None:
        self._position = {n: i for i, n in enumerate(dict.fromkeys(nodes))}
        self._priorities = priorities or {}
        # node -> filtered deps within graph
        self._deps: dict[str, list[str]] = {}
        for node in self._position:
            deps = dict.fromkeys(dependencies.get(node, []))
            self._deps[node] = sorted((d for d in deps if d in self._position), key=self._key)

    def _key(self, node: str) -> tuple[int, int]:
        return self._priorities.get(node, 0), self._position[node]

    def dependencies(self, node: str) -> list[str]:
        return list(self._deps[node])

    def topological_order(self) -> list[str]:
        """Depth-first topological order; dependencies always precede dependents.

        Raises:
            CyclicDependencyError: On a back edge, naming the cycle members.
        """
        marks: dict[str, int] = {}
        order: list[str] = []

        for root in sorted(self._position, key=self._key):
            if root in marks:
                continue
            marks[root] = _VISITING
            path = [root]
            stack = [iter(self._deps[root])]
            while stack:
                for dep in stack[-1]:
                    mark = marks.get(dep)
                    if mark == _VISITING:
                        cycle = path[path.index(dep) :]
                        raise CyclicDependencyError([*cycle, dep])
                    if mark is None:
                        marks[dep] = _VISITING
                        path.append(dep)
                        stack.append(iter(self._deps[dep]))
                        break
                else:
                    stack.pop()
                    node = path.pop()
                    marks[node] = _DONE
                    order.append(node)

        return order

    def reverse_topological_order(self) -> list[str]:
        order = self.topological_order()
        order.reverse()
        return order

    def tiers(self) -> list[list[str]]:
        """Group nodes by dependency depth.

        Every node's dependencies live in earlier tiers, so the nodes of one
        tier may run concurrently once the previous tiers are done.
        """
        depth: dict[str, int] = {}
        for node in self.topological_order():
            deps = self._deps[node]
            depth[node] = 1 + max(depth[d] for d in deps) if deps else 0

        tiers: list[list[str]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
        for node, d in depth.items():
            tiers[d].append(node)
        for tier in tiers:
            tier.sort(key=self._key)
        return tiers
