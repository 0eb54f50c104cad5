"""Dependency graph utilities."""

from __future__ import annotations

import heapq
from typing import TYPE_CHECKING

from gcp_provisioner.engine.errors import CycleError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class DependencyGraph:
    """A directed graph where nodes depend on other nodes.

    ``dependencies[node]`` lists the nodes that must be handled before
    ``node``. Dependencies outside the node set are ignored.
    """

    def __init__(
        self,
        nodes: Iterable[str],
        dependencies: Mapping[str, Iterable[str]],
        priorities: Mapping[str, int] | None = None,
    ) -> None:
        self._order = list(dict.fromkeys(nodes))
        self._nodes = set(self._order)
        self._priorities = priorities or {}
        # node -> filtered deps within graph
        self._deps: dict[str, set[str]] = {}
        self._dependents: dict[str, set[str]] = {n: set() for n in self._nodes}
        for node in self._order:
            deps = set(dependencies.get(node, []))
            self._deps[node] = {d for d in deps if d in self._nodes}
            for dep in self._deps[node]:
                self._dependents[dep].add(node)

    def _key(self, node: str) -> tuple[int, str]:
        return (self._priorities.get(node, 0), node)

    def dependencies(self, node: str) -> set[str]:
        return set(self._deps[node])

    def dependents(self, node: str) -> set[str]:
        return set(self._dependents[node])

    def transitive_dependents(self, node: str) -> set[str]:
        """Every node that (directly or indirectly) depends on *node*."""
        seen: set[str] = set()
        stack = [node]
        while stack:
            for child in self._dependents[stack.pop()]:
                if child not in seen:
                    seen.add(child)
                    stack.append(child)
        return seen

    def find_cycle(self) -> list[str] | None:
        """Return one cycle as ``[a, b, ..., a]``, or ``None`` if acyclic.

        Depth-first search with recursion-stack marking; nodes are visited in
        priority order so the reported cycle is deterministic.
        """
        visiting: set[str] = set()
        done: set[str] = set()
        stack: list[str] = []

        def visit(node: str) -> list[str] | None:
            visiting.add(node)
            stack.append(node)
            for dep in sorted(self._deps[node], key=self._key):
                if dep in visiting:
                    start = stack.index(dep)
                    return [*stack[start:], dep]
                if dep not in done:
                    cycle = visit(dep)
                    if cycle is not None:
                        return cycle
            stack.pop()
            visiting.discard(node)
            done.add(node)
            return None

        for node in sorted(self._nodes, key=self._key):
            if node not in done:
                cycle = visit(node)
                if cycle is not None:
                    return cycle
        return None

    def topological_order(self) -> list[str]:
        """Return deterministic topo order (priority, then lexicographic tie-break)."""
        indegree = {n: len(deps) for n, deps in self._deps.items()}

        ready: list[tuple[int, str]] = [self._key(n) for n, deg in indegree.items() if deg == 0]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            _, node = heapq.heappop(ready)
            order.append(node)
            for child in sorted(self._dependents[node]):
                indegree[child] -= 1
                if indegree[child] == 0:
                    heapq.heappush(ready, self._key(child))

        if len(order) != len(self._nodes):
            raise CycleError(self.find_cycle() or sorted(self._nodes - set(order)))

        return order

    def reverse_topological_order(self) -> list[str]:
        """Dependents before their dependencies (teardown order).

        Independent nodes keep the priority/lexicographic tie-break.
        """
        inverted = DependencyGraph(
            self._order,
            {n: self._dependents[n] for n in self._order},
            priorities=self._priorities,
        )
        return inverted.topological_order()
