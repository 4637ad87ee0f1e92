"""Dependency ordering of resource addresses."""

from __future__ import annotations

import heapq
from graphlib import CycleError, TopologicalSorter
from typing import TYPE_CHECKING

from gcp_env_provisioner.engine.errors import DependencyCycleError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class DependencyGraph:
    """Addresses and the upstream addresses each one waits for.

    Upstream addresses outside the node set do not constrain the order;
    `unresolved_dependencies` lists them. Among nodes that are ready at the
    same time, the lower ``plan_priority`` goes first, then the address.
    """

    def __init__(
        self,
        nodes: Iterable[str],
        dependencies: Mapping[str, Iterable[str]],
        priorities: Mapping[str, int] | None = None,
    ) -> None:
        self._upstream: dict[str, list[str]] = {
            node: list(dict.fromkeys(dependencies.get(node, ()))) for node in nodes
        }
        self._priorities = dict(priorities or {})

    def unresolved_dependencies(self) -> dict[str, list[str]]:
        """``node -> upstream addresses that are not nodes of this graph``."""
        missing = {
            node: [dep for dep in deps if dep not in self._upstream]
            for node, deps in self._upstream.items()
        }
        return {node: deps for node, deps in sorted(missing.items()) if deps}

    def topological_order(self) -> list[str]:
        sorter: TopologicalSorter[str] = TopologicalSorter()
        for node, deps in self._upstream.items():
            sorter.add(node, *(dep for dep in deps if dep in self._upstream))
        try:
            sorter.prepare()
        except CycleError as exc:
            raise DependencyCycleError(sorted(set(exc.args[1]))) from exc

        ready: list[tuple[int, str]] = []
        order: list[str] = []
        while sorter.is_active():
            for node in sorter.get_ready():
                heapq.heappush(ready, (self._priorities.get(node, 0), node))
            _, node = heapq.heappop(ready)
            order.append(node)
            sorter.done(node)
        return order

    def reverse_topological_order(self) -> list[str]:
        return self.topological_order()[::-1]
