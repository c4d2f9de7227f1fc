from __future__ import annotations

import heapq
from typing import Dict, List

from .dependencies import DependencyGraph
from .parser import ParseError


class DependencyCycleError(ParseError):
    """Raised when actions reference each other in a loop."""

    def __init__(self, cycle: List[str]) -> None:
        self.cycle = list(cycle)
        message = "Circular dependency detected: " + " -> ".join(self.cycle)
        super().__init__(message)


def execution_order(graph: DependencyGraph) -> List[str]:
    """Stable topological order of ``graph``.

    Among actions whose producers have all been emitted, the one declared
    first in the input runs first.
    """

    position: Dict[str, int] = {aid: idx for idx, aid in enumerate(graph.order)}
    indegree: Dict[str, int] = {aid: len(graph.producers.get(aid, [])) for aid in graph.order}
    ready = [position[aid] for aid, degree in indegree.items() if degree == 0]
    heapq.heapify(ready)

    ordered: List[str] = []
    while ready:
        aid = graph.order[heapq.heappop(ready)]
        ordered.append(aid)
        for consumer in graph.consumers.get(aid, []):
            indegree[consumer] -= 1
            if indegree[consumer] == 0:
                heapq.heappush(ready, position[consumer])

    if len(ordered) != len(graph.order):
        cycle = graph.find_cycle()
        if cycle is None:  # pragma: no cover - indegree leftovers imply a cycle
            cycle = [aid for aid in graph.order if aid not in set(ordered)]
        raise DependencyCycleError(cycle)
    return ordered


__all__ = ["DependencyCycleError", "execution_order"]
