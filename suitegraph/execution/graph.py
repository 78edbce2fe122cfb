"""Graph algorithms over runnables linked by prior/next edges.

``topological_order`` validates a prepared plan before it is started;
``ancestors`` and ``depends_on`` answer reachability questions about it.
Nodes are compared by identity.
"""

from __future__ import annotations

from collections import deque
from typing import Iterable

from suitegraph.execution.errors import GraphCycleError
from suitegraph.execution.runnables import Runnable


def find_cycle(runnables: Iterable[Runnable]) -> list[Runnable] | None:
    """Detect a cycle along ``next_runnables`` edges.

    Iterative DFS so that long sequential chains do not hit the recursion
    limit.

    Returns:
        The runnables forming the cycle (first node repeated at the end),
        or None if the graph is acyclic.
    """
    WHITE, GRAY, BLACK = 0, 1, 2
    color: dict[int, int] = {}

    for start in runnables:
        if color.get(id(start), WHITE) != WHITE:
            continue
        path: list[Runnable] = [start]
        stack = [iter(start.next_runnables)]
        color[id(start)] = GRAY

        while stack:
            successor = next(stack[-1], None)
            if successor is None:
                stack.pop()
                color[id(path.pop())] = BLACK
                continue
            state = color.get(id(successor), WHITE)
            if state == GRAY:
                cycle_start = next(i for i, r in enumerate(path) if r is successor)
                return path[cycle_start:] + [successor]
            if state == WHITE:
                color[id(successor)] = GRAY
                path.append(successor)
                stack.append(iter(successor.next_runnables))

    return None


def topological_order(runnables: Iterable[Runnable]) -> list[Runnable]:
    """Order runnables so that every prior comes before its successors.

    Args:
        runnables: The registered runnables. Edges to runnables outside this
            collection are ignored.

    Returns:
        Runnables in a valid execution order (Kahn's algorithm, stable with
        respect to the input order).

    Raises:
        GraphCycleError: If the graph contains a cycle.
    """
    nodes = list(runnables)
    members = {id(r) for r in nodes}

    cycle = find_cycle(nodes)
    if cycle is not None:
        path = " -> ".join(f"#{r.id} {r.title}" for r in cycle)
        raise GraphCycleError(f"Cycle detected in execution graph: {path}")

    remaining: dict[int, int] = {
        id(r): sum(1 for p in r.prior_runnables if id(p) in members) for r in nodes
    }
    queue: deque[Runnable] = deque(r for r in nodes if remaining[id(r)] == 0)

    order: list[Runnable] = []
    while queue:
        runnable = queue.popleft()
        order.append(runnable)
        for successor in runnable.next_runnables:
            key = id(successor)
            if key not in remaining:
                continue
            remaining[key] -= 1
            if remaining[key] == 0:
                queue.append(successor)

    if len(order) != len(nodes):
        raise GraphCycleError("Topological sort incomplete -- possible undetected cycle")

    return order


def ancestors(runnable: Runnable) -> list[Runnable]:
    """Every runnable this one transitively waits on, nearest first."""
    seen: set[int] = {id(runnable)}
    result: list[Runnable] = []
    queue: deque[Runnable] = deque(runnable.prior_runnables)

    while queue:
        prior = queue.popleft()
        if id(prior) in seen:
            continue
        seen.add(id(prior))
        result.append(prior)
        queue.extend(prior.prior_runnables)

    return result


def depends_on(runnable: Runnable, other: Runnable) -> bool:
    """True if ``runnable`` cannot start before ``other`` completes."""
    return any(prior is other for prior in ancestors(runnable))
