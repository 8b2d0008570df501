"""
Dependency graph over a composition.

Edges point from the resource that must be created first to the resource
that waits for it. Every binding implies an edge producer -> consumer;
explicit ordering edges add sequencing with no data flow (for example a
role that must outlive the resources it was used to delete).
"""

from __future__ import annotations

import heapq
from typing import Dict, List, Set, Tuple

import structlog

from stackwire.composition.models import Composition
from stackwire.core.errors import CycleError, DanglingBindingError

logger = structlog.get_logger()

Edge = Tuple[str, str]


def add_ordering_edge(composition: Composition, from_id: str, to_id: str) -> None:
    """Require ``from_id`` to be created before (and deleted after) ``to_id``.

    Adding an existing edge is a no-op.
    """
    missing = [i for i in (from_id, to_id) if i not in composition.specs]
    if missing:
        raise DanglingBindingError(
            f"Ordering edge {from_id} -> {to_id} references unknown resource(s): "
            f"{', '.join(missing)}",
            logical_ids=missing,
        )
    edge = (from_id, to_id)
    if edge in composition.edges:
        return
    composition.edges.add(edge)
    composition.specs[to_id].depends_on.add(from_id)


def binding_edges(composition: Composition) -> Set[Edge]:
    """Edges implied by bindings, including ones already resolved."""
    edges = {b.edge for b in composition.bindings}
    for spec in composition.specs.values():
        edges.update(b.edge for b in spec.bindings())
    return edges


def all_edges(composition: Composition) -> Set[Edge]:
    """Explicit ordering edges plus binding-implied edges."""
    return set(composition.edges) | binding_edges(composition)


def _successors(composition: Composition) -> Dict[str, List[str]]:
    order = {logical_id: i for i, logical_id in enumerate(composition.specs)}
    successors: Dict[str, List[str]] = {logical_id: [] for logical_id in composition.specs}
    for src, dst in all_edges(composition):
        successors.setdefault(src, []).append(dst)
        successors.setdefault(dst, [])
    for targets in successors.values():
        targets.sort(key=lambda n: order.get(n, len(order)))
    return successors


def find_cycle(composition: Composition) -> List[str] | None:
    """Return the first cycle found (e.g. ``["A", "B", "A"]``) or None."""
    successors = _successors(composition)
    visiting: List[str] = []
    on_path: Set[str] = set()
    done: Set[str] = set()

    def dfs(node: str) -> List[str] | None:
        visiting.append(node)
        on_path.add(node)
        for nxt in successors[node]:
            if nxt in on_path:
                start = visiting.index(nxt)
                return visiting[start:] + [nxt]
            if nxt not in done:
                cycle = dfs(nxt)
                if cycle:
                    return cycle
        visiting.pop()
        on_path.discard(node)
        done.add(node)
        return None

    for node in successors:
        if node not in done:
            cycle = dfs(node)
            if cycle:
                return cycle
    return None


def topological_check(composition: Composition) -> bool:
    """Verify the graph is acyclic.

    Returns:
        True when acyclic

    Raises:
        CycleError: carrying the full offending path
    """
    cycle = find_cycle(composition)
    if cycle:
        logger.warning("composition_cycle_detected", cycle=cycle)
        raise CycleError(cycle)
    return True


def topological_order(composition: Composition) -> List[str]:
    """Creation order; ties are broken by declaration order."""
    topological_check(composition)
    order = {logical_id: i for i, logical_id in enumerate(composition.specs)}
    successors = _successors(composition)
    indegree = {node: 0 for node in successors}
    for targets in successors.values():
        for target in targets:
            indegree[target] += 1

    ready = [(order.get(n, len(order)), n) for n, deg in indegree.items() if deg == 0]
    heapq.heapify(ready)
    result: List[str] = []
    while ready:
        _, node = heapq.heappop(ready)
        result.append(node)
        for target in successors[node]:
            indegree[target] -= 1
            if indegree[target] == 0:
                heapq.heappush(ready, (order.get(target, len(order)), target))
    return result


def predecessors(composition: Composition, logical_id: str) -> Set[str]:
    """Resources that must exist before ``logical_id``."""
    return {src for src, dst in all_edges(composition) if dst == logical_id}


def dependents(composition: Composition, logical_id: str) -> Set[str]:
    """Resources that wait for ``logical_id``."""
    return {dst for src, dst in all_edges(composition) if src == logical_id}
