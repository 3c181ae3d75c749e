"""Traversal algorithms over a ContextGraph.

All algorithms are read-only with respect to graph structure and hold the
graph's shared lock for their whole run. Depth and result limits truncate
silently; callers that need completeness compare result counts against the
bounds they passed.
"""

import heapq
import itertools
import logging
from collections import deque
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from .context_graph import ContextGraph
from .types import (
    CYCLE_TYPES,
    DEPENDENCY_TYPES,
    IMPACT_TYPES,
    ContextNode,
    Cycle,
    Dependency,
    Edge,
    Impact,
    PathResult,
    QueryResult,
)

logger = logging.getLogger(__name__)

NodeFilter = Callable[[ContextNode], bool]
EdgeFilter = Callable[[Edge], bool]


class GraphTraversal:
    """Dependency, impact, cycle, path and query algorithms for a graph."""

    def __init__(self, graph: ContextGraph):
        self.graph = graph

    @property
    def config(self):
        return self.graph.config

    def find_dependencies(
        self,
        context_id: str,
        max_depth: Optional[int] = None,
        relationship_types: Sequence[str] = DEPENDENCY_TYPES,
        transitive: bool = True,
    ) -> List[Dependency]:
        """Find the contexts a context depends on.

        Depth-first over outgoing edges of the given types. A node reached
        again keeps the entry with the smaller distance, or the higher
        weight at equal distance; a node reached at a strictly smaller
        depth than before is expanded again so its descendants get their
        shortest distances too.

        Args:
            context_id: The context to start from
            max_depth: Maximum hop count (default: config.max_traversal_depth)
            relationship_types: Edge types treated as dependencies
            transitive: If False, only direct dependencies are returned

        Returns:
            Dependencies sorted by (distance asc, weight desc); never
            contains the starting context
        """
        if max_depth is None:
            max_depth = self.config.max_traversal_depth

        dependencies: Dict[str, Dependency] = {}
        expanded_at: Dict[str, int] = {}

        with self.graph.lock.read_locked():
            # Explicit stack of (node, depth of its outgoing edges, path so far)
            stack: List[tuple] = [(context_id, 1, [])]
            while stack:
                node_id, depth, path = stack.pop()
                if depth > max_depth:
                    continue
                if expanded_at.get(node_id, max_depth + 1) <= depth:
                    continue
                expanded_at[node_id] = depth

                for edge in self.graph.out_edges(node_id, relationship_types):
                    if edge.to_id == context_id:
                        continue
                    new_path = path + [edge]
                    existing = dependencies.get(edge.to_id)
                    if (
                        existing is None
                        or existing.distance > depth
                        or (existing.distance == depth and existing.weight < edge.weight)
                    ):
                        dependencies[edge.to_id] = Dependency(
                            context_id=edge.to_id,
                            relationship=edge.relationship_type,
                            distance=depth,
                            weight=edge.weight,
                            path=new_path,
                            metadata=edge.metadata,
                        )
                    if transitive:
                        stack.append((edge.to_id, depth + 1, new_path))

        self.graph.touch(context_id)
        return sorted(dependencies.values(), key=lambda d: (d.distance, -d.weight))

    def find_impacted_contexts(
        self,
        context_id: str,
        max_distance: int = 3,
        relationship_types: Sequence[str] = IMPACT_TYPES,
        impact_threshold: float = 0.1,
        decay_factor: Optional[float] = None,
    ) -> List[Impact]:
        """Find the contexts affected by a change to a context.

        Breadth-first over incoming edges ("who depends on me"). Impact is
        1.0 at the origin; every hop multiplies it by the edge weight and
        the decay factor, so a node ``d`` hops away over unit-weight edges
        has impact ``decay_factor ** d``. Nodes whose impact falls below
        the threshold are neither recorded nor expanded.

        Args:
            context_id: The changed context
            max_distance: Maximum hop count
            relationship_types: Edge types that propagate impact
            impact_threshold: Minimum impact worth reporting
            decay_factor: Per-hop decay (default: config.impact_decay_factor)

        Returns:
            Impacted contexts sorted by impact descending
        """
        if decay_factor is None:
            decay_factor = self.config.impact_decay_factor

        impacted: Dict[str, Impact] = {}
        processed: Set[str] = set()
        queue: deque = deque([(context_id, 0, 1.0, [])])

        with self.graph.lock.read_locked():
            while queue:
                node_id, distance, impact, path = queue.popleft()
                if distance >= max_distance or node_id in processed:
                    continue
                processed.add(node_id)

                for edge in self.graph.in_edges(node_id, relationship_types):
                    source = edge.from_id
                    if source == context_id:
                        continue
                    new_impact = impact * edge.weight * decay_factor
                    if new_impact < impact_threshold:
                        continue

                    existing = impacted.get(source)
                    if existing is None or existing.impact < new_impact:
                        new_path = path + [edge]
                        impacted[source] = Impact(
                            context_id=source,
                            impact=new_impact,
                            distance=distance + 1,
                            relationship=edge.relationship_type,
                            path=new_path,
                        )
                        queue.append((source, distance + 1, new_impact, new_path))

        return sorted(impacted.values(), key=lambda i: i.impact, reverse=True)

    def detect_cycles(
        self,
        relationship_types: Sequence[str] = CYCLE_TYPES,
        exhaustive: bool = False,
    ) -> List[Cycle]:
        """Detect dependency cycles.

        Runs a depth-first search from every node not yet visited, keeping
        the current recursion stack. An edge back to a node on the stack
        closes a cycle, reported from that node back to itself.

        Args:
            relationship_types: Edge types that form dependencies
            exhaustive: Report every back-edge instead of one cycle per root

        Returns:
            Detected cycles; empty for a DAG
        """
        cycles: List[Cycle] = []
        visited: Set[str] = set()

        with self.graph.lock.read_locked():
            for root in self.graph.node_ids():
                if root in visited:
                    continue
                cycles.extend(self._cycles_from(root, relationship_types, visited, exhaustive))

        logger.info(f"Cycle detection complete: {len(cycles)} cycle(s) found")
        return cycles

    def _cycles_from(
        self,
        root: str,
        relationship_types: Sequence[str],
        visited: Set[str],
        exhaustive: bool,
    ) -> List[Cycle]:
        found: List[Cycle] = []
        path: List[str] = [root]
        on_stack: Set[str] = {root}
        visited.add(root)
        # Each frame iterates the outgoing edges of the node at the same path index
        frames = [iter(self.graph.out_edges(root, relationship_types))]

        while frames:
            edge = next(frames[-1], None)
            if edge is None:
                frames.pop()
                on_stack.discard(path.pop())
                continue

            target = edge.to_id
            if target in on_stack:
                start = path.index(target)
                nodes = path[start:] + [target]
                found.append(Cycle(nodes=nodes, edges=self._edges_along(nodes, relationship_types)))
                if not exhaustive:
                    break
            elif target not in visited:
                visited.add(target)
                on_stack.add(target)
                path.append(target)
                frames.append(iter(self.graph.out_edges(target, relationship_types)))

        return found

    def _edges_along(self, nodes: List[str], relationship_types: Sequence[str]) -> List[Edge]:
        edges: List[Edge] = []
        for from_id, to_id in zip(nodes, nodes[1:]):
            for edge in self.graph.out_edges(from_id, relationship_types):
                if edge.to_id == to_id:
                    edges.append(edge)
                    break
        return edges

    def find_shortest_path(
        self,
        from_id: str,
        to_id: str,
        weighted: bool = True,
        relationship_types: Optional[Sequence[str]] = None,
    ) -> Optional[PathResult]:
        """Find the cheapest path between two contexts (Dijkstra).

        Args:
            from_id: Start context
            to_id: Target context
            weighted: Edge cost is 1/weight if True, else 1
            relationship_types: Edge types that may be followed (None = all)

        Returns:
            PathResult, or None if either node is missing or no path exists
        """
        with self.graph.lock.read_locked():
            if from_id not in self.graph or to_id not in self.graph:
                return None
            if from_id == to_id:
                return PathResult(path=[], distance=0.0, nodes=[from_id])

            distances: Dict[str, float] = {from_id: 0.0}
            previous: Dict[str, Edge] = {}
            settled: Set[str] = set()
            counter = itertools.count()
            heap = [(0.0, next(counter), from_id)]

            while heap:
                dist, _, current = heapq.heappop(heap)
                if current in settled:
                    continue
                settled.add(current)
                if current == to_id:
                    break

                for edge in self.graph.out_edges(current, relationship_types):
                    cost = (1.0 / edge.weight) if weighted else 1.0
                    alt = dist + cost
                    if alt < distances.get(edge.to_id, float("inf")):
                        distances[edge.to_id] = alt
                        previous[edge.to_id] = edge
                        heapq.heappush(heap, (alt, next(counter), edge.to_id))

        if to_id not in previous:
            return None

        path: List[Edge] = []
        current = to_id
        while current != from_id:
            edge = previous[current]
            path.append(edge)
            current = edge.from_id
        path.reverse()

        return PathResult(
            path=path,
            distance=distances[to_id],
            nodes=[from_id] + [edge.to_id for edge in path],
        )

    def query(
        self,
        start_nodes: Optional[Sequence[str]] = None,
        relationship_types: Optional[Sequence[str]] = None,
        max_depth: int = 3,
        node_filter: Optional[NodeFilter] = None,
        edge_filter: Optional[EdgeFilter] = None,
        limit: Optional[int] = None,
    ) -> List[QueryResult]:
        """Generic filtered traversal.

        Depth-first from each start node (default: every node). A node is
        visited at most once across all roots. Nodes failing ``node_filter``
        are still traversed through but not reported.

        Args:
            start_nodes: Root ids (None or empty = all nodes)
            relationship_types: Edge types that may be followed (None = all)
            max_depth: Maximum hop count from a root
            node_filter: Predicate a node must satisfy to be reported
            edge_filter: Predicate an edge must satisfy to be followed
            limit: Stop once this many results are collected

        Returns:
            Matching nodes with the path that reached them
        """
        results: List[QueryResult] = []
        visited: Set[str] = set()

        def full() -> bool:
            return limit is not None and len(results) >= limit

        with self.graph.lock.read_locked():
            roots = list(start_nodes) if start_nodes else self.graph.node_ids()
            for root in roots:
                if full():
                    break
                stack = [(root, 0, [])]
                while stack and not full():
                    node_id, depth, path = stack.pop()
                    if depth > max_depth or node_id in visited:
                        continue
                    visited.add(node_id)

                    node = self.graph.nodes.get(node_id)
                    if node is not None and (node_filter is None or node_filter(node)):
                        results.append(QueryResult(node=node, path=path, depth=depth))

                    children = [
                        edge
                        for edge in self.graph.out_edges(node_id, relationship_types)
                        if edge_filter is None or edge_filter(edge)
                    ]
                    # Reverse so edges are explored in insertion order
                    for edge in reversed(children):
                        stack.append((edge.to_id, depth + 1, path + [edge]))

        return results

    def get_statistics(self) -> Dict[str, Any]:
        """Summary statistics for the graph.

        Returns:
            Dict with node_count, edge_count, relationship_types,
            average_degree, density and components
        """
        with self.graph.lock.read_locked():
            stats = self.graph.get_stats()
            stats["average_degree"] = self.average_degree()
            stats["density"] = self.density()
            stats["components"] = self.count_components()
        return stats

    def average_degree(self) -> float:
        with self.graph.lock.read_locked():
            n = len(self.graph)
            if n == 0:
                return 0.0
            total = sum(self.graph.degree(node_id) for node_id in self.graph.node_ids())
            return total / n

    def density(self) -> float:
        with self.graph.lock.read_locked():
            n = len(self.graph)
            if n <= 1:
                return 0.0
            return self.graph.edge_count / (n * (n - 1))

    def count_components(self) -> int:
        """Count weakly connected components (edges followed both ways)."""
        visited: Set[str] = set()
        components = 0

        with self.graph.lock.read_locked():
            for root in self.graph.node_ids():
                if root in visited:
                    continue
                components += 1
                visited.add(root)
                stack = [root]
                while stack:
                    current = stack.pop()
                    neighbors = [e.to_id for e in self.graph.out_edges(current)]
                    neighbors.extend(e.from_id for e in self.graph.in_edges(current))
                    for neighbor in neighbors:
                        if neighbor not in visited:
                            visited.add(neighbor)
                            stack.append(neighbor)

        return components
