"""In-memory context relationship graph.

Nodes live in a flat id-keyed table and edges in three id-keyed adjacency
indices (forward, reverse and by relationship type). Nothing holds a direct
reference from one node to another, so removing a node is a filter over the
indices it appears in.
"""

import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .locking import ReadWriteLock
from .types import (
    ContextNode,
    Direction,
    Edge,
    GraphConfig,
    Neighbor,
    NodeNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# (other endpoint id, relationship type)
_AdjKey = Tuple[str, str]


class ContextGraph:
    """Directed, weighted, typed graph over context records.

    Supports:
    - Idempotent node upserts with access bookkeeping
    - Multiple edges of different types between the same pair of nodes
    - Cascading node removal
    - Neighbor lookups in either direction, filtered by relationship type

    Every public method takes the graph lock: reads take the shared side
    and mutations the exclusive side, so a traversal never observes a
    half-applied mutation.
    """

    def __init__(self, config: Optional[GraphConfig] = None):
        """Initialize the graph.

        Args:
            config: Traversal defaults (default: snapshot of Config)
        """
        self.config = config or GraphConfig.from_config()
        self.lock = ReadWriteLock()
        # Access bookkeeping is not structural; readers update it under this mutex
        self._access_lock = threading.Lock()
        self.nodes: Dict[str, ContextNode] = {}
        self._out: Dict[str, Dict[_AdjKey, Edge]] = {}
        self._in: Dict[str, Dict[_AdjKey, Edge]] = {}
        self._by_type: Dict[str, Dict[Tuple[str, str, str], Edge]] = {}
        self._edge_count = 0

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_node(self, context_id: str, payload: Any = None) -> ContextNode:
        """Insert or replace a node.

        Replacing keeps the node's edges but resets its access bookkeeping.

        Args:
            context_id: Unique node id
            payload: Context data attached to the node

        Returns:
            The stored node
        """
        with self.lock.write_locked():
            if context_id in self.nodes:
                logger.warning(f"Node already exists, updating: {context_id}")

            node = ContextNode(id=context_id, payload=payload if payload is not None else {})
            self.nodes[context_id] = node
            self._out.setdefault(context_id, {})
            self._in.setdefault(context_id, {})

            logger.debug(f"Node added: {context_id} (node_count={len(self.nodes)})")
            return node

    def add_edge(
        self,
        from_id: str,
        to_id: str,
        relationship_type: str,
        weight: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> Edge:
        """Add a directed edge between two existing nodes.

        An existing edge with the same (from, to, type) is replaced.

        Args:
            from_id: Source node id
            to_id: Target node id
            relationship_type: Relationship type, e.g. "depends-on"
            weight: Edge weight in (0, 1] (default: config.default_edge_weight)
            metadata: Arbitrary edge metadata
            created_at: Creation time (default: now)

        Returns:
            The stored edge

        Raises:
            ValidationError: If the type is empty or the weight is out of range
            NodeNotFoundError: If either endpoint does not exist
        """
        if not relationship_type or not isinstance(relationship_type, str):
            raise ValidationError("Relationship type is required")

        if weight is None:
            weight = self.config.default_edge_weight
        weight = float(weight)
        if not 0.0 < weight <= 1.0:
            raise ValidationError(f"Edge weight must be in (0, 1], got {weight}")

        with self.lock.write_locked():
            if from_id not in self.nodes:
                raise NodeNotFoundError(from_id, role="Source node")
            if to_id not in self.nodes:
                raise NodeNotFoundError(to_id, role="Target node")

            edge = Edge(
                from_id=from_id,
                to_id=to_id,
                relationship_type=relationship_type,
                weight=weight,
                metadata=dict(metadata or {}),
                created_at=created_at or datetime.now(),
            )

            replaced = (to_id, relationship_type) in self._out[from_id]
            self._out[from_id][(to_id, relationship_type)] = edge
            self._in[to_id][(from_id, relationship_type)] = edge
            self._by_type.setdefault(relationship_type, {})[edge.key] = edge
            if not replaced:
                self._edge_count += 1

            logger.debug(
                f"Edge added: {from_id} -[{relationship_type}]-> {to_id} "
                f"(edge_count={self._edge_count})"
            )
            return edge

    def remove_node(self, context_id: str) -> bool:
        """Remove a node and every edge touching it.

        Args:
            context_id: The node id to remove

        Returns:
            True if removed, False if not found
        """
        with self.lock.write_locked():
            if context_id not in self.nodes:
                return False

            incident = list(self._out.get(context_id, {}).values())
            incident.extend(self._in.get(context_id, {}).values())
            for edge in incident:
                self._unlink(edge)

            del self.nodes[context_id]
            self._out.pop(context_id, None)
            self._in.pop(context_id, None)

            logger.debug(f"Node removed: {context_id} (node_count={len(self.nodes)})")
            return True

    def remove_edge(self, from_id: str, to_id: str, relationship_type: str) -> bool:
        """Remove one edge.

        Returns:
            True if removed, False if no such edge exists
        """
        with self.lock.write_locked():
            edge = self._out.get(from_id, {}).get((to_id, relationship_type))
            if edge is None:
                return False
            self._unlink(edge)
            return True

    def _unlink(self, edge: Edge) -> None:
        # Callers hold the write lock; self-loops appear in both indices once
        if self._out.get(edge.from_id, {}).pop((edge.to_id, edge.relationship_type), None) is None:
            return
        self._in.get(edge.to_id, {}).pop((edge.from_id, edge.relationship_type), None)
        typed = self._by_type.get(edge.relationship_type)
        if typed is not None:
            typed.pop(edge.key, None)
            if not typed:
                del self._by_type[edge.relationship_type]
        self._edge_count -= 1

    def clear(self) -> None:
        """Remove every node and edge."""
        with self.lock.write_locked():
            self.nodes.clear()
            self._out.clear()
            self._in.clear()
            self._by_type.clear()
            self._edge_count = 0

    def touch(self, context_id: str) -> None:
        """Update access bookkeeping for a node, if it exists.

        Safe to call with or without the shared lock held.
        """
        with self._access_lock:
            node = self.nodes.get(context_id)
            if node:
                node.touch()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_node(self, context_id: str) -> Optional[ContextNode]:
        """Get a node by id, or None if not found."""
        with self.lock.read_locked():
            return self.nodes.get(context_id)

    def has_node(self, context_id: str) -> bool:
        with self.lock.read_locked():
            return context_id in self.nodes

    def get_edge(self, from_id: str, to_id: str, relationship_type: str) -> Optional[Edge]:
        with self.lock.read_locked():
            return self._out.get(from_id, {}).get((to_id, relationship_type))

    def node_ids(self) -> List[str]:
        """Node ids in insertion order."""
        with self.lock.read_locked():
            return list(self.nodes.keys())

    def out_edges(
        self, context_id: str, relationship_types: Optional[Sequence[str]] = None
    ) -> List[Edge]:
        """Outgoing edges of a node, optionally restricted to some types."""
        with self.lock.read_locked():
            edges = self._out.get(context_id, {}).values()
            if relationship_types:
                return [e for e in edges if e.relationship_type in relationship_types]
            return list(edges)

    def in_edges(
        self, context_id: str, relationship_types: Optional[Sequence[str]] = None
    ) -> List[Edge]:
        """Incoming edges of a node, optionally restricted to some types."""
        with self.lock.read_locked():
            edges = self._in.get(context_id, {}).values()
            if relationship_types:
                return [e for e in edges if e.relationship_type in relationship_types]
            return list(edges)

    def iter_edges(self) -> Iterator[Edge]:
        """Iterate over a snapshot of all edges, grouped by source node."""
        with self.lock.read_locked():
            snapshot = [edge for adj in self._out.values() for edge in adj.values()]
        return iter(snapshot)

    def edges_of_type(self, relationship_type: str) -> List[Edge]:
        with self.lock.read_locked():
            return list(self._by_type.get(relationship_type, {}).values())

    def relationship_types(self) -> List[str]:
        """Distinct relationship types currently present, sorted."""
        with self.lock.read_locked():
            return sorted(self._by_type.keys())

    @property
    def edge_count(self) -> int:
        return self._edge_count

    def get_neighbors(
        self,
        context_id: str,
        direction: str = Direction.BOTH,
        relationship_types: Optional[Sequence[str]] = None,
    ) -> List[Neighbor]:
        """Get the nodes adjacent to a node.

        Args:
            context_id: The node to look around
            direction: "outgoing", "incoming" or "both"
            relationship_types: Restrict to these types (None or empty = all)

        Returns:
            One Neighbor per matching edge
        """
        if direction not in Direction.ALL:
            raise ValueError(f"Unknown direction: {direction}")

        neighbors: List[Neighbor] = []
        with self.lock.read_locked():
            if direction in (Direction.OUTGOING, Direction.BOTH):
                for edge in self.out_edges(context_id, relationship_types):
                    neighbors.append(
                        Neighbor(
                            context_id=edge.to_id,
                            relationship=edge.relationship_type,
                            direction=Direction.OUTGOING,
                            weight=edge.weight,
                        )
                    )
            if direction in (Direction.INCOMING, Direction.BOTH):
                for edge in self.in_edges(context_id, relationship_types):
                    neighbors.append(
                        Neighbor(
                            context_id=edge.from_id,
                            relationship=edge.relationship_type,
                            direction=Direction.INCOMING,
                            weight=edge.weight,
                        )
                    )
        return neighbors

    def degree(self, context_id: str) -> int:
        """In-degree plus out-degree of a node."""
        with self.lock.read_locked():
            return len(self._out.get(context_id, {})) + len(self._in.get(context_id, {}))

    def get_stats(self) -> Dict[str, Any]:
        """Cheap counts; see GraphTraversal.get_statistics for derived metrics."""
        with self.lock.read_locked():
            return {
                "node_count": len(self.nodes),
                "edge_count": self._edge_count,
                "relationship_types": sorted(self._by_type.keys()),
            }

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, context_id: object) -> bool:
        return context_id in self.nodes

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the entire graph to a dictionary."""
        from .serialization import export_graph

        return export_graph(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], config: Optional[GraphConfig] = None) -> "ContextGraph":
        """Deserialize a graph from a dictionary produced by to_dict."""
        from .serialization import import_graph

        return import_graph(data, config=config)
