"""Data types for the context relationship graph."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from config import Config

# Relationship types followed by default in each traversal
DEPENDENCY_TYPES: Tuple[str, ...] = ("depends-on", "requires")
IMPACT_TYPES: Tuple[str, ...] = ("depends-on", "parent", "references")
CYCLE_TYPES: Tuple[str, ...] = ("depends-on", "requires")

DEFAULT_RELATIONSHIP_IMPORTANCE: Dict[str, float] = {
    "parent": 1.0,
    "depends-on": 0.9,
    "references": 0.7,
    "executes": 0.8,
    "child": 0.6,
}


class NodeNotFoundError(KeyError):
    """Raised when an operation references a context id that is not in the graph."""

    def __init__(self, context_id: str, role: str = "Node"):
        self.context_id = context_id
        super().__init__(f"{role} not found: {context_id}")

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return self.args[0]


class ValidationError(ValueError):
    """Raised when an edge or a context record has an invalid shape."""


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return datetime.now()


class Direction:
    """Enum-like class for neighbor lookup directions."""

    OUTGOING = "outgoing"
    INCOMING = "incoming"
    BOTH = "both"

    ALL = (OUTGOING, INCOMING, BOTH)


@dataclass
class GraphConfig:
    """Traversal defaults for a ContextGraph."""

    max_traversal_depth: int = 10
    default_edge_weight: float = 1.0
    impact_decay_factor: float = 0.8

    @classmethod
    def from_config(cls) -> "GraphConfig":
        """Snapshot the current Config defaults."""
        return cls(
            max_traversal_depth=Config.MAX_TRAVERSAL_DEPTH,
            default_edge_weight=Config.DEFAULT_EDGE_WEIGHT,
            impact_decay_factor=Config.IMPACT_DECAY_FACTOR,
        )


@dataclass
class ContextNode:
    """A context record attached to the graph.

    Attributes:
        id: Opaque unique identifier
        payload: Arbitrary nested key/value data (the compressible content)
        created_at: When this node was (last) inserted
        last_accessed_at: When this node was last touched by a traversal
        access_count: Number of recorded accesses
    """

    id: str
    payload: Any = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    last_accessed_at: datetime = field(default_factory=datetime.now)
    access_count: int = 0

    def touch(self) -> None:
        """Record an access."""
        self.last_accessed_at = datetime.now()
        self.access_count += 1

    def metadata(self) -> Dict[str, Any]:
        """Access bookkeeping as a serializable dict."""
        return {
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
            "access_count": self.access_count,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Serialize node to dictionary for export."""
        return {"id": self.id, "payload": self.payload, "metadata": self.metadata()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextNode":
        """Deserialize node from dictionary."""
        meta = data.get("metadata") or {}
        return cls(
            id=data["id"],
            payload=data.get("payload", data.get("data")),
            created_at=_parse_time(meta.get("created_at")),
            last_accessed_at=_parse_time(meta.get("last_accessed_at")),
            access_count=int(meta.get("access_count", 0)),
        )


@dataclass(frozen=True)
class Edge:
    """A directed, weighted, typed relationship between two context ids.

    Edges refer to their endpoints by id only; the graph's adjacency
    indices are the sole owners of Edge objects.
    """

    from_id: str
    to_id: str
    relationship_type: str
    weight: float = 1.0
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)
    created_at: datetime = field(default_factory=datetime.now, compare=False, hash=False)

    @property
    def key(self) -> Tuple[str, str, str]:
        """Identity of the edge inside the graph."""
        return (self.from_id, self.to_id, self.relationship_type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_id,
            "to": self.to_id,
            "type": self.relationship_type,
            "weight": self.weight,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Edge":
        return cls(
            from_id=data["from"],
            to_id=data["to"],
            relationship_type=data["type"],
            weight=float(data.get("weight", 1.0)),
            metadata=data.get("metadata") or {},
            created_at=_parse_time(data.get("created_at")),
        )


@dataclass
class Neighbor:
    """An adjacent context as seen from a given node."""

    context_id: str
    relationship: str
    direction: str
    weight: float


@dataclass
class Dependency:
    """A context reached by following outgoing dependency edges."""

    context_id: str
    relationship: str
    distance: int
    weight: float
    path: List[Edge] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Impact:
    """A context affected by a change, found via incoming edges."""

    context_id: str
    impact: float
    distance: int
    relationship: str
    path: List[Edge] = field(default_factory=list)


@dataclass
class Cycle:
    """A dependency cycle; ``nodes`` starts and ends on the same id."""

    nodes: List[str]
    edges: List[Edge] = field(default_factory=list)
    type: str = "dependency-cycle"
    severity: Optional[str] = None


@dataclass
class PathResult:
    """Result of a shortest path search."""

    path: List[Edge]
    distance: float
    nodes: List[str]


@dataclass
class QueryResult:
    """A node matched by ``GraphTraversal.query``."""

    node: ContextNode
    path: List[Edge]
    depth: int
