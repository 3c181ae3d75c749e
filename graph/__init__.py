"""Context relationship graph.

Provides a directed, weighted, typed graph over context records, traversal
algorithms (dependencies, impact, cycles, shortest paths, queries) and the
analyzer that scores a node's structural importance for compression.
"""

from .analyzer import GraphAnalysis, GraphAnalyzer
from .context_graph import ContextGraph
from .serialization import export_graph, import_graph, load_graph, save_graph
from .traversal import GraphTraversal
from .types import (
    ContextNode,
    Cycle,
    Dependency,
    Direction,
    Edge,
    GraphConfig,
    Impact,
    Neighbor,
    NodeNotFoundError,
    PathResult,
    QueryResult,
    ValidationError,
)

__all__ = [
    "ContextGraph",
    "ContextNode",
    "Cycle",
    "Dependency",
    "Direction",
    "Edge",
    "GraphAnalysis",
    "GraphAnalyzer",
    "GraphConfig",
    "GraphTraversal",
    "Impact",
    "Neighbor",
    "NodeNotFoundError",
    "PathResult",
    "QueryResult",
    "ValidationError",
    "export_graph",
    "import_graph",
    "load_graph",
    "save_graph",
]
