"""Structural importance metrics for context nodes.

The analyzer condenses a node's neighborhood, dependencies and dependents
into two scalars that the graph-aware compression strategy consumes:

- centrality: how connected the node is, in [0, 1]
- importance: how much the rest of the graph relies on it, in [0.1, 1]
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .context_graph import ContextGraph
from .traversal import GraphTraversal
from .types import (
    DEFAULT_RELATIONSHIP_IMPORTANCE,
    Cycle,
    Dependency,
    Direction,
    Impact,
    Neighbor,
    NodeNotFoundError,
)

logger = logging.getLogger(__name__)

CRITICAL_CYCLE_TYPES = ("depends-on", "requires")
RELATED_TYPES = ("references", "relates-to", "mentions")


@dataclass
class GraphAnalysis:
    """A node's position in the graph."""

    context_id: str
    relationship_count: int
    dependency_count: int
    impacted_count: int
    importance: float
    centrality_score: float
    neighbors: List[Neighbor] = field(default_factory=list)
    dependencies: List[Dependency] = field(default_factory=list)
    impacted: List[Impact] = field(default_factory=list)

    @property
    def enhancement_factor(self) -> float:
        return self.importance

    @property
    def centrality_bonus(self) -> float:
        """Retention bonus applied to object entries and text."""
        return self.centrality_score * 0.2

    @property
    def array_centrality_bonus(self) -> float:
        """Retention bonus applied to array items."""
        return self.centrality_score * 0.3

    def summary(self) -> Dict[str, Any]:
        return {
            "relationship_count": self.relationship_count,
            "importance": self.importance,
            "centrality_score": self.centrality_score,
        }


def calculate_centrality(relationship_count: int, dependency_count: int, impacted_count: int) -> float:
    """Blend relationship, dependent and dependency counts into [0, 1].

    Nodes with many dependencies of their own are more specific, so the
    dependency term lowers the score (never below its 0.1 floor).
    """
    rel_score = min(relationship_count / 10, 1.0)
    dependent_score = min(impacted_count / 5, 1.0)
    specificity = max(1.0 - dependency_count / 10, 0.1)
    return rel_score * 0.4 + dependent_score * 0.4 + specificity * 0.2


def calculate_importance(
    neighbors: List[Neighbor],
    dependency_count: int,
    impacted_count: int,
    relationship_importance: Dict[str, float],
) -> float:
    importance = 0.5
    importance += min(impacted_count * 0.1, 0.3)
    for neighbor in neighbors:
        importance += relationship_importance.get(neighbor.relationship, 0.5) * 0.05
    importance -= min(dependency_count * 0.02, 0.1)
    return min(max(importance, 0.1), 1.0)


class GraphAnalyzer:
    """Derives importance and centrality for nodes of a ContextGraph."""

    def __init__(
        self,
        graph: ContextGraph,
        relationship_importance: Optional[Dict[str, float]] = None,
    ):
        """Initialize the analyzer.

        Args:
            graph: Graph to analyze
            relationship_importance: Relationship type -> base importance in [0, 1]
        """
        self.graph = graph
        self.traversal = GraphTraversal(graph)
        self.relationship_importance = dict(
            relationship_importance or DEFAULT_RELATIONSHIP_IMPORTANCE
        )

    def analyze(self, context_id: str) -> GraphAnalysis:
        """Analyze a node's position in the graph.

        Raises:
            NodeNotFoundError: If the node is not in the graph
        """
        with self.graph.lock.read_locked():
            if context_id not in self.graph:
                raise NodeNotFoundError(context_id)

            neighbors = self.graph.get_neighbors(context_id)
            dependencies = self.traversal.find_dependencies(context_id)
            impacted = self.traversal.find_impacted_contexts(context_id)

        centrality = calculate_centrality(len(neighbors), len(dependencies), len(impacted))
        importance = calculate_importance(
            neighbors, len(dependencies), len(impacted), self.relationship_importance
        )

        logger.debug(
            f"Analyzed {context_id}: relationships={len(neighbors)} "
            f"dependencies={len(dependencies)} impacted={len(impacted)} "
            f"centrality={centrality:.3f} importance={importance:.3f}"
        )

        return GraphAnalysis(
            context_id=context_id,
            relationship_count=len(neighbors),
            dependency_count=len(dependencies),
            impacted_count=len(impacted),
            importance=importance,
            centrality_score=centrality,
            neighbors=neighbors,
            dependencies=dependencies,
            impacted=impacted,
        )

    def analyze_impact(self, context_id: str, change_type: str = "update") -> Dict[str, Any]:
        """Categorize the contexts affected by a change.

        Args:
            context_id: The changed context
            change_type: Free-form label echoed in the report

        Returns:
            Dict with summary counts, impacted contexts per severity bucket,
            change_type and analyzed_at
        """
        impacted = self.traversal.find_impacted_contexts(
            context_id,
            max_distance=5,
            relationship_types=("depends-on", "parent", "requires", "references"),
        )

        buckets: Dict[str, List[Impact]] = {"critical": [], "high": [], "medium": [], "low": []}
        for entry in impacted:
            if entry.impact >= 0.8:
                buckets["critical"].append(entry)
            elif entry.impact >= 0.6:
                buckets["high"].append(entry)
            elif entry.impact >= 0.3:
                buckets["medium"].append(entry)
            else:
                buckets["low"].append(entry)

        return {
            "summary": {
                "total_impacted": len(impacted),
                **{name: len(entries) for name, entries in buckets.items()},
            },
            "impacted_contexts": buckets,
            "change_type": change_type,
            "analyzed_at": datetime.now().isoformat(),
        }

    def find_dependency_cycles(self) -> List[Cycle]:
        """Detect cycles and annotate each with a severity."""
        cycles = self.traversal.detect_cycles()
        if cycles:
            logger.warning(f"Dependency cycles detected: {len(cycles)}")
        for cycle in cycles:
            cycle.severity = cycle_severity(cycle)
        return cycles

    def relationships_of(self, context_id: str) -> Dict[str, Any]:
        """Group a node's relationships by role."""
        with self.graph.lock.read_locked():
            parents = self.graph.get_neighbors(context_id, Direction.INCOMING, ["parent"])
            return {
                "dependencies": self.traversal.find_dependencies(context_id),
                "dependents": self.traversal.find_impacted_contexts(
                    context_id, max_distance=1, relationship_types=CRITICAL_CYCLE_TYPES
                ),
                "parent": parents[0] if parents else None,
                "children": self.graph.get_neighbors(context_id, Direction.OUTGOING, ["parent"]),
                "related": self.graph.get_neighbors(context_id, relationship_types=RELATED_TYPES),
            }


def cycle_severity(cycle: Cycle) -> str:
    if any(edge.relationship_type in CRITICAL_CYCLE_TYPES for edge in cycle.edges):
        return "critical"
    if len(cycle.nodes) > 3:
        return "high"
    return "medium"
