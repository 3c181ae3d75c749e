"""Export and import of context graphs.

A graph serializes to::

    {"nodes": [{id, payload, metadata}],
     "edges": [{from, to, type, weight, metadata, created_at}],
     "stats": {...}}

Importing that structure rebuilds a graph with the same nodes, edges and
relationship types. JSON and YAML file helpers share the same structure.
"""

import json
import logging
import os
from typing import TYPE_CHECKING, Any, Dict, Optional

import yaml

from .types import ContextNode, Edge, GraphConfig

if TYPE_CHECKING:
    from .context_graph import ContextGraph

logger = logging.getLogger(__name__)


def serialize_payload(payload: Any) -> Any:
    """Return a JSON-serializable version of a payload.

    Args:
        payload: Node payload (dict, list, scalar or None)

    Returns:
        The payload itself when already serializable, else a copy with
        unsupported values converted to strings
    """
    if payload is None or isinstance(payload, (str, int, float, bool)):
        return payload
    try:
        json.dumps(payload)
        return payload
    except (TypeError, ValueError):
        return json.loads(json.dumps(payload, default=str))


def export_graph(graph: "ContextGraph") -> Dict[str, Any]:
    """Serialize a graph to a plain dictionary."""
    from .traversal import GraphTraversal

    with graph.lock.read_locked():
        nodes = [
            {
                "id": node.id,
                "payload": serialize_payload(node.payload),
                "metadata": node.metadata(),
            }
            for node in graph.nodes.values()
        ]
        edges = []
        for edge in graph.iter_edges():
            data = edge.to_dict()
            data["metadata"] = serialize_payload(data["metadata"])
            edges.append(data)
        stats = GraphTraversal(graph).get_statistics()

    return {"nodes": nodes, "edges": edges, "stats": stats}


def import_graph(data: Dict[str, Any], config: Optional[GraphConfig] = None) -> "ContextGraph":
    """Rebuild a graph from ``export_graph`` output.

    Node access metadata and edge creation times are restored as exported.

    Raises:
        NodeNotFoundError: If an edge references a node that is not listed
        ValidationError: If an edge has no type or an invalid weight
    """
    from .context_graph import ContextGraph

    graph = ContextGraph(config=config)

    for node_data in data.get("nodes", []):
        restored = ContextNode.from_dict(node_data)
        node = graph.add_node(restored.id, restored.payload)
        node.created_at = restored.created_at
        node.last_accessed_at = restored.last_accessed_at
        node.access_count = restored.access_count

    for edge_data in data.get("edges", []):
        restored_edge = Edge.from_dict(edge_data)
        graph.add_edge(
            restored_edge.from_id,
            restored_edge.to_id,
            restored_edge.relationship_type,
            weight=restored_edge.weight,
            metadata=restored_edge.metadata,
            created_at=restored_edge.created_at,
        )

    logger.debug(f"Imported graph: {len(graph)} nodes, {graph.edge_count} edges")
    return graph


def save_graph(graph: "ContextGraph", path: str) -> None:
    """Write a graph to a .json or .yaml/.yml file atomically."""
    data = export_graph(graph)
    if path.endswith((".yaml", ".yml")):
        content = yaml.safe_dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)
    else:
        content = json.dumps(data, indent=2, default=str)

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tmp_path = path + ".tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        f.write(content)
    os.replace(tmp_path, path)


def load_graph(path: str, config: Optional[GraphConfig] = None) -> "ContextGraph":
    """Read a graph written by ``save_graph``."""
    with open(path, encoding="utf-8") as f:
        content = f.read()
    if path.endswith((".yaml", ".yml")):
        data = yaml.safe_load(content) or {}
    else:
        data = json.loads(content)
    return import_graph(data, config=config)
