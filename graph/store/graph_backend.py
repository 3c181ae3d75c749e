"""Abstract base class for persistent graph backends."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class GraphBackend(ABC):
    """Abstract interface for durable or scale-out graph storage.

    The in-memory ContextGraph never calls a backend itself; backends are
    driven by GraphMirror, which bounds every call with a timeout.
    """

    @abstractmethod
    async def upsert_node(
        self, context_id: str, payload: Any, metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Insert or replace a node.

        Args:
            context_id: Node id
            payload: Node payload (JSON-serializable)
            metadata: Access bookkeeping and other node metadata
        """

    @abstractmethod
    async def upsert_edge(self, edge: Dict[str, Any]) -> None:
        """Insert or replace an edge.

        Args:
            edge: Serialized edge as produced by Edge.to_dict(); identity is
                the (from, to, type) triple
        """

    @abstractmethod
    async def delete_node(self, context_id: str) -> bool:
        """Delete a node and every edge touching it.

        Returns:
            True if deleted, False if not found
        """

    @abstractmethod
    async def fetch_neighbors(self, context_id: str) -> List[Dict[str, Any]]:
        """Fetch the serialized edges touching a node, in either direction."""

    @abstractmethod
    async def run_query(self, pattern: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Run a pattern query.

        Args:
            pattern: Field -> value constraints. ``{"match": "nodes", ...}``
                matches nodes by id or payload field, anything else matches
                edges by ``from``/``to``/``type``/``weight``.

        Returns:
            Matching serialized nodes or edges
        """

    @abstractmethod
    async def clear_all(self) -> None:
        """Delete all stored data.

        Raises:
            PermissionError: If running in a production environment
        """

    async def close(self) -> None:
        """Release resources held by the backend."""
