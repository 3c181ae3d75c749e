"""YAML file-based graph persistence backend.

Stores a whole graph as one human-readable YAML file:
~/.ctxgraph/graphs/<name>.yaml by default. Every write replaces the file
atomically (tmp file + os.replace).
"""

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional

import aiofiles
import aiofiles.os
import yaml

from config import PRODUCTION_ENVIRONMENTS, Config
from graph.serialization import serialize_payload
from graph.store.graph_backend import GraphBackend
from utils.runtime import get_graphs_dir

logger = logging.getLogger(__name__)


def _edge_key(edge: Dict[str, Any]) -> tuple:
    return (edge["from"], edge["to"], edge["type"])


class YamlFileGraphBackend(GraphBackend):
    """YAML file-based graph backend.

    The file holds ``{"nodes": {id: {"payload", "metadata"}}, "edges": [...]}``.
    The parsed document is cached after the first read; all mutations go
    through a single asyncio lock.
    """

    def __init__(
        self,
        path: Optional[str] = None,
        name: str = "default",
        environment: Optional[str] = None,
    ):
        """Initialize YAML file backend.

        Args:
            path: Path of the YAML file (default: ~/.ctxgraph/graphs/<name>.yaml)
            name: Graph name used to build the default path
            environment: Deployment environment (default: Config.ENVIRONMENT)
        """
        self.path = path or os.path.join(get_graphs_dir(), f"{name}.yaml")
        self.environment = (environment or Config.ENVIRONMENT).lower()
        self._write_lock = asyncio.Lock()
        self._data: Optional[Dict[str, Any]] = None

    async def _load(self) -> Dict[str, Any]:
        """Load the document from disk, or start an empty one."""
        if self._data is not None:
            return self._data

        data: Dict[str, Any] = {}
        if await asyncio.to_thread(os.path.exists, self.path):
            try:
                async with aiofiles.open(self.path, encoding="utf-8") as f:
                    content = await f.read()
                data = yaml.safe_load(content) or {}
            except yaml.YAMLError:
                logger.warning(f"Failed to parse {self.path}, starting with an empty graph")
                data = {}

        data.setdefault("nodes", {})
        data.setdefault("edges", [])
        self._data = data
        return data

    async def _save(self, data: Dict[str, Any]) -> None:
        """Atomically write the document to disk."""
        directory = os.path.dirname(self.path)
        if directory:
            await aiofiles.os.makedirs(directory, exist_ok=True)

        tmp_path = self.path + ".tmp"
        content = yaml.safe_dump(
            data,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
            width=120,
        )
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(content)
        await asyncio.to_thread(os.replace, tmp_path, self.path)

    async def upsert_node(
        self, context_id: str, payload: Any, metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        async with self._write_lock:
            data = await self._load()
            data["nodes"][context_id] = {
                "payload": serialize_payload(payload),
                "metadata": serialize_payload(metadata or {}),
            }
            await self._save(data)

    async def upsert_edge(self, edge: Dict[str, Any]) -> None:
        async with self._write_lock:
            data = await self._load()
            missing = [nid for nid in (edge["from"], edge["to"]) if nid not in data["nodes"]]
            if missing:
                raise KeyError(f"Cannot store edge, unknown node(s): {', '.join(missing)}")

            key = _edge_key(edge)
            stored = {**edge, "metadata": serialize_payload(edge.get("metadata") or {})}
            data["edges"] = [e for e in data["edges"] if _edge_key(e) != key]
            data["edges"].append(stored)
            await self._save(data)

    async def delete_node(self, context_id: str) -> bool:
        async with self._write_lock:
            data = await self._load()
            if context_id not in data["nodes"]:
                return False
            del data["nodes"][context_id]
            data["edges"] = [
                e for e in data["edges"] if e["from"] != context_id and e["to"] != context_id
            ]
            await self._save(data)
            return True

    async def fetch_neighbors(self, context_id: str) -> List[Dict[str, Any]]:
        data = await self._load()
        return [e for e in data["edges"] if e["from"] == context_id or e["to"] == context_id]

    async def run_query(self, pattern: Dict[str, Any]) -> List[Dict[str, Any]]:
        data = await self._load()
        constraints = dict(pattern)

        if constraints.pop("match", "edges") == "nodes":
            results = []
            for node_id, node in data["nodes"].items():
                payload = node.get("payload")
                fields = payload if isinstance(payload, dict) else {}
                if all(
                    (node_id == value) if key == "id" else (fields.get(key) == value)
                    for key, value in constraints.items()
                ):
                    results.append({"id": node_id, **node})
            return results

        return [
            e for e in data["edges"] if all(e.get(key) == value for key, value in constraints.items())
        ]

    async def clear_all(self) -> None:
        if self.environment in PRODUCTION_ENVIRONMENTS:
            raise PermissionError("Cannot clear graph backend in production")

        async with self._write_lock:
            self._data = {"nodes": {}, "edges": []}
            await self._save(self._data)
        logger.warning(f"Graph backend cleared: {self.path}")

    async def stats(self) -> Dict[str, Any]:
        """Counts of stored nodes and edges."""
        data = await self._load()
        return {
            "node_count": len(data["nodes"]),
            "edge_count": len(data["edges"]),
            "path": self.path,
        }
