"""Best-effort mirroring of an in-memory graph into a persistent backend.

Every backend call is bounded by a timeout and retried with exponential
backoff. A call that still fails is logged and reported as False; backend
trouble never propagates into graph operations.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from config import Config
from graph.context_graph import ContextGraph
from graph.serialization import export_graph
from graph.store.graph_backend import GraphBackend
from graph.types import Edge

logger = logging.getLogger(__name__)
T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff between attempts of one backend call.

    Attempt n (0-indexed) waits initial_delay * exponential_base**n, capped
    at max_delay; with jitter the wait is scaled by a factor in [0.5, 1.5).
    """

    max_retries: int = 3
    initial_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: bool = True

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            max_retries=Config.RETRY_MAX_ATTEMPTS,
            initial_delay=Config.RETRY_INITIAL_DELAY,
            max_delay=Config.RETRY_MAX_DELAY,
            exponential_base=Config.RETRY_EXPONENTIAL_BASE,
            jitter=Config.RETRY_JITTER,
        )

    def delay(self, attempt: int) -> float:
        base = min(self.initial_delay * self.exponential_base**attempt, self.max_delay)
        return base * (0.5 + random.random()) if self.jitter else base


def is_retryable_error(error: BaseException) -> bool:
    """Timeouts and I/O failures are worth retrying; logic errors are not."""
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    if isinstance(error, PermissionError):
        return False
    return isinstance(error, OSError)


class GraphMirror:
    """Pushes graph state to a GraphBackend without ever blocking indefinitely."""

    def __init__(
        self,
        backend: GraphBackend,
        timeout: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """Initialize the mirror.

        Args:
            backend: Backend to write to
            timeout: Per-call timeout in seconds (default: Config.BACKEND_TIMEOUT)
            retry_policy: Backoff between attempts (default: from Config)
        """
        self.backend = backend
        self.timeout = timeout if timeout is not None else Config.BACKEND_TIMEOUT
        self.retry_policy = retry_policy or RetryPolicy.from_config()
        self.failures = 0

    async def _call(self, description: str, factory: Callable[[], Awaitable[T]]) -> Optional[T]:
        """Run one backend call with timeout and retries.

        Args:
            description: Human-readable label for logs
            factory: Creates a fresh awaitable per attempt

        Returns:
            The call's result, or None if every attempt failed
        """
        last_error: Optional[BaseException] = None

        for attempt in range(self.retry_policy.max_retries + 1):
            try:
                return await asyncio.wait_for(factory(), timeout=self.timeout)
            except Exception as e:
                last_error = e
                if attempt == self.retry_policy.max_retries or not is_retryable_error(e):
                    break
                delay = self.retry_policy.delay(attempt)
                logger.warning(
                    f"Backend {description} failed ({type(e).__name__}: {e}); "
                    f"retrying in {delay:.1f}s (attempt {attempt + 1}/{self.retry_policy.max_retries})"
                )
                await asyncio.sleep(delay)

        self.failures += 1
        logger.error(f"Backend {description} failed permanently: {last_error!r}")
        return None

    async def push_node(self, graph: ContextGraph, context_id: str) -> bool:
        """Mirror one node. Returns False if it is missing or the write failed."""
        node = graph.get_node(context_id)
        if node is None:
            return False
        payload, metadata = node.payload, node.metadata()
        result = await self._call(
            f"upsert_node({context_id})",
            lambda: self._ok(self.backend.upsert_node(context_id, payload, metadata)),
        )
        return result is True

    async def push_edge(self, edge: Edge) -> bool:
        """Mirror one edge."""
        data = edge.to_dict()
        result = await self._call(
            f"upsert_edge({edge.from_id}->{edge.to_id})",
            lambda: self._ok(self.backend.upsert_edge(data)),
        )
        return result is True

    async def remove_node(self, context_id: str) -> bool:
        """Mirror a node removal."""
        result = await self._call(
            f"delete_node({context_id})", lambda: self.backend.delete_node(context_id)
        )
        return bool(result)

    async def push_graph(self, graph: ContextGraph) -> bool:
        """Mirror a snapshot of a whole graph, nodes before edges.

        Returns:
            True only if every node and edge was written
        """
        snapshot = export_graph(graph)
        ok = True
        for node in snapshot["nodes"]:
            node_id, payload, metadata = node["id"], node["payload"], node["metadata"]
            result = await self._call(
                f"upsert_node({node_id})",
                lambda: self._ok(self.backend.upsert_node(node_id, payload, metadata)),
            )
            ok = ok and result is True
        for edge in snapshot["edges"]:
            result = await self._call(
                f"upsert_edge({edge['from']}->{edge['to']})",
                lambda: self._ok(self.backend.upsert_edge(edge)),
            )
            ok = ok and result is True

        logger.info(
            f"Mirrored graph: {len(snapshot['nodes'])} nodes, {len(snapshot['edges'])} edges, ok={ok}"
        )
        return ok

    async def fetch_neighbors(self, context_id: str) -> list[dict[str, Any]]:
        """Read neighbors from the backend; empty on failure."""
        result = await self._call(
            f"fetch_neighbors({context_id})", lambda: self.backend.fetch_neighbors(context_id)
        )
        return result or []

    @staticmethod
    async def _ok(awaitable: Awaitable[Any]) -> bool:
        await awaitable
        return True
